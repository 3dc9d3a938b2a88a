"""
Unit tests for the calendar-period, time-block and project section generators.
"""

import pytest
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import patch

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from notedash.core.config import Config
from notedash.core.store import InMemoryDocumentStore
from notedash.dashboard.done_counts import DoneCountCache
from notedash.dashboard.generators import (
    PERIOD_SPECS, CalendarPeriodGenerator, ProjectSectionGenerator, TimeBlockGenerator,
)
from notedash.dashboard.models import ItemType, SectionCode
from notedash.dashboard.settings import DashboardSettings

# Wednesday
NOW = datetime(2024, 5, 1, 10, 0)


def clock():
    return NOW


def today_generator(store, done_counts=None):
    return CalendarPeriodGenerator(PERIOD_SPECS[SectionCode.TODAY], store,
                                   done_counts=done_counts, clock=clock)


@pytest.fixture
def store():
    return InMemoryDocumentStore({
        "20240501.md": "\n".join([
            "## Tasks",
            "* Write report",
            "\t+ Gather numbers",
            "* !! Call the bank",
            "* Book flights",
            "* [x] Pay rent @done(2024-05-01 08:00 AM)",
            "",
        ]),
        "Work/Plan.md": "\n".join([
            "# Plan",
            "* Send agenda >2024-05-01",
            "* Later thing >2024-05-20",
            "",
        ]),
        "2024-W18.md": "* Plan the week\n",
    }, clock=clock)


class TestCalendarSection:
    """Tests for the Today section."""

    @pytest.mark.asyncio
    async def test_open_items_with_child(self, store):
        """Three open tasks and one child checklist give four items linked by parent id."""
        settings = DashboardSettings(separate_section_for_referenced_notes=True)
        sections = await today_generator(store).generate(settings)

        primary = sections[0]
        assert primary.id == "0"
        assert primary.section_code == SectionCode.TODAY
        assert len(primary.items) == 4

        by_content = {item.para.content: item for item in primary.items}
        child = by_content["Gather numbers"]
        assert child.item_type == ItemType.CHECKLIST
        assert child.parent_id == by_content["Write report"].id

    @pytest.mark.asyncio
    async def test_items_sorted_by_priority(self, store):
        sections = await today_generator(store).generate(
            DashboardSettings(separate_section_for_referenced_notes=True))
        contents = [item.para.content for item in sections[0].items]
        assert contents[0] == "!! Call the bank"
        # Child stays right after its parent
        assert contents.index("Gather numbers") == contents.index("Write report") + 1

    @pytest.mark.asyncio
    async def test_item_ids_are_section_ordinals(self, store):
        sections = await today_generator(store).generate(
            DashboardSettings(separate_section_for_referenced_notes=True))
        assert [item.id for item in sections[0].items] == ["0-0", "0-1", "0-2", "0-3"]

    @pytest.mark.asyncio
    async def test_referenced_twin(self, store):
        """Lines scheduled in from other notes get their own '>Today' section."""
        sections = await today_generator(store).generate(
            DashboardSettings(separate_section_for_referenced_notes=True))
        assert len(sections) == 2
        twin = sections[1]
        assert twin.is_referenced
        assert twin.name == ">Today"
        assert twin.id == "1"
        assert [item.para.content for item in twin.items] == ["Send agenda >2024-05-01"]

    @pytest.mark.asyncio
    async def test_referenced_items_merged_when_not_separate(self, store):
        sections = await today_generator(store).generate(
            DashboardSettings(separate_section_for_referenced_notes=False))
        assert len(sections) == 1
        contents = [item.para.content for item in sections[0].items]
        assert "Send agenda >2024-05-01" in contents
        assert "Later thing >2024-05-20" not in contents

    @pytest.mark.asyncio
    async def test_missing_note_gives_empty_section(self):
        store = InMemoryDocumentStore({}, clock=clock)
        sections = await today_generator(store).generate(DashboardSettings())
        assert len(sections) == 1
        assert sections[0].items == []
        assert sections[0].total_count == 0
        assert sections[0].section_filename == "20240501.md"

    @pytest.mark.asyncio
    async def test_week_section(self, store):
        gen = CalendarPeriodGenerator(PERIOD_SPECS[SectionCode.WEEK], store, clock=clock)
        sections = await gen.generate(DashboardSettings())
        assert gen.period_str() == "2024-W18"
        assert [item.para.content for item in sections[0].items] == ["Plan the week"]

    @pytest.mark.asyncio
    async def test_done_counts_attached(self, store, tmp_path):
        cache = DoneCountCache(store, Config(tmp_path / "config"), tmp_path / "cache", clock=clock)
        sections = await today_generator(store, cache).generate(DashboardSettings())
        assert sections[0].done_counts.completed_tasks == 1

    @pytest.mark.asyncio
    async def test_ignore_terms(self, store):
        settings = DashboardSettings(ignore_items_with_terms=["bank"])
        sections = await today_generator(store).generate(settings)
        contents = [item.para.content for item in sections[0].items]
        assert "!! Call the bank" not in contents

    @pytest.mark.asyncio
    async def test_action_buttons(self, store):
        sections = await today_generator(store).generate(DashboardSettings())
        names = [b.action_name for b in sections[0].action_buttons]
        assert "moveAllTodayToTomorrow" in names
        add_task = next(b for b in sections[0].action_buttons if b.action_name == "addTask")
        assert add_task.action_param == "20240501.md"

    @pytest.mark.asyncio
    async def test_generation_error_gives_no_sections(self, store):
        gen = today_generator(store)
        with patch.object(store, "get_note", side_effect=RuntimeError("disk on fire")):
            assert await gen.generate(DashboardSettings()) == []

    def test_disabled_by_setting(self, store):
        gen = CalendarPeriodGenerator(PERIOD_SPECS[SectionCode.YESTERDAY], store, clock=clock)
        assert gen.is_enabled(DashboardSettings(show_yesterday_section=True))
        assert not gen.is_enabled(DashboardSettings(show_yesterday_section=False))
        assert today_generator(store).is_enabled(DashboardSettings())

    @pytest.mark.asyncio
    async def test_demo_data(self, store):
        sections = await today_generator(store).generate(DashboardSettings(), use_demo_data=True)
        contents = [item.para.content for item in sections[0].items]
        assert "!! Finish quarterly report" in contents


class TestTimeBlockSection:
    """Tests for the current time block section."""

    @pytest.mark.asyncio
    async def test_only_running_or_future_blocks(self):
        store = InMemoryDocumentStore({
            "20240501.md": "\n".join([
                "* 08:00-09:00 Gym",
                "* 09:30-10:30 Standup",
                "* 2pm Dentist",
                "* Review 3 drafts",
                "",
            ]),
        }, clock=clock)
        gen = TimeBlockGenerator(store, clock=clock)
        sections = await gen.generate(DashboardSettings(exclude_tasks_with_timeblocks=True))
        items = sections[0].items
        assert [i.para.content for i in items] == ["09:30-10:30 Standup", "2pm Dentist"]
        assert all(i.item_type == ItemType.TIMEBLOCK for i in items)
        assert items[1].para.start_time == "14:00"


class TestProjectSection:
    """Tests for the projects-to-review section."""

    @pytest.mark.asyncio
    async def test_due_projects_listed(self):
        store = InMemoryDocumentStore({
            "Work/Relaunch.md": "\n".join([
                "# Relaunch",
                "#project @review(1w) @reviewed(2024-04-20)",
                "* [x] Pick CMS",
                "* Write copy",
                "",
            ]),
            "Work/Fresh.md": "# Fresh\n#project @review(1m) @reviewed(2024-04-28)\n",
            "Work/Done.md": "# Done\n#project @review(1w) @completed(2024-03-01)\n",
            "@Archive/Old.md": "# Old\n#project @review(1w)\n",
        }, clock=clock)
        gen = ProjectSectionGenerator(store, clock=clock)
        sections = await gen.generate(DashboardSettings())
        projects = [item.project for item in sections[0].items]
        assert [p.title for p in projects] == ["Relaunch"]
        assert projects[0].percent_complete == 50
        assert sections[0].items[0].item_type == ItemType.PROJECT

    @pytest.mark.asyncio
    async def test_impossible_review_date_skips_only_that_project(self):
        store = InMemoryDocumentStore({
            "Work/Typo.md": "# Typo\n#project @review(1w) @reviewed(2024-02-31)\n",
            "Work/Relaunch.md": "# Relaunch\n#project @review(1w) @reviewed(2024-04-20)\n",
        }, clock=clock)
        gen = ProjectSectionGenerator(store, clock=clock)
        sections = await gen.generate(DashboardSettings())
        assert [item.project.title for item in sections[0].items] == ["Relaunch"]

    @pytest.mark.asyncio
    async def test_excluded_folder(self):
        store = InMemoryDocumentStore({
            "Home/Garden.md": "# Garden\n#area @review(1w)\n",
        }, clock=clock)
        gen = ProjectSectionGenerator(store, clock=clock)
        sections = await gen.generate(DashboardSettings(excluded_folders=["Home"]))
        assert sections[0].items == []
