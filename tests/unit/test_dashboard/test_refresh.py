"""
Unit tests for the refresh/merge engine.
"""

import pytest
from datetime import datetime
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from notedash.core.config import Config
from notedash.core.store import InMemoryDocumentStore
from notedash.dashboard.models import LineProjection, Section, SectionCode, SectionItem, ItemType
from notedash.dashboard.refresh import merge_sections, remove_item, replace_item
from notedash.dashboard.service import DashboardService

NOW = datetime(2024, 5, 1, 10, 0)


def clock():
    return NOW


def para(content, filename="20240501.md"):
    return LineProjection(content=content, raw_content=f"* {content}", filename=filename,
                          note_type="Calendar", line_type="open")


def section(code, sid, *contents, is_referenced=False):
    items = [SectionItem(id=f"{sid}-{i}", item_type=ItemType.OPEN_TASK, para=para(c))
             for i, c in enumerate(contents)]
    return Section(id=sid, section_code=code, name=code.value, items=items,
                   is_referenced=is_referenced)


@pytest.fixture
def store():
    return InMemoryDocumentStore({
        "20240501.md": "\n".join([
            "## Tasks",
            "* Write report",
            "\t+ Gather numbers",
            "* !! Call the bank",
            "* [x] Pay rent @done(2024-05-01 08:00 AM)",
            "",
        ]),
        "20240430.md": "* Yesterday leftover\n",
        "20240502.md": "* Tomorrow thing\n",
        "Work/Plan.md": "# Plan\n* Send agenda >2024-05-01\n",
    }, clock=clock)


@pytest.fixture
def pushed():
    return []


@pytest.fixture
def service(tmp_path, store, pushed):
    async def notifier(state):
        pushed.append(state.to_dict())

    return DashboardService(Config(tmp_path / "config"), store=store, clock=clock,
                            cache_dir=tmp_path / "cache", notifier=notifier)


class TestMergeSections:
    """Tests for merging partial results into the live list."""

    def test_replaces_only_named_codes(self):
        today = section(SectionCode.TODAY, "0", "a")
        week = section(SectionCode.WEEK, "6", "b")
        new_today = section(SectionCode.TODAY, "0", "c")
        merged = merge_sections([today, week], [new_today])
        assert merged[0] is new_today
        assert merged[1] is week

    def test_referenced_twins_replaced_with_primary(self):
        old = [section(SectionCode.TODAY, "0", "a"),
               section(SectionCode.TODAY, "1", "ref", is_referenced=True)]
        new = [section(SectionCode.TODAY, "0", "b")]
        merged = merge_sections(old, new)
        assert [s.id for s in merged] == ["0"]

    def test_display_order(self):
        merged = merge_sections([], [
            section(SectionCode.OVERDUE, "13"),
            section(SectionCode.TODAY, "0"),
            section(SectionCode.TIMEBLOCK, "16"),
        ])
        assert [s.section_code for s in merged] == [
            SectionCode.TIMEBLOCK, SectionCode.TODAY, SectionCode.OVERDUE,
        ]


class TestItemEdits:
    """Tests for in-place item updates and removals."""

    def test_replace_item(self):
        today = section(SectionCode.TODAY, "0", "a", "b")
        week = section(SectionCode.WEEK, "6", "c")
        result = replace_item([today, week], "20240501.md", "a", para("a !"))
        assert result[0].items[0].para.content == "a !"
        assert result[0].items[1] is today.items[1]
        assert result[1] is week

    def test_remove_item_takes_children(self):
        parent = SectionItem(id="0-0", item_type=ItemType.OPEN_TASK, para=para("parent"))
        child = SectionItem(id="0-1", item_type=ItemType.CHECKLIST, para=para("child"), parent_id="0-0")
        other = SectionItem(id="0-2", item_type=ItemType.OPEN_TASK, para=para("other"))
        today = Section(id="0", section_code=SectionCode.TODAY, name="Today",
                        items=[parent, child, other], total_count=3)
        result = remove_item([today], "20240501.md", "parent")
        assert [i.id for i in result[0].items] == ["0-2"]
        assert result[0].total_count == 1

    def test_remove_item_other_file_untouched(self):
        today = section(SectionCode.TODAY, "0", "a")
        result = remove_item([today], "Other.md", "a")
        assert result[0] is today


class TestRefreshAll:
    """Tests for full refreshes."""

    @pytest.mark.asyncio
    async def test_enabled_sections_in_display_order(self, service):
        sections = await service.refresh_all("test")
        assert [s.section_code.value for s in sections] == [
            "TB", "DT", "DY", "DO", "W", "M", "OVERDUE", "PROJ",
        ]

    @pytest.mark.asyncio
    async def test_done_total(self, service):
        await service.refresh_all("test")
        assert service.state.total_done_count == 1

    @pytest.mark.asyncio
    async def test_done_total_skipped_when_unavailable(self, service):
        service.config.set("done_dates_available", False)
        await service.refresh_all("test")
        assert service.state.total_done_count == 0

    @pytest.mark.asyncio
    async def test_idempotent(self, service):
        await service.refresh_all("first")
        first = service.state.to_dict()
        await service.refresh_all("second")
        assert service.state.to_dict()["sections"] == first["sections"]

    @pytest.mark.asyncio
    async def test_refreshing_flag_pushed(self, service, pushed):
        await service.refresh_all("test")
        assert pushed[0]["refreshing"] is True
        assert pushed[-1]["refreshing"] is False
        assert pushed[-1]["sections"]


class TestRefreshSome:
    """Tests for partial refreshes."""

    @pytest.mark.asyncio
    async def test_untouched_sections_keep_identity(self, service, store):
        await service.refresh_all("test")
        before = {s.section_code: s for s in service.state.sections}

        store.add_note("20240501.md", "* Brand new\n")
        await service.refresh_some(["DT"])

        after = {s.section_code: s for s in service.state.sections}
        assert after[SectionCode.TODAY] is not before[SectionCode.TODAY]
        contents = [i.para.content for i in after[SectionCode.TODAY].items]
        assert "Brand new" in contents
        assert "Write report" not in contents
        for code in before:
            if code != SectionCode.TODAY:
                assert after[code] is before[code]

    @pytest.mark.asyncio
    async def test_refreshing_lists_codes(self, service, pushed):
        await service.refresh_all("test")
        pushed.clear()
        await service.refresh_some(["DT", "W"])
        assert pushed[0]["refreshing"] == ["DT", "W"]

    @pytest.mark.asyncio
    async def test_clears_old_error_banner(self, service, pushed):
        """A banner from an earlier failure is not re-sent once a refresh succeeds."""
        await service.refresh_all("test")
        await service.engine.show_error("Write rejected")
        assert pushed[-1]["errorMessage"] == "Write rejected"
        pushed.clear()
        await service.refresh_some(["DT"])
        assert [p["errorMessage"] for p in pushed] == ["", ""]
        assert service.state.error_message == ""

    @pytest.mark.asyncio
    async def test_disabled_section_removed(self, service):
        await service.refresh_all("test")
        service.perspectives.update_settings({"show_week_section": False})
        await service.refresh_some(["W"])
        assert SectionCode.WEEK not in {s.section_code for s in service.state.sections}

    @pytest.mark.asyncio
    async def test_unknown_codes_ignored(self, service):
        await service.refresh_all("test")
        before = list(service.state.sections)
        await service.refresh_some(["NOPE"])
        assert service.state.sections == before


class TestEditorHooks:
    """Tests for save and delayed refreshes."""

    @pytest.mark.asyncio
    async def test_saved_calendar_note_refreshes_its_section(self, service, store):
        await service.refresh_all("test")
        week = next(s for s in service.state.sections if s.section_code == SectionCode.WEEK)
        store.add_note("20240501.md", "* After save\n")
        await service.engine.on_document_saved("20240501.md")
        today = next(s for s in service.state.sections if s.section_code == SectionCode.TODAY)
        contents = [i.para.content for i in today.items]
        assert "After save" in contents
        assert "Write report" not in contents
        assert next(s for s in service.state.sections if s.section_code == SectionCode.WEEK) is week

    def test_codes_for_filename(self, service):
        assert service.engine.codes_for_filename("20240502.md") == [SectionCode.TOMORROW]
        assert service.engine.codes_for_filename("Work/Plan.md") == []

    @pytest.mark.asyncio
    async def test_delayed_refresh_is_single(self, service):
        first = service.engine.start_delayed_refresh(delay=0.01)
        second = service.engine.start_delayed_refresh(delay=0.01)
        assert first is second
        await first
        assert service.state.last_full_refresh == NOW

    @pytest.mark.asyncio
    async def test_notifier_errors_do_not_break_refresh(self, service):
        async def broken(state):
            raise RuntimeError("socket closed")

        service.set_notifier(broken)
        sections = await service.refresh_all("test")
        assert sections
