"""
Unit tests for the action bridge.
Tests single-item edits, moving and rescheduling, bulk moves, perspectives
and failure handling.
"""

import json
import logging
import pytest
from datetime import date, datetime
from pathlib import Path
from unittest.mock import patch

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from notedash.core.config import Config
from notedash.core.errors import InvalidInputError
from notedash.core.store import AutoPrompter, InMemoryDocumentStore
from notedash.dashboard.actions import (
    ActionDirective, ActionRequest, ActionState, HandlerResult, resolve_target_period,
)
from notedash.dashboard.models import SectionCode
from notedash.dashboard.mutations import cycle_priority
from notedash.dashboard.service import DashboardService

NOW = datetime(2024, 5, 1, 10, 0)

TODAY_TEXT = "\n".join([
    "## Tasks",
    "* Write report",
    "\t+ Gather numbers",
    "* !! Call the bank",
    "* [x] Pay rent @done(2024-05-01 08:00 AM)",
    "",
])


def clock():
    return NOW


@pytest.fixture
def store():
    return InMemoryDocumentStore({
        "20240501.md": TODAY_TEXT,
        "20240425.md": "* Old task\n",
        "Work/Plan.md": "# Plan\n* Send agenda >2024-05-01\n",
    }, clock=clock)


@pytest.fixture
def service(tmp_path, store):
    return DashboardService(Config(tmp_path / "config"), store=store, clock=clock,
                            cache_dir=tmp_path / "cache", prompter=AutoPrompter())


def request(action_type, filename="", content="", value="", **extra):
    return ActionRequest(action_type=action_type, target_filename=filename,
                         target_content=content, control_value=value, extra=extra)


def today_contents(service):
    section = next(s for s in service.state.sections if s.section_code == SectionCode.TODAY)
    return [item.para.content for item in section.items]


class TestResolveTargetPeriod:

    def test_today_shorthand(self):
        assert resolve_target_period("t", date(2024, 5, 1)) == "2024-05-01"
        assert resolve_target_period("today", date(2024, 5, 1), use_today_date=True) == "today"

    def test_offsets_and_literals(self):
        assert resolve_target_period("+2d", date(2024, 5, 1)) == "2024-05-03"
        assert resolve_target_period("1w", date(2024, 5, 1)) == "2024-W19"
        assert resolve_target_period("2024-Q3", date(2024, 5, 1)) == "2024-Q3"

    def test_garbage_rejected(self):
        with pytest.raises(InvalidInputError):
            resolve_target_period("next blue moon", date(2024, 5, 1))


class TestDispatch:
    """Tests for request dispatch and result bookkeeping."""

    @pytest.mark.asyncio
    async def test_unknown_action(self, service):
        result = await service.handle_action(request("launchRocket"))
        assert not result.success
        assert result.state == ActionState.FAILED

    @pytest.mark.asyncio
    async def test_missing_target_rejected(self, service):
        result = await service.handle_action(request("completeTask"))
        assert not result.success
        assert result.actions == []

    @pytest.mark.asyncio
    async def test_audit_line_logged(self, service, caplog):
        caplog.set_level(logging.INFO, logger="dashboard.actions")
        await service.bridge.handle(request("completeTask", "20240501.md", "Write report"), apply=False)
        audit = [json.loads(r.getMessage()) for r in caplog.records
                 if r.name == "dashboard.actions" and r.getMessage().startswith("{")]
        assert audit[-1]["action"] == "completeTask"
        assert audit[-1]["outcome"] == "success"

    def test_request_from_dict(self):
        req = ActionRequest.from_dict({"action_type": "refresh", "section_codes": None, "extra": None})
        assert req.section_codes == []
        assert req.extra == {}

    def test_result_to_dict(self):
        result = HandlerResult.ok([ActionDirective.REFRESH_ALL_SECTIONS],
                                  section_codes=[SectionCode.TODAY])
        data = result.to_dict()
        assert data["actions"] == ["refreshAllSections"]
        assert data["section_codes"] == ["DT"]


class TestSingleItem:
    """Tests for edits to one line."""

    @pytest.mark.asyncio
    async def test_complete(self, service, store):
        result = await service.bridge.handle(
            request("completeTask", "20240501.md", "Write report"), apply=False)
        assert result.success
        assert result.state == ActionState.SUCCESS
        assert result.actions == [ActionDirective.REMOVE_LINE_FROM_JSON,
                                  ActionDirective.START_DELAYED_REFRESH_TIMER]
        assert "* [x] Write report @done(2024-05-01 10:00 AM)" in store.text_of("20240501.md")

    @pytest.mark.asyncio
    async def test_complete_keeps_unsaved_editor_text(self, service, store):
        """Completing an item in the open note doesn't drop lines typed since the last save."""
        store.editor.open("20240501.md", TODAY_TEXT + "* Typed just now\n", NOW)
        result = await service.bridge.handle(
            request("completeTask", "20240501.md", "Write report"), apply=False)
        assert result.success
        assert "* [x] Write report @done(2024-05-01 10:00 AM)" in store.editor.text
        assert store.editor.text.endswith("* Typed just now\n")
        assert store.text_of("20240501.md") == store.editor.text

    @pytest.mark.asyncio
    async def test_complete_keeps_marker_and_indent(self, service, store):
        store.add_note("Work/List.md", "# List\n    - [ ] Ship it\n")
        await service.bridge.handle(request("completeTask", "Work/List.md", "Ship it"), apply=False)
        assert store.text_of("Work/List.md") == "# List\n    - [x] Ship it @done(2024-05-01 10:00 AM)\n"

    @pytest.mark.asyncio
    async def test_complete_checklist(self, service, store):
        await service.bridge.handle(
            request("completeChecklist", "20240501.md", "Gather numbers"), apply=False)
        assert "\t+ [x] Gather numbers @done(2024-05-01 10:00 AM)" in store.text_of("20240501.md")

    @pytest.mark.asyncio
    async def test_complete_then_uses_due_date(self, service, store):
        await service.bridge.handle(request("completeTaskThen", "20240425.md", "Old task"), apply=False)
        assert store.text_of("20240425.md") == "* [x] Old task @done(2024-04-25 10:00 AM)\n"

    @pytest.mark.asyncio
    async def test_cancel(self, service, store):
        await service.bridge.handle(request("cancelTask", "20240501.md", "Write report"), apply=False)
        assert "* [-] Write report" in store.text_of("20240501.md")

    @pytest.mark.asyncio
    async def test_delete(self, service, store):
        await service.bridge.handle(request("deleteItem", "20240425.md", "Old task"), apply=False)
        assert store.text_of("20240425.md") == "\n"

    @pytest.mark.asyncio
    async def test_update_content_updates_state(self, service, store):
        await service.refresh_all("test")
        result = await service.handle_action(
            request("updateItemContent", "20240501.md", "Write report", "Write final report"))
        assert result.success
        assert "* Write final report" in store.text_of("20240501.md")
        assert "Write final report" in today_contents(service)

    @pytest.mark.asyncio
    async def test_update_content_empty(self, service, store):
        result = await service.handle_action(request("updateItemContent", "20240501.md", "Write report", "  "))
        assert not result.success
        assert store.text_of("20240501.md") == TODAY_TEXT

    @pytest.mark.asyncio
    async def test_toggle_type(self, service, store):
        req = request("toggleType", "20240501.md", "Write report")
        req.section_codes = ["DT"]
        result = await service.bridge.handle(req, apply=False)
        assert result.section_codes == [SectionCode.TODAY]
        assert "\n+ Write report\n" in store.text_of("20240501.md")

    @pytest.mark.asyncio
    async def test_toggle_done_item_rejected(self, service):
        result = await service.handle_action(
            request("toggleType", "20240501.md", "Pay rent @done(2024-05-01 08:00 AM)"))
        assert not result.success

    @pytest.mark.asyncio
    async def test_unschedule(self, service, store):
        await service.handle_action(request("unscheduleItem", "Work/Plan.md", "Send agenda >2024-05-01"))
        assert store.text_of("Work/Plan.md") == "# Plan\n* Send agenda\n"

    @pytest.mark.asyncio
    async def test_priority_up_updates_state(self, service, store):
        await service.refresh_all("test")
        result = await service.handle_action(
            request("cyclePriorityStateUp", "20240501.md", "!! Call the bank"))
        assert result.updated_para.priority == 3
        assert "* !!! Call the bank" in store.text_of("20240501.md")
        assert "!!! Call the bank" in today_contents(service)

    def test_priority_cycle_wraps(self):
        assert cycle_priority("Task") == "! Task"
        assert cycle_priority(">> Task") == "Task"
        assert cycle_priority("Task", up=False) == ">> Task"
        assert cycle_priority("! Task", up=False) == "Task"


class TestAdding:
    """Tests for adding new items."""

    @pytest.mark.asyncio
    async def test_add_under_heading(self, service, store):
        result = await service.bridge.handle(
            request("addTask", "20240501.md", content="Buy milk"), apply=False)
        assert result.success
        assert store.text_of("20240501.md") == TODAY_TEXT + "* Buy milk\n"

    @pytest.mark.asyncio
    async def test_add_creates_note_and_heading(self, service, store):
        await service.bridge.handle(request("addChecklist", "20240502.md", content="Pack"), apply=False)
        assert store.text_of("20240502.md") == "## Tasks\n+ Pack\n"

    @pytest.mark.asyncio
    async def test_add_asks_for_text(self, service, store):
        service.bridge.prompter = AutoPrompter(answers=["Asked for"])
        await service.bridge.handle(request("addTask", "20240425.md"), apply=False)
        assert "* Asked for" in store.text_of("20240425.md")

    @pytest.mark.asyncio
    async def test_add_cancelled(self, service, store):
        result = await service.bridge.handle(request("addTask", "20240425.md"), apply=False)
        assert not result.success
        assert store.text_of("20240425.md") == "* Old task\n"


class TestReschedule:
    """Tests for rescheduling versus moving."""

    @pytest.mark.asyncio
    async def test_missing_line_leaves_note_unchanged(self, service, store):
        """A reschedule for content that isn't in the note fails without writing."""
        result = await service.handle_action(
            request("rescheduleItem", "20240501.md", "Not in this note", "2024-05-03"))
        assert result.success is False
        assert result.state == ActionState.FAILED
        assert store.text_of("20240501.md") == TODAY_TEXT

    @pytest.mark.asyncio
    async def test_bad_date_leaves_note_unchanged(self, service, store):
        result = await service.handle_action(
            request("rescheduleItem", "20240501.md", "Write report", "someday soon"))
        assert not result.success
        assert store.text_of("20240501.md") == TODAY_TEXT

    @pytest.mark.asyncio
    async def test_reschedule_in_place(self, service, store):
        await service.refresh_all("test")
        result = await service.handle_action(
            request("rescheduleItem", "20240501.md", "Write report", "+2d"))
        assert result.success
        assert result.payload == {"target_filename": "20240501.md", "period": "2024-05-03"}
        assert "* Write report >2024-05-03" in store.text_of("20240501.md")
        assert "Write report >2024-05-03" not in today_contents(service)

    @pytest.mark.asyncio
    async def test_move_when_requested(self, service, store):
        result = await service.bridge.handle(
            request("rescheduleItem", "20240501.md", "Write report", "2024-05-03", reschedule=False),
            apply=False)
        assert result.payload["target_filename"] == "20240503.md"
        assert store.text_of("20240503.md") == "## Tasks\n* Write report\n\t+ Gather numbers\n"
        assert "Write report" not in store.text_of("20240501.md")
        assert "Gather numbers" not in store.text_of("20240501.md")

    @pytest.mark.asyncio
    async def test_setting_chooses_move(self, service, store):
        service.perspectives.update_settings({"reschedule_not_move": False, "move_sub_items": False})
        await service.bridge.handle(
            request("rescheduleItem", "20240501.md", "!! Call the bank", "2024-05-03"), apply=False)
        assert store.text_of("20240503.md") == "## Tasks\n* !! Call the bank\n"

    @pytest.mark.asyncio
    async def test_project_notes_always_reschedule(self, service, store):
        await service.bridge.handle(
            request("rescheduleItem", "Work/Plan.md", "Send agenda >2024-05-01", "2024-05-03",
                    reschedule=False),
            apply=False)
        assert store.text_of("Work/Plan.md") == "# Plan\n* Send agenda >2024-05-03\n"
        assert store.text_of("20240503.md") is None

    @pytest.mark.asyncio
    async def test_move_cal_to_cal(self, service, store):
        result = await service.bridge.handle(
            request("moveFromCalToCal", "20240425.md", "Old task", "t"), apply=False)
        assert result.success
        assert store.text_of("20240425.md") == "\n"
        assert store.text_of("20240501.md").endswith("* Old task\n")

    @pytest.mark.asyncio
    async def test_move_cal_to_cal_rejects_project_note(self, service, store):
        result = await service.handle_action(
            request("moveFromCalToCal", "Work/Plan.md", "Send agenda >2024-05-01", "t"))
        assert not result.success
        assert store.text_of("Work/Plan.md") == "# Plan\n* Send agenda >2024-05-01\n"

    @pytest.mark.asyncio
    async def test_move_to_note(self, service, store):
        await service.bridge.handle(
            request("moveToNote", "20240501.md", "Write report", "Work/Plan.md"), apply=False)
        assert store.text_of("Work/Plan.md") == (
            "# Plan\n* Send agenda >2024-05-01\n\n## Tasks\n* Write report\n\t+ Gather numbers\n"
        )

    @pytest.mark.asyncio
    async def test_move_to_missing_note(self, service, store):
        result = await service.handle_action(
            request("moveToNote", "20240501.md", "Write report", "Nowhere.md"))
        assert not result.success
        assert store.text_of("20240501.md") == TODAY_TEXT


class TestBulkMoves:
    """Tests for the move-all and schedule-all actions."""

    @pytest.mark.asyncio
    async def test_dry_run_counts_top_level_items(self, service, store):
        result = await service.handle_action(request("moveAllTodayToTomorrow", dry_run=True))
        assert result.payload == {"count": 3}
        assert store.text_of("20240501.md") == TODAY_TEXT

    @pytest.mark.asyncio
    async def test_move_all_today_to_tomorrow(self, service, store):
        await service.refresh_all("test")
        result = await service.handle_action(request("moveAllTodayToTomorrow"))
        assert result.payload == {"count": 3, "moved": 3}
        assert result.section_codes == [SectionCode.TODAY, SectionCode.TOMORROW]
        text = store.text_of("20240501.md")
        assert "* Write report >2024-05-02" in text
        assert "* !! Call the bank >2024-05-02" in text
        assert store.text_of("Work/Plan.md") == "# Plan\n* Send agenda >2024-05-02\n"
        contents = today_contents(service)
        assert "Write report >2024-05-02" not in contents
        assert "Send agenda >2024-05-02" not in contents

    @pytest.mark.asyncio
    async def test_confirmation_declined(self, service, store):
        service.config.set("bulk_confirm_threshold", 2)
        result = await service.handle_action(request("moveAllTodayToTomorrow"))
        assert not result.success
        assert result.payload == {"count": 3}
        assert service.prompter.asked
        assert store.text_of("20240501.md") == TODAY_TEXT

    @pytest.mark.asyncio
    async def test_confirmed_up_front(self, service, store):
        service.config.set("bulk_confirm_threshold", 2)
        result = await service.handle_action(request("moveAllTodayToTomorrow", confirmed=True))
        assert result.payload["moved"] == 3
        assert service.prompter.asked == []

    @pytest.mark.asyncio
    async def test_schedule_overdue_today(self, service, store):
        result = await service.handle_action(request("scheduleAllOverdueToday"))
        assert result.payload == {"count": 1, "moved": 1}
        assert store.text_of("20240425.md") == "* Old task >2024-05-01\n"

    @pytest.mark.asyncio
    async def test_nothing_to_move(self, service):
        result = await service.handle_action(request("moveAllLastWeekThisWeek"))
        assert result.success
        assert result.payload == {"count": 0, "moved": 0}


class TestHostFailure:

    @pytest.mark.asyncio
    async def test_rejected_write_shows_banner(self, service, store):
        store.fail_writes = True
        result = await service.handle_action(request("completeTask", "20240501.md", "Write report"))
        assert not result.success
        assert result.actions == [ActionDirective.SHOW_ERROR_BANNER]
        assert "rejected" in service.state.error_message
        assert store.text_of("20240501.md") == TODAY_TEXT

    @pytest.mark.asyncio
    async def test_later_success_clears_banner(self, service, store):
        store.fail_writes = True
        await service.handle_action(request("completeTask", "20240501.md", "Write report"))
        assert service.state.error_message

        pushed = []

        async def record(state):
            pushed.append(state.error_message)

        service.set_notifier(record)
        store.fail_writes = False
        result = await service.handle_action(
            request("updateItemContent", "20240501.md", "Write report", "Write memo"))
        assert result.success
        assert service.state.error_message == ""
        assert pushed
        assert all(message == "" for message in pushed)


class TestRefreshAndSettings:

    @pytest.mark.asyncio
    async def test_refresh_some_needs_known_codes(self, service):
        result = await service.handle_action(request("refreshSomeSections", value="XX,YY"))
        assert not result.success

    @pytest.mark.asyncio
    async def test_refresh_some_from_value(self, service):
        result = await service.bridge.handle(request("refreshSomeSections", value="DT, W"), apply=False)
        assert result.section_codes == [SectionCode.TODAY, SectionCode.WEEK]

    @pytest.mark.asyncio
    async def test_settings_changed(self, service):
        result = await service.handle_action(
            request("settingsChanged", value=json.dumps({"show_month_section": False})))
        assert result.success
        assert service.perspectives.settings.show_month_section is False
        assert SectionCode.MONTH not in {s.section_code for s in service.state.sections}

    @pytest.mark.asyncio
    async def test_settings_changed_bad_json(self, service):
        result = await service.handle_action(request("settingsChanged", value="{oops"))
        assert not result.success


class TestPerspectiveActions:

    @pytest.mark.asyncio
    async def test_switch(self, service):
        result = await service.handle_action(request("switchToPerspective", value="Work"))
        assert result.success
        assert service.perspectives.active().name == "Work"
        assert service.state.sections
        assert service.state.dashboard_settings["active_perspective_name"] == "Work"

    @pytest.mark.asyncio
    async def test_switch_enters_mutating_state(self, service):
        with patch.object(service.bridge, "_mutating", wraps=service.bridge._mutating) as mutating:
            result = await service.bridge.handle(request("switchToPerspective", value="Home"), apply=False)
        assert result.success
        mutating.assert_called_once()
        assert service.bridge.state == ActionState.SUCCESS

    @pytest.mark.asyncio
    async def test_switch_unknown(self, service):
        result = await service.handle_action(request("switchToPerspective", value="Nope"))
        assert not result.success
        assert service.perspectives.active().name == "-"

    @pytest.mark.asyncio
    async def test_save_with_nothing_to_save(self, service):
        result = await service.handle_action(request("savePerspective"))
        assert not result.success
        assert result.message == "Nothing to save"

    @pytest.mark.asyncio
    async def test_add_and_rename(self, service):
        await service.handle_action(request("addNewPerspective", value="Focus"))
        await service.handle_action(request("renamePerspective", value="Focus", new_name="Deep Focus"))
        assert service.perspectives.active().name == "Deep Focus"

    @pytest.mark.asyncio
    async def test_delete_active(self, service):
        await service.handle_action(request("switchToPerspective", value="Home"))
        result = await service.handle_action(request("deletePerspective", value="Home"))
        assert result.actions == [ActionDirective.PERSPECTIVE_CHANGED]
        assert service.perspectives.active().name == "-"
        assert [p["name"] for p in result.payload["perspectives"]] == ["-", "Work"]
