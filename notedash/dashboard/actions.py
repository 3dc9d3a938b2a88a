"""
Action bridge: turns UI requests into note edits plus refresh directives.

Every request names its target line by (filename, content). A handler
validates first, then mutates, and returns a HandlerResult listing the
ActionDirectives the consumer should carry out. The bridge applies those
directives to the live dashboard state after the handler returns.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
import json
import logging

from notedash.core.config import Config
from notedash.core.dates import (
    RE_DATE_INTERVAL, calc_offset_period_str, day_str, period_type,
    resolve_period,
)
from notedash.core.errors import HostFailureError, InvalidInputError, NotFoundError
from notedash.core.models import CALENDAR_NOTE, Line
from notedash.core.store import DocumentStore, Prompter
from notedash.dashboard import mutations
from notedash.dashboard.classifiers import Classifiers
from notedash.dashboard.done_counts import DoneCountCache
from notedash.dashboard.models import (
    CALENDAR_CODES, LineProjection, SectionCode, to_section_codes,
)
from notedash.dashboard.paragraphs import project_line
from notedash.dashboard.perspectives import PerspectiveStore
from notedash.dashboard.refresh import RefreshEngine
from notedash.dashboard.scan_sections import OverdueSectionGenerator
from notedash.dashboard.settings import DashboardSettings


class ActionDirective(str, Enum):
    """Closed set of instructions a handler can give the consumer"""
    UPDATE_LINE_IN_JSON = "updateItemInJSON"
    REMOVE_LINE_FROM_JSON = "removeItemFromJSON"
    REFRESH_SECTION_IN_JSON = "refreshSectionInJSON"
    REFRESH_ALL_SECTIONS = "refreshAllSections"
    REFRESH_ALL_ENABLED_SECTIONS = "refreshAllEnabledSections"
    REFRESH_ALL_CALENDAR_SECTIONS = "refreshAllCalendarSections"
    START_DELAYED_REFRESH_TIMER = "startDelayedRefreshTimer"
    PERSPECTIVE_CHANGED = "perspectiveChanged"
    SHOW_ERROR_BANNER = "showErrorBanner"


class ActionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    MUTATING = "mutating"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class ActionRequest:
    """
    One UI interaction.

    Attributes:
        action_type: Handler name, e.g. 'completeTask' or 'rescheduleItem'
        target_filename: Note holding the target line
        target_content: Exact content of the target line
        control_value: Handler-specific value (new date, new content, name, ...)
        section_codes: Sections the UI wants refreshed afterwards
        extra: Further handler-specific options
    """
    action_type: str
    target_filename: str = ""
    target_content: str = ""
    control_value: str = ""
    section_codes: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_type": self.action_type,
            "target_filename": self.target_filename,
            "target_content": self.target_content,
            "control_value": self.control_value,
            "section_codes": list(self.section_codes),
            "extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ActionRequest':
        return cls(
            action_type=data.get("action_type", ""),
            target_filename=data.get("target_filename") or "",
            target_content=data.get("target_content") or "",
            control_value=data.get("control_value") or "",
            section_codes=list(data.get("section_codes") or []),
            extra=dict(data.get("extra") or {}),
        )


@dataclass
class HandlerResult:
    """Outcome of one action request"""
    success: bool
    actions: List[ActionDirective] = field(default_factory=list)
    message: str = ""
    payload: Optional[Dict[str, Any]] = None
    section_codes: List[SectionCode] = field(default_factory=list)
    updated_para: Optional[LineProjection] = None
    state: ActionState = ActionState.IDLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "actions": [a.value for a in self.actions],
            "message": self.message,
            "payload": self.payload,
            "section_codes": [c.value for c in self.section_codes],
            "updated_para": self.updated_para.to_dict() if self.updated_para else None,
            "state": self.state.value,
        }

    @classmethod
    def ok(cls, actions: Optional[List[ActionDirective]] = None, message: str = "",
           payload: Optional[Dict[str, Any]] = None,
           section_codes: Optional[List[SectionCode]] = None,
           updated_para: Optional[LineProjection] = None) -> 'HandlerResult':
        """Factory method for successful results"""
        return cls(success=True, actions=list(actions or []), message=message, payload=payload,
                   section_codes=list(section_codes or []), updated_para=updated_para)

    @classmethod
    def failed(cls, message: str, payload: Optional[Dict[str, Any]] = None) -> 'HandlerResult':
        """Failure with no directives: nothing was changed"""
        return cls(success=False, message=message, payload=payload)

    @classmethod
    def host_failure(cls, message: str) -> 'HandlerResult':
        """Failure the user needs to see"""
        return cls(success=False, message=message, actions=[ActionDirective.SHOW_ERROR_BANNER])


def resolve_target_period(value: str, today, use_today_date: bool = False) -> str:
    """
    Period string for a reschedule/move control value.

    Accepts 't'/'today', a relative offset ('+2d', '1w', '-3b', ...) or a
    literal period ('2024-05-01', '2024-W18', '2024-05', '2024-Q2', '2024').

    Raises:
        InvalidInputError: for anything else
    """
    value = (value or "").strip()
    if value in ("t", "today"):
        return "today" if use_today_date else day_str(today)
    if RE_DATE_INTERVAL.match(value):
        return calc_offset_period_str(today, value)
    if period_type(value):
        return value
    raise InvalidInputError(f"Cannot understand date '{value}'")


# action -> (source section, target section, offset of the target period)
BULK_MOVES = {
    "moveAllTodayToTomorrow": (SectionCode.TODAY, SectionCode.TOMORROW, "+1d"),
    "moveAllYesterdayToToday": (SectionCode.YESTERDAY, SectionCode.TODAY, "0d"),
    "moveAllThisWeekNextWeek": (SectionCode.WEEK, SectionCode.WEEK, "+1w"),
    "moveAllLastWeekThisWeek": (SectionCode.LAST_WEEK, SectionCode.WEEK, "0w"),
}

Handler = Callable[[ActionRequest], Awaitable[HandlerResult]]


class ActionBridge:
    """
    Dispatches action requests to handlers and applies their directives.

    Usage:
        bridge = ActionBridge(store, engine, perspectives, config, prompter)
        result = await bridge.handle(ActionRequest("completeTask", "20240501.md", "Buy milk"))
    """

    def __init__(
        self,
        store: DocumentStore,
        engine: RefreshEngine,
        perspectives: PerspectiveStore,
        config: Config,
        prompter: Prompter,
        done_counts: Optional[DoneCountCache] = None,
        classifiers: Optional[Classifiers] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.engine = engine
        self.perspectives = perspectives
        self.config = config
        self.prompter = prompter
        self.done_counts = done_counts
        self.classifiers = classifiers or Classifiers()
        self.clock = clock
        self.state = ActionState.IDLE
        self.logger = logging.getLogger("dashboard.actions")

        self.handlers: Dict[str, Handler] = {
            "completeTask": self._handle_complete,
            "completeTaskThen": self._handle_complete_then,
            "cancelTask": self._handle_cancel,
            "completeChecklist": self._handle_complete,
            "cancelChecklist": self._handle_cancel,
            "deleteItem": self._handle_delete,
            "updateItemContent": self._handle_update_content,
            "toggleType": self._handle_toggle_type,
            "unscheduleItem": self._handle_unschedule,
            "cyclePriorityStateUp": self._handle_priority_up,
            "cyclePriorityStateDown": self._handle_priority_down,
            "addTask": self._handle_add_task,
            "addChecklist": self._handle_add_checklist,
            "rescheduleItem": self._handle_reschedule,
            "moveFromCalToCal": self._handle_move_cal_to_cal,
            "moveToNote": self._handle_move_to_note,
            "scheduleAllOverdueToday": self._handle_schedule_overdue_today,
            "refresh": self._handle_refresh,
            "refreshSomeSections": self._handle_refresh_some,
            "settingsChanged": self._handle_settings_changed,
            "addNewPerspective": self._handle_add_perspective,
            "copyPerspective": self._handle_copy_perspective,
            "deletePerspective": self._handle_delete_perspective,
            "renamePerspective": self._handle_rename_perspective,
            "savePerspective": self._handle_save_perspective,
            "switchToPerspective": self._handle_switch_perspective,
            "perspectiveSettingsChanged": self._handle_perspective_settings_changed,
        }
        for action_type in BULK_MOVES:
            self.handlers[action_type] = self._handle_bulk_move

    def get_supported_actions(self) -> List[str]:
        return sorted(self.handlers)

    @property
    def settings(self) -> DashboardSettings:
        return self.perspectives.settings

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def handle(self, request: ActionRequest, apply: bool = True) -> HandlerResult:
        """
        Run one request to completion.

        Args:
            request: The action request
            apply: Carry out the returned directives on the live state

        Returns:
            HandlerResult whose state is always SUCCESS or FAILED
        """
        self.state = ActionState.VALIDATING
        handler = self.handlers.get(request.action_type)
        if handler is None:
            result = HandlerResult.failed(f"Unknown action: {request.action_type}")
        else:
            try:
                result = await handler(request)
            except (NotFoundError, InvalidInputError) as e:
                self.logger.warning(f"{request.action_type} rejected: {e}")
                result = HandlerResult.failed(str(e))
            except HostFailureError as e:
                self.logger.error(f"{request.action_type} failed in the note store: {e}")
                result = HandlerResult.host_failure(str(e))
            except Exception as e:
                self.logger.error(f"Error processing {request.action_type}: {e}", exc_info=True)
                result = HandlerResult.host_failure(f"Failed to process {request.action_type}: {e}")

        self.state = ActionState.SUCCESS if result.success else ActionState.FAILED
        result.state = self.state
        self.log_action(request, result)

        if apply:
            if result.success:
                # A later success retires any earlier error banner
                self.engine.state.error_message = ""
            await self.apply(request, result)
        return result

    def log_action(self, request: ActionRequest, result: HandlerResult) -> None:
        """One JSON audit line per request"""
        self.logger.info(json.dumps({
            "action": request.action_type,
            "filename": request.target_filename,
            "outcome": result.state.value,
            "message": result.message,
            "timestamp": self.clock().isoformat(),
        }))

    async def apply(self, request: ActionRequest, result: HandlerResult) -> None:
        """Carry out a result's directives on the refresh engine"""
        engine = self.engine
        needs_push = False
        codes = result.section_codes or to_section_codes(request.section_codes)
        for directive in result.actions:
            if directive == ActionDirective.UPDATE_LINE_IN_JSON and result.updated_para is not None:
                engine.apply_item_update(request.target_filename, request.target_content, result.updated_para)
                needs_push = True
            elif directive == ActionDirective.REMOVE_LINE_FROM_JSON:
                engine.apply_item_removal(request.target_filename, request.target_content)
                needs_push = True
            elif directive == ActionDirective.REFRESH_SECTION_IN_JSON:
                await engine.refresh_some(codes)
            elif directive == ActionDirective.REFRESH_ALL_SECTIONS:
                await engine.refresh_all(request.action_type)
            elif directive == ActionDirective.REFRESH_ALL_ENABLED_SECTIONS:
                await engine.refresh_some(engine.enabled_codes())
            elif directive == ActionDirective.REFRESH_ALL_CALENDAR_SECTIONS:
                await engine.refresh_some(CALENDAR_CODES)
            elif directive == ActionDirective.START_DELAYED_REFRESH_TIMER:
                engine.start_delayed_refresh()
            elif directive == ActionDirective.PERSPECTIVE_CHANGED:
                await engine.reset_sections()
                await engine.refresh_all("perspective changed")
            elif directive == ActionDirective.SHOW_ERROR_BANNER:
                await engine.show_error(result.message)
        if needs_push:
            await engine.push()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_target(self, request: ActionRequest) -> None:
        if not request.target_filename or not request.target_content:
            raise InvalidInputError(f"{request.action_type} needs a target filename and content")

    async def _locate(self, request: ActionRequest) -> Tuple[Any, Line]:
        self._require_target(request)
        return await mutations.locate(self.store, request.target_filename, request.target_content)

    def _mutating(self) -> None:
        self.state = ActionState.MUTATING

    async def _invalidate(self, *filenames: str) -> None:
        for filename in filenames:
            await self.store.invalidate(filename)
            if self.done_counts is not None:
                self.done_counts.invalidate(filename)

    def _should_reschedule(self, note_type: str, request: ActionRequest) -> bool:
        """Project notes always reschedule; then the per-request flag; then the setting"""
        if note_type != CALENDAR_NOTE:
            return True
        if "reschedule" in request.extra:
            return bool(request.extra["reschedule"])
        return self.settings.reschedule_not_move

    async def _schedule_or_move(self, filename: str, content: str, note_type: str,
                                period_str: str, request: ActionRequest) -> str:
        settings = self.settings
        if self._should_reschedule(note_type, request):
            await mutations.reschedule_line(self.store, filename, content, period_str)
            return filename
        today = self.clock().date()
        return await mutations.move_to_period(
            self.store, filename, content, resolve_period(period_str, today),
            settings.new_task_section_heading, settings.new_task_section_heading_level,
            settings.move_sub_items,
        )

    def _projection(self, line: Line) -> LineProjection:
        return project_line(line, self.classifiers)

    # =========================================================================
    # Single-item handlers
    # =========================================================================

    async def _handle_complete(self, request: ActionRequest) -> HandlerResult:
        await self._locate(request)
        self._mutating()
        await mutations.complete_line(self.store, request.target_filename,
                                      request.target_content, self.clock())
        return HandlerResult.ok([ActionDirective.REMOVE_LINE_FROM_JSON,
                                 ActionDirective.START_DELAYED_REFRESH_TIMER])

    async def _handle_complete_then(self, request: ActionRequest) -> HandlerResult:
        """Complete with the done date set to the day the item was scheduled for"""
        _, line = await self._locate(request)
        now = self.clock()
        day = mutations.scheduled_day(line, self.classifiers.due_date(line)) or now.date()
        self._mutating()
        await mutations.complete_line(self.store, request.target_filename, request.target_content,
                                      datetime.combine(day, now.time()))
        return HandlerResult.ok([ActionDirective.REMOVE_LINE_FROM_JSON,
                                 ActionDirective.START_DELAYED_REFRESH_TIMER])

    async def _handle_cancel(self, request: ActionRequest) -> HandlerResult:
        await self._locate(request)
        self._mutating()
        await mutations.cancel_line(self.store, request.target_filename, request.target_content)
        return HandlerResult.ok([ActionDirective.REMOVE_LINE_FROM_JSON,
                                 ActionDirective.START_DELAYED_REFRESH_TIMER])

    async def _handle_delete(self, request: ActionRequest) -> HandlerResult:
        await self._locate(request)
        self._mutating()
        await mutations.delete_line(self.store, request.target_filename, request.target_content)
        return HandlerResult.ok([ActionDirective.REMOVE_LINE_FROM_JSON,
                                 ActionDirective.START_DELAYED_REFRESH_TIMER])

    async def _handle_update_content(self, request: ActionRequest) -> HandlerResult:
        new_content = (request.control_value or request.extra.get("content") or "").strip()
        if not new_content:
            raise InvalidInputError("New content cannot be empty")
        await self._locate(request)
        self._mutating()
        updated = await mutations.update_content(self.store, request.target_filename,
                                                 request.target_content, new_content)
        return HandlerResult.ok([ActionDirective.UPDATE_LINE_IN_JSON],
                                updated_para=self._projection(updated))

    async def _handle_toggle_type(self, request: ActionRequest) -> HandlerResult:
        await self._locate(request)
        self._mutating()
        await mutations.toggle_type(self.store, request.target_filename, request.target_content)
        return HandlerResult.ok([ActionDirective.REFRESH_SECTION_IN_JSON],
                                section_codes=to_section_codes(request.section_codes))

    async def _handle_unschedule(self, request: ActionRequest) -> HandlerResult:
        await self._locate(request)
        self._mutating()
        updated = await mutations.unschedule(self.store, request.target_filename, request.target_content)
        return HandlerResult.ok([ActionDirective.UPDATE_LINE_IN_JSON],
                                updated_para=self._projection(updated))

    async def _cycle_priority(self, request: ActionRequest, up: bool) -> HandlerResult:
        await self._locate(request)
        self._mutating()
        updated = await mutations.change_priority(self.store, request.target_filename,
                                                  request.target_content, up)
        return HandlerResult.ok([ActionDirective.UPDATE_LINE_IN_JSON],
                                updated_para=self._projection(updated))

    async def _handle_priority_up(self, request: ActionRequest) -> HandlerResult:
        return await self._cycle_priority(request, up=True)

    async def _handle_priority_down(self, request: ActionRequest) -> HandlerResult:
        return await self._cycle_priority(request, up=False)

    async def _add_item(self, request: ActionRequest, checklist: bool) -> HandlerResult:
        filename = request.target_filename or request.control_value
        if not filename:
            raise InvalidInputError("No note given to add to")
        kind = "checklist item" if checklist else "task"
        content = request.extra.get("content")
        if content is None:
            content = await self.prompter.ask(f"Add {kind} to {filename}")
            if content is None:
                return HandlerResult.failed("Cancelled")
        if not content.strip():
            raise InvalidInputError(f"The {kind} text cannot be empty")
        settings = self.settings
        heading = request.extra.get("heading", settings.new_task_section_heading)
        self._mutating()
        await mutations.add_item(self.store, filename, content, checklist,
                                 heading, settings.new_task_section_heading_level)
        await self._invalidate(filename)
        return HandlerResult.ok([ActionDirective.REFRESH_SECTION_IN_JSON,
                                 ActionDirective.START_DELAYED_REFRESH_TIMER],
                                section_codes=to_section_codes(request.section_codes))

    async def _handle_add_task(self, request: ActionRequest) -> HandlerResult:
        return await self._add_item(request, checklist=False)

    async def _handle_add_checklist(self, request: ActionRequest) -> HandlerResult:
        return await self._add_item(request, checklist=True)

    # =========================================================================
    # Moving
    # =========================================================================

    async def _handle_reschedule(self, request: ActionRequest) -> HandlerResult:
        self._require_target(request)
        period = resolve_target_period(request.control_value, self.clock().date(),
                                       self.settings.use_today_date)
        note, _ = await self._locate(request)
        self._mutating()
        target = await self._schedule_or_move(request.target_filename, request.target_content,
                                              note.type, period, request)
        await self._invalidate(request.target_filename, target)
        return HandlerResult.ok([ActionDirective.REMOVE_LINE_FROM_JSON,
                                 ActionDirective.REFRESH_ALL_ENABLED_SECTIONS],
                                payload={"target_filename": target, "period": period})

    async def _handle_move_cal_to_cal(self, request: ActionRequest) -> HandlerResult:
        self._require_target(request)
        today = self.clock().date()
        period = resolve_period(resolve_target_period(request.control_value, today), today)
        note, _ = await self._locate(request)
        if not note.is_calendar:
            raise InvalidInputError(f"'{request.target_filename}' is not a calendar note")
        settings = self.settings
        self._mutating()
        target = await mutations.move_to_period(
            self.store, request.target_filename, request.target_content, period,
            settings.new_task_section_heading, settings.new_task_section_heading_level,
            settings.move_sub_items,
        )
        await self._invalidate(request.target_filename, target)
        return HandlerResult.ok([ActionDirective.REFRESH_ALL_CALENDAR_SECTIONS,
                                 ActionDirective.START_DELAYED_REFRESH_TIMER],
                                payload={"target_filename": target})

    async def _handle_move_to_note(self, request: ActionRequest) -> HandlerResult:
        self._require_target(request)
        target = request.control_value or request.extra.get("target_filename")
        if not target:
            candidates = [n.filename for n in await self.store.list_notes()
                          if n.filename != request.target_filename]
            target = await self.prompter.choose("Move to which note?", candidates)
            if target is None:
                return HandlerResult.failed("Cancelled")
        if await self.store.get_note(target, prefer_live=False) is None:
            raise NotFoundError(f"Note '{target}' not found")
        await self._locate(request)
        settings = self.settings
        heading = request.extra.get("heading", settings.new_task_section_heading)
        self._mutating()
        await mutations.move_line(self.store, request.target_filename, request.target_content,
                                  target, heading, settings.new_task_section_heading_level,
                                  settings.move_sub_items)
        await self._invalidate(request.target_filename, target)
        return HandlerResult.ok([ActionDirective.REMOVE_LINE_FROM_JSON,
                                 ActionDirective.START_DELAYED_REFRESH_TIMER],
                                payload={"target_filename": target})

    # =========================================================================
    # Bulk moves
    # =========================================================================

    async def _section_lines(self, code: SectionCode) -> List[LineProjection]:
        """Top-level items currently shown for a code, regenerating when none are cached"""
        sections = [s for s in self.engine.state.sections if s.section_code == code]
        if not sections and code in self.engine.generators:
            sections = await self.engine.generators[code].generate(self.settings.copy())
        return [
            item.para for section in sections for item in section.items
            if item.para is not None and item.parent_id is None
        ]

    async def _confirm_bulk(self, request: ActionRequest, count: int, description: str) -> bool:
        threshold = int(self.config.get("bulk_confirm_threshold", default=20))
        if count <= threshold or request.extra.get("confirmed"):
            return True
        return await self.prompter.confirm(f"{description}: {count} items. Continue?")

    async def _bulk_apply(self, request: ActionRequest, paras: List[LineProjection],
                          period: str, description: str,
                          section_codes: List[SectionCode]) -> HandlerResult:
        count = len(paras)
        if request.extra.get("dry_run"):
            return HandlerResult.ok(payload={"count": count}, message=f"{description}: {count} items")
        if count == 0:
            return HandlerResult.ok(payload={"count": 0, "moved": 0}, message="Nothing to move")
        if not await self._confirm_bulk(request, count, description):
            return HandlerResult.failed("Cancelled", payload={"count": count})

        self._mutating()
        moved = 0
        touched = set()
        for para in paras:
            try:
                target = await self._schedule_or_move(para.filename, para.content, para.note_type,
                                                      period, request)
            except NotFoundError as e:
                self.logger.warning(f"Skipping item during {request.action_type}: {e}")
                continue
            moved += 1
            touched.update((para.filename, target))
        await self._invalidate(*sorted(touched))
        self.logger.info(f"{request.action_type}: {moved} of {count} items done")
        return HandlerResult.ok([ActionDirective.REFRESH_SECTION_IN_JSON],
                                message=f"{description}: {moved} of {count} items",
                                payload={"count": count, "moved": moved},
                                section_codes=section_codes)

    async def _handle_bulk_move(self, request: ActionRequest) -> HandlerResult:
        source, target_code, offset = BULK_MOVES[request.action_type]
        today = self.clock().date()
        period = calc_offset_period_str(today, offset)
        if offset == "0d" and self.settings.use_today_date:
            period = "today"
        paras = await self._section_lines(source)
        codes = [source] if source == target_code else [source, target_code]
        return await self._bulk_apply(request, paras, period,
                                      f"Move to {resolve_period(period, today)}", codes)

    async def _handle_schedule_overdue_today(self, request: ActionRequest) -> HandlerResult:
        generator = self.engine.generators.get(SectionCode.OVERDUE)
        if not isinstance(generator, OverdueSectionGenerator):
            generator = OverdueSectionGenerator(self.store, self.classifiers, clock=self.clock)
        lines = await generator.overdue_lines(self.store, self.settings.copy())
        paras = [self._projection(line) for line in lines]
        period = "today" if self.settings.use_today_date else day_str(self.clock().date())
        return await self._bulk_apply(request, paras, period, "Schedule overdue to today",
                                      [SectionCode.OVERDUE, SectionCode.TODAY])

    # =========================================================================
    # Refresh and settings
    # =========================================================================

    async def _handle_refresh(self, request: ActionRequest) -> HandlerResult:
        return HandlerResult.ok([ActionDirective.REFRESH_ALL_SECTIONS])

    async def _handle_refresh_some(self, request: ActionRequest) -> HandlerResult:
        raw = request.section_codes or [c.strip() for c in request.control_value.split(",")]
        codes = to_section_codes(raw)
        if not codes:
            raise InvalidInputError(f"No known section codes in {raw!r}")
        return HandlerResult.ok([ActionDirective.REFRESH_SECTION_IN_JSON], section_codes=codes)

    async def _handle_settings_changed(self, request: ActionRequest) -> HandlerResult:
        changes = request.extra.get("settings")
        if changes is None and request.control_value:
            try:
                changes = json.loads(request.control_value)
            except json.JSONDecodeError as e:
                raise InvalidInputError(f"Settings are not valid JSON: {e}")
        if not isinstance(changes, dict):
            raise InvalidInputError("settingsChanged needs a settings object")
        self._mutating()
        self.perspectives.update_settings(changes)
        return HandlerResult.ok([ActionDirective.REFRESH_ALL_SECTIONS])

    # =========================================================================
    # Perspectives
    # =========================================================================

    async def _name_from(self, request: ActionRequest, key: str, question: str) -> Optional[str]:
        name = request.extra.get(key)
        if name is None:
            name = await self.prompter.ask(question)
        return name

    def _perspective_payload(self) -> Dict[str, Any]:
        return {"perspectives": self.perspectives.to_list()}

    async def _handle_add_perspective(self, request: ActionRequest) -> HandlerResult:
        name = request.control_value or await self._name_from(request, "name", "Name of new perspective")
        if name is None:
            return HandlerResult.failed("Cancelled")
        self._mutating()
        self.perspectives.add(name)
        return HandlerResult.ok(payload=self._perspective_payload())

    async def _handle_copy_perspective(self, request: ActionRequest) -> HandlerResult:
        source = request.control_value or self.perspectives.active().name
        new_name = await self._name_from(request, "new_name", f"Name for the copy of '{source}'")
        if new_name is None:
            return HandlerResult.failed("Cancelled")
        self._mutating()
        self.perspectives.copy(source, new_name)
        return HandlerResult.ok(payload=self._perspective_payload())

    async def _handle_delete_perspective(self, request: ActionRequest) -> HandlerResult:
        name = request.control_value or self.perspectives.active().name
        self._mutating()
        was_active = self.perspectives.delete(name)
        actions = [ActionDirective.PERSPECTIVE_CHANGED] if was_active else []
        return HandlerResult.ok(actions, payload=self._perspective_payload())

    async def _handle_rename_perspective(self, request: ActionRequest) -> HandlerResult:
        old = request.control_value or self.perspectives.active().name
        new_name = await self._name_from(request, "new_name", f"New name for '{old}'")
        if new_name is None:
            return HandlerResult.failed("Cancelled")
        self._mutating()
        self.perspectives.rename(old, new_name)
        return HandlerResult.ok(payload=self._perspective_payload())

    async def _handle_save_perspective(self, request: ActionRequest) -> HandlerResult:
        self._mutating()
        if not self.perspectives.save():
            return HandlerResult.failed("Nothing to save", payload=self._perspective_payload())
        return HandlerResult.ok(payload=self._perspective_payload())

    async def _handle_switch_perspective(self, request: ActionRequest) -> HandlerResult:
        name = request.control_value
        if not name:
            raise InvalidInputError("No perspective name given")
        self._mutating()
        self.perspectives.switch_to(name)
        return HandlerResult.ok([ActionDirective.PERSPECTIVE_CHANGED], payload=self._perspective_payload())

    async def _handle_perspective_settings_changed(self, request: ActionRequest) -> HandlerResult:
        entries = request.extra.get("perspectives")
        if not isinstance(entries, list):
            raise InvalidInputError("perspectiveSettingsChanged needs a list of perspectives")
        before = self.perspectives.active().name
        self._mutating()
        self.perspectives.replace_all(entries)
        after = self.perspectives.active().name
        actions = []
        if after != before:
            self.perspectives.switch_to(after)
            actions.append(ActionDirective.PERSPECTIVE_CHANGED)
        return HandlerResult.ok(actions, payload=self._perspective_payload())
