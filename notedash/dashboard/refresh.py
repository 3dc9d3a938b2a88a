"""
Refresh/merge engine.

Keeps the live DashboardState, regenerates sections on request and merges
partial results into the existing list. Every state change is pushed to an
optional notifier (the websocket manager in the server).
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Union
import asyncio
import logging

from notedash.core.config import Config
from notedash.core.dates import calc_offset_period_str, filename_for_period
from notedash.dashboard.done_counts import DoneCountCache
from notedash.dashboard.generators import CalendarPeriodGenerator, SectionGenerator
from notedash.dashboard.models import (
    CALENDAR_CODES, DISPLAY_ORDER, GENERATION_ORDER, LineProjection, Section, SectionCode,
    to_section_codes,
)
from notedash.dashboard.perspectives import PerspectiveStore

Notifier = Callable[['DashboardState'], Awaitable[None]]

_DISPLAY_RANK = {code: rank for rank, code in enumerate(DISPLAY_ORDER)}


@dataclass
class DashboardState:
    """The JSON state blob handed to the UI"""
    sections: List[Section] = field(default_factory=list)
    perspective_settings: List[Dict[str, Any]] = field(default_factory=list)
    dashboard_settings: Dict[str, Any] = field(default_factory=dict)
    total_done_count: int = 0
    refreshing: Union[bool, List[str]] = False
    last_full_refresh: Optional[datetime] = None
    error_message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sections": [s.to_dict() for s in self.sections],
            "perspectiveSettings": self.perspective_settings,
            "dashboardSettings": self.dashboard_settings,
            "totalDoneCount": self.total_done_count,
            "refreshing": self.refreshing,
            "lastFullRefresh": self.last_full_refresh.isoformat() if self.last_full_refresh else None,
            "errorMessage": self.error_message,
        }


def merge_sections(old: Sequence[Section], new: Sequence[Section]) -> List[Section]:
    """
    Replace every old section whose code appears in new.

    Sections of other codes keep their identity. The result is stably
    ordered by display rank, so referenced twins stay after their primary
    and tag sections keep the order of tags_to_show.
    """
    replaced = {s.section_code for s in new}
    merged = [s for s in old if s.section_code not in replaced] + list(new)
    return sorted(merged, key=lambda s: _DISPLAY_RANK.get(s.section_code, len(_DISPLAY_RANK)))


def replace_item(sections: Sequence[Section], filename: str, old_content: str,
                 new_para: LineProjection) -> List[Section]:
    """New section list where matching items show new_para; untouched sections are kept as-is"""
    result = []
    for section in sections:
        if not any(_matches(item, filename, old_content) for item in section.items):
            result.append(section)
            continue
        items = [
            replace(item, para=new_para) if _matches(item, filename, old_content) else item
            for item in section.items
        ]
        result.append(replace(section, items=items))
    return result


def remove_item(sections: Sequence[Section], filename: str, content: str) -> List[Section]:
    """New section list without the matching items (and their children)"""
    result = []
    for section in sections:
        removed_ids = {item.id for item in section.items if _matches(item, filename, content)}
        if not removed_ids:
            result.append(section)
            continue
        items = []
        for item in section.items:
            if item.id in removed_ids or item.parent_id in removed_ids:
                removed_ids.add(item.id)
                continue
            items.append(item)
        total = section.total_count
        if total is not None:
            total = max(0, total - (len(section.items) - len(items)))
        result.append(replace(section, items=items, total_count=total))
    return result


def _matches(item, filename: str, content: str) -> bool:
    return item.para is not None and item.para.filename == filename and item.para.content == content


class RefreshEngine:
    """
    Regenerates sections and maintains the live state.

    Usage:
        engine = RefreshEngine(generators, perspectives, done_counts, config)
        await engine.refresh_all()
        await engine.refresh_some([SectionCode.TODAY])
    """

    def __init__(
        self,
        generators: Dict[SectionCode, SectionGenerator],
        perspectives: PerspectiveStore,
        done_counts: Optional[DoneCountCache],
        config: Config,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = datetime.now,
        use_demo_data: bool = False,
    ):
        self.generators = generators
        self.perspectives = perspectives
        self.done_counts = done_counts
        self.config = config
        self.notifier = notifier
        self.clock = clock
        self.use_demo_data = use_demo_data
        self.state = DashboardState()
        self.logger = logging.getLogger("dashboard.refresh")
        self._delayed_task: Optional[asyncio.Task] = None
        self._sync_settings()

    # =========================================================================
    # State helpers
    # =========================================================================

    def _sync_settings(self) -> None:
        self.state.perspective_settings = self.perspectives.to_list()
        self.state.dashboard_settings = self.perspectives.settings.to_dict()

    async def push(self) -> None:
        """Send the current state to the notifier, if any"""
        self._sync_settings()
        if self.notifier is None:
            return
        try:
            await self.notifier(self.state)
        except Exception as e:
            self.logger.error(f"Error pushing dashboard state: {e}", exc_info=True)

    async def show_error(self, message: str) -> None:
        self.state.error_message = message
        await self.push()

    async def reset_sections(self) -> None:
        """Drop every cached section (after a perspective change)"""
        self.state.sections = []
        await self.push()

    def enabled_codes(self) -> List[SectionCode]:
        settings = self.perspectives.settings
        return [
            code for code in GENERATION_ORDER
            if code in self.generators and self.generators[code].is_enabled(settings)
        ]

    async def generate(self, codes: Iterable[SectionCode]) -> List[Section]:
        """Generate the requested sections in generation order"""
        settings = self.perspectives.settings.copy()
        wanted = set(codes)
        sections: List[Section] = []
        for code in GENERATION_ORDER:
            if code not in wanted or code not in self.generators:
                continue
            generator = self.generators[code]
            if not generator.is_enabled(settings):
                self.logger.debug(f"Skipping disabled section {code.value}")
                continue
            sections.extend(await generator.generate(settings, self.use_demo_data))
        return sections

    # =========================================================================
    # Refresh operations
    # =========================================================================

    async def refresh_all(self, reason: str = "") -> List[Section]:
        """Regenerate every enabled section and replace the whole list"""
        self.logger.info(f"Refreshing all sections ({reason or 'no reason given'})")
        self.state.refreshing = True
        self.state.error_message = ""
        await self.push()
        try:
            sections = await self.generate(self.enabled_codes())
            self.state.sections = merge_sections([], sections)
            self.state.last_full_refresh = self.clock()
            if self.done_counts is not None and self.config.get("done_dates_available", default=True):
                self.state.total_done_count = await self.done_counts.refresh_cache(reason or "refresh all")
        except Exception as e:
            self.logger.error(f"Error refreshing all sections: {e}", exc_info=True)
            self.state.error_message = f"Refresh failed: {e}"
        finally:
            self.state.refreshing = False
        await self.push()
        return self.state.sections

    async def refresh_some(self, codes: Iterable[Any]) -> List[Section]:
        """Regenerate only the named sections and merge them into the live list"""
        wanted = to_section_codes(codes)
        if not wanted:
            return self.state.sections
        self.logger.info(f"Refreshing sections {[c.value for c in wanted]}")
        self.state.refreshing = [c.value for c in wanted]
        self.state.error_message = ""
        await self.push()
        try:
            new_sections = await self.generate(wanted)
            sections = self.state.sections
            # Disabled sections must disappear even though nothing replaces them
            enabled = set(self.enabled_codes())
            sections = [s for s in sections if s.section_code not in wanted or s.section_code in enabled]
            self.state.sections = merge_sections(sections, new_sections)
        except Exception as e:
            self.logger.error(f"Error refreshing sections {wanted}: {e}", exc_info=True)
            self.state.error_message = f"Refresh failed: {e}"
        finally:
            self.state.refreshing = False
        await self.push()
        return self.state.sections

    async def incremental_refresh(self, codes: Iterable[Any]) -> List[Section]:
        """Refresh one section at a time so each appears as soon as it is ready"""
        for code in to_section_codes(codes):
            await self.refresh_some([code])
        return self.state.sections

    async def on_foreground(self) -> List[Section]:
        """Window came back to the front: Today and tags change most often"""
        return await self.incremental_refresh([SectionCode.TODAY, SectionCode.TAG])

    def codes_for_filename(self, filename: str) -> List[SectionCode]:
        """Calendar section codes whose current note is filename"""
        today = self.clock().date()
        codes = []
        for code in CALENDAR_CODES:
            generator = self.generators.get(code)
            if not isinstance(generator, CalendarPeriodGenerator):
                continue
            spec = generator.spec
            period = calc_offset_period_str(today, f"{spec.offset}{spec.unit}")
            if filename_for_period(period) == filename:
                codes.append(code)
        return codes

    async def on_document_saved(self, filename: str) -> List[Section]:
        """A note was saved in the editor"""
        if self.done_counts is not None:
            self.done_counts.invalidate(filename)
        codes = self.codes_for_filename(filename)
        if codes:
            return await self.refresh_some(codes)
        return await self.refresh_all(f"saved {filename}")

    def start_delayed_refresh(self, delay: Optional[float] = None) -> asyncio.Task:
        """Schedule one full refresh after a pause; reuses a timer that is already pending"""
        if self._delayed_task is not None and not self._delayed_task.done():
            return self._delayed_task
        if delay is None:
            delay = float(self.config.get("delayed_refresh_seconds", default=5.0))
        self._delayed_task = asyncio.get_running_loop().create_task(self._delayed_refresh(delay))
        return self._delayed_task

    async def _delayed_refresh(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.refresh_all("delayed refresh")

    def apply_item_update(self, filename: str, old_content: str, new_para: LineProjection) -> None:
        self.state.sections = replace_item(self.state.sections, filename, old_content, new_para)

    def apply_item_removal(self, filename: str, content: str) -> None:
        self.state.sections = remove_item(self.state.sections, filename, content)
