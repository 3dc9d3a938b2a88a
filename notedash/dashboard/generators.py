"""
Section generators.

Each generator produces the Section(s) for one section code. They share the
same entry point, generate(), which never raises: any failure is logged and
turned into an empty list so one broken section cannot abort a refresh.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional
import logging
import time

from notedash.core.dates import calc_offset_period_str, filename_for_period
from notedash.core.store import DocumentStore
from notedash.dashboard.classifiers import Classifiers
from notedash.dashboard.demo import demo_store
from notedash.dashboard.done_counts import DoneCountCache
from notedash.dashboard.models import (
    ActionButton, ItemType, ProjectProjection, Section, SectionCode, SectionItem,
)
from notedash.dashboard.paragraphs import (
    get_open_items_for_period, is_filename_allowed, make_section_items,
)
from notedash.dashboard.projects import NoteMetadataReviewSource, ProjectReviewSource
from notedash.dashboard.settings import DashboardSettings

CALENDAR_SORT = ["-priority", "timeStr"]


class SectionGenerator(ABC):
    """
    Abstract base class for all section generators.

    Subclasses implement _generate(); the base class handles demo data,
    logging, timing and error containment.
    """

    section_code: SectionCode
    show_setting_name: str = ""

    def __init__(
        self,
        store: DocumentStore,
        classifiers: Optional[Classifiers] = None,
        done_counts: Optional[DoneCountCache] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the generator.

        Args:
            store: Document store to read notes from
            classifiers: Marker predicates (defaults to the standard set)
            done_counts: Done-count cache for calendar sections
            clock: Returns the current local time
        """
        self.store = store
        self.classifiers = classifiers or Classifiers()
        self.done_counts = done_counts
        self.clock = clock
        self.logger = logging.getLogger(f"dashboard.{self.section_code.value}")

    def is_enabled(self, settings: DashboardSettings) -> bool:
        """Whether the current settings ask for this section"""
        if not self.show_setting_name:
            return True
        return settings.is_section_enabled(self.show_setting_name)

    async def generate(self, settings: DashboardSettings, use_demo_data: bool = False,
                       prefer_live_buffer: bool = True) -> List[Section]:
        """
        Build this generator's section(s).

        Args:
            settings: Settings snapshot for this pass
            use_demo_data: Read from the built-in demo notes instead of the store
            prefer_live_buffer: Prefer the live editor buffer for the open note

        Returns:
            Generated sections, or [] if generation failed
        """
        started = time.perf_counter()
        self.logger.info(f"Generating {self.section_code.value} section data")
        store = demo_store(self.clock) if use_demo_data else self.store
        try:
            sections = await self._generate(store, settings, prefer_live_buffer, use_demo_data)
        except Exception as e:
            self.logger.error(f"Error generating {self.section_code.value} section: {e}", exc_info=True)
            return []
        self.logger.debug(
            f"{self.section_code.value}: {sum(len(s.items) for s in sections)} items "
            f"in {len(sections)} section(s) after {time.perf_counter() - started:.3f}s"
        )
        return sections

    @abstractmethod
    async def _generate(self, store: DocumentStore, settings: DashboardSettings,
                        prefer_live_buffer: bool, use_demo_data: bool) -> List[Section]:
        pass


@dataclass(frozen=True)
class PeriodSpec:
    """Static description of one calendar-period section"""
    code: SectionCode
    name: str
    unit: str              # offset unit: 'd', 'w', 'm' or 'q'
    offset: int            # periods from the current one
    section_num: str
    referenced_num: str
    show_setting_name: str
    note_kind: str         # 'daily', 'weekly', ...


PERIOD_SPECS = {
    SectionCode.TODAY: PeriodSpec(SectionCode.TODAY, "Today", "d", 0, "0", "1", "", "daily"),
    SectionCode.YESTERDAY: PeriodSpec(SectionCode.YESTERDAY, "Yesterday", "d", -1, "2", "3",
                                      "show_yesterday_section", "daily"),
    SectionCode.TOMORROW: PeriodSpec(SectionCode.TOMORROW, "Tomorrow", "d", 1, "4", "5",
                                     "show_tomorrow_section", "daily"),
    SectionCode.WEEK: PeriodSpec(SectionCode.WEEK, "This Week", "w", 0, "6", "7",
                                 "show_week_section", "weekly"),
    SectionCode.MONTH: PeriodSpec(SectionCode.MONTH, "This Month", "m", 0, "8", "9",
                                  "show_month_section", "monthly"),
    SectionCode.QUARTER: PeriodSpec(SectionCode.QUARTER, "This Quarter", "q", 0, "10", "11",
                                    "show_quarter_section", "quarterly"),
    SectionCode.LAST_WEEK: PeriodSpec(SectionCode.LAST_WEEK, "Last Week", "w", -1, "17", "18",
                                      "show_last_week_section", "weekly"),
}

_PERIOD_WORDS = {"d": "day", "w": "week", "m": "month", "q": "quarter"}


def _add_buttons(kind: str, filename: str, refresh: List[SectionCode]) -> List[ActionButton]:
    return [
        ActionButton(
            action_name="addTask",
            display=f"+ Task ({kind})",
            tooltip=f"Add a new task to {kind}'s note",
            action_param=filename,
            post_action_refresh=refresh,
        ),
        ActionButton(
            action_name="addChecklist",
            display=f"+ Checklist ({kind})",
            tooltip=f"Add a checklist item to {kind}'s note",
            action_param=filename,
            post_action_refresh=refresh,
        ),
    ]


def action_buttons_for(code: SectionCode, today) -> List[ActionButton]:
    """Quick-action buttons for a calendar section"""
    def fname(unit: str, offset: int) -> str:
        return filename_for_period(calc_offset_period_str(today, f"{offset}{unit}"))

    if code == SectionCode.TODAY:
        return (
            _add_buttons("today", fname("d", 0), [SectionCode.TODAY])
            + _add_buttons("tomorrow", fname("d", 1), [SectionCode.TOMORROW])
            + [ActionButton(
                action_name="moveAllTodayToTomorrow",
                display="All Today → Tomorrow",
                tooltip="Move or schedule all remaining open items to tomorrow",
                post_action_refresh=[SectionCode.TODAY, SectionCode.TOMORROW],
            )]
        )
    if code == SectionCode.YESTERDAY:
        return [ActionButton(
            action_name="moveAllYesterdayToToday",
            display="All Yesterday → Today",
            tooltip="Move or schedule all open items from yesterday to today",
            post_action_refresh=[SectionCode.YESTERDAY, SectionCode.TODAY],
        )]
    if code == SectionCode.TOMORROW:
        return _add_buttons("tomorrow", fname("d", 1), [SectionCode.TOMORROW])
    if code == SectionCode.WEEK:
        return (
            _add_buttons("this week", fname("w", 0), [SectionCode.WEEK])
            + _add_buttons("next week", fname("w", 1), [])
            + [ActionButton(
                action_name="moveAllThisWeekNextWeek",
                display="All → Next Week",
                tooltip="Move or schedule all open items from this week to next week",
                post_action_refresh=[SectionCode.WEEK],
            )]
        )
    if code == SectionCode.LAST_WEEK:
        return [ActionButton(
            action_name="moveAllLastWeekThisWeek",
            display="All Last Week → This Week",
            tooltip="Move or schedule all open items from last week to this week",
            post_action_refresh=[SectionCode.LAST_WEEK, SectionCode.WEEK],
        )]
    if code == SectionCode.MONTH:
        return (_add_buttons("this month", fname("m", 0), [SectionCode.MONTH])
                + _add_buttons("next month", fname("m", 1), []))
    if code == SectionCode.QUARTER:
        return (_add_buttons("this quarter", fname("q", 0), [SectionCode.QUARTER])
                + _add_buttons("next quarter", fname("q", 1), []))
    return []


class CalendarPeriodGenerator(SectionGenerator):
    """
    Open items from one calendar period's note (today, this week, ...).

    Produces the primary section and, when referenced items are kept
    separate, a '>Name' twin holding lines scheduled into the period from
    other notes.
    """

    def __init__(self, spec: PeriodSpec, store: DocumentStore,
                 classifiers: Optional[Classifiers] = None,
                 done_counts: Optional[DoneCountCache] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.spec = spec
        self.section_code = spec.code
        self.show_setting_name = spec.show_setting_name
        super().__init__(store, classifiers, done_counts, clock)

    def period_str(self) -> str:
        spec = self.spec
        return calc_offset_period_str(self.clock().date(), f"{spec.offset}{spec.unit}")

    async def _generate(self, store, settings, prefer_live_buffer, use_demo_data):
        spec = self.spec
        now = self.clock()
        period = self.period_str()
        filename = filename_for_period(period)
        buttons = action_buttons_for(spec.code, now.date())

        note, native, refs = await get_open_items_for_period(
            store, period, settings, self.classifiers, now.date(), prefer_live_buffer)

        if note is None:
            self.logger.debug(f"No {spec.note_kind} note for {period}")
            return [Section(
                id=spec.section_num,
                section_code=spec.code,
                name=spec.name,
                description=f"no {spec.note_kind} note for {period}",
                section_filename=filename,
                show_setting_name=spec.show_setting_name,
                total_count=0,
                generated_at=now,
                action_buttons=buttons,
            )]

        separate = settings.separate_section_for_referenced_notes
        primary_lines = native if separate else native + refs
        items = make_section_items(spec.section_num, primary_lines, self.classifiers, CALENDAR_SORT)

        done = None
        if self.done_counts is not None and not use_demo_data:
            done = await self.done_counts.done_counts_for(filename, prefer_live_buffer)

        sections = [Section(
            id=spec.section_num,
            section_code=spec.code,
            name=spec.name,
            items=items,
            description=f"{{count}} from {spec.note_kind} note {period}",
            section_filename=filename,
            show_setting_name=spec.show_setting_name,
            done_counts=done,
            total_count=len(items),
            generated_at=now,
            action_buttons=buttons,
        )]

        if separate:
            ref_items = make_section_items(spec.referenced_num, refs, self.classifiers, CALENDAR_SORT)
            sections.append(Section(
                id=spec.referenced_num,
                section_code=spec.code,
                name=f">{spec.name}",
                items=ref_items,
                description=f"{{count}} scheduled to {period} from other notes",
                section_filename=filename,
                show_setting_name=spec.show_setting_name,
                total_count=len(ref_items),
                generated_at=now,
                is_referenced=True,
            ))
        return sections


class TimeBlockGenerator(SectionGenerator):
    """Items in today's note (or scheduled to today) whose time block is running or still to come"""

    section_code = SectionCode.TIMEBLOCK
    show_setting_name = "show_timeblock_section"
    section_num = "16"

    async def _generate(self, store, settings, prefer_live_buffer, use_demo_data):
        now = self.clock()
        period = calc_offset_period_str(now.date(), "0d")
        # Time-block exclusions apply to the other sections, not this one
        tb_settings = settings.with_updates({
            "exclude_tasks_with_timeblocks": False,
            "exclude_checklists_with_timeblocks": False,
        })
        note, native, refs = await get_open_items_for_period(
            store, period, tb_settings, self.classifiers, now.date(), prefer_live_buffer)

        lines = [l for l in native + refs if self.classifiers.is_current_timeblock(l.content, now)]
        items = make_section_items(self.section_num, lines, self.classifiers,
                                   sort_keys=["timeStr"], item_type=ItemType.TIMEBLOCK,
                                   hierarchical=False)
        return [Section(
            id=self.section_num,
            section_code=self.section_code,
            name="Current time block",
            items=items,
            section_filename=filename_for_period(period),
            show_setting_name=self.show_setting_name,
            total_count=len(items),
            generated_at=now,
        )]


class ProjectSectionGenerator(SectionGenerator):
    """Project notes that are due for review"""

    section_code = SectionCode.PROJECTS
    show_setting_name = "show_project_section"
    section_num = "15"

    def __init__(self, store: DocumentStore, review_source: Optional[ProjectReviewSource] = None,
                 classifiers: Optional[Classifiers] = None,
                 clock: Callable[[], datetime] = datetime.now):
        super().__init__(store, classifiers, None, clock)
        self.review_source = review_source or NoteMetadataReviewSource(store)

    async def _generate(self, store, settings, prefer_live_buffer, use_demo_data):
        now = self.clock()
        source = NoteMetadataReviewSource(store) if use_demo_data else self.review_source
        reviews = await source.next_projects_to_review(now.date())

        items: List[SectionItem] = []
        for review in reviews:
            if len(items) >= settings.max_items_to_show_in_section:
                break
            if not is_filename_allowed(review.filename, settings):
                continue
            items.append(SectionItem(
                id=f"{self.section_num}-{len(items)}",
                item_type=ItemType.PROJECT,
                project=ProjectProjection(
                    title=review.title,
                    filename=review.filename,
                    review_interval=review.review_interval,
                    percent_complete=review.percent_complete,
                    last_progress_comment=review.last_progress_comment,
                ),
            ))

        return [Section(
            id=self.section_num,
            section_code=self.section_code,
            name="Projects",
            items=items,
            description="{count} project(s) ready to review",
            show_setting_name=self.show_setting_name,
            total_count=len(items),
            generated_at=now,
        )]
