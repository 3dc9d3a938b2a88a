"""
Corpus-wide scanning sections: Overdue and Priority.

Both walk every allowed note, pick lines with a classifier predicate, then
filter, de-duplicate, sort and truncate.
"""

from datetime import timedelta
from typing import List

from notedash.core.dates import calc_offset_period_str, day_str, period_bounds
from notedash.core.models import Line
from notedash.core.store import DocumentStore
from notedash.dashboard.generators import SectionGenerator
from notedash.dashboard.models import ActionButton, Section, SectionCode
from notedash.dashboard.paragraphs import (
    keep_open_line, make_section_items, remove_duplicates, scan_notes, sort_keys_for_order,
    get_open_items_for_period,
)
from notedash.dashboard.settings import DashboardSettings


class OverdueSectionGenerator(SectionGenerator):
    """Open tasks whose scheduled date (or calendar period) has passed"""

    section_code = SectionCode.OVERDUE
    show_setting_name = "show_overdue_section"
    section_num = "13"

    async def overdue_lines(self, store: DocumentStore, settings: DashboardSettings,
                            prefer_live_buffer: bool = True) -> List[Line]:
        """
        Every overdue line after filtering and de-duplication, unsorted and untruncated.

        Also used by the 'scheduleAllOverdueToday' bulk action.
        """
        today = self.clock().date()
        lines = []
        for note in await scan_notes(store, settings, prefer_live_buffer):
            if note.is_calendar and period_bounds(note.period)[0] > today:
                continue
            for line in note.lines:
                if not self.classifiers.is_overdue(line, today):
                    continue
                if keep_open_line(line, settings, self.classifiers, today):
                    lines.append(line)

        if settings.look_back_days_for_overdue > 0:
            earliest = day_str(today - timedelta(days=settings.look_back_days_for_overdue))
            lines = [l for l in lines if self.classifiers.due_date(l) > earliest]

        lines = remove_duplicates(lines, ("content",))

        if settings.show_yesterday_section:
            # Yesterday's section already shows these
            yesterday = calc_offset_period_str(today, "-1d")
            _, native, refs = await get_open_items_for_period(
                store, yesterday, settings, self.classifiers, today, prefer_live_buffer)
            shown = {l.content for l in native + refs}
            lines = [l for l in lines if l.content not in shown]
        return lines

    async def _generate(self, store, settings, prefer_live_buffer, use_demo_data):
        now = self.clock()
        lines = await self.overdue_lines(store, settings, prefer_live_buffer)
        items = make_section_items(
            self.section_num, lines, self.classifiers,
            sort_keys=sort_keys_for_order(settings.overdue_sort_order),
            limit=settings.max_items_to_show_in_section,
        )
        look_back = settings.look_back_days_for_overdue
        since = f"from last {look_back} days " if look_back > 0 else ""
        return [Section(
            id=self.section_num,
            section_code=self.section_code,
            name="Overdue Tasks",
            items=items,
            description=f"{{count}} open item(s) {since}ordered by {settings.overdue_sort_order}",
            show_setting_name=self.show_setting_name,
            total_count=len(lines),
            generated_at=now,
            action_buttons=[ActionButton(
                action_name="scheduleAllOverdueToday",
                display="All Overdue → Today",
                tooltip="Schedule all overdue tasks to today",
                post_action_refresh=[SectionCode.OVERDUE, SectionCode.TODAY],
            )],
        )]


class PrioritySectionGenerator(SectionGenerator):
    """Open items carrying any priority marker"""

    section_code = SectionCode.PRIORITY
    show_setting_name = "show_priority_section"
    section_num = "14"

    async def _generate(self, store, settings, prefer_live_buffer, use_demo_data):
        now = self.clock()
        today = now.date()
        lines = []
        for note in await scan_notes(store, settings, prefer_live_buffer):
            if note.is_calendar and period_bounds(note.period)[0] > today:
                continue
            for line in note.lines:
                if self.classifiers.priority(line.content) <= 0:
                    continue
                if keep_open_line(line, settings, self.classifiers, today):
                    lines.append(line)

        lines = remove_duplicates(lines, ("content",))
        items = make_section_items(
            self.section_num, lines, self.classifiers,
            sort_keys=["-priority", "-changedDate"],
            limit=settings.max_items_to_show_in_section,
        )
        return [Section(
            id=self.section_num,
            section_code=self.section_code,
            name="Priority Tasks",
            items=items,
            description="{count} open item(s) with a priority marker",
            show_setting_name=self.show_setting_name,
            total_count=len(lines),
            generated_at=now,
        )]
