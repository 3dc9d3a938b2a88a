"""
Tag and mention sections.

One section per visible tag ('#project', '@waiting', ...). There is no single
target note: every allowed note is searched for open lines carrying the tag.
"""

from datetime import timedelta
from typing import List
import re

from notedash.core.dates import period_bounds
from notedash.core.store import DocumentStore
from notedash.dashboard.generators import SectionGenerator
from notedash.dashboard.models import Section, SectionCode
from notedash.dashboard.paragraphs import (
    dedupe_synced_copies, keep_open_line, make_section_items, remove_duplicates,
    scan_notes, sort_keys_for_order,
)
from notedash.dashboard.settings import DashboardSettings

TAG_SECTION_NUM = "12"


def tag_pattern(tag: str) -> re.Pattern:
    """Case-insensitive match for a tag that isn't part of a longer word"""
    return re.compile(r'(?<![\w#@])' + re.escape(tag) + r'(?![\w-])', re.IGNORECASE)


class TagSectionGenerator(SectionGenerator):
    """Open items mentioning each tag in settings.tags_to_show"""

    section_code = SectionCode.TAG

    def is_enabled(self, settings: DashboardSettings) -> bool:
        return bool(settings.visible_tags())

    async def _generate(self, store: DocumentStore, settings: DashboardSettings,
                        prefer_live_buffer: bool, use_demo_data: bool) -> List[Section]:
        now = self.clock()
        today = now.date()
        cutoff = today + timedelta(days=1) if settings.show_tomorrow_section else today
        notes = await scan_notes(store, settings, prefer_live_buffer)

        sections = []
        for index, tag in enumerate(settings.tags_to_show):
            if not settings.tag_sections.get(tag, True):
                continue
            section_num = f"{TAG_SECTION_NUM}-{index}"
            pattern = tag_pattern(tag)
            # A tag listed as an ignore term would otherwise hide its own section
            ignore_terms = [t for t in settings.ignore_items_with_terms if t.lower() != tag.lower()]

            lines = []
            for note in notes:
                if note.is_calendar and period_bounds(note.period)[0] > cutoff:
                    continue
                for line in note.lines:
                    if not pattern.search(line.content):
                        continue
                    if keep_open_line(line, settings, self.classifiers, cutoff, ignore_terms):
                        lines.append(line)

            lines = remove_duplicates(dedupe_synced_copies(lines), ("content", "filename"))
            total = len(lines)
            items = make_section_items(
                section_num, lines, self.classifiers,
                sort_keys=sort_keys_for_order(settings.overdue_sort_order),
                limit=settings.max_items_to_show_in_section,
            )
            self.logger.debug(f"{tag}: {total} items, showing {len(items)}")
            sections.append(Section(
                id=section_num,
                section_code=self.section_code,
                name=tag,
                items=items,
                description=f"{{count}} open item(s) mentioning {tag}",
                show_setting_name=tag,
                total_count=total,
                generated_at=now,
            ))
        return sections
