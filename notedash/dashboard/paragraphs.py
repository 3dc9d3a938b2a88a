"""
Line selection helpers shared by the section generators.

Covers folder filtering, the open-item filters (ignore terms, headings,
time blocks, future scheduling), synced-copy de-duplication, multi-key
stable sorting and the conversion of lines into section items with parent
links for hierarchical display.
"""

from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from notedash.core.dates import (
    period_bounds, is_scheduled_to, includes_scheduled_future_date, is_calendar_filename,
    is_malformed_calendar_filename,
)
from notedash.core.models import (
    Line, Note, CHECKLIST, CHECKLIST_TYPES, COMPLETED_TYPES, OPEN_TYPES,
)
from notedash.core.store import DocumentStore, is_special_folder
from notedash.dashboard.classifiers import Classifiers
from notedash.dashboard.models import ItemType, LineProjection, SectionItem
from notedash.dashboard.settings import DashboardSettings

logger = logging.getLogger("dashboard.paragraphs")

# Sort key names accepted by sort_list_by, mapped to projection attributes
SORT_FIELDS = {
    "priority": "priority",
    "changedDate": "changed_date",
    "dueDate": "due_date",
    "timeStr": "start_time",
    "content": "content",
    "title": "note_title",
}


def is_note_allowed(note: Note, settings: DashboardSettings) -> bool:
    """
    Whether a note may contribute lines to scanning sections.

    Special '@' folders are always skipped. Calendar notes are always
    allowed; project notes must avoid excluded folders and, when included
    folders are set, live under one of them.
    """
    return is_filename_allowed(note.filename, settings)


def is_filename_allowed(filename: str, settings: DashboardSettings) -> bool:
    if is_special_folder(filename):
        return False
    if is_calendar_filename(filename):
        return True
    folder = filename.rsplit("/", 1)[0] if "/" in filename else ""
    for excluded in settings.excluded_folders:
        if folder == excluded or folder.startswith(excluded.rstrip("/") + "/"):
            return False
    if settings.included_folders:
        return any(
            folder == inc or folder.startswith(inc.rstrip("/") + "/")
            for inc in settings.included_folders
        )
    return True


def allowed_notes(notes: Iterable[Note], settings: DashboardSettings) -> List[Note]:
    allowed = []
    for note in notes:
        if is_malformed_calendar_filename(note.filename):
            logger.warning(f"Skipping {note.filename}: not a valid calendar date")
            continue
        if is_note_allowed(note, settings):
            allowed.append(note)
    return allowed


async def scan_notes(store: DocumentStore, settings: DashboardSettings,
                     prefer_live: bool = True) -> List[Note]:
    """All allowed notes, with the live editor's copy swapped in for the open note"""
    notes = allowed_notes(await store.list_notes(), settings)
    if not prefer_live or store.editor.filename is None:
        return notes
    return [store.editor.live_note(n.filename) or n for n in notes]


def sort_keys_for_order(order: str) -> List[str]:
    """Multi-key sort for the overdue_sort_order setting"""
    if order == "priority":
        return ["-priority", "-changedDate"]
    if order == "earliest":
        return ["changedDate", "-priority"]
    if order == "due date":
        return ["dueDate", "-priority"]
    return ["-changedDate", "-priority"]


def is_line_disallowed_by_terms(content: str, terms: Sequence[str]) -> bool:
    """Case-insensitive check for any ignore term in the line"""
    lowered = content.lower()
    return any(term.lower() in lowered for term in terms if term)


def keep_open_line(line: Line, settings: DashboardSettings, classifiers: Classifiers,
                   cutoff: date, ignore_terms: Optional[Sequence[str]] = None) -> bool:
    """
    The shared open-item filter.

    Args:
        line: Candidate line
        settings: Current dashboard settings
        classifiers: Marker predicates
        cutoff: Lines scheduled to a period starting after this day are dropped
        ignore_terms: Overrides settings.ignore_items_with_terms when given

    Returns:
        True if the line should appear in a section
    """
    if line.type not in OPEN_TYPES:
        return False
    if line.type == CHECKLIST and settings.ignore_checklist_items:
        return False
    if not line.content.strip():
        return False
    if includes_scheduled_future_date(line.content, cutoff):
        return False
    terms = settings.ignore_items_with_terms if ignore_terms is None else ignore_terms
    if is_line_disallowed_by_terms(line.content, terms):
        return False
    if line.heading and is_line_disallowed_by_terms(line.heading, settings.ignore_items_in_sections_with_terms):
        return False
    if line.type == CHECKLIST and settings.exclude_checklists_with_timeblocks \
            and classifiers.has_timeblock(line.content):
        return False
    if line.type != CHECKLIST and settings.exclude_tasks_with_timeblocks \
            and classifiers.has_timeblock(line.content):
        return False
    return True


def dedupe_synced_copies(lines: Iterable[Line]) -> List[Line]:
    """Keep the first of every set of lines with equal (content, type)"""
    return remove_duplicates(lines, ("content", "type"))


def remove_duplicates(lines: Iterable[Line], fields: Sequence[str]) -> List[Line]:
    seen = set()
    result = []
    for line in lines:
        key = tuple(getattr(line, f) for f in fields)
        if key in seen:
            continue
        seen.add(key)
        result.append(line)
    return result


def _sort_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def sort_list_by(items: List[Any], keys: Sequence[str],
                 getter: Optional[Callable[[Any, str], Any]] = None) -> List[Any]:
    """
    Stable multi-key sort.

    Keys are names like 'priority' or 'changedDate', prefixed with '-' for
    descending order. The first key is the most significant.
    """
    if getter is None:
        getter = lambda item, attr: getattr(item, attr)
    result = list(items)
    for key in reversed(keys):
        descending = key.startswith("-")
        name = key.lstrip("-")
        attr = SORT_FIELDS.get(name, name)
        result.sort(key=lambda item: _sort_value(getter(item, attr)), reverse=descending)
    return result


def project_line(line: Line, classifiers: Classifiers) -> LineProjection:
    return LineProjection(
        content=line.content,
        raw_content=line.raw_content,
        filename=line.filename,
        note_type=line.note_type,
        line_type=line.type,
        priority=classifiers.priority(line.content),
        changed_date=line.changed_date,
        indent_level=line.indent_level,
        start_time=classifiers.start_time(line.content),
        has_children=line.has_children,
        note_title=line.note_title,
        due_date=classifiers.due_date(line),
    )


def assign_parents(lines: Sequence[Line]) -> Dict[int, Line]:
    """
    Map id(line) -> parent line for lines nested under another listed line.

    Walks each note's lines in document order keeping one 'last seen' slot
    per indent level. A line at indent N gets the line in slot N-1 as its
    parent when that line has children. An indent-0 line without children
    clears every slot.
    """
    parents: Dict[int, Line] = {}
    by_note: Dict[str, List[Line]] = {}
    for line in lines:
        by_note.setdefault(line.filename, []).append(line)

    for note_lines in by_note.values():
        last_seen: Dict[int, Line] = {}
        for line in sorted(note_lines, key=lambda l: l.line_index):
            level = line.indent_level
            for depth in [d for d in last_seen if d >= level]:
                del last_seen[depth]
            if level == 0 and not line.has_children:
                last_seen.clear()
                continue
            if level > 0:
                candidate = last_seen.get(level - 1)
                if candidate is not None and candidate.has_children:
                    parents[id(line)] = candidate
            last_seen[level] = line
    return parents


def sort_families(lines: Sequence[Line], parents: Dict[int, Line],
                  projections: Dict[int, LineProjection], keys: Sequence[str]) -> List[Line]:
    """Sort top-level lines by keys, keeping each line's descendants right after it"""
    families: List[List[Line]] = []
    family_of: Dict[int, List[Line]] = {}
    for line in lines:
        parent = parents.get(id(line))
        if parent is not None and id(parent) in family_of:
            family = family_of[id(parent)]
        else:
            family = []
            families.append(family)
        family.append(line)
        family_of[id(line)] = family
    ordered = sort_list_by(
        families, keys,
        getter=lambda fam, attr: getattr(projections[id(fam[0])], attr),
    )
    return [line for family in ordered for line in family]


def item_type_for(line: Line) -> ItemType:
    if line.type in COMPLETED_TYPES:
        return ItemType.DONE
    if line.type in CHECKLIST_TYPES:
        return ItemType.CHECKLIST
    return ItemType.OPEN_TASK


def make_section_items(section_num: str, lines: Sequence[Line], classifiers: Classifiers,
                       sort_keys: Optional[Sequence[str]] = None,
                       item_type: Optional[ItemType] = None,
                       hierarchical: bool = True,
                       limit: int = 0) -> List[SectionItem]:
    """
    Wrap lines as section items with ids '<section_num>-<ordinal>'.

    Args:
        section_num: Section number string ('0', '12-1', ...)
        lines: Lines in document order
        classifiers: Marker predicates used for the projections
        sort_keys: Optional multi-key order applied to top-level lines
        item_type: Force one item type (time blocks), else derived per line
        hierarchical: Link children to parents via parent_id
        limit: Keep only the first this-many items after sorting (0 = all)
    """
    projections = {id(line): project_line(line, classifiers) for line in lines}
    parents = assign_parents(lines) if hierarchical else {}
    if sort_keys:
        lines = sort_families(lines, parents, projections, sort_keys)
    if limit:
        lines = lines[:limit]

    ids: Dict[int, str] = {}
    items = []
    for ordinal, line in enumerate(lines):
        item_id = f"{section_num}-{ordinal}"
        ids[id(line)] = item_id
        parent = parents.get(id(line))
        items.append(SectionItem(
            id=item_id,
            item_type=item_type or item_type_for(line),
            para=projections[id(line)],
            parent_id=ids.get(id(parent)) if parent is not None else None,
        ))
    return items


async def get_open_items_for_period(
    store: DocumentStore,
    period_str: str,
    settings: DashboardSettings,
    classifiers: Classifiers,
    today: date,
    prefer_live: bool = True,
) -> Tuple[Optional[Note], List[Line], List[Line]]:
    """
    Open items for one calendar period.

    Args:
        store: Document store
        period_str: '2024-05-01', '2024-W18', '2024-05' or '2024-Q2'
        settings: Current dashboard settings
        classifiers: Marker predicates
        today: Current day
        prefer_live: Read the period's note from the live editor if open there

    Returns:
        (note, native lines, referenced lines); note is None when the
        period has no note, in which case both lists are empty
    """
    note = await store.get_calendar_note(period_str, prefer_live)
    if note is None:
        return None, [], []

    # Anything scheduled beyond the end of this period has moved on
    cutoff = period_bounds(period_str)[1]

    native = [line for line in note.lines if keep_open_line(line, settings, classifiers, cutoff)]

    refs: List[Line] = []
    for other in await scan_notes(store, settings, prefer_live):
        if other.filename == note.filename:
            continue
        for line in other.lines:
            if not is_scheduled_to(line.content, period_str, today):
                continue
            if keep_open_line(line, settings, classifiers, cutoff):
                refs.append(line)

    if settings.hide_duplicates:
        native = dedupe_synced_copies(native)
        native_keys = {(l.content, l.type) for l in native}
        refs = [l for l in dedupe_synced_copies(refs) if (l.content, l.type) not in native_keys]

    return note, native, refs
