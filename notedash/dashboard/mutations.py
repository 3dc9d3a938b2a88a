"""
Line-level edits applied through the document store.

Every function locates its target by (filename, content) first and raises
NotFoundError before writing anything if the line is not there.
"""

from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple
import logging

from notedash.core.dates import (
    done_marker, filename_for_period, period_from_filename, remove_scheduled_dates,
)
from notedash.core.errors import NotFoundError
from notedash.core.models import (
    Line, Note, render_line, CANCELLED, CHECKLIST, CHECKLIST_CANCELLED, CHECKLIST_DONE,
    CHECKLIST_TYPES, DONE, EMPTY, HEADING, OPEN, OPEN_TYPES,
)
from notedash.core.store import DocumentStore
from notedash.dashboard.classifiers import PRIORITY_MARKERS, priority_of, strip_priority

logger = logging.getLogger("dashboard.mutations")

PRIORITY_CYCLE = ["", "!", "!!", "!!!", ">>"]
_MARKER_FOR = {value: marker for marker, value in PRIORITY_MARKERS.items()}


async def locate(store: DocumentStore, filename: str, content: str) -> Tuple[Note, Line]:
    """
    Note and line for (filename, content), read from the live buffer when
    the note is open in the editor.

    Raises:
        NotFoundError: if the note or the line doesn't exist
    """
    note = await store.get_note(filename)
    if note is None:
        raise NotFoundError(f"Note '{filename}' not found")
    line = note.find_line(content)
    if line is None:
        raise NotFoundError(f"Line '{content}' not found in '{filename}'")
    return note, line


async def _rewrite(store: DocumentStore, filename: str, line: Line, **changes) -> Line:
    updated = line.with_changes(**changes)
    await store.replace_line(filename, line.line_index, updated.raw_content)
    return updated


async def complete_line(store: DocumentStore, filename: str, content: str,
                        when: datetime) -> Line:
    """Mark an open task or checklist done, stamping it with a @done(...) marker"""
    _, line = await locate(store, filename, content)
    done_type = CHECKLIST_DONE if line.type in CHECKLIST_TYPES else DONE
    return await _rewrite(store, filename, line, type=done_type,
                          content=f"{line.content} {done_marker(when)}")


async def cancel_line(store: DocumentStore, filename: str, content: str) -> Line:
    _, line = await locate(store, filename, content)
    cancelled = CHECKLIST_CANCELLED if line.type in CHECKLIST_TYPES else CANCELLED
    return await _rewrite(store, filename, line, type=cancelled)


async def delete_line(store: DocumentStore, filename: str, content: str) -> Line:
    _, line = await locate(store, filename, content)
    await store.remove_lines(filename, [line.line_index])
    return line


async def update_content(store: DocumentStore, filename: str, content: str,
                         new_content: str) -> Line:
    _, line = await locate(store, filename, content)
    return await _rewrite(store, filename, line, content=new_content)


async def toggle_type(store: DocumentStore, filename: str, content: str) -> Line:
    """Open task <-> open checklist"""
    _, line = await locate(store, filename, content)
    if line.type not in OPEN_TYPES:
        raise NotFoundError(f"Line '{content}' in '{filename}' is not an open item")
    return await _rewrite(store, filename, line, type=OPEN if line.type == CHECKLIST else CHECKLIST)


async def unschedule(store: DocumentStore, filename: str, content: str) -> Line:
    _, line = await locate(store, filename, content)
    return await _rewrite(store, filename, line, content=remove_scheduled_dates(line.content))


def cycle_priority(content: str, up: bool = True) -> str:
    """Next (or previous) priority marker: none -> ! -> !! -> !!! -> >> -> none"""
    current = _MARKER_FOR.get(priority_of(content), "")
    step = 1 if up else -1
    marker = PRIORITY_CYCLE[(PRIORITY_CYCLE.index(current) + step) % len(PRIORITY_CYCLE)]
    bare = strip_priority(content)
    return f"{marker} {bare}" if marker else bare


async def change_priority(store: DocumentStore, filename: str, content: str, up: bool) -> Line:
    _, line = await locate(store, filename, content)
    return await _rewrite(store, filename, line, content=cycle_priority(line.content, up))


def _heading_insert_index(note: Optional[Note], heading: str) -> Optional[int]:
    """Index just after the last non-empty line under heading, None if heading is absent"""
    if note is None:
        return None
    for line in note.lines:
        if line.type == HEADING and line.content == heading:
            index = line.line_index + 1
            for other in note.lines[line.line_index + 1:]:
                if other.type == HEADING and other.heading_level <= line.heading_level:
                    break
                if other.type != EMPTY:
                    index = other.line_index + 1
            return index
    return None


async def insert_under_heading(store: DocumentStore, filename: str, raws: Sequence[str],
                               heading: str, heading_level: int) -> Note:
    """
    Insert raw lines at the end of heading's block, creating the heading
    (and the note) when missing.
    """
    note = await store.get_note(filename)
    index = _heading_insert_index(note, heading) if heading else None
    if index is not None:
        return await store.insert_lines(filename, index, raws)

    existing = note.raw_lines() if note else []
    block: List[str] = []
    if heading:
        if existing and existing[-1].strip():
            block.append("")
        block.append(render_line(HEADING, heading, heading_level=heading_level))
    block.extend(raws)
    return await store.insert_lines(filename, len(existing), block)


async def add_item(store: DocumentStore, filename: str, content: str, checklist: bool,
                   heading: str, heading_level: int) -> Note:
    raw = render_line(CHECKLIST if checklist else OPEN, content.strip())
    return await insert_under_heading(store, filename, [raw], heading, heading_level)


async def reschedule_line(store: DocumentStore, filename: str, content: str,
                          period_str: str) -> Line:
    """Replace the line's scheduling annotations with a single '>period_str'"""
    _, line = await locate(store, filename, content)
    new_content = f"{remove_scheduled_dates(line.content)} >{period_str}"
    return await _rewrite(store, filename, line, content=new_content)


def _block_for(note: Note, line: Line, with_children: bool) -> List[Line]:
    return [line] + (note.children_of(line) if with_children else [])


def _relocated_raws(block: Sequence[Line]) -> List[str]:
    top = block[0]
    raws = [render_line(top.type, remove_scheduled_dates(top.content))]
    for child in block[1:]:
        raws.append(render_line(child.type, child.content, child.indent_level - top.indent_level))
    return raws


async def move_line(store: DocumentStore, filename: str, content: str, target_filename: str,
                    heading: str, heading_level: int, with_children: bool = True) -> str:
    """
    Physically move a line (and optionally its sub-items) to another note.

    The target is written before the source is trimmed, so a failed write
    never loses the line.
    """
    note, line = await locate(store, filename, content)
    if target_filename == filename:
        return filename
    block = _block_for(note, line, with_children)
    await insert_under_heading(store, target_filename, _relocated_raws(block), heading, heading_level)
    await store.remove_lines(filename, [l.line_index for l in block])
    logger.debug(f"Moved {len(block)} line(s) from {filename} to {target_filename}")
    return target_filename


async def move_to_period(store: DocumentStore, filename: str, content: str, period_str: str,
                         heading: str, heading_level: int, with_children: bool = True) -> str:
    return await move_line(store, filename, content, filename_for_period(period_str),
                           heading, heading_level, with_children)


def scheduled_day(line: Line, due_date: str) -> Optional[date]:
    """Day a line was due: its annotation or its calendar note's start"""
    if due_date:
        return date.fromisoformat(due_date)
    period = period_from_filename(line.filename)
    return date.fromisoformat(period) if period and len(period) == 10 else None
