"""
Data models for the note dashboard
Defines the document (note) and line structures read from the note store
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, List, Dict, Any
import re

from .dates import period_from_filename, parse_timestamp


# Line types
OPEN = "open"
DONE = "done"
CANCELLED = "cancelled"
SCHEDULED = "scheduled"
CHECKLIST = "checklist"
CHECKLIST_DONE = "checklistDone"
CHECKLIST_CANCELLED = "checklistCancelled"
CHECKLIST_SCHEDULED = "checklistScheduled"
LIST = "list"
HEADING = "title"
QUOTE = "quote"
TEXT = "text"
EMPTY = "empty"

OPEN_TYPES = (OPEN, CHECKLIST)
TASK_TYPES = (OPEN, DONE, CANCELLED, SCHEDULED)
CHECKLIST_TYPES = (CHECKLIST, CHECKLIST_DONE, CHECKLIST_CANCELLED, CHECKLIST_SCHEDULED)
COMPLETED_TYPES = (DONE, CHECKLIST_DONE)

CALENDAR_NOTE = "Calendar"
PROJECT_NOTE = "Notes"

_STATE_CHARS = {
    " ": (OPEN, CHECKLIST),
    "x": (DONE, CHECKLIST_DONE),
    "X": (DONE, CHECKLIST_DONE),
    "-": (CANCELLED, CHECKLIST_CANCELLED),
    ">": (SCHEDULED, CHECKLIST_SCHEDULED),
}
_TYPE_STATE = {
    OPEN: " ", DONE: "x", CANCELLED: "-", SCHEDULED: ">",
    CHECKLIST: " ", CHECKLIST_DONE: "x", CHECKLIST_CANCELLED: "-", CHECKLIST_SCHEDULED: ">",
}

RE_ITEM = re.compile(r'^([*+-])\s+(?:\[([ xX\->])\]\s*)?(.*)$')
RE_HEADING = re.compile(r'^(#{1,6})\s+(.*)$')
RE_BLOCK_ID = re.compile(r'\s\^([A-Za-z0-9]{6})\s*$')


def indent_of(raw: str) -> int:
    """Indent level from leading whitespace: one per tab, one per four spaces."""
    level = 0
    spaces = 0
    for ch in raw:
        if ch == "\t":
            level += 1
            spaces = 0
        elif ch == " ":
            spaces += 1
            if spaces == 4:
                level += 1
                spaces = 0
        else:
            break
    return level


@dataclass
class Line:
    """One row of a note"""
    raw_content: str = ""
    content: str = ""
    type: str = EMPTY
    indent_level: int = 0
    line_index: int = 0
    heading: str = ""
    heading_level: int = 0
    has_children: bool = False
    block_id: Optional[str] = None
    filename: str = ""
    note_type: str = PROJECT_NOTE
    note_title: str = ""
    changed_date: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.type in OPEN_TYPES

    @property
    def is_checklist(self) -> bool:
        return self.type in CHECKLIST_TYPES

    @classmethod
    def parse(cls, raw: str, line_index: int = 0) -> 'Line':
        """Classify a single raw markdown line"""
        indent = indent_of(raw)
        text = raw.strip()
        line_type = TEXT
        content = text

        if not text:
            line_type = EMPTY
        elif RE_HEADING.match(text):
            content = RE_HEADING.match(text).group(2).strip()
            line_type = HEADING
        elif text.startswith("> ") or text == ">":
            content = text[1:].strip()
            line_type = QUOTE
        else:
            m = RE_ITEM.match(text)
            if m:
                marker, state, content = m.group(1), m.group(2), m.group(3).strip()
                if state is None:
                    line_type = {"*": OPEN, "+": CHECKLIST, "-": LIST}[marker]
                else:
                    task_type, checklist_type = _STATE_CHARS[state]
                    line_type = checklist_type if marker == "+" else task_type

        block = RE_BLOCK_ID.search(content)
        return cls(
            raw_content=raw,
            content=content,
            type=line_type,
            indent_level=indent,
            line_index=line_index,
            block_id=block.group(1) if block else None,
        )

    def render(self) -> str:
        """Rebuild the raw markdown text for this line from type and content"""
        return render_line(self.type, self.content, self.indent_level, self.heading_level)

    def with_changes(self, **changes: Any) -> 'Line':
        """
        Copy with some fields replaced.

        For tasks and checklists the raw text keeps this line's indent and
        marker style: only the state box and the content change. Other
        lines are re-rendered.
        """
        updated = replace(self, **changes)
        updated.raw_content = self._restyle(updated)
        return updated

    def _restyle(self, updated: 'Line') -> str:
        m = RE_ITEM.match(self.raw_content.strip())
        item_types = TASK_TYPES + CHECKLIST_TYPES
        if m is None or self.type not in item_types or updated.type not in item_types \
                or updated.indent_level != self.indent_level:
            return updated.render()
        indent = self.raw_content[:len(self.raw_content) - len(self.raw_content.lstrip())]
        marker, state = m.group(1), m.group(2)
        if (updated.type in CHECKLIST_TYPES) != (self.type in CHECKLIST_TYPES):
            marker = "+" if updated.type in CHECKLIST_TYPES else "*"
        new_state = _TYPE_STATE[updated.type]
        if state is None and new_state == " ":
            box = ""
        else:
            box = f"[{new_state}] "
        return f"{indent}{marker} {box}{updated.content}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "raw_content": self.raw_content,
            "type": self.type,
            "indent_level": self.indent_level,
            "line_index": self.line_index,
            "heading": self.heading,
            "filename": self.filename,
            "note_type": self.note_type,
        }


def render_line(line_type: str, content: str, indent_level: int = 0, heading_level: int = 2) -> str:
    """Markdown text for a line of the given type"""
    prefix = "\t" * indent_level
    if line_type in CHECKLIST_TYPES:
        state = _TYPE_STATE[line_type]
        marker = "+ " if state == " " else f"+ [{state}] "
        return f"{prefix}{marker}{content}"
    if line_type in TASK_TYPES:
        state = _TYPE_STATE[line_type]
        marker = "* " if state == " " else f"* [{state}] "
        return f"{prefix}{marker}{content}"
    if line_type == LIST:
        return f"{prefix}- {content}"
    if line_type == HEADING:
        return f"{'#' * max(1, heading_level)} {content}"
    if line_type == QUOTE:
        return f"{prefix}> {content}"
    if line_type == EMPTY:
        return ""
    return f"{prefix}{content}"


@dataclass
class Note:
    """Note (document) data model"""
    filename: str = ""
    title: str = ""
    type: str = PROJECT_NOTE
    lines: List[Line] = field(default_factory=list)
    changed_date: Optional[datetime] = None

    @property
    def folder(self) -> str:
        """Folder part of the filename ('' for top-level and calendar notes)"""
        return self.filename.rsplit("/", 1)[0] if "/" in self.filename else ""

    @property
    def period(self) -> Optional[str]:
        """Period string for calendar notes, None for project notes"""
        return period_from_filename(self.filename)

    @property
    def is_calendar(self) -> bool:
        return self.type == CALENDAR_NOTE

    @classmethod
    def from_text(cls, filename: str, text: str, changed_date: Optional[datetime] = None) -> 'Note':
        """
        Parse a note from its markdown text.

        Args:
            filename: Store-relative filename ('20240501.md', 'Work/Plan.md')
            text: Full markdown content
            changed_date: Last modification time

        Returns:
            Note with classified lines
        """
        raw_lines = text.split("\n")
        if raw_lines and raw_lines[-1] == "":
            raw_lines.pop()
        return cls.from_lines(filename, raw_lines, changed_date)

    @classmethod
    def from_lines(cls, filename: str, raw_lines: List[str],
                   changed_date: Optional[datetime] = None) -> 'Note':
        period = period_from_filename(filename)
        note_type = CALENDAR_NOTE if period else PROJECT_NOTE
        lines = [Line.parse(raw, i) for i, raw in enumerate(raw_lines)]

        title = period or ""
        heading, heading_level = "", 0
        for i, line in enumerate(lines):
            if line.type == HEADING:
                level = len(RE_HEADING.match(line.raw_content.strip()).group(1))
                line.heading_level = level
                if not title:
                    title = line.content
                heading, heading_level = line.content, level
            else:
                line.heading = heading
                line.heading_level = heading_level
            line.filename = filename
            line.note_type = note_type
            line.changed_date = changed_date
            line.has_children = _next_is_deeper(lines, i)

        if not title:
            title = filename.rsplit("/", 1)[-1].rsplit(".", 1)[0]
        for line in lines:
            line.note_title = title

        return cls(
            filename=filename,
            title=title,
            type=note_type,
            lines=lines,
            changed_date=changed_date,
        )

    def to_text(self) -> str:
        return "\n".join(line.raw_content for line in self.lines) + "\n"

    def raw_lines(self) -> List[str]:
        return [line.raw_content for line in self.lines]

    def find_line(self, content: str) -> Optional[Line]:
        """First line whose content matches exactly"""
        for line in self.lines:
            if line.content == content:
                return line
        return None

    def children_of(self, line: Line) -> List[Line]:
        """Lines indented under the given line, up to the next line at its level or above"""
        children = []
        for other in self.lines[line.line_index + 1:]:
            if other.type == EMPTY:
                break
            if other.indent_level <= line.indent_level:
                break
            children.append(other)
        return children

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Note':
        """Create Note from a {'filename', 'content', 'changed_date'} dictionary"""
        return cls.from_text(
            data.get('filename', ''),
            data.get('content', ''),
            parse_timestamp(data.get('changed_date')),
        )


def _next_is_deeper(lines: List[Line], index: int) -> bool:
    if lines[index].type in (EMPTY, HEADING):
        return False
    for nxt in lines[index + 1:]:
        if nxt.type == EMPTY:
            return False
        return nxt.indent_level > lines[index].indent_level
    return False


@dataclass
class ProjectReview:
    """A project note due for review, as reported by the review source"""
    title: str = ""
    filename: str = ""
    review_interval: str = ""
    percent_complete: Optional[float] = None
    last_progress_comment: str = ""
    next_review_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "filename": self.filename,
            "review_interval": self.review_interval,
            "percent_complete": self.percent_complete,
            "last_progress_comment": self.last_progress_comment,
            "next_review_date": self.next_review_date,
        }
