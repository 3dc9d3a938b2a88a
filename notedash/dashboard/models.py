"""
View model for the dashboard: sections, items and quick-action buttons.

Items and sections are rebuilt on every generation pass. Item ids
('<sectionNumber>-<ordinal>') are only unique within one pass and are not
persistent keys.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SectionCode(str, Enum):
    """Logical partitions of the dashboard"""
    TODAY = "DT"
    YESTERDAY = "DY"
    TOMORROW = "DO"
    LAST_WEEK = "LW"
    WEEK = "W"
    MONTH = "M"
    QUARTER = "Q"
    TAG = "TAG"
    OVERDUE = "OVERDUE"
    PRIORITY = "PRIORITY"
    PROJECTS = "PROJ"
    TIMEBLOCK = "TB"


class ItemType(str, Enum):
    OPEN_TASK = "open-task"
    CHECKLIST = "checklist"
    DONE = "done"
    TIMEBLOCK = "timeblock"
    PROJECT = "project"


# Order sections appear in the UI
DISPLAY_ORDER = [
    SectionCode.TIMEBLOCK,
    SectionCode.TODAY,
    SectionCode.YESTERDAY,
    SectionCode.TOMORROW,
    SectionCode.LAST_WEEK,
    SectionCode.WEEK,
    SectionCode.MONTH,
    SectionCode.QUARTER,
    SectionCode.TAG,
    SectionCode.OVERDUE,
    SectionCode.PRIORITY,
    SectionCode.PROJECTS,
]

# Order sections are generated in: cheap calendar sections first, corpus-wide scans last
GENERATION_ORDER = [
    SectionCode.TODAY,
    SectionCode.YESTERDAY,
    SectionCode.TOMORROW,
    SectionCode.LAST_WEEK,
    SectionCode.WEEK,
    SectionCode.MONTH,
    SectionCode.QUARTER,
    SectionCode.TIMEBLOCK,
    SectionCode.TAG,
    SectionCode.OVERDUE,
    SectionCode.PRIORITY,
    SectionCode.PROJECTS,
]

CALENDAR_CODES = [
    SectionCode.TODAY,
    SectionCode.YESTERDAY,
    SectionCode.TOMORROW,
    SectionCode.LAST_WEEK,
    SectionCode.WEEK,
    SectionCode.MONTH,
    SectionCode.QUARTER,
]


def to_section_codes(codes) -> List[SectionCode]:
    """Coerce strings like 'DT' to SectionCode, skipping unknown codes"""
    result = []
    for code in codes or []:
        try:
            result.append(SectionCode(code))
        except ValueError:
            continue
    return result


@dataclass(frozen=True)
class LineProjection:
    """Reduced, display-ready copy of a note line"""
    content: str
    raw_content: str
    filename: str
    note_type: str
    line_type: str
    priority: int = 0
    changed_date: Optional[datetime] = None
    indent_level: int = 0
    start_time: str = ""
    has_children: bool = False
    note_title: str = ""
    due_date: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "raw_content": self.raw_content,
            "filename": self.filename,
            "note_type": self.note_type,
            "type": self.line_type,
            "priority": self.priority,
            "changed_date": self.changed_date.isoformat() if self.changed_date else None,
            "indent_level": self.indent_level,
            "start_time": self.start_time,
            "has_children": self.has_children,
            "title": self.note_title,
            "due_date": self.due_date,
        }


@dataclass(frozen=True)
class ProjectProjection:
    """Project note due for review"""
    title: str
    filename: str
    review_interval: str = ""
    percent_complete: Optional[float] = None
    last_progress_comment: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "filename": self.filename,
            "review_interval": self.review_interval,
            "percent_complete": self.percent_complete,
            "last_progress_comment": self.last_progress_comment,
        }


@dataclass(frozen=True)
class SectionItem:
    """One unit of work shown in a section"""
    id: str
    item_type: ItemType
    para: Optional[LineProjection] = None
    project: Optional[ProjectProjection] = None
    parent_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "item_type": self.item_type.value,
        }
        if self.para is not None:
            data["para"] = self.para.to_dict()
        if self.project is not None:
            data["project"] = self.project.to_dict()
        if self.parent_id is not None:
            data["parent_id"] = self.parent_id
        return data


@dataclass(frozen=True)
class ActionButton:
    """Quick-action button attached to a section"""
    action_name: str
    display: str
    tooltip: str = ""
    action_param: str = ""
    post_action_refresh: List[SectionCode] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_name": self.action_name,
            "display": self.display,
            "tooltip": self.tooltip,
            "action_param": self.action_param,
            "post_action_refresh": [c.value for c in self.post_action_refresh],
        }


@dataclass(frozen=True)
class DoneCounts:
    completed_tasks: int = 0
    last_updated: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completed_tasks": self.completed_tasks,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


@dataclass(frozen=True)
class Section:
    """
    A named, ordered collection of items.

    Sections are values: they are replaced wholesale on refresh and never
    edited in place. Exactly one section per (section_code, is_referenced)
    pair is live at a time, except TAG where each tag gets its own section.
    """
    id: str
    section_code: SectionCode
    name: str
    items: List[SectionItem] = field(default_factory=list)
    description: str = ""
    section_filename: str = ""
    show_setting_name: str = ""
    done_counts: Optional[DoneCounts] = None
    total_count: Optional[int] = None
    generated_at: Optional[datetime] = None
    is_referenced: bool = False
    action_buttons: List[ActionButton] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "section_code": self.section_code.value,
            "name": self.name,
            "description": self.description,
            "section_filename": self.section_filename,
            "show_setting_name": self.show_setting_name,
            "items": [item.to_dict() for item in self.items],
            "done_counts": self.done_counts.to_dict() if self.done_counts else None,
            "total_count": self.total_count if self.total_count is not None else len(self.items),
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
            "is_referenced": self.is_referenced,
            "action_buttons": [b.to_dict() for b in self.action_buttons],
        }
