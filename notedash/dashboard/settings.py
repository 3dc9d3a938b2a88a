"""
Dashboard settings snapshot.

A DashboardSettings value is passed explicitly into every generator and
handler. The PerspectiveStore owns the single "live" instance; everyone else
works on copies.
"""

from dataclasses import dataclass, field, fields, asdict
from typing import Any, Dict, List, Optional
import copy
import logging

logger = logging.getLogger("dashboard.settings")

OVERDUE_SORT_ORDERS = ("priority", "earliest", "due date", "most recent")

# Keys that describe the dashboard's own bookkeeping rather than a user choice
_INTERNAL_KEYS = {"active_perspective_name", "last_change", "plugin_id", "timestamp"}


def _split_list(value: Any) -> List[str]:
    """Accept 'a, b' strings as well as lists"""
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(part).strip() for part in value if str(part).strip()]
    raise TypeError(f"expected list or comma-separated string, got {type(value).__name__}")


@dataclass
class DashboardSettings:
    """Every user-facing dashboard option"""
    separate_section_for_referenced_notes: bool = False
    ignore_items_with_terms: List[str] = field(default_factory=list)
    ignore_items_in_sections_with_terms: List[str] = field(default_factory=list)
    ignore_checklist_items: bool = False
    excluded_folders: List[str] = field(default_factory=lambda: ["@Archive", "@Templates"])
    included_folders: List[str] = field(default_factory=list)
    exclude_tasks_with_timeblocks: bool = False
    exclude_checklists_with_timeblocks: bool = False
    reschedule_not_move: bool = True
    use_today_date: bool = False
    move_sub_items: bool = True
    hide_duplicates: bool = True
    new_task_section_heading: str = "Tasks"
    new_task_section_heading_level: int = 2
    show_yesterday_section: bool = True
    show_tomorrow_section: bool = True
    show_last_week_section: bool = False
    show_week_section: bool = True
    show_month_section: bool = True
    show_quarter_section: bool = False
    show_overdue_section: bool = True
    show_priority_section: bool = False
    show_project_section: bool = True
    show_timeblock_section: bool = True
    max_items_to_show_in_section: int = 24
    overdue_sort_order: str = "priority"
    look_back_days_for_overdue: int = 0
    tags_to_show: List[str] = field(default_factory=list)
    tag_sections: Dict[str, bool] = field(default_factory=dict)
    active_perspective_name: str = "-"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'DashboardSettings':
        """
        Build settings from a (possibly partial or malformed) dictionary.

        Unknown keys are ignored and values of the wrong type fall back to
        the default for that field, so stale persisted data never fails.
        """
        settings = cls()
        if not data:
            return settings
        for f in fields(cls):
            if f.name not in data:
                continue
            try:
                setattr(settings, f.name, _coerce(f.name, data[f.name], getattr(settings, f.name)))
            except (TypeError, ValueError) as e:
                logger.warning(f"Ignoring invalid setting {f.name}={data[f.name]!r}: {e}")
        if settings.overdue_sort_order not in OVERDUE_SORT_ORDERS:
            settings.overdue_sort_order = "priority"
        return settings

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def copy(self) -> 'DashboardSettings':
        return copy.deepcopy(self)

    def with_updates(self, changes: Dict[str, Any]) -> 'DashboardSettings':
        """New snapshot with some values replaced"""
        return DashboardSettings.from_dict({**self.to_dict(), **changes})

    def visible_tags(self) -> List[str]:
        """Tags from tags_to_show whose section hasn't been switched off"""
        return [tag for tag in self.tags_to_show if self.tag_sections.get(tag, True)]

    def without_tag_sections(self) -> 'DashboardSettings':
        """Copy with the per-tag visibility map cleared"""
        stripped = self.copy()
        stripped.tag_sections = {}
        return stripped

    def prune_tag_sections(self) -> None:
        """Drop visibility entries for tags that are no longer listed"""
        self.tag_sections = {
            tag: visible for tag, visible in self.tag_sections.items()
            if tag in self.tags_to_show
        }

    def is_section_enabled(self, show_setting_name: str) -> bool:
        """Value of a show_*_section flag; unknown names count as enabled"""
        return bool(getattr(self, show_setting_name, True))


def _coerce(name: str, value: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes", "on")
        return bool(value)
    if isinstance(default, int):
        return int(value)
    if isinstance(default, list):
        return _split_list(value)
    if isinstance(default, dict):
        if not isinstance(value, dict):
            raise TypeError("expected a mapping")
        return {str(k): bool(v) for k, v in value.items()}
    if isinstance(default, str):
        return str(value)
    return value


def clean_settings_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Strip keys that should never be stored in a perspective snapshot.

    Removes feature flags ('FFlag_*'), logging switches ('*_log'),
    bookkeeping keys and anything that isn't a DashboardSettings field.
    """
    known = {f.name for f in fields(DashboardSettings)}
    return {
        key: value for key, value in data.items()
        if key in known
        and key not in _INTERNAL_KEYS
        and not key.startswith("FFlag_")
        and not key.endswith("_log")
    }
