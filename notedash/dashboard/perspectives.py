"""
Perspectives: named, saved snapshots of dashboard settings.

The PerspectiveStore owns the live DashboardSettings. It persists both the
perspective list and the live settings in the 'dashboard' config section,
always together in a single write.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from notedash.core.config import Config
from notedash.core.errors import InvalidInputError, NotFoundError
from notedash.dashboard.settings import DashboardSettings, clean_settings_dict

DEFAULT_PERSPECTIVE = "-"
PERSPECTIVES_KEY = "perspectives"
SETTINGS_KEY = "settings"


@dataclass
class PerspectiveDef:
    """A named settings snapshot"""
    name: str
    dashboard_settings: Dict[str, Any] = field(default_factory=dict)
    is_active: bool = False
    is_modified: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "dashboardSettings": dict(self.dashboard_settings),
            "isActive": self.is_active,
            "isModified": self.is_modified,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PerspectiveDef':
        settings = data.get("dashboardSettings", data.get("dashboard_settings")) or {}
        return cls(
            name=str(data.get("name", "")),
            dashboard_settings=clean_settings_dict(settings) if isinstance(settings, dict) else {},
            is_active=bool(data.get("isActive", data.get("is_active", False))),
            is_modified=bool(data.get("isModified", data.get("is_modified", False))),
        )


def default_perspectives() -> List[PerspectiveDef]:
    return [
        PerspectiveDef(name=DEFAULT_PERSPECTIVE, is_active=True),
        PerspectiveDef(name="Home", dashboard_settings={"excluded_folders": ["Work", "@Archive", "@Templates"]}),
        PerspectiveDef(name="Work", dashboard_settings={"excluded_folders": ["Home", "@Archive", "@Templates"]}),
    ]


class PerspectiveStore:
    """
    Owner of the perspective list and the live settings snapshot.

    Usage:
        store = PerspectiveStore(config)
        settings = store.settings          # live snapshot
        store.update_settings({"show_week_section": False})
        store.switch_to("Work")
    """

    def __init__(self, config: Config):
        self.config = config
        self.logger = logging.getLogger("dashboard.perspectives")
        self.perspectives: List[PerspectiveDef] = []
        self.settings = DashboardSettings()
        self.load()

    # =========================================================================
    # Persistence
    # =========================================================================

    def load(self) -> None:
        """Read the persisted pair, repairing the list if it is malformed"""
        raw_list = self.config.get(PERSPECTIVES_KEY, "dashboard")
        perspectives: List[PerspectiveDef] = []
        if isinstance(raw_list, list):
            for entry in raw_list:
                if not isinstance(entry, dict):
                    self.logger.warning(f"Dropping malformed perspective entry {entry!r}")
                    continue
                perspective = PerspectiveDef.from_dict(entry)
                if perspective.name and not self._find(perspective.name, perspectives):
                    perspectives.append(perspective)
        elif raw_list is not None:
            self.logger.warning("Stored perspective list is not a list; using defaults")

        if not perspectives:
            perspectives = default_perspectives()
        self.perspectives = self._repair(perspectives)

        raw_settings = self.config.get(SETTINGS_KEY, "dashboard")
        self.settings = DashboardSettings.from_dict(raw_settings if isinstance(raw_settings, dict) else None)
        self.settings.active_perspective_name = self.active().name

    def _repair(self, perspectives: List[PerspectiveDef]) -> List[PerspectiveDef]:
        if not self._find(DEFAULT_PERSPECTIVE, perspectives):
            perspectives.insert(0, PerspectiveDef(name=DEFAULT_PERSPECTIVE))
        active = [p for p in perspectives if p.is_active]
        if len(active) != 1:
            keep = active[0] if active else self._find(DEFAULT_PERSPECTIVE, perspectives)
            self.logger.warning(f"{len(active)} active perspectives found; keeping '{keep.name}'")
            for p in perspectives:
                p.is_active = p is keep
        for p in perspectives:
            if not p.is_active:
                p.is_modified = False
        return perspectives

    def persist(self) -> None:
        """Write the perspective list and live settings in one step"""
        self.config.set_many({
            PERSPECTIVES_KEY: [p.to_dict() for p in self.perspectives],
            SETTINGS_KEY: self.settings.to_dict(),
        }, section="dashboard")

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def _find(name: str, perspectives: List[PerspectiveDef]) -> Optional[PerspectiveDef]:
        for p in perspectives:
            if p.name == name:
                return p
        return None

    def get(self, name: str) -> Optional[PerspectiveDef]:
        return self._find(name, self.perspectives)

    def active(self) -> PerspectiveDef:
        for p in self.perspectives:
            if p.is_active:
                return p
        return self.get(DEFAULT_PERSPECTIVE)

    def names(self) -> List[str]:
        return [p.name for p in self.perspectives]

    def to_list(self) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in self.perspectives]

    # =========================================================================
    # Live settings
    # =========================================================================

    def update_settings(self, changes: Dict[str, Any]) -> DashboardSettings:
        """
        Apply edits to the live settings.

        When a named perspective is active it is marked modified instead of
        being rewritten; with '-' active the edits are simply the live state.
        """
        changes = {k: v for k, v in changes.items() if k != "active_perspective_name"}
        self.settings = self.settings.with_updates(changes)
        self.settings.prune_tag_sections()
        active = self.active()
        if active.name != DEFAULT_PERSPECTIVE:
            active.is_modified = True
        self.persist()
        return self.settings

    # =========================================================================
    # Operations
    # =========================================================================

    def _validate_new_name(self, name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("Perspective name cannot be empty")
        if name == DEFAULT_PERSPECTIVE:
            raise InvalidInputError(f"'{DEFAULT_PERSPECTIVE}' is reserved")
        if name.endswith("*"):
            raise InvalidInputError("Perspective names cannot end with '*'")
        if self.get(name) is not None:
            raise InvalidInputError(f"Perspective '{name}' already exists")
        return name

    def switch_to(self, name: str) -> List[PerspectiveDef]:
        """
        Make another perspective active.

        Raises:
            NotFoundError: if no perspective has that name (nothing is changed)
        """
        target = self.get(name)
        if target is None:
            raise NotFoundError(f"Perspective '{name}' not found")

        base = self.settings.without_tag_sections().to_dict()
        new_settings = DashboardSettings.from_dict({**base, **target.dashboard_settings})
        new_settings.prune_tag_sections()
        new_settings.active_perspective_name = target.name

        for p in self.perspectives:
            p.is_active = p is target
            p.is_modified = False
        self.settings = new_settings
        self.persist()
        self.logger.info(f"Switched to perspective '{name}'")
        return self.perspectives

    def save(self) -> bool:
        """Snapshot the live settings into the active perspective if it is modified"""
        active = self.active()
        if active.name == DEFAULT_PERSPECTIVE or not active.is_modified:
            self.logger.debug(f"Nothing to save for perspective '{active.name}'")
            return False
        active.dashboard_settings = clean_settings_dict(self.settings.to_dict())
        active.is_modified = False
        self.persist()
        self.logger.info(f"Saved perspective '{active.name}'")
        return True

    def add(self, name: str) -> PerspectiveDef:
        """New perspective from the live settings; it becomes the active one"""
        name = self._validate_new_name(name)
        perspective = PerspectiveDef(
            name=name,
            dashboard_settings=clean_settings_dict(self.settings.to_dict()),
        )
        self.perspectives.append(perspective)
        for p in self.perspectives:
            p.is_active = p is perspective
            p.is_modified = False
        self.settings.active_perspective_name = name
        self.persist()
        self.logger.info(f"Added perspective '{name}'")
        return perspective

    def copy(self, source: str, new_name: str) -> PerspectiveDef:
        """Duplicate a perspective's snapshot under a new name (not activated)"""
        original = self.get(source)
        if original is None:
            raise NotFoundError(f"Perspective '{source}' not found")
        new_name = self._validate_new_name(new_name)
        snapshot = (clean_settings_dict(self.settings.to_dict())
                    if original.is_active else dict(original.dashboard_settings))
        perspective = PerspectiveDef(name=new_name, dashboard_settings=snapshot)
        self.perspectives.append(perspective)
        self.persist()
        return perspective

    def rename(self, old: str, new: str) -> PerspectiveDef:
        perspective = self.get(old)
        if perspective is None:
            raise NotFoundError(f"Perspective '{old}' not found")
        if old == DEFAULT_PERSPECTIVE:
            raise InvalidInputError(f"'{DEFAULT_PERSPECTIVE}' cannot be renamed")
        perspective.name = self._validate_new_name(new)
        if perspective.is_active:
            self.settings.active_perspective_name = perspective.name
        self.persist()
        self.logger.info(f"Renamed perspective '{old}' to '{perspective.name}'")
        return perspective

    def delete(self, name: str) -> bool:
        """
        Remove a perspective.

        Returns:
            True if the deleted perspective was active (the store has then
            switched to '-')
        """
        perspective = self.get(name)
        if perspective is None:
            raise NotFoundError(f"Perspective '{name}' not found")
        if name == DEFAULT_PERSPECTIVE:
            raise InvalidInputError(f"'{DEFAULT_PERSPECTIVE}' cannot be deleted")
        was_active = perspective.is_active
        self.perspectives.remove(perspective)
        if was_active:
            self.switch_to(DEFAULT_PERSPECTIVE)
        else:
            self.persist()
        self.logger.info(f"Deleted perspective '{name}'")
        return was_active

    def replace_all(self, entries: List[Dict[str, Any]]) -> List[PerspectiveDef]:
        """Bulk replace of the list as edited in the UI"""
        perspectives = []
        for entry in entries:
            perspective = PerspectiveDef.from_dict(entry)
            if not perspective.name or self._find(perspective.name, perspectives):
                raise InvalidInputError(f"Invalid or duplicate perspective name '{perspective.name}'")
            perspectives.append(perspective)
        self.perspectives = self._repair(perspectives)
        self.settings.active_perspective_name = self.active().name
        self.persist()
        return self.perspectives
