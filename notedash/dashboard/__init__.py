"""
Dashboard module for the note dashboard.

Provides section generation, the done-count cache, perspectives, the
refresh/merge engine, the action bridge and CLI formatting.
"""

from .models import (
    SectionCode,
    ItemType,
    Section,
    SectionItem,
    LineProjection,
    ProjectProjection,
    ActionButton,
    DoneCounts,
)
from .settings import DashboardSettings
from .classifiers import Classifiers
from .done_counts import DoneCountCache, DoneCountRecord
from .perspectives import PerspectiveDef, PerspectiveStore
from .refresh import DashboardState, RefreshEngine, merge_sections
from .actions import ActionBridge, ActionDirective, ActionRequest, ActionState, HandlerResult
from .service import DashboardService
from .formatter import DashboardFormatter

__all__ = [
    # Models
    'SectionCode',
    'ItemType',
    'Section',
    'SectionItem',
    'LineProjection',
    'ProjectProjection',
    'ActionButton',
    'DoneCounts',
    # Settings and perspectives
    'DashboardSettings',
    'PerspectiveDef',
    'PerspectiveStore',
    # Engine
    'Classifiers',
    'DoneCountCache',
    'DoneCountRecord',
    'DashboardState',
    'RefreshEngine',
    'merge_sections',
    # Actions
    'ActionBridge',
    'ActionDirective',
    'ActionRequest',
    'ActionState',
    'HandlerResult',
    'DashboardService',
    # Formatter
    'DashboardFormatter',
]
