"""
Core module for the note dashboard
Contains configuration, errors, the note model, date helpers and the note store
"""

from .config import Config
from .errors import (
    DashboardError, NotFoundError, StaleDataError, InvalidInputError, HostFailureError,
)
from .models import Line, Note, ProjectReview
from .store import (
    DocumentStore, FileDocumentStore, InMemoryDocumentStore, LiveEditor, Prompter, AutoPrompter,
)

__all__ = [
    'Config',
    'DashboardError', 'NotFoundError', 'StaleDataError', 'InvalidInputError', 'HostFailureError',
    'Line', 'Note', 'ProjectReview',
    'DocumentStore', 'FileDocumentStore', 'InMemoryDocumentStore', 'LiveEditor',
    'Prompter', 'AutoPrompter',
]
