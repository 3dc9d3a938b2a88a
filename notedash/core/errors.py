"""
Error taxonomy for the dashboard engine.

Handlers and generators catch these at their entry points and turn them
into failure results; nothing here is meant to escape to the UI layer.
"""


class DashboardError(Exception):
    """Base class for all dashboard errors."""


class NotFoundError(DashboardError):
    """Target document, line or perspective is absent."""


class StaleDataError(DashboardError):
    """Cached or persisted data could not be read or parsed."""


class InvalidInputError(DashboardError):
    """Request rejected before any mutation (bad date grammar, empty name, ...)."""


class HostFailureError(DashboardError):
    """The document store refused a write."""
