"""Error kinds shared by the pipeline, the audit engine and the API layer."""
from __future__ import annotations


class VettingError(Exception):
    """Base class for all errors raised by vetting operations."""


class ValidationError(VettingError):
    """Malformed input, invalid enum value, or a disallowed transition."""

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.reason = reason


class NotFoundError(VettingError):
    """Referenced record does not exist or belongs to a different parent."""


class ConflictError(VettingError):
    """Duplicate or already-applied change; existing state is untouched."""


class PermissionDenied(VettingError):
    """The caller's capability context lacks the required flag."""


class DependencyError(VettingError):
    """An external collaborator (search, draft generation, persistence) failed."""

    def __init__(self, message: str, not_configured: bool = False):
        super().__init__(message)
        self.not_configured = not_configured


class SearchError(DependencyError):
    """Search provider call failed or timed out."""


class DraftGenerationError(DependencyError):
    """Draft generation failed or returned unparseable output."""
