"""Exceptions raised by the handoff pack pipeline."""

from __future__ import annotations


class HandoffError(RuntimeError):
    """Base class for handoff pack failures that callers should see."""


class HandoffConfigError(HandoffError):
    """Raised when a configuration file cannot be loaded or validated."""


class TemplateError(HandoffError):
    """Raised when the template manifest or a template file is unusable."""


class StagingConflictError(HandoffError):
    """Raised when a staging path is written more than once."""
