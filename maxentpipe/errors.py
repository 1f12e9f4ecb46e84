"""Error hierarchy for maxentpipe.

Indexing, training and model loading raise the classes below so that callers
(and the CLI) can tell a bad corpus from a bad configuration or a corrupted
model file.
"""

from __future__ import annotations

import textwrap
from typing import Optional


class MaxentError(RuntimeError):
    """Base error for all maxentpipe failures."""

    def __init__(self, message: str, *, hint: Optional[str] = None) -> None:
        final_message = message
        if hint:
            final_message = f"{message}\n{self._format_hint(hint)}"
        super().__init__(final_message)
        self.message = message
        self.hint = hint

    @staticmethod
    def _format_hint(hint: str) -> str:
        return textwrap.indent(f"Hint: {hint}", prefix="  ")


class ConfigurationError(MaxentError):
    """Raised when training or table settings are invalid."""


class DuplicateKeyError(ConfigurationError):
    """Raised when a predicate index table is built from non-unique keys."""


class MalformedEventError(MaxentError):
    """Raised for a single event that cannot be used for training."""


class InsufficientTrainingDataError(MaxentError):
    """Raised when the indexed data cannot support a model."""


class IndexingIOError(MaxentError):
    """Raised when the temporary event storage cannot be written or read."""


class TrainingError(MaxentError):
    """Raised when an optimizer reaches a state it cannot recover from."""


class ModelFormatError(MaxentError):
    """Raised when a stored model is corrupted or incomplete."""


__all__ = [
    "MaxentError",
    "ConfigurationError",
    "DuplicateKeyError",
    "MalformedEventError",
    "InsufficientTrainingDataError",
    "IndexingIOError",
    "TrainingError",
    "ModelFormatError",
]
