"""
Training events for maxentpipe.

An ``Event`` is one labelled example: an outcome plus the names of the
features (predicates) active for it, optionally with a non-negative real value
per feature. A ``ComparableEvent`` is the integer-indexed form produced by the
indexers; it can be sorted and merged with its duplicates.

Events travel through text files one per line::

    outcome feat1 feat2 feat3
    outcome feat1=0.5 feat2=2.0

The second form carries real values. Blank lines are ignored.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .errors import MalformedEventError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """A single training example."""

    outcome: str
    context: Tuple[str, ...]
    values: Optional[Tuple[float, ...]] = None

    def __post_init__(self) -> None:
        if not self.outcome:
            raise MalformedEventError("Event has no outcome")
        try:
            object.__setattr__(self, "context", tuple(self.context))
            if self.values is not None:
                object.__setattr__(self, "values", tuple(float(v) for v in self.values))
        except (TypeError, ValueError) as exc:
            raise MalformedEventError(
                f"Event '{self.outcome}' has unusable features or values: {exc}"
            ) from exc
        if self.values is not None:
            if len(self.values) != len(self.context):
                raise MalformedEventError(
                    f"Event '{self.outcome}' has {len(self.context)} features "
                    f"but {len(self.values)} values"
                )
            for name, value in zip(self.context, self.values):
                if value < 0 or not math.isfinite(value):
                    raise MalformedEventError(
                        f"Negative or undefined value {value} for feature '{name}'",
                        hint="Real-valued features must be finite and >= 0.",
                    )

    def __str__(self) -> str:
        return event_to_line(self)


@dataclass(order=True)
class ComparableEvent:
    """An indexed event; equal events share outcome and context ids."""

    outcome_id: int
    context_ids: Tuple[int, ...]
    values: Optional[Tuple[float, ...]] = field(default=None, compare=False)
    seen_count: int = field(default=1, compare=False)

    @classmethod
    def create(
        cls,
        outcome_id: int,
        context_ids: Sequence[int],
        values: Optional[Sequence[float]] = None,
    ) -> "ComparableEvent":
        """Build an event with context ids sorted (values follow their ids)."""
        if values is None:
            return cls(outcome_id, tuple(sorted(context_ids)))
        pairs = sorted(zip(context_ids, values))
        return cls(
            outcome_id,
            tuple(pid for pid, _ in pairs),
            tuple(float(v) for _, v in pairs),
        )

    def sort_key(self) -> Tuple:
        # Values join the key so real-valued events only merge when identical.
        return (self.outcome_id, self.context_ids, self.values or ())


def parse_event_line(line: str, real_valued: Optional[bool] = None) -> Optional[Event]:
    """
    Parse one line of an event file.

    Args:
        line: The text line (outcome followed by whitespace separated features)
        real_valued: Parse ``name=value`` features. ``None`` detects it from the line.

    Returns:
        The parsed Event, or None for a blank line.
    """
    parts = line.split()
    if not parts:
        return None
    outcome, features = parts[0], parts[1:]
    if real_valued is None:
        real_valued = bool(features) and all(_has_value(f) for f in features)
    if not real_valued:
        return Event(outcome, tuple(features))
    names: List[str] = []
    values: List[float] = []
    for feature in features:
        name, value = split_feature_value(feature)
        names.append(name)
        values.append(value)
    return Event(outcome, tuple(names), tuple(values))


def _has_value(feature: str) -> bool:
    name, sep, raw = feature.rpartition("=")
    if not sep or not name:
        return False
    try:
        float(raw)
    except ValueError:
        return False
    return True


def split_feature_value(feature: str) -> Tuple[str, float]:
    """Split ``name=value``; a feature without a numeric value counts as 1.0."""
    name, sep, raw = feature.rpartition("=")
    if not sep or not name:
        return feature, 1.0
    try:
        return name, float(raw)
    except ValueError:
        return feature, 1.0


def parse_contexts(features: Sequence[str]) -> Tuple[List[str], List[float]]:
    """Split a list of ``name=value`` strings into names and values."""
    names: List[str] = []
    values: List[float] = []
    for feature in features:
        name, value = split_feature_value(feature)
        names.append(name)
        values.append(value)
    return names, values


def event_to_line(event: Event) -> str:
    """Serialize an event to the line format read by ``parse_event_line``."""
    if event.values is None:
        return " ".join((event.outcome,) + event.context)
    features = [f"{name}={value!r}" for name, value in zip(event.context, event.values)]
    return " ".join([event.outcome] + features)


def read_events(lines: Iterable[str], real_valued: Optional[bool] = None) -> Iterator[Event]:
    """
    Yield events from text lines, skipping malformed ones with a warning.

    Args:
        lines: Iterable of text lines
        real_valued: Force or disable ``name=value`` parsing (None = detect)
    """
    for line_no, line in enumerate(lines, start=1):
        try:
            event = parse_event_line(line, real_valued=real_valued)
        except MalformedEventError as exc:
            logger.warning("Skipping malformed event on line %d: %s", line_no, exc.message)
            continue
        if event is not None:
            yield event


class FileEventSource:
    """Restartable event stream backed by a text file.

    Every iteration reopens the file, so the source can be consumed by an
    indexer and then again by an evaluator.
    """

    def __init__(self, path: Union[str, Path], real_valued: Optional[bool] = None, encoding: str = "utf-8"):
        self.path = Path(path)
        self.real_valued = real_valued
        self.encoding = encoding

    def __iter__(self) -> Iterator[Event]:
        with open(self.path, "r", encoding=self.encoding) as handle:
            yield from read_events(handle, real_valued=self.real_valued)

    def __repr__(self) -> str:
        return f"FileEventSource({str(self.path)!r})"


def write_events(events: Iterable[Event], path: Union[str, Path], encoding: str = "utf-8") -> int:
    """Write events one per line; returns the number written."""
    count = 0
    with open(path, "w", encoding=encoding) as handle:
        for event in events:
            handle.write(event_to_line(event))
            handle.write("\n")
            count += 1
    return count
