"""
Event indexing for maxentpipe.

Indexers turn a stream of ``Event`` objects into an ``IndexedTrainingSet``:
features below the frequency cutoff are dropped, features and outcomes get
dense integer ids, and (optionally) identical events are merged into one row
with a count.

Two strategies are available:

  - ``TwoPassIndexer``: counts features in a first pass while spooling the
    events to a temporary file, then indexes them in a second pass.
  - ``OnePassIndexer``: a single streaming pass. A feature joins the
    vocabulary once its running count reaches the cutoff, so earlier events
    see fewer features than they would with two passes.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

import numpy as np

from .errors import (
    ConfigurationError,
    IndexingIOError,
    InsufficientTrainingDataError,
    MalformedEventError,
)
from .event import ComparableEvent, Event

logger = logging.getLogger(__name__)

CUTOFF_DEFAULT = 5
SORT_DEFAULT = True


@dataclass
class CompressedEvents:
    """Flat (CSR style) view of the training contexts used by the trainers."""

    indptr: np.ndarray
    indices: np.ndarray
    data: np.ndarray
    event_ids: np.ndarray
    outcomes: np.ndarray
    counts: np.ndarray


@dataclass
class IndexedTrainingSet:
    """Integer-indexed, optionally deduplicated training data."""

    contexts: List[Tuple[int, ...]]
    outcomes: List[int]
    counts: List[int]
    pred_labels: List[str]
    outcome_labels: List[str]
    pred_counts: List[int]
    values: Optional[List[Optional[Tuple[float, ...]]]] = None
    num_events: int = 0
    _compressed: Optional[CompressedEvents] = field(default=None, repr=False, compare=False)

    @property
    def num_outcomes(self) -> int:
        return len(self.outcome_labels)

    @property
    def num_predicates(self) -> int:
        return len(self.pred_labels)

    @property
    def num_unique_events(self) -> int:
        return len(self.contexts)

    @property
    def has_values(self) -> bool:
        return self.values is not None and any(v is not None for v in self.values)

    def event_values(self, index: int) -> Optional[Tuple[float, ...]]:
        if self.values is None:
            return None
        return self.values[index]

    def compressed(self) -> CompressedEvents:
        """Return (and cache) the flat numpy representation of the contexts."""
        if self._compressed is None:
            lengths = np.fromiter((len(c) for c in self.contexts), dtype=np.int64, count=len(self.contexts))
            indptr = np.zeros(len(self.contexts) + 1, dtype=np.int64)
            np.cumsum(lengths, out=indptr[1:])
            indices = np.fromiter(
                (pid for context in self.contexts for pid in context),
                dtype=np.int64,
                count=int(indptr[-1]),
            )
            data = np.ones(int(indptr[-1]), dtype=np.float64)
            if self.values is not None:
                for ei, event_values in enumerate(self.values):
                    if event_values is not None:
                        data[indptr[ei]:indptr[ei + 1]] = event_values
            event_ids = np.repeat(np.arange(len(self.contexts), dtype=np.int64), lengths)
            self._compressed = CompressedEvents(
                indptr=indptr,
                indices=indices,
                data=data,
                event_ids=event_ids,
                outcomes=np.asarray(self.outcomes, dtype=np.int64),
                counts=np.asarray(self.counts, dtype=np.float64),
            )
        return self._compressed


def sort_and_merge(events: List[ComparableEvent], sort: bool) -> Tuple[List[ComparableEvent], int]:
    """
    Sort events and merge exact duplicates by summing their counts.

    Args:
        events: Indexed events (mutated: merged counts are accumulated in place)
        sort: If False, the events are kept as they are

    Returns:
        Tuple of (unique events, number of input events)
    """
    num_events = len(events)
    if not sort or not events:
        unique = list(events)
    else:
        events.sort(key=ComparableEvent.sort_key)
        unique = [events[0]]
        for candidate in events[1:]:
            champion = unique[-1]
            if candidate.sort_key() == champion.sort_key():
                champion.seen_count += candidate.seen_count
            else:
                unique.append(candidate)
    if not unique:
        raise InsufficientTrainingDataError(
            "Insufficient training data to create model.",
            hint="No event kept at least one feature above the cutoff.",
        )
    if sort:
        logger.info("Reduced %d events to %d.", num_events, len(unique))
    return unique, num_events


def _count_features(context: Sequence[str], counter: Dict[str, int]) -> None:
    for feature in context:
        counter[feature] = counter.get(feature, 0) + 1


class EventIndexer:
    """Common behaviour of the indexing strategies."""

    name = "base"

    def __init__(self, cutoff: int = CUTOFF_DEFAULT, sort_and_merge: bool = SORT_DEFAULT):
        if cutoff < 0:
            raise ConfigurationError(f"Cutoff must be >= 0, got {cutoff}")
        self.cutoff = cutoff
        self.sort_and_merge = sort_and_merge

    def index(
        self,
        events: Iterable[Event],
        cutoff: Optional[int] = None,
        sort_and_merge: Optional[bool] = None,
    ) -> IndexedTrainingSet:
        raise NotImplementedError

    def _assemble(
        self,
        comparable: List[ComparableEvent],
        pred_labels: List[str],
        pred_counts: List[int],
        outcome_labels: List[str],
        sort: bool,
        keep_values: bool,
    ) -> IndexedTrainingSet:
        unique, num_events = sort_and_merge(comparable, sort)
        values: Optional[List[Optional[Tuple[float, ...]]]] = None
        if keep_values:
            values = [ce.values for ce in unique]
        return IndexedTrainingSet(
            contexts=[ce.context_ids for ce in unique],
            outcomes=[ce.outcome_id for ce in unique],
            counts=[ce.seen_count for ce in unique],
            pred_labels=pred_labels,
            outcome_labels=outcome_labels,
            pred_counts=pred_counts,
            values=values,
            num_events=num_events,
        )


def _validated(events: Iterable[Event]) -> Iterator[Event]:
    """
    Yield events, skipping items that are not usable events.

    Items may be ``Event`` objects or raw ``(outcome, context[, values])``
    tuples; a tuple that does not make a valid event is rejected with a
    warning and indexing goes on. Errors raised by the source itself
    propagate.
    """
    for item in events:
        if isinstance(item, Event):
            yield item
        elif isinstance(item, (tuple, list)) and len(item) in (2, 3):
            try:
                event = Event(*item)
            except MalformedEventError as exc:
                logger.warning("Rejected malformed event: %s", exc.message)
                continue
            yield event
        else:
            logger.warning("Rejected malformed event: %r", item)


class TwoPassIndexer(EventIndexer):
    """Counts features first, spooling events to a temp file, then indexes them."""

    name = "two_pass"

    def __init__(
        self,
        cutoff: int = CUTOFF_DEFAULT,
        sort_and_merge: bool = SORT_DEFAULT,
        temp_dir: Optional[str] = None,
    ):
        super().__init__(cutoff, sort_and_merge)
        self.temp_dir = temp_dir

    def index(
        self,
        events: Iterable[Event],
        cutoff: Optional[int] = None,
        sort_and_merge: Optional[bool] = None,
    ) -> IndexedTrainingSet:
        cutoff = self.cutoff if cutoff is None else cutoff
        sort = self.sort_and_merge if sort_and_merge is None else sort_and_merge
        logger.info("Indexing events using cutoff of %d", cutoff)

        try:
            fd, tmp_path = tempfile.mkstemp(prefix="maxentpipe-events-", suffix=".jsonl", dir=self.temp_dir)
        except OSError as exc:
            raise IndexingIOError(f"Could not create temporary event file: {exc}") from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as store:
                num_events, counter, discovery = self._compute_event_counts(events, store, tmp_path)
            logger.info("Computed event counts: %d events", num_events)

            pred_labels = [p for p in discovery if counter[p] >= cutoff]
            pred_index = {p: i for i, p in enumerate(pred_labels)}
            pred_counts = [counter[p] for p in pred_labels]

            try:
                with open(tmp_path, "r", encoding="utf-8") as stored:
                    comparable, outcome_labels, has_values = self._index_stored(stored, pred_index)
            except OSError as exc:
                raise IndexingIOError(f"Failed to read temporary event file '{tmp_path}': {exc}") from exc
        finally:
            try:
                os.unlink(tmp_path)
            except OSError:
                logger.warning("Could not remove temporary event file %s", tmp_path)

        logger.info("Sorting and merging events..." if sort else "Collecting events...")
        return self._assemble(comparable, pred_labels, pred_counts, outcome_labels, sort, has_values)

    @staticmethod
    def _compute_event_counts(
        events: Iterable[Event], store, tmp_path: str
    ) -> Tuple[int, Dict[str, int], List[str]]:
        counter: Dict[str, int] = {}
        discovery: List[str] = []
        num_events = 0
        for event in _validated(events):
            try:
                store.write(json.dumps([event.outcome, list(event.context), event.values]))
                store.write("\n")
            except OSError as exc:
                raise IndexingIOError(f"Failed to write temporary event file '{tmp_path}': {exc}") from exc
            for feature in event.context:
                if feature not in counter:
                    discovery.append(feature)
            _count_features(event.context, counter)
            num_events += 1
        try:
            store.flush()
        except OSError as exc:
            raise IndexingIOError(f"Failed to write temporary event file '{tmp_path}': {exc}") from exc
        return num_events, counter, discovery

    @staticmethod
    def _index_stored(stored, pred_index: Dict[str, int]) -> Tuple[List[ComparableEvent], List[str], bool]:
        outcome_map: Dict[str, int] = {}
        comparable: List[ComparableEvent] = []
        has_values = False
        for line in stored:
            if not line.strip():
                continue
            outcome, context, values = json.loads(line)
            ids: List[int] = []
            kept_values: List[float] = []
            for pos, feature in enumerate(context):
                pid = pred_index.get(feature)
                if pid is not None:
                    ids.append(pid)
                    if values is not None:
                        kept_values.append(values[pos])
            if not ids:
                logger.warning("Dropped event %s:%s", outcome, context)
                continue
            outcome_id = outcome_map.setdefault(outcome, len(outcome_map))
            if values is not None:
                has_values = True
                comparable.append(ComparableEvent.create(outcome_id, ids, kept_values))
            else:
                comparable.append(ComparableEvent.create(outcome_id, ids))
        return comparable, list(outcome_map), has_values


class OnePassIndexer(EventIndexer):
    """Indexes events in one streaming pass; supports real-valued features."""

    name = "one_pass"

    def index(
        self,
        events: Iterable[Event],
        cutoff: Optional[int] = None,
        sort_and_merge: Optional[bool] = None,
    ) -> IndexedTrainingSet:
        cutoff = self.cutoff if cutoff is None else cutoff
        sort = self.sort_and_merge if sort_and_merge is None else sort_and_merge
        logger.info("Indexing events using cutoff of %d", cutoff)

        counter: Dict[str, int] = {}
        pred_index: Dict[str, int] = {}
        outcome_map: Dict[str, int] = {}
        comparable: List[ComparableEvent] = []
        has_values = False

        for event in _validated(events):
            _count_features(event.context, counter)
            for feature in event.context:
                if feature not in pred_index and counter[feature] >= cutoff:
                    pred_index[feature] = len(pred_index)

            ids: List[int] = []
            kept_values: List[float] = []
            for pos, feature in enumerate(event.context):
                pid = pred_index.get(feature)
                if pid is not None:
                    ids.append(pid)
                    if event.values is not None:
                        kept_values.append(event.values[pos])
            if not ids:
                logger.warning("Dropped event %s:%s", event.outcome, list(event.context))
                continue
            outcome_id = outcome_map.setdefault(event.outcome, len(outcome_map))
            if event.values is not None:
                has_values = True
                comparable.append(ComparableEvent.create(outcome_id, ids, kept_values))
            else:
                comparable.append(ComparableEvent.create(outcome_id, ids))

        pred_labels = list(pred_index)
        pred_counts = [counter[p] for p in pred_labels]
        logger.info("Sorting and merging events..." if sort else "Collecting events...")
        return self._assemble(comparable, pred_labels, pred_counts, list(outcome_map), sort, has_values)


# Canonical indexer name -> aliases
_INDEXER_ALIAS_DEFINITIONS: Dict[str, Set[str]] = {
    "two_pass": {"two_pass", "twopass", "two-pass", "2pass"},
    "one_pass": {"one_pass", "onepass", "one-pass", "1pass", "one_pass_real_value", "onepass_realvalue"},
}

INDEXERS = {
    "two_pass": TwoPassIndexer,
    "one_pass": OnePassIndexer,
}

INDEXER_LOOKUP: Dict[str, str] = {}
for canonical, aliases in _INDEXER_ALIAS_DEFINITIONS.items():
    for alias in aliases | {canonical}:
        INDEXER_LOOKUP[alias.lower()] = canonical


def get_indexer(name: str, cutoff: int = CUTOFF_DEFAULT, sort_and_merge: bool = SORT_DEFAULT) -> EventIndexer:
    """Instantiate an indexer by name or alias."""
    canonical = INDEXER_LOOKUP.get((name or "").lower())
    if canonical is None:
        raise ConfigurationError(
            f"Unknown data indexer '{name}'",
            hint=f"Choose one of: {', '.join(sorted(INDEXERS))}",
        )
    return INDEXERS[canonical](cutoff=cutoff, sort_and_merge=sort_and_merge)
