"""Registry of training algorithms and the main ``train`` entry point."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Set

from .config import TrainingConfig
from .errors import ConfigurationError
from .event import Event
from .indexer import IndexedTrainingSet, get_indexer
from .model import MaxentModel

logger = logging.getLogger(__name__)

# Builds an object exposing ``train(IndexedTrainingSet) -> MaxentModel``
TrainerFactory = Callable[[TrainingConfig], Any]


@dataclass(frozen=True)
class TrainerSpec:
    """Specification describing how to build a trainer from a config."""

    name: str
    description: str
    factory: TrainerFactory
    model_type: str


def _make_gis(config: TrainingConfig):
    from .gis import GISTrainer

    return GISTrainer(
        iterations=config.iterations,
        threads=config.threads,
        smoothing=config.smoothing,
        smoothing_observation=config.smoothing_observation,
        gaussian_sigma=config.gaussian_sigma,
        ll_threshold=config.ll_threshold,
        load_factor=config.load_factor,
    )


def _make_qn(config: TrainingConfig):
    from .quasinewton import QNTrainer

    if config.threads > 1:
        logger.info("The quasi-Newton trainer is single threaded; ignoring threads=%d", config.threads)
    return QNTrainer(
        iterations=config.iterations,
        l1_cost=config.l1_cost,
        l2_cost=config.l2_cost,
        num_updates=config.num_updates,
        max_fct_eval=config.max_fct_eval,
        load_factor=config.load_factor,
    )


TRAINERS: Dict[str, TrainerSpec] = {
    "GIS": TrainerSpec(
        name="GIS",
        description="Generalized Iterative Scaling (optionally multi-threaded).",
        factory=_make_gis,
        model_type="GIS",
    ),
    "QN": TrainerSpec(
        name="QN",
        description="Limited-memory quasi-Newton (L-BFGS, OWL-QN with L1 cost).",
        factory=_make_qn,
        model_type="QN",
    ),
}

# Canonical algorithm -> alias strings
_ALGORITHM_ALIAS_DEFINITIONS: Dict[str, Set[str]] = {
    "GIS": {"gis", "maxent"},
    "QN": {"qn", "maxent_qn", "lbfgs", "l-bfgs", "owlqn", "owl-qn", "quasi-newton", "quasinewton"},
}

ALGORITHM_LOOKUP: Dict[str, str] = {}
for canonical, aliases in _ALGORITHM_ALIAS_DEFINITIONS.items():
    for alias in aliases | {canonical}:
        ALGORITHM_LOOKUP[alias.lower()] = canonical


def resolve_algorithm(name: Optional[str]) -> TrainerSpec:
    """Return the TrainerSpec for an algorithm name or alias."""
    canonical = ALGORITHM_LOOKUP.get((name or "").strip().lower())
    if canonical is None:
        raise ConfigurationError(
            f"Unknown training algorithm '{name}'",
            hint=f"Choose one of: {', '.join(sorted(TRAINERS))}",
        )
    return TRAINERS[canonical]


def create_trainer(config: TrainingConfig):
    return resolve_algorithm(config.algorithm).factory(config)


def index_events(events: Iterable[Event], config: TrainingConfig) -> IndexedTrainingSet:
    """Index ``events`` with the indexer, cutoff and merge policy of ``config``."""
    indexer = get_indexer(config.indexer, cutoff=config.cutoff, sort_and_merge=config.sort_and_merge)
    return indexer.index(events)


def train(events: Iterable[Event], config: Optional[TrainingConfig] = None) -> MaxentModel:
    """
    Index a (restartable) event stream and train a model on it.

    Args:
        events: Training events
        config: Training configuration; defaults to ``TrainingConfig()``

    Returns:
        The trained MaxentModel
    """
    config = (config or TrainingConfig()).validate()
    spec = resolve_algorithm(config.algorithm)
    logger.info("Training %s model (cutoff=%d, iterations=%d)", spec.name, config.cutoff, config.iterations)
    indexed = index_events(events, config)
    return spec.factory(config).train(indexed)
