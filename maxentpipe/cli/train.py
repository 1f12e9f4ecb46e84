"""
Train command for maxentpipe.
"""

from __future__ import annotations

import argparse
from pathlib import Path

from . import EVENT_FORMATS, message, open_event_source
from ..config import TrainingConfig, load_training_config
from ..errors import MaxentError
from ..model_io import write_model
from ..trainer_registry import train


def add_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("data", type=Path, help="Training data file")
    parser.add_argument("-o", "--output", type=Path, required=True, help="Where to write the model (.json or .json.gz)")
    parser.add_argument("--format", choices=EVENT_FORMATS, default="events", help="Training data format (default: events)")
    parser.add_argument("--real-valued", action="store_true", default=None,
                        help="Parse name=value features (default: detect per line)")
    parser.add_argument("--params", type=Path, help="Training parameters file (key=value lines or JSON)")
    parser.add_argument("--algorithm", help="GIS or QN (aliases: maxent, maxent_qn, lbfgs)")
    parser.add_argument("--iterations", type=int)
    parser.add_argument("--cutoff", type=int, help="Minimum feature frequency")
    parser.add_argument("--indexer", help="two_pass or one_pass")
    parser.add_argument("--no-sort", dest="sort_and_merge", action="store_false", default=None,
                        help="Do not merge identical events")
    parser.add_argument("--threads", type=int, help="GIS worker threads")
    parser.add_argument("--smoothing", action="store_true", default=None, help="GIS: smooth unseen feature/outcome pairs")
    parser.add_argument("--smoothing-observation", type=float)
    parser.add_argument("--gaussian-sigma", type=float, help="GIS: Gaussian prior sigma")
    parser.add_argument("--ll-threshold", type=float, help="GIS: minimum log-likelihood improvement")
    parser.add_argument("--l1-cost", type=float, help="QN: L1 regularization cost")
    parser.add_argument("--l2-cost", type=float, help="QN: L2 regularization cost")


def _config_from_args(args: argparse.Namespace) -> TrainingConfig:
    overrides = {
        key: getattr(args, key)
        for key in (
            "algorithm",
            "iterations",
            "cutoff",
            "indexer",
            "sort_and_merge",
            "threads",
            "smoothing",
            "smoothing_observation",
            "gaussian_sigma",
            "ll_threshold",
            "l1_cost",
            "l2_cost",
        )
    }
    if args.params:
        if args.params.suffix == ".json":
            base = TrainingConfig.from_json(args.params)
        else:
            base = TrainingConfig.from_params_file(args.params)
        return base.updated(overrides).validate()
    return load_training_config(overrides)


def run(args: argparse.Namespace) -> int:
    if not args.data.exists():
        message(f"Error: Training data not found: {args.data}")
        return 1
    try:
        config = _config_from_args(args)
        events = open_event_source(args.data, args.format, real_valued=args.real_valued)
        model = train(events, config)
        write_model(model, args.output)
    except (OSError, MaxentError) as exc:
        message(f"Training failed: {exc}")
        return 1
    message(
        f"Trained {model.model_type} model with {model.num_outcomes} outcomes and "
        f"{model.num_predicates} predicates. Model saved to: {args.output}"
    )
    return 0
