"""
Info command for maxentpipe: describe a model, or list algorithms and settings.
"""

from __future__ import annotations

import argparse
from pathlib import Path

import numpy as np
from tabulate import tabulate

from . import message
from ..config import get_config_file, load_training_config
from ..errors import MaxentError
from ..indexer import INDEXERS
from ..model_io import read_model
from ..trainer_registry import TRAINERS


def add_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("model", type=Path, nargs="?", help="Model file to describe")
    parser.add_argument("--top", type=int, default=0, help="Show the N heaviest features per outcome")


def _describe_model(path: Path, top: int) -> int:
    try:
        model = read_model(path)
    except MaxentError as exc:
        message(f"Could not read model: {exc}")
        return 1
    weights = model.weights
    nonzero = int(np.count_nonzero(weights))
    rows = [
        ["Type", model.model_type],
        ["Outcomes", model.num_outcomes],
        ["Predicates", model.num_predicates],
        ["Parameters", weights.size],
        ["Non-zero parameters", nonzero],
        ["Correction constant", model.correction_constant],
    ]
    print(tabulate(rows, tablefmt="plain"))
    if top > 0 and model.num_predicates:
        for oi, label in enumerate(model.outcome_labels):
            order = np.argsort(-weights[oi], kind="stable")[:top]
            table = [[model.pred_labels[pi], f"{weights[oi, pi]:.4f}"] for pi in order]
            print()
            print(tabulate(table, headers=[label, "Weight"]))
    return 0


def _describe_setup() -> int:
    print(tabulate([[spec.name, spec.description] for spec in TRAINERS.values()],
                   headers=["Algorithm", "Description"]))
    print()
    print(tabulate([[name] for name in INDEXERS], headers=["Indexer"]))
    print()
    try:
        config = load_training_config()
    except MaxentError as exc:
        message(f"Invalid training settings in {get_config_file(create_dir=False)}: {exc}")
        return 1
    print(tabulate(sorted(config.to_dict().items()), headers=["Setting", "Value"]))
    return 0


def run(args: argparse.Namespace) -> int:
    if args.model is not None:
        if not args.model.exists():
            message(f"Error: Model not found: {args.model}")
            return 1
        return _describe_model(args.model, args.top)
    return _describe_setup()
