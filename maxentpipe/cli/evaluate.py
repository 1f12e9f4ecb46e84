"""
Evaluate command for maxentpipe.
"""

from __future__ import annotations

import argparse
from pathlib import Path

from tabulate import tabulate

from . import EVENT_FORMATS, message, open_event_source
from ..errors import MaxentError
from ..evaluation import evaluate_events
from ..model_io import read_model


def add_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("model", type=Path, help="Model file written by 'train'")
    parser.add_argument("data", type=Path, help="Labelled test data")
    parser.add_argument("--format", choices=EVENT_FORMATS, default="events", help="Test data format (default: events)")
    parser.add_argument("--real-valued", action="store_true", default=None)
    parser.add_argument("--per-outcome", action="store_true", help="Also print accuracy per gold outcome")


def run(args: argparse.Namespace) -> int:
    for path in (args.model, args.data):
        if not path.exists():
            message(f"Error: File not found: {path}")
            return 1
    try:
        model = read_model(args.model)
        report = evaluate_events(model, open_event_source(args.data, args.format, real_valued=args.real_valued))
    except (OSError, MaxentError) as exc:
        message(f"Evaluation failed: {exc}")
        return 1

    print(tabulate([[report.correct, report.total, f"{report.accuracy * 100:.2f}%"]],
                   headers=["Correct", "Total", "Accuracy"]))
    if args.per_outcome:
        rows = [[gold, correct, total, f"{acc * 100:.2f}%"] for gold, correct, total, acc in report.per_outcome()]
        print()
        print(tabulate(rows, headers=["Outcome", "Correct", "Total", "Accuracy"]))
    return 0
