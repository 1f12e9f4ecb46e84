"""
Command line entry point: ``python -m maxentpipe {train,evaluate,info,decode}``.
"""

from __future__ import annotations

import argparse
import logging
import sys

from . import __version__

TASK_CHOICES = ("train", "evaluate", "info", "decode")


def build_parser() -> argparse.ArgumentParser:
    from .cli import decode, evaluate, info, train

    parser = argparse.ArgumentParser(
        prog="maxentpipe",
        description="Train and apply maximum-entropy classifiers.",
    )
    parser.add_argument("-V", "--version", action="version", version=f"maxentpipe {__version__}")

    # Common arguments inherited by every subcommand
    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parent_parser.add_argument("--verbose", action="store_true", help="Print training progress")

    subparsers = parser.add_subparsers(dest="task", required=False)
    for name, module, help_text in (
        ("train", train, "Train a model from labelled events"),
        ("evaluate", evaluate, "Measure a model's accuracy on labelled events"),
        ("info", info, "Describe a model, or list algorithms and settings"),
        ("decode", decode, "Label token sequences with beam search"),
    ):
        sub = subparsers.add_parser(name, help=help_text, parents=[parent_parser])
        module.add_arguments(sub)
        sub.set_defaults(_run=module.run)
    return parser


def _configure_logging(args: argparse.Namespace) -> None:
    if getattr(args, "debug", False):
        level = logging.DEBUG
    elif getattr(args, "verbose", False):
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="[maxentpipe] %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    else:
        argv = list(argv)

    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.task:
        parser.error("No task specified. Use one of: " + ", ".join(TASK_CHOICES))

    _configure_logging(args)
    return args._run(args)


if __name__ == "__main__":
    sys.exit(main())
