"""
Decode command for maxentpipe: label token sequences with beam search.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from . import message
from ..beam_search import DEFAULT_BEAM_SIZE, BeamSearch
from ..errors import MaxentError
from ..model_io import read_model
from ..sequence_features import WindowContextGenerator
from ..validators import (
    BilouSequenceValidator,
    ChunkerSequenceValidator,
    NameFinderSequenceValidator,
)

VALIDATORS = {
    "none": None,
    "names": NameFinderSequenceValidator,
    "bilou": BilouSequenceValidator,
    "chunk": ChunkerSequenceValidator,
}


def add_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("model", type=Path, help="Model trained on --format tagged data")
    parser.add_argument("input", type=Path, nargs="?", help="One whitespace-tokenized sentence per line (default: stdin)")
    parser.add_argument("--beam-size", type=int, default=DEFAULT_BEAM_SIZE)
    parser.add_argument("--num-sequences", type=int, default=1, help="Print the N best sequences per sentence")
    parser.add_argument("--validator", choices=sorted(VALIDATORS), default="none")
    parser.add_argument("--cache-size", type=int, default=0, help="Context cache entries (0 disables)")


def run(args: argparse.Namespace) -> int:
    try:
        model = read_model(args.model)
    except (OSError, MaxentError) as exc:
        message(f"Could not read model: {exc}")
        return 1
    validator_cls = VALIDATORS[args.validator]
    validator = validator_cls() if validator_cls is not None else None
    try:
        search = BeamSearch(model, beam_size=args.beam_size, cache_size=args.cache_size)
    except MaxentError as exc:
        message(f"Decoding failed: {exc}")
        return 1
    generator = WindowContextGenerator()

    try:
        handle = open(args.input, "r", encoding="utf-8") if args.input else sys.stdin
    except OSError as exc:
        message(f"Could not read input: {exc}")
        return 1
    try:
        for line in handle:
            tokens = line.split()
            if not tokens:
                print()
                continue
            sequences = search.best_sequences(args.num_sequences, tokens, generator, validator=validator)
            if not sequences:
                message(f"No legal label sequence for: {line.strip()}")
                print()
                continue
            for seq in sequences:
                tagged = " ".join(f"{tok}/{label}" for tok, label in zip(tokens, seq.outcomes))
                if args.num_sequences > 1:
                    print(f"{seq.score:.4f}\t{tagged}")
                else:
                    print(tagged)
    finally:
        if handle is not sys.stdin:
            handle.close()
    return 0
