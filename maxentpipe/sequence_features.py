"""
Window features for sequence labelling.

Bridges tagged sentences and the event/beam-search machinery: the same
``WindowContextGenerator`` produces the training events from gold label
sequences and the contexts seen by ``BeamSearch`` at decoding time.

Tagged input has one sentence per line, tokens written ``word/LABEL`` (the
last slash separates the label)::

    The/DT cat/NN sat/VBD
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from .event import Event

logger = logging.getLogger(__name__)

BOS = "*BOS*"
EOS = "*EOS*"


class WindowContextGenerator:
    """Features from the surrounding tokens and the previous labels."""

    def __init__(self, window: int = 2, label_history: int = 2, lowercase: bool = True):
        self.window = window
        self.label_history = label_history
        self.lowercase = lowercase

    def _token(self, sequence: Sequence[str], index: int) -> str:
        if index < 0:
            return BOS
        if index >= len(sequence):
            return EOS
        token = str(sequence[index])
        return token.lower() if self.lowercase else token

    def get_context(
        self,
        index: int,
        sequence: Sequence[str],
        history: Sequence[str],
        additional_context=None,
    ) -> List[str]:
        features = ["bias", f"w={self._token(sequence, index)}"]
        for offset in range(1, self.window + 1):
            features.append(f"w-{offset}={self._token(sequence, index - offset)}")
            features.append(f"w+{offset}={self._token(sequence, index + offset)}")
        word = str(sequence[index])
        features.append(f"suf3={word[-3:].lower()}")
        if word[:1].isupper():
            features.append("cap")
        if any(ch.isdigit() for ch in word):
            features.append("num")
        labels: List[str] = []
        for offset in range(1, self.label_history + 1):
            pos = index - offset
            labels.append(history[pos] if pos >= 0 else BOS)
            features.append(f"t-{offset}={','.join(labels)}")
        return features

    __call__ = get_context


def parse_tagged_line(line: str) -> Tuple[List[str], List[str]]:
    tokens: List[str] = []
    labels: List[str] = []
    for item in line.split():
        word, sep, label = item.rpartition("/")
        if not sep or not word or not label:
            raise ValueError(f"Token '{item}' is not of the form word/LABEL")
        tokens.append(word)
        labels.append(label)
    return tokens, labels


def read_tagged_sentences(path: Union[str, Path]) -> Iterator[Tuple[List[str], List[str]]]:
    """Yield (tokens, labels) per non-empty line, skipping malformed lines."""
    with open(path, "r", encoding="utf-8") as handle:
        for line_no, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                yield parse_tagged_line(line)
            except ValueError as exc:
                logger.warning("Skipping line %d of %s: %s", line_no, path, exc)


def sequence_events(
    tokens: Sequence[str],
    labels: Sequence[str],
    generator: Optional[WindowContextGenerator] = None,
) -> List[Event]:
    """One training event per token, using the gold labels as history."""
    if len(tokens) != len(labels):
        raise ValueError(f"{len(tokens)} tokens but {len(labels)} labels")
    generator = generator or WindowContextGenerator()
    return [
        Event(labels[i], tuple(generator.get_context(i, tokens, list(labels[:i]))))
        for i in range(len(tokens))
    ]


class TaggedEventSource:
    """Restartable event stream built from a tagged sentence file."""

    def __init__(self, path: Union[str, Path], generator: Optional[WindowContextGenerator] = None):
        self.path = Path(path)
        self.generator = generator or WindowContextGenerator()

    def __iter__(self) -> Iterator[Event]:
        for tokens, labels in read_tagged_sentences(self.path):
            yield from sequence_events(tokens, labels, self.generator)
