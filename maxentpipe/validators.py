"""
Sequence validators for ``BeamSearch``.

A validator answers one question: given the labels chosen so far, may
``outcome`` be the label at position ``index``? Every class here exposes
``valid_sequence(index, sequence, history, outcome)`` and is also callable
with the same arguments.
"""

from __future__ import annotations

import re
from typing import Any, Collection, Dict, Optional, Sequence

START = "start"
CONTINUE = "cont"
LAST = "last"
UNIT = "unit"
OTHER = "other"

_TYPED_OUTCOME = re.compile(r"(.+)-\w+")


def extract_name_type(outcome: str) -> Optional[str]:
    """``person-start`` -> ``person``; untyped outcomes return None."""
    match = _TYPED_OUTCOME.fullmatch(outcome)
    return match.group(1) if match else None


class SequenceValidator:
    """Accepts every outcome; subclasses restrict."""

    def valid_sequence(self, index: int, sequence: Sequence[Any], history: Sequence[str], outcome: str) -> bool:
        return True

    def __call__(self, index: int, sequence: Sequence[Any], history: Sequence[str], outcome: str) -> bool:
        return self.valid_sequence(index, sequence, history, outcome)


class NameFinderSequenceValidator(SequenceValidator):
    """BIO-style entity labels: ``other``, ``<type>-start``, ``<type>-cont``.

    A ``cont`` label must follow a ``start`` or ``cont`` of the same type.
    """

    def valid_sequence(self, index, sequence, history, outcome):
        if not outcome.endswith(CONTINUE):
            return True
        if not history:
            return False
        previous = history[-1]
        if previous.endswith(OTHER):
            return False
        if previous.endswith(START) or previous.endswith(CONTINUE):
            return extract_name_type(previous) == extract_name_type(outcome)
        return True


class BilouSequenceValidator(SequenceValidator):
    """BILOU entity labels: ``other`` and ``<type>-start|cont|last|unit``.

    Inside an entity (after ``start`` or ``cont``) only ``cont`` or ``last``
    of the same type may follow; outside one only ``start``, ``unit`` or
    ``other`` may.
    """

    def valid_sequence(self, index, sequence, history, outcome):
        previous = history[-1] if history else None
        inside = previous is not None and (previous.endswith(START) or previous.endswith(CONTINUE))
        if inside:
            if not (outcome.endswith(CONTINUE) or outcome.endswith(LAST)):
                return False
            return extract_name_type(previous) == extract_name_type(outcome)
        return not (outcome.endswith(CONTINUE) or outcome.endswith(LAST))


class ChunkerSequenceValidator(SequenceValidator):
    """``I-X`` chunk labels only after ``B-X`` or ``I-X``."""

    def valid_sequence(self, index, sequence, history, outcome):
        if not outcome.startswith("I-"):
            return True
        if not history:
            return False
        previous = history[-1]
        if previous == "O":
            return False
        return previous[2:] == outcome[2:] and previous[:2] in ("B-", "I-")


class TagDictionaryValidator(SequenceValidator):
    """Restricts the label of known tokens to the tags listed for them."""

    def __init__(self, tag_dictionary: Dict[str, Collection[str]], case_sensitive: bool = True):
        self.case_sensitive = case_sensitive
        if case_sensitive:
            self.tag_dictionary = {k: set(v) for k, v in tag_dictionary.items()}
        else:
            self.tag_dictionary = {k.lower(): set(v) for k, v in tag_dictionary.items()}

    def valid_sequence(self, index, sequence, history, outcome):
        token = str(sequence[index])
        if not self.case_sensitive:
            token = token.lower()
        tags = self.tag_dictionary.get(token)
        if tags is None:
            return True
        return outcome in tags
