"""
Immutable predicate -> column lookup table.

The table is an open-addressing hash table with linear probing, sized from a
load factor. It is built once from a list of unique keys and then only read,
so a finished table can be shared between threads without locking.
"""

from __future__ import annotations

import zlib
from typing import List, Optional, Sequence, Tuple

from .errors import ConfigurationError, DuplicateKeyError

DEFAULT_LOAD_FACTOR = 0.7


def _stable_hash(key: str) -> int:
    # Python's str hash is salted per process; CRC32 keeps probe order reproducible.
    return zlib.crc32(key.encode("utf-8"))


class PredicateIndexTable:
    """Maps each key to its position in the array the table was built from."""

    __slots__ = ("_keys", "_values", "_capacity", "_size")

    def __init__(self, keys: Sequence[str], load_factor: float = DEFAULT_LOAD_FACTOR):
        if not (0 < load_factor <= 1):
            raise ConfigurationError(
                f"Load factor must be in (0, 1], got {load_factor}"
            )
        capacity = int(len(keys) / load_factor) + 1
        slot_keys: List[Optional[str]] = [None] * capacity
        slot_values: List[int] = [-1] * capacity

        for position, key in enumerate(keys):
            if key is None:
                raise ConfigurationError("Predicate index table keys must not be None")
            slot = _stable_hash(key) % capacity
            while slot_keys[slot] is not None:
                if slot_keys[slot] == key:
                    raise DuplicateKeyError(
                        f"Duplicate key '{key}' in predicate index table",
                        hint="Keys passed to the table must be unique.",
                    )
                slot = (slot + 1) % capacity
            slot_keys[slot] = key
            slot_values[slot] = position

        self._keys: Tuple[Optional[str], ...] = tuple(slot_keys)
        self._values: Tuple[int, ...] = tuple(slot_values)
        self._capacity = capacity
        self._size = len(keys)

    @classmethod
    def build(cls, keys: Sequence[str], load_factor: float = DEFAULT_LOAD_FACTOR) -> "PredicateIndexTable":
        return cls(list(keys), load_factor)

    def get(self, key: str, default: Optional[int] = None) -> Optional[int]:
        """Return the original position of ``key`` or ``default`` if absent."""
        slot = _stable_hash(key) % self._capacity
        # At least one slot is always empty, so the probe terminates.
        while True:
            stored = self._keys[slot]
            if stored is None:
                return default
            if stored == key:
                return self._values[slot]
            slot = (slot + 1) % self._capacity

    def size(self) -> int:
        return self._size

    @property
    def capacity(self) -> int:
        return self._capacity

    def to_array(self) -> List[str]:
        """Return the keys in their original order."""
        ordered: List[Optional[str]] = [None] * self._size
        for key, position in zip(self._keys, self._values):
            if key is not None:
                ordered[position] = key
        return ordered  # type: ignore[return-value]

    def __len__(self) -> int:
        return self._size

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def __getitem__(self, key: str) -> int:
        position = self.get(key)
        if position is None:
            raise KeyError(key)
        return position

    def __repr__(self) -> str:
        return f"PredicateIndexTable(size={self._size}, capacity={self._capacity})"
