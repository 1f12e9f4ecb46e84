"""Command implementations for ``python -m maxentpipe``."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterable, Optional

from ..event import Event, FileEventSource

EVENT_FORMATS = ("events", "ppa", "tagged")


class _PPASource:
    """Restartable wrapper around ``read_ppa_file``."""

    def __init__(self, path: Path):
        self.path = path

    def __iter__(self):
        from ..prepattach import read_ppa_file

        return iter(read_ppa_file(self.path))


def open_event_source(path: Path, fmt: str = "events", real_valued: Optional[bool] = None) -> Iterable[Event]:
    """Restartable event stream for ``path`` in one of ``EVENT_FORMATS``."""
    if fmt == "events":
        return FileEventSource(path, real_valued=real_valued)
    if fmt == "ppa":
        return _PPASource(path)
    if fmt == "tagged":
        from ..sequence_features import TaggedEventSource

        return TaggedEventSource(path)
    raise ValueError(f"Unknown event format '{fmt}'")


def message(text: str) -> None:
    print(f"[maxentpipe] {text}", file=sys.stderr)
