"""
Reader for the prepositional phrase attachment (PPA) corpus.

Each line holds ``id verb noun prep prep_obj label`` where the label is ``V``
(verb attachment) or ``N`` (noun attachment). The corpus is used as a small
regression benchmark for the trainers.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional, Union

from .event import Event

logger = logging.getLogger(__name__)

PPA_DIR_ENV = "MAXENTPIPE_PPA_DIR"


def parse_ppa_line(line: str) -> Optional[Event]:
    """Turn one corpus line into an Event (None for blank or short lines)."""
    items = line.split()
    if not items:
        return None
    if len(items) < 6:
        logger.warning("Skipping PPA line with %d fields: %r", len(items), line.rstrip("\n"))
        return None
    context = (
        f"verb={items[1]}",
        f"noun={items[2]}",
        f"prep={items[3]}",
        f"prep_obj={items[4]}",
    )
    return Event(items[5], context)


def read_ppa_file(path: Union[str, Path]) -> List[Event]:
    """Read a whole PPA file into a list of events."""
    events: List[Event] = []
    with open(path, "r", encoding="utf-8") as handle:
        for line in handle:
            event = parse_ppa_line(line)
            if event is not None:
                events.append(event)
    logger.info("Read %d PPA events from %s", len(events), path)
    return events


def ppa_data_dir() -> Optional[Path]:
    """Directory holding the PPA corpus, taken from ``MAXENTPIPE_PPA_DIR``."""
    value = os.environ.get(PPA_DIR_ENV)
    if not value:
        return None
    path = Path(value)
    return path if path.is_dir() else None


def read_ppa_split(name: str, data_dir: Optional[Union[str, Path]] = None) -> List[Event]:
    """Read one named split (``training``, ``devset``, ``test``) of the corpus."""
    base = Path(data_dir) if data_dir is not None else ppa_data_dir()
    if base is None:
        raise FileNotFoundError(f"PPA corpus directory not configured; set {PPA_DIR_ENV}")
    return read_ppa_file(base / name)
