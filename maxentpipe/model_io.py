"""
Reading and writing trained models.

Models are stored as a JSON document (gzip compressed when the file name ends
in ``.gz``)::

    {
      "format": "maxentpipe-model",
      "version": 1,
      "model_type": "GIS",
      "correction_constant": 3.0,
      "outcome_labels": [...],
      "pred_labels": [...],
      "weights": [[...], ...]        # one row per outcome
    }

Python's JSON encoder writes floats with ``repr`` so weights round-trip exactly.
"""

from __future__ import annotations

import gzip
import json
import logging
import math
from pathlib import Path
from typing import IO, Any, Dict, Union

import numpy as np

from .errors import DuplicateKeyError, ModelFormatError
from .model import MODEL_TYPES, MaxentModel

logger = logging.getLogger(__name__)

FORMAT_TAG = "maxentpipe-model"
FORMAT_VERSION = 1


def _open(path: Path, mode: str) -> IO[str]:
    if path.suffix == ".gz":
        return gzip.open(path, mode + "t", encoding="utf-8")
    return open(path, mode, encoding="utf-8")


def model_to_dict(model: MaxentModel) -> Dict[str, Any]:
    return {
        "format": FORMAT_TAG,
        "version": FORMAT_VERSION,
        "model_type": model.model_type,
        "correction_constant": model.correction_constant,
        "outcome_labels": model.outcome_labels,
        "pred_labels": model.pred_labels,
        "weights": model.weights.tolist(),
    }


def model_from_dict(data: Any) -> MaxentModel:
    """Rebuild a model, raising ModelFormatError on anything inconsistent."""
    if not isinstance(data, dict):
        raise ModelFormatError("Model document must be a JSON object")
    if data.get("format") != FORMAT_TAG:
        raise ModelFormatError(f"Not a maxentpipe model (format tag {data.get('format')!r})")
    if data.get("version") != FORMAT_VERSION:
        raise ModelFormatError(f"Unsupported model format version {data.get('version')!r}")

    missing = [k for k in ("model_type", "outcome_labels", "pred_labels", "weights") if k not in data]
    if missing:
        raise ModelFormatError(f"Model is missing field(s): {', '.join(missing)}")

    model_type = data["model_type"]
    if model_type not in MODEL_TYPES:
        raise ModelFormatError(f"Unknown model type {model_type!r}")

    outcome_labels = data["outcome_labels"]
    pred_labels = data["pred_labels"]
    for name, labels in (("outcome_labels", outcome_labels), ("pred_labels", pred_labels)):
        if not isinstance(labels, list) or not all(isinstance(label, str) for label in labels):
            raise ModelFormatError(f"'{name}' must be a list of strings")
    if len(set(outcome_labels)) != len(outcome_labels):
        raise ModelFormatError("Duplicate outcome labels in model")

    try:
        weights = np.asarray(data["weights"], dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise ModelFormatError(f"Weights are not a numeric matrix: {exc}") from exc
    if len(outcome_labels) and weights.size == 0:
        weights = weights.reshape(len(outcome_labels), 0)
    if weights.shape != (len(outcome_labels), len(pred_labels)):
        raise ModelFormatError(
            f"Weight matrix shape {weights.shape} does not match "
            f"{len(outcome_labels)} outcomes x {len(pred_labels)} predicates"
        )
    if not np.all(np.isfinite(weights)):
        raise ModelFormatError("Weights contain non-finite values")

    correction_constant = data.get("correction_constant", 1.0)
    if not isinstance(correction_constant, (int, float)) or not math.isfinite(correction_constant):
        raise ModelFormatError(f"Invalid correction constant {correction_constant!r}")

    try:
        return MaxentModel(
            weights,
            pred_labels,
            outcome_labels,
            correction_constant=correction_constant,
            model_type=model_type,
        )
    except DuplicateKeyError as exc:
        raise ModelFormatError(f"Corrupted predicate dictionary: {exc.message}") from exc


def write_model(model: MaxentModel, path: Union[str, Path]) -> Path:
    """
    Write ``model`` to ``path``.

    Args:
        model: The model to store
        path: Target file; a ``.gz`` suffix enables gzip compression

    Returns:
        The path written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with _open(path, "w") as handle:
        json.dump(model_to_dict(model), handle, ensure_ascii=False)
    logger.info("Wrote %s model to %s", model.model_type, path)
    return path


def read_model(path: Union[str, Path]) -> MaxentModel:
    """Load a model written by ``write_model``."""
    path = Path(path)
    try:
        with _open(path, "r") as handle:
            data = json.load(handle)
    except (json.JSONDecodeError, UnicodeDecodeError, EOFError, gzip.BadGzipFile) as exc:
        raise ModelFormatError(f"Could not parse model file {path}: {exc}") from exc
    model = model_from_dict(data)
    logger.debug("Loaded %r from %s", model, path)
    return model
