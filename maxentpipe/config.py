"""
Configuration for maxentpipe training.

Settings come from (lowest to highest priority): the dataclass defaults, the
``training`` section of ``~/.maxentpipe/config.json`` and explicit overrides
(for instance CLI flags).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Parameter names used by other maxent toolkits' training parameter files
_PARAMETER_ALIASES: Dict[str, str] = {
    "algorithm": "algorithm",
    "iterations": "iterations",
    "cutoff": "cutoff",
    "sortandmerge": "sort_and_merge",
    "dataindexer": "indexer",
    "indexer": "indexer",
    "smoothing": "smoothing",
    "smoothingobservation": "smoothing_observation",
    "gaussiansigma": "gaussian_sigma",
    "llthreshold": "ll_threshold",
    "threads": "threads",
    "l1cost": "l1_cost",
    "l2cost": "l2_cost",
    "numofupdates": "num_updates",
    "numupdates": "num_updates",
    "maxfcteval": "max_fct_eval",
    "loadfactor": "load_factor",
}


@dataclass
class TrainingConfig:
    """Training parameters shared by the indexers and trainers."""
    algorithm: str = "GIS"  # 'GIS' or 'QN' (aliases: maxent, maxent_qn, lbfgs, ...)
    iterations: int = 100
    cutoff: int = 5  # Minimum feature frequency
    sort_and_merge: bool = True  # Merge identical events after indexing
    indexer: str = "two_pass"  # 'two_pass' or 'one_pass'
    smoothing: bool = False  # GIS: give unseen (predicate, outcome) pairs a small count
    smoothing_observation: float = 0.1
    gaussian_sigma: Optional[float] = None  # GIS: Gaussian prior on the parameters
    ll_threshold: float = 1e-4  # GIS: stop when log-likelihood improves less than this
    threads: int = 1  # GIS: worker threads for the expectation step
    l1_cost: float = 0.1  # QN
    l2_cost: float = 0.1  # QN
    num_updates: int = 15  # QN: number of curvature pairs kept
    max_fct_eval: int = 30000  # QN
    load_factor: float = 0.7  # Predicate index table load factor

    def validate(self) -> "TrainingConfig":
        from .trainer_registry import resolve_algorithm
        from .indexer import INDEXER_LOOKUP

        resolve_algorithm(self.algorithm)
        if (self.indexer or "").lower() not in INDEXER_LOOKUP:
            raise ConfigurationError(f"Unknown data indexer '{self.indexer}'")
        if self.iterations < 1:
            raise ConfigurationError(f"iterations must be >= 1, got {self.iterations}")
        if self.cutoff < 0:
            raise ConfigurationError(f"cutoff must be >= 0, got {self.cutoff}")
        if self.threads < 1:
            raise ConfigurationError(f"threads must be >= 1, got {self.threads}")
        if self.smoothing and self.smoothing_observation <= 0:
            raise ConfigurationError("smoothing_observation must be > 0")
        if self.gaussian_sigma is not None and self.gaussian_sigma <= 0:
            raise ConfigurationError(f"gaussian_sigma must be > 0, got {self.gaussian_sigma}")
        if self.l1_cost < 0 or self.l2_cost < 0:
            raise ConfigurationError("L1-cost and L2-cost must not be less than zero")
        if self.num_updates < 1:
            raise ConfigurationError(f"num_updates must be >= 1, got {self.num_updates}")
        if self.max_fct_eval < 1:
            raise ConfigurationError(f"max_fct_eval must be >= 1, got {self.max_fct_eval}")
        if not (0 < self.load_factor <= 1):
            raise ConfigurationError(f"load_factor must be in (0, 1], got {self.load_factor}")
        return self

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TrainingConfig":
        """
        Build a config from a dict, coercing string values.

        Keys may use the dataclass field names or the CamelCase parameter
        names of maxent training parameter files (``Iterations``, ``Cutoff``,
        ``L1Cost``...). Unknown keys raise ConfigurationError.
        """
        config = cls()
        return config.updated(data)

    def updated(self, data: Mapping[str, Any]) -> "TrainingConfig":
        """Return a copy with the given settings applied (None values are ignored)."""
        field_types = {f.name: f.type for f in fields(self)}
        values = asdict(self)
        for raw_key, raw_value in data.items():
            if raw_value is None:
                continue
            key = raw_key if raw_key in field_types else _PARAMETER_ALIASES.get(
                raw_key.replace("_", "").replace("-", "").lower()
            )
            if key is None:
                raise ConfigurationError(
                    f"Unknown training parameter '{raw_key}'",
                    hint=f"Known parameters: {', '.join(sorted(field_types))}",
                )
            values[key] = _coerce(key, raw_value, field_types[key])
        return type(self)(**values)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "TrainingConfig":
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid JSON in training config {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Training config {path} must contain a JSON object")
        return cls.from_mapping(data.get("training", data))

    @classmethod
    def from_params_file(cls, path: Union[str, Path]) -> "TrainingConfig":
        """Read a ``key=value`` training parameters file (``#`` starts a comment)."""
        data: Dict[str, str] = {}
        with open(path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.split("#", 1)[0].strip()
                if not line:
                    continue
                key, sep, value = line.partition("=")
                if not sep:
                    raise ConfigurationError(f"{path}:{line_no}: expected key=value, got '{line}'")
                data[key.strip()] = value.strip()
        return cls.from_mapping(data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _coerce(key: str, value: Any, annotation: Any) -> Any:
    annotation = str(annotation)
    if isinstance(value, str):
        text = value.strip()
        try:
            if annotation.startswith("bool"):
                lowered = text.lower()
                if lowered in ("true", "1", "yes", "on"):
                    return True
                if lowered in ("false", "0", "no", "off"):
                    return False
                raise ValueError(text)
            if annotation.startswith("int"):
                return int(text)
            if "float" in annotation:
                return float(text)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid value '{value}' for training parameter '{key}'") from exc
        return text
    if annotation.startswith("int") and isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def get_config_dir(create: bool = True) -> Path:
    """
    Get the maxentpipe configuration directory.

    Checks ``MAXENTPIPE_CONFIG_DIR`` first, then falls back to ``~/.maxentpipe``.

    Args:
        create: Create the directory if it doesn't exist

    Returns:
        Path to the configuration directory
    """
    if "MAXENTPIPE_CONFIG_DIR" in os.environ:
        base = Path(os.environ["MAXENTPIPE_CONFIG_DIR"])
    else:
        base = Path.home() / ".maxentpipe"
    if create:
        base.mkdir(parents=True, exist_ok=True)
    return base


def get_config_file(create_dir: bool = True) -> Path:
    """Get the path to the maxentpipe configuration file."""
    return get_config_dir(create=create_dir) / "config.json"


def read_config() -> dict:
    """
    Read the maxentpipe configuration file.

    Returns:
        Dictionary with configuration values (empty dict if the file doesn't exist)
    """
    config_file = get_config_file(create_dir=False)
    if not config_file.exists():
        return {}
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", config_file, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: not a JSON object", config_file)
        return {}
    return data


def write_config(config: dict) -> None:
    """Merge ``config`` into the maxentpipe config file."""
    config_file = get_config_file()
    existing = read_config()
    existing.update(config)
    with open(config_file, "w", encoding="utf-8") as f:
        json.dump(existing, f, indent=2, ensure_ascii=False)


def load_training_config(overrides: Optional[Mapping[str, Any]] = None) -> TrainingConfig:
    """Defaults, then the config file's ``training`` section, then ``overrides``."""
    config = TrainingConfig()
    stored = read_config().get("training")
    if isinstance(stored, dict):
        config = config.updated(stored)
    if overrides:
        config = config.updated(overrides)
    return config.validate()
