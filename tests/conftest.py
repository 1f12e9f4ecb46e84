"""Pytest configuration and fixtures."""
import pytest

from maxentpipe.config import TrainingConfig
from maxentpipe.event import Event
from maxentpipe.indexer import OnePassIndexer
from maxentpipe.trainer_registry import train


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path, monkeypatch):
    """Point the config directory at a temp dir so no user settings leak in."""
    config_dir = tmp_path / "config"
    monkeypatch.setenv("MAXENTPIPE_CONFIG_DIR", str(config_dir))
    return config_dir


@pytest.fixture
def weather_events():
    """Small two-outcome corpus where each feature leans towards one outcome."""
    rows = [
        ("out", ["sunny", "warm", "weekend"]),
        ("out", ["sunny", "warm"]),
        ("out", ["sunny", "mild", "weekend"]),
        ("out", ["cloudy", "warm", "weekend"]),
        ("in", ["rainy", "cold"]),
        ("in", ["rainy", "cold", "weekend"]),
        ("in", ["rainy", "mild"]),
        ("in", ["cloudy", "cold"]),
    ]
    return [Event(outcome, tuple(context)) for outcome, context in rows * 3]


@pytest.fixture
def three_way_events():
    """Three outcomes, each with its own marker feature plus shared noise."""
    events = []
    for label, marker in (("noun", "suffix=tion"), ("verb", "suffix=ing"), ("adj", "suffix=ous")):
        for i in range(4):
            events.append(Event(label, (marker, f"len={i % 2}", "bias")))
    return events


@pytest.fixture
def gis_config():
    """GIS settings suited to the tiny fixture corpora."""
    return TrainingConfig(algorithm="GIS", iterations=100, cutoff=1)


@pytest.fixture
def qn_config():
    """Quasi-Newton settings suited to the tiny fixture corpora."""
    return TrainingConfig(algorithm="QN", iterations=100, cutoff=1, l1_cost=0.0, l2_cost=0.1)


@pytest.fixture
def weather_model(weather_events, gis_config):
    """GIS model trained on the weather corpus."""
    return train(weather_events, gis_config)


@pytest.fixture
def indexed_weather(weather_events):
    """Weather corpus indexed with cutoff 1."""
    return OnePassIndexer(cutoff=1).index(weather_events)


@pytest.fixture
def event_file(tmp_path, weather_events):
    """Weather corpus written in the one-event-per-line format."""
    path = tmp_path / "weather.events"
    path.write_text(
        "\n".join(" ".join((e.outcome,) + e.context) for e in weather_events) + "\n",
        encoding="utf-8",
    )
    return path
