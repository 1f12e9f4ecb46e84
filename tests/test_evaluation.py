"""
Tests for accuracy evaluation.
"""
import numpy as np
import pytest

from maxentpipe.evaluation import EvaluationReport, accuracy, evaluate_events
from maxentpipe.event import Event
from maxentpipe.model import MaxentModel


@pytest.fixture
def keyword_model():
    """'good' votes POS, 'bad' votes NEG."""
    return MaxentModel(np.array([[2.0, -2.0], [-2.0, 2.0]]), ["good", "bad"], ["POS", "NEG"])


class TestEvaluateEvents:
    """Test accuracy counting."""

    def test_counts_correct_predictions(self, keyword_model):
        """Correct and total counts follow the predictions."""
        events = [
            Event("POS", ("good",)),
            Event("NEG", ("bad",)),
            Event("POS", ("bad",)),
            Event("NEG", ("bad", "other")),
        ]
        report = evaluate_events(keyword_model, events)
        assert report.correct == 3
        assert report.total == 4
        assert report.accuracy == pytest.approx(0.75)
        assert report.confusion[("POS", "NEG")] == 1

    def test_per_outcome(self, keyword_model):
        """Per-outcome rows are sorted by gold label."""
        events = [Event("POS", ("good",)), Event("POS", ("bad",)), Event("NEG", ("bad",))]
        rows = evaluate_events(keyword_model, events).per_outcome()
        assert rows == [("NEG", 1, 1, 1.0), ("POS", 1, 2, 0.5)]

    def test_real_valued_events(self, keyword_model):
        """Values are passed on to the model."""
        events = [Event("POS", ("good", "bad"), (3.0, 1.0))]
        assert accuracy(keyword_model, events) == 1.0

    def test_empty_input(self, keyword_model):
        """No events gives zero accuracy rather than an error."""
        report = evaluate_events(keyword_model, [])
        assert report.total == 0
        assert report.accuracy == 0.0

    def test_to_dict(self):
        """to_dict summarises the counts."""
        report = EvaluationReport(correct=1, total=4)
        assert report.to_dict() == {"correct": 1, "total": 4, "accuracy": 0.25}

    def test_trained_model_on_training_data(self, weather_model, weather_events):
        """A trained model fits its separable training data."""
        assert accuracy(weather_model, weather_events) == 1.0
