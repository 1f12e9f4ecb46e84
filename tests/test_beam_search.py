"""
Tests for beam search decoding.
"""
import itertools
import math

import numpy as np
import pytest

from maxentpipe.beam_search import BeamSearch, Sequence
from maxentpipe.config import TrainingConfig
from maxentpipe.errors import ConfigurationError
from maxentpipe.sequence_features import WindowContextGenerator, sequence_events
from maxentpipe.trainer_registry import train
from maxentpipe.validators import ChunkerSequenceValidator


class TableScorer:
    """Scores position i from a fixed table; ignores the label history."""

    def __init__(self, labels, table):
        self.labels = list(labels)
        self.table = np.asarray(table, dtype=np.float64)
        self.calls = 0

    @property
    def num_outcomes(self):
        return len(self.labels)

    def outcome(self, index):
        return self.labels[index]

    def evaluate(self, features):
        self.calls += 1
        position = int(features[0].split("=")[1])
        return self.table[position]


def position_context(index, sequence, history, additional_context):
    return [f"pos={index}"]


def _brute_force(labels, table):
    best_score, best = -math.inf, None
    for combo in itertools.product(range(len(labels)), repeat=len(table)):
        score = sum(math.log(table[i][c]) for i, c in enumerate(combo))
        if score > best_score:
            best_score, best = score, [labels[c] for c in combo]
    return best, best_score


class TestBeamSearch:
    """Test the search itself."""

    @pytest.mark.parametrize("seed", range(10))
    def test_width_one_matches_brute_force(self, seed):
        """With a history-free scorer beam size one finds the optimum."""
        rng = np.random.default_rng(seed)
        labels = ["A", "B", "C"][: int(rng.integers(2, 4))]
        length = int(rng.integers(1, 5))
        table = rng.dirichlet(np.ones(len(labels)), size=length)
        search = BeamSearch(TableScorer(labels, table), beam_size=1)

        best = search.best_sequence(list(range(length)), position_context)
        expected, expected_score = _brute_force(labels, table)
        assert best.outcomes == expected
        assert best.score == pytest.approx(expected_score)
        assert len(best.probs) == length

    def test_empty_input(self):
        """An empty input yields one empty sequence."""
        search = BeamSearch(TableScorer(["A", "B"], [[0.5, 0.5]]))
        sequences = search.best_sequences(3, [], position_context)
        assert len(sequences) == 1
        assert sequences[0].outcomes == []
        assert sequences[0].score == 0.0

    def test_results_sorted_best_first(self):
        """Sequences come back in descending score order."""
        table = [[0.6, 0.3, 0.1], [0.2, 0.5, 0.3], [0.4, 0.4, 0.2]]
        search = BeamSearch(TableScorer(["A", "B", "C"], table), beam_size=3)
        sequences = search.best_sequences(5, [0, 1, 2], position_context)
        assert 1 <= len(sequences) <= 5
        scores = [s.score for s in sequences]
        assert scores == sorted(scores, reverse=True)
        assert sequences[0].outcomes == ["A", "B", "A"]

    def test_score_is_sum_of_log_probs(self):
        """A sequence's score equals the sum of its log probabilities."""
        table = [[0.7, 0.3], [0.1, 0.9]]
        search = BeamSearch(TableScorer(["A", "B"], table), beam_size=2)
        for seq in search.best_sequences(4, [0, 1], position_context):
            assert seq.score == pytest.approx(sum(math.log(p) for p in seq.probs))

    def test_validator_blocks_outcomes(self):
        """Outcomes rejected by the validator never appear."""
        labels = ["I-NP", "B-NP", "O"]
        table = [[0.8, 0.1, 0.1], [0.8, 0.1, 0.1]]
        search = BeamSearch(TableScorer(labels, table), beam_size=3)
        best = search.best_sequence([0, 1], position_context, validator=ChunkerSequenceValidator())
        assert best.outcomes[0] != "I-NP"
        assert best.outcomes == ["B-NP", "I-NP"]

    def test_falls_back_when_top_outcomes_invalid(self):
        """If every top-ranked outcome is illegal the next legal one is used."""
        table = [[0.9, 0.06, 0.04]]
        search = BeamSearch(TableScorer(["A", "B", "C"], table), beam_size=1)

        def no_a(index, sequence, history, outcome):
            return outcome != "A"

        best = search.best_sequence([0], position_context, validator=no_a)
        assert best.outcomes == ["B"]

    def test_no_legal_sequence(self):
        """A validator that rejects everything yields no sequence."""
        search = BeamSearch(TableScorer(["A", "B"], [[0.5, 0.5]]))
        sequences = search.best_sequences(2, [0], position_context, validator=lambda *args: False)
        assert sequences == []
        assert search.best_sequence([0], position_context, validator=lambda *args: False) is None

    def test_known_labels(self):
        """Known labels pin the outcome at their position."""
        table = [[0.9, 0.1], [0.9, 0.1], [0.9, 0.1]]
        search = BeamSearch(TableScorer(["A", "B"], table), beam_size=2)
        best = search.best_sequence([0, 1, 2], position_context, known_labels=[None, "B", None])
        assert best.outcomes == ["A", "B", "A"]

    def test_known_labels_length_checked(self):
        """known_labels must have one entry per token."""
        search = BeamSearch(TableScorer(["A", "B"], [[0.5, 0.5]]))
        with pytest.raises(ValueError):
            search.best_sequences(1, [0], position_context, known_labels=[None, None])

    def test_min_score_drops_sequences(self):
        """Sequences at or below the minimum score are pruned."""
        table = [[0.5, 0.5]]
        search = BeamSearch(TableScorer(["A", "B"], table), beam_size=2)
        sequences = search.best_sequences(2, [0], position_context, min_sequence_score=0.0)
        assert sequences == []

    def test_context_generator_object(self):
        """Objects with get_context work as generators."""

        class Generator:
            def get_context(self, index, sequence, history, additional_context):
                return [f"pos={index}"]

        search = BeamSearch(TableScorer(["A", "B"], [[0.2, 0.8]]), beam_size=1)
        assert search.best_sequence([0], Generator()).outcomes == ["B"]

    def test_cache_avoids_repeated_scoring(self):
        """With a cache each distinct context is scored once."""
        table = [[0.5, 0.3, 0.2]] * 3
        scorer = TableScorer(["A", "B", "C"], table)
        search = BeamSearch(scorer, beam_size=3, cache_size=10)
        search.best_sequences(3, [0, 1, 2], position_context)
        assert scorer.calls == 3

        uncached = TableScorer(["A", "B", "C"], table)
        BeamSearch(uncached, beam_size=3).best_sequences(3, [0, 1, 2], position_context)
        assert uncached.calls > 3

    def test_invalid_beam_size(self):
        """Beam size must be positive."""
        with pytest.raises(ConfigurationError):
            BeamSearch(TableScorer(["A"], [[1.0]]), beam_size=0)

    def test_outcomes(self):
        """outcomes lists the scorer's labels."""
        search = BeamSearch(TableScorer(["A", "B"], [[0.5, 0.5]]))
        assert search.outcomes() == ["A", "B"]


class TestSequence:
    """Test the Sequence value type."""

    def test_extend_returns_new_sequence(self):
        """extend leaves the original untouched."""
        base = Sequence()
        longer = base.extend("A", 0.5)
        assert base.outcomes == []
        assert longer.outcomes == ["A"]
        assert longer.score == pytest.approx(math.log(0.5))
        assert len(longer) == 1

    def test_zero_probability(self):
        """A zero probability gives a score of minus infinity."""
        assert Sequence().extend("A", 0.0).score == -math.inf


class TestWithTrainedModel:
    """Decode with a model trained on window features."""

    def test_tags_training_sentences(self):
        """A model trained on tagged sentences reproduces their tags."""
        sentences = [
            (["the", "cat", "sat"], ["DT", "NN", "VBD"]),
            (["a", "dog", "ran"], ["DT", "NN", "VBD"]),
            (["the", "dog", "sat"], ["DT", "NN", "VBD"]),
            (["a", "cat", "ran"], ["DT", "NN", "VBD"]),
        ]
        generator = WindowContextGenerator()
        events = []
        for tokens, labels in sentences * 3:
            events.extend(sequence_events(tokens, labels, generator))
        model = train(events, TrainingConfig(algorithm="GIS", cutoff=1, iterations=50))

        search = BeamSearch(model, beam_size=3)
        best = search.best_sequence(["the", "cat", "ran"], generator)
        assert best.outcomes == ["DT", "NN", "VBD"]
