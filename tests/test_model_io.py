"""
Tests for model persistence.
"""
import gzip
import json

import numpy as np
import pytest

from maxentpipe.errors import ModelFormatError
from maxentpipe.model import MaxentModel
from maxentpipe.model_io import (
    FORMAT_TAG,
    model_from_dict,
    model_to_dict,
    read_model,
    write_model,
)


class TestRoundTrip:
    """Test that stored models load back unchanged."""

    @pytest.mark.parametrize("name", ["model.json", "model.json.gz"])
    def test_trained_model_round_trip(self, tmp_path, weather_model, name):
        """Weights, labels and metadata survive a write/read cycle exactly."""
        path = write_model(weather_model, tmp_path / name)
        loaded = read_model(path)
        assert loaded == weather_model
        assert loaded.model_type == "GIS"
        assert loaded.correction_constant == weather_model.correction_constant
        features = ["sunny", "weekend"]
        np.testing.assert_array_equal(loaded.evaluate(features), weather_model.evaluate(features))

    def test_gzip_file_is_compressed(self, tmp_path, weather_model):
        """A .gz suffix writes a gzip stream."""
        path = write_model(weather_model, tmp_path / "model.json.gz")
        with gzip.open(path, "rt", encoding="utf-8") as handle:
            assert json.load(handle)["format"] == FORMAT_TAG

    def test_creates_parent_directories(self, tmp_path, weather_model):
        """Missing parent directories are created."""
        path = write_model(weather_model, tmp_path / "nested" / "dir" / "model.json")
        assert path.exists()

    def test_unicode_labels(self, tmp_path):
        """Non-ASCII labels are stored as text."""
        model = MaxentModel(np.array([[0.5], [-0.5]]), ["wort=Straße"], ["名詞", "動詞"], model_type="QN")
        loaded = read_model(write_model(model, tmp_path / "model.json"))
        assert loaded.outcome_labels == ["名詞", "動詞"]
        assert loaded.predicate_id("wort=Straße") == 0


class TestCorruptedModels:
    """Test that damaged files raise ModelFormatError."""

    @pytest.fixture
    def document(self, weather_model):
        """A valid serialized model."""
        return model_to_dict(weather_model)

    def test_truncated_file(self, tmp_path, weather_model):
        """A cut-off JSON document cannot be read."""
        path = write_model(weather_model, tmp_path / "model.json")
        text = path.read_text(encoding="utf-8")
        path.write_text(text[: len(text) // 2], encoding="utf-8")
        with pytest.raises(ModelFormatError):
            read_model(path)

    def test_truncated_gzip(self, tmp_path, weather_model):
        """A cut-off gzip stream cannot be read."""
        path = write_model(weather_model, tmp_path / "model.json.gz")
        data = path.read_bytes()
        path.write_bytes(data[: len(data) // 2])
        with pytest.raises(ModelFormatError):
            read_model(path)

    def test_wrong_format_tag(self, document):
        """Documents from other tools are rejected."""
        document["format"] = "something-else"
        with pytest.raises(ModelFormatError):
            model_from_dict(document)

    def test_wrong_version(self, document):
        """Unknown format versions are rejected."""
        document["version"] = 99
        with pytest.raises(ModelFormatError):
            model_from_dict(document)

    @pytest.mark.parametrize("field", ["model_type", "outcome_labels", "pred_labels", "weights"])
    def test_missing_field(self, document, field):
        """Every required field must be present."""
        del document[field]
        with pytest.raises(ModelFormatError):
            model_from_dict(document)

    def test_shape_mismatch(self, document):
        """The weight matrix must match the label counts."""
        document["pred_labels"] = document["pred_labels"][:-1]
        with pytest.raises(ModelFormatError):
            model_from_dict(document)

    def test_duplicate_predicates(self, document):
        """A predicate dictionary with duplicates is corrupted."""
        document["pred_labels"][1] = document["pred_labels"][0]
        with pytest.raises(ModelFormatError):
            model_from_dict(document)

    def test_duplicate_outcomes(self, document):
        """Outcome labels must be unique."""
        document["outcome_labels"][1] = document["outcome_labels"][0]
        with pytest.raises(ModelFormatError):
            model_from_dict(document)

    def test_non_numeric_weights(self, document):
        """Weights must be numbers."""
        document["weights"][0][0] = "heavy"
        with pytest.raises(ModelFormatError):
            model_from_dict(document)

    def test_non_finite_weights(self, document):
        """NaN weights are rejected."""
        document["weights"][0][0] = float("nan")
        with pytest.raises(ModelFormatError):
            model_from_dict(document)

    def test_unknown_model_type(self, document):
        """Only known model types load."""
        document["model_type"] = "PERCEPTRON"
        with pytest.raises(ModelFormatError):
            model_from_dict(document)

    def test_not_an_object(self):
        """The top level must be a JSON object."""
        with pytest.raises(ModelFormatError):
            model_from_dict([1, 2, 3])
