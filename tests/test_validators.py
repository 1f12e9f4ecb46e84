"""
Tests for the sequence validators.
"""
import pytest

from maxentpipe.validators import (
    BilouSequenceValidator,
    ChunkerSequenceValidator,
    NameFinderSequenceValidator,
    SequenceValidator,
    TagDictionaryValidator,
    extract_name_type,
)


class TestExtractNameType:
    """Test splitting the entity type off a label."""

    def test_typed_labels(self):
        """The part before the last dash is the type."""
        assert extract_name_type("person-start") == "person"
        assert extract_name_type("date-time-cont") == "date-time"

    def test_untyped_labels(self):
        """Labels without a type give None."""
        assert extract_name_type("other") is None
        assert extract_name_type("start") is None


class TestNameFinderSequenceValidator:
    """Test BIO-style name finder labels."""

    @pytest.fixture
    def validator(self):
        """Validator under test."""
        return NameFinderSequenceValidator()

    def test_cont_needs_history(self, validator):
        """A sequence cannot begin inside a name."""
        assert not validator.valid_sequence(0, ["x"], [], "person-cont")

    def test_cont_after_other(self, validator):
        """cont cannot follow other."""
        assert not validator.valid_sequence(1, ["x", "y"], ["other"], "person-cont")

    def test_cont_after_start_of_same_type(self, validator):
        """cont continues a name of the same type."""
        assert validator.valid_sequence(1, ["x", "y"], ["person-start"], "person-cont")
        assert validator.valid_sequence(2, ["x", "y", "z"], ["person-start", "person-cont"], "person-cont")

    def test_cont_after_start_of_other_type(self, validator):
        """A name cannot change type midway."""
        assert not validator.valid_sequence(1, ["x", "y"], ["person-start"], "location-cont")
        assert not validator.valid_sequence(2, ["x", "y", "z"], ["person-start", "person-cont"], "location-cont")

    def test_start_and_other_always_valid(self, validator):
        """start and other may appear anywhere."""
        assert validator.valid_sequence(0, ["x"], [], "person-start")
        assert validator(1, ["x", "y"], ["person-start"], "other")


class TestBilouSequenceValidator:
    """Test BILOU labels."""

    @pytest.fixture
    def validator(self):
        """Validator under test."""
        return BilouSequenceValidator()

    def test_outside_entity(self, validator):
        """Outside an entity only start, unit or other are allowed."""
        assert validator.valid_sequence(0, ["x"], [], "person-start")
        assert validator.valid_sequence(0, ["x"], [], "person-unit")
        assert validator.valid_sequence(0, ["x"], [], "other")
        assert not validator.valid_sequence(0, ["x"], [], "person-cont")
        assert not validator.valid_sequence(1, ["x", "y"], ["person-last"], "person-last")

    def test_inside_entity(self, validator):
        """Inside an entity only cont or last of the same type are allowed."""
        history = ["person-start"]
        assert validator.valid_sequence(1, ["x", "y"], history, "person-cont")
        assert validator.valid_sequence(1, ["x", "y"], history, "person-last")
        assert not validator.valid_sequence(1, ["x", "y"], history, "other")
        assert not validator.valid_sequence(1, ["x", "y"], history, "person-start")
        assert not validator.valid_sequence(1, ["x", "y"], history, "location-last")


class TestChunkerSequenceValidator:
    """Test chunk labels."""

    @pytest.fixture
    def validator(self):
        """Validator under test."""
        return ChunkerSequenceValidator()

    def test_inside_needs_matching_begin(self, validator):
        """I-X follows B-X or I-X."""
        assert validator.valid_sequence(1, ["a", "b"], ["B-NP"], "I-NP")
        assert validator.valid_sequence(2, ["a", "b", "c"], ["B-NP", "I-NP"], "I-NP")
        assert not validator.valid_sequence(1, ["a", "b"], ["B-VP"], "I-NP")
        assert not validator.valid_sequence(1, ["a", "b"], ["O"], "I-NP")
        assert not validator.valid_sequence(0, ["a"], [], "I-NP")

    def test_begin_and_outside_always_valid(self, validator):
        """B-X and O may appear anywhere."""
        assert validator.valid_sequence(0, ["a"], [], "B-NP")
        assert validator.valid_sequence(1, ["a", "b"], ["B-NP"], "O")


class TestTagDictionaryValidator:
    """Test tag dictionary restrictions."""

    def test_known_token_restricted(self):
        """Known tokens may only take their listed tags."""
        validator = TagDictionaryValidator({"the": ["DT"], "run": ["VB", "NN"]})
        assert validator.valid_sequence(0, ["the"], [], "DT")
        assert not validator.valid_sequence(0, ["the"], [], "NN")
        assert validator.valid_sequence(0, ["run"], [], "NN")

    def test_unknown_token_unrestricted(self):
        """Tokens missing from the dictionary take any tag."""
        validator = TagDictionaryValidator({"the": ["DT"]})
        assert validator.valid_sequence(0, ["zebra"], [], "NN")

    def test_case_insensitive(self):
        """Case-insensitive dictionaries match any casing."""
        validator = TagDictionaryValidator({"The": ["DT"]}, case_sensitive=False)
        assert not validator.valid_sequence(0, ["THE"], [], "NN")
        assert validator.valid_sequence(0, ["the"], [], "DT")


class TestBaseValidator:
    """Test the permissive base class."""

    def test_accepts_everything(self):
        """The base validator accepts every outcome."""
        assert SequenceValidator()(0, ["x"], [], "anything")
