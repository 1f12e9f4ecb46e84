"""
Tests for the command line interface.
"""
import pytest

from maxentpipe.__main__ import build_parser, main
from maxentpipe.model_io import read_model


class TestParser:
    """Test argument parsing."""

    def test_no_task(self, capsys):
        """Running without a task is an error."""
        with pytest.raises(SystemExit):
            main([])
        assert "No task specified" in capsys.readouterr().err

    def test_version(self, capsys):
        """--version prints the package version."""
        with pytest.raises(SystemExit) as excinfo:
            main(["--version"])
        assert excinfo.value.code == 0
        assert "maxentpipe" in capsys.readouterr().out

    def test_common_flags_on_subcommands(self):
        """--debug and --verbose are accepted by every subcommand."""
        args = build_parser().parse_args(["info", "--verbose"])
        assert args.verbose is True
        assert args.debug is False


class TestTrainCommand:
    """Test 'maxentpipe train'."""

    def test_train_writes_model(self, tmp_path, event_file, capsys):
        """Training writes a readable model and reports it."""
        output = tmp_path / "model.json.gz"
        code = main(["train", str(event_file), "-o", str(output), "--cutoff", "1", "--iterations", "20"])
        assert code == 0
        model = read_model(output)
        assert sorted(model.outcome_labels) == ["in", "out"]
        assert "Model saved to" in capsys.readouterr().err

    def test_train_qn_with_params_file(self, tmp_path, event_file):
        """Settings can come from a key=value parameters file."""
        params = tmp_path / "qn.params"
        params.write_text("Algorithm=MAXENT_QN\nIterations=30\nCutoff=1\n", encoding="utf-8")
        output = tmp_path / "model.json"
        assert main(["train", str(event_file), "-o", str(output), "--params", str(params)]) == 0
        assert read_model(output).model_type == "QN"

    def test_missing_data(self, tmp_path, capsys):
        """A missing training file is reported."""
        code = main(["train", str(tmp_path / "nope.events"), "-o", str(tmp_path / "m.json")])
        assert code == 1
        assert "not found" in capsys.readouterr().err

    def test_bad_setting(self, tmp_path, event_file, capsys):
        """Invalid settings fail with a message instead of a traceback."""
        code = main(["train", str(event_file), "-o", str(tmp_path / "m.json"), "--algorithm", "perceptron"])
        assert code == 1
        assert "Training failed" in capsys.readouterr().err

    def test_missing_params_file(self, tmp_path, event_file, capsys):
        """A missing parameters file is reported instead of a traceback."""
        code = main(["train", str(event_file), "-o", str(tmp_path / "m.json"),
                     "--params", str(tmp_path / "nope.params")])
        assert code == 1
        assert "Training failed" in capsys.readouterr().err

    def test_unwritable_output(self, tmp_path, event_file, capsys):
        """An output path that cannot be created is reported."""
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        code = main(["train", str(event_file), "-o", str(blocker / "m.json"), "--cutoff", "1"])
        assert code == 1
        assert "Training failed" in capsys.readouterr().err

    def test_train_tagged(self, tmp_path):
        """Tagged sentences train a sequence model."""
        data = tmp_path / "tagged.txt"
        data.write_text("the/DT cat/NN sat/VBD\na/DT dog/NN ran/VBD\n" * 3, encoding="utf-8")
        output = tmp_path / "tagger.json"
        code = main(["train", str(data), "-o", str(output), "--format", "tagged", "--cutoff", "1"])
        assert code == 0
        assert sorted(read_model(output).outcome_labels) == ["DT", "NN", "VBD"]


class TestEvaluateCommand:
    """Test 'maxentpipe evaluate'."""

    def test_evaluate_prints_accuracy(self, tmp_path, event_file, capsys):
        """Evaluation prints a table with the accuracy."""
        output = tmp_path / "model.json"
        main(["train", str(event_file), "-o", str(output), "--cutoff", "1"])
        capsys.readouterr()
        assert main(["evaluate", str(output), str(event_file), "--per-outcome"]) == 0
        out = capsys.readouterr().out
        assert "Accuracy" in out
        assert "100.00%" in out
        assert "in" in out and "out" in out

    def test_corrupted_model(self, tmp_path, event_file, capsys):
        """A broken model file is reported."""
        model = tmp_path / "model.json"
        model.write_text("{broken", encoding="utf-8")
        assert main(["evaluate", str(model), str(event_file)]) == 1
        assert "Evaluation failed" in capsys.readouterr().err


class TestInfoCommand:
    """Test 'maxentpipe info'."""

    def test_describe_model(self, tmp_path, event_file, capsys):
        """info lists the model's dimensions and top features."""
        output = tmp_path / "model.json"
        main(["train", str(event_file), "-o", str(output), "--cutoff", "1"])
        capsys.readouterr()
        assert main(["info", str(output), "--top", "2"]) == 0
        out = capsys.readouterr().out
        assert "Outcomes" in out
        assert "Predicates" in out
        assert "Weight" in out

    def test_describe_setup(self, capsys):
        """Without a model info lists algorithms and settings."""
        assert main(["info"]) == 0
        out = capsys.readouterr().out
        assert "GIS" in out and "QN" in out
        assert "two_pass" in out
        assert "cutoff" in out

    def test_missing_model(self, tmp_path, capsys):
        """A missing model file is reported."""
        assert main(["info", str(tmp_path / "none.json")]) == 1
        assert "not found" in capsys.readouterr().err


class TestDecodeCommand:
    """Test 'maxentpipe decode'."""

    def test_decode_sentences(self, tmp_path, capsys):
        """Decoding prints word/LABEL tokens for every input line."""
        data = tmp_path / "tagged.txt"
        data.write_text("the/DT cat/NN sat/VBD\na/DT dog/NN ran/VBD\n" * 3, encoding="utf-8")
        model = tmp_path / "tagger.json"
        main(["train", str(data), "-o", str(model), "--format", "tagged", "--cutoff", "1"])
        capsys.readouterr()

        text = tmp_path / "input.txt"
        text.write_text("the dog sat\n\na cat ran\n", encoding="utf-8")
        assert main(["decode", str(model), str(text), "--beam-size", "2"]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "the/DT dog/NN sat/VBD"
        assert lines[1] == ""
        assert lines[2] == "a/DT cat/NN ran/VBD"

    def test_missing_input(self, tmp_path, event_file, capsys):
        """A missing input file is reported."""
        model = tmp_path / "model.json"
        main(["train", str(event_file), "-o", str(model), "--cutoff", "1"])
        capsys.readouterr()
        assert main(["decode", str(model), str(tmp_path / "none.txt")]) == 1
        assert "Could not read input" in capsys.readouterr().err

    def test_invalid_beam_size(self, tmp_path, event_file, capsys):
        """A beam size below one is reported."""
        model = tmp_path / "model.json"
        main(["train", str(event_file), "-o", str(model), "--cutoff", "1"])
        capsys.readouterr()
        assert main(["decode", str(model), "--beam-size", "0"]) == 1
        assert "Decoding failed" in capsys.readouterr().err

    def test_decode_n_best(self, tmp_path, capsys):
        """With --num-sequences each line carries its score."""
        data = tmp_path / "tagged.txt"
        data.write_text("the/DT cat/NN\na/DT dog/NN\n" * 3, encoding="utf-8")
        model = tmp_path / "tagger.json"
        main(["train", str(data), "-o", str(model), "--format", "tagged", "--cutoff", "1"])
        capsys.readouterr()

        text = tmp_path / "input.txt"
        text.write_text("the cat\n", encoding="utf-8")
        assert main(["decode", str(model), str(text), "--num-sequences", "2"]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 2
        assert all("\t" in line for line in lines)
