"""Tests for dataset scenarios, the YAML-backed runner and rule configs."""

import json
import sys
from pathlib import Path

import pytest
import run_dataset_tests
from msgcmp import (
    EngineConfig,
    MsgCmpRunner,
    RuleError,
    ScenarioRunner,
    ValidationError,
    load_schema,
    rules_from_config,
)

TESTDATA = Path(__file__).parent / "testdata"
SCHEMA_PATH = TESTDATA / "schema.yaml"
DATASETS = TESTDATA / "datasets"


class TestRunner:
    """Running the bundled datasets end to end."""

    def test_all_datasets_pass(self):
        """Test that every bundled dataset meets its expectation."""
        report = MsgCmpRunner.run_tests(str(SCHEMA_PATH), str(DATASETS), print_report=False)
        failures = [s.to_dict() for s in report.scenarios if not s.passed]
        assert failures == []
        assert report.total == len(list(DATASETS.glob("*.json")))
        assert report.pass_rate == "100.0%"

    def test_engine_block_is_loaded(self):
        """Test that the schema file's engine block configures the runner."""
        runner = MsgCmpRunner(str(SCHEMA_PATH), str(DATASETS))
        assert runner.engine_config.max_reported_diffs == 50
        assert runner.engine_config.fail_fast is False

    def test_breakdown(self):
        """Test that scenarios are grouped into equal, different and errors."""
        report = MsgCmpRunner.run_tests(str(SCHEMA_PATH), str(DATASETS), print_report=False)
        assert "different oneof alternatives" in report.breakdown["different"]
        assert "null message equals empty message" in report.breakdown["equal"]
        assert report.breakdown["errors"] == []
        assert report.to_dict()["summary"]["failed"] == 0

    def test_missing_schema(self, tmp_path):
        """Test that a missing schema file raises FileNotFoundError."""
        runner = MsgCmpRunner(str(tmp_path / "missing.yaml"), str(DATASETS))
        with pytest.raises(FileNotFoundError):
            runner.run(print_report=False)

    def test_unknown_engine_option(self, tmp_path):
        """Test that an unknown engine option is rejected."""
        schema = tmp_path / "schema.yaml"
        schema.write_text("engine:\n  retries: 3\npackage: x\n")
        with pytest.raises(ValueError):
            MsgCmpRunner(str(schema), str(tmp_path)).engine_config

    def test_broken_dataset_is_reported(self, tmp_path):
        """Test that a dataset naming an unknown field becomes an errored scenario."""
        (tmp_path / "broken.json").write_text(json.dumps({
            "name": "broken",
            "type": "test.TestAllTypes",
            "before": {"no_such_field": 1},
            "after": {},
        }))
        report = MsgCmpRunner.run_tests(str(SCHEMA_PATH), str(tmp_path), print_report=False)
        assert report.failed == 1
        assert report.breakdown["errors"] == ["broken"]
        assert "no_such_field" in report.scenarios[0].error

    def test_out_of_range_number_is_reported(self, tmp_path):
        """Test that a number too large for a double fails only its own scenario."""
        (tmp_path / "huge.json").write_text(json.dumps({
            "name": "huge double",
            "type": "test.TestAllTypes",
            "before": {"optional_double": 10 ** 400},
            "after": {},
        }))
        (tmp_path / "plain.json").write_text(json.dumps({
            "name": "plain",
            "type": "test.TestAllTypes",
            "before": {"optional_double": 1.5},
            "after": {"optional_double": 1.5},
        }))
        report = MsgCmpRunner.run_tests(str(SCHEMA_PATH), str(tmp_path), print_report=False)
        assert report.total == 2
        assert report.breakdown["errors"] == ["huge double"]
        assert report.breakdown["equal"] == ["plain"]
        assert "out of range for double" in report.scenarios[0].error


class TestCommandLine:
    """run_dataset_tests.py end to end."""

    def test_report_written(self, tmp_path, monkeypatch):
        """Test that the command writes a JSON report and exits cleanly."""
        report_path = tmp_path / "report.json"
        monkeypatch.setattr(sys, "argv", [
            "run_dataset_tests.py", str(SCHEMA_PATH), str(report_path), str(DATASETS), "-q",
        ])
        assert run_dataset_tests.main() == 0
        report = json.loads(report_path.read_text())
        assert report["summary"]["failed"] == 0

    def test_overrides_and_failures(self, tmp_path, monkeypatch):
        """Test that --max-diffs truncates reports and failures set the exit code."""
        (tmp_path / "mismatch.json").write_text(json.dumps({
            "type": "test.TestAllTypes",
            "before": {"optional_int32": 1, "optional_int64": 1},
            "after": {"optional_int32": 2, "optional_int64": 2},
        }))
        report_path = tmp_path / "report.json"
        monkeypatch.setattr(sys, "argv", [
            "run_dataset_tests.py", "-s", str(SCHEMA_PATH), "-r", str(report_path),
            "-d", str(tmp_path), "--max-diffs", "1", "-q",
        ])
        assert run_dataset_tests.main() == 1
        scenario = json.loads(report_path.read_text())["scenarios"][0]
        assert scenario["diff_report"]["truncated"] is True
        assert len(scenario["diff_report"]["diffs"]) == 1

    def test_missing_datasets_folder(self, tmp_path, monkeypatch):
        """Test that a missing dataset folder exits with an error."""
        monkeypatch.setattr(sys, "argv", [
            "run_dataset_tests.py", str(SCHEMA_PATH), str(tmp_path / "r.json"), str(tmp_path / "none"), "-q",
        ])
        assert run_dataset_tests.main() == 1


class TestScenarioRunner:
    """Single dataset handling."""

    def setup_method(self):
        self.registry = load_schema(SCHEMA_PATH)
        self.runner = ScenarioRunner(self.registry, EngineConfig())

    def test_expected_mismatch_passes(self):
        """Test that an expected mismatch counts as a pass."""
        dataset = {
            "type": "test.TestAllTypes",
            "before": {"optional_int32": 1},
            "after": {"optional_int32": 2},
            "expected_match": False,
        }
        result = self.runner.run_dataset(dataset, "mismatch", "<memory>")
        assert result.passed is True
        assert result.is_match is False
        assert result.diff_report["diffs"][0]["path"] == "$.optional_int32"

    def test_select_per_side(self):
        """Test that each side can select its payload with its own JSONPath."""
        dataset = {
            "type": "test.TestAllTypes",
            "select": {"before": "$.old", "after": "$.new"},
            "before": {"old": {"optional_int32": 1}},
            "after": {"new": {"optional_int32": 1}},
        }
        assert self.runner.run_dataset(dataset, "select", "<memory>").passed is True

    def test_select_must_match_one_value(self):
        """Test that a JSONPath matching nothing is a validation error."""
        dataset = {"type": "test.TestAllTypes", "select": "$.missing", "before": {}, "after": {}}
        with pytest.raises(ValidationError):
            self.runner.build_message(dataset, "before")

    def test_missing_type(self):
        """Test that a dataset without a type is reported as an error."""
        result = self.runner.run_dataset({"before": {}, "after": {}}, "untyped", "<memory>")
        assert result.passed is False
        assert "type" in result.error

    def test_representation(self):
        """Test that each side is built in its requested representation."""
        dataset = {
            "type": "test.ForeignMessage",
            "representations": {"before": "dynamic"},
            "before": {"c": 1},
            "after": {"c": 1},
        }
        before = self.runner.build_message(dataset, "before")
        after = self.runner.build_message(dataset, "after")
        assert type(before).__name__ == "DynamicMessage"
        assert type(after).__name__ == "ForeignMessage"


class TestRulesFromConfig:
    """Rule sets described by configuration mappings."""

    def setup_method(self):
        self.registry = load_schema(SCHEMA_PATH)

    def test_empty(self):
        """Test that no config gives an empty rule set."""
        assert len(rules_from_config(None, self.registry)) == 0

    def test_flags_and_names(self):
        """Test that flags and name-based rules are read from config."""
        rules = rules_from_config({
            "ignore_unknown": True,
            "ignore_default_scalars": False,
            "ignore_enums": ["test.ForeignEnum"],
            "ignore_fields": {"test.TestAllTypes": ["optional_int32"]},
            "ignore_oneofs": {"test.TestAllTypes": ["oneof_field"]},
        }, self.registry)
        assert rules.ignores_unknown is True
        assert rules.ignores_default_scalars is False
        assert len(rules) == 4

    def test_descriptors_by_name(self):
        """Test that descriptors resolve from extension, field and oneof names."""
        rules = rules_from_config({
            "ignore_descriptors": [
                "test.optional_string_extension",
                "test.TestAllTypes.optional_int32",
                "test.TestAllTypes.oneof_field",
            ],
        }, self.registry)
        fields = self.registry.find_message("test.TestAllTypes").fields_by_name
        assert rules.ignores_field(fields["optional_int32"]) is True
        assert rules.ignores_field(fields["oneof_bytes"]) is True
        assert rules.ignores_field(self.registry.find_extension("test.optional_string_extension")) is True

    def test_unknown_rule(self):
        """Test that an unknown rule key is rejected."""
        with pytest.raises(RuleError):
            rules_from_config({"ignore_everything": True}, self.registry)

    def test_unknown_type(self):
        """Test that an unknown message type is rejected."""
        with pytest.raises(RuleError):
            rules_from_config({"ignore_messages": ["test.Missing"]}, self.registry)

    def test_unknown_descriptor(self):
        """Test that an unknown descriptor name is rejected."""
        with pytest.raises(RuleError):
            rules_from_config({"ignore_descriptors": ["test.TestAllTypes.missing"]}, self.registry)
