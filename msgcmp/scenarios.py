"""Scenario runner: compares message pairs described by JSON dataset files."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .engine import CompareEngine
from .models import EngineConfig, DiffReport
from .schema import SchemaRegistry
from .message import parse_message
from .rules import rules_from_config
from .jsonpath_utils import JSONPathMatcher
from .exceptions import MsgCmpError, ValidationError

logger = logging.getLogger(__name__)

_SIDES = ("before", "after")


@dataclass
class ScenarioResult:
    """Result of a single dataset scenario."""
    name: str
    dataset_path: str
    passed: bool
    is_match: Optional[bool] = None
    expected_match: bool = True
    diff_report: Optional[dict] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        result = {
            "name": self.name,
            "dataset_path": self.dataset_path,
            "passed": self.passed,
            "is_match": self.is_match,
            "expected_match": self.expected_match,
        }
        if self.diff_report:
            result["diff_report"] = self.diff_report
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class GlobalReport:
    """Global report across all scenarios."""
    total: int = 0
    passed: int = 0
    failed: int = 0
    scenarios: list[ScenarioResult] = field(default_factory=list)
    breakdown: dict[str, list[str]] = field(default_factory=dict)
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')
        if not self.breakdown:
            self.breakdown = {
                "equal": [],
                "different": [],
                "errors": [],
            }

    @property
    def pass_rate(self) -> str:
        return f"{(self.passed / self.total * 100):.1f}%" if self.total > 0 else "0.0%"

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "summary": {
                "total_scenarios": self.total,
                "passed": self.passed,
                "failed": self.failed,
                "pass_rate": self.pass_rate,
            },
            "breakdown": self.breakdown,
            "scenarios": [s.to_dict() for s in self.scenarios],
        }

    def print_summary(self):
        print(f"\nScenario Results: {self.passed}/{self.total} passed ({self.pass_rate})")
        if self.failed > 0:
            print(f"  Failed: {self.failed}")
        if self.breakdown.get("equal"):
            print(f"  Equal: {len(self.breakdown['equal'])} datasets")
        if self.breakdown.get("different"):
            print(f"  Different: {len(self.breakdown['different'])} datasets")
        if self.breakdown.get("errors"):
            print(f"  Errors: {len(self.breakdown['errors'])} datasets")


class ScenarioRunner:
    """
    Runs dataset scenarios against a schema registry.

    A dataset is a JSON object:

        {
          "name": "unknown bytes ignored",
          "type": "pkg.Shape",
          "before": {...}, "after": {...},
          "representations": {"before": "generated", "after": "dynamic"},
          "select": "$.payload",
          "rules": {"ignore_unknown": true},
          "expected_match": true
        }

    "select" (a JSONPath string, or one per side) picks the message payload
    out of a larger document; a null payload stands for a null message.
    """

    def __init__(self, registry: SchemaRegistry, engine_config: Optional[EngineConfig] = None):
        self.registry = registry
        self.engine = CompareEngine(engine_config or EngineConfig())

    def _side_option(self, dataset: dict, key: str, side: str, default: Any) -> Any:
        option = dataset.get(key, default)
        if isinstance(option, dict):
            return option.get(side, default)
        return option

    def build_message(self, dataset: dict, side: str):
        """Build the message for one side of a dataset."""
        if "type" not in dataset:
            raise ValidationError("dataset is missing 'type'")
        if side not in dataset:
            raise ValidationError(f"dataset is missing '{side}'")

        payload = dataset[side]
        select = self._side_option(dataset, "select", side, None)
        if select:
            payload = JSONPathMatcher.select_one(payload, select)
        if payload is None:
            return None

        representation = self._side_option(dataset, "representations", side, "generated")
        return parse_message(dataset["type"], payload, self.registry, representation)

    def run_dataset(self, dataset: dict, name: str, dataset_path: str) -> ScenarioResult:
        """Run a single dataset scenario."""
        expected = bool(dataset.get("expected_match", True))
        try:
            before, after = (self.build_message(dataset, side) for side in _SIDES)
            rule_set = rules_from_config(dataset.get("rules"), self.registry)
            report: DiffReport = self.engine.compare(before, after, rule_set)
        except (MsgCmpError, KeyError, TypeError, ValueError) as e:
            logger.warning("Scenario %s could not run: %s", name, e)
            return ScenarioResult(
                name=name,
                dataset_path=dataset_path,
                passed=False,
                expected_match=expected,
                error=str(e),
            )

        return ScenarioResult(
            name=name,
            dataset_path=dataset_path,
            passed=report.is_match == expected,
            is_match=report.is_match,
            expected_match=expected,
            diff_report=report.to_dict(),
        )

    def run_folder(self, folder: str, print_report: bool = True) -> GlobalReport:
        """Run all dataset files in a folder."""
        report = GlobalReport()
        folder_path = Path(folder)

        for dataset_file in sorted(folder_path.glob("*.json")):
            with open(dataset_file) as f:
                dataset = json.load(f)

            name = dataset.get("name", dataset_file.stem)
            logger.debug("Running scenario %s from %s", name, dataset_file)
            result = self.run_dataset(dataset, name, str(dataset_file))

            report.scenarios.append(result)
            report.total += 1
            if result.error:
                report.breakdown["errors"].append(name)
            elif result.is_match:
                report.breakdown["equal"].append(name)
            else:
                report.breakdown["different"].append(name)

            if result.passed:
                report.passed += 1
                if print_report:
                    print(f"PASS: {name}")
            else:
                report.failed += 1
                if print_report:
                    print(f"FAIL: {name}")

        if print_report:
            report.print_summary()

        return report


def run_scenarios(
    folder: str,
    registry: SchemaRegistry,
    engine_config: Optional[EngineConfig] = None,
    print_report: bool = True
) -> GlobalReport:
    """Run all scenarios in a directory."""
    runner = ScenarioRunner(registry, engine_config)
    return runner.run_folder(folder, print_report)
