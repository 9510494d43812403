"""Simple runner that takes a YAML schema file and a dataset folder."""

from __future__ import annotations

import logging
import yaml
from pathlib import Path
from typing import Optional

from .scenarios import GlobalReport, run_scenarios
from .schema import SchemaRegistry, load_schema_dict
from .models import EngineConfig
from .exceptions import SchemaParseError

logger = logging.getLogger(__name__)


class MsgCmpRunner:
    """
    Scenario runner that loads the schema from YAML and datasets from a folder.

    The schema file may carry an optional `engine` block with EngineConfig
    options next to the type declarations.

    Usage:
        runner = MsgCmpRunner("schema.yaml", "testdata/datasets")
        report = runner.run()

    Or as a one-liner:
        report = MsgCmpRunner.run_tests("schema.yaml", "testdata/datasets")
    """

    def __init__(
        self,
        schema_path: str,
        test_folder: str,
        engine_config: Optional[EngineConfig] = None
    ):
        self.schema_path = Path(schema_path)
        self.test_folder = Path(test_folder)
        self._engine_config = engine_config
        self._registry: Optional[SchemaRegistry] = None

    @property
    def registry(self) -> SchemaRegistry:
        """Load and cache the registry from the schema file."""
        if self._registry is None:
            self._load()
        return self._registry

    @property
    def engine_config(self) -> EngineConfig:
        if self._engine_config is None:
            self._load()
        return self._engine_config

    def _load(self):
        if not self.schema_path.exists():
            raise FileNotFoundError(f"Schema file not found: {self.schema_path}")

        with open(self.schema_path, 'r') as f:
            content = f.read()

        # JSON is valid YAML, so both formats load here.
        try:
            document = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise SchemaParseError(f"Failed to parse schema file: {self.schema_path}", reason=str(e)) from e
        if not isinstance(document, dict):
            raise SchemaParseError(f"Schema file must hold a mapping: {self.schema_path}")

        document = dict(document)
        engine_options = document.pop("engine", None)
        if self._engine_config is None:
            self._engine_config = EngineConfig.from_dict(engine_options)
        self._registry = load_schema_dict(document)

    def run(self, print_report: bool = True) -> GlobalReport:
        """Run all datasets in the test folder."""
        if not self.test_folder.exists():
            raise FileNotFoundError(f"Test folder not found: {self.test_folder}")

        logging.getLogger("msgcmp").setLevel(self.engine_config.log_level.value)
        logger.info("Running datasets from %s against %s", self.test_folder, self.schema_path)
        return run_scenarios(
            folder=str(self.test_folder),
            registry=self.registry,
            engine_config=self.engine_config,
            print_report=print_report
        )

    @classmethod
    def run_tests(
        cls,
        schema_path: str,
        test_folder: str,
        print_report: bool = True,
        engine_config: Optional[EngineConfig] = None
    ) -> GlobalReport:
        """
        Convenience class method to run datasets in one call.

        Example:
            report = MsgCmpRunner.run_tests("schema.yaml", "datasets/")
        """
        runner = cls(schema_path, test_folder, engine_config)
        return runner.run(print_report=print_report)


def run_tests(
    schema_path: str,
    test_folder: str,
    print_report: bool = True
) -> GlobalReport:
    """
    Run datasets from a schema file and a folder.

        from msgcmp.runner import run_tests
        report = run_tests("schema.yaml", "testdata/datasets")
    """
    return MsgCmpRunner.run_tests(schema_path, test_folder, print_report)
