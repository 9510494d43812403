"""Main comparison engine for msgcmp."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .models import EngineConfig, DiffReport, Summary
from .rules import Rule, RuleSet
from .normalizer import Normalizer
from .differ import Differ
from .reporter import render_diff

logger = logging.getLogger(__name__)


class CompareEngine:
    """
    Main comparison engine that orchestrates the pipeline:

    1. Rule composition: Union every rule passed in into one RuleSet
    2. Canonical transform: Canonicalize both values under the rule set
    3. Typed diffing: Lock-step comparison of the canonical trees
    4. Reporting: Collect diff entries into a DiffReport

    Both inputs are only read; nothing is cached between calls.
    """

    VERSION = "1.0.0"

    def __init__(self, config: Optional[EngineConfig] = None):
        """
        Initialize the engine.

        Args:
            config: Engine configuration (uses defaults if not provided)
        """
        self.config = config or EngineConfig()

    def transform(self, value: Any, *rules: Rule | RuleSet) -> Any:
        """Canonical form of a message (or any value containing messages)."""
        return Normalizer(RuleSet(rules)).transform(value)

    def compare(self, old: Any, new: Any, *rules: Rule | RuleSet) -> DiffReport:
        """
        Compare two messages, or two values that may contain messages.

        Args:
            old: The baseline value
            new: The value to compare against it
            rules: Relaxations to apply, as Rule or RuleSet values

        Returns:
            DiffReport describing equality and every divergence found
        """
        return self._run(old, new, RuleSet(rules), self.config.fail_fast)

    def equal(self, old: Any, new: Any, *rules: Rule | RuleSet) -> bool:
        """True when both values are equal under the given rules."""
        return self._run(old, new, RuleSet(rules), True).is_match

    def diff(self, old: Any, new: Any, *rules: Rule | RuleSet) -> str:
        """Rendered structural diff; empty string when the values are equal."""
        report = self.compare(old, new, *rules)
        if report.is_match:
            return ""
        return render_diff(report.diffs)

    def _run(self, old: Any, new: Any, rule_set: RuleSet, fail_fast: bool) -> DiffReport:
        normalizer = Normalizer(rule_set)
        old_canonical = normalizer.transform(old)
        new_canonical = normalizer.transform(new)

        differ = Differ(
            ignore_empty_messages=rule_set.ignores_empty_messages,
            fail_fast=fail_fast,
        )
        is_match = differ.diff(old_canonical, new_canonical) and not differ.diffs

        limit = self.config.max_reported_diffs
        diffs = differ.diffs
        truncated = limit is not None and len(diffs) > limit
        report = DiffReport(
            is_match=is_match,
            summary=Summary(
                total_fields_checked=differ.fields_checked if self.config.collect_statistics else 0,
                mismatches_found=len(diffs),
                fields_ignored=normalizer.fields_ignored if self.config.collect_statistics else 0,
            ),
            diffs=diffs[:limit] if truncated else diffs,
            truncated=truncated,
        )
        logger.debug(
            "Compared %s vs %s with %d rule(s): match=%s diffs=%d",
            _describe(old),
            _describe(new),
            len(rule_set),
            report.is_match,
            len(diffs),
        )
        return report


def _describe(value: Any) -> str:
    descriptor = getattr(value, "DESCRIPTOR", None)
    if descriptor is not None:
        return descriptor.full_name
    return type(value).__name__


def compare(old: Any, new: Any, *rules: Rule | RuleSet, config: Optional[EngineConfig] = None) -> DiffReport:
    """Convenience function to compare two values."""
    return CompareEngine(config).compare(old, new, *rules)


def equal(old: Any, new: Any, *rules: Rule | RuleSet) -> bool:
    """Convenience function: are the two values equal under the rules?"""
    return CompareEngine().equal(old, new, *rules)


def diff(old: Any, new: Any, *rules: Rule | RuleSet) -> str:
    """Convenience function: rendered diff, empty when equal."""
    return CompareEngine().diff(old, new, *rules)


def transform(value: Any, *rules: Rule | RuleSet) -> Any:
    """Convenience function: canonical form of a value under the rules."""
    return CompareEngine().transform(value, *rules)
