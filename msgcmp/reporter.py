"""Human-readable rendering of comparison results."""

from __future__ import annotations

from typing import Any, Iterable

from .models import DiffEntry, DiffReport, DiffType


def format_value(value: Any) -> str:
    """Render one canonical value on a single line."""
    if value is None:
        return "<null>"
    return repr(value)


def render_entry(entry: DiffEntry) -> list[str]:
    lines = [f"{entry.path}:"]
    if entry.type == DiffType.LENGTH_MISMATCH:
        lines.append(f"~\tlength {entry.old_value} != {entry.new_value}")
        return lines
    if entry.type != DiffType.EXTRA_IN_NEW:
        lines.append(f"-\t{format_value(entry.old_value)}")
    if entry.type != DiffType.MISSING_IN_NEW:
        lines.append(f"+\t{format_value(entry.new_value)}")
    return lines


def render_diff(entries: Iterable[DiffEntry]) -> str:
    """
    Render diff entries as a -/+ listing keyed by path.

    Example:
        $.optional_int32:
        -	5
        +	6
    """
    lines = []
    for entry in entries:
        lines.extend(render_entry(entry))
    return "\n".join(lines)


def render_report(report: DiffReport) -> str:
    """Render a full report: one summary line followed by the diff."""
    if report.is_match:
        return f"Match ({report.summary.total_fields_checked} values checked)"
    header = (
        f"Mismatch: {report.summary.mismatches_found} difference(s), "
        f"{report.summary.total_fields_checked} values checked"
    )
    if report.truncated:
        header += f", showing first {len(report.diffs)}"
    return header + "\n" + render_diff(report.diffs)
