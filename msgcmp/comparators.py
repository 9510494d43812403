"""Leaf comparison functions for canonical scalar values."""

from __future__ import annotations

from typing import Any

from .utils import float_bits, get_type_name


def compare_floats(old: float, new: float) -> tuple[bool, str]:
    """
    Compare two floats by bit pattern.

    No tolerance is applied: 0.0 and -0.0 differ, identical NaNs match.
    """
    if float_bits(old) == float_bits(new):
        return True, ""
    return False, f"Values differ: {old!r} != {new!r}"


def compare_bytes(old: bytes, new: bytes) -> tuple[bool, str]:
    """Compare byte strings by length, then content."""
    if len(old) != len(new):
        return False, f"Byte lengths differ: {len(old)} != {len(new)}"
    if old != new:
        return False, "Byte contents differ"
    return True, ""


def compare_scalars(old: Any, new: Any) -> tuple[bool, str]:
    """
    Compare two scalar values of the same declared kind.

    Args:
        old: The old value
        new: The new value

    Returns:
        Tuple of (is_match, message)
    """
    if type(old) is not type(new):
        return False, f"Type mismatch: {get_type_name(old)} vs {get_type_name(new)}"

    if isinstance(old, float):
        return compare_floats(old, new)

    if isinstance(old, bytes):
        return compare_bytes(old, new)

    if old == new:
        return True, ""

    return False, f"Values differ: {old!r} != {new!r}"


def scalars_equal(old: Any, new: Any) -> bool:
    return compare_scalars(old, new)[0]
