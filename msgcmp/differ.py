"""Lock-step walk over two canonical trees, collecting differences."""

from __future__ import annotations

from typing import Any

from .models import DiffEntry, DiffType, Severity
from .normalizer import CanonicalMessage, CanonicalStruct, UnknownFields
from .comparators import compare_scalars, compare_bytes
from .utils import build_path, map_key_path, get_type_name


def _ordered_keys(old: dict, new: dict) -> list:
    keys = list(old) + [key for key in new if key not in old]
    try:
        return sorted(keys)
    except TypeError:
        return sorted(keys, key=repr)


class Differ:
    """
    Compares canonical values and records every divergence.

    Handles:
    - Messages (type identity, then per-field entries)
    - Sequences (length, then element-wise in order)
    - Maps (key sets, then per-key values)
    - Scalars (exact type and value; floats by bit pattern)
    - Unknown-field units (length, then bytes)

    The relation is total: mismatched types produce a diff, never an error.
    """

    def __init__(self, ignore_empty_messages: bool = False, fail_fast: bool = False):
        self.ignore_empty_messages = ignore_empty_messages
        self.fail_fast = fail_fast

        self.diffs: list[DiffEntry] = []
        self.fields_checked = 0
        self._aborted = False

    def diff(self, old: Any, new: Any, path: str = "$") -> bool:
        """
        Perform deep diff comparison.

        Args:
            old: The old canonical value
            new: The new canonical value
            path: Display path of the current value

        Returns:
            True if values match, False otherwise
        """
        if self._aborted:
            return False

        self.fields_checked += 1

        if old is None and new is None:
            return True

        if old is None or new is None:
            present = new if old is None else old
            if (
                self.ignore_empty_messages
                and isinstance(present, CanonicalMessage)
                and present.is_empty()
            ):
                return True
            self._add_diff(
                path=path,
                diff_type=DiffType.EXTRA_IN_NEW if old is None else DiffType.MISSING_IN_NEW,
                old_value=old,
                new_value=new,
                message=f"Null vs {get_type_name(present)}",
            )
            return False

        if isinstance(old, CanonicalMessage) and isinstance(new, CanonicalMessage):
            return self._diff_messages(old, new, path)

        if isinstance(old, CanonicalStruct) and isinstance(new, CanonicalStruct):
            if old.cls is not new.cls:
                return self._type_mismatch(old, new, path)
            return self._diff_entries(old.entries, new.entries, path, build_path)

        if isinstance(old, UnknownFields) and isinstance(new, UnknownFields):
            is_match, message = compare_bytes(old.raw, new.raw)
            if not is_match:
                self._add_diff(
                    path=path,
                    diff_type=DiffType.UNKNOWN_FIELDS_MISMATCH,
                    old_value=old.raw,
                    new_value=new.raw,
                    message=message,
                )
            return is_match

        if isinstance(old, list) and isinstance(new, list):
            return self._diff_sequences(old, new, path)

        if isinstance(old, dict) and isinstance(new, dict):
            return self._diff_entries(old, new, path, map_key_path)

        if _is_structured(old) or _is_structured(new):
            return self._type_mismatch(old, new, path)

        is_match, message = compare_scalars(old, new)
        if not is_match:
            self._add_diff(
                path=path,
                diff_type=DiffType.VALUE_MISMATCH if type(old) is type(new) else DiffType.TYPE_MISMATCH,
                old_value=old,
                new_value=new,
                message=message,
            )
        return is_match

    def _diff_messages(self, old: CanonicalMessage, new: CanonicalMessage, path: str) -> bool:
        if old.type_name != new.type_name:
            self._add_diff(
                path=path,
                diff_type=DiffType.MESSAGE_TYPE_MISMATCH,
                old_value=old,
                new_value=new,
                message=f"Message types differ: {old.type_name} vs {new.type_name}",
            )
            return False

        all_match = True
        keys = list(old.entries) + [key for key in new.entries if key not in old.entries]
        for key in keys:
            if self._aborted:
                return False
            name = old.names.get(key) or new.names.get(key)
            child_path = build_path(path, name)

            if key not in new.entries:
                self._add_diff(
                    path=child_path,
                    diff_type=DiffType.MISSING_IN_NEW,
                    old_value=old.entries[key],
                    new_value=None,
                    message=f"Field missing in new: {name}",
                )
                all_match = False
            elif key not in old.entries:
                self._add_diff(
                    path=child_path,
                    diff_type=DiffType.EXTRA_IN_NEW,
                    old_value=None,
                    new_value=new.entries[key],
                    message=f"Extra field in new: {name}",
                )
                all_match = False
            elif not self.diff(old.entries[key], new.entries[key], child_path):
                all_match = False

        return all_match

    def _diff_sequences(self, old: list, new: list, path: str) -> bool:
        """Compare sequences index-by-index (order matters)."""
        all_match = True

        if len(old) != len(new):
            self._add_diff(
                path=path,
                diff_type=DiffType.LENGTH_MISMATCH,
                old_value=len(old),
                new_value=len(new),
                message=f"Length mismatch: {len(old)} vs {len(new)}",
            )
            all_match = False

        for i in range(min(len(old), len(new))):
            if self._aborted:
                return False
            if not self.diff(old[i], new[i], f"{path}[{i}]"):
                all_match = False

        if self._aborted:
            return False

        for i in range(len(new), len(old)):
            self._add_diff(
                path=f"{path}[{i}]",
                diff_type=DiffType.MISSING_IN_NEW,
                old_value=old[i],
                new_value=None,
                message=f"Missing item in new at index {i}",
            )
        for i in range(len(old), len(new)):
            self._add_diff(
                path=f"{path}[{i}]",
                diff_type=DiffType.EXTRA_IN_NEW,
                old_value=None,
                new_value=new[i],
                message=f"Extra item in new at index {i}",
            )

        return all_match

    def _diff_entries(self, old: dict, new: dict, path: str, make_path) -> bool:
        """Compare keyed entries; key order never matters."""
        all_match = True
        for key in _ordered_keys(old, new):
            if self._aborted:
                return False
            child_path = make_path(path, key)

            if key not in new:
                self._add_diff(
                    path=child_path,
                    diff_type=DiffType.MISSING_IN_NEW,
                    old_value=old[key],
                    new_value=None,
                    message=f"Key missing in new: {key!r}",
                )
                all_match = False
            elif key not in old:
                self._add_diff(
                    path=child_path,
                    diff_type=DiffType.EXTRA_IN_NEW,
                    old_value=None,
                    new_value=new[key],
                    message=f"Extra key in new: {key!r}",
                )
                all_match = False
            elif not self.diff(old[key], new[key], child_path):
                all_match = False

        return all_match

    def _type_mismatch(self, old: Any, new: Any, path: str) -> bool:
        self._add_diff(
            path=path,
            diff_type=DiffType.TYPE_MISMATCH,
            old_value=old,
            new_value=new,
            message=f"Type mismatch: {get_type_name(old)} vs {get_type_name(new)}",
        )
        return False

    def _add_diff(self, path, diff_type, old_value, new_value, message):
        self.diffs.append(DiffEntry(
            path=path,
            type=diff_type,
            severity=Severity.ERROR,
            old_value=old_value,
            new_value=new_value,
            message=message,
        ))
        if self.fail_fast:
            self._aborted = True


def _is_structured(value: Any) -> bool:
    return isinstance(value, (CanonicalMessage, CanonicalStruct, UnknownFields, list, dict))
