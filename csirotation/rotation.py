"""Helpers for the rotation reconciler: queue keys and object version checks."""

from __future__ import annotations

from typing import Mapping


class KeyFormatError(ValueError):
    """Raised when a queue key is not of the form ``namespace/name``."""


def split_key(key: str) -> tuple[str, str]:
    """Split a ``namespace/name`` queue key into its namespace and name.

    Anything after a second slash is ignored.
    """
    parts = key.split("/")
    if len(parts) < 2:
        raise KeyFormatError(
            "key is not in correct format. expected key format is namespace/name"
        )
    return parts[0], parts[1]


def objects_require_update(
    old_versions: Mapping[str, str], new_versions: Mapping[str, str]
) -> bool:
    """Whether the provider returned object versions that differ from the stored ones.

    Object ids and versions are compared with surrounding whitespace removed. A
    change in the number of objects, such as one removed from the class after
    the first mount, also counts as requiring an update.
    """
    for object_id, version in new_versions.items():
        current = old_versions.get(object_id.strip())
        if current is None or current.strip() != version.strip():
            return True
    return len(old_versions) != len(new_versions)