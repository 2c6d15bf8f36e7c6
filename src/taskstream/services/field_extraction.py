"""Flatten arbitrary JSON into an ordered, dotted-path field map.

The flattener is pure and total: any value produced by ``json.loads`` yields a
map, and structurally identical inputs always yield equal maps. Arrays are
stored opaquely; only display code walks their elements.
"""

from __future__ import annotations

from typing import Any, Dict

METADATA_KEYS = frozenset(
    {
        "validation",
        "metadata",
        "timestamp",
        "processedAt",
        "confidence",
        "extractionConfidence",
    }
)


def flatten(value: Any) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    _flatten_into(fields, value, "")
    return fields


def _flatten_into(fields: Dict[str, Any], obj: Any, prefix: str) -> None:
    if not isinstance(obj, dict):
        return

    # A "fields" object wins outright at its level: its direct entries are
    # taken unprefixed and its siblings are ignored.
    nested = obj.get("fields")
    if isinstance(nested, dict):
        fields.update(nested)
        return

    for key, value in obj.items():
        if key in METADATA_KEYS or value is None:
            continue
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            _flatten_into(fields, value, path)
        else:
            fields[path] = value
