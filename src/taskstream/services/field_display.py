from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..domain.form_models import FieldSpec

APPROVAL_STATUS = "*Status: Wait for Approval*"
MISSING_VALUE = "Not provided"


def format_value(value: Any) -> str:
    if value is None:
        return MISSING_VALUE
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (list, tuple)):
        # Arrays are stored opaquely by the flattener; only the summary expands them.
        return ", ".join(format_value(item) for item in value) or MISSING_VALUE
    return str(value)


def summary_entries(fields: Mapping[str, Any], schema: Optional[Sequence[FieldSpec]] = None) -> List[Tuple[str, str]]:
    """Return ``(label, formatted value)`` pairs in display order.

    With a schema, only fields it names are included and its display names are
    used; otherwise every extracted field is listed under its own key.
    """
    if schema is None:
        return [(name, format_value(value)) for name, value in fields.items()]
    labels: Dict[str, str] = {spec.name: spec.label for spec in schema}
    return [(labels[name], format_value(value)) for name, value in fields.items() if name in labels]


def format_field_summary(fields: Mapping[str, Any], schema: Optional[Sequence[FieldSpec]] = None) -> str:
    entries = summary_entries(fields, schema)
    if not entries:
        return ""
    lines = "\n".join(f"**{label}**: {value}" for label, value in entries)
    return f"{lines}\n\n{APPROVAL_STATUS}"
