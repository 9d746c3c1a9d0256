"""
Field registry for BQL.

Maps every filterable / orderable field name to its FieldType, and enum
fields to the closed set of values they accept.
"""

from enum import Enum
from typing import Dict, FrozenSet


class FieldType(Enum):
    """Categorizes fields for validation"""

    STRING = "string"
    ENUM = "enum"
    PRIORITY = "priority"
    BOOL = "bool"
    DATE = "date"


FIELDS: Dict[str, FieldType] = {
    "type": FieldType.ENUM,
    "status": FieldType.ENUM,
    "priority": FieldType.PRIORITY,
    "blocked": FieldType.BOOL,
    "ready": FieldType.BOOL,
    "pinned": FieldType.BOOL,
    "is_template": FieldType.BOOL,
    "label": FieldType.STRING,
    "labels": FieldType.STRING,
    "title": FieldType.STRING,
    "description": FieldType.STRING,
    "id": FieldType.STRING,
    "assignee": FieldType.STRING,
    "created": FieldType.DATE,
    "updated": FieldType.DATE,
    "last_activity": FieldType.DATE,
}

ENUM_VALUES: Dict[str, FrozenSet[str]] = {
    "type": frozenset(["bug", "feature", "task", "epic", "chore"]),
    "status": frozenset(["open", "in_progress", "closed", "blocked"]),
}

# Fields with no column of their own; compiled to membership tests
PSEUDO_FIELDS: FrozenSet[str] = frozenset(["blocked", "ready", "label", "labels"])

# BQL name -> column, only where the two differ
FIELD_COLUMNS: Dict[str, str] = {
    "type": "issue_type",
    "created": "created_at",
    "updated": "updated_at",
}

# Nullable TEXT columns; NULL compares as the empty string
NULLABLE_STRING_FIELDS: FrozenSet[str] = frozenset(["assignee", "description"])


def valid_field_names() -> str:
    """Comma-separated, sorted list of known fields for error messages."""
    return ", ".join(sorted(FIELDS))


__all__ = [
    "FieldType",
    "FIELDS",
    "ENUM_VALUES",
    "PSEUDO_FIELDS",
    "FIELD_COLUMNS",
    "NULLABLE_STRING_FIELDS",
    "valid_field_names",
]
