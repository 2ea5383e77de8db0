"""
Helper functions for index management.

Canonical key patterns and index signatures shared by the synchronizer, so
that declared indexes and indexes reported by `list_indexes` compare equal
when they describe the same physical index.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from pymongo import TEXT

from ..constants import ID_FIELD, TEXT_INDEX_KEY
from ..fields import FieldSpec, IndexKind

logger = logging.getLogger(__name__)

# (key pattern as tuple of (field, direction), unique)
IndexSignature = tuple[tuple[tuple[str, Any], ...], bool]


@dataclass(frozen=True)
class IndexPlan:
    """One physical index the collection must carry."""

    name: str
    keys: tuple[tuple[str, Any], ...]
    unique: bool = False
    options: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def signature(self) -> IndexSignature:
        if any(v == TEXT for _, v in self.keys):
            return (tuple(sorted(self.keys)), self.unique)
        return (self.keys, self.unique)

    def create_kwargs(self) -> dict[str, Any]:
        kwargs = {"name": self.name, **self.options}
        if self.unique:
            kwargs["unique"] = True
        return kwargs


def normalize_keys(
    keys: dict[str, Any] | list[tuple[str, Any]],
) -> list[tuple[str, Any]]:
    """
    Normalize index keys to a consistent format.

    Args:
        keys: Index keys as dict (or SON) or list of tuples

    Returns:
        List of (field_name, direction) tuples
    """
    if isinstance(keys, dict):
        return [(k, v) for k, v in keys.items()]
    return [tuple(k) for k in keys]


def _normalize_direction(value: Any) -> Any:
    # The server may report 1.0 / -1.0 for numeric directions
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def is_id_index(keys: dict[str, Any] | list[tuple[str, Any]]) -> bool:
    """
    Check if index keys target the _id field (which MongoDB creates automatically).

    Args:
        keys: Index keys to check

    Returns:
        True if this is an _id index
    """
    normalized = normalize_keys(keys)
    return len(normalized) == 1 and normalized[0][0] == ID_FIELD


def is_compound_index(keys: dict[str, Any] | list[tuple[str, Any]]) -> bool:
    """Check if index keys span several fields. Text indexes are not counted as compound."""
    normalized = normalize_keys(keys)
    if any(k == TEXT_INDEX_KEY for k, _ in normalized):
        return False
    return len(normalized) > 1


def default_index_name(keys: list[tuple[str, Any]] | tuple[tuple[str, Any], ...]) -> str:
    """
    Name MongoDB would generate for a key pattern.

    Format: field1_1_field2_-1 (1 for ascending, -1 for descending,
    "text" / "2dsphere" for the special kinds).
    """
    return "_".join(f"{k}_{v}" for k, v in keys)


def plan_indexes(fields: tuple[FieldSpec, ...]) -> list[IndexPlan]:
    """
    Compute the indexes implied by a model's field declarations.

    Ascending, descending and 2dsphere declarations each yield one
    single-field index. MongoDB allows a single text index per collection, so
    every text-declared field is folded into one text index whose
    default_language comes from the first text field.
    """
    plans: list[IndexPlan] = []
    text_fields: list[FieldSpec] = []

    for spec in fields:
        if spec.index is None:
            continue
        if spec.index.kind is IndexKind.TEXT:
            text_fields.append(spec)
            continue
        keys = ((spec.db_name, spec.index.kind.key_value),)
        plans.append(IndexPlan(name=default_index_name(keys), keys=keys, unique=spec.index.unique))

    if text_fields:
        keys = tuple((spec.db_name, TEXT) for spec in text_fields)
        plans.append(
            IndexPlan(
                name=default_index_name(keys),
                keys=keys,
                unique=any(spec.index.unique for spec in text_fields),
                options={"default_language": text_fields[0].index.language},
            )
        )
    return plans


def existing_signature(index: dict[str, Any]) -> IndexSignature:
    """
    Signature of an index as reported by list_indexes.

    Text indexes are stored as {"_fts": "text", "_ftsx": 1} with the indexed
    fields under "weights"; they are mapped back to {field: "text"}.
    """
    keys = normalize_keys(index.get("key", {}))
    unique = bool(index.get("unique", False))

    if any(k == TEXT_INDEX_KEY for k, _ in keys):
        weights = index.get("weights") or {}
        return (tuple((name, TEXT) for name in sorted(weights)), unique)

    return (tuple((k, _normalize_direction(v)) for k, v in keys), unique)
