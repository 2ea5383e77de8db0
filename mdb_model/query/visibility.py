"""
Visibility Mask and field renaming.

Outgoing documents (filters, sorts, projections, update patches, inserted
documents) are translated from attribute names to on-disk names; incoming
documents are translated back and stripped of hidden fields unless the caller
explicitly made them visible for that query.

Masking is applied client-side after every fetch, so a hidden field never
reaches the caller without an override regardless of the projection sent to
the server.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..constants import ID_FIELD
from ..exceptions import UsageError
from ..metadata import ModelMetadata

# Top-level operators whose value is a list of filter documents
_LOGICAL_OPERATORS = frozenset({"$and", "$or", "$nor"})


def _rename_path(metadata: ModelMetadata, path: str) -> str:
    # Only the first segment of a dotted path names a model field
    head, sep, tail = path.partition(".")
    return metadata.db_name(head) + sep + tail


def rename_filter(metadata: ModelMetadata, expression: Mapping[str, Any]) -> Dict[str, Any]:
    """Translate filter keys from attribute names to on-disk names."""
    renamed: Dict[str, Any] = {}
    for key, value in expression.items():
        if key in _LOGICAL_OPERATORS and isinstance(value, (list, tuple)):
            renamed[key] = [rename_filter(metadata, clause) for clause in value]
        elif key.startswith("$"):
            renamed[key] = value
        else:
            renamed[_rename_path(metadata, key)] = value
    return renamed


def rename_update(metadata: ModelMetadata, patch: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Translate an update patch to on-disk names.

    Operator documents ($set, $inc, $push, ...) keep their operators verbatim;
    only the field names inside them are translated. A plain document is
    treated as the body of a $set. Mixing the two forms raises UsageError.
    """
    operators = [key for key in patch if key.startswith("$")]
    if not operators:
        return {"$set": {_rename_path(metadata, k): v for k, v in patch.items()}}

    if len(operators) != len(patch):
        plain = sorted(key for key in patch if not key.startswith("$"))
        raise UsageError(
            f"Update mixes operators with plain fields: {', '.join(plain)}",
            operation="update",
        )

    renamed: Dict[str, Any] = {}
    for operator, body in patch.items():
        if not isinstance(body, Mapping):
            renamed[operator] = body
            continue
        if operator == "$rename":
            renamed[operator] = {
                _rename_path(metadata, k): _rename_path(metadata, v) for k, v in body.items()
            }
        else:
            renamed[operator] = {_rename_path(metadata, k): v for k, v in body.items()}
    return renamed


def rename_sort(metadata: ModelMetadata, sort: Iterable[Tuple[str, Any]]) -> List[Tuple[str, Any]]:
    return [(_rename_path(metadata, key), direction) for key, direction in sort]


def rename_projection(
    metadata: ModelMetadata, projection: Optional[Mapping[str, Any]]
) -> Optional[Dict[str, Any]]:
    if projection is None:
        return None
    return {_rename_path(metadata, k): v for k, v in projection.items()}


def to_storage(metadata: ModelMetadata, values: Mapping[str, Any]) -> Dict[str, Any]:
    """Translate a document keyed by attribute names to on-disk names."""
    return {metadata.db_name(k): v for k, v in values.items()}


def hidden_fields(metadata: ModelMetadata, visible: Iterable[str] = ()) -> frozenset:
    """Attribute names that must be stripped for a query with this override."""
    return metadata.hidden_fields - frozenset(visible)


def apply_mask(
    metadata: ModelMetadata,
    document: Mapping[str, Any],
    visible: Iterable[str] = (),
    strict: bool = True,
) -> Dict[str, Any]:
    """
    Produce the caller-facing shape of a stored document.

    Args:
        metadata: Model metadata
        document: Document as returned by the driver (on-disk names)
        visible: Attribute names explicitly unmasked for this query
        strict: Keep only declared fields and `_id`. When False (aggregation
                output), undeclared keys pass through unless they shadow a
                declared attribute name.

    Returns:
        Document keyed by attribute names with hidden fields removed
    """
    hidden = hidden_fields(metadata, visible)
    result: Dict[str, Any] = {}

    for key, value in document.items():
        if key == ID_FIELD:
            result[ID_FIELD] = value
            continue
        spec = metadata.field_by_db_name(key)
        if spec is not None:
            if spec.attr_name not in hidden:
                result[spec.attr_name] = value
        elif not strict and metadata.get_field(key) is None:
            result[key] = value

    return result
