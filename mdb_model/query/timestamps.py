"""
Timestamp Injector.

Maintains `created_at` / `updated_at` on documents written through a model.
Both values come from a single clock reading per write, as naive UTC truncated
to millisecond precision: exactly what a BSON datetime decodes to with the
driver's default `tz_aware=False`, so an instance holds the value it stored.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Mapping, MutableMapping, Optional

from ..metadata import ModelMetadata


def utc_now() -> datetime:
    """Current UTC time as a naive datetime at BSON (millisecond) precision."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000, tzinfo=None)


def stamp_create(
    metadata: ModelMetadata,
    document: MutableMapping[str, Any],
    now: Optional[datetime] = None,
) -> MutableMapping[str, Any]:
    """
    Set both timestamps on a document about to be inserted.

    `document` is keyed by on-disk names and modified in place. A timestamp
    that already holds a datetime is kept.
    """
    if not metadata.timestamps:
        return document
    now = now or utc_now()
    for name in (metadata.created_at_field, metadata.updated_at_field):
        if not isinstance(document.get(name), datetime):
            document[name] = now
    return document


def stamp_update(
    metadata: ModelMetadata,
    update: Mapping[str, Any],
    upsert: bool = False,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Add timestamp maintenance to an operator-form update document.

    `updated_at` is always set to `now` in `$set`, replacing any value the
    caller supplied. With `upsert`, `created_at` is added to `$setOnInsert`
    unless the caller already sets it, so a document created by the upsert
    carries both.
    """
    stamped = {op: dict(body) if isinstance(body, Mapping) else body for op, body in update.items()}
    if not metadata.timestamps:
        return stamped

    now = now or utc_now()
    stamped.setdefault("$set", {})[metadata.updated_at_field] = now
    if upsert:
        created = metadata.created_at_field
        if created not in stamped["$set"]:
            stamped.setdefault("$setOnInsert", {}).setdefault(created, now)
    return stamped
