"""
Field Metadata Registry.

Builds the immutable per-model description (`ModelMetadata`) that every other
component consults: collection name, request context type tag and the ordered
FieldSpec set. Metadata is built once, when the model is registered, and is
shared by reference by every instance of that model.

Two declaration forms are supported and produce identical metadata:
- class declarations using `Field` descriptors (see `mdb_model.model.Model`)
- plain dictionary definitions validated against MODEL_DEFINITION_SCHEMA

This module is part of MDB_MODEL.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from jsonschema import SchemaError, ValidationError, validate

from .constants import (
    CREATED_AT_FIELD,
    FORBIDDEN_NAME_CHARACTERS,
    MAX_COLLECTION_NAME_LENGTH,
    RESERVED_COLLECTION_PREFIXES,
    TIMESTAMP_FIELDS,
    UPDATED_AT_FIELD,
)
from .exceptions import ConfigurationError
from .fields import Field, FieldSpec, IndexKind

logger = logging.getLogger(__name__)


MODEL_DEFINITION_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Model Definition",
    "type": "object",
    "properties": {
        "collection": {
            "type": "string",
            "minLength": 1,
            "maxLength": MAX_COLLECTION_NAME_LENGTH,
            "description": "Physical collection backing the model",
        },
        "timestamps": {
            "type": "boolean",
            "default": True,
            "description": "Maintain created_at / updated_at automatically",
        },
        "fields": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "hidden": {"type": "boolean"},
                    "asc": {"type": "boolean"},
                    "desc": {"type": "boolean"},
                    "text": {"type": "string", "minLength": 1},
                    "sphere2d": {"type": "boolean"},
                    "unique": {"type": "boolean"},
                    "default": {},
                },
                "additionalProperties": False,
            },
        },
    },
    "required": ["collection"],
    "additionalProperties": False,
}


@dataclass(frozen=True)
class ModelMetadata:
    """
    Immutable description of a model type.

    Attributes:
        model_name: Name of the model class
        collection: Physical collection name
        fields: Ordered FieldSpec sequence
        request_type: Type tag of the request context threaded through hooks
        timestamps: Whether created_at / updated_at are maintained
    """

    model_name: str
    collection: str
    fields: Tuple[FieldSpec, ...]
    request_type: Any = None
    timestamps: bool = True
    _by_attr: Mapping[str, FieldSpec] = field(init=False, repr=False, compare=False)
    _by_db: Mapping[str, FieldSpec] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_by_attr", MappingProxyType({f.attr_name: f for f in self.fields})
        )
        object.__setattr__(self, "_by_db", MappingProxyType({f.db_name: f for f in self.fields}))

    def get_field(self, attr_name: str) -> Optional[FieldSpec]:
        """Look up a field by its attribute (struct) name."""
        return self._by_attr.get(attr_name)

    def field_by_db_name(self, db_name: str) -> Optional[FieldSpec]:
        """Look up a field by its on-disk name."""
        return self._by_db.get(db_name)

    def db_name(self, attr_name: str) -> str:
        """On-disk name for an attribute; unknown names pass through unchanged."""
        spec = self._by_attr.get(attr_name)
        return spec.db_name if spec else attr_name

    @property
    def attr_names(self) -> Tuple[str, ...]:
        return tuple(f.attr_name for f in self.fields)

    @property
    def hidden_fields(self) -> frozenset:
        return frozenset(f.attr_name for f in self.fields if f.hidden)

    @property
    def indexed_fields(self) -> Tuple[FieldSpec, ...]:
        return tuple(f for f in self.fields if f.index is not None)

    @property
    def has_renames(self) -> bool:
        return any(f.renamed for f in self.fields)

    @property
    def created_at_field(self) -> str:
        return self.db_name(CREATED_AT_FIELD)

    @property
    def updated_at_field(self) -> str:
        return self.db_name(UPDATED_AT_FIELD)


def validate_collection_name(collection: Any, model_name: Optional[str] = None) -> str:
    """
    Validate a collection name.

    Raises:
        ConfigurationError: If the name is missing or not usable by MongoDB
    """
    if not collection or not isinstance(collection, str):
        raise ConfigurationError(
            "Model registration requires a non-empty 'collection' name",
            model_name=model_name,
            context={"config_key": "collection"},
        )
    if len(collection) > MAX_COLLECTION_NAME_LENGTH:
        raise ConfigurationError(
            f"Collection name exceeds {MAX_COLLECTION_NAME_LENGTH} characters",
            model_name=model_name,
            context={"collection": collection},
        )
    if collection.startswith(RESERVED_COLLECTION_PREFIXES):
        raise ConfigurationError(
            f"Collection name '{collection}' uses a reserved prefix",
            model_name=model_name,
            context={"collection": collection},
        )
    if any(c in collection for c in FORBIDDEN_NAME_CHARACTERS):
        raise ConfigurationError(
            f"Collection name '{collection}' contains a forbidden character",
            model_name=model_name,
            context={"collection": collection},
        )
    return collection


def build_metadata(
    model_name: str,
    collection: Any,
    fields: Mapping[str, Field],
    request_type: Any = None,
    timestamps: bool = True,
) -> ModelMetadata:
    """
    Build the immutable metadata for one model.

    Fails fast with ConfigurationError on a missing/invalid collection name,
    incompatible index flags on a field, or two fields sharing an on-disk name.
    Performs no I/O.

    Args:
        model_name: Name of the model being registered
        collection: Collection name from the model declaration
        fields: Mapping of attribute name -> Field, in declaration order
        request_type: Request context type tag
        timestamps: Whether to maintain created_at / updated_at

    Returns:
        ModelMetadata shared by every instance of the model
    """
    collection = validate_collection_name(collection, model_name)

    specs: List[FieldSpec] = []
    seen_db_names: Dict[str, str] = {}
    for attr_name, declared in fields.items():
        if declared.attr_name is None:
            declared.attr_name = attr_name
        spec = declared.to_spec(model_name)
        previous = seen_db_names.get(spec.db_name)
        if previous is not None:
            raise ConfigurationError(
                f"Fields '{previous}' and '{spec.attr_name}' both map to the "
                f"database field '{spec.db_name}'",
                model_name=model_name,
                field_name=spec.attr_name,
            )
        seen_db_names[spec.db_name] = spec.attr_name
        specs.append(spec)

    # Text fields share the collection's single text index
    languages = {s.index.language for s in specs if s.index and s.index.kind is IndexKind.TEXT}
    if len(languages) > 1:
        raise ConfigurationError(
            f"Text-indexed fields declare different languages ({', '.join(sorted(languages))}); "
            f"a collection has a single text index",
            model_name=model_name,
        )

    if timestamps:
        declared_attrs = {s.attr_name for s in specs}
        for name in TIMESTAMP_FIELDS:
            if name in declared_attrs:
                continue
            if name in seen_db_names:
                raise ConfigurationError(
                    f"Field '{seen_db_names[name]}' is stored as '{name}', which "
                    f"collides with the automatic timestamp field",
                    model_name=model_name,
                    field_name=seen_db_names[name],
                )
            specs.append(FieldSpec(attr_name=name, db_name=name))

    metadata = ModelMetadata(
        model_name=model_name,
        collection=collection,
        fields=tuple(specs),
        request_type=request_type,
        timestamps=timestamps,
    )
    logger.debug(
        f"Registered model '{model_name}' on collection '{collection}' with "
        f"{len(specs)} field(s), {len(metadata.indexed_fields)} indexed"
    )
    return metadata


def validate_definition(
    definition: Dict[str, Any],
) -> Tuple[bool, Optional[str], Optional[List[str]]]:
    """
    Validate a dictionary model definition against MODEL_DEFINITION_SCHEMA.

    Returns:
        Tuple of (is_valid, error_message, error_paths)
    """
    try:
        validate(instance=definition, schema=MODEL_DEFINITION_SCHEMA)
        return True, None, None
    except ValidationError as e:
        path_parts = list(e.absolute_path)
        error_path = ".".join(str(p) for p in path_parts) if path_parts else "root"
        return False, e.message, [error_path]
    except SchemaError as e:
        return False, f"Invalid schema definition: {e.message}", ["schema"]


def fields_from_definition(
    definition: Dict[str, Any], model_name: Optional[str] = None
) -> Dict[str, Field]:
    """
    Turn a validated dictionary definition into Field declarations.

    Raises:
        ConfigurationError: If the definition does not match the schema
    """
    is_valid, error, paths = validate_definition(definition)
    if not is_valid:
        raise ConfigurationError(
            f"Invalid model definition: {error}",
            model_name=model_name,
            context={"error_paths": paths},
        )

    fields: Dict[str, Field] = {}
    for attr_name, attrs in definition.get("fields", {}).items():
        declared = Field(**attrs)
        declared.attr_name = attr_name
        fields[attr_name] = declared
    return fields


def metadata_from_definition(
    definition: Dict[str, Any],
    model_name: Optional[str] = None,
    request_type: Any = None,
) -> ModelMetadata:
    """
    Build ModelMetadata from a dictionary definition.

    Example:
        metadata = metadata_from_definition({
            "collection": "user",
            "fields": {
                "phone": {"asc": True, "unique": True},
                "password": {"hidden": True, "name": "pswd"},
            },
        })
    """
    model_name = model_name or definition.get("collection") or "<definition>"
    fields = fields_from_definition(definition, model_name)
    return build_metadata(
        model_name=model_name,
        collection=definition.get("collection"),
        fields=fields,
        request_type=request_type,
        timestamps=definition.get("timestamps", True),
    )
