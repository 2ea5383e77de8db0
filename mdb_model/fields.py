"""
Field declarations for models.

A `Field` is declared on a model class and describes one stored attribute:
its on-disk name, whether it is hidden from query results, and the index the
collection should maintain for it. At registration every Field is turned into
an immutable `FieldSpec`, the only form the rest of the package consults.

This module is part of MDB_MODEL.

Usage:
    class User(Model, collection="user"):
        name = Field()
        phone = Field(asc=True, unique=True)
        password = Field(hidden=True, name="pswd")
        location = Field(sphere2d=True)
        bio = Field(text="english")
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pymongo import ASCENDING, DESCENDING, GEOSPHERE, TEXT

from .constants import FORBIDDEN_NAME_CHARACTERS, ID_FIELD
from .exceptions import ConfigurationError


class IndexKind(str, Enum):
    """Ordering or kind of a single-field index."""

    ASCENDING = "asc"
    DESCENDING = "desc"
    TEXT = "text"
    SPHERE_2D = "sphere2d"

    @property
    def key_value(self) -> int | str:
        """Value used in the index key pattern for this kind."""
        return {
            IndexKind.ASCENDING: ASCENDING,
            IndexKind.DESCENDING: DESCENDING,
            IndexKind.TEXT: TEXT,
            IndexKind.SPHERE_2D: GEOSPHERE,
        }[self]


@dataclass(frozen=True)
class IndexSpec:
    """Declared intent to index one field with a kind and a uniqueness flag."""

    kind: IndexKind
    unique: bool = False
    language: str | None = None

    def __post_init__(self) -> None:
        if self.kind is IndexKind.TEXT and not self.language:
            raise ValueError("Text indexes require a language")
        if self.kind is not IndexKind.TEXT and self.language is not None:
            raise ValueError(f"Language is only valid for text indexes, not {self.kind.value}")

    @classmethod
    def from_flags(
        cls,
        *,
        asc: bool = False,
        desc: bool = False,
        text: str | None = None,
        sphere2d: bool = False,
        unique: bool = False,
        field_name: str | None = None,
    ) -> "IndexSpec | None":
        """
        Build an IndexSpec from declaration flags.

        `unique` on its own declares a unique ascending index. Combining two
        kinds on one field raises ConfigurationError.
        """
        kinds = []
        if asc:
            kinds.append(IndexKind.ASCENDING)
        if desc:
            kinds.append(IndexKind.DESCENDING)
        if text is not None:
            kinds.append(IndexKind.TEXT)
        if sphere2d:
            kinds.append(IndexKind.SPHERE_2D)

        if len(kinds) > 1:
            raise ConfigurationError(
                f"Field '{field_name}' declares incompatible index kinds: "
                f"{', '.join(k.value for k in kinds)}. A field may combine "
                f"'unique' with at most one of asc, desc, text, sphere2d.",
                field_name=field_name,
            )
        if text is not None and not text:
            raise ConfigurationError(
                f"Field '{field_name}' declares a text index without a language",
                field_name=field_name,
            )

        if kinds:
            kind = kinds[0]
        elif unique:
            kind = IndexKind.ASCENDING
        else:
            return None

        return cls(kind=kind, unique=unique, language=text if kind is IndexKind.TEXT else None)


@dataclass(frozen=True)
class FieldSpec:
    """Immutable description of one model field."""

    attr_name: str
    db_name: str
    hidden: bool = False
    index: IndexSpec | None = None

    @property
    def renamed(self) -> bool:
        return self.attr_name != self.db_name


_MISSING = object()


class Field:
    """
    Declares a model attribute.

    On the class, a Field behaves as a descriptor: reading it from a model
    instance returns the instance's value (or the declared default), and
    assigning stores the value that `create()` will insert.

    Args:
        name: On-disk field name (defaults to the attribute name)
        hidden: Exclude the field from query results unless made visible
        asc: Maintain an ascending index
        desc: Maintain a descending index
        text: Maintain a text index using this default language
        sphere2d: Maintain a 2dsphere index
        unique: Make the index unique (ascending when no kind is given)
        default: Value returned when the instance has not set the field
        default_factory: Callable producing the default value
    """

    def __init__(
        self,
        *,
        name: str | None = None,
        hidden: bool = False,
        asc: bool = False,
        desc: bool = False,
        text: str | None = None,
        sphere2d: bool = False,
        unique: bool = False,
        default: Any = None,
        default_factory: Callable[[], Any] | None = None,
    ) -> None:
        if default is not None and default_factory is not None:
            raise ValueError("Cannot specify both default and default_factory")
        self.db_name = name
        self.hidden = hidden
        self.asc = asc
        self.desc = desc
        self.text = text
        self.sphere2d = sphere2d
        self.unique = unique
        self.default = default
        self.default_factory = default_factory
        self.attr_name: str | None = None  # Set by __set_name__

    def __set_name__(self, owner: type, name: str) -> None:
        self.attr_name = name

    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        value = obj._values.get(self.attr_name, _MISSING)
        if value is _MISSING:
            return self.get_default()
        return value

    def __set__(self, obj: Any, value: Any) -> None:
        obj._values[self.attr_name] = value

    @property
    def has_default(self) -> bool:
        return self.default is not None or self.default_factory is not None

    def get_default(self) -> Any:
        if self.default_factory is not None:
            return self.default_factory()
        return self.default

    def to_spec(self, model_name: str | None = None) -> FieldSpec:
        """Resolve this declaration into an immutable FieldSpec."""
        attr_name = self.attr_name
        if not attr_name:
            raise ConfigurationError("Field was never bound to an attribute", model_name=model_name)

        db_name = self.db_name or attr_name
        _validate_field_name(db_name, model_name, attr_name)
        if attr_name == ID_FIELD or db_name == ID_FIELD:
            raise ConfigurationError(
                f"'{ID_FIELD}' is managed by the driver and cannot be declared as a field",
                model_name=model_name,
                field_name=attr_name,
            )

        try:
            index = IndexSpec.from_flags(
                asc=self.asc,
                desc=self.desc,
                text=self.text,
                sphere2d=self.sphere2d,
                unique=self.unique,
                field_name=attr_name,
            )
        except ConfigurationError as e:
            raise ConfigurationError(e.message, model_name=model_name, field_name=attr_name) from e

        return FieldSpec(attr_name=attr_name, db_name=db_name, hidden=self.hidden, index=index)

    def __repr__(self) -> str:
        return f"Field({self.attr_name!r}, db_name={self.db_name or self.attr_name!r})"


def _validate_field_name(name: str, model_name: str | None, attr_name: str) -> None:
    if not isinstance(name, str) or not name:
        raise ConfigurationError(
            "Field names must be non-empty strings", model_name=model_name, field_name=attr_name
        )
    if "." in name or any(c in name for c in FORBIDDEN_NAME_CHARACTERS):
        raise ConfigurationError(
            f"Invalid on-disk field name '{name}': must not contain '.', '$' or NUL",
            model_name=model_name,
            field_name=attr_name,
        )
