"""Pydantic v2 models for the canonical contract representation.

A ``Contract`` is a named, ordered list of fields.  Field types are either a
``SemanticType`` or the name of another contract.  Both the server-side and
the client-side renderings are derived from these models, never written by
hand.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SemanticType(str, Enum):
    """Language-neutral field types."""
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    UUID = "uuid"
    JSON = "json"


_SEMANTIC_VALUES = frozenset(t.value for t in SemanticType)


class ContractField(BaseModel):
    """A single field of a contract."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Field name, e.g. 'created_at'")
    type: str = Field(
        ..., min_length=1, description="Semantic type value, or the name of a referenced contract"
    )
    optional: bool = Field(default=False, description="Nullable/optional in both renderings")
    many: bool = Field(default=False, description="Field holds a list of values")

    @field_validator("type", mode="before")
    @classmethod
    def _unwrap_semantic(cls, value: object) -> object:
        if isinstance(value, SemanticType):
            return value.value
        return value

    @property
    def semantic_type(self) -> SemanticType | None:
        """The scalar type, or ``None`` when the field references a contract."""
        if self.type in _SEMANTIC_VALUES:
            return SemanticType(self.type)
        return None

    @property
    def reference(self) -> str | None:
        """Name of the referenced contract, or ``None`` for scalar fields."""
        if self.semantic_type is None:
            return self.type
        return None

    @property
    def semantic(self) -> str:
        """Stable string key for the field type (``'integer'``, ``'ref:Todo'``)."""
        if self.semantic_type is None:
            return f"ref:{self.type}"
        return self.type


class Contract(BaseModel):
    """A named request/response shape shared by server and client."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., pattern=r"^[A-Z][A-Za-z0-9]*$", description="PascalCase name")
    fields: tuple[ContractField, ...] = Field(default_factory=tuple)
    description: str = Field(default="")

    @property
    def references(self) -> list[str]:
        """Referenced contract names, in field order, without duplicates."""
        return list(dict.fromkeys(f.reference for f in self.fields if f.reference))


def field(name: str, type: SemanticType | str, *, optional: bool = False, many: bool = False) -> ContractField:
    """Shorthand used by the fragment catalog."""
    return ContractField(name=name, type=type, optional=optional, many=many)
