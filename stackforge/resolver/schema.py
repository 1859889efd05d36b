"""Option Schema and Project Configuration models.

The schema is an explicit, versioned, immutable snapshot of every selectable
option.  Upgrading to a new set of options means building a new snapshot;
nothing here is mutated in place.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from stackforge.errors import SelectionError


# ---------------------------------------------------------------------------
# Option Schema
# ---------------------------------------------------------------------------


class OptionSpec(BaseModel):
    """One configuration axis (e.g. ``backend``) and its legal values."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Option identifier, e.g. 'backend'")
    values: tuple[str, ...] = Field(..., min_length=1, description="Legal values, in order")
    default: str = Field(..., description="Value used when the option is left unset")
    description: str = Field(default="")

    @model_validator(mode="after")
    def _check_values(self) -> "OptionSpec":
        if len(set(self.values)) != len(self.values):
            raise ValueError(f"option '{self.id}' declares duplicate values")
        if self.default not in self.values:
            raise ValueError(
                f"default {self.default!r} of option '{self.id}' is not a legal value"
            )
        return self


class OptionSchema(BaseModel):
    """Ordered, versioned collection of ``OptionSpec`` entries."""

    model_config = ConfigDict(frozen=True)

    version: str = Field(default="1")
    options: tuple[OptionSpec, ...] = Field(default_factory=tuple)

    @model_validator(mode="after")
    def _check_unique_ids(self) -> "OptionSchema":
        ids = [o.id for o in self.options]
        if len(set(ids)) != len(ids):
            raise ValueError("option schema declares duplicate option ids")
        return self

    # -- Lookup ------------------------------------------------------------

    @property
    def ids(self) -> tuple[str, ...]:
        """Option ids in declaration order."""
        return tuple(o.id for o in self.options)

    def __contains__(self, option_id: object) -> bool:
        return option_id in self.ids

    def __len__(self) -> int:
        return len(self.options)

    def get(self, option_id: str) -> OptionSpec:
        """Return the spec for *option_id* or raise ``SelectionError``."""
        for option in self.options:
            if option.id == option_id:
                return option
        raise SelectionError(option_id)

    # -- Snapshot upgrades -------------------------------------------------

    def with_option(self, option: OptionSpec, *, version: str | None = None) -> "OptionSchema":
        """Return a new snapshot with *option* appended."""
        return OptionSchema(
            version=version or self.version,
            options=(*self.options, option),
        )

    def replace_option(self, option: OptionSpec, *, version: str | None = None) -> "OptionSchema":
        """Return a new snapshot where the option with the same id is replaced."""
        self.get(option.id)
        return OptionSchema(
            version=version or self.version,
            options=tuple(option if o.id == option.id else o for o in self.options),
        )


DEFAULT_SCHEMA = OptionSchema(
    version="1",
    options=(
        OptionSpec(
            id="backend",
            values=("fastapi", "express", "hono", "none"),
            default="fastapi",
            description="Server framework",
        ),
        OptionSpec(
            id="frontend",
            values=("react", "next", "svelte", "none"),
            default="react",
            description="Client framework",
        ),
        OptionSpec(
            id="database",
            values=("postgres", "sqlite", "mongodb", "none"),
            default="postgres",
            description="Primary datastore",
        ),
        OptionSpec(
            id="orm",
            values=("prisma", "drizzle", "mongoose", "sqlalchemy", "none"),
            default="prisma",
            description="Data access layer",
        ),
        OptionSpec(
            id="auth",
            values=("enabled", "disabled"),
            default="enabled",
            description="Whether the project ships authentication",
        ),
        OptionSpec(
            id="auth_provider",
            values=("builtin", "clerk", "keycloak", "none"),
            default="builtin",
            description="Subsystem that issues client session tokens",
        ),
        OptionSpec(
            id="deploy",
            values=("docker", "fly", "vercel", "none"),
            default="docker",
            description="Deployment target",
        ),
    ),
)


# ---------------------------------------------------------------------------
# Selection parsing
# ---------------------------------------------------------------------------


def parse_selection(raw: Mapping[str, Any], schema: OptionSchema = DEFAULT_SCHEMA) -> dict[str, str]:
    """Validate raw user input against *schema*.

    ``None`` values mean "accept the default" and are dropped.  Unknown
    options and out-of-enum values raise ``SelectionError``.
    """
    selection: dict[str, str] = {}
    for key, value in raw.items():
        if key not in schema:
            raise SelectionError(str(key))
        if value is None:
            continue
        spec = schema.get(key)
        if not isinstance(value, str) or value not in spec.values:
            raise SelectionError(key, value, spec.values)
        selection[key] = value
    return selection


# ---------------------------------------------------------------------------
# Project Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProjectConfiguration:
    """A fully-resolved selection: exactly one legal value per option.

    Only :func:`stackforge.resolver.resolve` should construct these; the
    object is immutable and hashable.  Option values are reachable by item
    access (``config["auth"]``) or attribute access (``config.auth``).
    """

    items: tuple[tuple[str, str], ...]
    project_name: str = "my-app"
    schema_version: str = "1"

    def __getitem__(self, option_id: str) -> str:
        for key, value in self.items:
            if key == option_id:
                return value
        raise KeyError(option_id)

    def __getattr__(self, name: str) -> str:
        if name.startswith("_") or name in ("items", "project_name", "schema_version"):
            raise AttributeError(name)
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name) from None

    def __contains__(self, option_id: object) -> bool:
        return any(key == option_id for key, _ in self.items)

    def __iter__(self) -> Iterator[str]:
        return (key for key, _ in self.items)

    def get(self, option_id: str, default: str | None = None) -> str | None:
        try:
            return self[option_id]
        except KeyError:
            return default

    def as_selection(self) -> dict[str, str]:
        """Return a fresh, fully-set selection mapping."""
        return dict(self.items)

    def to_dict(self) -> dict[str, Any]:
        """Serialisable form, written to the project manifest."""
        return {
            "project_name": self.project_name,
            "schema_version": self.schema_version,
            "options": self.as_selection(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProjectConfiguration":
        """Rebuild from :meth:`to_dict` output.

        The result is not re-validated; pass ``as_selection()`` back through
        the resolver when the schema may have changed.
        """
        options = data.get("options", {})
        return cls(
            items=tuple((str(k), str(v)) for k, v in options.items()),
            project_name=str(data.get("project_name", "my-app")),
            schema_version=str(data.get("schema_version", "1")),
        )
