"""Compatibility rules and the Compatibility Matrix.

A rule is a predicate over a *partial* selection.  Rules only speak when
every option they reference is set; with any of them unset the rule allows,
so the same mechanism serves incremental prompting and full validation.
A selection is valid iff every rule allows it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass

from stackforge.resolver.schema import OptionSchema


Predicate = Callable[[Mapping[str, str]], bool]


@dataclass(frozen=True)
class Verdict:
    """Outcome of evaluating one rule against a selection."""

    allowed: bool
    rule: str
    options: tuple[str, ...] = ()
    reason: str = ""


@dataclass(frozen=True)
class CompatibilityRule:
    """A named constraint between two or more options.

    ``predicate`` receives the selection and returns ``True`` when the
    combination is allowed.  ``reason`` is a ``str.format`` template filled
    with the selection values, e.g. ``"backend {backend} requires a database"``.
    """

    name: str
    options: tuple[str, ...]
    predicate: Predicate
    reason: str

    def applies_to(self, selection: Mapping[str, str]) -> bool:
        """Whether every option this rule references is set."""
        return all(option in selection for option in self.options)

    def evaluate(self, selection: Mapping[str, str]) -> Verdict:
        if not self.applies_to(selection) or self.predicate(selection):
            return Verdict(allowed=True, rule=self.name, options=self.options)
        return Verdict(
            allowed=False,
            rule=self.name,
            options=self.options,
            reason=self.reason.format(**selection),
        )


class CompatibilityMatrix:
    """Conjunction of ``CompatibilityRule`` objects.

    Pure: holds no state beyond the immutable rule tuple, so one matrix can
    be shared by any number of concurrent resolutions.
    """

    def __init__(self, rules: Iterable[CompatibilityRule]) -> None:
        self.rules: tuple[CompatibilityRule, ...] = tuple(rules)

    def check(self, selection: Mapping[str, str]) -> list[Verdict]:
        """Return every denial for *selection*, in rule order."""
        verdicts = (rule.evaluate(selection) for rule in self.rules)
        return [v for v in verdicts if not v.allowed]

    def is_allowed(self, selection: Mapping[str, str]) -> bool:
        return not self.check(selection)

    def legal_values(
        self,
        selection: Mapping[str, str],
        option_id: str,
        schema: OptionSchema,
    ) -> list[str]:
        """Values of *option_id* that keep *selection* free of denials.

        Values are returned in schema declaration order.
        """
        spec = schema.get(option_id)
        return [
            value
            for value in spec.values
            if self.is_allowed({**selection, option_id: value})
        ]

    def remaining(
        self, selection: Mapping[str, str], schema: OptionSchema
    ) -> dict[str, list[str]]:
        """Map each unset option to the values still legal given *selection*."""
        return {
            spec.id: self.legal_values(selection, spec.id, schema)
            for spec in schema.options
            if spec.id not in selection
        }


# ---------------------------------------------------------------------------
# Default rule set
# ---------------------------------------------------------------------------

ORM_DATABASES: dict[str, tuple[str, ...]] = {
    "prisma": ("postgres", "sqlite", "mongodb"),
    "drizzle": ("postgres", "sqlite"),
    "mongoose": ("mongodb",),
    "sqlalchemy": ("postgres", "sqlite"),
}

ORM_BACKENDS: dict[str, tuple[str, ...]] = {
    "prisma": ("express", "hono"),
    "drizzle": ("express", "hono"),
    "mongoose": ("express", "hono"),
    "sqlalchemy": ("fastapi",),
}

# Providers whose tokens are minted in the browser
CLIENT_ISSUED_PROVIDERS: tuple[str, ...] = ("clerk",)


def _rule(name: str, options: tuple[str, ...], reason: str) -> Callable[[Predicate], CompatibilityRule]:
    def wrap(predicate: Predicate) -> CompatibilityRule:
        return CompatibilityRule(name=name, options=options, predicate=predicate, reason=reason)

    return wrap


@_rule("backend_requires_database", ("backend", "database"), "backend {backend} requires a database")
def _backend_requires_database(s: Mapping[str, str]) -> bool:
    return s["backend"] == "none" or s["database"] != "none"


@_rule("database_requires_backend", ("backend", "database"), "database {database} requires a backend")
def _database_requires_backend(s: Mapping[str, str]) -> bool:
    return s["database"] == "none" or s["backend"] != "none"


@_rule("orm_requires_database", ("database", "orm"), "orm {orm} requires a database")
def _orm_requires_database(s: Mapping[str, str]) -> bool:
    return s["orm"] == "none" or s["database"] != "none"


@_rule("database_requires_orm", ("database", "orm"), "database {database} requires an orm")
def _database_requires_orm(s: Mapping[str, str]) -> bool:
    return s["database"] == "none" or s["orm"] != "none"


@_rule("orm_supports_database", ("database", "orm"), "orm {orm} does not support database {database}")
def _orm_supports_database(s: Mapping[str, str]) -> bool:
    if s["orm"] == "none" or s["database"] == "none":
        return True
    return s["database"] in ORM_DATABASES.get(s["orm"], ())


@_rule("orm_matches_backend", ("backend", "orm"), "orm {orm} cannot be used with backend {backend}")
def _orm_matches_backend(s: Mapping[str, str]) -> bool:
    if s["orm"] == "none" or s["backend"] == "none":
        return True
    return s["backend"] in ORM_BACKENDS.get(s["orm"], ())


@_rule("stack_not_empty", ("backend", "frontend"), "a project needs a backend or a frontend")
def _stack_not_empty(s: Mapping[str, str]) -> bool:
    return s["backend"] != "none" or s["frontend"] != "none"


@_rule("auth_requires_provider", ("auth", "auth_provider"), "auth {auth} requires an auth provider")
def _auth_requires_provider(s: Mapping[str, str]) -> bool:
    return s["auth"] == "disabled" or s["auth_provider"] != "none"


@_rule(
    "provider_requires_auth",
    ("auth", "auth_provider"),
    "auth provider {auth_provider} requires auth to be enabled",
)
def _provider_requires_auth(s: Mapping[str, str]) -> bool:
    return s["auth_provider"] == "none" or s["auth"] == "enabled"


@_rule("auth_requires_backend", ("auth", "backend"), "auth requires a backend to validate sessions")
def _auth_requires_backend(s: Mapping[str, str]) -> bool:
    return s["auth"] == "disabled" or s["backend"] != "none"


@_rule(
    "client_provider_requires_frontend",
    ("auth_provider", "frontend"),
    "auth provider {auth_provider} issues tokens from a frontend",
)
def _client_provider_requires_frontend(s: Mapping[str, str]) -> bool:
    return s["auth_provider"] not in CLIENT_ISSUED_PROVIDERS or s["frontend"] != "none"


@_rule("vercel_backend", ("backend", "deploy"), "deploy {deploy} cannot host backend {backend}")
def _vercel_backend(s: Mapping[str, str]) -> bool:
    return not (s["deploy"] == "vercel" and s["backend"] == "fastapi")


@_rule("vercel_database", ("database", "deploy"), "deploy {deploy} has no persistent disk for {database}")
def _vercel_database(s: Mapping[str, str]) -> bool:
    return not (s["deploy"] == "vercel" and s["database"] == "sqlite")


DEFAULT_RULES: tuple[CompatibilityRule, ...] = (
    _backend_requires_database,
    _database_requires_backend,
    _orm_requires_database,
    _database_requires_orm,
    _orm_supports_database,
    _orm_matches_backend,
    _stack_not_empty,
    _auth_requires_provider,
    _provider_requires_auth,
    _auth_requires_backend,
    _client_provider_requires_frontend,
    _vercel_backend,
    _vercel_database,
)

DEFAULT_MATRIX = CompatibilityMatrix(DEFAULT_RULES)
