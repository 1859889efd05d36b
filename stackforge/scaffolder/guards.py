"""Guard predicates for template fragments.

Guards are plain data: a tree of small frozen objects evaluated eagerly
against a ``ProjectConfiguration``.  They compose with ``&``, ``|`` and ``~``::

    Equals("auth", "enabled") & OneOf("backend", ("express", "hono"))

Referencing an option the configuration does not carry is a fragment
authoring defect and raises ``CompositionError``.
"""

from __future__ import annotations

from dataclasses import dataclass

from stackforge.errors import CompositionError
from stackforge.resolver.schema import ProjectConfiguration


class Guard:
    """Base class for fragment guards."""

    def evaluate(self, config: ProjectConfiguration) -> bool:
        raise NotImplementedError

    def referenced_options(self) -> frozenset[str]:
        return frozenset()

    def __and__(self, other: "Guard") -> "Guard":
        return AllOf((self, other))

    def __or__(self, other: "Guard") -> "Guard":
        return AnyOf((self, other))

    def __invert__(self) -> "Guard":
        return Not(self)


def _lookup(config: ProjectConfiguration, option: str) -> str:
    try:
        return config[option]
    except KeyError:
        raise CompositionError(
            f"Guard references unknown option '{option}'", placeholder=option
        ) from None


@dataclass(frozen=True)
class Always(Guard):
    """Matches every configuration."""

    def evaluate(self, config: ProjectConfiguration) -> bool:
        return True


@dataclass(frozen=True)
class Equals(Guard):
    option: str
    value: str

    def evaluate(self, config: ProjectConfiguration) -> bool:
        return _lookup(config, self.option) == self.value

    def referenced_options(self) -> frozenset[str]:
        return frozenset({self.option})


@dataclass(frozen=True)
class OneOf(Guard):
    option: str
    values: tuple[str, ...]

    def evaluate(self, config: ProjectConfiguration) -> bool:
        return _lookup(config, self.option) in self.values

    def referenced_options(self) -> frozenset[str]:
        return frozenset({self.option})


@dataclass(frozen=True)
class Not(Guard):
    inner: Guard

    def evaluate(self, config: ProjectConfiguration) -> bool:
        return not self.inner.evaluate(config)

    def referenced_options(self) -> frozenset[str]:
        return self.inner.referenced_options()


@dataclass(frozen=True)
class AllOf(Guard):
    guards: tuple[Guard, ...]

    def evaluate(self, config: ProjectConfiguration) -> bool:
        # Evaluate every branch so unknown options surface even when an
        # earlier branch is already false.
        results = [g.evaluate(config) for g in self.guards]
        return all(results)

    def referenced_options(self) -> frozenset[str]:
        return frozenset().union(*(g.referenced_options() for g in self.guards))


@dataclass(frozen=True)
class AnyOf(Guard):
    guards: tuple[Guard, ...]

    def evaluate(self, config: ProjectConfiguration) -> bool:
        results = [g.evaluate(config) for g in self.guards]
        return any(results)

    def referenced_options(self) -> frozenset[str]:
        return frozenset().union(*(g.referenced_options() for g in self.guards))


ALWAYS = Always()


def is_set(option: str) -> Guard:
    """Guard matching any value of *option* other than ``"none"``."""
    return ~Equals(option, "none")
