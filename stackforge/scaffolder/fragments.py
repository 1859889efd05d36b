"""Template fragments and the File Plan they compose into."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from stackforge.contracts.models import Contract
from stackforge.errors import CompositionError
from stackforge.scaffolder.guards import ALWAYS, Guard


@dataclass(frozen=True)
class TemplateFragment:
    """A guarded, path-producing unit of generated content.

    ``path`` and ``body`` may both contain ``{{ option }}`` placeholders.
    Fragments that define service or message shapes list them in
    ``contracts``; those feed the contract synchronisation pipeline.
    """

    name: str
    path: str
    body: str = ""
    guard: Guard = ALWAYS
    contracts: tuple[Contract, ...] = ()
    executable: bool = False

    @property
    def contract_bearing(self) -> bool:
        return bool(self.contracts)


@dataclass(frozen=True)
class PlannedFile:
    """One entry of a File Plan: a final path and its rendered content."""

    path: str
    content: str
    fragment: str
    executable: bool = False


@dataclass(frozen=True)
class FilePlan:
    """Ordered, duplicate-free sequence of ``PlannedFile`` entries.

    Entries are kept sorted by path so that the same configuration always
    yields the same plan.
    """

    entries: tuple[PlannedFile, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        seen: dict[str, PlannedFile] = {}
        for entry in self.entries:
            if entry.path in seen:
                raise CompositionError(
                    f"Duplicate path '{entry.path}' produced by fragments "
                    f"'{seen[entry.path].fragment}' and '{entry.fragment}'",
                    fragments=(seen[entry.path].fragment, entry.fragment),
                    path=entry.path,
                )
            seen[entry.path] = entry
        object.__setattr__(
            self, "entries", tuple(sorted(self.entries, key=lambda e: e.path))
        )

    @classmethod
    def of(cls, entries: Iterable[PlannedFile]) -> "FilePlan":
        return cls(entries=tuple(entries))

    def __iter__(self) -> Iterator[PlannedFile]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, path: object) -> bool:
        return any(e.path == path for e in self.entries)

    def paths(self) -> list[str]:
        return [e.path for e in self.entries]

    def get(self, path: str) -> PlannedFile | None:
        for entry in self.entries:
            if entry.path == path:
                return entry
        return None

    def merge(self, other: Iterable[PlannedFile]) -> "FilePlan":
        """Return a new plan holding both sets of entries.

        Raises ``CompositionError`` if a path appears in both.
        """
        return FilePlan(entries=(*self.entries, *other))

    def digest(self) -> str:
        """SHA-256 over every path and content, for change detection."""
        h = hashlib.sha256()
        for entry in self.entries:
            h.update(entry.path.encode("utf-8"))
            h.update(b"\0")
            h.update(entry.content.encode("utf-8"))
            h.update(b"\0")
        return h.hexdigest()
