"""All-or-nothing materialisation of a ``FilePlan``.

The plan is written into a staging directory next to the destination and
renamed into place once every file is on disk.  Any failure removes the
staging directory, so a half-generated project is never visible.

Regeneration uses ``update_in_place`` instead, which swaps only the
generated files and never touches the rest of the project tree.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import stat
import tempfile
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from stackforge.errors import MaterializationError
from stackforge.scaffolder.fragments import FilePlan


@dataclass
class PlanDiff:
    """How a File Plan differs from what is already on disk."""

    added: list[str] = field(default_factory=list)
    changed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (self.added or self.changed or self.removed)


@contextmanager
def staging_directory(destination: Path) -> Iterator[Path]:
    """Yield a fresh directory beside *destination*; removed on exit."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=f".{destination.name}.", dir=destination.parent))
    staging.chmod(0o755)
    try:
        yield staging
    finally:
        shutil.rmtree(staging, ignore_errors=True)


def materialize_sync(plan: FilePlan, destination: Path, *, overwrite: bool = False) -> list[Path]:
    """Write *plan* to *destination* atomically.

    Args:
        plan: The composed File Plan.
        destination: Project root to create.
        overwrite: Replace an existing directory.  Without it an existing
            destination raises ``MaterializationError``.

    Returns:
        Paths of the written files, in plan order.
    """
    destination = Path(destination)
    if destination.exists() and not overwrite:
        raise MaterializationError(f"Destination already exists: {destination}")

    with staging_directory(destination) as staging:
        try:
            _write_entries(plan, staging)
        except OSError as exc:
            raise MaterializationError(f"Failed to write project files: {exc}") from exc

        _swap_into_place(staging, destination)

    return [destination / entry.path for entry in plan]


async def materialize(plan: FilePlan, destination: Path, *, overwrite: bool = False) -> list[Path]:
    """Async wrapper around :func:`materialize_sync` (runs in a worker thread)."""
    return await asyncio.to_thread(materialize_sync, plan, Path(destination), overwrite=overwrite)


def update_in_place_sync(
    plan: FilePlan,
    destination: Path,
    *,
    stale: Iterable[str] = (),
) -> list[Path]:
    """Rewrite the files of *plan* inside an existing project.

    Only planned paths and the *stale* paths (generated by an earlier run,
    no longer planned) are touched; every other file under *destination* is
    left alone.  The plan is written to a sibling staging directory first,
    then each file is renamed into place.  If a rename fails the files
    already swapped are restored.

    Returns:
        Paths of the written files, in plan order.
    """
    destination = Path(destination)
    if not destination.is_dir():
        raise MaterializationError(f"Project directory does not exist: {destination}")

    planned = plan.paths()
    planned_set = set(planned)
    stale = [p for p in stale if p not in planned_set]

    with staging_directory(destination) as staging:
        fresh, backup = staging / "fresh", staging / "backup"
        try:
            _write_entries(plan, fresh)
        except OSError as exc:
            raise MaterializationError(f"Failed to write project files: {exc}") from exc

        moved: list[tuple[Path, Path | None]] = []
        try:
            for rel in [*planned, *stale]:
                target = destination / rel
                if target.is_file():
                    saved = backup / rel
                    saved.parent.mkdir(parents=True, exist_ok=True)
                    os.replace(target, saved)
                    moved.append((target, saved))
                else:
                    moved.append((target, None))
            for rel in planned:
                target = destination / rel
                target.parent.mkdir(parents=True, exist_ok=True)
                os.replace(fresh / rel, target)
        except OSError as exc:
            _restore(moved)
            raise MaterializationError(f"Failed to update project files: {exc}") from exc

    return [destination / path for path in planned]


async def update_in_place(
    plan: FilePlan,
    destination: Path,
    *,
    stale: Iterable[str] = (),
) -> list[Path]:
    """Async wrapper around :func:`update_in_place_sync` (runs in a worker thread)."""
    return await asyncio.to_thread(update_in_place_sync, plan, Path(destination), stale=list(stale))


def diff_plan(
    plan: FilePlan,
    destination: Path,
    *,
    known_paths: Iterable[str] = (),
) -> PlanDiff:
    """Compare *plan* against the files currently under *destination*.

    *known_paths* are the paths of a previous generation (from the project
    manifest); those still on disk but absent from *plan* are ``removed``.
    """
    destination = Path(destination)
    diff = PlanDiff()
    for entry in plan:
        target = destination / entry.path
        if not target.is_file():
            diff.added.append(entry.path)
        elif target.read_text(encoding="utf-8") != entry.content:
            diff.changed.append(entry.path)
        else:
            diff.unchanged.append(entry.path)

    planned = set(plan.paths())
    diff.removed = sorted(
        p for p in known_paths if p not in planned and (destination / p).is_file()
    )
    return diff


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _write_entries(plan: FilePlan, root: Path) -> None:
    for entry in plan:
        target = root / entry.path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(entry.content, encoding="utf-8")
        if entry.executable:
            _make_executable(target)


def _restore(moved: list[tuple[Path, Path | None]]) -> None:
    """Undo a partial in-place update: drop new files, put originals back."""
    for target, saved in reversed(moved):
        if target.is_file():
            target.unlink()
        if saved is not None:
            os.replace(saved, target)


def _swap_into_place(staging: Path, destination: Path) -> None:
    """Rename *staging* to *destination*, replacing an existing directory."""
    if not destination.exists():
        try:
            os.replace(staging, destination)
        except OSError as exc:
            raise MaterializationError(f"Failed to move project into place: {exc}") from exc
        return

    backup = destination.with_name(f".{destination.name}.old")
    if backup.exists():
        shutil.rmtree(backup)
    os.replace(destination, backup)
    try:
        os.replace(staging, destination)
    except OSError as exc:
        os.replace(backup, destination)
        raise MaterializationError(f"Failed to move project into place: {exc}") from exc
    shutil.rmtree(backup, ignore_errors=True)


def _make_executable(path: Path) -> None:
    """Set the executable bit on a file."""
    current = path.stat().st_mode
    path.chmod(current | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
