"""Template Composition Engine.

Turns a ``ProjectConfiguration`` and a set of ``TemplateFragment`` objects
into a ``FilePlan``.  Composition never touches the file system; writing
the plan is the job of :mod:`stackforge.scaffolder.writer`.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import PurePosixPath
from typing import Any

from stackforge.errors import CompositionError
from stackforge.resolver.schema import ProjectConfiguration
from stackforge.scaffolder.fragments import FilePlan, PlannedFile, TemplateFragment
from stackforge.scaffolder.templates import TemplateRenderer


def build_context(config: ProjectConfiguration) -> dict[str, Any]:
    """Template context: every option value plus the project name."""
    return {
        **config.as_selection(),
        "project_name": config.project_name,
    }


def select_fragments(
    config: ProjectConfiguration, fragments: Iterable[TemplateFragment]
) -> list[TemplateFragment]:
    """Return the fragments whose guard holds for *config*, sorted by name."""
    return sorted(
        (f for f in fragments if f.guard.evaluate(config)),
        key=lambda f: f.name,
    )


def compose(
    config: ProjectConfiguration,
    fragments: Iterable[TemplateFragment],
    renderer: TemplateRenderer | None = None,
) -> FilePlan:
    """Compose the File Plan for *config*.

    Every fragment's guard is evaluated; each included fragment contributes
    exactly one entry.  Paths are rendered before duplicate detection, and
    two fragments landing on the same final path is a ``CompositionError``
    naming both of them.

    Raises:
        CompositionError: duplicate path, unresolved placeholder, unknown
            option in a guard, or an invalid rendered path.
    """
    renderer = renderer or TemplateRenderer()
    context = build_context(config)

    owners: dict[str, str] = {}
    entries: list[PlannedFile] = []

    for fragment in select_fragments(config, fragments):
        rendered_path = renderer.render_string(fragment.path, context, fragment=fragment.name)
        path = _normalise_path(rendered_path, fragment.name)

        if path in owners:
            raise CompositionError(
                f"Duplicate path '{path}' produced by fragments "
                f"'{owners[path]}' and '{fragment.name}'",
                fragments=(owners[path], fragment.name),
                path=path,
            )
        owners[path] = fragment.name

        content = renderer.render_string(fragment.body, context, fragment=fragment.name)
        entries.append(
            PlannedFile(
                path=path,
                content=content,
                fragment=fragment.name,
                executable=fragment.executable,
            )
        )

    return FilePlan.of(entries)


def _normalise_path(raw: str, fragment: str) -> str:
    """Validate a rendered path and return it in canonical POSIX form."""
    cleaned = raw.strip()
    if not cleaned:
        raise CompositionError(f"Fragment '{fragment}' rendered an empty path", fragments=(fragment,))

    path = PurePosixPath(cleaned)
    if path.is_absolute() or ".." in path.parts:
        raise CompositionError(
            f"Fragment '{fragment}' rendered a path outside the project: {cleaned}",
            fragments=(fragment,),
            path=cleaned,
        )
    return path.as_posix()
