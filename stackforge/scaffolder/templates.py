"""Jinja2 placeholder rendering for template fragments.

Provides the ``TemplateRenderer`` class which renders fragment paths and
bodies with the resolved option values.  Rendering runs in an immutable
sandbox with ``StrictUndefined``: a placeholder that does not name a known
value raises ``CompositionError`` instead of rendering as an empty string.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from jinja2 import StrictUndefined, Template, TemplateError, UndefinedError
from jinja2.sandbox import ImmutableSandboxedEnvironment

from stackforge.errors import CompositionError

_UNDEFINED_NAME = re.compile(r"'([^']+)' is undefined")


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders fragment paths and bodies.

    Templates are compiled on first use and cached per source string, so one
    renderer can be reused across many compositions.
    """

    def __init__(self) -> None:
        self.env = ImmutableSandboxedEnvironment(
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        # Register custom filters
        self.env.filters["slugify"] = slugify
        self.env.filters["pascal_case"] = pascal_case
        self.env.filters["snake_case"] = snake_case
        self.env.filters["camel_case"] = camel_case
        self._compiled: dict[str, Template] = {}

    def render_string(
        self,
        template_string: str,
        context: Mapping[str, Any],
        *,
        fragment: str = "<inline>",
    ) -> str:
        """Render *template_string* with *context*.

        Raises:
            CompositionError: a placeholder is unresolved or the template
                does not parse.
        """
        try:
            template = self._compiled.get(template_string)
            if template is None:
                template = self.env.from_string(template_string)
                self._compiled[template_string] = template
            return template.render(**context)
        except UndefinedError as exc:
            match = _UNDEFINED_NAME.search(str(exc))
            placeholder = match.group(1) if match else None
            raise CompositionError(
                f"Unresolved placeholder '{placeholder or '?'}' in fragment '{fragment}'",
                fragments=(fragment,),
                placeholder=placeholder,
            ) from exc
        except TemplateError as exc:
            raise CompositionError(
                f"Invalid template in fragment '{fragment}': {exc}",
                fragments=(fragment,),
            ) from exc


# ---------------------------------------------------------------------------
# Jinja2 custom filters
# ---------------------------------------------------------------------------

def slugify(value: str) -> str:
    """Convert a string to a URL/filename-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower().strip())
    return slug.strip("-")


def pascal_case(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``SomeThing``."""
    parts = re.split(r"[-_\s]+", value)
    return "".join(word.capitalize() for word in parts if word)


def snake_case(value: str) -> str:
    """Convert ``SomeThing`` or ``some-thing`` to ``some_thing``."""
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", value)
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    return re.sub(r"[-\s]+", "_", s2).lower()


def camel_case(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``someThing``."""
    pascal = pascal_case(value)
    if pascal:
        return pascal[0].lower() + pascal[1:]
    return ""
