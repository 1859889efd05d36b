"""stackforge configuration resolver.

Validates raw option selections against the Option Schema and the
Compatibility Matrix and produces an immutable ``ProjectConfiguration``.

Usage::

    from stackforge.resolver import resolve

    config = resolve({"backend": "express", "database": "mongodb"})
    print(config.orm)  # "prisma"
"""

from stackforge.resolver.resolver import resolve
from stackforge.resolver.rules import (
    DEFAULT_MATRIX,
    DEFAULT_RULES,
    CompatibilityMatrix,
    CompatibilityRule,
    Verdict,
)
from stackforge.resolver.schema import (
    DEFAULT_SCHEMA,
    OptionSchema,
    OptionSpec,
    ProjectConfiguration,
    parse_selection,
)

__all__ = [
    "resolve",
    "parse_selection",
    "CompatibilityMatrix",
    "CompatibilityRule",
    "Verdict",
    "DEFAULT_MATRIX",
    "DEFAULT_RULES",
    "DEFAULT_SCHEMA",
    "OptionSchema",
    "OptionSpec",
    "ProjectConfiguration",
]
