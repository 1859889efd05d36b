"""stackforge scaffolder -- composes project file trees from guarded fragments.

Takes a resolved ``ProjectConfiguration`` and a fragment catalog and builds
a ``FilePlan`` without touching disk; ``materialize`` then writes the plan
atomically and ``update_in_place`` refreshes the generated files of an
existing project.

Quick usage::

    from stackforge.resolver import resolve
    from stackforge.scaffolder import DEFAULT_CATALOG, compose, materialize

    config = resolve({"backend": "hono"}, project_name="my-app")
    plan = compose(config, DEFAULT_CATALOG)
    await materialize(plan, Path("./my-app"))
"""

from stackforge.scaffolder.catalog import DEFAULT_CATALOG
from stackforge.scaffolder.composer import compose, select_fragments
from stackforge.scaffolder.fragments import FilePlan, PlannedFile, TemplateFragment
from stackforge.scaffolder.guards import ALWAYS, AllOf, AnyOf, Equals, Guard, Not, OneOf, is_set
from stackforge.scaffolder.templates import TemplateRenderer
from stackforge.scaffolder.writer import (
    PlanDiff,
    diff_plan,
    materialize,
    materialize_sync,
    update_in_place,
    update_in_place_sync,
)

__all__ = [
    "ALWAYS",
    "AllOf",
    "AnyOf",
    "DEFAULT_CATALOG",
    "Equals",
    "FilePlan",
    "Guard",
    "Not",
    "OneOf",
    "PlanDiff",
    "PlannedFile",
    "TemplateFragment",
    "TemplateRenderer",
    "compose",
    "diff_plan",
    "is_set",
    "materialize",
    "materialize_sync",
    "select_fragments",
    "update_in_place",
    "update_in_place_sync",
]
