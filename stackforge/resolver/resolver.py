"""Configuration Resolver.

Turns a partial, already-parsed selection into a complete
``ProjectConfiguration`` or raises ``ConflictError``.  The resolver is a pure
function of its inputs: no I/O, no globals, same input -> same output.
"""

from __future__ import annotations

from collections.abc import Mapping

from stackforge.errors import ConflictError
from stackforge.resolver.rules import DEFAULT_MATRIX, CompatibilityMatrix, Verdict
from stackforge.resolver.schema import (
    DEFAULT_SCHEMA,
    OptionSchema,
    OptionSpec,
    ProjectConfiguration,
    parse_selection,
)


def resolve(
    selection: Mapping[str, str | None],
    schema: OptionSchema = DEFAULT_SCHEMA,
    matrix: CompatibilityMatrix = DEFAULT_MATRIX,
    *,
    project_name: str = "my-app",
) -> ProjectConfiguration:
    """Resolve *selection* into a fully-populated ``ProjectConfiguration``.

    1. The explicit choices are checked on their own; any denial is a
       conflict the user has to fix.
    2. Unset options are filled in declaration order.  The schema default is
       preferred when it keeps the selection legal, otherwise the
       lexically-first legal value.  Every fill is re-checked against all
       rules, and a fill that leaves a later option without any legal value
       is undone and the next candidate tried.

    Raises:
        SelectionError: *selection* names an unknown option or value.
        ConflictError: no legal value exists for some option.
    """
    chosen = parse_selection(selection, schema)

    denials = matrix.check(chosen)
    if denials:
        raise _conflict(denials, schema)

    unset = [spec for spec in schema.options if spec.id not in chosen]
    completed = _fill(chosen, unset, matrix)
    if completed is None:
        raise _diagnose(chosen, unset, matrix, schema)

    return ProjectConfiguration(
        items=tuple((spec.id, completed[spec.id]) for spec in schema.options),
        project_name=project_name,
        schema_version=schema.version,
    )


def _candidates(spec: OptionSpec) -> list[str]:
    """Default first, then the remaining values in lexical order."""
    return [spec.default, *sorted(v for v in spec.values if v != spec.default)]


def _fill(
    chosen: dict[str, str],
    unset: list[OptionSpec],
    matrix: CompatibilityMatrix,
) -> dict[str, str] | None:
    if not unset:
        return chosen
    spec, rest = unset[0], unset[1:]
    for value in _candidates(spec):
        attempt = {**chosen, spec.id: value}
        if not matrix.is_allowed(attempt):
            continue
        completed = _fill(attempt, rest, matrix)
        if completed is not None:
            return completed
    return None


def _diagnose(
    chosen: dict[str, str],
    unset: list[OptionSpec],
    matrix: CompatibilityMatrix,
    schema: OptionSchema,
) -> ConflictError:
    """Walk the preferred fills and report the first option left with no legal value."""
    current = dict(chosen)
    for spec in unset:
        legal = [v for v in _candidates(spec) if matrix.is_allowed({**current, spec.id: v})]
        if not legal:
            # Report what blocked the default, it is the value the user expected
            blocked = matrix.check({**current, spec.id: spec.default})
            return _conflict(blocked, schema, extra=spec.id)
        current[spec.id] = legal[0]
    return ConflictError([spec.id for spec in unset], "no legal configuration exists")


def _conflict(
    denials: list[Verdict],
    schema: OptionSchema,
    extra: str | None = None,
) -> ConflictError:
    """Build a ``ConflictError`` naming the options of every denying rule."""
    involved = {option for verdict in denials for option in verdict.options}
    if extra is not None:
        involved.add(extra)
    ordered = [option for option in schema.ids if option in involved]
    reason = "; ".join(dict.fromkeys(v.reason for v in denials))
    return ConflictError(ordered, reason)
