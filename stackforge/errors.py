"""Exception taxonomy for stackforge.

Generation-time failures (``ConflictError``, ``CompositionError``,
``SyncError``) are fatal to a single generation run: no partial output is
produced and nothing is retried.  Identity Bridge rejections are *not*
exceptions; see :mod:`stackforge.identity.models`.
"""

from __future__ import annotations

from collections.abc import Sequence


class StackforgeError(Exception):
    """Base class for every error raised by stackforge."""


class SelectionError(StackforgeError, ValueError):
    """Raised when raw user input names an unknown option or value.

    Selections are validated before they ever reach the resolver.
    """

    def __init__(self, option: str, value: object = None, allowed: Sequence[str] = ()) -> None:
        self.option = option
        self.value = value
        self.allowed = tuple(allowed)
        if allowed:
            message = (
                f"Invalid value {value!r} for option '{option}' "
                f"(expected one of: {', '.join(allowed)})"
            )
        else:
            message = f"Unknown option '{option}'"
        super().__init__(message)


class ConflictError(StackforgeError):
    """No legal project configuration exists for a selection.

    User-facing: ``offending_options`` names the options that have to change.
    """

    def __init__(self, offending_options: Sequence[str], reason: str) -> None:
        self.offending_options = list(offending_options)
        self.reason = reason
        super().__init__(f"{reason} (options: {', '.join(self.offending_options)})")


class CompositionError(StackforgeError):
    """A fragment catalog defect: duplicate final path or unresolved placeholder."""

    def __init__(
        self,
        message: str,
        *,
        fragments: Sequence[str] = (),
        path: str | None = None,
        placeholder: str | None = None,
    ) -> None:
        self.fragments = list(fragments)
        self.path = path
        self.placeholder = placeholder
        super().__init__(message)


class SyncError(StackforgeError):
    """The contract graph is cyclic or otherwise inconsistent."""

    def __init__(
        self,
        message: str,
        *,
        cycle: Sequence[str] = (),
        contracts: Sequence[str] = (),
    ) -> None:
        self.cycle = list(cycle)
        self.contracts = list(contracts)
        super().__init__(message)


class MaterializationError(StackforgeError):
    """Writing a file plan to disk failed; nothing was left behind."""


class GenerationError(StackforgeError):
    """Raised by the pipeline when a generation step fails irrecoverably."""

    def __init__(self, step: str, message: str) -> None:
        self.step = step
        super().__init__(f"{step}: {message}")
