"""stackforge generation pipeline.

Implements the four-step generation run:

Step 1: RESOLVE -- Validate the selection and resolve a Project Configuration.
Step 2: COMPOSE -- Evaluate fragment guards and build the File Plan.
Step 3: SYNC    -- Build the Contract Set and add both renderings to the plan.
Step 4: WRITE   -- Materialise the plan (and its manifest) atomically.

Any failure aborts the run before anything is written.

Usage::

    stackforge new my-app --backend express --database mongodb
    stackforge new my-app --selection stack.yaml --dry-run
    stackforge regenerate ./my-app
    stackforge options --backend hono
"""

from __future__ import annotations

import asyncio
import sys
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

import yaml
from rich.panel import Panel
from rich.table import Table

from stackforge import __version__
from stackforge.config import Config
from stackforge.contracts import ContractSet, synchronize
from stackforge.errors import GenerationError, StackforgeError
from stackforge.resolver import (
    DEFAULT_MATRIX,
    DEFAULT_SCHEMA,
    CompatibilityMatrix,
    OptionSchema,
    ProjectConfiguration,
    parse_selection,
    resolve,
)
from stackforge.scaffolder import (
    DEFAULT_CATALOG,
    FilePlan,
    PlanDiff,
    PlannedFile,
    TemplateFragment,
    compose,
    diff_plan,
    materialize,
    update_in_place,
)
from stackforge.utils import (
    console,
    dump_json,
    format_duration,
    load_json,
    print_error,
    print_plan_tree,
    print_step_header,
    print_success,
    print_summary_table,
    print_warning,
    sanitize_name,
)

STEP_NAMES: tuple[str, ...] = ("RESOLVE", "COMPOSE", "SYNC", "WRITE")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass
class GenerationResult:
    """Everything one generation run produced."""

    project: ProjectConfiguration
    plan: FilePlan
    contracts: ContractSet
    destination: Path
    dry_run: bool = False
    written: list[Path] = field(default_factory=list)
    diff: PlanDiff | None = None
    duration: float = 0.0

    def summary(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "Project": self.project.project_name,
            "Destination": str(self.destination),
            "Files": len(self.plan),
            "Contracts": ", ".join(self.contracts.names) or "-",
        }
        for option, value in self.project.items:
            data[option] = value
        if self.diff is not None:
            data["Changes"] = (
                f"+{len(self.diff.added)} ~{len(self.diff.changed)} -{len(self.diff.removed)}"
            )
        data["Duration"] = format_duration(self.duration)
        return data


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class Pipeline:
    """Drives RESOLVE, COMPOSE, SYNC and WRITE for one project.

    Attributes:
        config: Generator configuration (destination, overwrite, dry run).
        schema: Option Schema snapshot the selection is validated against.
        matrix: Compatibility Matrix used by the resolver.
        catalog: Fragment catalog to compose from.
    """

    def __init__(
        self,
        config: Config,
        *,
        schema: OptionSchema = DEFAULT_SCHEMA,
        matrix: CompatibilityMatrix = DEFAULT_MATRIX,
        catalog: Iterable[TemplateFragment] = DEFAULT_CATALOG,
    ) -> None:
        self.config = config
        self.schema = schema
        self.matrix = matrix
        self.catalog = frozenset(catalog)

    # ------------------------------------------------------------------
    # Step wrapper
    # ------------------------------------------------------------------

    def _step(self, index: int, func: Callable[[], T]) -> T:
        name = STEP_NAMES[index - 1]
        print_step_header(index, name)
        try:
            return func()
        except StackforgeError as exc:
            raise GenerationError(name, str(exc)) from exc

    # ------------------------------------------------------------------
    # Planning (pure)
    # ------------------------------------------------------------------

    def resolve(self, selection: Mapping[str, Any]) -> ProjectConfiguration:
        return resolve(
            selection,
            self.schema,
            self.matrix,
            project_name=self.config.project_name,
        )

    def build_plan(
        self, project: ProjectConfiguration, plan: FilePlan | None = None
    ) -> tuple[FilePlan, ContractSet]:
        """Compose, synchronise and attach the manifest without printing.

        Pass an already composed *plan* to skip composition.
        """
        if plan is None:
            plan = compose(project, self.catalog)
        contracts = synchronize(project, self.catalog)
        plan = self._with_contracts(plan, project, contracts)
        return plan.merge([self._manifest_entry(project, plan, contracts)]), contracts

    @staticmethod
    def _with_contracts(
        plan: FilePlan, project: ProjectConfiguration, contracts: ContractSet
    ) -> FilePlan:
        if not len(contracts):
            return plan
        extra: list[PlannedFile] = []
        if project.get("backend", "none") != "none":
            extra.append(
                PlannedFile(
                    path=contracts.server.filename,
                    content=contracts.server.content,
                    fragment="contracts.server",
                )
            )
        if project.get("frontend", "none") != "none":
            extra.append(
                PlannedFile(
                    path=contracts.client.filename,
                    content=contracts.client.content,
                    fragment="contracts.client",
                )
            )
        return plan.merge(extra)

    def _manifest_entry(
        self, project: ProjectConfiguration, plan: FilePlan, contracts: ContractSet
    ) -> PlannedFile:
        manifest = {
            **project.to_dict(),
            "generator": f"stackforge {__version__}",
            "files": plan.paths(),
            "contracts": contracts.names,
            "contracts_digest": contracts.digest(),
        }
        return PlannedFile(
            path=self.config.manifest_name,
            content=dump_json(manifest),
            fragment="manifest",
        )

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def run(self, selection: Mapping[str, Any]) -> GenerationResult:
        """Generate a new project from a (partial) selection."""
        start = time.monotonic()
        destination = self.config.project_path

        console.print(
            Panel(
                f"[bold bright_cyan]stackforge {__version__}[/bold bright_cyan]\n"
                f"Project : {self.config.project_name}\n"
                f"Output  : {destination.resolve()}\n"
                f"Mode    : {'dry run' if self.config.dry_run else 'write'}",
                title="[bold]Generate[/bold]",
                border_style="bright_cyan",
            )
        )

        project = self._step(1, lambda: self.resolve(selection))
        result = await self._generate(project, destination, overwrite=self.config.overwrite)
        result.duration = time.monotonic() - start
        return result

    async def regenerate(self, project_dir: Path) -> GenerationResult:
        """Re-run generation for an existing project from its manifest.

        The saved selection is resolved again against the current schema.
        Generated files are rewritten in place and files the previous run
        generated that are no longer planned are removed; everything else in
        the project (``.git``, dependencies, user code) is left untouched.
        A planned path already occupied by a file the previous run did not
        generate blocks the rewrite unless ``config.overwrite`` is set.
        """
        start = time.monotonic()
        project_dir = Path(project_dir)
        manifest_path = project_dir / self.config.manifest_name
        if not manifest_path.is_file():
            raise GenerationError("RESOLVE", f"No manifest found at {manifest_path}")

        manifest = load_json(manifest_path)
        saved = ProjectConfiguration.from_dict(manifest)
        self.config = self.config.model_copy(
            update={"project_name": saved.project_name, "output_dir": project_dir.parent}
        )

        console.print(
            Panel(
                f"[bold bright_cyan]stackforge {__version__}[/bold bright_cyan]\n"
                f"Project : {saved.project_name}\n"
                f"Path    : {project_dir.resolve()}",
                title="[bold]Regenerate[/bold]",
                border_style="bright_cyan",
            )
        )

        project = self._step(1, lambda: self.resolve(saved.as_selection()))
        if project.as_selection() != saved.as_selection():
            print_warning("Saved selection resolved differently under the current schema.")

        known = [*manifest.get("files", []), self.config.manifest_name]
        result = await self._generate(
            project, project_dir, overwrite=self.config.overwrite, known_paths=known
        )
        result.duration = time.monotonic() - start
        return result

    async def _generate(
        self,
        project: ProjectConfiguration,
        destination: Path,
        *,
        overwrite: bool,
        known_paths: Sequence[str] | None = None,
    ) -> GenerationResult:
        plan = self._step(2, lambda: compose(project, self.catalog))
        console.print(f"  [green]+[/green] {len(plan)} file(s) from fragments")

        def _sync() -> tuple[FilePlan, ContractSet]:
            full_plan, contracts = self.build_plan(project, plan)
            console.print(
                f"  [green]+[/green] {len(contracts)} contract(s): "
                f"{', '.join(contracts.names) or '-'}"
            )
            return full_plan, contracts

        full_plan, contracts = self._step(3, _sync)

        result = GenerationResult(
            project=project,
            plan=full_plan,
            contracts=contracts,
            destination=destination,
            dry_run=self.config.dry_run,
        )

        print_step_header(4, "WRITE")
        if destination.exists():
            result.diff = diff_plan(full_plan, destination, known_paths=known_paths or ())

        if known_paths is not None and not overwrite:
            unowned = _unowned_files(full_plan, destination, known_paths)
            if unowned:
                message = (
                    "Refusing to overwrite files stackforge did not generate: "
                    + ", ".join(unowned[:5])
                    + (" ..." if len(unowned) > 5 else "")
                )
                if not self.config.dry_run:
                    raise GenerationError("WRITE", message)
                print_warning(message)

        if self.config.dry_run:
            print_warning("Dry run: nothing written.")
            print_plan_tree(destination.name, full_plan.paths())
            return result

        try:
            if known_paths is None:
                result.written = await materialize(full_plan, destination, overwrite=overwrite)
            else:
                stale = result.diff.removed if result.diff is not None else []
                result.written = await update_in_place(full_plan, destination, stale=stale)
        except StackforgeError as exc:
            raise GenerationError("WRITE", str(exc)) from exc
        print_success(f"Wrote {len(result.written)} file(s) to {destination}")
        return result


def _unowned_files(plan: FilePlan, project_dir: Path, known: Iterable[str]) -> list[str]:
    """Planned paths already on disk that no earlier run generated."""
    known_set = set(known)
    return [p for p in plan.paths() if p not in known_set and (project_dir / p).exists()]


# ---------------------------------------------------------------------------
# Selection input
# ---------------------------------------------------------------------------


def load_selection_file(path: Path) -> dict[str, Any]:
    """Load a selection mapping from a YAML or JSON file."""
    path = Path(path)
    if not path.is_file():
        raise StackforgeError(f"Selection file not found: {path}")
    try:
        if path.suffix.lower() == ".json":
            data: Any = load_json(path)
        else:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (yaml.YAMLError, ValueError) as exc:
        raise StackforgeError(f"Cannot parse selection file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise StackforgeError(f"Selection file must contain a mapping: {path}")
    return {str(k): (None if v is None else str(v)) for k, v in data.items()}


def selection_from_args(args: Any, schema: OptionSchema = DEFAULT_SCHEMA) -> dict[str, Any]:
    """Merge ``--selection`` file contents with per-option flags (flags win)."""
    selection: dict[str, Any] = {}
    if getattr(args, "selection", None):
        selection.update(load_selection_file(Path(args.selection)))
    for spec in schema.options:
        value = getattr(args, spec.id, None)
        if value is not None:
            selection[spec.id] = value
    return selection


def print_options(
    selection: Mapping[str, Any],
    schema: OptionSchema = DEFAULT_SCHEMA,
    matrix: CompatibilityMatrix = DEFAULT_MATRIX,
) -> None:
    """Print every option with the values still legal given *selection*."""
    chosen = parse_selection(selection, schema)
    denials = matrix.check(chosen)
    for verdict in denials:
        print_error(f"Conflict: {verdict.reason}")

    remaining = matrix.remaining(chosen, schema)
    table = Table(title=f"Options (schema v{schema.version})", header_style="bold cyan")
    table.add_column("Option", style="bold", no_wrap=True)
    table.add_column("Values")
    table.add_column("Default", style="dim")
    for spec in schema.options:
        if spec.id in chosen:
            values = f"[green]{chosen[spec.id]}[/green] (selected)"
        else:
            legal = remaining.get(spec.id, [])
            values = ", ".join(
                f"[bold]{v}[/bold]" if v in legal else f"[dim strike]{v}[/dim strike]"
                for v in spec.values
            )
        table.add_row(spec.id, values, spec.default)
    console.print(table)


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _add_option_flags(parser: Any, schema: OptionSchema) -> None:
    for spec in schema.options:
        parser.add_argument(
            f"--{spec.id.replace('_', '-')}",
            dest=spec.id,
            choices=list(spec.values),
            default=None,
            help=f"{spec.description or spec.id} (default: {spec.default})",
        )


def build_parser(schema: OptionSchema = DEFAULT_SCHEMA) -> Any:
    import argparse

    parser = argparse.ArgumentParser(
        prog="stackforge",
        description="stackforge -- full-stack project scaffolder",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  stackforge new my-app\n"
            "  stackforge new my-app --backend express --database mongodb -o ./out\n"
            "  stackforge new my-app --selection stack.yaml --dry-run\n"
            "  stackforge regenerate ./my-app\n"
            "  stackforge options --deploy vercel\n"
        ),
    )
    parser.add_argument("--version", action="version", version=f"stackforge {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    new = sub.add_parser("new", help="Generate a new project")
    new.add_argument("name", help="Project name (used as the directory name)")
    new.add_argument("--output", "-o", default=None, help="Parent directory (default: .)")
    new.add_argument("--selection", "-s", default=None, help="YAML or JSON selection file")
    new.add_argument("--overwrite", action="store_true", help="Replace an existing directory")
    new.add_argument("--dry-run", action="store_true", help="Plan only, write nothing")
    _add_option_flags(new, schema)

    regen = sub.add_parser("regenerate", help="Regenerate a project from its manifest")
    regen.add_argument("project_dir", nargs="?", default=".", help="Project directory")
    regen.add_argument(
        "--overwrite",
        action="store_true",
        help="Also replace files at generated paths that stackforge did not write",
    )
    regen.add_argument("--dry-run", action="store_true", help="Show changes, write nothing")

    options = sub.add_parser("options", help="List options and their legal values")
    options.add_argument("--selection", "-s", default=None, help="YAML or JSON selection file")
    _add_option_flags(options, schema)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for ``stackforge``."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = Config.from_env()
    updates: dict[str, Any] = {}
    if getattr(args, "overwrite", False):
        updates["overwrite"] = True
    if getattr(args, "dry_run", False):
        updates["dry_run"] = True

    try:
        if args.command == "options":
            print_options(selection_from_args(args))
            return

        if args.command == "new":
            name = sanitize_name(args.name)
            if not name:
                console.print(f"[bold red]Error:[/bold red] Invalid project name: {args.name!r}")
                sys.exit(1)
            updates["project_name"] = name
            if args.output:
                updates["output_dir"] = Path(args.output)
            pipeline = Pipeline(config.model_copy(update=updates))
            result = asyncio.run(pipeline.run(selection_from_args(args)))
        else:
            pipeline = Pipeline(config.model_copy(update=updates))
            result = asyncio.run(pipeline.regenerate(Path(args.project_dir)))

    except GenerationError as exc:
        print_error(f"Generation failed at {exc}")
        sys.exit(1)
    except StackforgeError as exc:
        print_error(f"Error: {exc}")
        sys.exit(1)

    print_summary_table(result.summary(), title="Generation Summary")
    if result.dry_run:
        console.print("[bold yellow]Dry run complete.[/bold yellow]")
    else:
        console.print("[bold green]Project generated successfully![/bold green]")


if __name__ == "__main__":
    main()
