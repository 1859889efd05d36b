"""Contract Synchronization Pipeline.

Collects the contracts declared by the contract-bearing fragments a project
configuration selects, validates the reference graph, and renders one
server-side and one client-side form from that single representation.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from stackforge.contracts.models import Contract
from stackforge.contracts.renderers import (
    ContractRenderer,
    Rendering,
    TypeScriptRenderer,
    server_renderer_for,
)
from stackforge.errors import SyncError
from stackforge.resolver.schema import ProjectConfiguration

if TYPE_CHECKING:
    from stackforge.scaffolder.fragments import TemplateFragment


@dataclass(frozen=True)
class ContractSet:
    """Topologically ordered contracts plus their two renderings."""

    contracts: tuple[Contract, ...]
    server: Rendering
    client: Rendering

    @property
    def names(self) -> list[str]:
        return [c.name for c in self.contracts]

    def __len__(self) -> int:
        return len(self.contracts)

    def get(self, name: str) -> Contract | None:
        for contract in self.contracts:
            if contract.name == name:
                return contract
        return None

    def digest(self) -> str:
        """SHA-256 over both renderings, for change detection."""
        h = hashlib.sha256()
        for rendering in (self.server, self.client):
            h.update(rendering.filename.encode("utf-8"))
            h.update(b"\0")
            h.update(rendering.content.encode("utf-8"))
            h.update(b"\0")
        return h.hexdigest()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def synchronize(
    config: ProjectConfiguration,
    fragments: Iterable[TemplateFragment] | None = None,
    *,
    server_renderer: ContractRenderer | None = None,
    client_renderer: ContractRenderer | None = None,
) -> ContractSet:
    """Build and render the ``ContractSet`` for *config*.

    Args:
        config: Resolved project configuration.
        fragments: Fragment catalog to walk (defaults to the built-in one).
            Only fragments whose guard holds and that carry contracts count.
        server_renderer: Override the backend-specific server renderer.
        client_renderer: Override the TypeScript client renderer.

    Raises:
        SyncError: conflicting definitions, dangling references, a reference
            cycle, or renderings that are not structurally equivalent.
    """
    if fragments is None:
        from stackforge.scaffolder.catalog import DEFAULT_CATALOG

        fragments = DEFAULT_CATALOG

    collected = collect_contracts(config, fragments)
    ordered = order_contracts(collected)

    server = (server_renderer or server_renderer_for(config.get("backend", "none"))).render(ordered)
    client = (client_renderer or TypeScriptRenderer()).render(ordered)
    check_equivalence(server, client)

    return ContractSet(contracts=tuple(ordered), server=server, client=client)


def collect_contracts(
    config: ProjectConfiguration, fragments: Iterable[TemplateFragment]
) -> dict[str, Contract]:
    """Gather contracts from the included contract-bearing fragments.

    The same contract may be declared by several fragments as long as every
    declaration is identical.
    """
    found: dict[str, Contract] = {}
    owners: dict[str, str] = {}
    bearing = sorted(
        (f for f in fragments if f.contract_bearing),
        key=lambda f: f.name,
    )
    for fragment in bearing:
        if not fragment.guard.evaluate(config):
            continue
        for contract in fragment.contracts:
            existing = found.get(contract.name)
            if existing is None:
                found[contract.name] = contract
                owners[contract.name] = fragment.name
            elif existing != contract:
                raise SyncError(
                    f"Contract '{contract.name}' is defined differently by fragments "
                    f"'{owners[contract.name]}' and '{fragment.name}'",
                    contracts=(contract.name,),
                )
    return found


def order_contracts(contracts: Mapping[str, Contract]) -> list[Contract]:
    """Return contracts dependencies-first, ties broken by name.

    Raises ``SyncError`` for references to unknown contracts and for cycles;
    a cycle is reported as the ordered path that closes on itself, e.g.
    ``["A", "B", "A"]``.
    """
    for contract in contracts.values():
        missing = [r for r in contract.references if r not in contracts]
        if missing:
            raise SyncError(
                f"Contract '{contract.name}' references unknown contract(s): "
                f"{', '.join(missing)}",
                contracts=(contract.name, *missing),
            )

    ordered: list[Contract] = []
    done: set[str] = set()
    visiting: list[str] = []

    def visit(name: str) -> None:
        if name in done:
            return
        if name in visiting:
            cycle = visiting[visiting.index(name):] + [name]
            raise SyncError(
                f"Cyclic contract reference: {' -> '.join(cycle)}",
                cycle=cycle,
                contracts=cycle[:-1],
            )
        visiting.append(name)
        for ref in sorted(contracts[name].references):
            visit(ref)
        visiting.pop()
        done.add(name)
        ordered.append(contracts[name])

    for name in sorted(contracts):
        visit(name)
    return ordered


def check_equivalence(server: Rendering, client: Rendering) -> None:
    """Raise ``SyncError`` unless both renderings describe the same shapes.

    Each emitted field type must first stand for its declared semantic type
    in its own dialect; then names, semantics, cardinality and optionality
    must agree field by field.
    """
    for rendering in (server, client):
        for shape in rendering.shapes:
            for fs in shape.fields:
                if not fs.faithful:
                    raise SyncError(
                        f"{rendering.side.capitalize()} rendering emits {fs.type_expr!r} for "
                        f"'{shape.name}.{fs.name}', which does not stand for {fs.semantic!r}",
                        contracts=(shape.name,),
                    )

    server_names = [s.name for s in server.shapes]
    client_names = [s.name for s in client.shapes]
    if server_names != client_names:
        raise SyncError(
            "Server and client renderings declare different contracts",
            contracts=sorted(set(server_names) ^ set(client_names)),
        )

    for server_shape, client_shape in zip(server.shapes, client.shapes):
        server_fields = [f.structure for f in server_shape.fields]
        client_fields = [f.structure for f in client_shape.fields]
        if server_fields != client_fields:
            raise SyncError(
                f"Contract '{server_shape.name}' differs between server and client renderings",
                contracts=(server_shape.name,),
            )
