"""stackforge contract synchronisation.

Keeps one canonical representation of every request/response shape and
renders it twice: server-side (Pydantic or Zod, by backend) and client-side
(TypeScript).  Both renderings are checked for structural equivalence.

Usage::

    from stackforge.contracts import synchronize

    contracts = synchronize(config)
    print(contracts.server.content)
    print(contracts.client.content)
"""

from stackforge.contracts.models import Contract, ContractField, SemanticType, field
from stackforge.contracts.renderers import (
    ContractRenderer,
    PydanticRenderer,
    Rendering,
    TypeScriptRenderer,
    ZodRenderer,
    server_renderer_for,
)
from stackforge.contracts.sync import (
    ContractSet,
    check_equivalence,
    collect_contracts,
    order_contracts,
    synchronize,
)

__all__ = [
    "Contract",
    "ContractField",
    "ContractRenderer",
    "ContractSet",
    "PydanticRenderer",
    "Rendering",
    "SemanticType",
    "TypeScriptRenderer",
    "ZodRenderer",
    "check_equivalence",
    "collect_contracts",
    "field",
    "order_contracts",
    "server_renderer_for",
    "synchronize",
]
