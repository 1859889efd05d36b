"""Server-side and client-side renderings of a contract set.

Every renderer maps ``SemanticType`` through a fixed table and records the
shape of each field it emits.  Shapes are read back from the emitted type
expressions rather than copied from the model, so a renderer that maps a
type wrongly is caught when the two sides of a ``ContractSet`` are compared.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from stackforge.contracts.models import Contract, ContractField, SemanticType

GENERATED_NOTICE = "Generated by stackforge from the project configuration. Do not edit."

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_ZOD_OPTIONAL = ".nullable().optional()"


# ---------------------------------------------------------------------------
# Type tables
# ---------------------------------------------------------------------------

PYTHON_TYPES: dict[SemanticType, str] = {
    SemanticType.STRING: "str",
    SemanticType.INTEGER: "int",
    SemanticType.NUMBER: "float",
    SemanticType.BOOLEAN: "bool",
    SemanticType.DATETIME: "datetime",
    SemanticType.UUID: "UUID",
    SemanticType.JSON: "dict[str, Any]",
}

TS_TYPES: dict[SemanticType, str] = {
    SemanticType.STRING: "string",
    SemanticType.INTEGER: "number",
    SemanticType.NUMBER: "number",
    SemanticType.BOOLEAN: "boolean",
    SemanticType.DATETIME: "string",
    SemanticType.UUID: "string",
    SemanticType.JSON: "Record<string, unknown>",
}

ZOD_TYPES: dict[SemanticType, str] = {
    SemanticType.STRING: "z.string()",
    SemanticType.INTEGER: "z.number().int()",
    SemanticType.NUMBER: "z.number()",
    SemanticType.BOOLEAN: "z.boolean()",
    SemanticType.DATETIME: "z.string().datetime()",
    SemanticType.UUID: "z.string().uuid()",
    SemanticType.JSON: "z.record(z.unknown())",
}


# ---------------------------------------------------------------------------
# Rendering results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldShape:
    """What a renderer emitted for one field.

    ``semantic`` is the declared type; ``many``, ``optional`` and ``denotes``
    (every semantic key the emitted base type can stand for) are read back
    from ``type_expr``.
    """

    name: str
    semantic: str
    many: bool
    optional: bool
    type_expr: str
    denotes: frozenset[str] = frozenset()

    @property
    def faithful(self) -> bool:
        """Whether the emitted type can stand for the declared one."""
        return self.semantic in self.denotes

    @property
    def structure(self) -> tuple[str, str, bool, bool]:
        """The language-independent part compared across renderings."""
        return (self.name, self.semantic, self.many, self.optional)


@dataclass(frozen=True)
class ContractShape:
    name: str
    fields: tuple[FieldShape, ...]


@dataclass(frozen=True)
class Rendering:
    """One rendered form of a contract set."""

    side: str
    language: str
    filename: str
    content: str
    shapes: tuple[ContractShape, ...]

    def shape(self, name: str) -> ContractShape | None:
        for shape in self.shapes:
            if shape.name == name:
                return shape
        return None


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


class ContractRenderer:
    """Base class: subclasses provide the type table and the text layout.

    ``types`` is what the renderer emits; ``reads`` is the fixed table of
    its output dialect, used to read emitted types back.
    """

    side = "server"
    language = ""
    filename = ""
    types: dict[SemanticType, str] = {}
    reads: dict[SemanticType, str] = {}

    def render(self, contracts: Sequence[Contract]) -> Rendering:
        shapes = tuple(
            ContractShape(
                name=contract.name,
                fields=tuple(self.field_shape(f) for f in contract.fields),
            )
            for contract in contracts
        )
        content = self.render_text(contracts, shapes)
        return Rendering(
            side=self.side,
            language=self.language,
            filename=self.filename,
            content=content,
            shapes=shapes,
        )

    def field_shape(self, f: ContractField) -> FieldShape:
        expr = self.type_expr(f)
        base, many, optional = self.read_type(expr)
        return FieldShape(
            name=f.name,
            semantic=f.semantic,
            many=many,
            optional=optional,
            type_expr=expr,
            denotes=self.denotes(base),
        )

    def base_type(self, f: ContractField) -> str:
        semantic = f.semantic_type
        if semantic is None:
            return self.reference_type(f.type)
        return self.types[semantic]

    def reference_type(self, name: str) -> str:
        return name

    def referenced_contract(self, base: str) -> str | None:
        """Inverse of ``reference_type``; ``None`` if *base* names no contract."""
        return base if _IDENTIFIER.fullmatch(base) else None

    def denotes(self, base: str) -> frozenset[str]:
        """Semantic keys an emitted base type can stand for."""
        scalars = frozenset(s.value for s, emitted in self.reads.items() if emitted == base)
        if scalars:
            return scalars
        name = self.referenced_contract(base)
        return frozenset({f"ref:{name}"}) if name else frozenset()

    def type_expr(self, f: ContractField) -> str:
        raise NotImplementedError

    def read_type(self, expr: str) -> tuple[str, bool, bool]:
        """Split an emitted type into ``(base, many, optional)``."""
        raise NotImplementedError

    def render_text(self, contracts: Sequence[Contract], shapes: tuple[ContractShape, ...]) -> str:
        raise NotImplementedError


class PydanticRenderer(ContractRenderer):
    """Pydantic v2 models for the FastAPI backend."""

    side = "server"
    language = "python"
    filename = "apps/server/app/schemas/contracts.py"
    types = PYTHON_TYPES
    reads = PYTHON_TYPES

    def type_expr(self, f: ContractField) -> str:
        expr = self.base_type(f)
        if f.many:
            expr = f"list[{expr}]"
        if f.optional:
            expr = f"Optional[{expr}]"
        return expr

    def read_type(self, expr: str) -> tuple[str, bool, bool]:
        optional = expr.startswith("Optional[") and expr.endswith("]")
        if optional:
            expr = expr[len("Optional[") : -1]
        many = expr.startswith("list[") and expr.endswith("]")
        if many:
            expr = expr[len("list[") : -1]
        return expr, many, optional

    def render_text(self, contracts: Sequence[Contract], shapes: tuple[ContractShape, ...]) -> str:
        used = {f.semantic_type for c in contracts for f in c.fields}
        typing_names = []
        if SemanticType.JSON in used:
            typing_names.append("Any")
        if any(f.optional for c in contracts for f in c.fields):
            typing_names.append("Optional")

        lines = [f'"""{GENERATED_NOTICE}"""', "", "from __future__ import annotations", ""]
        if SemanticType.DATETIME in used:
            lines.append("from datetime import datetime")
        if typing_names:
            lines.append(f"from typing import {', '.join(typing_names)}")
        if SemanticType.UUID in used:
            lines.append("from uuid import UUID")
        if lines[-1] != "":
            lines.append("")
        lines.append("from pydantic import BaseModel")

        for contract, shape in zip(contracts, shapes):
            lines.extend(["", "", f"class {contract.name}(BaseModel):"])
            if contract.description:
                lines.extend([f'    """{contract.description}"""', ""])
            if not shape.fields:
                lines.append("    pass")
            for fs in shape.fields:
                default = " = None" if fs.optional else ""
                lines.append(f"    {fs.name}: {fs.type_expr}{default}")
        return "\n".join(lines) + "\n"


class ZodRenderer(ContractRenderer):
    """Zod schemas plus inferred types for the Express and Hono backends."""

    side = "server"
    language = "typescript"
    filename = "apps/server/src/contracts.ts"
    types = ZOD_TYPES
    reads = ZOD_TYPES

    def reference_type(self, name: str) -> str:
        return f"{name}Schema"

    def referenced_contract(self, base: str) -> str | None:
        name = base.removesuffix("Schema")
        if name == base or not _IDENTIFIER.fullmatch(name):
            return None
        return name

    def type_expr(self, f: ContractField) -> str:
        expr = self.base_type(f)
        if f.many:
            expr = f"z.array({expr})"
        if f.optional:
            expr = f"{expr}{_ZOD_OPTIONAL}"
        return expr

    def read_type(self, expr: str) -> tuple[str, bool, bool]:
        optional = expr.endswith(_ZOD_OPTIONAL)
        if optional:
            expr = expr.removesuffix(_ZOD_OPTIONAL)
        many = expr.startswith("z.array(") and expr.endswith(")")
        if many:
            expr = expr[len("z.array(") : -1]
        return expr, many, optional

    def render_text(self, contracts: Sequence[Contract], shapes: tuple[ContractShape, ...]) -> str:
        lines = [f"// {GENERATED_NOTICE}", 'import { z } from "zod";']
        for contract, shape in zip(contracts, shapes):
            lines.append("")
            if contract.description:
                lines.append(f"/** {contract.description} */")
            lines.append(f"export const {contract.name}Schema = z.object({{")
            for fs in shape.fields:
                lines.append(f"  {fs.name}: {fs.type_expr},")
            lines.append("});")
            lines.append(
                f"export type {contract.name} = z.infer<typeof {contract.name}Schema>;"
            )
        return "\n".join(lines) + "\n"


class TypeScriptRenderer(ContractRenderer):
    """Plain TypeScript interfaces consumed by the frontend."""

    side = "client"
    language = "typescript"
    filename = "apps/web/src/types/contracts.ts"
    types = TS_TYPES
    reads = TS_TYPES

    def type_expr(self, f: ContractField) -> str:
        expr = self.base_type(f)
        if f.many:
            expr = f"{expr}[]"
        if f.optional:
            expr = f"{expr} | null"
        return expr

    def read_type(self, expr: str) -> tuple[str, bool, bool]:
        optional = expr.endswith(" | null")
        if optional:
            expr = expr.removesuffix(" | null")
        many = expr.endswith("[]")
        if many:
            expr = expr.removesuffix("[]")
        return expr, many, optional

    def render_text(self, contracts: Sequence[Contract], shapes: tuple[ContractShape, ...]) -> str:
        lines = [f"// {GENERATED_NOTICE}"]
        for contract, shape in zip(contracts, shapes):
            lines.append("")
            if contract.description:
                lines.append(f"/** {contract.description} */")
            lines.append(f"export interface {contract.name} {{")
            for fs in shape.fields:
                marker = "?" if fs.optional else ""
                lines.append(f"  {fs.name}{marker}: {fs.type_expr};")
            lines.append("}")
        return "\n".join(lines) + "\n"


SERVER_RENDERERS: dict[str, type[ContractRenderer]] = {
    "fastapi": PydanticRenderer,
    "express": ZodRenderer,
    "hono": ZodRenderer,
}


def server_renderer_for(backend: str) -> ContractRenderer:
    """Renderer for the server side of *backend* (Zod when there is no backend)."""
    return SERVER_RENDERERS.get(backend, ZodRenderer)()
