"""End-to-end generation tests.

Run the full RESOLVE -> COMPOSE -> SYNC -> WRITE pipeline for a spread of
stacks and check that the generated tree is well formed: Python parses,
JSON and YAML load, and the contract files agree with the manifest.

No external services (Docker, Node, databases) are required.
"""

from __future__ import annotations

import ast
import json
from pathlib import Path

import pytest
import yaml

from stackforge.config import Config
from stackforge.pipeline import Pipeline

STACKS = {
    "defaults": {},
    "express-mongo": {"backend": "express", "database": "mongodb", "orm": "mongoose"},
    "hono-sqlite-svelte": {"backend": "hono", "database": "sqlite", "frontend": "svelte"},
    "fastapi-no-auth": {"auth": "disabled"},
    "next-keycloak": {"frontend": "next", "auth_provider": "keycloak"},
    "vercel": {"deploy": "vercel"},
    "static-site": {"backend": "none"},
}


async def _generate(tmp_path: Path, selection: dict[str, str]):
    config = Config(project_name="e2e-app", output_dir=tmp_path)
    result = await Pipeline(config).run(selection)
    return result, config.project_path


@pytest.mark.integration
class TestGeneratedProjects:
    """Every generated file must be loadable by its own toolchain's parser."""

    @pytest.mark.parametrize("stack", sorted(STACKS))
    async def test_files_are_well_formed(self, stack: str, tmp_path: Path) -> None:
        result, root = await _generate(tmp_path, STACKS[stack])

        on_disk = sorted(
            p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file()
        )
        assert on_disk == result.plan.paths()

        for rel in on_disk:
            text = (root / rel).read_text(encoding="utf-8")
            if rel.endswith(".py"):
                ast.parse(text, filename=rel)
            elif rel.endswith(".json"):
                json.loads(text)
            elif rel.endswith((".yml", ".yaml")):
                yaml.safe_load(text)

    @pytest.mark.parametrize("stack", sorted(STACKS))
    async def test_manifest_matches_tree(self, stack: str, tmp_path: Path) -> None:
        result, root = await _generate(tmp_path, STACKS[stack])
        manifest = json.loads((root / ".stackforge.json").read_text(encoding="utf-8"))

        assert manifest["options"] == result.project.as_selection()
        assert sorted(manifest["files"] + [".stackforge.json"]) == result.plan.paths()
        assert manifest["contracts"] == result.contracts.names

    async def test_fastapi_imports_resolve_to_generated_modules(self, tmp_path: Path) -> None:
        _, root = await _generate(tmp_path, {})
        server = root / "apps" / "server"
        tree = ast.parse((server / "app" / "main.py").read_text(encoding="utf-8"))

        for node in ast.walk(tree):
            if isinstance(node, ast.ImportFrom) and node.module and node.module.startswith("app"):
                parts = node.module.split(".")
                module = server.joinpath(*parts).with_suffix(".py")
                package = server.joinpath(*parts)
                assert module.is_file() or package.is_dir(), node.module

    async def test_regenerate_is_a_no_op(self, tmp_path: Path) -> None:
        _, root = await _generate(tmp_path, STACKS["hono-sqlite-svelte"])
        before = {p: p.read_bytes() for p in root.rglob("*") if p.is_file()}

        result = await Pipeline(Config()).regenerate(root)

        assert result.diff is not None and result.diff.is_clean
        after = {p: p.read_bytes() for p in root.rglob("*") if p.is_file()}
        assert after == before

    async def test_contract_renderings_agree(self, tmp_path: Path) -> None:
        result, root = await _generate(tmp_path, STACKS["express-mongo"])
        server = (root / "apps/server/src/contracts.ts").read_text(encoding="utf-8")
        client = (root / "apps/web/src/types/contracts.ts").read_text(encoding="utf-8")
        for name in result.contracts.names:
            assert f"export const {name}Schema" in server
            assert f"export interface {name} " in client
