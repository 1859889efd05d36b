"""Tests for CompatibilityRule and CompatibilityMatrix.

Covers:
- Partial evaluation (rules allow while any referenced option is unset)
- Reason templating
- legal_values / remaining for incremental prompting
- Default rule set on known-good and known-bad stacks
"""

from __future__ import annotations

import pytest

from stackforge.resolver import (
    DEFAULT_MATRIX,
    DEFAULT_SCHEMA,
    CompatibilityMatrix,
    CompatibilityRule,
)


def _requires_database() -> CompatibilityRule:
    return CompatibilityRule(
        name="backend_requires_database",
        options=("backend", "database"),
        predicate=lambda s: s["backend"] == "none" or s["database"] != "none",
        reason="backend {backend} requires a database",
    )


# ---------------------------------------------------------------------------
# CompatibilityRule
# ---------------------------------------------------------------------------


class TestCompatibilityRule:
    @pytest.mark.unit
    def test_allows_with_unset_option(self):
        rule = _requires_database()
        verdict = rule.evaluate({"backend": "express"})
        assert verdict.allowed is True

    @pytest.mark.unit
    def test_allows_with_nothing_set(self):
        assert _requires_database().evaluate({}).allowed is True

    @pytest.mark.unit
    def test_denies_with_formatted_reason(self):
        verdict = _requires_database().evaluate({"backend": "express", "database": "none"})
        assert verdict.allowed is False
        assert verdict.reason == "backend express requires a database"
        assert verdict.options == ("backend", "database")
        assert verdict.rule == "backend_requires_database"

    @pytest.mark.unit
    def test_applies_to(self):
        rule = _requires_database()
        assert rule.applies_to({"backend": "x", "database": "y"})
        assert not rule.applies_to({"backend": "x"})


# ---------------------------------------------------------------------------
# CompatibilityMatrix
# ---------------------------------------------------------------------------


class TestCompatibilityMatrix:
    @pytest.mark.unit
    def test_empty_matrix_allows_everything(self):
        matrix = CompatibilityMatrix([])
        assert matrix.is_allowed({"backend": "none", "frontend": "none"})

    @pytest.mark.unit
    def test_check_lists_every_denial(self):
        denials = DEFAULT_MATRIX.check({"backend": "none", "frontend": "none", "database": "postgres"})
        rules = {d.rule for d in denials}
        assert "stack_not_empty" in rules
        assert "database_requires_backend" in rules

    @pytest.mark.unit
    def test_legal_values_in_schema_order(self):
        legal = DEFAULT_MATRIX.legal_values({"backend": "fastapi"}, "orm", DEFAULT_SCHEMA)
        assert legal == ["sqlalchemy", "none"]

    @pytest.mark.unit
    def test_legal_values_for_node_backend(self):
        legal = DEFAULT_MATRIX.legal_values(
            {"backend": "hono", "database": "mongodb"}, "orm", DEFAULT_SCHEMA
        )
        assert legal == ["prisma", "mongoose"]

    @pytest.mark.unit
    def test_remaining_only_lists_unset_options(self):
        remaining = DEFAULT_MATRIX.remaining({"deploy": "vercel"}, DEFAULT_SCHEMA)
        assert "deploy" not in remaining
        assert remaining["backend"] == ["express", "hono", "none"]
        assert remaining["database"] == ["postgres", "mongodb", "none"]

    @pytest.mark.unit
    def test_remaining_with_empty_selection_allows_all(self):
        remaining = DEFAULT_MATRIX.remaining({}, DEFAULT_SCHEMA)
        for spec in DEFAULT_SCHEMA.options:
            assert remaining[spec.id] == list(spec.values)


# ---------------------------------------------------------------------------
# Default rules
# ---------------------------------------------------------------------------


class TestDefaultRules:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "selection",
        [
            {"backend": "fastapi", "database": "postgres", "orm": "sqlalchemy"},
            {"backend": "express", "database": "mongodb", "orm": "mongoose"},
            {"backend": "hono", "database": "sqlite", "orm": "drizzle"},
            {"backend": "none", "frontend": "svelte", "database": "none", "orm": "none"},
            {"auth": "enabled", "auth_provider": "keycloak", "backend": "express"},
            {"auth": "disabled", "auth_provider": "none"},
        ],
    )
    def test_allowed_stacks(self, selection):
        assert DEFAULT_MATRIX.is_allowed(selection)

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "selection, rule",
        [
            ({"backend": "fastapi", "database": "none"}, "backend_requires_database"),
            ({"backend": "none", "database": "sqlite"}, "database_requires_backend"),
            ({"database": "none", "orm": "prisma"}, "orm_requires_database"),
            ({"database": "postgres", "orm": "none"}, "database_requires_orm"),
            ({"database": "mongodb", "orm": "drizzle"}, "orm_supports_database"),
            ({"backend": "fastapi", "orm": "prisma"}, "orm_matches_backend"),
            ({"backend": "none", "frontend": "none"}, "stack_not_empty"),
            ({"auth": "enabled", "auth_provider": "none"}, "auth_requires_provider"),
            ({"auth": "disabled", "auth_provider": "clerk"}, "provider_requires_auth"),
            ({"auth": "enabled", "backend": "none"}, "auth_requires_backend"),
            ({"auth_provider": "clerk", "frontend": "none"}, "client_provider_requires_frontend"),
            ({"deploy": "vercel", "backend": "fastapi"}, "vercel_backend"),
            ({"deploy": "vercel", "database": "sqlite"}, "vercel_database"),
        ],
    )
    def test_denied_stacks(self, selection, rule):
        denials = DEFAULT_MATRIX.check(selection)
        assert [d.rule for d in denials] == [rule]
        assert denials[0].reason
