"""Tests for the canonical contract models (stackforge.contracts.models)."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from stackforge.contracts import Contract, ContractField, SemanticType, field


class TestContractField:
    @pytest.mark.unit
    def test_semantic_enum_is_unwrapped(self):
        f = field("count", SemanticType.INTEGER)
        assert f.type == "integer"
        assert f.semantic_type is SemanticType.INTEGER
        assert f.reference is None
        assert f.semantic == "integer"

    @pytest.mark.unit
    def test_plain_string_semantic(self):
        assert ContractField(name="ok", type="boolean").semantic_type is SemanticType.BOOLEAN

    @pytest.mark.unit
    def test_reference_field(self):
        f = field("items", "Todo", many=True)
        assert f.semantic_type is None
        assert f.reference == "Todo"
        assert f.semantic == "ref:Todo"
        assert f.many is True

    @pytest.mark.unit
    def test_defaults(self):
        f = field("title", SemanticType.STRING)
        assert f.optional is False
        assert f.many is False

    @pytest.mark.unit
    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            ContractField(name="", type="string")

    @pytest.mark.unit
    def test_frozen_and_hashable(self):
        a = field("x", SemanticType.STRING, optional=True)
        b = field("x", SemanticType.STRING, optional=True)
        assert a == b
        assert hash(a) == hash(b)
        with pytest.raises(ValidationError):
            a.optional = False


class TestContract:
    @pytest.mark.unit
    def test_references_in_field_order_without_duplicates(self):
        contract = Contract(
            name="Board",
            fields=(
                field("owner", "User"),
                field("todos", "Todo", many=True),
                field("editors", "User", many=True),
                field("title", SemanticType.STRING),
            ),
        )
        assert contract.references == ["User", "Todo"]

    @pytest.mark.unit
    def test_name_must_be_pascal_case(self):
        with pytest.raises(ValidationError):
            Contract(name="todo_item")

    @pytest.mark.unit
    def test_equality_by_value(self):
        one = Contract(name="Ping", fields=(field("ok", SemanticType.BOOLEAN),))
        two = Contract(name="Ping", fields=(field("ok", SemanticType.BOOLEAN),))
        assert one == two
        assert one != Contract(name="Ping", fields=(field("ok", SemanticType.STRING),))
