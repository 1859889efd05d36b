"""Unit tests for stackforge.utils.

Tests cover:
- sanitize_name
- load_json / dump_json
- format_duration
- build_plan_tree
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from stackforge.utils import (
    build_plan_tree,
    dump_json,
    format_duration,
    load_json,
    sanitize_name,
)


class TestSanitizeName:
    @pytest.mark.unit
    def test_spaces_and_case(self):
        assert sanitize_name("My Todo App") == "my-todo-app"

    @pytest.mark.unit
    def test_special_characters(self):
        assert sanitize_name("  Shop (v2)  ") == "shop-v2"

    @pytest.mark.unit
    def test_keeps_underscores(self):
        assert sanitize_name("my_app") == "my_app"

    @pytest.mark.unit
    def test_only_symbols_is_empty(self):
        assert sanitize_name("!!!") == ""


class TestJsonIO:
    @pytest.mark.unit
    def test_dump_json_is_sorted_and_newline_terminated(self):
        text = dump_json({"b": 1, "a": 2})
        assert text.endswith("\n")
        assert text.index('"a"') < text.index('"b"')

    @pytest.mark.unit
    def test_dump_json_deterministic(self):
        assert dump_json({"x": [1, 2], "y": "z"}) == dump_json({"y": "z", "x": [1, 2]})

    @pytest.mark.unit
    def test_dump_then_load(self, tmp_path: Path):
        path = tmp_path / "data.json"
        path.write_text(dump_json({"key": "value"}), encoding="utf-8")
        assert load_json(path) == {"key": "value"}

    @pytest.mark.unit
    def test_load_json_wraps_non_dict(self, tmp_path: Path):
        path = tmp_path / "list.json"
        path.write_text(json.dumps([1, 2, 3]), encoding="utf-8")
        assert load_json(path) == {"_root": [1, 2, 3]}

    @pytest.mark.unit
    def test_load_json_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_json(tmp_path / "nope.json")


class TestFormatDuration:
    @pytest.mark.unit
    def test_seconds(self):
        assert format_duration(3.74) == "3.7s"

    @pytest.mark.unit
    def test_minutes(self):
        assert format_duration(65.2) == "1m 5s"

    @pytest.mark.unit
    def test_hours(self):
        assert format_duration(3661.0) == "1h 1m 1s"

    @pytest.mark.unit
    def test_negative(self):
        assert format_duration(-5) == "0.0s"


class TestPlanTree:
    @pytest.mark.unit
    def test_nested_paths_share_directories(self):
        tree = build_plan_tree("app", ["a/b/c.txt", "a/b/d.txt", "README.md"])
        labels = [str(child.label) for child in tree.children]
        assert "README.md" in labels
        assert any("a/" in label for label in labels)
        directory = next(c for c in tree.children if "a/" in str(c.label))
        assert len(directory.children) == 1
        assert len(directory.children[0].children) == 2
