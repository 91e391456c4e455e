"""Tests for diag_analyzer/repair.py."""

import json

import pytest

from diag_analyzer.repair import (
    closers_for,
    count_unescaped_quotes,
    is_escaped,
    last_unescaped_quote,
    repair,
)


class TestEscapes:
    def test_single_backslash_escapes(self):
        assert is_escaped('a\\"', 2) is True

    def test_double_backslash_does_not(self):
        assert is_escaped('a\\\\"', 3) is False

    def test_count_ignores_escaped_quotes(self):
        assert count_unescaped_quotes('{"a":"x\\"y"}') == 4

    def test_last_unescaped_quote(self):
        text = '{"a":"x\\"y'
        assert last_unescaped_quote(text) == 5

    def test_last_unescaped_quote_none(self):
        assert last_unescaped_quote("{[1,2") == -1


class TestClosers:
    def test_nested(self):
        assert closers_for('{"a":[{"b":1') == "}]}"

    def test_balanced(self):
        assert closers_for('{"a":[1]}') == ""

    def test_brackets_inside_strings_ignored(self):
        assert closers_for('{"a":"{[') == "}"

    def test_escaped_quote_inside_string(self):
        assert closers_for('{"a":"x\\"{"') == "}"


class TestRepair:
    @pytest.mark.parametrize("text", [None, "", "   \t"])
    def test_blank_returns_none(self, text):
        assert repair(text) is None

    def test_missing_closers(self):
        assert repair('{"a":{"b":1') == '{"a":{"b":1}}'

    def test_trailing_ellipsis(self):
        assert repair('{"a":1}...') == '{"a":1}'

    def test_repeated_ellipsis(self):
        assert repair('{"a":1,......') == '{"a":1}'

    def test_open_string_value_dropped(self):
        assert repair('{"a":1,"b":"x') == '{"a":1}'

    def test_dangling_property_name_dropped(self):
        assert repair('{"a":1,"b"') == '{"a":1}'

    def test_trailing_colon(self):
        assert repair('{"a":1,"b":') == '{"a":1}'

    def test_trailing_comma_in_array(self):
        assert repair('{"a":[1,2,') == '{"a":[1,2]}'

    def test_partial_number_with_dot(self):
        assert json.loads(repair('{"a":[1,2.')) == {"a": [1, 2]}

    def test_complete_string_value_kept(self):
        assert json.loads(repair('{"a":"done"')) == {"a": "done"}

    def test_escaped_quote_in_cut_string(self):
        assert repair('{"a":1,"b":"say \\"hi') == '{"a":1}'

    def test_already_valid_unchanged(self):
        assert repair('{"a":1}') == '{"a":1}'

    def test_only_ellipsis_is_empty(self):
        assert repair("...") is None
