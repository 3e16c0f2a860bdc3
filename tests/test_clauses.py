"""Unit tests for placeholder numbering, paging helpers and ClauseBuilder."""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from recordql.compile.base import (
    CompiledStatement,
    Page,
    clamp_page,
    number_placeholders,
    placeholder_indexes,
)
from recordql.compile.clauses import ClauseBuilder, Operator, render_window
from recordql.errors import InvalidClauseError


def _builder(strict: bool = False) -> ClauseBuilder:
    return ClauseBuilder(owner="users", strict=strict)


# ---------------------------------------------------------------------------
# Placeholders
# ---------------------------------------------------------------------------


def test_number_placeholders_sequential():
    assert number_placeholders("a = $ AND b IN ($, $)") == "a = $1 AND b IN ($2, $3)"


def test_number_placeholders_start():
    assert number_placeholders("a = $", start=4) == "a = $4"


def test_number_placeholders_is_idempotent():
    once = number_placeholders("a = $ OR b = $")
    assert number_placeholders(once) == once


def test_placeholder_indexes():
    assert placeholder_indexes("x = $1 AND y IN ($2, $3)") == [1, 2, 3]


def test_count_statement_wraps_text_and_keeps_params():
    stmt = CompiledStatement(text="SELECT * FROM users WHERE name = $1", params=["Ann"])
    count = stmt.count_statement()
    assert count.text == (
        "SELECT COUNT(*) AS count FROM (SELECT * FROM users WHERE name = $1) AS count_table"
    )
    assert count.params == ["Ann"]


# ---------------------------------------------------------------------------
# Paging
# ---------------------------------------------------------------------------


def test_clamp_page():
    assert clamp_page(3, 10) == (3, 10, 20)
    assert clamp_page(0, 0) == (1, 1, 0)
    assert clamp_page(-2, 5) == (1, 5, 0)


def test_page_build_totals():
    page = Page.build(["a", "b"], page=2, page_size=2, total_entries=5)
    assert page.total_pages == 3
    assert page.has_more is True


def test_page_build_last_page():
    page = Page.build(["e"], page=3, page_size=2, total_entries=5)
    assert page.has_more is False


def test_page_build_empty():
    page = Page.build([], page=1, page_size=20, total_entries=0)
    assert page.total_pages == 0
    assert page.has_more is False


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


def test_operator_parse_is_case_and_space_insensitive():
    assert Operator.parse("NOT   IN") is Operator.NOT_IN
    assert Operator.parse("Like") is Operator.LIKE
    assert Operator.parse("~") is None


def test_simple_condition():
    b = _builder()
    b.add_condition("name", "=", "Ann")
    assert b.render_where() == ("WHERE name = $", ["Ann"])


def test_in_condition_one_placeholder_per_value():
    b = _builder()
    b.add_condition("id", "in", ["a", "b", "c"])
    assert b.render_where() == ("WHERE id IN ($, $, $)", ["a", "b", "c"])


def test_in_empty_list_is_tautology():
    b = _builder()
    b.add_condition("id", "not in", [])
    assert b.render_where() == ("WHERE 1 = 1", [])


def test_in_non_list_is_rejected():
    b = _builder()
    with capture_logs() as logs:
        b.add_condition("id", "in", "a")
    assert b.state.clauses == []
    assert logs[0]["event"] == "clause.rejected"
    assert logs[0]["code"] == "INVALID_VALUE"
    assert logs[0]["log_level"] == "warning"


def test_null_operators_ignore_value():
    b = _builder()
    b.add_condition("email", "is null", "ignored")
    b.add_connective("OR")
    b.add_condition("email", "IS NOT NULL")
    assert b.render_where() == ("WHERE email IS NULL OR email IS NOT NULL", [])


def test_none_value_is_rejected():
    b = _builder()
    with capture_logs() as logs:
        b.add_condition("name", "=", None)
    assert b.state.clauses == []
    assert logs[0]["code"] == "INVALID_VALUE"


def test_none_value_raises_in_strict_mode():
    b = _builder(strict=True)
    with pytest.raises(InvalidClauseError) as excinfo:
        b.add_condition("name", "=", None)
    assert excinfo.value.code == "INVALID_VALUE"
    assert excinfo.value.to_error_response()["error"] == "INVALID_VALUE"


def test_unknown_operator_is_rejected():
    b = _builder()
    with capture_logs() as logs:
        b.add_condition("name", "~~", "A%")
    assert b.state.clauses == []
    assert logs[0]["code"] == "INVALID_OPERATOR"


def test_transform_wraps_column():
    b = _builder()
    b.add_condition("name", "like", "A%", transform="lower")
    assert b.render_where() == ("WHERE LOWER(name) LIKE $", ["A%"])


def test_unknown_transform_raises_in_strict_mode():
    with pytest.raises(InvalidClauseError, match="transform"):
        _builder(strict=True).add_condition("name", "=", "x", transform="trim")


def test_mandatory_predicates_follow_parenthesised_user_clauses():
    b = _builder()
    b.add_condition("name", "=", "Ann")
    b.add_connective("OR")
    b.add_condition("name", "=", "Bea")
    sql, params = b.render_where(mandatory=["is_deleted = false"])
    assert sql == "WHERE (name = $ OR name = $) AND is_deleted = false"
    assert params == ["Ann", "Bea"]


def test_mandatory_only():
    assert _builder().render_where(mandatory=["is_deleted = false"]) == (
        "WHERE is_deleted = false",
        [],
    )


# ---------------------------------------------------------------------------
# Ordering and window
# ---------------------------------------------------------------------------


def test_order_by_multiple():
    b = _builder()
    b.add_order("name")
    b.add_order("create_date", "desc")
    assert b.render_order() == "ORDER BY name ASC, create_date DESC"


def test_unknown_direction_is_rejected():
    b = _builder()
    with capture_logs() as logs:
        b.add_order("name", "sideways")
    assert b.render_order() == ""
    assert logs[0]["code"] == "INVALID_DIRECTION"


def test_negative_limit_is_rejected():
    b = _builder()
    with capture_logs() as logs:
        b.set_limit(-1)
    assert b.state.limit is None
    assert logs[0]["code"] == "INVALID_LIMIT"


def test_bool_offset_raises_in_strict_mode():
    with pytest.raises(InvalidClauseError):
        _builder(strict=True).set_offset(True)


def test_resolve_window_prefers_explicit_values():
    b = _builder()
    b.set_limit(5)
    assert b.resolve_window(100, 0) == (5, 0)


def test_render_window():
    assert render_window(10, 20) == "LIMIT 10 OFFSET 20"
    assert render_window(None, 5) == "OFFSET 5"
    assert render_window(None, None) == ""


def test_state_reset():
    b = _builder()
    b.add_condition("name", "=", "Ann")
    b.add_order("name")
    b.set_limit(3)
    b.state.reset()
    assert b.render_where() == ("", [])
    assert b.render_order() == ""
    assert b.resolve_window(None, None) == (None, None)
