"""
Tests for the single-criterion order filter.
"""

from unittest.mock import patch

from statquant.core.filters import filter_by_criterion, parse_int_prefix
from statquant.models import FilterCriterion, OrderFilter, OrderType


class TestInactiveFilters:
    def test_empty_filter_is_identity(self, make_order):
        orders = [make_order(3), make_order(1), make_order(2)]
        result = filter_by_criterion(orders, OrderFilter.from_params("", ""))
        assert result == orders

    def test_blank_value_is_identity(self, make_order):
        orders = [make_order(1), make_order(2)]
        result = filter_by_criterion(orders, OrderFilter(FilterCriterion.SYMBOL, "   "))
        assert result == orders

    def test_non_numeric_ticket_keeps_everything(self, make_order):
        orders = [make_order(1), make_order(2)]
        result = filter_by_criterion(orders, OrderFilter(FilterCriterion.TICKET, "abc"))
        assert result == orders

    def test_unknown_criterion_is_inactive(self):
        order_filter = OrderFilter.from_params("volume", "1")
        assert order_filter.criterion is FilterCriterion.NONE
        assert not order_filter.active


class TestCriteria:
    def test_ticket_exact(self, make_order):
        orders = [make_order(10), make_order(100)]
        result = filter_by_criterion(orders, OrderFilter(FilterCriterion.TICKET, "10"))
        assert [order.ticket for order in result] == [10]

    def test_magic_number_exact(self, make_order):
        orders = [make_order(1, magic_number=5), make_order(2, magic_number=50), make_order(3)]
        result = filter_by_criterion(orders, OrderFilter(FilterCriterion.MAGIC_NUMBER, " 5 "))
        assert [order.ticket for order in result] == [1]

    def test_symbol_substring_case_insensitive(self, make_order):
        orders = [make_order(1, symbol="WINM24"), make_order(2, symbol="WDOM24"), make_order(3, symbol="PETR4")]
        result = filter_by_criterion(orders, OrderFilter(FilterCriterion.SYMBOL, "m24"))
        assert [order.ticket for order in result] == [1, 2]

    def test_type_exact_case_insensitive(self, make_order):
        orders = [make_order(1, type=OrderType.BUY), make_order(2, type=OrderType.SELL)]
        result = filter_by_criterion(orders, OrderFilter(FilterCriterion.TYPE, "SELL"))
        assert [order.ticket for order in result] == [2]

    def test_type_does_not_match_substring(self, make_order):
        orders = [make_order(1, type=OrderType.SELL)]
        assert filter_by_criterion(orders, OrderFilter(FilterCriterion.TYPE, "sel")) == []

    def test_open_time_hhmm(self, make_order):
        orders = [
            make_order(1, open_time="2024-05-01T09:05:00"),
            make_order(2, open_time="2024-05-01T09:50:00"),
            make_order(3, open_time=None),
        ]
        result = filter_by_criterion(orders, OrderFilter(FilterCriterion.OPEN_TIME, "09:05"))
        assert [order.ticket for order in result] == [1]

    def test_open_time_with_long_and_short_fractions(self, make_order):
        orders = [
            make_order(1, open_time="2024-05-01T09:05:00.1234567"),
            make_order(2, open_time="2024-05-01T09:05:00.12"),
            make_order(3, open_time="2024-05-01T09:06:00.5"),
        ]
        result = filter_by_criterion(orders, OrderFilter(FilterCriterion.OPEN_TIME, "09:05"))
        assert [order.ticket for order in result] == [1, 2]

    def test_preserves_input_order(self, make_order):
        orders = [make_order(3, symbol="WIN"), make_order(1, symbol="WIN"), make_order(2, symbol="WIN")]
        result = filter_by_criterion(orders, OrderFilter(FilterCriterion.SYMBOL, "win"))
        assert [order.ticket for order in result] == [3, 1, 2]


class TestFailOpen:
    def test_error_keeps_order(self, make_order):
        orders = [make_order(1, open_time="2024-05-01T09:05:00"), make_order(2, open_time="2024-05-01T10:00:00")]
        with patch("statquant.core.filters.hhmm", side_effect=RuntimeError("boom")):
            result = filter_by_criterion(orders, OrderFilter(FilterCriterion.OPEN_TIME, "09:05"))
        assert result == orders


class TestParseIntPrefix:
    def test_values(self):
        assert parse_int_prefix("42") == 42
        assert parse_int_prefix(" -7 ") == -7
        assert parse_int_prefix("12abc") == 12
        assert parse_int_prefix("abc") is None
        assert parse_int_prefix("") is None
