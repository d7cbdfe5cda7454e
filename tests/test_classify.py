"""
Tests for open/closed partitioning and date restriction.
"""

from datetime import datetime

from statquant.core.classify import (
    classify,
    restrict_to_date,
    restrict_to_today,
    sort_by_open_time_desc,
    today_prefix,
)


class TestClassify:
    def test_partitions_are_disjoint_and_complete(self, make_order):
        orders = [
            make_order(1, is_open=True),
            make_order(2, is_open=False),
            make_order(3, is_open=True),
            make_order(4, is_open=False),
        ]
        partition = classify(orders)
        open_tickets = {order.ticket for order in partition.open}
        closed_tickets = {order.ticket for order in partition.closed}
        assert open_tickets == {1, 3}
        assert closed_tickets == {2, 4}
        assert open_tickets.isdisjoint(closed_tickets)
        assert len(partition.open) + len(partition.closed) == len(orders)

    def test_empty_input(self):
        partition = classify([])
        assert partition.open == []
        assert partition.closed == []


class TestDateRestriction:
    def test_prefix_match(self, make_order):
        orders = [
            make_order(1, open_time="2024-05-01T09:30:00"),
            make_order(2, open_time="2024-05-02T09:30:00"),
        ]
        assert [order.ticket for order in restrict_to_date(orders, "2024-05-01")] == [1]

    def test_missing_open_time_is_excluded(self, make_order):
        orders = [make_order(1, open_time=None), make_order(2, open_time="2024-05-01T10:00:00")]
        assert [order.ticket for order in restrict_to_date(orders, "2024-05-01")] == [2]

    def test_today_prefix_format(self):
        assert today_prefix(datetime(2024, 3, 7, 23, 59)) == "2024-03-07"

    def test_restrict_to_today(self, make_order):
        now = datetime(2024, 5, 1, 12, 0)
        orders = [
            make_order(1, open_time="2024-05-01T08:00:00"),
            make_order(2, open_time="2024-04-30T08:00:00"),
        ]
        assert [order.ticket for order in restrict_to_today(orders, now)] == [1]


class TestSortByOpenTime:
    def test_newest_first_and_undated_last(self, make_order):
        orders = [
            make_order(1, open_time="2024-05-01T08:00:00"),
            make_order(2, open_time=None),
            make_order(3, open_time="2024-05-01T10:00:00"),
        ]
        assert [order.ticket for order in sort_by_open_time_desc(orders)] == [3, 1, 2]

    def test_does_not_mutate_input(self, make_order):
        orders = [make_order(1, open_time="2024-05-01T08:00:00"), make_order(2, open_time="2024-05-01T09:00:00")]
        sort_by_open_time_desc(orders)
        assert [order.ticket for order in orders] == [1, 2]
