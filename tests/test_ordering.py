from datetime import datetime, timedelta

import pytest

from todofolio.ordering import (
    TODO_SORT_FIELDS,
    dashboard_view,
    due_bounds,
    normalize_sort,
    sort_records,
    sort_todos,
)
from todofolio.utils import pagination_envelope, percentage

NOW = datetime(2025, 3, 14, 15, 30)


def todo(title, priority="medium", completed=False, created_minutes_ago=0, due_date=None):
    return {
        "title": title,
        "priority": priority,
        "completed": completed,
        "created_at": NOW - timedelta(minutes=created_minutes_ago),
        "due_date": due_date,
    }


class TestNormalizeSort:
    @pytest.mark.parametrize(
        "sort,order,expected",
        [
            (None, None, "-created_at"),
            ("title", None, "title"),
            ("-title", None, "-title"),
            ("title", "desc", "-title"),
            ("-title", "ASC", "title"),
            ("bogus", None, "-created_at"),
            ("bogus", "asc", "created_at"),
        ],
    )
    def test_cases(self, sort, order, expected):
        assert normalize_sort(sort, order, TODO_SORT_FIELDS, "-created_at") == expected

    def test_bad_order(self):
        with pytest.raises(ValueError):
            normalize_sort("title", "up", TODO_SORT_FIELDS, "-created_at")


class TestSorting:
    def test_sort_records_mixed_and_missing(self):
        records = [{"v": "b"}, {"v": None}, {"v": 3}, {}, {"v": "A"}]
        assert [r.get("v") for r in sort_records(records, "v")] == [3, "A", "b", None, None]

    def test_priority_ties_fall_back_to_created_at(self):
        items = [
            todo("new high", "high", created_minutes_ago=1),
            todo("low", "low"),
            todo("old high", "high", created_minutes_ago=10),
        ]
        assert [t["title"] for t in sort_todos(items, "-priority")] == ["new high", "old high", "low"]
        assert [t["title"] for t in sort_todos(items, "priority")] == ["low", "old high", "new high"]

    def test_title_ties_fall_back_to_created_at(self):
        items = [
            todo("Report", created_minutes_ago=1),
            todo("apple"),
            todo("report", created_minutes_ago=10),
        ]
        ordered = sort_todos(items, "title")
        assert [t["title"] for t in ordered] == ["apple", "report", "Report"]
        ordered = sort_todos(items, "-title")
        assert [t["title"] for t in ordered] == ["Report", "report", "apple"]


class TestDashboardView:
    def test_default_is_newest_first(self):
        items = [todo("old", created_minutes_ago=5), todo("new")]
        assert [t["title"] for t in dashboard_view(items)] == ["new", "old"]

    def test_status_filter_and_title_sort(self):
        items = [todo("b"), todo("A", completed=True), todo("c", completed=True)]
        assert [t["title"] for t in dashboard_view(items, "completed", "title")] == ["A", "c"]
        assert [t["title"] for t in dashboard_view(items, "pending")] == ["b"]

    def test_priority_sort(self):
        items = [todo("m"), todo("l", "low"), todo("h", "high")]
        assert [t["title"] for t in dashboard_view(items, sort_by="priority")] == ["h", "m", "l"]


class TestDueBounds:
    def test_today(self):
        start, end = due_bounds("today", NOW)
        assert start == datetime(2025, 3, 14)
        assert end == datetime(2025, 3, 14, 23, 59, 59, 999999)

    def test_week_and_overdue(self):
        assert due_bounds("week", NOW) == (NOW, NOW + timedelta(days=7))
        assert due_bounds("overdue", NOW) == (None, NOW)

    def test_unknown(self):
        with pytest.raises(ValueError):
            due_bounds("someday", NOW)


class TestHelpers:
    @pytest.mark.parametrize("part,whole,expected", [(0, 0, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (3, 3, 100)])
    def test_percentage(self, part, whole, expected):
        assert percentage(part, whole) == expected

    def test_pagination_envelope_materializes(self):
        page = pagination_envelope(iter([1, 2]), total=5, limit=-1, offset=-3)
        assert page == {"items": [1, 2], "total": 5, "limit": 0, "offset": 0}
