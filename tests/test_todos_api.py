from typing import Any, Dict, Optional

import pytest

from conftest import bearer


def create_todo_payload(
    list_id: str,
    title: str = "Test",
    description: Optional[str] = "",
    completed: bool = False,
    priority: str = "medium",
    due_date: Optional[str] = None,
    tags: Optional[list] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "list_id": list_id,
        "title": title,
        "description": description,
        "completed": completed,
        "priority": priority,
    }
    if due_date is not None:
        payload["due_date"] = due_date
    if tags is not None:
        payload["tags"] = tags
    return payload


def assert_todo_shape(todo: Dict[str, Any]):
    assert set(todo.keys()) >= {
        "id",
        "user_id",
        "list_id",
        "title",
        "description",
        "completed",
        "priority",
        "due_date",
        "completed_at",
        "tags",
        "estimated_hours",
        "sort_order",
        "is_overdue",
        "created_at",
        "updated_at",
    }
    assert isinstance(todo["id"], str)
    assert isinstance(todo["title"], str)
    assert isinstance(todo["completed"], bool)
    assert isinstance(todo["tags"], list)


@pytest.fixture
def list_id(client, headers):
    res = client.post("/api/lists", json={"name": "Inbox"}, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()["data"]["id"]


@pytest.fixture
def add_todo(client, headers, list_id):
    def _add(**kwargs):
        res = client.post("/api/todos", json=create_todo_payload(list_id, **kwargs), headers=headers)
        assert res.status_code == 201, res.text
        return res.json()["data"]

    return _add


class TestTodosCRUD:
    def test_create_todo_minimal(self, client, headers, list_id):
        res = client.post("/api/todos", json={"title": "  Buy milk  ", "list_id": list_id}, headers=headers)
        assert res.status_code == 201, res.text
        body = res.json()
        assert body["success"] is True
        assert body["message"] == "Todo created successfully"
        data = body["data"]
        assert_todo_shape(data)
        assert data["title"] == "Buy milk"
        assert data["description"] == ""
        assert data["completed"] is False
        assert data["priority"] == "medium"
        assert data["due_date"] is None
        assert data["completed_at"] is None
        assert data["sort_order"] == 1
        assert data["list_id"] == list_id

    def test_create_with_date_promoted_to_datetime(self, add_todo):
        data = add_todo(title="Read", due_date="2099-12-25")
        assert data["due_date"] == "2099-12-25T00:00:00"
        assert data["is_overdue"] is False

    def test_create_completed_sets_completed_at(self, add_todo):
        data = add_todo(title="Done already", completed=True)
        assert data["completed_at"] is not None

    def test_create_in_unknown_list_is_404(self, client, headers):
        res = client.post("/api/todos", json=create_todo_payload("nope"), headers=headers)
        assert res.status_code == 404
        body = res.json()
        assert body["success"] is False
        assert body["message"] == "List not found"
        assert body["error"]["code"] == "NOT_FOUND"

    def test_sort_order_appends_within_list(self, add_todo):
        orders = [add_todo(title=f"T{i}")["sort_order"] for i in range(3)]
        assert orders == [1, 2, 3]

    def test_get_and_404(self, client, headers, add_todo):
        created = add_todo(title="Read")

        res = client.get(f"/api/todos/{created['id']}", headers=headers)
        assert res.status_code == 200
        assert res.json()["data"]["id"] == created["id"]

        res = client.get("/api/todos/does-not-exist", headers=headers)
        assert res.status_code == 404
        assert res.json()["message"] == "Todo not found"

    def test_put_replaces_fields(self, client, headers, add_todo, list_id):
        created = add_todo(title="Old", description="desc", priority="high", tags=["a"])
        res = client.put(
            f"/api/todos/{created['id']}",
            json={"title": "New", "completed": True},
            headers=headers,
        )
        assert res.status_code == 200, res.text
        data = res.json()["data"]
        assert data["title"] == "New"
        assert data["description"] == ""
        assert data["priority"] == "medium"
        assert data["tags"] == []
        assert data["completed"] is True
        assert data["completed_at"] is not None
        assert data["list_id"] == list_id

    def test_patch_partial_update(self, client, headers, add_todo):
        created = add_todo(title="Keep", description="original", due_date="2099-01-01")

        res = client.patch(f"/api/todos/{created['id']}", json={"priority": "low"}, headers=headers)
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["priority"] == "low"
        assert data["description"] == "original"
        assert data["due_date"] == "2099-01-01T00:00:00"

        # explicit null clears the due date
        res = client.patch(f"/api/todos/{created['id']}", json={"due_date": None}, headers=headers)
        assert res.json()["data"]["due_date"] is None

    def test_patch_empty_body_changes_nothing(self, client, headers, add_todo):
        created = add_todo(title="Same")
        res = client.patch(f"/api/todos/{created['id']}", json={}, headers=headers)
        assert res.status_code == 200
        assert res.json()["message"] == "No changes applied"
        assert res.json()["data"]["title"] == "Same"

    def test_patch_unknown_is_404(self, client, headers):
        res = client.patch("/api/todos/missing", json={"title": "x"}, headers=headers)
        assert res.status_code == 404

    def test_delete(self, client, headers, add_todo):
        created = add_todo(title="Temp")
        res = client.delete(f"/api/todos/{created['id']}", headers=headers)
        assert res.status_code == 200
        assert res.json()["data"] == {"id": created["id"]}
        assert res.json()["message"] == "Todo deleted successfully"

        res = client.get(f"/api/todos/{created['id']}", headers=headers)
        assert res.status_code == 404

        res = client.delete(f"/api/todos/{created['id']}", headers=headers)
        assert res.status_code == 404


class TestToggleAndReorder:
    def test_toggle_flips_state(self, client, headers, add_todo):
        created = add_todo(title="Flip")

        res = client.patch(f"/api/todos/{created['id']}/toggle", headers=headers)
        assert res.status_code == 200
        assert res.json()["message"] == "Todo marked as completed"
        assert res.json()["data"]["completed"] is True
        assert res.json()["data"]["completed_at"] is not None

        res = client.patch(f"/api/todos/{created['id']}/toggle", headers=headers)
        assert res.json()["message"] == "Todo marked as pending"
        assert res.json()["data"]["completed"] is False
        assert res.json()["data"]["completed_at"] is None

    def test_toggle_with_explicit_state(self, client, headers, add_todo):
        created = add_todo(title="Explicit", completed=True)
        res = client.patch(f"/api/todos/{created['id']}/toggle", json={"completed": True}, headers=headers)
        assert res.json()["data"]["completed"] is True
        assert res.json()["data"]["completed_at"] == created["completed_at"]

    def test_reorder_shifts_siblings(self, client, headers, add_todo, list_id):
        a, b, c = (add_todo(title=t) for t in ("A", "B", "C"))

        res = client.put(f"/api/todos/{c['id']}/reorder", json={"new_order": 1}, headers=headers)
        assert res.status_code == 200
        assert res.json()["data"]["sort_order"] == 1

        res = client.get(f"/api/lists/{list_id}/todos", headers=headers)
        titles = [t["title"] for t in res.json()["data"]["items"]]
        assert titles == ["C", "A", "B"]

        res = client.put(f"/api/todos/{c['id']}/reorder", json={"new_order": 3}, headers=headers)
        res = client.get(f"/api/lists/{list_id}/todos", headers=headers)
        assert [t["title"] for t in res.json()["data"]["items"]] == ["A", "B", "C"]
        assert [t["sort_order"] for t in res.json()["data"]["items"]] == [1, 2, 3]

    def test_reorder_requires_positive_position(self, client, headers, add_todo):
        created = add_todo(title="A")
        res = client.put(f"/api/todos/{created['id']}/reorder", json={"new_order": 0}, headers=headers)
        assert res.status_code == 422


class TestListPaginationFilteringSorting:
    def test_pagination_and_total(self, client, headers, add_todo):
        for i in range(5):
            add_todo(title=f"T{i}")
        res = client.get("/api/todos", params={"limit": 2, "offset": 1}, headers=headers)
        assert res.status_code == 200
        page = res.json()["data"]
        assert page["total"] == 5
        assert page["limit"] == 2
        assert page["offset"] == 1
        assert len(page["items"]) == 2
        assert res.json()["meta"]["sort"] == "-created_at"

    def test_filter_completed_and_priority(self, client, headers, add_todo):
        add_todo(title="A", completed=True, priority="high")
        add_todo(title="B", completed=False, priority="high")
        add_todo(title="C", completed=False, priority="low")

        res = client.get("/api/todos", params={"completed": "true"}, headers=headers)
        assert [t["title"] for t in res.json()["data"]["items"]] == ["A"]

        res = client.get("/api/todos", params={"completed": "false", "priority": "high"}, headers=headers)
        assert [t["title"] for t in res.json()["data"]["items"]] == ["B"]

    def test_search_covers_title_description_and_tags(self, client, headers, add_todo):
        add_todo(title="Write report", description="quarterly")
        add_todo(title="Call Bob", description="about the REPORT")
        add_todo(title="Gym", tags=["reporting"])
        add_todo(title="Groceries")

        res = client.get("/api/todos", params={"q": "report"}, headers=headers)
        titles = {t["title"] for t in res.json()["data"]["items"]}
        assert titles == {"Write report", "Call Bob", "Gym"}

    def test_tag_filter_is_exact(self, client, headers, add_todo):
        add_todo(title="A", tags=["work", "urgent"])
        add_todo(title="B", tags=["workshop"])
        res = client.get("/api/todos", params={"tag": "work"}, headers=headers)
        assert [t["title"] for t in res.json()["data"]["items"]] == ["A"]

    def test_tags_are_deduplicated(self, add_todo):
        data = add_todo(title="Tags", tags=["a", " a ", "b", ""])
        assert data["tags"] == ["a", "b"]

    def test_sort_by_title_and_order_override(self, client, headers, add_todo):
        for title in ("b", "A", "c"):
            add_todo(title=title)

        res = client.get("/api/todos", params={"sort": "title"}, headers=headers)
        assert [t["title"] for t in res.json()["data"]["items"]] == ["A", "b", "c"]

        res = client.get("/api/todos", params={"sort": "title", "order": "desc"}, headers=headers)
        assert [t["title"] for t in res.json()["data"]["items"]] == ["c", "b", "A"]

    def test_sort_by_priority(self, client, headers, add_todo):
        add_todo(title="low", priority="low")
        add_todo(title="high", priority="high")
        add_todo(title="medium", priority="medium")
        res = client.get("/api/todos", params={"sort": "-priority"}, headers=headers)
        assert [t["title"] for t in res.json()["data"]["items"]] == ["high", "medium", "low"]

    def test_due_date_sort_puts_missing_last(self, client, headers, add_todo):
        add_todo(title="none")
        add_todo(title="late", due_date="2099-06-01")
        add_todo(title="soon", due_date="2099-01-01")
        res = client.get("/api/todos", params={"sort": "due_date"}, headers=headers)
        assert [t["title"] for t in res.json()["data"]["items"]] == ["soon", "late", "none"]
        res = client.get("/api/todos", params={"sort": "-due_date"}, headers=headers)
        assert [t["title"] for t in res.json()["data"]["items"]] == ["late", "soon", "none"]

    def test_due_filters(self, client, headers, add_todo):
        add_todo(title="past", due_date="2020-01-01")
        add_todo(title="past done", due_date="2020-01-01", completed=True)
        add_todo(title="future", due_date="2099-01-01")

        res = client.get("/api/todos", params={"due": "overdue"}, headers=headers)
        items = res.json()["data"]["items"]
        assert [t["title"] for t in items] == ["past"]
        assert items[0]["is_overdue"] is True

        res = client.get(
            "/api/todos",
            params={"due_from": "2098-01-01", "due_to": "2099-12-31", "sort": "title"},
            headers=headers,
        )
        assert [t["title"] for t in res.json()["data"]["items"]] == ["future"]

    def test_filter_by_list(self, client, headers, add_todo):
        other = client.post("/api/lists", json={"name": "Other"}, headers=headers).json()["data"]["id"]
        add_todo(title="inbox item")
        client.post("/api/todos", json=create_todo_payload(other, title="other item"), headers=headers)
        res = client.get("/api/todos", params={"list_id": other}, headers=headers)
        assert [t["title"] for t in res.json()["data"]["items"]] == ["other item"]

    def test_invalid_order_is_400(self, client, headers):
        res = client.get("/api/todos", params={"sort": "title", "order": "sideways"}, headers=headers)
        assert res.status_code == 400
        assert res.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_unknown_sort_field_falls_back(self, client, headers, add_todo):
        add_todo(title="x")
        res = client.get("/api/todos", params={"sort": "nonsense"}, headers=headers)
        assert res.status_code == 200
        assert res.json()["meta"]["sort"] == "-created_at"


class TestDashboardAndStats:
    def test_dashboard_status_and_sort(self, client, headers, add_todo):
        add_todo(title="b", priority="low")
        add_todo(title="a", priority="high", completed=True)
        add_todo(title="c", priority="medium")

        res = client.get("/api/todos/dashboard", params={"sort_by": "priority"}, headers=headers)
        assert res.status_code == 200
        assert [t["title"] for t in res.json()["data"]] == ["a", "c", "b"]
        assert res.json()["meta"]["count"] == 3

        res = client.get("/api/todos/dashboard", params={"status": "pending", "sort_by": "title"}, headers=headers)
        assert [t["title"] for t in res.json()["data"]] == ["b", "c"]
        assert res.json()["meta"]["status"] == "pending"

        res = client.get("/api/todos/dashboard", params={"status": "completed"}, headers=headers)
        assert [t["title"] for t in res.json()["data"]] == ["a"]

    def test_dashboard_rejects_unknown_status(self, client, headers):
        res = client.get("/api/todos/dashboard", params={"status": "someday"}, headers=headers)
        assert res.status_code == 422

    def test_stats(self, client, headers, add_todo):
        add_todo(title="a", priority="high", completed=True)
        add_todo(title="b", priority="high", due_date="2020-01-01")
        add_todo(title="c", priority="low")

        res = client.get("/api/todos/stats", headers=headers)
        assert res.status_code == 200
        stats = res.json()["data"]
        assert stats["total"] == 3
        assert stats["completed"] == 1
        assert stats["pending"] == 2
        assert stats["high_priority"] == 2
        assert stats["low_priority"] == 1
        assert stats["medium_priority"] == 0
        assert stats["overdue"] == 1
        assert stats["recently_completed"] == 1
        assert stats["completion_percentage"] == 33


class TestOwnership:
    def test_other_users_cannot_see_todos(self, client, headers, add_todo, register_user):
        created = add_todo(title="private")
        other = bearer(register_user(username="jane_doe", first_name="Jane")["token"])

        assert client.get(f"/api/todos/{created['id']}", headers=other).status_code == 404
        assert client.delete(f"/api/todos/{created['id']}", headers=other).status_code == 404
        res = client.get("/api/todos", headers=other)
        assert res.json()["data"]["total"] == 0

    def test_requires_token(self, client):
        res = client.get("/api/todos")
        assert res.status_code == 401
        assert res.json()["message"] == "No token provided"


class TestValidationErrors:
    def test_create_empty_title(self, client, headers, list_id):
        res = client.post("/api/todos", json={"title": "   ", "list_id": list_id}, headers=headers)
        assert res.status_code == 422
        body = res.json()
        assert body["success"] is False
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert isinstance(body["error"]["details"], list)

    def test_create_invalid_due_date(self, client, headers, list_id):
        res = client.post(
            "/api/todos",
            json={"title": "x", "list_id": list_id, "due_date": "not-a-date"},
            headers=headers,
        )
        assert res.status_code == 422

    def test_invalid_priority(self, client, headers, list_id):
        res = client.post("/api/todos", json={"title": "x", "list_id": list_id, "priority": "urgent"}, headers=headers)
        assert res.status_code == 422

    def test_too_many_tags(self, client, headers, list_id):
        tags = [f"t{i}" for i in range(11)]
        res = client.post("/api/todos", json={"title": "x", "list_id": list_id, "tags": tags}, headers=headers)
        assert res.status_code == 422

    def test_bad_due_range_is_400(self, client, headers):
        res = client.get("/api/todos", params={"due_from": "yesterday"}, headers=headers)
        assert res.status_code == 400
