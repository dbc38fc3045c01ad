from datetime import datetime

import pytest

from app import app as flask_app
import services.task_service as task_service
import views.tasks as tasks_view


class RecordingCursor:
    def __init__(self, rows=None):
        self.rows = list(rows or [])
        self.executed = []
        self.closed = False

    def execute(self, query, params=None):
        self.executed.append((query, params))

    def fetchall(self):
        return list(self.rows)

    def close(self):
        self.closed = True


@pytest.fixture
def client():
    flask_app.config["TESTING"] = True
    return flask_app.test_client()


@pytest.fixture
def captured_search(monkeypatch):
    captured = {}

    def fake_search_tasks(_conn, filters, *, user):
        captured["filters"] = filters
        captured["user"] = user
        return {"tasks": [], "next_cursor": None, "has_next_page": False}

    monkeypatch.setattr(tasks_view, "get_db", lambda: object())
    monkeypatch.setattr(tasks_view, "search_tasks", fake_search_tasks)
    return captured


ADMIN_HEADERS = {"X-User-Id": "admin_1", "X-User-Role": "admin"}


def test_search_parses_every_filter(client, captured_search):
    response = client.get(
        "/api/tasks/search"
        "?q=Dương&status=ready,completed&status=READY,COMPLETED"
        "&assignee_ids=w1&assignee_ids=w2,w1"
        "&assigned_only=true&customer_id=cus_1"
        "&scheduled_from=2025-01-01&scheduled_to=2025-01-31T23:59:59"
        "&created_from=2025-01-01T00:00:00Z"
        "&sort_by=scheduled_at&sort_order=ASC&take=5",
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 200
    assert response.get_json() == {
        "success": True,
        "tasks": [],
        "next_cursor": None,
        "has_next_page": False,
    }
    filters = captured_search["filters"]
    assert filters.search == "Dương"
    assert filters.statuses == ["READY", "COMPLETED"]
    assert filters.assignee_ids == ["w1", "w2"]
    assert filters.assigned_only is True
    assert filters.customer_id == "cus_1"
    assert filters.date_ranges == {
        "scheduled": (datetime(2025, 1, 1), datetime(2025, 1, 31, 23, 59, 59)),
        "created": (datetime(2025, 1, 1, 7, 0), None),
    }
    assert (filters.sort_by, filters.sort_order) == ("scheduled_at", "asc")
    assert (filters.offset, filters.take) == (0, 5)
    assert captured_search["user"] == {"id": "admin_1", "role": "admin"}


def test_search_defaults(client, captured_search):
    response = client.get("/api/tasks/search", headers={"X-User-Id": "w1"})

    assert response.status_code == 200
    filters = captured_search["filters"]
    assert filters.search == ""
    assert filters.statuses == []
    assert filters.date_ranges == {}
    assert (filters.sort_by, filters.sort_order, filters.take) == ("created_at", "desc", 20)
    assert captured_search["user"] == {"id": "w1", "role": "worker"}


def test_search_clamps_take(client, captured_search):
    client.get("/api/tasks/search?take=1000", headers=ADMIN_HEADERS)
    assert captured_search["filters"].take == 100

    client.get("/api/tasks/search?take=0", headers=ADMIN_HEADERS)
    assert captured_search["filters"].take == 1


def test_search_cursor_is_decoded(client, captured_search):
    cursor = task_service.encode_cursor(40)

    client.get(f"/api/tasks/search?cursor={cursor}", headers=ADMIN_HEADERS)

    assert captured_search["filters"].offset == 40


@pytest.mark.parametrize(
    "query,code",
    [
        ("cursor=garbage!!", "INVALID_CURSOR"),
        ("take=abc", "INVALID_REQUEST"),
        ("status=DONE", "INVALID_REQUEST"),
        ("created_from=yesterday", "INVALID_REQUEST"),
    ],
)
def test_search_rejects_bad_input(client, captured_search, query, code):
    response = client.get(f"/api/tasks/search?{query}", headers=ADMIN_HEADERS)

    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == code
    assert captured_search == {}


def test_search_end_to_end_sql(client, monkeypatch):
    cursor = RecordingCursor()
    monkeypatch.setattr(tasks_view, "get_db", lambda: object())
    monkeypatch.setattr(task_service, "get_cursor", lambda _conn: cursor)

    response = client.get(
        "/api/tasks/search",
        query_string={"q": "  MUA   Quạt ", "sort_by": "title"},
        headers=ADMIN_HEADERS,
    )
    assert response.status_code == 400
    assert cursor.executed == []

    response = client.get("/api/tasks/search", query_string={"q": "  MUA   Quạt "}, headers=ADMIN_HEADERS)
    assert response.status_code == 200
    sql, params = cursor.executed[0]
    assert "t.searchable_text LIKE %s" in sql
    assert params[0] == "%mua quat%"


def test_worker_without_identity_is_rejected(client, monkeypatch):
    monkeypatch.setattr(tasks_view, "get_db", lambda: object())
    monkeypatch.setattr(task_service, "get_cursor", lambda _conn: RecordingCursor())

    response = client.get("/api/tasks/search?q=quat")

    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "INVALID_REQUEST"


def test_search_database_failure_is_internal_error(client, monkeypatch):
    def boom(*_args, **_kwargs):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(tasks_view, "get_db", lambda: object())
    monkeypatch.setattr(tasks_view, "search_tasks", boom)

    response = client.get("/api/tasks/search", headers=ADMIN_HEADERS)

    assert response.status_code == 500
    assert response.get_json() == {
        "success": False,
        "error": {"code": "INTERNAL", "message": "Internal Server Error"},
    }


def test_create_task_requires_title(client, monkeypatch):
    monkeypatch.setattr(tasks_view, "get_db", lambda: object())

    response = client.post("/api/tasks", json={"title": ""})

    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "INVALID_REQUEST"


@pytest.mark.parametrize("body", [{"title": 5}, ["title"], {"title": "Task", "geo_location": "Q1"}])
def test_create_task_rejects_malformed_body(client, monkeypatch, body):
    monkeypatch.setattr(tasks_view, "get_db", lambda: object())

    response = client.post("/api/tasks", json=body)

    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "INVALID_REQUEST"


def test_update_task_rejects_list_body(client, monkeypatch):
    monkeypatch.setattr(tasks_view, "get_db", lambda: object())

    response = client.patch("/api/tasks/1", json=["scheduled_at"])

    assert response.status_code == 400
    assert "JSON object" in response.get_json()["error"]["message"]


def test_create_task_parses_scheduled_at(client, monkeypatch):
    captured = {}

    def fake_create(_conn, data):
        captured.update(data)
        return {"id": 1, "title": data["title"]}

    monkeypatch.setattr(tasks_view, "get_db", lambda: object())
    monkeypatch.setattr(tasks_view, "create_task", fake_create)

    response = client.post(
        "/api/tasks", json={"title": "Mua quạt", "scheduled_at": "2025-03-01T02:00:00Z"}
    )

    assert response.status_code == 201
    assert response.get_json() == {"success": True, "task": {"id": 1, "title": "Mua quạt"}}
    assert captured["scheduled_at"] == datetime(2025, 3, 1, 9, 0)


def test_create_task_rejects_bad_scheduled_at(client, monkeypatch):
    monkeypatch.setattr(tasks_view, "get_db", lambda: object())

    response = client.post("/api/tasks", json={"title": "x", "scheduled_at": "soon"})

    assert response.status_code == 400


def test_update_missing_task_is_404(client, monkeypatch):
    monkeypatch.setattr(tasks_view, "get_db", lambda: object())
    monkeypatch.setattr(tasks_view, "update_task", lambda _conn, _id, _data: {"error": "TASK_NOT_FOUND"})

    response = client.patch("/api/tasks/99", json={"title": "x"})

    assert response.status_code == 404
    assert response.get_json()["error"]["code"] == "TASK_NOT_FOUND"


def test_update_task_returns_task(client, monkeypatch):
    monkeypatch.setattr(tasks_view, "get_db", lambda: object())
    monkeypatch.setattr(
        tasks_view, "update_task", lambda _conn, task_id, _data: {"task": {"id": task_id}}
    )

    response = client.patch("/api/tasks/7", json={"status": "READY"})

    assert response.status_code == 200
    assert response.get_json() == {"success": True, "task": {"id": 7}}


def test_delete_task(client, monkeypatch):
    monkeypatch.setattr(tasks_view, "get_db", lambda: object())
    monkeypatch.setattr(tasks_view, "soft_delete_task", lambda _conn, task_id: {"task_id": task_id})

    response = client.delete("/api/tasks/3")

    assert response.status_code == 200
    assert response.get_json() == {"success": True, "task_id": 3}
