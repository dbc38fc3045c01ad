import pytest

import services.customer_service as customer_service


class FakeCursor:
    def __init__(self, fetchone_values=None, fetchall_values=None):
        self.fetchone_values = list(fetchone_values or [])
        self.fetchall_values = list(fetchall_values or [])
        self.executed = []
        self.closed = False

    def execute(self, query, params=None):
        self.executed.append((query, params))

    def fetchone(self):
        if not self.fetchone_values:
            return None
        return self.fetchone_values.pop(0)

    def fetchall(self):
        if not self.fetchall_values:
            return []
        return self.fetchall_values.pop(0)

    def close(self):
        self.closed = True


class FakeConn:
    def __init__(self):
        self.commit_calls = 0
        self.rollback_calls = 0

    def commit(self):
        self.commit_calls += 1

    def rollback(self):
        self.rollback_calls += 1


def test_find_or_create_returns_none_without_fields():
    cursor = FakeCursor()

    assert customer_service.find_or_create_customer(cursor, name="  ", phone=None) is None
    assert cursor.executed == []


def test_find_or_create_reuses_existing_customer(monkeypatch):
    cursor = FakeCursor(fetchone_values=[{"id": "cus_old"}])
    monkeypatch.setattr(
        customer_service,
        "refresh_customer_searchable_text",
        lambda *_args: pytest.fail("existing customer must not be re-indexed"),
    )

    assert customer_service.find_or_create_customer(cursor, name=" Dương ", phone="0912") == "cus_old"
    assert cursor.executed[0][1] == ("Dương", "0912")


def test_find_or_create_inserts_and_indexes(monkeypatch):
    cursor = FakeCursor(fetchone_values=[None])
    refreshed = []
    monkeypatch.setattr(customer_service, "new_customer_id", lambda: "cus_new")
    monkeypatch.setattr(
        customer_service,
        "refresh_customer_searchable_text",
        lambda _cursor, customer_id: refreshed.append(customer_id),
    )

    assert customer_service.find_or_create_customer(cursor, name="Dương Đỗ", phone=None) == "cus_new"
    insert_sql, insert_params = cursor.executed[1]
    assert "INSERT INTO customers" in insert_sql
    assert insert_params == ("cus_new", "Dương Đỗ", None)
    assert refreshed == ["cus_new"]


def test_update_customer_rewrites_dependents_in_one_commit(monkeypatch):
    conn = FakeConn()
    cursor = FakeCursor(
        fetchone_values=[
            {"id": "cus_1", "name": "Dương Đỗ", "phone": "0912"},
            {"id": "cus_1", "name": "Nguyễn Mới", "phone": "0912"},
        ]
    )
    calls = []
    monkeypatch.setattr(customer_service, "get_cursor", lambda _conn: cursor)
    monkeypatch.setattr(
        customer_service,
        "refresh_customer_searchable_text",
        lambda _cursor, customer_id: calls.append(("refresh", customer_id)),
    )

    def fake_reindex(_cursor, customer_id):
        calls.append(("reindex", customer_id, conn.commit_calls))
        return 3

    monkeypatch.setattr(customer_service, "reindex_customer_dependents", fake_reindex)

    result = customer_service.update_customer(
        conn,
        customer_id="cus_1",
        changes={"name": " Nguyễn Mới ", "phone": "0912"},
    )

    assert result == {
        "customer": {"id": "cus_1", "name": "Nguyễn Mới", "phone": "0912"},
        "reindexed_tasks": 3,
    }
    update_sql, update_params = cursor.executed[1]
    assert update_sql.startswith("UPDATE customers SET name = %s, updated_at = NOW()")
    assert update_params == ("Nguyễn Mới", "cus_1")
    assert calls == [("refresh", "cus_1"), ("reindex", "cus_1", 0)]
    assert conn.commit_calls == 1
    assert cursor.closed is True


def test_update_customer_without_changes_skips_reindex(monkeypatch):
    conn = FakeConn()
    row = {"id": "cus_1", "name": "Dương Đỗ", "phone": None}
    cursor = FakeCursor(fetchone_values=[row, row])
    monkeypatch.setattr(customer_service, "get_cursor", lambda _conn: cursor)
    monkeypatch.setattr(
        customer_service,
        "reindex_customer_dependents",
        lambda *_args: pytest.fail("nothing changed"),
    )

    result = customer_service.update_customer(conn, customer_id="cus_1", changes={"name": "Dương Đỗ"})

    assert result["reindexed_tasks"] == 0
    assert len(cursor.executed) == 2


def test_update_customer_rolls_back_when_reindex_fails(monkeypatch):
    conn = FakeConn()
    cursor = FakeCursor(fetchone_values=[{"id": "cus_1", "name": "A", "phone": None}])
    monkeypatch.setattr(customer_service, "get_cursor", lambda _conn: cursor)
    monkeypatch.setattr(customer_service, "refresh_customer_searchable_text", lambda *_args: "b")

    def boom(*_args):
        raise RuntimeError("deadlock")

    monkeypatch.setattr(customer_service, "reindex_customer_dependents", boom)

    with pytest.raises(RuntimeError):
        customer_service.update_customer(conn, customer_id="cus_1", changes={"name": "B"})

    assert conn.commit_calls == 0
    assert conn.rollback_calls == 1


def test_update_missing_customer(monkeypatch):
    conn = FakeConn()
    cursor = FakeCursor(fetchone_values=[None])
    monkeypatch.setattr(customer_service, "get_cursor", lambda _conn: cursor)

    result = customer_service.update_customer(conn, customer_id="cus_x", changes={"name": "B"})

    assert result == {"error": "CUSTOMER_NOT_FOUND"}
    assert conn.rollback_calls == 1
    assert conn.commit_calls == 0


def test_update_customer_rejects_unknown_fields():
    with pytest.raises(ValueError):
        customer_service.update_customer(FakeConn(), customer_id="cus_1", changes={"searchable_text": "x"})


@pytest.mark.parametrize("changes", [[1], "Dương"])
def test_update_customer_rejects_non_object_changes(changes):
    with pytest.raises(ValueError):
        customer_service.update_customer(FakeConn(), customer_id="cus_1", changes=changes)


def test_find_or_create_rejects_structured_values():
    with pytest.raises(ValueError):
        customer_service.find_or_create_customer(FakeCursor(), name=["Dương"], phone=None)


def test_search_customers_normalizes_query(monkeypatch):
    cursor = FakeCursor(fetchall_values=[[{"id": "cus_1", "name": "Dương Đỗ", "phone": "0912"}]])
    monkeypatch.setattr(customer_service, "get_cursor", lambda _conn: cursor)

    result = customer_service.search_customers(object(), "  DƯƠNG ", limit=5)

    assert result == [{"id": "cus_1", "name": "Dương Đỗ", "phone": "0912"}]
    sql, params = cursor.executed[0]
    assert "searchable_text LIKE %s" in sql
    assert params == ("%duong%", "duong", 5)


def test_search_customers_blank_query_skips_database(monkeypatch):
    monkeypatch.setattr(customer_service, "get_cursor", lambda _conn: pytest.fail("no query expected"))

    assert customer_service.search_customers(object(), "   ", limit=5) == []
