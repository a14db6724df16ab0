import sqlite3

import pytest

from conftest import PDF, insert_profile, make_user
from infrastructure.repositories.sqlite_record_store import SQLiteRecordStore
from infrastructure.repositories.sqlite_schema import get_schema_version
from use_cases.errors import StorageError


def _application_row(**overrides):
    row = {
        "user_id": "resident-1",
        "document_type_id": "dt-1",
        "purpose": "Employment requirement",
        "status": "pending",
        "submitted_at": "2025-01-10T08:00:00+00:00",
        "attachments": [PDF.to_dict()],
        "tracking_number": "BA12345678ABCD",
    }
    row.update(overrides)
    return row


def test_init_db_is_idempotent(tmp_path):
    db_path = str(tmp_path / "portal.db")
    store = SQLiteRecordStore(db_path)
    store.init_db()
    store.init_db()

    with sqlite3.connect(db_path) as conn:
        assert get_schema_version(conn, "records") == 1
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    assert {"users", "document_types", "applications", "schema_info"} <= tables


def test_insert_assigns_id_and_decodes_columns(record_store):
    created = record_store.insert("document_types", {
        "name": "Barangay ID",
        "description": "Official identification card",
        "requirements": ["Valid ID", "2x2 picture"],
        "fee": 100,
        "processing_time": "3-5 business days",
        "is_active": True,
    })

    assert created["id"]
    assert created["requirements"] == ["Valid ID", "2x2 picture"]
    assert created["is_active"] is True


def test_select_filters_orders_and_limits(record_store):
    record_store.insert("applications", _application_row(tracking_number="BA00000001AAAA", submitted_at="2025-01-01T00:00:00+00:00"))
    record_store.insert("applications", _application_row(tracking_number="BA00000002BBBB", submitted_at="2025-01-03T00:00:00+00:00"))
    record_store.insert("applications", _application_row(tracking_number="BA00000003CCCC", user_id="resident-2"))

    mine = record_store.select("applications", {"user_id": "resident-1"}, order_by="submitted_at", descending=True)
    assert [r["tracking_number"] for r in mine] == ["BA00000002BBBB", "BA00000001AAAA"]
    assert mine[0]["attachments"][0]["file_type"] == "application/pdf"

    assert len(record_store.select("applications", limit=1)) == 1
    assert len(record_store.select("applications", {"processed_at": None})) == 3


def test_unknown_column_is_rejected(record_store):
    with pytest.raises(StorageError):
        record_store.select("applications", {"owner": "x"})
    with pytest.raises(StorageError):
        record_store.select("payments")


def test_duplicate_tracking_number_is_a_conflict(record_store):
    record_store.insert("applications", _application_row())
    with pytest.raises(StorageError) as excinfo:
        record_store.insert("applications", _application_row())
    assert excinfo.value.conflict is True


def test_rejected_row_requires_reason(record_store):
    with pytest.raises(StorageError) as excinfo:
        record_store.insert("applications", _application_row(status="rejected"))
    assert excinfo.value.conflict is False


def test_update_is_conditional_on_filters(record_store):
    created = record_store.insert("applications", _application_row())

    updated = record_store.update(
        "applications", {"id": created["id"], "status": "pending"}, {"status": "approved"}
    )
    assert updated[0]["status"] == "approved"

    # Second writer still believes the row is pending
    assert record_store.update(
        "applications", {"id": created["id"], "status": "pending"}, {"status": "cancelled"}
    ) == []
    assert record_store.select("applications", {"id": created["id"]})[0]["status"] == "approved"


def test_update_without_filters_is_refused(record_store):
    with pytest.raises(StorageError):
        record_store.update("applications", {}, {"status": "approved"})


def test_writes_publish_change_events(record_store):
    events = []
    sub = record_store.subscribe("users", "*", events.append)
    user = make_user("u-events")
    insert_profile(record_store, user)
    record_store.update("users", {"id": user.id}, {"first_name": "Maria"})
    sub.unsubscribe()

    assert [e.event_type for e in events] == ["INSERT", "UPDATE"]
    assert events[1].record["first_name"] == "Maria"
    assert events[1].old_record["first_name"] == "Juan"


def test_profile_email_is_unique(record_store):
    insert_profile(record_store, make_user("u1", email="same@example.com"))
    with pytest.raises(StorageError) as excinfo:
        insert_profile(record_store, make_user("u2", email="same@example.com"))
    assert excinfo.value.conflict is True
