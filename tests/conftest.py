from datetime import datetime, timezone

import pytest

from infrastructure.change_feed import ChangeFeed
from infrastructure.client_storage import MemoryStorage
from infrastructure.identity.sqlite_identity_store import SQLiteIdentityStore
from infrastructure.repositories.sqlite_record_store import SQLiteRecordStore
from services import document_catalog
from use_cases.application_lifecycle import ApplicationLifecycleEngine
from use_cases.domain_models import Attachment, format_timestamp
from use_cases.session_context import SessionContext
from use_cases.session_models import User

PDF = Attachment(file_name="valid_id.pdf", file_type="application/pdf", file_size=120_000)


def make_user(user_id="resident-1", role="resident", is_active=True, email=None):
    return User(
        id=user_id,
        email=email or f"{user_id}@example.com",
        first_name="Juan",
        last_name="Dela Cruz",
        contact_number="09171234567",
        address="123 Rizal Street, Poblacion",
        role=role,
        is_active=is_active,
    )


def insert_profile(record_store, user: User):
    now = format_timestamp(datetime.now(timezone.utc))
    row = user.to_dict()
    row["created_at"] = now
    row["updated_at"] = now
    return record_store.insert("users", row)


@pytest.fixture
def change_feed():
    return ChangeFeed()


@pytest.fixture
def record_store(tmp_path, change_feed):
    store = SQLiteRecordStore(str(tmp_path / "portal.db"), change_feed=change_feed)
    store.init_db()
    return store


@pytest.fixture
def identity_store(tmp_path):
    store = SQLiteIdentityStore(str(tmp_path / "identity.db"))
    store.init_db()
    return store


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def context(identity_store, record_store, storage):
    ctx = SessionContext(identity_store, record_store, storage)
    yield ctx
    ctx.close()


@pytest.fixture
def engine(record_store):
    document_catalog.seed_document_types(record_store)
    return ApplicationLifecycleEngine(record_store)


@pytest.fixture
def clearance(engine):
    return next(dt for dt in engine.list_document_types() if dt.name == "Barangay Clearance")


@pytest.fixture
def resident(record_store):
    user = make_user("resident-1")
    insert_profile(record_store, user)
    return user


@pytest.fixture
def other_resident(record_store):
    user = make_user("resident-2")
    insert_profile(record_store, user)
    return user


@pytest.fixture
def admin(record_store):
    user = make_user("admin-1", role="admin")
    insert_profile(record_store, user)
    return user
