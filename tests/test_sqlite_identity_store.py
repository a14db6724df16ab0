from datetime import datetime, timedelta, timezone

import pytest

from infrastructure.identity.sqlite_identity_store import LOCKOUT_SECONDS, MAX_FAILED_ATTEMPTS, SQLiteIdentityStore
from use_cases.errors import AuthError, RegistrationError


class FakeClock:
    def __init__(self):
        self.now = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock):
    s = SQLiteIdentityStore(str(tmp_path / "identity.db"), session_ttl_days=1, clock=clock)
    s.init_db()
    return s


def test_sign_up_opens_a_session(store):
    session = store.sign_up("Juan@Example.com", "secret123", {"first_name": "Juan"})

    assert session.access_token
    assert session.email == "juan@example.com"
    assert store.get_session(session.access_token).user_id == session.user_id


def test_duplicate_sign_up_is_rejected(store):
    store.sign_up("juan@example.com", "secret123")
    with pytest.raises(RegistrationError) as excinfo:
        store.sign_up("JUAN@example.com", "another1")
    assert "email" in excinfo.value.errors


def test_sign_in_with_valid_credentials(store):
    created = store.sign_up("juan@example.com", "secret123")
    session = store.sign_in(" Juan@example.com ", "secret123")

    assert session.user_id == created.user_id
    assert session.access_token != created.access_token


def test_invalid_credentials(store):
    store.sign_up("juan@example.com", "secret123")
    with pytest.raises(AuthError) as excinfo:
        store.sign_in("juan@example.com", "wrong")
    assert "Invalid login credentials" in str(excinfo.value)

    with pytest.raises(AuthError):
        store.sign_in("nobody@example.com", "secret123")


def test_brute_force_lockout(store, clock):
    store.sign_up("juan@example.com", "secret123")

    for _ in range(MAX_FAILED_ATTEMPTS):
        with pytest.raises(AuthError) as excinfo:
            store.sign_in("juan@example.com", "wrong")
        assert "Invalid login credentials" in str(excinfo.value)

    # Even the right password is refused while locked out
    with pytest.raises(AuthError) as excinfo:
        store.sign_in("juan@example.com", "secret123")
    assert "Too many login attempts" in str(excinfo.value)

    clock.advance(seconds=LOCKOUT_SECONDS + 1)
    assert store.sign_in("juan@example.com", "secret123").access_token


def test_session_expires(store, clock):
    session = store.sign_up("juan@example.com", "secret123")
    clock.advance(days=2)

    assert store.get_session(session.access_token) is None
    # Expired token is purged, not merely ignored
    clock.now -= timedelta(days=2)
    assert store.get_session(session.access_token) is None


def test_sign_out_revokes_token(store):
    session = store.sign_up("juan@example.com", "secret123")
    store.sign_out(session.access_token)

    assert store.get_session(session.access_token) is None
    store.sign_out(None)


def test_create_user_opens_no_session(store):
    identity = store.create_user("admin@example.com", "adminpass", {"role": "admin"})

    assert identity["email"] == "admin@example.com"
    assert store.get_session("") is None
    assert store.sign_in("admin@example.com", "adminpass").user_id == identity["id"]
