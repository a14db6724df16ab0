import gc
import threading
from unittest.mock import MagicMock

import pytest

from conftest import insert_profile, make_user
from infrastructure.client_storage import MemoryStorage
from use_cases.errors import AuthError, RegistrationError, ValidationError
from use_cases.session_context import TOKEN_KEY, USER_KEY, SessionContext
from use_cases.session_models import ProfileUpdate, RegistrationRequest, SessionState


def _registration(**overrides):
    values = dict(
        email="maria@example.com",
        password="secret123",
        confirm_password="secret123",
        first_name="Maria",
        last_name="Santos",
        contact_number="0917 123 4567",
        address="45 Mabini Street, San Roque",
    )
    values.update(overrides)
    return RegistrationRequest(**values)


def _signed_up(identity_store, record_store, email="juan@example.com", password="secret123", **profile):
    session = identity_store.sign_up(email, password)
    user = make_user(session.user_id, email=email, **profile)
    insert_profile(record_store, user)
    return session


def test_starts_unresolved(context):
    assert context.snapshot().state == SessionState.UNRESOLVED
    assert context.is_loading is True
    assert context.current_user is None


def test_login_publishes_user_and_persists(context, identity_store, record_store, storage):
    _signed_up(identity_store, record_store)

    user = context.login("juan@example.com", "secret123")

    assert user.email == "juan@example.com"
    assert context.is_loading is False
    assert context.current_user == user
    assert storage.get(USER_KEY)["email"] == "juan@example.com"
    assert storage.get(TOKEN_KEY)


def test_login_bad_password_keeps_state(context, identity_store, record_store, storage):
    _signed_up(identity_store, record_store)

    with pytest.raises(AuthError):
        context.login("juan@example.com", "wrong")

    assert context.current_user is None
    assert storage.get(TOKEN_KEY) is None


def test_login_without_profile_fails(context, identity_store):
    identity_store.sign_up("ghost@example.com", "secret123")
    with pytest.raises(AuthError, match="profile not found"):
        context.login("ghost@example.com", "secret123")


def test_inactive_user_cannot_login(context, identity_store, record_store):
    _signed_up(identity_store, record_store, is_active=False)
    with pytest.raises(AuthError, match="deactivated"):
        context.login("juan@example.com", "secret123")
    assert context.current_user is None


def test_restore_recovers_stored_session(identity_store, record_store):
    storage = MemoryStorage()
    first = SessionContext(identity_store, record_store, storage)
    _signed_up(identity_store, record_store)
    first.login("juan@example.com", "secret123")
    first.close()

    second = SessionContext(identity_store, record_store, storage)
    snapshot = second.restore()

    assert snapshot.state == SessionState.AUTHENTICATED
    assert snapshot.user.email == "juan@example.com"
    second.close()


def test_restore_without_token_is_anonymous(context):
    snapshot = context.restore()
    assert snapshot.state == SessionState.ANONYMOUS
    assert context.is_loading is False


def test_restore_runs_once(record_store, storage):
    identity_store = MagicMock()
    storage.set(TOKEN_KEY, "token")
    identity_store.get_session.return_value = None
    ctx = SessionContext(identity_store, record_store, storage)

    ctx.restore()
    ctx.restore()

    identity_store.get_session.assert_called_once_with("token")


def test_restore_failure_degrades_to_anonymous(record_store, storage):
    identity_store = MagicMock()
    identity_store.get_session.side_effect = AuthError("Authentication service unavailable")
    storage.set(TOKEN_KEY, "token")
    storage.set(USER_KEY, {"id": "u1"})
    ctx = SessionContext(identity_store, record_store, storage)

    snapshot = ctx.restore()

    assert snapshot.state == SessionState.ANONYMOUS
    assert storage.get(TOKEN_KEY) is None
    assert storage.get(USER_KEY) is None


def test_logout_clears_even_when_remote_sign_out_fails(context, identity_store, record_store, storage):
    _signed_up(identity_store, record_store)
    context.login("juan@example.com", "secret123")
    context.identity_store = MagicMock()
    context.identity_store.sign_out.side_effect = AuthError("Sign out failed")

    context.logout()

    assert context.current_user is None
    assert context.snapshot().state == SessionState.ANONYMOUS
    assert storage.get(TOKEN_KEY) is None


def test_register_creates_resident_profile(context, record_store):
    user = context.register(_registration())

    assert user.role == "resident"
    assert user.is_active is True
    assert context.current_user == user
    row = record_store.select("users", {"id": user.id})[0]
    assert row["role"] == "resident"
    assert row["contact_number"] == "0917 123 4567"


def test_register_reports_field_errors(context):
    with pytest.raises(RegistrationError) as excinfo:
        context.register(_registration(email="not-an-email", contact_number="12345", confirm_password="other"))

    assert set(excinfo.value.errors) == {"email", "contact_number", "confirm_password"}
    assert context.current_user is None


def test_register_duplicate_email(context):
    context.register(_registration())
    context.logout()
    with pytest.raises(RegistrationError):
        context.register(_registration())


def test_update_user_without_session_is_noop(context, record_store):
    assert context.update_user(ProfileUpdate(first_name="Pedro")) is None


def test_update_user_persists_and_publishes(context, identity_store, record_store):
    _signed_up(identity_store, record_store)
    context.login("juan@example.com", "secret123")
    published = []
    context.add_listener(published.append)

    updated = context.update_user(ProfileUpdate(first_name="  Pedro ", address="99 Luna Street, Malate"))

    assert updated.first_name == "Pedro"
    assert context.current_user.first_name == "Pedro"
    assert record_store.select("users", {"id": updated.id})[0]["address"] == "99 Luna Street, Malate"
    assert len(published) == 1


def test_update_user_rejects_invalid_fields(context, identity_store, record_store):
    _signed_up(identity_store, record_store)
    context.login("juan@example.com", "secret123")

    with pytest.raises(ValidationError) as excinfo:
        context.update_user(ProfileUpdate(contact_number="555-0100"))

    assert "contact_number" in excinfo.value.errors
    assert context.current_user.contact_number == "09171234567"


def test_external_profile_change_refreshes_current_user(context, identity_store, record_store):
    session = _signed_up(identity_store, record_store)
    context.login("juan@example.com", "secret123")

    record_store.update("users", {"id": session.user_id}, {"role": "admin"})

    assert context.current_user.role == "admin"


def test_profile_change_for_someone_else_is_ignored(context, identity_store, record_store):
    _signed_up(identity_store, record_store)
    context.login("juan@example.com", "secret123")
    other = make_user("someone-else")
    insert_profile(record_store, other)

    record_store.update("users", {"id": other.id}, {"first_name": "Other"})

    assert context.current_user.first_name == "Juan"


def test_listener_removal(context):
    seen = []
    remove = context.add_listener(seen.append)
    context.restore()
    remove()
    context.logout()

    assert len(seen) == 1


def test_close_stops_profile_watch(context, identity_store, record_store, change_feed):
    _signed_up(identity_store, record_store)
    context.login("juan@example.com", "secret123")
    assert change_feed.subscriber_count("users") == 1

    context.close()

    assert change_feed.subscriber_count("users") == 0


def test_login_publishes_normalized_email(context, identity_store, record_store):
    _signed_up(identity_store, record_store)

    user = context.login("  Juan@Example.com ", "secret123")

    # Emails compare case-insensitively; the published address is the stored lowercase form
    assert user.email == "juan@example.com"
    assert context.current_user.email.lower() == "Juan@Example.com".lower()


def test_concurrent_profile_updates_on_two_sessions(identity_store, record_store):
    contexts = []
    for email in ("juan@example.com", "maria@example.com"):
        _signed_up(identity_store, record_store, email=email)
        ctx = SessionContext(identity_store, record_store, MemoryStorage())
        ctx.login(email, "secret123")
        contexts.append(ctx)
    errors = []

    def edit(ctx, name):
        try:
            for i in range(50):
                ctx.update_user(ProfileUpdate(first_name=f"{name}{i}"))
        except Exception as e:
            errors.append(e)

    threads = [
        threading.Thread(target=edit, args=(contexts[0], "Juan"), daemon=True),
        threading.Thread(target=edit, args=(contexts[1], "Maria"), daemon=True),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(30)

    assert [t.is_alive() for t in threads] == [False, False]
    assert errors == []
    assert contexts[0].current_user.first_name == "Juan49"
    assert contexts[1].current_user.first_name == "Maria49"
    for ctx in contexts:
        ctx.close()


def test_discarded_context_stops_receiving_profile_changes(identity_store, record_store, change_feed):
    session = _signed_up(identity_store, record_store)
    ctx = SessionContext(identity_store, record_store, MemoryStorage())
    ctx.login("juan@example.com", "secret123")
    seen = []
    ctx.add_listener(seen.append)
    assert change_feed.subscriber_count("users") == 1

    del ctx
    gc.collect()
    record_store.update("users", {"id": session.user_id}, {"first_name": "Pedro"})

    assert change_feed.subscriber_count("users") == 0
    assert seen == []
