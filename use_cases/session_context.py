"""
Session context: the single owner of "who is signed in" for one client.

Consumers receive the context by injection and read it through
``snapshot()``. Only the context writes the current user; every write
persists to durable storage and publishes under one lock.
"""

import logging
import threading
import weakref
from typing import Any, Callable, Dict, List, Optional

from use_cases import validation
from use_cases.domain_models import format_timestamp, utc_now
from use_cases.errors import AuthError, RegistrationError, StorageError
from use_cases.session_models import (
    IdentitySession,
    ProfileUpdate,
    RegistrationRequest,
    SessionSnapshot,
    SessionState,
    User,
)

log = logging.getLogger(__name__)

USER_KEY = "user"
TOKEN_KEY = "token"

SnapshotListener = Callable[[SessionSnapshot], None]


class SessionContext:
    def __init__(self, identity_store, record_store, storage, clock=None):
        self.identity_store = identity_store
        self.record_store = record_store
        self.storage = storage
        self._clock = clock or utc_now
        self._lock = threading.RLock()
        self._snapshot = SessionSnapshot()
        self._token: Optional[str] = None
        self._restored = False
        self._listeners: List[SnapshotListener] = []
        self._profile_subscription = None
        self._watched_user_id: Optional[str] = None
        self._write_lock = threading.Lock()
        self._writer_thread: Optional[int] = None

    # --- reads ---

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def current_user(self) -> Optional[User]:
        return self.snapshot().user

    @property
    def is_loading(self) -> bool:
        return self.snapshot().is_loading

    def add_listener(self, listener: SnapshotListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def remove():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    # --- internal publish ---

    def _notify(self, snapshot: SessionSnapshot):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as e:
                log.error(f"Session listener failed: {e}", exc_info=True)

    def _publish(self, user: Optional[User], token: Optional[str]) -> SessionSnapshot:
        """Persist and publish as one unit. Caller must hold the lock."""
        if user is None:
            self.storage.remove(USER_KEY)
            self.storage.remove(TOKEN_KEY)
            snapshot = SessionSnapshot(state=SessionState.ANONYMOUS, user=None)
        else:
            self.storage.set(USER_KEY, user.to_dict())
            self.storage.set(TOKEN_KEY, token or "")
            snapshot = SessionSnapshot(state=SessionState.AUTHENTICATED, user=user)
        self._token = token if user is not None else None
        self._snapshot = snapshot
        self._restored = True
        self._watch_profile(user)
        return snapshot

    def _watch_profile(self, user: Optional[User]):
        watched_id = user.id if user is not None else None
        if self._profile_subscription is not None:
            if watched_id == self._watched_user_id:
                return
            self._profile_subscription.unsubscribe()
            self._profile_subscription = None
            self._watched_user_id = None
        if watched_id is None:
            return
        owner = weakref.ref(self)

        def on_change(event):
            context = owner()
            if context is not None:
                context._on_profile_change(event)

        self._profile_subscription = self.record_store.subscribe("users", "UPDATE", on_change)
        self._watched_user_id = watched_id

    def _on_profile_change(self, event):
        record = event.record or {}
        # Rows of other users never take this context's lock
        if str(record.get("id")) != self._watched_user_id:
            return
        if self._writer_thread == threading.get_ident():
            return
        with self._lock:
            current = self._snapshot.user
            # Stale event: signed out or switched user since the write
            if current is None or str(record.get("id")) != current.id:
                return
            identity = IdentitySession(
                access_token=self._token or "",
                user_id=current.id,
                email=current.email,
                created_at=format_timestamp(current.created_at),
            )
            refreshed = User.from_records(identity, record)
            if refreshed == current:
                return
            snapshot = self._publish(refreshed, self._token)
        self._notify(snapshot)

    def _fetch_profile(self, identity: IdentitySession) -> User:
        rows = self.record_store.select("users", {"id": identity.user_id}, limit=1)
        if not rows:
            raise AuthError("User profile not found")
        return User.from_records(identity, rows[0])

    # --- operations ---

    def restore(self) -> SessionSnapshot:
        """Recover a stored session once. Any failure resolves to anonymous."""
        with self._lock:
            if self._restored:
                return self._snapshot
            try:
                token = self.storage.get(TOKEN_KEY)
                identity = self.identity_store.get_session(token) if isinstance(token, str) and token else None
                user = self._fetch_profile(identity) if identity else None
                if user is not None and not user.is_active:
                    log.info(f"Stored session for inactive user {user.id} discarded")
                    user = None
                snapshot = self._publish(user, token if user else None)
            except Exception as e:
                log.warning(f"Session recovery failed, continuing anonymous: {e}")
                snapshot = self._publish(None, None)
        self._notify(snapshot)
        return snapshot

    def login(self, email: str, password: str) -> User:
        with self._lock:
            try:
                identity = self.identity_store.sign_in(email.strip(), password)
                user = self._fetch_profile(identity)
            except AuthError:
                raise
            except StorageError as e:
                raise AuthError(str(e)) from e
            if not user.is_active:
                self._sign_out_quietly(identity.access_token)
                raise AuthError("This account has been deactivated")
            snapshot = self._publish(user, identity.access_token)
        log.info(f"User {user.id} signed in")
        self._notify(snapshot)
        return user

    def register(self, request: RegistrationRequest) -> User:
        errors = validation.registration_errors(request)
        if errors:
            raise RegistrationError("Invalid registration details", errors)

        with self._lock:
            identity = self.identity_store.sign_up(
                request.email.strip(),
                request.password,
                {
                    "first_name": request.first_name.strip(),
                    "last_name": request.last_name.strip(),
                    "middle_name": (request.middle_name or "").strip(),
                    "role": "resident",
                },
            )
            now = format_timestamp(self._clock())
            profile = {
                "id": identity.user_id,
                "email": (identity.email or request.email).strip().lower(),
                "first_name": request.first_name.strip(),
                "last_name": request.last_name.strip(),
                "middle_name": (request.middle_name or "").strip() or None,
                "contact_number": request.contact_number.strip(),
                "address": request.address.strip(),
                "role": "resident",
                "is_active": True,
                "created_at": identity.created_at or now,
                "updated_at": now,
            }
            try:
                row = self.record_store.insert("users", profile)
            except StorageError as e:
                raise RegistrationError(f"Failed to create user profile: {e}") from e
            user = User.from_records(identity, row)
            snapshot = self._publish(user, identity.access_token)
        log.info(f"User {user.id} registered")
        self._notify(snapshot)
        return user

    def _sign_out_quietly(self, token: Optional[str]):
        try:
            self.identity_store.sign_out(token)
        except Exception as e:
            log.error(f"Remote sign out failed: {e}")

    def logout(self) -> None:
        with self._lock:
            self._sign_out_quietly(self._token)
            try:
                snapshot = self._publish(None, None)
            except Exception as e:
                log.error(f"Clearing stored session failed: {e}")
                self._token = None
                self._snapshot = snapshot = SessionSnapshot(state=SessionState.ANONYMOUS, user=None)
                self._restored = True
        self._notify(snapshot)

    def update_user(self, update: ProfileUpdate) -> Optional[User]:
        """
        Write the changed profile fields, then republish the merged user.
        The store write runs outside the state lock; concurrent updates on
        one context are serialized by the write lock.
        """
        user = self.current_user
        if user is None:
            return None
        changes = validation.validate_profile_update(update)
        if not changes:
            return user
        now = self._clock()
        payload: Dict[str, Any] = dict(changes)
        payload["updated_at"] = format_timestamp(now)

        with self._write_lock:
            self._writer_thread = threading.get_ident()
            try:
                rows = self.record_store.update("users", {"id": user.id}, payload)
            finally:
                self._writer_thread = None
            if not rows:
                raise StorageError("User profile not found")
            with self._lock:
                current = self._snapshot.user
                # Signed out or switched user while the row was written
                if current is None or current.id != user.id:
                    return None
                merged = current.merged(**changes, updated_at=now)
                snapshot = self._publish(merged, self._token)
        self._notify(snapshot)
        return merged

    def close(self) -> None:
        with self._lock:
            if self._profile_subscription is not None:
                self._profile_subscription.unsubscribe()
                self._profile_subscription = None
                self._watched_user_id = None
            self._listeners.clear()
