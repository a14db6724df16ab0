import logging
import os
import threading

import streamlit as st

from infrastructure.change_feed import ChangeFeed
from infrastructure.client_storage import JsonFileStorage, MemoryStorage
from infrastructure.identity.sqlite_identity_store import SESSION_TTL_DAYS, SQLiteIdentityStore
from infrastructure.identity.supabase_identity_store import SupabaseIdentityStore
from infrastructure.repositories.sqlite_record_store import SQLiteRecordStore
from infrastructure.repositories.supabase_record_store import SupabaseRecordStore
from use_cases.application_lifecycle import ApplicationLifecycleEngine
from use_cases.domain_models import format_timestamp, portal_timezone, utc_now
from use_cases.errors import RegistrationError, StorageError
from use_cases.session_context import SessionContext

log = logging.getLogger(__name__)

PORTAL_DB = "portal.db"
IDENTITY_DB = "identity.db"


def get_secret(key, default=None):
    """Streamlit secrets first, then the environment."""
    try:
        value = st.secrets.get(key)
    except FileNotFoundError:
        value = None
    if value is None:
        value = os.getenv(key)
    return value if value is not None else default


def get_backend() -> str:
    backend = str(get_secret("PORTAL_BACKEND", "sqlite")).strip().lower()
    if backend not in ("sqlite", "supabase"):
        raise ValueError(f"Unsupported PORTAL_BACKEND: {backend}")
    return backend


_lock = threading.Lock()
_change_feed = None
_record_store = None
_identity_store = None
_engine = None


def _supabase_settings():
    url = get_secret("SUPABASE_URL")
    anon_key = get_secret("SUPABASE_ANON_KEY")
    if not url or not anon_key:
        raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY are required for the supabase backend")
    return url, anon_key, get_secret("SUPABASE_SERVICE_KEY")


def get_change_feed() -> ChangeFeed:
    global _change_feed
    with _lock:
        if _change_feed is None:
            _change_feed = ChangeFeed()
        return _change_feed


def get_record_store():
    global _record_store
    feed = get_change_feed()
    with _lock:
        if get_backend() == "supabase":
            if not isinstance(_record_store, SupabaseRecordStore):
                url, anon_key, service_key = _supabase_settings()
                _record_store = SupabaseRecordStore(url, service_key or anon_key, change_feed=feed)
        else:
            db_path = get_secret("PORTAL_DB", PORTAL_DB)
            if not isinstance(_record_store, SQLiteRecordStore) or _record_store.db_path != db_path:
                _record_store = SQLiteRecordStore(db_path, change_feed=feed)
        return _record_store


def get_identity_store():
    global _identity_store
    with _lock:
        if get_backend() == "supabase":
            if not isinstance(_identity_store, SupabaseIdentityStore):
                url, anon_key, service_key = _supabase_settings()
                _identity_store = SupabaseIdentityStore(url, anon_key, service_key=service_key)
        else:
            db_path = get_secret("IDENTITY_DB", IDENTITY_DB)
            if not isinstance(_identity_store, SQLiteIdentityStore) or _identity_store.db_path != db_path:
                ttl_days = int(get_secret("SESSION_TTL_DAYS", SESSION_TTL_DAYS))
                _identity_store = SQLiteIdentityStore(db_path, session_ttl_days=ttl_days)
        return _identity_store


def get_engine() -> ApplicationLifecycleEngine:
    global _engine
    store = get_record_store()
    with _lock:
        if _engine is None or _engine.record_store is not store:
            _engine = ApplicationLifecycleEngine(store, tz=portal_timezone(get_secret("PORTAL_TIMEZONE")))
        return _engine


def build_client_storage():
    path = get_secret("CLIENT_STORAGE_PATH")
    if path:
        return JsonFileStorage(path)
    return MemoryStorage()


def create_session_context(storage=None) -> SessionContext:
    """One context per client session; stores are shared process-wide."""
    return SessionContext(
        identity_store=get_identity_store(),
        record_store=get_record_store(),
        storage=storage if storage is not None else build_client_storage(),
    )


def init_databases():
    if get_backend() != "sqlite":
        return
    get_identity_store().init_db()
    get_record_store().init_db()


def bootstrap_admin() -> bool:
    """Create the configured admin account once. Returns True when created."""
    admin_email = get_secret("ADMIN_EMAIL")
    admin_password = get_secret("ADMIN_PASSWORD")
    if not admin_email or not admin_password:
        return False

    store = get_record_store()
    if store.select("users", {"email": admin_email.strip().lower()}, limit=1):
        return False

    first_name = get_secret("ADMIN_FIRST_NAME", "Barangay")
    last_name = get_secret("ADMIN_LAST_NAME", "Administrator")
    try:
        identity = get_identity_store().create_user(
            admin_email,
            admin_password,
            {"first_name": first_name, "last_name": last_name, "role": "admin"},
        )
    except RegistrationError:
        log.warning(f"Admin identity {admin_email} exists without a profile; skipping bootstrap")
        return False

    now = format_timestamp(utc_now())
    try:
        store.insert("users", {
            "id": identity["id"],
            "email": identity["email"],
            "first_name": first_name,
            "last_name": last_name,
            "contact_number": get_secret("ADMIN_CONTACT_NUMBER", "09000000000"),
            "address": get_secret("ADMIN_ADDRESS", "Barangay Hall"),
            "role": "admin",
            "is_active": True,
            "created_at": identity.get("created_at") or now,
            "updated_at": now,
        })
    except StorageError as e:
        if not e.conflict:
            raise
        return False
    log.info(f"Admin account {admin_email} created")
    return True
