import hashlib
import hmac
import json
import logging
import os
import secrets
import sqlite3
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from infrastructure.repositories.sqlite_schema import apply_migrations
from use_cases.errors import AuthError, RegistrationError, StorageError
from use_cases.session_models import IdentitySession

log = logging.getLogger(__name__)

PASSWORD_ITERATIONS = 200_000
SESSION_TTL_DAYS = 30
MAX_FAILED_ATTEMPTS = 5
LOCKOUT_SECONDS = 300


def _hash_password(password: str, salt_hex: str) -> str:
    salt = bytes.fromhex(salt_hex)
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PASSWORD_ITERATIONS).hex()


def _make_password(password: str):
    salt_hex = os.urandom(16).hex()
    return salt_hex, _hash_password(password, salt_hex)


def _verify_password(password: str, salt_hex: str, expected_hash: str) -> bool:
    candidate = _hash_password(password, salt_hex)
    return hmac.compare_digest(candidate, expected_hash)


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class SQLiteIdentityStore:
    """Credentials, session tokens and login throttling kept in SQLite."""

    def __init__(self, db_path: str, session_ttl_days: int = SESSION_TTL_DAYS, clock=None):
        self.db_path = db_path
        self.session_ttl_days = session_ttl_days
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _conn(self):
        return sqlite3.connect(self.db_path)

    def _migrate_v1(self, conn):
        """Baseline schema (v1)."""
        conn.execute("""
            CREATE TABLE IF NOT EXISTS identities (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL UNIQUE,
                password_salt TEXT NOT NULL,
                password_hash TEXT NOT NULL,
                metadata_json TEXT,
                created_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                token TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                created_at TEXT NOT NULL,
                last_seen_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS login_attempts (
                email TEXT PRIMARY KEY,
                attempts INTEGER DEFAULT 0,
                last_attempt TEXT NOT NULL
            )
        """)

    def init_db(self):
        with self._conn() as conn:
            apply_migrations(conn, "identity", [self._migrate_v1])
            conn.commit()

    def _create_identity(self, email: str, password: str, metadata: Optional[Dict[str, Any]]) -> Dict[str, str]:
        salt_hex, pw_hash = _make_password(password)
        identity = {
            "id": str(uuid.uuid4()),
            "email": _normalize_email(email),
            "created_at": self._clock().isoformat(),
        }
        try:
            with self._conn() as conn:
                conn.execute("""
                    INSERT INTO identities (id, email, password_salt, password_hash, metadata_json, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (identity["id"], identity["email"], salt_hex, pw_hash, json.dumps(metadata or {}), identity["created_at"]))
                conn.commit()
        except sqlite3.IntegrityError as e:
            raise RegistrationError("User already registered", {"email": "Email is already registered"}) from e
        except sqlite3.Error as e:
            raise StorageError(f"Failed to create identity: {e}") from e
        return identity

    def _open_session(self, identity: Dict[str, str]) -> IdentitySession:
        now = self._clock()
        expires_at = now + timedelta(days=self.session_ttl_days)
        token = secrets.token_urlsafe(32)
        with self._conn() as conn:
            conn.execute("""
                INSERT INTO sessions (token, user_id, expires_at, created_at, last_seen_at)
                VALUES (?, ?, ?, ?, ?)
            """, (token, identity["id"], expires_at.isoformat(), now.isoformat(), now.isoformat()))
            conn.commit()
        return IdentitySession(
            access_token=token,
            user_id=identity["id"],
            email=identity["email"],
            created_at=identity["created_at"],
            expires_at=expires_at.isoformat(),
        )

    def sign_up(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> IdentitySession:
        identity = self._create_identity(email, password, metadata)
        log.info(f"Identity created for {identity['email']}")
        return self._open_session(identity)

    def create_user(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
        """Create an identity without opening a session (used by admin bootstrap)."""
        return self._create_identity(email, password, metadata)

    def _check_throttle(self, email: str, now: datetime):
        with self._conn() as conn:
            row = conn.execute("SELECT attempts, last_attempt FROM login_attempts WHERE email = ?", (email,)).fetchone()
            if not row:
                return
            attempts, last_attempt_str = row
            try:
                elapsed = (now - datetime.fromisoformat(last_attempt_str)).total_seconds()
            except ValueError:
                return
            if attempts >= MAX_FAILED_ATTEMPTS and elapsed < LOCKOUT_SECONDS:
                remaining = int(LOCKOUT_SECONDS - elapsed)
                raise AuthError(f"Too many login attempts. Try again in {remaining} seconds.")
            if attempts >= MAX_FAILED_ATTEMPTS:
                conn.execute("UPDATE login_attempts SET attempts = 0 WHERE email = ?", (email,))
                conn.commit()

    def _record_failed_attempt(self, email: str, now: datetime):
        with self._conn() as conn:
            conn.execute("""
               INSERT INTO login_attempts (email, attempts, last_attempt)
               VALUES (?, 1, ?)
               ON CONFLICT(email) DO UPDATE SET
               attempts = attempts + 1, last_attempt = ?
            """, (email, now.isoformat(), now.isoformat()))
            conn.commit()

    def sign_in(self, email: str, password: str) -> IdentitySession:
        email = _normalize_email(email)
        now = self._clock()
        self._check_throttle(email, now)

        with self._conn() as conn:
            row = conn.execute("""
                SELECT id, email, password_salt, password_hash, created_at
                FROM identities WHERE email = ?
            """, (email,)).fetchone()

        if not row or not _verify_password(password or "", row[2], row[3]):
            self._record_failed_attempt(email, now)
            raise AuthError("Invalid login credentials")

        with self._conn() as conn:
            conn.execute("DELETE FROM login_attempts WHERE email = ?", (email,))
            conn.commit()
        return self._open_session({"id": row[0], "email": row[1], "created_at": row[4]})

    def get_session(self, access_token: Optional[str]) -> Optional[IdentitySession]:
        if not access_token:
            return None
        now = self._clock()
        with self._conn() as conn:
            row = conn.execute("""
                SELECT s.user_id, s.expires_at, i.email, i.created_at
                FROM sessions s JOIN identities i ON i.id = s.user_id
                WHERE s.token = ?
            """, (access_token,)).fetchone()
            if not row:
                return None
            user_id, expires_raw, email, created_at = row
            try:
                expires_at = datetime.fromisoformat(expires_raw)
            except ValueError:
                expires_at = None
            if expires_at is None or now > expires_at:
                conn.execute("DELETE FROM sessions WHERE token = ?", (access_token,))
                conn.commit()
                return None
            conn.execute("UPDATE sessions SET last_seen_at = ? WHERE token = ?", (now.isoformat(), access_token))
            conn.commit()
        return IdentitySession(
            access_token=access_token,
            user_id=user_id,
            email=email,
            created_at=created_at,
            expires_at=expires_raw,
        )

    def sign_out(self, access_token: Optional[str]) -> None:
        if not access_token:
            return
        with self._conn() as conn:
            conn.execute("DELETE FROM sessions WHERE token = ?", (access_token,))
            conn.commit()
