import logging
from typing import Any, Dict, Optional

import requests

from use_cases.errors import AuthError, RegistrationError, StorageError
from use_cases.session_models import IdentitySession

log = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10


def response_message(resp: requests.Response, fallback: str) -> str:
    """Pull the human readable message out of a Supabase error body."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text or fallback
    if isinstance(body, dict):
        for key in ("error_description", "msg", "message", "error"):
            if body.get(key):
                return str(body[key])
    return fallback


class SupabaseIdentityStore:
    """Identity store backed by the hosted GoTrue auth API."""

    def __init__(self, url: str, anon_key: str, service_key: Optional[str] = None):
        self.base_url = url.rstrip("/") + "/auth/v1"
        self.anon_key = anon_key
        self.service_key = service_key

    def _headers(self, bearer: Optional[str] = None) -> Dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {bearer or self.anon_key}",
            "Content-Type": "application/json",
        }

    def _session_from_body(self, body: Dict[str, Any]) -> IdentitySession:
        user = body.get("user") or body
        return IdentitySession(
            access_token=body.get("access_token") or "",
            user_id=str(user["id"]),
            email=user.get("email") or "",
            created_at=user.get("created_at"),
            refresh_token=body.get("refresh_token"),
            expires_at=str(body["expires_at"]) if body.get("expires_at") else None,
        )

    def sign_in(self, email: str, password: str) -> IdentitySession:
        try:
            resp = requests.post(
                f"{self.base_url}/token",
                params={"grant_type": "password"},
                json={"email": email.strip().lower(), "password": password},
                headers=self._headers(),
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise AuthError(f"Authentication service unavailable: {e}") from e
        if resp.status_code != 200:
            raise AuthError(response_message(resp, "Invalid credentials"))
        return self._session_from_body(resp.json())

    def sign_up(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> IdentitySession:
        try:
            resp = requests.post(
                f"{self.base_url}/signup",
                json={"email": email.strip().lower(), "password": password, "data": metadata or {}},
                headers=self._headers(),
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise RegistrationError(f"Registration service unavailable: {e}") from e
        if resp.status_code not in (200, 201):
            raise RegistrationError(response_message(resp, "Registration failed"))
        # With email confirmation enabled the body is the bare user and no session is issued
        return self._session_from_body(resp.json())

    def create_user(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
        if not self.service_key:
            raise StorageError("SUPABASE_SERVICE_KEY is required to create users")
        try:
            resp = requests.post(
                f"{self.base_url}/admin/users",
                json={"email": email, "password": password, "email_confirm": True, "user_metadata": metadata or {}},
                headers={
                    "apikey": self.service_key,
                    "Authorization": f"Bearer {self.service_key}",
                    "Content-Type": "application/json",
                },
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise StorageError(f"Admin user creation failed: {e}") from e
        if resp.status_code == 422:
            raise RegistrationError(response_message(resp, "User already registered"))
        if resp.status_code not in (200, 201):
            raise StorageError(response_message(resp, f"Admin user creation failed: HTTP {resp.status_code}"))
        body = resp.json()
        return {"id": str(body["id"]), "email": body.get("email", email), "created_at": body.get("created_at")}

    def get_session(self, access_token: Optional[str]) -> Optional[IdentitySession]:
        if not access_token:
            return None
        try:
            resp = requests.get(f"{self.base_url}/user", headers=self._headers(access_token), timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise AuthError(f"Authentication service unavailable: {e}") from e
        if resp.status_code in (401, 403):
            return None
        if resp.status_code != 200:
            raise AuthError(response_message(resp, f"Session check failed: HTTP {resp.status_code}"))
        user = resp.json()
        return IdentitySession(
            access_token=access_token,
            user_id=str(user["id"]),
            email=user.get("email") or "",
            created_at=user.get("created_at"),
        )

    def sign_out(self, access_token: Optional[str]) -> None:
        if not access_token:
            return
        try:
            resp = requests.post(f"{self.base_url}/logout", headers=self._headers(access_token), timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise AuthError(f"Sign out failed: {e}") from e
        if resp.status_code not in (200, 204, 401):
            raise AuthError(response_message(resp, f"Sign out failed: HTTP {resp.status_code}"))
