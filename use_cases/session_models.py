"""Session DTOs shared across application layers."""

from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Literal, Optional

from use_cases.domain_models import format_timestamp, parse_timestamp

Role = Literal["resident", "admin", "staff"]
ROLES = ("resident", "admin", "staff")


@dataclass(frozen=True)
class User:
    id: str
    email: str
    first_name: str
    last_name: str
    contact_number: str
    address: str
    role: Role = "resident"
    is_active: bool = True
    middle_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name]
        return " ".join(p for p in parts if p)

    @classmethod
    def from_records(cls, identity: "IdentitySession", profile: Dict[str, Any]) -> "User":
        """Merge an identity session with its ``users`` profile row."""
        return cls(
            id=str(identity.user_id),
            email=identity.email or profile.get("email") or "",
            first_name=profile.get("first_name") or "",
            last_name=profile.get("last_name") or "",
            middle_name=profile.get("middle_name") or None,
            contact_number=profile.get("contact_number") or "",
            address=profile.get("address") or "",
            role=profile.get("role") or "resident",
            is_active=bool(profile.get("is_active", True)),
            created_at=parse_timestamp(identity.created_at or profile.get("created_at")),
            updated_at=parse_timestamp(profile.get("updated_at")),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["created_at"] = parse_timestamp(values.get("created_at"))
        values["updated_at"] = parse_timestamp(values.get("updated_at"))
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "middle_name": self.middle_name,
            "contact_number": self.contact_number,
            "address": self.address,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }

    def merged(self, **changes: Any) -> "User":
        return replace(self, **changes)


@dataclass(frozen=True)
class IdentitySession:
    """What the identity store hands back after sign-in or sign-up."""

    access_token: str
    user_id: str
    email: str
    created_at: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[str] = None


@dataclass(frozen=True)
class RegistrationRequest:
    email: str
    password: str
    first_name: str
    last_name: str
    contact_number: str
    address: str
    middle_name: Optional[str] = None
    confirm_password: Optional[str] = None


@dataclass(frozen=True)
class ProfileUpdate:
    """Self-service profile edit. ``None`` leaves a field unchanged."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    middle_name: Optional[str] = None
    contact_number: Optional[str] = None
    address: Optional[str] = None

    def changes(self) -> Dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


class SessionState(str, Enum):
    UNRESOLVED = "unresolved"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class SessionSnapshot:
    """Consistent read of the session: state and user always belong together."""

    state: SessionState = SessionState.UNRESOLVED
    user: Optional[User] = None

    @property
    def is_loading(self) -> bool:
        return self.state == SessionState.UNRESOLVED


def is_admin(user: Optional[User]) -> bool:
    return user is not None and user.role == "admin"
