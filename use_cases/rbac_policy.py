"""Centralized Role-Based Access Control logic."""

import logging
from enum import Enum
from typing import Dict, FrozenSet, Optional

from use_cases.errors import AuthorizationError
from use_cases.session_models import SessionSnapshot, User

log = logging.getLogger(__name__)

SUBMIT_APPLICATION = "SUBMIT_APPLICATION"
VIEW_OWN_APPLICATIONS = "VIEW_OWN_APPLICATIONS"
CANCEL_OWN_APPLICATION = "CANCEL_OWN_APPLICATION"
UPDATE_PROFILE = "UPDATE_PROFILE"
VIEW_ALL_APPLICATIONS = "VIEW_ALL_APPLICATIONS"
PROCESS_APPLICATION = "PROCESS_APPLICATION"
REVIEW_APPLICATION = "REVIEW_APPLICATION"
COMPLETE_APPLICATION = "COMPLETE_APPLICATION"
VIEW_USERS = "VIEW_USERS"

_SELF_SERVICE = frozenset({
    SUBMIT_APPLICATION,
    VIEW_OWN_APPLICATIONS,
    CANCEL_OWN_APPLICATION,
    UPDATE_PROFILE,
})

ROLE_PERMISSIONS: Dict[str, FrozenSet[str]] = {
    "resident": _SELF_SERVICE,
    "staff": _SELF_SERVICE,
    "admin": _SELF_SERVICE | {
        VIEW_ALL_APPLICATIONS,
        PROCESS_APPLICATION,
        REVIEW_APPLICATION,
        COMPLETE_APPLICATION,
        VIEW_USERS,
    },
}


class AccessDecision(str, Enum):
    ALLOW = "allow"
    PENDING = "pending"
    REDIRECT_TO_LOGIN = "redirect_to_login"
    REDIRECT_TO_DASHBOARD = "redirect_to_dashboard"


def evaluate_access(snapshot: SessionSnapshot, required_role: Optional[str] = None) -> AccessDecision:
    """
    Route-level gate. Never redirects while the session is still loading,
    so a recovering session does not flash the login screen.
    """
    if snapshot.is_loading:
        return AccessDecision.PENDING
    if snapshot.user is None:
        return AccessDecision.REDIRECT_TO_LOGIN
    if required_role and snapshot.user.role != required_role:
        return AccessDecision.REDIRECT_TO_DASHBOARD
    return AccessDecision.ALLOW


def enforce(user: Optional[User], action: str) -> bool:
    """
    Evaluates if the user is authorized to perform the action.
    Returns True if authorized, False otherwise.
    """
    authorized = False
    if user is not None and user.is_active:
        authorized = action in ROLE_PERMISSIONS.get(user.role, frozenset())

    if not authorized:
        actor_id = user.id if user else None
        actor_role = user.role if user else None
        log.warning(f"RBAC denied: action={action} user_id={actor_id} role={actor_role}")
    return authorized


def require(user: Optional[User], action: str) -> User:
    if not enforce(user, action):
        raise AuthorizationError(f"Not allowed to perform {action}")
    return user
