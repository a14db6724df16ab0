"""Authentication flow orchestration (application layer)."""

from dataclasses import dataclass
from typing import Literal, Optional

from use_cases.rbac_policy import AccessDecision, evaluate_access

AuthFlowStatus = Literal["CONTINUE", "STOP"]


@dataclass(frozen=True)
class AuthFlowResult:
    """Result contract for auth flow orchestration."""

    status: AuthFlowStatus
    reason: AccessDecision
    user_id: Optional[str] = None


def ensure_authenticated_session(context, required_role: Optional[str] = None) -> AuthFlowResult:
    """Resolve the session if needed, then run the route gate."""
    snapshot = context.snapshot()
    if snapshot.is_loading:
        snapshot = context.restore()

    decision = evaluate_access(snapshot, required_role)
    user_id = snapshot.user.id if snapshot.user is not None else None
    if decision == AccessDecision.ALLOW:
        return AuthFlowResult(status="CONTINUE", reason=decision, user_id=user_id)
    return AuthFlowResult(status="STOP", reason=decision, user_id=user_id)
