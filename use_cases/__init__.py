"""Application layer contracts for orchestrating high-level flows."""

from .application_lifecycle import ApplicationLifecycleEngine, generate_tracking_number
from .auth_flow import AuthFlowResult, AuthFlowStatus, ensure_authenticated_session
from .dashboard_flow import Page, applications_frame, build_dashboard_stats, load_dashboard, paginate, status_breakdown
from .domain_models import Application, ApplicationFilters, Attachment, DashboardStats, DocumentType
from .rbac_policy import AccessDecision, evaluate_access
from .session_context import SessionContext
from .session_models import (
    IdentitySession,
    ProfileUpdate,
    RegistrationRequest,
    Role,
    SessionSnapshot,
    SessionState,
    User,
    is_admin,
)

__all__ = [
    "AccessDecision",
    "Application",
    "ApplicationFilters",
    "ApplicationLifecycleEngine",
    "Attachment",
    "AuthFlowResult",
    "AuthFlowStatus",
    "DashboardStats",
    "DocumentType",
    "IdentitySession",
    "Page",
    "ProfileUpdate",
    "RegistrationRequest",
    "Role",
    "SessionContext",
    "SessionSnapshot",
    "SessionState",
    "User",
    "applications_frame",
    "build_dashboard_stats",
    "ensure_authenticated_session",
    "evaluate_access",
    "generate_tracking_number",
    "is_admin",
    "load_dashboard",
    "paginate",
    "status_breakdown",
]
