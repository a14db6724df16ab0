"""Dashboard context preparation for resident and admin views."""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from use_cases.domain_models import (
    APPLICATION_STATUS_CONFIG,
    APPLICATION_STATUSES,
    Application,
    DashboardStats,
    DocumentType,
    status_label,
)
from use_cases.session_models import User, is_admin

RECENT_LIMIT = 5
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50

FRAME_COLUMNS = [
    "id", "tracking_number", "document_type", "purpose", "status", "status_label",
    "submitted_at", "processed_at", "completed_at", "rejection_reason", "attachments",
]


@dataclass(frozen=True)
class Page:
    data: Tuple[Any, ...] = field(default_factory=tuple)
    total: int = 0
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    total_pages: int = 0


def applications_frame(
    applications: Sequence[Application],
    document_types: Optional[Sequence[DocumentType]] = None,
) -> pd.DataFrame:
    """Flatten applications into a DataFrame for tables and charts."""
    if not applications:
        return pd.DataFrame(columns=FRAME_COLUMNS)
    names: Dict[str, str] = {dt.id: dt.name for dt in (document_types or ())}
    df = pd.DataFrame(
        [
            {
                "id": a.id,
                "tracking_number": a.tracking_number,
                "document_type": names.get(a.document_type_id, a.document_type_id),
                "purpose": a.purpose,
                "status": a.status,
                "status_label": status_label(a.status),
                "submitted_at": a.submitted_at,
                "processed_at": a.processed_at,
                "completed_at": a.completed_at,
                "rejection_reason": a.rejection_reason,
                "attachments": len(a.attachments),
            }
            for a in applications
        ],
        columns=FRAME_COLUMNS,
    )
    df["submitted_at"] = pd.to_datetime(df["submitted_at"], utc=True)
    return df.sort_values("submitted_at", ascending=False).reset_index(drop=True)


def status_breakdown(applications: Sequence[Application]) -> pd.DataFrame:
    """Count per status, in lifecycle order, including zero rows."""
    counts = pd.Series([a.status for a in applications], dtype="object").value_counts()
    return pd.DataFrame(
        {
            "status": list(APPLICATION_STATUSES),
            "label": [APPLICATION_STATUS_CONFIG[s]["label"] for s in APPLICATION_STATUSES],
            "count": [int(counts.get(s, 0)) for s in APPLICATION_STATUSES],
        }
    )


def build_dashboard_stats(
    applications: Sequence[Application],
    total_users: int = 0,
    recent_limit: int = RECENT_LIMIT,
) -> DashboardStats:
    breakdown = status_breakdown(applications).set_index("status")["count"]
    recent = sorted(applications, key=lambda a: a.submitted_at, reverse=True)[:recent_limit]
    return DashboardStats(
        total_applications=len(applications),
        pending_applications=int(breakdown["pending"]),
        under_review_applications=int(breakdown["under_review"]),
        approved_applications=int(breakdown["approved"]),
        rejected_applications=int(breakdown["rejected"]),
        completed_applications=int(breakdown["completed"]),
        total_users=total_users,
        recent_applications=tuple(recent),
    )


def load_dashboard(engine, acting_user: User) -> DashboardStats:
    """Stats scoped to what ``acting_user`` may see; user count for admins only."""
    applications = engine.list_applications(acting_user)
    total_users = engine.count_users(acting_user) if is_admin(acting_user) else 0
    return build_dashboard_stats(applications, total_users=total_users)


def paginate(items: Sequence[Any], page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> Page:
    page = max(1, int(page))
    limit = min(max(1, int(limit)), MAX_PAGE_SIZE)
    total = len(items)
    total_pages = math.ceil(total / limit) if total else 0
    start = (page - 1) * limit
    data: List[Any] = list(items[start:start + limit])
    return Page(data=tuple(data), total=total, page=page, limit=limit, total_pages=total_pages)
