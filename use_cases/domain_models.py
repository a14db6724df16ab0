"""Document request DTOs: document types, attachments and applications."""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Dict, Literal, Optional, Tuple
from zoneinfo import ZoneInfo

ApplicationStatus = Literal["pending", "under_review", "approved", "rejected", "completed", "cancelled"]
ProcessAction = Literal["approve", "reject"]

APPLICATION_STATUSES: Tuple[str, ...] = (
    "pending",
    "under_review",
    "approved",
    "rejected",
    "completed",
    "cancelled",
)

APPLICATION_STATUS_CONFIG: Dict[str, Dict[str, str]] = {
    "pending": {
        "label": "Pending",
        "description": "Application submitted and waiting for review",
    },
    "under_review": {
        "label": "Under Review",
        "description": "Application is being reviewed by staff",
    },
    "approved": {
        "label": "Approved",
        "description": "Application approved and ready for processing",
    },
    "rejected": {
        "label": "Rejected",
        "description": "Application rejected due to incomplete requirements",
    },
    "completed": {
        "label": "Completed",
        "description": "Document ready for pickup or delivered",
    },
    "cancelled": {
        "label": "Cancelled",
        "description": "Application cancelled by applicant",
    },
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept datetimes or ISO-8601 strings (including a trailing ``Z``)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


DEFAULT_TIMEZONE = "Asia/Manila"


def portal_timezone(name: Optional[str] = None) -> tzinfo:
    return ZoneInfo(name or DEFAULT_TIMEZONE)


def local_date(value: datetime, tz: tzinfo) -> date:
    """Calendar day of an aware timestamp in ``tz``."""
    return value.astimezone(tz).date()


def status_label(status: str) -> str:
    return APPLICATION_STATUS_CONFIG.get(status, {}).get("label", status)


@dataclass(frozen=True)
class DocumentType:
    id: str
    name: str
    description: str
    requirements: Tuple[str, ...] = ()
    fee: float = 0.0
    processing_time: str = ""
    is_active: bool = True

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> "DocumentType":
        return cls(
            id=str(row["id"]),
            name=row["name"],
            description=row.get("description") or "",
            requirements=tuple(row.get("requirements") or ()),
            fee=float(row.get("fee") or 0),
            processing_time=row.get("processing_time") or "",
            is_active=bool(row.get("is_active", True)),
        )


@dataclass(frozen=True)
class Attachment:
    file_name: str
    file_type: str
    file_size: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Attachment":
        return cls(
            file_name=data.get("file_name", data.get("fileName", "")),
            file_type=data.get("file_type", data.get("fileType", "")),
            file_size=int(data.get("file_size", data.get("fileSize", 0))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"file_name": self.file_name, "file_type": self.file_type, "file_size": self.file_size}


@dataclass(frozen=True)
class Application:
    id: str
    user_id: str
    document_type_id: str
    purpose: str
    status: ApplicationStatus
    submitted_at: datetime
    tracking_number: str
    attachments: Tuple[Attachment, ...] = ()
    processed_at: Optional[datetime] = None
    processed_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> "Application":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            document_type_id=str(row["document_type_id"]),
            purpose=row["purpose"],
            status=row["status"],
            submitted_at=parse_timestamp(row["submitted_at"]),
            tracking_number=row["tracking_number"],
            attachments=tuple(Attachment.from_dict(a) for a in (row.get("attachments") or ())),
            processed_at=parse_timestamp(row.get("processed_at")),
            processed_by=row.get("processed_by"),
            completed_at=parse_timestamp(row.get("completed_at")),
            rejection_reason=row.get("rejection_reason"),
        )


@dataclass(frozen=True)
class ApplicationFilters:
    """Optional narrowing for application listings. Dates are inclusive."""

    status: Optional[ApplicationStatus] = None
    document_type_id: Optional[str] = None
    search: Optional[str] = None
    date_from: Optional[Any] = None
    date_to: Optional[Any] = None


@dataclass(frozen=True)
class DashboardStats:
    total_applications: int = 0
    pending_applications: int = 0
    under_review_applications: int = 0
    approved_applications: int = 0
    rejected_applications: int = 0
    completed_applications: int = 0
    total_users: int = 0
    recent_applications: Tuple[Application, ...] = field(default_factory=tuple)
