"""
Application lifecycle: submission, status transitions and scoped reads.

Transition graph::

    pending      -> under_review | approved | rejected | cancelled
    under_review -> approved | rejected
    approved     -> completed

``rejected``, ``completed`` and ``cancelled`` are terminal. Every write is
conditional on the status the decision was made against, so two reviewers
racing on one application cannot both win.
"""

import logging
import random
import string
import time
import weakref
from datetime import date, datetime, tzinfo
from typing import Any, Callable, Dict, List, Optional, Sequence

from use_cases import rbac_policy, validation
from use_cases.domain_models import (
    Application,
    ApplicationFilters,
    Attachment,
    DocumentType,
    format_timestamp,
    local_date,
    parse_timestamp,
    portal_timezone,
    utc_now,
)
from use_cases.errors import (
    ApplicationNotFound,
    AuthorizationError,
    InvalidStateTransition,
    MissingReason,
    StorageError,
    ValidationError,
)
from use_cases.session_models import User, is_admin

log = logging.getLogger(__name__)

TRANSITIONS: Dict[str, frozenset] = {
    "pending": frozenset({"under_review", "approved", "rejected", "cancelled"}),
    "under_review": frozenset({"approved", "rejected"}),
    "approved": frozenset({"completed"}),
    "rejected": frozenset(),
    "completed": frozenset(),
    "cancelled": frozenset(),
}
ACTION_STATUS = {"approve": "approved", "reject": "rejected"}

TRACKING_PREFIX = "BA"
TRACKING_SUFFIX_ALPHABET = string.digits + string.ascii_uppercase
MAX_TRACKING_ATTEMPTS = 5

_random = random.SystemRandom()


def generate_tracking_number(now_ms: Optional[int] = None) -> str:
    """Prefix, last 8 digits of the epoch milliseconds, 4 random base-36 chars."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    timestamp = str(now_ms)[-8:].rjust(8, "0")
    suffix = "".join(_random.choice(TRACKING_SUFFIX_ALPHABET) for _ in range(4))
    return f"{TRACKING_PREFIX}{timestamp}{suffix}"


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def _as_date(value: Any, tz: tzinfo) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    return local_date(parse_timestamp(value), tz)


def matches_filters(
    application: Application,
    filters: Optional[ApplicationFilters],
    tz: Optional[tzinfo] = None,
) -> bool:
    """Dates compare on the submission day as seen in ``tz`` (the portal timezone by default)."""
    if filters is None:
        return True
    if filters.status and application.status != filters.status:
        return False
    if filters.document_type_id and application.document_type_id != filters.document_type_id:
        return False
    if filters.search:
        needle = filters.search.strip().lower()
        haystack = f"{application.purpose}\n{application.tracking_number}".lower()
        if needle and needle not in haystack:
            return False
    tz = tz or portal_timezone()
    submitted_on = local_date(application.submitted_at, tz)
    date_from = _as_date(filters.date_from, tz)
    if date_from and submitted_on < date_from:
        return False
    date_to = _as_date(filters.date_to, tz)
    if date_to and submitted_on > date_to:
        return False
    return True


class ApplicationLifecycleEngine:
    def __init__(
        self,
        record_store,
        clock: Optional[Callable[[], datetime]] = None,
        tz: Optional[tzinfo] = None,
    ):
        self.record_store = record_store
        self._clock = clock or utc_now
        self.tz = tz or portal_timezone()

    # --- reference data ---

    def list_document_types(self, active_only: bool = True) -> List[DocumentType]:
        filters = {"is_active": True} if active_only else None
        rows = self.record_store.select("document_types", filters, order_by="name")
        return [DocumentType.from_record(r) for r in rows]

    def get_document_type(self, document_type_id: str) -> Optional[DocumentType]:
        rows = self.record_store.select("document_types", {"id": document_type_id}, limit=1)
        return DocumentType.from_record(rows[0]) if rows else None

    def count_users(self, acting_user: User) -> int:
        rbac_policy.require(acting_user, rbac_policy.VIEW_USERS)
        return len(self.record_store.select("users"))

    # --- submission ---

    def _issue_tracking_number(self) -> str:
        for _ in range(MAX_TRACKING_ATTEMPTS):
            candidate = generate_tracking_number()
            if not self.record_store.select("applications", {"tracking_number": candidate}, limit=1):
                return candidate
            log.warning(f"Tracking number {candidate} already taken, regenerating")
        raise StorageError("Could not allocate a unique tracking number")

    def submit_application(
        self,
        user_id: str,
        document_type_id: str,
        purpose: str,
        attachments: Sequence[Attachment],
    ) -> Application:
        cleaned_purpose = validation.validate_purpose(purpose)
        attachments = tuple(attachments or ())
        validation.validate_attachments(attachments)
        if not user_id:
            raise ValidationError("Applicant is required", {"user_id": "Applicant is required"})
        if not document_type_id:
            raise ValidationError("Please select a document type", {"document_type_id": "Please select a document type"})
        document_type = self.get_document_type(document_type_id)
        if document_type is None or not document_type.is_active:
            raise ValidationError(
                "Selected document type is not available",
                {"document_type_id": "Selected document type is not available"},
            )

        last_error = None
        for _ in range(MAX_TRACKING_ATTEMPTS):
            row = {
                "user_id": user_id,
                "document_type_id": document_type.id,
                "purpose": cleaned_purpose,
                "status": "pending",
                "submitted_at": format_timestamp(self._clock()),
                "processed_at": None,
                "processed_by": None,
                "completed_at": None,
                "rejection_reason": None,
                "attachments": [a.to_dict() for a in attachments],
                "tracking_number": self._issue_tracking_number(),
            }
            try:
                created = self.record_store.insert("applications", row)
            except StorageError as e:
                if not e.conflict:
                    raise
                last_error = e
                log.warning(f"Application insert conflicted, retrying: {e}")
                continue
            application = Application.from_record(created)
            log.info(f"Application {application.tracking_number} submitted by {user_id}")
            return application
        raise StorageError(f"Application could not be stored: {last_error}")

    # --- reads ---

    def _load(self, application_id: str) -> Application:
        rows = self.record_store.select("applications", {"id": application_id}, limit=1)
        if not rows:
            raise ApplicationNotFound(f"Application {application_id} not found")
        return Application.from_record(rows[0])

    def get_application(self, application_id: str, acting_user: User) -> Application:
        application = self._load(application_id)
        if not is_admin(acting_user):
            rbac_policy.require(acting_user, rbac_policy.VIEW_OWN_APPLICATIONS)
            if application.user_id != acting_user.id:
                raise AuthorizationError("You can only view your own applications")
        return application

    def list_applications(self, acting_user: User, filters: Optional[ApplicationFilters] = None) -> List[Application]:
        store_filters: Dict[str, Any] = {}
        if is_admin(acting_user):
            rbac_policy.require(acting_user, rbac_policy.VIEW_ALL_APPLICATIONS)
        else:
            rbac_policy.require(acting_user, rbac_policy.VIEW_OWN_APPLICATIONS)
            store_filters["user_id"] = acting_user.id
        if filters is not None and filters.status:
            store_filters["status"] = filters.status
        if filters is not None and filters.document_type_id:
            store_filters["document_type_id"] = filters.document_type_id

        rows = self.record_store.select(
            "applications",
            store_filters or None,
            order_by="submitted_at",
            descending=True,
        )
        applications = [Application.from_record(r) for r in rows]
        if not is_admin(acting_user):
            # Owner filter re-applied in case the store ignored it
            applications = [a for a in applications if a.user_id == acting_user.id]
        applications = [a for a in applications if matches_filters(a, filters, self.tz)]
        applications.sort(key=lambda a: a.submitted_at, reverse=True)
        return applications

    def watch_applications(
        self,
        acting_user: User,
        callback: Callable[[List[Application]], None],
        filters: Optional[ApplicationFilters] = None,
    ):
        """
        Re-run ``list_applications`` on every visible change and hand the result
        to ``callback``. Keep the returned subscription; dropping it ends the watch.
        """
        admin = is_admin(acting_user)
        handle = None

        def on_change(event):
            subscription = handle() if handle is not None else None
            if subscription is None or not subscription.active:
                return
            record = event.record or {}
            if not admin and str(record.get("user_id")) != acting_user.id:
                return
            applications = self.list_applications(acting_user, filters)
            if subscription.active:
                callback(applications)

        subscription = self.record_store.subscribe("applications", "*", on_change)
        handle = weakref.ref(subscription)
        return subscription

    # --- transitions ---

    def _transition(
        self,
        application: Application,
        target: str,
        expected: str,
        changes: Dict[str, Any],
    ) -> Application:
        if application.status != expected or not can_transition(application.status, target):
            raise InvalidStateTransition(
                f"Cannot move application {application.tracking_number} from {application.status} to {target}"
            )
        payload = dict(changes)
        payload["status"] = target
        rows = self.record_store.update(
            "applications",
            {"id": application.id, "status": expected},
            payload,
        )
        if not rows:
            raise InvalidStateTransition(
                f"Application {application.tracking_number} changed while it was being updated"
            )
        updated = Application.from_record(rows[0])
        log.info(f"Application {updated.tracking_number}: {expected} -> {target}")
        return updated

    def _decide(
        self,
        application_id: str,
        action: str,
        acting_user: User,
        rejection_reason: Optional[str],
        expected: str,
        permission: str,
    ) -> Application:
        rbac_policy.require(acting_user, permission)
        if action not in ACTION_STATUS:
            raise ValidationError(f"Unknown action: {action}", {"action": "Action must be approve or reject"})
        application = self._load(application_id)
        if application.status != expected:
            raise InvalidStateTransition(
                f"Application {application.tracking_number} is {application.status}, expected {expected}"
            )
        reason = (rejection_reason or "").strip()
        if action == "reject" and not reason:
            raise MissingReason("Rejection reason is required when rejecting an application")
        return self._transition(
            application,
            ACTION_STATUS[action],
            expected,
            {
                "processed_at": format_timestamp(self._clock()),
                "processed_by": acting_user.id,
                "rejection_reason": reason if action == "reject" else None,
            },
        )

    def process_application(
        self,
        application_id: str,
        action: str,
        acting_user: User,
        rejection_reason: Optional[str] = None,
    ) -> Application:
        """Approve or reject a pending application (admin only)."""
        return self._decide(
            application_id, action, acting_user, rejection_reason,
            expected="pending", permission=rbac_policy.PROCESS_APPLICATION,
        )

    def start_review(self, application_id: str, acting_user: User) -> Application:
        rbac_policy.require(acting_user, rbac_policy.REVIEW_APPLICATION)
        application = self._load(application_id)
        return self._transition(application, "under_review", "pending", {})

    def resolve_review(
        self,
        application_id: str,
        action: str,
        acting_user: User,
        rejection_reason: Optional[str] = None,
    ) -> Application:
        return self._decide(
            application_id, action, acting_user, rejection_reason,
            expected="under_review", permission=rbac_policy.REVIEW_APPLICATION,
        )

    def complete_application(self, application_id: str, acting_user: User) -> Application:
        rbac_policy.require(acting_user, rbac_policy.COMPLETE_APPLICATION)
        application = self._load(application_id)
        return self._transition(
            application,
            "completed",
            "approved",
            {"completed_at": format_timestamp(self._clock())},
        )

    def cancel_application(self, application_id: str, acting_user: User) -> Application:
        """Withdraw a pending application. Only its owner may cancel it."""
        rbac_policy.require(acting_user, rbac_policy.CANCEL_OWN_APPLICATION)
        application = self._load(application_id)
        if application.user_id != acting_user.id:
            raise AuthorizationError("Only the applicant can cancel this application")
        return self._transition(application, "cancelled", "pending", {})
