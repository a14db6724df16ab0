"""Boundary validation for registration, profile edits and submissions."""

import re
from typing import Dict, Sequence

from use_cases.domain_models import Attachment
from use_cases.errors import ValidationError
from use_cases.session_models import ProfileUpdate, RegistrationRequest

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PH_MOBILE_RE = re.compile(r"^(\+63|0)?9\d{9}$")

MIN_PASSWORD_LENGTH = 6
MIN_NAME_LENGTH = 2
MIN_ADDRESS_LENGTH = 10
MIN_PURPOSE_LENGTH = 10

MAX_FILE_SIZE = 5 * 1024 * 1024
MAX_FILES = 5
ALLOWED_FILE_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
})


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email or ""))


def is_valid_phone_number(phone: str) -> bool:
    return bool(PH_MOBILE_RE.match(re.sub(r"\s+", "", phone or "")))


def _check_profile_fields(values: Dict[str, str], errors: Dict[str, str]) -> None:
    if "first_name" in values and len(values["first_name"].strip()) < MIN_NAME_LENGTH:
        errors["first_name"] = "First name must be at least 2 characters"
    if "last_name" in values and len(values["last_name"].strip()) < MIN_NAME_LENGTH:
        errors["last_name"] = "Last name must be at least 2 characters"
    if "contact_number" in values and not is_valid_phone_number(values["contact_number"]):
        errors["contact_number"] = "Invalid Philippine phone number"
    if "address" in values and len(values["address"].strip()) < MIN_ADDRESS_LENGTH:
        errors["address"] = "Address must be at least 10 characters"


def registration_errors(request: RegistrationRequest) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    if not is_valid_email(request.email):
        errors["email"] = "Invalid email address"
    if len(request.password or "") < MIN_PASSWORD_LENGTH:
        errors["password"] = "Password must be at least 6 characters"
    if request.confirm_password is not None and request.confirm_password != request.password:
        errors["confirm_password"] = "Passwords do not match"
    _check_profile_fields(
        {
            "first_name": request.first_name or "",
            "last_name": request.last_name or "",
            "contact_number": request.contact_number or "",
            "address": request.address or "",
        },
        errors,
    )
    return errors


def validate_profile_update(update: ProfileUpdate) -> Dict[str, str]:
    """Return the cleaned changes or raise ``ValidationError``."""
    changes = update.changes()
    errors: Dict[str, str] = {}
    _check_profile_fields(changes, errors)
    if errors:
        raise ValidationError("Invalid profile details", errors)
    return {k: v.strip() for k, v in changes.items()}


def validate_purpose(purpose: str) -> str:
    cleaned = (purpose or "").strip()
    if len(cleaned) < MIN_PURPOSE_LENGTH:
        raise ValidationError(
            "Purpose must be at least 10 characters",
            {"purpose": "Purpose must be at least 10 characters"},
        )
    return cleaned


def validate_attachments(attachments: Sequence[Attachment]) -> None:
    if not attachments:
        raise ValidationError(
            "At least one attachment is required",
            {"attachments": "At least one attachment is required"},
        )
    if len(attachments) > MAX_FILES:
        raise ValidationError("Maximum 5 files allowed", {"attachments": "Maximum 5 files allowed"})
    for attachment in attachments:
        if attachment.file_size < 0 or attachment.file_size > MAX_FILE_SIZE:
            raise ValidationError(
                f"{attachment.file_name}: each file must be less than 5MB",
                {"attachments": "Each file must be less than 5MB"},
            )
        if attachment.file_type not in ALLOWED_FILE_TYPES:
            raise ValidationError(
                f"{attachment.file_name}: invalid file type {attachment.file_type!r}",
                {"attachments": "Invalid file type. Only images, PDF, and Word documents are allowed"},
            )
