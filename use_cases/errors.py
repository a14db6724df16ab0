"""Error taxonomy shared by the session, lifecycle and storage layers."""

from typing import Dict, Optional


class PortalError(Exception):
    """Base class for every error surfaced to the view layer."""


class AuthError(PortalError):
    pass


class RegistrationError(PortalError):
    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.errors = dict(errors or {})


class AuthorizationError(PortalError):
    pass


class ValidationError(PortalError):
    """Malformed input. ``errors`` maps field name to a readable message."""

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.errors = dict(errors or {})


class InvalidStateTransition(PortalError):
    pass


class MissingReason(PortalError):
    pass


class ApplicationNotFound(PortalError):
    pass


class StorageError(PortalError):
    """Backing store failure. ``conflict`` marks unique-constraint violations."""

    def __init__(self, message: str, conflict: bool = False):
        super().__init__(message)
        self.conflict = conflict
