"""
Workflow Exceptions — recoverable outcomes of OTP, workflow and download operations.

Services raise these internally; coordinators turn them into
``WorkflowActionResult`` objects and the API layer maps any that escape to
a JSON body ``{success: false, message, code}``.
"""
from typing import Any, Dict, Optional


class LicensingError(Exception):
    """Base exception for all recoverable licensing errors"""

    status_code = 400

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message, "code": self.code}


class NotFoundError(LicensingError):
    status_code = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND")


class InvalidCodeError(LicensingError):
    def __init__(self, message: str = "Invalid OTP. Please try again."):
        super().__init__(message, code="INVALID_CODE")


class LockedOutError(LicensingError):
    status_code = 429

    def __init__(self, message: str = "Too many failed attempts. Please request a new OTP."):
        super().__init__(message, code="LOCKED_OUT")


class ExpiredError(LicensingError):
    status_code = 410

    def __init__(self, message: str = "This link has expired."):
        super().__init__(message, code="EXPIRED")


class InvalidTransitionError(LicensingError):
    status_code = 409

    def __init__(self, message: str = "Application is not awaiting this action"):
        super().__init__(message, code="INVALID_TRANSITION")


class SignatureRequiredError(LicensingError):
    def __init__(self, message: str = "A verified signature OTP is required to approve"):
        super().__init__(message, code="SIGNATURE_REQUIRED")


class ValidationError(LicensingError):
    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, code="VALIDATION_ERROR")


class UnauthorizedError(LicensingError):
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, code="UNAUTHORIZED")


class ForbiddenError(LicensingError):
    status_code = 403

    def __init__(self, message: str = "Not authorized for this application"):
        super().__init__(message, code="FORBIDDEN")


# code -> HTTP status, for result objects that carry only a code
STATUS_BY_CODE = {
    cls("").code: cls.status_code
    for cls in (
        NotFoundError, InvalidCodeError, LockedOutError, ExpiredError,
        InvalidTransitionError, SignatureRequiredError, ValidationError,
        UnauthorizedError, ForbiddenError,
    )
}


def http_status_for(code: Optional[str]) -> int:
    """HTTP status for a failure code; 200 when there is no failure."""
    if not code:
        return 200
    return STATUS_BY_CODE.get(code, 400)
