from __future__ import annotations

from typing import ClassVar, Dict, Optional


class CreditLibraryError(Exception):
    """
    Base class for every business failure raised by the services.

    Each subclass pins a machine-readable `code` and an HTTP status hint so
    the API layer can render it without inspecting the message. The set of
    subclasses is closed; the API layer maps all of them through one handler.
    """

    code: ClassVar[str] = "ERROR"
    status_code: ClassVar[int] = 400
    default_message: ClassVar[str] = "Request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.headers = headers or {}
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, object]:
        return {"success": False, "error": self.message, "code": self.code}


class CreditExpired(CreditLibraryError):
    code = "CREDIT_EXPIRED"
    status_code = 402
    default_message = "Your credits have expired. Please purchase a plan."


class InsufficientCredits(CreditLibraryError):
    code = "INSUFFICIENT_CREDITS"
    status_code = 402
    default_message = "Not enough credits. Please buy more to continue."


class AlreadyDecided(CreditLibraryError):
    code = "ALREADY_DECIDED"
    status_code = 409
    default_message = "Request has already been processed"


class DuplicateReference(CreditLibraryError):
    code = "DUPLICATE_REFERENCE"
    status_code = 409
    default_message = "Transaction ID already submitted"


class NotFound(CreditLibraryError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class RangeNotSatisfiable(CreditLibraryError):
    code = "RANGE_NOT_SATISFIABLE"
    status_code = 416
    default_message = "Requested range not satisfiable"

    def __init__(self, size: int, message: Optional[str] = None) -> None:
        super().__init__(message, headers={"Content-Range": f"bytes */{size}"})
        self.size = size


class InvalidInput(CreditLibraryError):
    code = "INVALID_INPUT"
    status_code = 400
    default_message = "Invalid input"


class Unauthorized(CreditLibraryError):
    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "Not authorized to access this route"


class Forbidden(CreditLibraryError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Not allowed to access this route"


class InfraFailure(CreditLibraryError):
    """Storage or I/O fault. The message is internal; clients get a generic one."""

    code = "INFRA_FAILURE"
    status_code = 500
    default_message = "Internal server error"

    def to_payload(self) -> Dict[str, object]:
        return {"success": False, "error": InfraFailure.default_message, "code": self.code}
