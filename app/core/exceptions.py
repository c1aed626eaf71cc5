"""
Application error kinds and the single domain exception type
"""

from typing import Optional, Dict, Any, List
import enum


class ErrorKind(str, enum.Enum):
    """Closed set of error kinds; each maps to one HTTP status code"""
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    BAD_REQUEST = "BAD_REQUEST"
    VALIDATION = "VALIDATION_ERROR"
    CONFLICT = "CONFLICT"
    EXTERNAL_SERVICE = "EXTERNAL_SERVICE_ERROR"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.EXTERNAL_SERVICE: 503,
}


class WayfarerError(Exception):
    """Domain error raised by services and translated once at the HTTP boundary"""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        errors: Optional[List[Dict[str, str]]] = None
    ):
        self.kind = kind
        self.message = message
        self.details = details or {}
        self.errors = errors or []
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    @property
    def code(self) -> str:
        return self.kind.value

    @classmethod
    def not_found(cls, resource: str, identifier: Any = None) -> "WayfarerError":
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id {identifier} not found"
        return cls(ErrorKind.NOT_FOUND, message)

    @classmethod
    def unauthorized(cls, message: str = "Unauthorized, no user provided") -> "WayfarerError":
        return cls(ErrorKind.UNAUTHORIZED, message)

    @classmethod
    def forbidden(cls, message: str = "Not authorized") -> "WayfarerError":
        return cls(ErrorKind.FORBIDDEN, message)

    @classmethod
    def bad_request(cls, message: str, details: Optional[Dict[str, Any]] = None) -> "WayfarerError":
        return cls(ErrorKind.BAD_REQUEST, message, details)

    @classmethod
    def conflict(cls, message: str, details: Optional[Dict[str, Any]] = None) -> "WayfarerError":
        return cls(ErrorKind.CONFLICT, message, details)

    @classmethod
    def external_service(cls, service: str, message: str = None) -> "WayfarerError":
        return cls(
            ErrorKind.EXTERNAL_SERVICE,
            message or f"External service {service} is unavailable",
            {"service": service}
        )

    def __repr__(self):
        return f"<WayfarerError(kind={self.kind.name}, message={self.message!r})>"
