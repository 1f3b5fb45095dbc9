"""Domain exceptions shared across the booking, availability and call domains.

Services raise these; ``main.py`` renders them as ``{"success": false, ...}``
JSON responses with the matching status code.
"""

from typing import Optional


class SessionBookError(Exception):
    """Base class for expected, user-facing failures"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SessionBookError):
    """Malformed input, rejected before any write"""

    status_code = 422

    def __init__(self, message: str, field_errors: Optional[dict[str, list[str]]] = None):
        super().__init__(message)
        self.field_errors = field_errors or {}

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, {field: [message]})


def field_errors_from_pydantic(errors: list[dict]) -> dict[str, list[str]]:
    """Group pydantic error dicts by dotted field path (request location prefixes dropped)"""
    grouped: dict[str, list[str]] = {}
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "__root__"
        grouped.setdefault(field, []).append(error.get("msg", "Invalid value"))
    return grouped


class NotFoundError(SessionBookError):
    status_code = 404


class PermissionDeniedError(SessionBookError):
    status_code = 403


class DependencyError(SessionBookError):
    """A backing store failed and a partial answer would be unsafe"""

    status_code = 503


class SlotUnavailableError(SessionBookError):
    """A selected slot is no longer bookable"""

    status_code = 409


class SignalingProtocolError(SessionBookError):
    """Malformed offer/answer or a peer writing outside its role"""

    status_code = 409


class MediaAccessError(SessionBookError):
    """Camera or microphone could not be acquired"""

    status_code = 400
