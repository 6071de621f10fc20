"""
LeadFlow CRM - Error taxonomy

Raised by services, turned into JSON responses by the handlers in server.py.
"""

from typing import Optional


class CrmError(Exception):
    """Base class. status_code is the HTTP status the boundary answers with."""
    status_code = 500

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        body = {"detail": self.message}
        if self.field:
            body["field"] = self.field
        return body


class ValidationError(CrmError):
    """Malformed or missing input. Always names the offending field."""
    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}", field=field)


class Forbidden(CrmError):
    status_code = 403


class NotFound(CrmError):
    status_code = 404


class Conflict(CrmError):
    status_code = 409


class Internal(CrmError):
    status_code = 500
