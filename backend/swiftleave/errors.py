"""Error taxonomy shared by services and routers.

Every error is an ``HTTPException`` so services can raise it directly and the
API layer turns it into a response without extra mapping:

- ConfigMissing      — no store credentials or relay address configured
- RemoteUnavailable  — network or HTTP failure talking to the tabular store
- NotFound           — a decision targets an unknown request id
- ValidationFailed   — required form fields missing or malformed
- DecisionInFlight   — a decision for the same request is still running
- DecisionAlreadyRecorded — request already decided (strict mode only)
"""
from typing import Any, Optional

from fastapi import HTTPException, status


class SwiftLeaveError(HTTPException):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal error"

    def __init__(self, detail: Any = None, headers: Optional[dict[str, str]] = None):
        super().__init__(
            status_code=self.status_code,
            detail=detail if detail is not None else self.default_detail,
            headers=headers,
        )


class ConfigMissing(SwiftLeaveError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Remote store or relay is not configured"


class RemoteUnavailable(SwiftLeaveError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Remote store is unavailable. Please retry."


class NotFound(SwiftLeaveError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Request not found"


class ValidationFailed(SwiftLeaveError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Validation failed"

    def __init__(self, message: str, fields: Optional[list[str]] = None):
        self.fields = fields or []
        super().__init__(detail={"message": message, "fields": self.fields})


class DecisionInFlight(SwiftLeaveError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "A decision for this request is already being processed"


class DecisionAlreadyRecorded(SwiftLeaveError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Request has already been decided"
