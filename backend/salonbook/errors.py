"""
Scheduling error taxonomy.

Every failure raised by the scheduling services carries a human-readable
reason and a kind. Routers translate them into HTTP responses; raw
exceptions never reach the client.
"""

from fastapi import HTTPException, status


class SchedulingError(Exception):
    kind = "error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def to_detail(self) -> dict:
        return {"kind": self.kind, "reason": self.reason}


class ValidationError(SchedulingError):
    """Malformed duration, end before start, invalid time string, bad transition."""
    kind = "validation"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(SchedulingError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class OverlapError(SchedulingError):
    """The requested interval is already taken for the staff member."""
    kind = "overlap"
    status_code = status.HTTP_409_CONFLICT


class TransientIOError(SchedulingError):
    """Storage read/write failure. The caller owns the retry policy."""
    kind = "transient_io"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def to_http_exception(exc: SchedulingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())
