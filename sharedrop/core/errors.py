"""Error taxonomy for limit enforcement and the HTTP layer.

Every error carries the HTTP status it maps to and a human readable
message. ``main.py`` renders them as ``{"error": message, **extra}``.
"""
from typing import Any, Dict, Optional


class SharedropError(Exception):
    status_code = 500

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        body.update(self.extra)
        return body


class ValidationFailed(SharedropError):
    status_code = 400


class Unauthorized(SharedropError):
    status_code = 401


class AccessDenied(SharedropError):
    status_code = 403


class QuotaExceeded(SharedropError):
    """A plan ceiling was hit. Always names the numeric limit and the plan."""

    status_code = 403

    def __init__(self, message: str, *, limit: int, plan: Optional[str] = None):
        super().__init__(message, limit=limit, plan=plan)
        self.limit = limit
        self.plan = plan


class NoApiAccess(SharedropError):
    status_code = 403


class NotFound(SharedropError):
    status_code = 404


class UniquenessConflict(SharedropError):
    status_code = 409


class RateLimited(SharedropError):
    status_code = 429

    def __init__(self, message: str, *, limit: int):
        super().__init__(message, limit=limit)
        self.limit = limit


class UpstreamFailure(SharedropError):
    status_code = 502


class ServerMisconfigured(SharedropError):
    status_code = 500
