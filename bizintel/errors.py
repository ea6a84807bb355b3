from __future__ import annotations

from typing import Any


class BizIntelError(Exception):
    """Base error carrying the HTTP mapping used by the API layer."""

    kind = "internal_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, *, retryable: bool | None = None) -> None:
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.kind, "message": self.message, "retryable": self.retryable}


class InvalidInputError(BizIntelError):
    kind = "invalid_input"
    status_code = 400


class MalformedInputError(InvalidInputError):
    kind = "malformed_input"


class NotFoundError(BizIntelError):
    kind = "not_found"
    status_code = 404


class RateLimitedError(BizIntelError):
    kind = "rate_limited"
    status_code = 429
    retryable = True

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = max(1, int(retry_after))

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["isRateLimit"] = True
        payload["retryAfter"] = self.retry_after
        return payload


class UpstreamFailureError(BizIntelError):
    kind = "upstream_failure"
    status_code = 500


class UpstreamTimeoutError(UpstreamFailureError):
    kind = "upstream_timeout"
    retryable = True
