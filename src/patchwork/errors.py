"""Error types raised by Patchwork proxy and the JSON bodies they map to."""

from typing import Any, Dict, Optional


class ProxyError(Exception):
    """Base error carrying the HTTP status and error type sent to the caller."""

    status_code = 500
    error_type = "proxy_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_response_body(self) -> Dict[str, Any]:
        return {"error": {"message": self.message, "type": self.error_type}}


class InvalidRequestError(ProxyError):
    status_code = 400
    error_type = "invalid_request_error"


class AuthError(ProxyError):
    status_code = 401
    error_type = "auth_error"


class RateLimitExceeded(ProxyError):
    status_code = 429
    error_type = "rate_limit_error"


class ApprovalRejected(ProxyError):
    status_code = 403
    error_type = "approval_rejected"


class BackendError(ProxyError):
    """
    Non-2xx answer from the backend. The body is passed back to the caller
    unmodified, so to_response_body returns it as-is.
    """

    error_type = "backend_error"

    def __init__(self, status_code: int, body: Any):
        super().__init__(f"Backend returned status {status_code}", status_code)
        self.body = body

    def to_response_body(self) -> Any:
        return self.body
