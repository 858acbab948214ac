# dinoscan/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base for every failure the gateway turns into a JSON error body."""

    status_code = 500
    error = "Function failed"

    def __init__(self, detail: Optional[str] = None, *, error: Optional[str] = None, **extra: Any):
        self.detail = detail
        if error is not None:
            self.error = error
        self.extra = extra
        super().__init__(detail or self.error)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.detail is not None:
            body["detail"] = self.detail
        body.update(self.extra)
        return body


# ---------- Client input ----------
class BadRequest(GatewayError):
    status_code = 400
    error = "Bad request"


class MethodNotAllowed(GatewayError):
    status_code = 405
    error = "Method Not Allowed"


class PayloadTooLarge(GatewayError):
    status_code = 413
    error = "Payload too large"


# ---------- Deployment ----------
class MisconfiguredError(GatewayError):
    status_code = 500
    error = "Missing env"


# ---------- Upstream transport ----------
class UpstreamError(GatewayError):
    status_code = 502
    error = "Upstream error"


class UpstreamTimeout(UpstreamError):
    error = "Upstream timeout"

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"Timeout after {timeout_ms}ms")


class UpstreamUnavailable(UpstreamError):
    error = "Upstream unreachable"


class UpstreamNotJSON(UpstreamError):
    error = "Non-JSON upstream"


# ---------- Upstream content ----------
class EmptyModelText(UpstreamError):
    error = "Empty model text"

    def __init__(self, raw: Any):
        super().__init__("Model returned no extractable text.", raw=raw)


class ModelNotJSON(UpstreamError):
    error = "MODEL_NOT_JSON"

    def __init__(self, snippet: str):
        self.snippet = snippet
        super().__init__(f"MODEL_NOT_JSON: {snippet}")
