"""
Inference client - talks to the gateway's /analyze endpoint.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from dinoscan.config import settings
from dinoscan.client.codec import EncodedPayload
from dinoscan.services.normalizer import normalize_analysis
from dinoscan.schemas.analysis import AnalysisResult

logger = logging.getLogger(__name__)

ERROR_BODY_CHARS = 2000


class AnalysisError(Exception):
    """Gateway answered with a non-2xx status or an unreadable body."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"API {status}: {body}")


class InferenceClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or settings.GATEWAY_URL).rstrip("/")
        self.timeout = settings.CLIENT_TIMEOUT if timeout is None else timeout
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    @staticmethod
    def _error_text(resp: httpx.Response) -> str:
        try:
            data = resp.json()
        except ValueError:
            return resp.text[:ERROR_BODY_CHARS]
        if isinstance(data, dict) and data.get("detail"):
            text = f"{data.get('error', '')}: {data['detail']}".strip(": ")
        else:
            text = resp.text
        return text[:ERROR_BODY_CHARS]

    def _post(self, body: Dict[str, Any]) -> Any:
        with self._client() as client:
            try:
                resp = client.post("/analyze", json=body)
            except httpx.RequestError as e:
                raise AnalysisError(0, f"{type(e).__name__}: {e}") from e

        if not resp.is_success:
            raise AnalysisError(resp.status_code, self._error_text(resp))
        try:
            return resp.json()
        except ValueError as e:
            raise AnalysisError(resp.status_code, f"Invalid JSON from /analyze: {resp.text[:200]}") from e

    def analyze(self, payload: EncodedPayload, mime_type: Optional[str] = None) -> AnalysisResult:
        """Send a shaped payload; every field of the result is populated."""
        data = self._post({"imageBase64": payload.base64, "mimeType": mime_type or payload.mime_type})
        if not isinstance(data, dict):
            raise AnalysisError(200, f"Unexpected response: {str(data)[:200]}")
        return normalize_analysis(data)

    def insight(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        data = self._post({"mode": "text", "prompt": prompt, "context": context or {}})
        if not isinstance(data, dict):
            raise AnalysisError(200, f"Unexpected response: {str(data)[:200]}")
        return data

    def ping(self) -> bool:
        with self._client() as client:
            try:
                resp = client.get("/ping")
            except httpx.RequestError:
                return False
        return resp.status_code == 200 and resp.text.strip() == "pong"
