# dinoscan/engines/ark_engine.py
import asyncio
import json
import logging
import time
from typing import Optional

import httpx

from .base import BaseUpstreamEngine
from dinoscan.config import settings
from dinoscan.errors import UpstreamError, UpstreamNotJSON, UpstreamTimeout, UpstreamUnavailable

logger = logging.getLogger(__name__)


def build_completions_url(base_url: str, api_version: Optional[str] = None) -> str:
    """
    Normalize an upstream base URL to the chat-completions endpoint.

    https://ark.cn-beijing.volces.com          -> .../api/v3/chat/completions
    https://ark.cn-beijing.volces.com/api/v3   -> .../api/v3/chat/completions
    .../api/v3/chat/completions                -> unchanged
    """
    version = "/" + (api_version or settings.API_VERSION_PATH).strip("/")
    base = (base_url or settings.DEFAULT_BASE_URL).strip().rstrip("/")
    if base.endswith("/chat/completions"):
        return base
    if not base.endswith(version):
        base = f"{base}{version}"
    return f"{base}/chat/completions"


class ArkEngine(BaseUpstreamEngine):
    """Single-attempt client for an OpenAI-compatible multimodal completion API."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "",
        timeout_ms: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.url = build_completions_url(base_url)
        self.timeout_ms = settings.TIMEOUT_MS if timeout_ms is None else int(timeout_ms)
        self.transport = transport

    @property
    def headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def chat_completion(self, payload: dict) -> dict:
        body = dict(payload)
        body.setdefault("model", self.model)

        started = time.monotonic()
        # The wall-clock timer below owns cancellation; httpx's own timeouts stay off.
        async with httpx.AsyncClient(timeout=None, transport=self.transport) as client:
            try:
                resp = await asyncio.wait_for(
                    client.post(self.url, json=body, headers=self.headers),
                    timeout=self.timeout_ms / 1000,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                logger.error("Upstream timed out after %sms: %s", self.timeout_ms, self.url)
                raise UpstreamTimeout(self.timeout_ms) from e
            except httpx.RequestError as e:
                logger.error("Upstream request failed: %s", e)
                raise UpstreamUnavailable(f"{type(e).__name__}: {e}") from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        raw_text = resp.text
        logger.info("Upstream %s responded %s in %sms", self.url, resp.status_code, elapsed_ms)

        limit = settings.UPSTREAM_ERROR_CHARS
        if not resp.is_success:
            raise UpstreamError(raw_text[:limit], status=resp.status_code)

        try:
            return json.loads(raw_text)
        except ValueError as e:
            raise UpstreamNotJSON(raw_text[:limit], status=resp.status_code) from e
