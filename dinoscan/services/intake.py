# dinoscan/services/intake.py
from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

from pydantic import ValidationError

from dinoscan.config import settings, MIB
from dinoscan.errors import BadRequest, PayloadTooLarge
from dinoscan.schemas.analysis import AnalyzeRequest

logger = logging.getLogger(__name__)

SUPPORTED_MODES = {"image", "text"}

JPEG_MAGIC = b"\xff\xd8\xff"
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


@dataclass
class ImageJob:
    image_base64: str
    mime_type: str


@dataclass
class TextJob:
    prompt: str
    context: Dict[str, Any]


async def read_json_body(chunks: AsyncIterator[bytes], limit: Optional[int] = None) -> Dict[str, Any]:
    """Buffer a request body, giving up as soon as it crosses ``limit`` bytes."""
    limit = settings.REQUEST_MAX_BYTES if limit is None else limit
    buf = bytearray()
    async for chunk in chunks:
        buf.extend(chunk)
        if len(buf) > limit:
            raise PayloadTooLarge(
                "请求体过大，超过网关限制。请在前端压缩/降低图片分辨率后重试。",
            )

    try:
        data = json.loads(bytes(buf).decode("utf-8") or "{}")
    except (ValueError, RecursionError) as e:
        raise BadRequest(str(e), error="Bad JSON")
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object.", error="Bad JSON")
    return data


def base64_bytes(b64: str) -> int:
    """Estimated decoded size; exact for unpadded input, at most 2 over otherwise."""
    return len(b64) * 3 // 4


def sniff_image_mime(raw: bytes) -> Optional[str]:
    if raw.startswith(JPEG_MAGIC):
        return "image/jpeg"
    if raw.startswith(PNG_MAGIC):
        return "image/png"
    if len(raw) >= 12 and raw[:4] == b"RIFF" and raw[8:12] == b"WEBP":
        return "image/webp"
    return None


def _split_data_url(value: str) -> tuple:
    # data:image/png;base64,<payload>
    if value.startswith("data:") and "," in value:
        header, payload = value.split(",", 1)
        mime = header[len("data:"):].split(";", 1)[0].strip()
        return payload, (mime or None)
    return value, None


def check_image(image_base64: str, mime_type: Optional[str] = None, limit: Optional[int] = None) -> ImageJob:
    """Enforce the image budget and make sure the bytes look like an image."""
    limit = settings.IMAGE_MAX_BYTES if limit is None else limit
    payload, url_mime = _split_data_url(image_base64.strip())
    payload = "".join(payload.split())
    if not payload:
        raise BadRequest("imageBase64 is required for image analysis.", error="Missing imageBase64")

    estimated = base64_bytes(payload)
    if estimated > limit:
        raise PayloadTooLarge(
            f"图片过大（约 {estimated / MIB:.2f}MB）。请降低分辨率/质量（建议 <= {limit / MIB:.1f}MB）。",
            error="Image too large",
        )

    # Clients may strip trailing "="; restore it so unpadded input still decodes.
    payload += "=" * (-len(payload) % 4)
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise BadRequest(f"imageBase64 is not valid base64: {e}", error="Invalid image")

    sniffed = sniff_image_mime(raw[:16])
    if sniffed is None:
        raise BadRequest("Decoded bytes are not a JPEG, PNG or WEBP image.", error="Invalid image")

    declared = (mime_type or url_mime or "").strip().lower()
    if declared != sniffed:
        logger.info("Declared mime %r does not match sniffed %s; using sniffed type", declared or None, sniffed)
    return ImageJob(image_base64=payload, mime_type=sniffed)


def resolve_job(body: Dict[str, Any]):
    """Validate an analyze body and return the ImageJob or TextJob it describes."""
    try:
        req = AnalyzeRequest.model_validate(body)
    except ValidationError as e:
        raise BadRequest(str(e), error="Invalid request")

    mode = (req.mode or "").strip().lower()
    has_image = bool(req.imageBase64 and req.imageBase64.strip())
    has_prompt = bool(req.prompt and req.prompt.strip())

    if not mode:
        if has_image and has_prompt:
            raise BadRequest("Send either imageBase64 or prompt, or set mode explicitly.", error="Ambiguous request")
        mode = "text" if has_prompt else "image"

    if mode not in SUPPORTED_MODES:
        raise BadRequest(f"mode must be one of {sorted(SUPPORTED_MODES)} (got: {req.mode})", error="Invalid mode")

    if mode == "text":
        if not has_prompt:
            raise BadRequest("prompt is required in text mode.", error="Missing prompt")
        return TextJob(prompt=req.prompt.strip(), context=dict(req.context or {}))

    if not has_image:
        raise BadRequest("imageBase64 is required for image analysis.", error="Missing imageBase64")
    return check_image(req.imageBase64, req.mimeType)
