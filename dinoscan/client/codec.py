"""
Media codec: decode camera frames or uploaded files and re-encode them as JPEG
at a requested (max dimension, quality) preset.
"""

from __future__ import annotations

import base64
import io
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Protocol, Union

from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

JPEG_MIME = "image/jpeg"


@dataclass(frozen=True)
class CompressionPreset:
    max_dimension: int
    quality: float

    def __post_init__(self):
        if self.max_dimension <= 0:
            raise ValueError(f"max_dimension must be positive (got {self.max_dimension})")
        if not 0 < self.quality <= 1:
            raise ValueError(f"quality must be in (0, 1] (got {self.quality})")


@dataclass(frozen=True)
class EncodedPayload:
    base64: str
    approximate_bytes: int
    mime_type: str = JPEG_MIME
    width: int = 0
    height: int = 0

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64}"


@dataclass
class RawMedia:
    """A decoded image surface, either a live frame or a static upload."""

    image: Image.Image
    source: str = "upload"

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


def approx_base64_bytes(b64: str) -> int:
    return len(b64) * 3 // 4


def decode_file(src: Union[str, Path, bytes]) -> RawMedia:
    """Decode an uploaded file, applying its EXIF orientation."""
    fp = io.BytesIO(src) if isinstance(src, (bytes, bytearray)) else src
    with Image.open(fp) as img:
        img.load()
        oriented = ImageOps.exif_transpose(img)
    return RawMedia(image=oriented, source="upload")


def decode_frame(data: bytes, width: int, height: int, mode: str = "RGB") -> RawMedia:
    """Wrap raw pixel bytes grabbed from a video stream."""
    return RawMedia(image=Image.frombytes(mode, (width, height), data), source="capture")


def target_size(width: int, height: int, max_dimension: int) -> tuple:
    largest = max(width, height)
    scale = min(1.0, max_dimension / largest)
    if scale == 1.0:
        return width, height
    new_w = max(1, round(width * scale))
    new_h = max(1, round(height * scale))
    # Pin the long side exactly; float error must not leave it one pixel off.
    if width >= height:
        new_w = max_dimension
    else:
        new_h = max_dimension
    return new_w, new_h


def encode(raw: RawMedia, preset: CompressionPreset) -> EncodedPayload:
    """Produce one JPEG payload. No surface outlives the call."""
    size = target_size(raw.width, raw.height, preset.max_dimension)

    surface = raw.image if raw.image.mode == "RGB" else raw.image.convert("RGB")
    if size != surface.size:
        surface = surface.resize(size, Image.Resampling.LANCZOS)

    buffered = io.BytesIO()
    surface.save(buffered, format="JPEG", quality=max(1, min(100, round(preset.quality * 100))))
    if surface is not raw.image:
        surface.close()

    b64 = base64.b64encode(buffered.getvalue()).decode("ascii")
    return EncodedPayload(
        base64=b64,
        approximate_bytes=approx_base64_bytes(b64),
        width=size[0],
        height=size[1],
    )


# ---------- Live capture ----------
class MediaStream(Protocol):
    def start(self) -> None: ...

    def read_frame(self) -> RawMedia: ...

    def stop(self) -> None: ...


@contextmanager
def open_stream(stream: MediaStream) -> Iterator[MediaStream]:
    """Acquire a camera stream for the duration of a view; always stop its tracks."""
    try:
        stream.start()
        yield stream
    finally:
        try:
            stream.stop()
        except Exception:
            logger.exception("Failed to stop media stream")
