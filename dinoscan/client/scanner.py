"""
Scan flow: shape an image, analyze it through the gateway and turn the answer
into a FossilRecord tagged with where it was found.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence, Union

from dinoscan.client.codec import CompressionPreset, MediaStream, RawMedia, decode_file
from dinoscan.client.inference import AnalysisError, InferenceClient
from dinoscan.client.location import LocationProvider, resolve_location
from dinoscan.client.shaper import shape
from dinoscan.schemas.analysis import FossilRecord

logger = logging.getLogger(__name__)

RECORD_DESCRIPTION = "经由 AI 视觉算法深度分析的实地采样标本。"


class ScanInProgress(RuntimeError):
    pass


def failure_message(exc: BaseException) -> str:
    """Plain-language failure text with the raw detail appended."""
    detail = str(exc) or type(exc).__name__
    return "分析失败：\n\n" + detail


class FossilScanner:
    def __init__(
        self,
        client: Optional[InferenceClient] = None,
        locate: Optional[LocationProvider] = None,
        budget: Optional[int] = None,
    ):
        self.client = client or InferenceClient()
        self.locate = locate
        self.budget = budget
        self.busy = False

    def scan(self, raw: RawMedia, ladder: Optional[Sequence[CompressionPreset]] = None) -> FossilRecord:
        if self.busy:
            raise ScanInProgress("A scan is already running.")
        self.busy = True
        try:
            shaped = shape(raw, self.budget, ladder)
            if not shaped.within_budget:
                logger.warning(
                    "Sending %d bytes over the %d byte budget; gateway has the final say",
                    shaped.payload.approximate_bytes, shaped.budget,
                )
            result = self.client.analyze(shaped.payload)
            location = resolve_location(self.locate)
            return FossilRecord(
                id=uuid.uuid4().hex[:9],
                name=result.Name,
                era=result.Era,
                classification=result.Classification,
                length=result.Length,
                rarity=result.Rarity,
                matchConfidence=result.Confidence,
                description=RECORD_DESCRIPTION,
                note=result.Note,
                imageUrl=shaped.payload.data_url,
                timestamp=datetime.now(timezone.utc).isoformat(),
                location=location,
            )
        finally:
            self.busy = False

    def scan_file(self, src: Union[str, Path, bytes]) -> FossilRecord:
        return self.scan(decode_file(src))

    def scan_stream(self, stream: MediaStream) -> FossilRecord:
        """Grab one frame from an already opened stream (see codec.open_stream)."""
        return self.scan(stream.read_frame())

    def try_scan(self, raw: RawMedia):
        """Scan without raising; returns (record, None) or (None, message)."""
        try:
            return self.scan(raw), None
        except (AnalysisError, ScanInProgress, OSError, ValueError) as e:
            logger.error("Scan failed: %s", e)
            return None, failure_message(e)
