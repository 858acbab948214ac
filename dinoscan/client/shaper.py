"""
Payload shaper: walk a ladder of compression presets until the encoded image
fits a byte budget.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from dinoscan.config import settings
from dinoscan.client.codec import CompressionPreset, EncodedPayload, RawMedia, encode

logger = logging.getLogger(__name__)

Encoder = Callable[[RawMedia, CompressionPreset], EncodedPayload]


def _ladder_from_config(name: str, fallback: Sequence[Tuple[int, float]]) -> Tuple[CompressionPreset, ...]:
    steps = settings.LADDERS.get(name) or [{"max_dimension": d, "quality": q} for d, q in fallback]
    return tuple(CompressionPreset(s["max_dimension"], s["quality"]) for s in steps)


# Live frames are noisier, so start lower; uploads get an extra rung before the floor.
CAPTURE_LADDER = _ladder_from_config(
    "capture", [(1280, 0.75), (1024, 0.68), (800, 0.62), (640, 0.56), (420, 0.50)]
)
UPLOAD_LADDER = _ladder_from_config(
    "upload", [(1600, 0.78), (1280, 0.72), (1024, 0.66), (800, 0.60), (640, 0.56), (480, 0.52)]
)


@dataclass
class ShapeResult:
    payload: EncodedPayload
    preset: CompressionPreset
    attempts: List[EncodedPayload] = field(default_factory=list)
    budget: int = 0

    @property
    def within_budget(self) -> bool:
        return self.payload.approximate_bytes <= self.budget


def shape(
    raw: RawMedia,
    budget: Optional[int] = None,
    ladder: Optional[Sequence[CompressionPreset]] = None,
    encoder: Encoder = encode,
) -> ShapeResult:
    """
    Try each preset in order and stop at the first payload at or under ``budget``.

    When the ladder runs out, the last (smallest) attempt is returned anyway;
    the gateway is the authority on whether it is still too large.
    """
    budget = settings.CLIENT_BUDGET_BYTES if budget is None else budget
    if ladder is None:
        ladder = CAPTURE_LADDER if raw.source == "capture" else UPLOAD_LADDER
    if not ladder:
        raise ValueError("Compression ladder is empty")

    attempts: List[EncodedPayload] = []
    for preset in ladder:
        payload = encoder(raw, preset)
        attempts.append(payload)
        logger.debug(
            "Encoded %dx%d at q=%.2f -> %d bytes (budget %d)",
            payload.width, payload.height, preset.quality, payload.approximate_bytes, budget,
        )
        if payload.approximate_bytes <= budget:
            return ShapeResult(payload=payload, preset=preset, attempts=attempts, budget=budget)

    logger.warning(
        "Ladder exhausted after %d attempts; smallest payload is %d bytes (budget %d)",
        len(attempts), attempts[-1].approximate_bytes, budget,
    )
    return ShapeResult(payload=attempts[-1], preset=ladder[-1], attempts=attempts, budget=budget)
