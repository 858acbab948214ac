from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Callable, Optional, Tuple

from dinoscan.config import settings
from dinoscan.schemas.analysis import Coordinates

logger = logging.getLogger(__name__)

LocationProvider = Callable[[], Tuple[float, float]]


def fallback_location() -> Coordinates:
    return Coordinates(**settings.FALLBACK_LOCATION)


def resolve_location(provider: Optional[LocationProvider], timeout: Optional[float] = None) -> Coordinates:
    """Best-effort device position; any failure or a slow fix yields the fallback coordinate."""
    if provider is None:
        return fallback_location()
    timeout = settings.LOCATION_TIMEOUT if timeout is None else timeout

    pool = ThreadPoolExecutor(max_workers=1)
    try:
        lat, lng = pool.submit(provider).result(timeout=timeout)
        return Coordinates(lat=float(lat), lng=float(lng))
    except FutureTimeout:
        logger.info("Location lookup timed out after %ss; using fallback", timeout)
    except Exception as e:
        logger.info("Location lookup failed (%s); using fallback", e)
    finally:
        # Don't wait for a provider that is still blocking.
        pool.shutdown(wait=False)
    return fallback_location()
