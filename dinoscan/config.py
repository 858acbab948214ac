# dinoscan/config.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

MIB = 1024 * 1024


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _normalize_ladder(raw: Any) -> List[Dict[str, Any]]:
    # Supports:
    # capture:
    #   - {max-dimension: 1280, quality: 0.75}
    #   - [1024, 0.68]
    if not isinstance(raw, list):
        return []
    out: List[Dict[str, Any]] = []
    for item in raw:
        if isinstance(item, dict):
            dim = item.get("max-dimension", item.get("max_dimension"))
            quality = item.get("quality")
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            dim, quality = item
        else:
            continue
        try:
            out.append({"max_dimension": int(dim), "quality": float(quality)})
        except (TypeError, ValueError):
            continue
    return out


class AppConfig:
    """
    Minimal YAML config loader.
    Default path: ./dinoscan/configs/config.yaml (override with DINOSCAN_CONFIG)
    """

    def __init__(self, path: Optional[str] = None):
        base_dir = Path(__file__).resolve().parent  # .../dinoscan
        env_path = os.environ.get("DINOSCAN_CONFIG")
        if path:
            self.path = Path(path)
        elif env_path:
            self.path = Path(env_path)
        else:
            self.path = base_dir / "configs" / "config.yaml"
        self.data: Dict[str, Any] = {}

        if self.path.exists():
            with self.path.open("r", encoding="utf-8") as f:
                self.data = yaml.safe_load(f) or {}

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    @property
    def gateway(self) -> Dict[str, Any]:
        return _section(self.data, "gateway")

    @property
    def upstream(self) -> Dict[str, Any]:
        return _section(self.data, "upstream")

    @property
    def client(self) -> Dict[str, Any]:
        return _section(self.data, "client")

    # ---------- Gateway limits ----------
    @property
    def REQUEST_MAX_BYTES(self) -> int:
        return int(self.gateway.get("request-max-bytes", int(4.2 * MIB)))

    @property
    def IMAGE_MAX_BYTES(self) -> int:
        return int(self.gateway.get("image-max-bytes", int(1.8 * MIB)))

    @property
    def UPSTREAM_ERROR_CHARS(self) -> int:
        return int(self.gateway.get("upstream-error-chars", 2000))

    @property
    def MODEL_TEXT_CHARS(self) -> int:
        return int(self.gateway.get("model-text-chars", 240))

    # ---------- Upstream call ----------
    @property
    def DEFAULT_BASE_URL(self) -> str:
        return str(self.upstream.get("base-url", "https://ark.cn-beijing.volces.com"))

    @property
    def API_VERSION_PATH(self) -> str:
        return str(self.upstream.get("api-version", "/api/v3"))

    @property
    def TIMEOUT_MS(self) -> int:
        return int(self.upstream.get("timeout-ms", 20000))

    @property
    def TEMPERATURE(self) -> float:
        return float(self.upstream.get("temperature", 0.2))

    @property
    def MAX_TOKENS(self) -> int:
        return int(self.upstream.get("max-tokens", 1200))

    # ---------- Capture client ----------
    @property
    def GATEWAY_URL(self) -> str:
        return str(self.client.get("gateway-url", "http://localhost:8000"))

    @property
    def CLIENT_BUDGET_BYTES(self) -> int:
        # Falls back to the gateway ceiling so the client never targets more than the server accepts.
        return int(self.client.get("budget-bytes", self.IMAGE_MAX_BYTES))

    @property
    def CLIENT_TIMEOUT(self) -> float:
        return float(self.client.get("request-timeout", 30))

    @property
    def LOCATION_TIMEOUT(self) -> float:
        return float(self.client.get("location-timeout", 5))

    @property
    def FALLBACK_LOCATION(self) -> Dict[str, float]:
        raw = self.client.get("fallback-location") or {}
        return {
            "lat": float(raw.get("lat", 39.9042)),
            "lng": float(raw.get("lng", 116.4074)),
        }

    @property
    def LADDERS(self) -> Dict[str, List[Dict[str, Any]]]:
        raw = self.client.get("ladders") or {}
        if not isinstance(raw, dict):
            return {}
        return {str(name): _normalize_ladder(steps) for name, steps in raw.items()}


config = AppConfig()
settings = config
