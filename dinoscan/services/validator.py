# dinoscan/services/validator.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

import re
import yaml


MIN_TIMEOUT_MS = 1000
MAX_TIMEOUT_MS = 60000
MIN_MAX_TOKENS = 900
REQUIRED_LADDERS = ("capture", "upload")


@dataclass
class ValidationResult:
    ok: bool
    errors: List[str]
    warnings: List[str]
    normalized_config: Dict[str, Any]


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError("Config YAML must be a mapping (top-level dict).")
    return data


def _is_http_url(s: str) -> bool:
    return bool(re.match(r"^https?://", s.strip()))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate_ladder(name: str, steps: Any, errors: List[str], warnings: List[str]) -> None:
    where = f"client.ladders.{name}"
    if not isinstance(steps, list) or not steps:
        errors.append(f"{where} must be a non-empty list of presets.")
        return

    previous_dim = None
    for i, step in enumerate(steps):
        if not isinstance(step, dict):
            errors.append(f"{where}[{i}] must be a mapping with max-dimension and quality.")
            continue
        dim = step.get("max-dimension")
        quality = step.get("quality")
        if not isinstance(dim, int) or isinstance(dim, bool) or dim <= 0:
            errors.append(f"{where}[{i}].max-dimension must be a positive integer (got: {dim!r}).")
            continue
        if not _is_number(quality) or not 0 < quality <= 1:
            errors.append(f"{where}[{i}].quality must be in (0, 1] (got: {quality!r}).")
        if previous_dim is not None and dim > previous_dim:
            errors.append(
                f"{where}[{i}].max-dimension={dim} is larger than the previous preset ({previous_dim}); "
                "ladders must descend."
            )
        previous_dim = dim

    if len(steps) == 1:
        warnings.append(f"{where} has a single preset. Oversized inputs get no second attempt.")


def validate_config_dict(cfg: Dict[str, Any]) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    normalized = dict(cfg)

    gateway = normalized.get("gateway") or {}
    upstream = normalized.get("upstream") or {}
    client = normalized.get("client") or {}
    for name, section in (("gateway", gateway), ("upstream", upstream), ("client", client)):
        if not isinstance(section, dict):
            errors.append(f"'{name}' section must be a mapping.")
    if errors:
        return ValidationResult(False, errors, warnings, normalized)

    request_max = gateway.get("request-max-bytes")
    image_max = gateway.get("image-max-bytes")
    for field_name, value in (("request-max-bytes", request_max), ("image-max-bytes", image_max)):
        if value is not None and (not isinstance(value, int) or isinstance(value, bool) or value <= 0):
            errors.append(f"gateway.{field_name} must be a positive integer when provided.")
    if isinstance(request_max, int) and isinstance(image_max, int) and image_max * 4 / 3 >= request_max:
        errors.append(
            "gateway.image-max-bytes encoded as base64 must fit inside gateway.request-max-bytes."
        )

    base_url = upstream.get("base-url")
    if base_url is not None:
        if not isinstance(base_url, str) or not _is_http_url(base_url):
            errors.append(f"upstream.base-url must start with http:// or https:// (got: {base_url})")

    timeout_ms = upstream.get("timeout-ms")
    if timeout_ms is not None:
        if not isinstance(timeout_ms, int) or not MIN_TIMEOUT_MS <= timeout_ms <= MAX_TIMEOUT_MS:
            errors.append(
                f"upstream.timeout-ms must be an integer in [{MIN_TIMEOUT_MS}, {MAX_TIMEOUT_MS}] (got: {timeout_ms!r})."
            )

    temperature = upstream.get("temperature")
    if temperature is not None:
        if not _is_number(temperature) or not 0 <= temperature <= 2:
            errors.append(f"upstream.temperature must be in [0, 2] (got: {temperature!r}).")
        elif temperature > 0.5:
            warnings.append(
                f"upstream.temperature={temperature} is high. Expect more replies that are not pure JSON."
            )

    max_tokens = upstream.get("max-tokens")
    if max_tokens is not None:
        if not isinstance(max_tokens, int) or max_tokens < MIN_MAX_TOKENS:
            errors.append(
                f"upstream.max-tokens must be an integer >= {MIN_MAX_TOKENS} (got: {max_tokens!r}); "
                "reasoning output can otherwise exhaust the budget before the answer."
            )

    gateway_url = client.get("gateway-url")
    if gateway_url is not None and (not isinstance(gateway_url, str) or not _is_http_url(gateway_url)):
        errors.append(f"client.gateway-url must start with http:// or https:// (got: {gateway_url})")

    budget = client.get("budget-bytes")
    if budget is not None and isinstance(image_max, int) and _is_number(budget) and budget > image_max:
        warnings.append(
            f"client.budget-bytes={budget} exceeds gateway.image-max-bytes={image_max}. "
            "The gateway will reject payloads the client accepts."
        )

    ladders = client.get("ladders")
    if ladders is not None:
        if not isinstance(ladders, dict):
            errors.append("client.ladders must be a mapping of ladder name to preset list.")
        else:
            for name in REQUIRED_LADDERS:
                if name not in ladders:
                    errors.append(f"client.ladders.{name} is required.")
            for name, steps in ladders.items():
                _validate_ladder(str(name), steps, errors, warnings)

    ok = len(errors) == 0
    return ValidationResult(ok=ok, errors=errors, warnings=warnings, normalized_config=normalized)


def validate_config_file(path: str | Path) -> ValidationResult:
    p = Path(path)
    cfg = _load_yaml(p)
    return validate_config_dict(cfg)


def print_result(res: ValidationResult) -> None:
    if res.ok:
        print("Config validation PASSED")
    else:
        print("Config validation FAILED")

    if res.warnings:
        print("")
        print("Warnings:")
        for w in res.warnings:
            print(f"  - {w}")

    if res.errors:
        print("")
        print("Errors:")
        for e in res.errors:
            print(f"  - {e}")


def main() -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Validate DinoScan gateway config.yaml")
    parser.add_argument(
        "--config",
        default=str(Path(__file__).resolve().parent.parent / "configs" / "config.yaml"),
        help="Path to config.yaml (default: ./dinoscan/configs/config.yaml)",
    )
    args = parser.parse_args()

    res = validate_config_file(args.config)
    print_result(res)
    return 0 if res.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
