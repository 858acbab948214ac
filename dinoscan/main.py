# dinoscan/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dinoscan.config import config as settings
from dinoscan.errors import GatewayError
from dinoscan.routes import router as api_router
from dinoscan.services.validator import validate_config_file

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("dinoscan-gateway")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

app = FastAPI(title="DinoScan Gateway")

# Browser clients and the original /api/* paths both reach the same handlers.
app.include_router(api_router)
app.include_router(api_router, prefix="/api")


@app.middleware("http")
async def cors_and_last_resort(request: Request, call_next):
    try:
        response = await call_next(request)
    except Exception as e:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        response = JSONResponse(status_code=500, content={"error": "Function failed", "detail": str(e)})
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    if exc.status_code >= 500:
        logger.error("%s %s -> %s %s: %s", request.method, request.url.path, exc.status_code, exc.error, exc.detail)
    else:
        logger.warning("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.error)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.on_event("startup")
def startup() -> None:
    # Validate config.yaml early (fail fast)
    res = validate_config_file(settings.path)
    if not res.ok:
        raise RuntimeError("Invalid config.yaml:\n" + "\n".join(res.errors))
    for w in res.warnings:
        logger.warning("config: %s", w)

    logger.info(
        "Gateway started. Upstream timeout=%sms | image ceiling=%s bytes | request ceiling=%s bytes",
        settings.TIMEOUT_MS,
        settings.IMAGE_MAX_BYTES,
        settings.REQUEST_MAX_BYTES,
    )
