# dinoscan/routes.py
import logging

from fastapi import APIRouter, Request, Response
from fastapi.responses import PlainTextResponse

from dinoscan.config import settings
from dinoscan.cores.factory import EngineFactory
from dinoscan.errors import MethodNotAllowed
from dinoscan.schemas.analysis import ChatMessage, ChatRequest
from dinoscan.services.intake import ImageJob, TextJob, read_json_body, resolve_job
from dinoscan.services.normalizer import extract_json, extract_text, normalize_analysis, normalize_insight
from dinoscan.services.prompts import ANALYSIS_PROMPT, build_text_prompt

logger = logging.getLogger(__name__)

router = APIRouter()
factory = EngineFactory()


def build_upstream_payload(job, model: str) -> dict:
    if isinstance(job, ImageJob):
        content = [
            {"type": "text", "text": ANALYSIS_PROMPT},
            {"type": "image_url", "image_url": {"url": f"data:{job.mime_type};base64,{job.image_base64}"}},
        ]
    else:
        content = build_text_prompt(job.prompt, job.context)

    req = ChatRequest(
        model=model,
        messages=[ChatMessage(role="user", content=content)],
        temperature=settings.TEMPERATURE,
        max_tokens=settings.MAX_TOKENS,
    )
    return req.model_dump(exclude={"stream"})


@router.api_route("/ping", methods=["GET", "POST"])
def ping():
    return PlainTextResponse("pong")


@router.options("/ping")
def ping_preflight():
    return Response(status_code=204)


@router.options("/analyze")
def analyze_preflight():
    # Never touches settings: preflight must succeed even on a broken deployment.
    return Response(status_code=204)


@router.api_route("/analyze", methods=["GET", "PUT", "PATCH", "DELETE"])
def analyze_wrong_method():
    raise MethodNotAllowed("Use POST /analyze with JSON body.")


@router.post("/analyze")
async def analyze(request: Request):
    engine = factory.resolve_engine()
    body = await read_json_body(request.stream())
    job = resolve_job(body)

    payload = build_upstream_payload(job, engine.model)
    envelope = await engine.chat_completion(payload)
    text = extract_text(envelope)

    if isinstance(job, TextJob):
        return normalize_insight(text)

    result = normalize_analysis(extract_json(text))
    logger.info("Analyzed specimen: %s (%s, %.0f%%)", result.Name, result.Rarity, result.Confidence)
    return result.model_dump()
