"""
ModelRelay - Proxy API

Inbound endpoints for the three provider families plus a relay endpoint
for bodies of unknown origin. Requests addressed to an enabled virtual
model go through its fallback chain; everything else is passed through
untouched.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request
from fastapi.responses import Response

from ...backends.base import BackendResponse
from ...core.errors import InvalidRequestError
from ...core.formats import APIFormat, get_api_format, parse_provider
from ...fallback.dispatcher import DispatchOutcome, DispatchResult
from ...observability.logging import get_logger
from ...translation.detector import detect_format
from ..dependencies import get_request_id, get_services, read_json_body


router = APIRouter(tags=["proxy"])

logger = get_logger(__name__)

SOURCE_HEADER = "x-relay-source"


# ============================================================
# Helpers
# ============================================================

def _require_model(body: Dict[str, Any], request_id: str) -> str:
    model = body.get("model")
    if not isinstance(model, str) or not model.strip():
        raise InvalidRequestError("Field 'model' is required", param="model", request_id=request_id)
    return model


def _relay_response(
    upstream: BackendResponse,
    outcome: DispatchOutcome,
    result: Optional[DispatchResult] = None,
) -> Response:
    """Return the upstream response verbatim, tagged with X-Relay-* headers."""
    headers = {"X-Relay-Outcome": outcome.value}
    if result is not None and result.virtual_model_name:
        headers["X-Relay-Virtual-Model"] = result.virtual_model_name
        headers["X-Relay-Attempts"] = str(len(result.attempts))
        if result.entry is not None:
            headers["X-Relay-Provider"] = result.entry.provider
            headers["X-Relay-Model"] = result.entry.model_id

    return Response(
        content=upstream.body,
        status_code=upstream.status_code,
        media_type=upstream.media_type,
        headers=headers,
    )


async def relay(model: str, body: Dict[str, Any], source: APIFormat) -> Response:
    """Dispatch through the fallback chain, or pass through when bypassed."""
    services = get_services()
    result = await services.dispatcher.dispatch(model, body, source)

    if result.outcome == DispatchOutcome.BYPASSED:
        logger.debug("Passing request through", model=model, source_format=source.value)
        upstream = await services.passthrough.forward(source, model, body)
        return _relay_response(upstream, DispatchOutcome.BYPASSED)

    return _relay_response(result.response, result.outcome, result)


# ============================================================
# Endpoints
# ============================================================

@router.post("/v1/chat/completions")
async def chat_completions(request: Request):
    """OpenAI-family chat completions."""
    body = await read_json_body(request)
    model = _require_model(body, get_request_id(request))
    return await relay(model, body, APIFormat.OPENAI)


@router.post("/v1/messages")
async def messages(request: Request):
    """Anthropic-family messages."""
    body = await read_json_body(request)
    model = _require_model(body, get_request_id(request))
    return await relay(model, body, APIFormat.ANTHROPIC)


@router.post("/v1beta/models/{model}:generateContent")
async def generate_content(model: str, request: Request):
    """Google-family generateContent. The model is taken from the path."""
    body = await read_json_body(request)
    return await relay(model, body, APIFormat.GOOGLE)


@router.post("/v1/relay")
async def relay_any(request: Request):
    """
    Relay a body of unknown origin.

    The family is taken from the X-Relay-Source header (a provider id)
    when present, otherwise inferred from the body structure.
    """
    request_id = get_request_id(request)
    body = await read_json_body(request)
    model = _require_model(body, request_id)

    source_provider = request.headers.get(SOURCE_HEADER, "").strip()
    if source_provider:
        if parse_provider(source_provider) is None:
            raise InvalidRequestError(
                f"Unknown provider '{source_provider}' in X-Relay-Source",
                param="X-Relay-Source",
                request_id=request_id,
            )
        source = get_api_format(source_provider)
    else:
        source = detect_format(body)

    return await relay(model, body, source)
