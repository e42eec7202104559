"""FastAPI application and routes for Patchwork proxy."""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from .config import (
    config,
    OPENAI_API_BASE,
    TIMEOUT,
    FETCH_MODELS,
    HOST,
    PORT,
    MAX_PAYLOAD_CHARS,
    MIN_RETAINED_MESSAGES,
    RATE_LIMIT_SECONDS,
    RATE_LIMIT_WAIT,
    MANUAL_APPROVE,
)
from .approval import await_approval
from .backends import create_chat_completions, fill_max_tokens, is_non_streaming, resolve_headers
from .errors import AuthError, InvalidRequestError, ProxyError
from .models import ChatCompletionsPayload
from .rate_limit import RateLimiter
from .registry import ModelRegistry
from .sanitizer import sanitize_payload
from .streaming import relay_stream
from .tokenizer import get_token_count

logger = logging.getLogger(__name__)

registry = ModelRegistry.from_config(config["models"])
rate_limiter = RateLimiter(RATE_LIMIT_SECONDS, RATE_LIMIT_WAIT)

# Replaced in tests; None prompts on the terminal
approver = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    if FETCH_MODELS:
        try:
            headers = resolve_headers({})
        except AuthError as e:
            logger.warning(f"Skipping model fetch: {e.message}")
        else:
            await registry.refresh(OPENAI_API_BASE, headers, TIMEOUT)
    yield


app = FastAPI(title="Patchwork Proxy", lifespan=lifespan)


def error_response(error: ProxyError) -> Response:
    return Response(
        content=json.dumps(error.to_response_body()),
        status_code=error.status_code,
        media_type="application/json",
    )


def parse_payload(body: bytes) -> Dict[str, Any]:
    try:
        request_data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidRequestError("Invalid JSON")

    # must re-encode as strict UTF-8 JSON for the backend
    try:
        json.dumps(request_data, ensure_ascii=False, allow_nan=False).encode("utf-8")
    except ValueError:
        raise InvalidRequestError("Invalid JSON")

    try:
        ChatCompletionsPayload.model_validate(request_data)
    except ValidationError as e:
        raise InvalidRequestError(f"Invalid chat completions payload: {e.errors()[0]['msg']}")
    return request_data


@app.post("/chat/completions")
@app.post("/v1/chat/completions")
async def proxy_chat_completions(request: Request) -> Response:
    """
    Chat completions endpoint:
    - Repairs orphaned tool results and oversized histories
    - Fills max_tokens from the model's output limit when omitted
    - Returns the backend's JSON body, or relays its event stream
    """
    try:
        headers = resolve_headers(dict(request.headers))
        await rate_limiter.check()

        payload = parse_payload(await request.body())
        logger.debug(f"Request payload: {json.dumps(payload)[-400:]}")

        selected_model = registry.get(payload.get("model"))

        try:
            if selected_model:
                token_count = get_token_count(payload, selected_model)
                logger.info(f"Current token count: {token_count.model_dump()}")
            else:
                logger.warning("No model selected, skipping token count calculation")
        except Exception as e:
            logger.warning(f"Failed to calculate token count: {str(e)}")

        if MANUAL_APPROVE:
            await await_approval(approver)

        payload = sanitize_payload(payload, MAX_PAYLOAD_CHARS, MIN_RETAINED_MESSAGES)
        payload = fill_max_tokens(payload, selected_model)

        result = await create_chat_completions(payload, headers, OPENAI_API_BASE, TIMEOUT)
    except ProxyError as e:
        return error_response(e)
    except httpx.HTTPError as e:
        logger.error(f"Error calling backend: {str(e)}")
        return Response(
            content=json.dumps(
                {
                    "error": {
                        "message": "An error occurred while contacting the backend",
                        "type": "proxy_error",
                        "details": str(e),
                    }
                }
            ),
            status_code=502,
            media_type="application/json",
        )

    if not result.is_stream:
        if not is_non_streaming(result.body):
            logger.warning("Backend response carries no choices field")
        return Response(
            content=json.dumps(result.body),
            status_code=200,
            media_type="application/json",
        )

    return StreamingResponse(
        relay_stream(result, request.is_disconnected),
        media_type="text/event-stream",
    )


@app.get("/models")
@app.get("/v1/models")
async def list_models():
    """Models known to the proxy"""
    return registry.to_listing()


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=HOST, port=PORT)
