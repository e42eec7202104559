"""Backend handling for Patchwork proxy."""

import json
import logging
import os
from typing import Dict, Any, Optional

import httpx

from .errors import AuthError, BackendError
from .models import CompletionResult, ModelInfo
from .streaming import parse_sse_events

logger = logging.getLogger(__name__)


def resolve_headers(request_headers: Dict[str, str]) -> Dict[str, str]:
    """
    Build the headers sent to the backend.

    The caller's Authorization header is forwarded as-is; without one the
    OPENAI_API_KEY environment variable is used as a Bearer token.
    """
    lowered = {k.lower(): v for k, v in request_headers.items()}
    auth_header = lowered.get("authorization")
    if not auth_header:
        api_key = os.environ.get("OPENAI_API_KEY", "")
        if not api_key:
            raise AuthError(
                "Authorization header is required and OPENAI_API_KEY environment variable is not set"
            )
        auth_header = f"Bearer {api_key}"

    return {
        "Authorization": auth_header,
        "Content-Type": "application/json",
    }


def fill_max_tokens(payload: Dict[str, Any], model: Optional[ModelInfo]) -> Dict[str, Any]:
    """
    Default max_tokens to the model's output limit when the payload omits it.
    Unknown models leave the payload as it is.
    """
    if payload.get("max_tokens") is not None:
        return payload

    limit = model.capabilities.limits.max_output_tokens if model else None
    if limit is None:
        return payload

    logger.debug(f"Set max_tokens to: {limit}")
    return {**payload, "max_tokens": limit}


def is_non_streaming(response: Any) -> bool:
    """True for a decoded completion body, recognised by its choices field."""
    return isinstance(response, dict) and "choices" in response


async def create_chat_completions(
    payload: Dict[str, Any], headers: Dict[str, str], base_url: str, timeout: float
) -> CompletionResult:
    """
    Forward a payload to the backend's chat completions endpoint.

    Returns a "stream" result for text/event-stream answers and a "response"
    result otherwise. Non-2xx answers raise BackendError with the backend's
    body; transport failures propagate as httpx.HTTPError.
    """
    target_url = f"{base_url}/chat/completions"
    logger.info(f"Calling backend at {target_url}")

    client = httpx.AsyncClient(timeout=timeout)
    request_headers = dict(headers)
    if payload.get("stream"):
        request_headers["Accept"] = "text/event-stream"

    try:
        request = client.build_request("POST", target_url, json=payload, headers=request_headers)
        response = await client.send(request, stream=True)
    except Exception:
        await client.aclose()
        raise

    async def close() -> None:
        try:
            await response.aclose()
        finally:
            await client.aclose()

    content_type = response.headers.get("content-type", "")

    if response.status_code >= 300:
        try:
            content = await response.aread()
        finally:
            await close()
        raise BackendError(response.status_code, _decode_error(content))

    if "text/event-stream" in content_type:
        logger.debug("Streaming response")
        return CompletionResult(
            kind="stream",
            events=parse_sse_events(response.aiter_lines()),
            closer=close,
        )

    try:
        content = await response.aread()
    finally:
        await close()

    try:
        body = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise BackendError(
            502,
            {"error": {"message": "Backend returned invalid JSON", "type": "backend_error"}},
        )

    logger.debug(f"Non-streaming response: {json.dumps(body)[-400:]}")
    return CompletionResult(kind="response", body=body)


def _decode_error(content: Any) -> Any:
    if isinstance(content, bytes):
        content = content.decode(errors="replace")
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        return {"error": {"message": content, "type": "backend_error"}}
