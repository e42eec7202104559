"""Streaming response handling for Patchwork proxy."""

import logging
from typing import AsyncGenerator, AsyncIterator, Awaitable, Callable, List, Optional

from .models import CompletionResult, StreamEvent

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


async def parse_sse_events(lines: AsyncIterator[str]) -> AsyncGenerator[StreamEvent, None]:
    """
    Decode server-sent events from an async iterator of text lines.

    ``data:`` lines accumulate until a blank line dispatches the event; lines
    starting with ``:`` are comments. An event still pending when the input
    ends is dispatched as well.
    """
    data_lines: List[str] = []
    event_type: Optional[str] = None
    event_id: Optional[str] = None
    retry: Optional[int] = None

    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")

        if not line:
            if data_lines:
                yield StreamEvent(
                    data="\n".join(data_lines), event=event_type, id=event_id, retry=retry
                )
            data_lines, event_type, event_id, retry = [], None, None, None
            continue

        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if name == "data":
            data_lines.append(value)
        elif name == "event":
            event_type = value
        elif name == "id":
            event_id = value
        elif name == "retry":
            if value.isdigit():
                retry = int(value)
        else:
            logger.debug(f"Ignoring unknown SSE field: {name}")

    if data_lines:
        yield StreamEvent(data="\n".join(data_lines), event=event_type, id=event_id, retry=retry)


def format_sse(event: StreamEvent) -> bytes:
    """Encode a StreamEvent in the SSE wire format."""
    lines = []
    if event.event:
        lines.append(f"event: {event.event}")
    if event.id is not None:
        lines.append(f"id: {event.id}")
    if event.retry is not None:
        lines.append(f"retry: {event.retry}")
    for data_line in event.data.split("\n"):
        lines.append(f"data: {data_line}")
    return ("\n".join(lines) + "\n\n").encode()


async def relay_stream(
    result: CompletionResult,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncGenerator[bytes, None]:
    """
    Forward backend events to the caller as they arrive.

    The ``[DONE]`` sentinel is consumed and ends the relay without being
    re-emitted. The relay also stops as soon as the caller has disconnected.
    The backend connection is released on every exit path.
    """
    events = result.events.__aiter__()
    try:
        while True:
            if is_disconnected is not None and await is_disconnected():
                logger.info("Client disconnected, stopping stream relay")
                break

            try:
                event = await events.__anext__()
            except StopAsyncIteration:
                logger.debug("Backend stream ended")
                break

            if event.data == DONE_SENTINEL:
                logger.debug("Received [DONE], ending stream")
                break

            logger.debug(f"Streaming chunk: {event.data[-200:]}")
            yield format_sse(event)
    finally:
        await result.aclose()
