"""Conversation history repair applied before a payload is forwarded."""

import json
import logging
from typing import Any, Dict, List, Optional, Set

from .config import sanitizer_logger, MAX_PAYLOAD_CHARS, MIN_RETAINED_MESSAGES

logger = logging.getLogger(__name__)

PINNED_ROLES = ("system", "developer")


def serialized_size(messages: List[Dict[str, Any]]) -> int:
    """Length of the compact JSON encoding of a message list, in UTF-16 code units."""
    encoded = json.dumps(messages, separators=(",", ":"), ensure_ascii=False)
    return len(encoded.encode("utf-16-le", errors="surrogatepass")) // 2


def drop_orphaned_tool_results(
    messages: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """
    Remove tool results that reference a tool call not declared earlier.

    Tool messages whose tool_call_id was never emitted by a preceding assistant
    turn are dropped, and so are ``tool_result`` content parts whose tool_use_id
    is unknown. A message left with no content parts is dropped as a whole, and
    any tool calls it declared stop being valid.
    Order is preserved and the input messages are not mutated.
    """
    valid_ids: Set[str] = set()
    cleaned = []

    for msg in messages:
        declared = set()
        if msg.get("role") == "assistant" and msg.get("tool_calls"):
            for tool_call in msg["tool_calls"]:
                if isinstance(tool_call, dict) and tool_call.get("id"):
                    declared.add(tool_call["id"])
            declared -= valid_ids
            valid_ids |= declared

        tool_call_id = msg.get("tool_call_id")
        if msg.get("role") == "tool" and tool_call_id:
            if tool_call_id not in valid_ids:
                sanitizer_logger.warning(
                    f"Dropping orphaned tool result: {tool_call_id}"
                )
                continue

        content = msg.get("content")
        if isinstance(content, list):
            kept_parts = []
            for part in content:
                if _is_orphaned_part(part, valid_ids):
                    sanitizer_logger.warning(
                        f"Dropping orphaned tool_result block: {part['tool_use_id']}"
                    )
                    continue
                kept_parts.append(part)

            if not kept_parts:
                sanitizer_logger.warning(
                    "Dropping message with no remaining content after tool_result cleanup"
                )
                # calls of a dropped message cannot be answered later on
                valid_ids -= declared
                continue

            if len(kept_parts) != len(content):
                msg = {**msg, "content": kept_parts}

        cleaned.append(msg)

    return cleaned


def _is_orphaned_part(part: Any, valid_ids: Set[str]) -> bool:
    if not isinstance(part, dict) or part.get("type") != "tool_result":
        return False
    tool_use_id = part.get("tool_use_id")
    return bool(tool_use_id) and tool_use_id not in valid_ids


def trim_to_budget(
    messages: List[Dict[str, Any]],
    max_chars: Optional[int] = None,
    min_retained: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Evict the oldest non-pinned messages until the history fits max_chars.

    System and developer messages are never evicted and are placed first in the
    result. At least min_retained evictable messages are always kept, even if
    the ceiling is still exceeded. A history already within the ceiling is
    returned unchanged.
    """
    max_chars = MAX_PAYLOAD_CHARS if max_chars is None else max_chars
    min_retained = MIN_RETAINED_MESSAGES if min_retained is None else min_retained

    total_chars = serialized_size(messages)
    if total_chars <= max_chars:
        return messages

    sanitizer_logger.warning(
        f"Payload too large ({total_chars} chars), trimming older messages"
    )

    pinned = [m for m in messages if m.get("role") in PINNED_ROLES]
    evictable = [m for m in messages if m.get("role") not in PINNED_ROLES]

    while len(evictable) > min_retained and serialized_size(pinned + evictable) > max_chars:
        removed = evictable.pop(0)
        logger.debug(f"Trimmed message role={removed.get('role')}")

    trimmed = pinned + evictable
    sanitizer_logger.info(
        f"Trimmed to {len(trimmed)} messages ({serialized_size(trimmed)} chars)"
    )
    return trimmed


def sanitize_messages(
    messages: List[Dict[str, Any]],
    max_chars: Optional[int] = None,
    min_retained: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Drop orphaned tool results, trim to the size budget, then drop any tool
    results the trim orphaned.
    """
    cleaned = drop_orphaned_tool_results(messages)
    trimmed = trim_to_budget(cleaned, max_chars, min_retained)
    if trimmed is cleaned:
        return cleaned
    return drop_orphaned_tool_results(trimmed)


def sanitize_payload(
    payload: Dict[str, Any],
    max_chars: Optional[int] = None,
    min_retained: Optional[int] = None,
) -> Dict[str, Any]:
    """Return a copy of the payload with its message history repaired."""
    messages = sanitize_messages(list(payload.get("messages") or []), max_chars, min_retained)
    return {**payload, "messages": messages}
