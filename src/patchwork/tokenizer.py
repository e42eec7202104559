"""Token counting for Patchwork proxy."""

import json
import logging
from functools import lru_cache
from typing import Any, Dict, List

import tiktoken

from .models import ModelInfo, TokenCount

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "o200k_base"
TOKENS_PER_MESSAGE = 3


@lru_cache(maxsize=8)
def get_encoding(name: str):
    return tiktoken.get_encoding(name)


def message_text(message: Dict[str, Any]) -> str:
    """Concatenate the countable text of a message."""
    pieces = []
    content = message.get("content")
    if isinstance(content, str):
        pieces.append(content)
    elif isinstance(content, list):
        for part in content:
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                pieces.append(part["text"])
    if message.get("tool_calls"):
        pieces.append(json.dumps(message["tool_calls"]))
    return "\n".join(pieces)


def count_messages(messages: List[Dict[str, Any]], encoding) -> int:
    total = 0
    for message in messages:
        total += TOKENS_PER_MESSAGE + len(encoding.encode(message_text(message)))
    return total


def get_token_count(payload: Dict[str, Any], model: ModelInfo) -> TokenCount:
    """
    Count input and output tokens of a payload with the model's tokenizer.

    Assistant messages are output, every other role is input.
    """
    encoding = get_encoding(model.capabilities.tokenizer or DEFAULT_ENCODING)
    messages = payload.get("messages") or []
    input_messages = [m for m in messages if m.get("role") != "assistant"]
    output_messages = [m for m in messages if m.get("role") == "assistant"]
    return TokenCount(
        input=count_messages(input_messages, encoding),
        output=count_messages(output_messages, encoding),
    )
