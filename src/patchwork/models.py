"""Data models and schemas for Patchwork proxy."""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Union, AsyncIterator, Awaitable, Callable
from pydantic import BaseModel, ConfigDict


class ToolCall(BaseModel):
    """Tool invocation issued by an assistant turn."""
    model_config = ConfigDict(extra="allow")

    id: str
    type: Optional[str] = None
    function: Optional[Dict[str, Any]] = None


class ContentPart(BaseModel):
    """One block of array-valued message content."""
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    tool_use_id: Optional[str] = None


class Message(BaseModel):
    """Chat message model."""
    model_config = ConfigDict(extra="allow")

    role: str
    content: Optional[Union[str, List[ContentPart]]] = None
    name: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None


class ChatCompletionsPayload(BaseModel):
    """Request model for chat completions. Unknown fields pass through."""
    model_config = ConfigDict(extra="allow")

    model: str
    messages: List[Message]
    stream: Optional[bool] = False
    max_tokens: Optional[int] = None


class ModelLimits(BaseModel):
    model_config = ConfigDict(extra="allow")

    max_output_tokens: Optional[int] = None
    max_prompt_tokens: Optional[int] = None
    max_context_window_tokens: Optional[int] = None


class ModelCapabilities(BaseModel):
    model_config = ConfigDict(extra="allow")

    family: Optional[str] = None
    tokenizer: Optional[str] = None
    limits: ModelLimits = ModelLimits()


class ModelInfo(BaseModel):
    """Entry of the backend's /models listing."""
    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    vendor: Optional[str] = None
    object: str = "model"
    capabilities: ModelCapabilities = ModelCapabilities()


class TokenCount(BaseModel):
    input: int = 0
    output: int = 0


@dataclass
class StreamEvent:
    """A single server-sent event read from the backend."""
    data: str
    event: Optional[str] = None
    id: Optional[str] = None
    retry: Optional[int] = None


@dataclass
class CompletionResult:
    """
    Tagged outcome of a dispatch: either a complete response body
    (kind == "response") or an open event stream (kind == "stream").
    """
    kind: str
    body: Optional[Dict[str, Any]] = None
    events: Optional[AsyncIterator[StreamEvent]] = None
    closer: Optional[Callable[[], Awaitable[None]]] = field(default=None, repr=False)

    @property
    def is_stream(self) -> bool:
        return self.kind == "stream"

    async def aclose(self) -> None:
        """Release the backend connection behind a stream result."""
        if self.closer is not None:
            closer, self.closer = self.closer, None
            await closer()
