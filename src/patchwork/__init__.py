"""An OpenAI-compatible chat completions proxy that repairs conversation histories."""

__version__ = "0.1.0"

from .config import load_config
from .api import app

from .sanitizer import drop_orphaned_tool_results, trim_to_budget, sanitize_payload
from .backends import create_chat_completions, fill_max_tokens
from .streaming import parse_sse_events, relay_stream
