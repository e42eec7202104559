import pytest
from fastapi.testclient import TestClient
import json
import yaml
import importlib

# Mock response payloads
MOCK_COMPLETION_RESPONSE = {
    "id": "chatcmpl-123",
    "object": "chat.completion",
    "created": 1677652288,
    "model": "gpt-4o-mini",
    "system_fingerprint": "fp_44709d6fcb",
    "choices": [
        {
            "index": 0,
            "message": {
                "role": "assistant",
                "content": "Hello there, how may I assist you today?",
            },
            "logprobs": None,
            "finish_reason": "stop",
        }
    ],
    "usage": {"prompt_tokens": 9, "completion_tokens": 12, "total_tokens": 21},
}

MOCK_STREAMING_CHUNKS = [
    {
        "id": "chatcmpl-123",
        "object": "chat.completion.chunk",
        "created": 1694268190,
        "model": "gpt-4o-mini",
        "choices": [
            {
                "index": 0,
                "delta": {"role": "assistant", "content": ""},
                "logprobs": None,
                "finish_reason": None,
            }
        ],
    },
    {
        "id": "chatcmpl-123",
        "object": "chat.completion.chunk",
        "created": 1694268190,
        "model": "gpt-4o-mini",
        "choices": [
            {
                "index": 0,
                "delta": {"content": "Hello"},
                "logprobs": None,
                "finish_reason": None,
            }
        ],
    },
    {
        "id": "chatcmpl-123",
        "object": "chat.completion.chunk",
        "created": 1694268190,
        "model": "gpt-4o-mini",
        "choices": [
            {"index": 0, "delta": {}, "logprobs": None, "finish_reason": "stop"}
        ],
    },
]

MOCK_MODEL = {
    "id": "gpt-4o-mini",
    "name": "GPT-4o mini",
    "vendor": "openai",
    "capabilities": {
        "family": "gpt-4o-mini",
        "tokenizer": "o200k_base",
        "limits": {"max_output_tokens": 4096, "max_prompt_tokens": 128000},
    },
}

# Mock configurations
MOCK_CONFIG_BASIC = {
    "backend": {"name": "LLM1", "url": "http://test.example.com/v1"},
    "settings": {"timeout": 30},
    "models": [MOCK_MODEL],
}

MOCK_CONFIG_SMALL_BUDGET = {
    "backend": {"name": "LLM1", "url": "http://test.example.com/v1"},
    "settings": {"timeout": 30},
    "sanitizer": {"max_payload_chars": 400, "min_retained_messages": 2},
    "models": [MOCK_MODEL],
}


class MockResponse:
    """Stand-in for a streamed httpx.Response carrying a JSON body"""

    def __init__(self, status_code, content=None, headers=None):
        self.status_code = status_code
        self._content = content if content is not None else b""
        self.headers = headers or {"content-type": "application/json"}
        self.closed = False

    async def aread(self):
        if isinstance(self._content, (dict, list)):
            return json.dumps(self._content).encode()
        return (
            self._content
            if isinstance(self._content, bytes)
            else str(self._content).encode()
        )

    async def aclose(self):
        self.closed = True


class MockStreamingResponse:
    """Mock backend response for streaming requests"""

    def __init__(self, chunks=None, done=True):
        self.status_code = 200
        self.headers = {"content-type": "text/event-stream"}
        self._chunks = MOCK_STREAMING_CHUNKS if chunks is None else chunks
        self._done = done
        self.closed = False

    async def aiter_lines(self):
        for chunk in self._chunks:
            yield f"data: {json.dumps(chunk)}"
            yield ""
        if self._done:
            yield "data: [DONE]"
            yield ""

    async def aread(self):
        return b""

    async def aclose(self):
        self.closed = True


class FakeEncoding:
    """Whitespace tokenizer used instead of downloading tiktoken encodings"""

    def encode(self, text):
        return text.split()


@pytest.fixture(autouse=True)
def fake_encoding(monkeypatch):
    import patchwork.tokenizer

    monkeypatch.setattr(patchwork.tokenizer, "get_encoding", lambda name: FakeEncoding())


def reload_proxy(tmp_path, monkeypatch, config):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml.dump(config))
    monkeypatch.setenv("PATCHWORK_CONFIG", str(config_file))

    import patchwork.config
    import patchwork.api

    importlib.reload(patchwork.config)
    importlib.reload(patchwork.api)
    return config


@pytest.fixture
def mock_config_basic(tmp_path, monkeypatch):
    """Mock config file with one backend and one known model"""
    return reload_proxy(tmp_path, monkeypatch, MOCK_CONFIG_BASIC)


@pytest.fixture
def mock_config_small_budget(tmp_path, monkeypatch):
    """Mock config file with a tiny history size budget"""
    return reload_proxy(tmp_path, monkeypatch, MOCK_CONFIG_SMALL_BUDGET)


@pytest.fixture
def test_client(mock_config_basic):
    """Create a test client with the basic config"""
    from patchwork.api import app

    return TestClient(app)


@pytest.fixture
def test_client_small_budget(mock_config_small_budget):
    """Create a test client with a tiny history size budget"""
    from patchwork.api import app

    return TestClient(app)


@pytest.fixture
def captured_requests():
    """Collects the JSON bodies sent to the backend"""
    return []


def install_backend(monkeypatch, response, captured=None):
    """Replace httpx.AsyncClient.send with a fake backend returning response"""
    import httpx

    async def mock_send(client, request, **kwargs):
        if captured is not None:
            captured.append(
                {
                    "url": str(request.url),
                    "headers": {k.lower(): v for k, v in request.headers.items()},
                    "body": json.loads(request.content),
                }
            )
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(httpx.AsyncClient, "send", mock_send)
