"""Test helpers: provider configs, mock transports, fake Claude client."""

from __future__ import annotations

import json
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any, Optional

import httpx

from engine.gateway import ProviderConfig, ProviderGateway, ProviderKind, ProviderTask

HF_BASE = "https://hf.test/models"


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


def hf_classifier(timeout: float = 1.0) -> ProviderConfig:
    return ProviderConfig(
        name="hf-classifier",
        kind=ProviderKind.HUGGINGFACE,
        task=ProviderTask.TEXT_CLASSIFICATION,
        endpoint=f"{HF_BASE}/classifier",
        api_key="test-token",
        timeout_seconds=timeout,
    )


def hf_generator(name: str = "hf-generator", timeout: float = 1.0) -> ProviderConfig:
    return ProviderConfig(
        name=name,
        kind=ProviderKind.HUGGINGFACE,
        task=ProviderTask.TEXT_GENERATION,
        endpoint=f"{HF_BASE}/{name}",
        api_key="test-token",
        timeout_seconds=timeout,
    )


def claude_provider(timeout: float = 1.0) -> ProviderConfig:
    return ProviderConfig(
        name="claude",
        kind=ProviderKind.ANTHROPIC,
        task=ProviderTask.TEXT_GENERATION,
        api_key="test-key",
        model="claude-test",
        timeout_seconds=timeout,
    )


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


def make_gateway(handler: Callable[[httpx.Request], Any], claude: Any = None) -> ProviderGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ProviderGateway(client, claude)


def request_prompt(request: httpx.Request) -> str:
    return json.loads(request.content)["inputs"]


def generated(text: str) -> httpx.Response:
    return httpx.Response(200, json=[{"generated_text": text}])


def generated_json(obj: Any) -> httpx.Response:
    return generated(json.dumps(obj, ensure_ascii=False))


class FakeMessages:
    def __init__(self, text: str = "", exc: Optional[BaseException] = None) -> None:
        self.text = text
        self.exc = exc
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        if self.exc is not None:
            raise self.exc
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=self.text)])


class FakeClaude:
    """Stands in for anthropic.AsyncAnthropic in tests."""

    def __init__(self, text: str = "", exc: Optional[BaseException] = None) -> None:
        self.messages = FakeMessages(text, exc)
