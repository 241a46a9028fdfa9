"""
gateway.py -- Provider Gateway: one timed remote call, one tagged outcome.

Every call to a remote model goes through ProviderGateway.call(), which
returns Success(payload) or Failure(kind, detail) and never raises.
Fallback ordering is left to the callers; the gateway itself never retries.

Supported providers:
- anthropic     -- Claude Messages API via the anthropic SDK (text generation)
- huggingface   -- Inference API over httpx (text classification / generation)
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Any, Literal, Optional, Union

import anthropic
import httpx
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Provider configuration
# ---------------------------------------------------------------------------

class ProviderKind(str, Enum):
    ANTHROPIC = "anthropic"
    HUGGINGFACE = "huggingface"


class ProviderTask(str, Enum):
    TEXT_CLASSIFICATION = "text-classification"
    TEXT_GENERATION = "text-generation"


class ProviderConfig(BaseModel):
    """Endpoint, credential and limits for one remote provider."""

    name: str
    kind: ProviderKind
    task: ProviderTask = ProviderTask.TEXT_GENERATION
    endpoint: str = ""
    api_key: str = Field(default="", repr=False)
    model: str = ""
    timeout_seconds: float = Field(default=10.0, gt=0)
    max_tokens: int = 1024
    parameters: dict[str, Any] = Field(default_factory=dict)


class ProviderRequest(BaseModel):
    """What to ask a provider. `system` is only used by chat-style providers."""

    prompt: str
    system: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Outcome -- tagged union, always returned, never raised
# ---------------------------------------------------------------------------

class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    HTTP_ERROR = "http_error"
    SCHEMA_ERROR = "schema_error"


class Success(BaseModel):
    ok: Literal[True] = True
    provider: str = ""
    payload: Any = None


class Failure(BaseModel):
    ok: Literal[False] = False
    provider: str = ""
    kind: FailureKind
    detail: str = ""
    status: Optional[int] = None


ProviderOutcome = Union[Success, Failure]


class EmotionScore(BaseModel):
    """One label/score pair from a text-classification provider."""

    label: str
    score: float


class _HTTPStatusFailure(Exception):
    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"HTTP {status}: {body[:200]}")
        self.status = status


class _SchemaMismatch(ValueError):
    pass


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------

def extract_json(text: str) -> Any:
    """Parse JSON out of a model answer, tolerating ``` fences and chatter around it."""
    stripped = text.strip()
    if stripped.startswith("```"):
        lines = stripped.split("\n")
        stripped = "\n".join(lines[1:-1] if lines[-1].strip().startswith("```") else lines[1:]).strip()
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        start, end = stripped.find("{"), stripped.rfind("}")
        if start == -1 or end <= start:
            raise
        return json.loads(stripped[start:end + 1])


def parse_json_object(text: str) -> dict[str, Any]:
    parsed = extract_json(text)
    if not isinstance(parsed, dict):
        raise _SchemaMismatch(f"Expected JSON object, got {type(parsed).__name__}")
    return parsed


def _parse_classification(body: Any) -> list[EmotionScore]:
    # The Inference API returns [[{label, score}, ...]] for a single input,
    # some deployments flatten it to [{label, score}, ...].
    if isinstance(body, list) and body and isinstance(body[0], list):
        body = body[0]
    if not isinstance(body, list) or not body:
        raise _SchemaMismatch("Classification response is not a non-empty list")
    return [EmotionScore.model_validate(item) for item in body]


def _parse_generation(body: Any) -> str:
    if isinstance(body, list) and body:
        body = body[0]
    if not isinstance(body, dict) or not isinstance(body.get("generated_text"), str):
        raise _SchemaMismatch("Generation response has no generated_text")
    text = body["generated_text"].strip()
    if not text:
        raise _SchemaMismatch("Generation response is empty")
    return text


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class ProviderGateway:
    """Issues remote calls with a per-call timeout and reports tagged outcomes."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        claude_client: Optional[anthropic.AsyncAnthropic] = None,
    ) -> None:
        self.http_client = http_client
        self.claude_client = claude_client

    async def call(
        self,
        provider: ProviderConfig,
        request: ProviderRequest,
        parse: Optional[Callable[[Any], Any]] = None,
    ) -> ProviderOutcome:
        """
        Run one request against one provider.

        Timeout or connection failure -> Failure(TIMEOUT | NETWORK_ERROR);
        non-2xx -> Failure(HTTP_ERROR, status); a 2xx whose body does not have
        the expected shape, or for which `parse` raises -> Failure(SCHEMA_ERROR).
        """
        name = provider.name
        try:
            payload = await asyncio.wait_for(
                self._dispatch(provider, request),
                timeout=provider.timeout_seconds,
            )
            if parse is not None:
                payload = parse(payload)
        except (asyncio.TimeoutError, httpx.TimeoutException, anthropic.APITimeoutError) as exc:
            return self._fail(name, FailureKind.TIMEOUT, f"timed out after {provider.timeout_seconds}s: {exc}")
        except anthropic.APIConnectionError as exc:
            return self._fail(name, FailureKind.NETWORK_ERROR, str(exc))
        except anthropic.APIStatusError as exc:
            return self._fail(name, FailureKind.HTTP_ERROR, str(exc), exc.status_code)
        except _HTTPStatusFailure as exc:
            return self._fail(name, FailureKind.HTTP_ERROR, str(exc), exc.status)
        except httpx.HTTPError as exc:
            return self._fail(name, FailureKind.NETWORK_ERROR, f"{type(exc).__name__}: {exc}")
        except (anthropic.APIResponseValidationError, ValidationError, ValueError, TypeError, KeyError) as exc:
            return self._fail(name, FailureKind.SCHEMA_ERROR, f"{type(exc).__name__}: {exc}")
        except anthropic.APIError as exc:
            return self._fail(name, FailureKind.NETWORK_ERROR, str(exc))
        except Exception as exc:
            # Closed clients, malformed endpoint URLs and other transport faults.
            return self._fail(name, FailureKind.NETWORK_ERROR, f"{type(exc).__name__}: {exc}")

        logger.info("Provider %s (%s) succeeded", name, provider.task.value)
        return Success(provider=name, payload=payload)

    async def generate_text(
        self,
        providers: Sequence[ProviderConfig],
        request: ProviderRequest,
        parse: Optional[Callable[[Any], Any]] = None,
    ) -> ProviderOutcome:
        """Try providers in order; return the first Success or the last Failure."""
        outcome: ProviderOutcome = Failure(
            kind=FailureKind.NETWORK_ERROR, detail="no generation provider configured"
        )
        for provider in providers:
            outcome = await self.call(provider, request, parse)
            if outcome.ok:
                return outcome
        return outcome

    # -- Transport -------------------------------------------------------------

    async def _dispatch(self, provider: ProviderConfig, request: ProviderRequest) -> Any:
        if provider.kind is ProviderKind.ANTHROPIC:
            return await self._call_claude(provider, request)
        return await self._call_huggingface(provider, request)

    async def _call_huggingface(self, provider: ProviderConfig, request: ProviderRequest) -> Any:
        body: dict[str, Any] = {"inputs": request.prompt}
        if provider.task is ProviderTask.TEXT_GENERATION:
            body["parameters"] = {"return_full_text": False, **provider.parameters, **request.parameters}
        resp = await self.http_client.post(
            provider.endpoint,
            json=body,
            headers={
                "Authorization": f"Bearer {provider.api_key}",
                "Content-Type": "application/json",
            },
            timeout=provider.timeout_seconds,
        )
        if not 200 <= resp.status_code < 300:
            raise _HTTPStatusFailure(resp.status_code, resp.text)
        data = resp.json()
        if provider.task is ProviderTask.TEXT_CLASSIFICATION:
            return _parse_classification(data)
        return _parse_generation(data)

    async def _call_claude(self, provider: ProviderConfig, request: ProviderRequest) -> str:
        if self.claude_client is None:
            raise anthropic.APIConnectionError(
                message="Claude client not initialized -- check ANTHROPIC_API_KEY",
                request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"),
            )
        kwargs: dict[str, Any] = {}
        if "temperature" in request.parameters:
            kwargs["temperature"] = request.parameters["temperature"]
        if request.system:
            kwargs["system"] = request.system
        logger.info("Calling Claude (model=%s, prompt_len=%d)", provider.model, len(request.prompt))
        response = await self.claude_client.messages.create(
            model=provider.model,
            max_tokens=provider.max_tokens,
            messages=[{"role": "user", "content": request.prompt}],
            timeout=provider.timeout_seconds,
            **kwargs,
        )
        text_blocks = [block.text for block in response.content if block.type == "text"]
        text = "\n".join(text_blocks).strip()
        if not text:
            raise _SchemaMismatch("Claude returned no text content")
        return text

    @staticmethod
    def _fail(provider: str, kind: FailureKind, detail: str, status: Optional[int] = None) -> Failure:
        logger.warning("Provider %s failed (%s%s): %s", provider, kind.value,
                       f" {status}" if status is not None else "", detail)
        return Failure(provider=provider, kind=kind, detail=detail, status=status)
