"""LLM client for LM Studio / Cloud providers.

Provides the generative-text backend used by the content generator and
the sentence evaluator. Every provider is reached through an
OpenAI-compatible chat completions endpoint.

Supported providers:
- lmstudio: Local LM Studio server
- openai: OpenAI API
- gemini: Google Gemini (OpenAI-compatible endpoint)
"""

from __future__ import annotations

import json
import os
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Protocol

import structlog
from openai import OpenAI

logger = structlog.get_logger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

Provider = Literal["lmstudio", "openai", "gemini"]

PROVIDER_DEFAULTS: dict[str, dict[str, Any]] = {
    "lmstudio": {
        "base_url": "http://localhost:1234/v1",
        "api_key": "lm-studio",  # LM Studio doesn't need a real key
    },
    "openai": {
        "base_url": "https://api.openai.com/v1",
        "api_key_env": "OPENAI_API_KEY",
    },
    "gemini": {
        "base_url": "https://generativelanguage.googleapis.com/v1beta/openai/",
        "api_key_env": "GEMINI_API_KEY",
    },
}

PROVIDER_CAPABILITIES_DEFAULTS: dict[str, dict[str, bool]] = {
    "lmstudio": {"supports_json_object": False},
    "openai": {"supports_json_object": True},
    "gemini": {"supports_json_object": True},
}

# Some models emit <think>...</think> blocks that break JSON extraction
SANITIZE_PATTERNS = [
    re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE),
    re.compile(r"<analysis>.*?</analysis>", re.DOTALL | re.IGNORECASE),
    re.compile(r"<reasoning>.*?</reasoning>", re.DOTALL | re.IGNORECASE),
]


def _sanitize_for_json(text: str) -> str:
    """Remove thinking/reasoning tags before JSON parsing."""
    result = text
    for pattern in SANITIZE_PATTERNS:
        result = pattern.sub("", result)
    return result.strip()


def parse_json_content(content: str | None) -> dict[str, Any] | None:
    """Parse a JSON object from model output.

    Tries, in order:
    1. Direct parse
    2. Extract from ```json ... ``` blocks
    3. Extract first {...} object

    Returns the parsed dict, or None if every strategy fails or the
    payload is not an object.
    """
    if not content:
        return None

    content = _sanitize_for_json(content)

    candidates = [content]

    json_match = re.search(r"```(?:json)?\s*([\s\S]*?)```", content)
    if json_match:
        candidates.append(json_match.group(1).strip())

    start = content.find("{")
    end = content.rfind("}") + 1
    if start >= 0 and end > start:
        candidates.append(content[start:end])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    return None


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class LLMConfig:
    """Configuration for LLM client."""

    provider: str = "lmstudio"
    base_url: str = "http://localhost:1234/v1"
    model: str = "default"
    temperature: float = 0.7
    max_tokens: int = 2048
    timeout: int = 60
    # Retries happen in the content generator loop, not in the SDK
    max_retries: int = 0
    api_key: str | None = None
    supports_json_object: bool | None = None


@dataclass
class Message:
    """A chat message."""

    role: Literal["system", "user", "assistant"]
    content: str

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for API call."""
        return {"role": self.role, "content": self.content}


@dataclass
class LLMResponse:
    """Response from LLM."""

    content: str
    model: str
    provider: str
    usage: dict[str, int] = field(default_factory=dict)
    latency_ms: int = 0

    @property
    def prompt_tokens(self) -> int:
        return self.usage.get("prompt_tokens", 0)

    @property
    def completion_tokens(self) -> int:
        return self.usage.get("completion_tokens", 0)

    @property
    def total_tokens(self) -> int:
        return self.usage.get("total_tokens", 0)


class LLMError(Exception):
    """Error during LLM interaction."""

    pass


class LLMConnectionError(LLMError):
    """Error connecting to LLM server."""

    pass


class LLMResponseError(LLMError):
    """Error in LLM response."""

    pass


class TextBackend(Protocol):
    """Anything that turns a prompt into text.

    Implementations raise LLMError on failure.
    """

    def generate(
        self,
        prompt: str,
        query_type: str = "generic",
        user_id: str | None = None,
        timeout: float | None = None,
    ) -> str: ...


# Called after each successful completion with (query_type, response, user_id=...)
UsageRecorder = Callable[..., None]


# =============================================================================
# LLM CLIENT
# =============================================================================


class LLMClient:
    """Unified client for LLM interactions.

    Supports LM Studio, OpenAI and Gemini via the OpenAI-compatible API.
    """

    def __init__(
        self,
        config: LLMConfig | None = None,
        provider: str | None = None,
        model: str | None = None,
        usage_recorder: UsageRecorder | None = None,
    ):
        """Initialize LLM client.

        Args:
            config: LLM configuration (defaults if not provided)
            provider: Override provider from config
            model: Override model from config
            usage_recorder: Optional hook receiving every completion for
                usage tracking
        """
        if config is None:
            config = LLMConfig()

        self.config = config
        self.usage_recorder = usage_recorder

        if provider is not None:
            self.config.provider = provider
            defaults = PROVIDER_DEFAULTS.get(provider, {})
            if "base_url" in defaults:
                self.config.base_url = defaults["base_url"]
            if "api_key_env" in defaults:
                self.config.api_key = os.environ.get(defaults["api_key_env"])
            elif "api_key" in defaults:
                self.config.api_key = defaults["api_key"]

        if model is not None:
            self.config.model = model

        self._client = OpenAI(
            base_url=self.config.base_url,
            api_key=self.config.api_key or "not-needed",
            timeout=self.config.timeout,
            max_retries=self.config.max_retries,
        )

        logger.info(
            "llm_client_initialized",
            provider=self.config.provider,
            model=self.config.model,
            base_url=self.config.base_url,
        )

    def _supports_json_object(self) -> bool:
        """Check if current provider supports response_format json_object."""
        if self.config.supports_json_object is not None:
            return self.config.supports_json_object

        caps = PROVIDER_CAPABILITIES_DEFAULTS.get(self.config.provider, {})
        return caps.get("supports_json_object", False)

    def chat(
        self,
        messages: list[Message],
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
        query_type: str = "generic",
        user_id: str | None = None,
        timeout: float | None = None,
    ) -> LLMResponse:
        """Send chat completion request.

        Args:
            messages: List of messages in conversation
            temperature: Override default temperature
            max_tokens: Override default max tokens
            json_mode: Request JSON response format (only if provider supports it)
            query_type: Label used for usage tracking
            user_id: Learner the call is made for, for usage tracking
            timeout: Per-request timeout in seconds, overriding the client default

        Returns:
            LLMResponse with content and metadata

        Raises:
            LLMConnectionError: If cannot connect to server
            LLMResponseError: If response is invalid
        """
        if temperature is None:
            temperature = self.config.temperature
        if max_tokens is None:
            max_tokens = self.config.max_tokens

        request_kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        if json_mode and self._supports_json_object():
            request_kwargs["response_format"] = {"type": "json_object"}
        if timeout is not None:
            request_kwargs["timeout"] = timeout

        start_time = time.time()

        try:
            response = self._client.chat.completions.create(**request_kwargs)
        except Exception as e:
            error_msg = str(e)
            if "Connection" in error_msg or "connect" in error_msg.lower():
                raise LLMConnectionError(
                    f"Could not connect to {self.config.provider} at {self.config.base_url}: {e}"
                ) from e
            raise LLMError(f"LLM call failed: {e}") from e

        latency_ms = int((time.time() - start_time) * 1000)

        if not response.choices:
            raise LLMResponseError("Empty response from LLM")

        content = response.choices[0].message.content or ""

        usage = {}
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        logger.debug(
            "llm_response",
            provider=self.config.provider,
            model=response.model,
            query_type=query_type,
            tokens=usage.get("total_tokens", 0),
            latency_ms=latency_ms,
        )

        result = LLMResponse(
            content=content,
            model=response.model,
            provider=self.config.provider,
            usage=usage,
            latency_ms=latency_ms,
        )

        if self.usage_recorder is not None:
            try:
                self.usage_recorder(query_type, result, user_id=user_id)
            except Exception as e:
                # Usage tracking must never fail a generation
                logger.warning("llm_usage_record_failed", error=str(e))

        return result

    def generate(
        self,
        prompt: str,
        query_type: str = "generic",
        user_id: str | None = None,
        timeout: float | None = None,
    ) -> str:
        """Single-prompt text generation (TextBackend contract).

        Args:
            prompt: Full prompt text
            query_type: Label used for usage tracking
            user_id: Learner the call is made for
            timeout: Per-request timeout in seconds

        Returns:
            Raw response text

        Raises:
            LLMError: On connection or response failure
        """
        response = self.chat(
            [Message(role="user", content=prompt)],
            json_mode=True,
            query_type=query_type,
            user_id=user_id,
            timeout=timeout,
        )
        if not response.content.strip():
            raise LLMResponseError("Empty response from LLM")
        return response.content
