"""
Completion providers for property extraction.

The orchestrator only needs an object with ``complete(prompt) -> str``.
This module defines that interface and ships thin adapters for:
- OpenAI (gpt-4o, gpt-4o-mini, etc.)
- Anthropic (claude-sonnet-4, claude-haiku-4-5, etc.)

Usage:
    completer = create_completer(model="claude-haiku")
    reply = call_with_retry(completer, prompt, max_retries=2, base_delay=1.0)
"""

import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from ..errors import ProviderUnavailableError

logger = logging.getLogger(__name__)


@runtime_checkable
class Completer(Protocol):
    """Anything that turns a prompt into a text reply."""

    def complete(self, prompt: str) -> str:
        ...


def ensure_completer(client: Any) -> Completer:
    """
    Check that a client exposes a callable ``complete`` method.

    Raises:
        ProviderUnavailableError: If the client cannot be used as a Completer
    """
    if client is None:
        raise ProviderUnavailableError("No completion client configured")
    if not callable(getattr(client, "complete", None)):
        raise ProviderUnavailableError(
            f"Client of type {type(client).__name__} has no callable complete() method"
        )
    return client


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


# Model name prefixes per provider
PROVIDER_PREFIXES = {
    LLMProvider.OPENAI: ("gpt", "o1", "o3", "o4"),
    LLMProvider.ANTHROPIC: ("claude",),
}

# Model aliases for convenience
MODEL_ALIASES = {
    "claude-sonnet": "claude-sonnet-4-20250514",
    "claude-haiku": "claude-haiku-4-5-20251001",
    "claude-haiku-3": "claude-3-haiku-20240307",
    "gpt-mini": "gpt-4o-mini",
}

DEFAULT_MODELS = {
    LLMProvider.OPENAI: "gpt-4o-mini",
    LLMProvider.ANTHROPIC: "claude-haiku-4-5-20251001",
}


@dataclass
class RateLimitConfig:
    """Spacing between consecutive calls on one completer."""
    requests_per_minute: Optional[int] = None  # Max requests per minute (None = no limit)
    delay_between_calls: float = 0.0  # Fixed delay between API calls (seconds)

    def get_delay(self) -> float:
        """Calculate delay to apply between calls."""
        if self.delay_between_calls > 0:
            return self.delay_between_calls
        if self.requests_per_minute and self.requests_per_minute > 0:
            return 60.0 / self.requests_per_minute
        return 0.0


def detect_provider(model: str) -> LLMProvider:
    """
    Auto-detect provider from model name.

    Args:
        model: Model name or alias

    Returns:
        Detected LLMProvider (OpenAI for unrecognized names)
    """
    resolved_model = resolve_model_name(model).lower()

    for provider, prefixes in PROVIDER_PREFIXES.items():
        if resolved_model.startswith(prefixes):
            return provider

    logger.warning(f"Could not detect provider for model '{model}', defaulting to OpenAI")
    return LLMProvider.OPENAI


def resolve_model_name(model: str) -> str:
    """Resolve model alias to full model name."""
    return MODEL_ALIASES.get(model, model)


# =============================================================================
# Provider Adapters
# =============================================================================


class BaseCompleter:
    """Shared rate limiting and call bookkeeping for provider adapters."""

    provider: LLMProvider

    def __init__(
        self,
        model: str,
        rate_limit: Optional[RateLimitConfig] = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
    ):
        self.model = resolve_model_name(model)
        self.rate_limit = rate_limit
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.call_count = 0
        self._last_call_time = 0.0

    def complete(self, prompt: str) -> str:
        self._apply_rate_limit()
        try:
            return self._complete(prompt)
        finally:
            self.call_count += 1
            self._last_call_time = time.time()

    def _complete(self, prompt: str) -> str:
        raise NotImplementedError

    def _apply_rate_limit(self) -> None:
        """Apply rate limiting delay if configured."""
        if not self.rate_limit:
            return

        delay = self.rate_limit.get_delay()
        if delay <= 0:
            return

        elapsed = time.time() - self._last_call_time
        if elapsed < delay:
            sleep_time = delay - elapsed
            logger.debug(f"Rate limiting: sleeping {sleep_time:.2f}s")
            time.sleep(sleep_time)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"


class OpenAICompleter(BaseCompleter):
    """Completer backed by the OpenAI chat completions API."""

    provider = LLMProvider.OPENAI

    def __init__(
        self,
        model: str = DEFAULT_MODELS[LLMProvider.OPENAI],
        api_key: Optional[str] = None,
        client: Any = None,
        **kwargs,
    ):
        super().__init__(model, **kwargs)
        if client is None:
            from openai import OpenAI

            client = OpenAI(api_key=api_key)
        self.client = client

    def _complete(self, prompt: str) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        return response.choices[0].message.content or ""


class AnthropicCompleter(BaseCompleter):
    """Completer backed by the Anthropic messages API."""

    provider = LLMProvider.ANTHROPIC

    def __init__(
        self,
        model: str = DEFAULT_MODELS[LLMProvider.ANTHROPIC],
        api_key: Optional[str] = None,
        client: Any = None,
        **kwargs,
    ):
        super().__init__(model, **kwargs)
        if client is None:
            try:
                import anthropic
            except ImportError:
                raise ImportError(
                    "anthropic package not installed. Install with: pip install anthropic"
                )

            if api_key is None:
                api_key = os.environ.get("ANTHROPIC_API_KEY")
            client = anthropic.Anthropic(api_key=api_key)
        self.client = client

    def _complete(self, prompt: str) -> str:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(getattr(block, "text", "") for block in response.content)


def create_completer(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    rate_limit: Optional[RateLimitConfig] = None,
    temperature: float = 0.0,
    max_tokens: int = 4096,
) -> BaseCompleter:
    """
    Create a provider completer.

    Args:
        provider: Provider name ("openai", "anthropic"). Auto-detected if None.
        model: Model name or alias (used for auto-detection if provider is None)
        api_key: API key. Uses environment variable if None.
        rate_limit: Rate limiting configuration

    Returns:
        Completer ready for use by the orchestrator

    Raises:
        ValueError: If provider is invalid
    """
    if provider is None:
        provider_enum = detect_provider(model) if model else LLMProvider.OPENAI
    else:
        try:
            provider_enum = LLMProvider(provider.lower())
        except ValueError:
            raise ValueError(f"Unsupported provider: {provider}")

    model = model or DEFAULT_MODELS[provider_enum]
    kwargs = dict(rate_limit=rate_limit, temperature=temperature, max_tokens=max_tokens)

    if provider_enum == LLMProvider.ANTHROPIC:
        completer = AnthropicCompleter(model=model, api_key=api_key, **kwargs)
    else:
        completer = OpenAICompleter(model=model, api_key=api_key, **kwargs)

    logger.info(f"Created {provider_enum.value} completer for {completer.model}")
    return completer


# =============================================================================
# Retry
# =============================================================================


def call_with_retry(
    completer: Completer,
    prompt: str,
    max_retries: int = 2,
    base_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """
    Call a completer, retrying with linearly increasing backoff.

    Makes up to ``max_retries + 1`` attempts and sleeps
    ``base_delay * attempt`` seconds after each failed attempt. An empty
    reply counts as a failed attempt.

    Returns:
        The first non-empty reply

    Raises:
        ProviderUnavailableError: If every attempt failed
    """
    attempts = max_retries + 1
    last_error: Optional[BaseException] = None

    for attempt in range(1, attempts + 1):
        try:
            reply = completer.complete(prompt)
            if isinstance(reply, str) and reply.strip():
                return reply
            last_error = ValueError("Empty reply from model")
        except Exception as e:
            last_error = e

        if attempt < attempts:
            delay = base_delay * attempt
            logger.warning(
                f"Model call failed (attempt {attempt}/{attempts}): {last_error}. "
                f"Retrying in {delay:.1f}s..."
            )
            if delay > 0:
                sleep(delay)

    logger.error(f"Model call failed after {attempts} attempts: {last_error}")
    raise ProviderUnavailableError(
        f"Model call failed after {attempts} attempts: {last_error}",
        attempts=attempts,
    ) from last_error
