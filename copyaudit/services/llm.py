# =============================================================================
# Chat Providers — Static Registry over Anthropic & OpenAI-Compatible SDKs
# =============================================================================
#
# A common `ChatProvider` interface with two concrete implementations:
#   - AnthropicProvider         : Claude via the native Anthropic SDK
#   - OpenAICompatibleProvider  : anything speaking the OpenAI chat API:
#                                 DeepSeek, Gemini (OpenAI endpoint),
#                                 Hugging Face router, OpenAI, Qwen...
#
# Providers are looked up by name in a `ProviderRegistry` built once from
# settings. Lookup and calls return `Result` values:
#
#   registry.get("deepseek")          → Ok(provider) | Err(missing key / unknown)
#   await complete_safely(...)        → Ok(LLMResponse) | Err(transport, non-2xx)
#
# so callers walking a fallback chain branch on Err instead of catching.
#
# ARCHITECTURE:
#   ChatProvider (Protocol)
#   ├── AnthropicProvider        : system prompt as top-level kwarg
#   ├── OpenAICompatibleProvider : system prompt as first message
#   ├── ProviderRegistry         : name → ProviderSpec → cached provider
#   ├── complete_safely()        : exception → Err(ProviderError)
#   └── parse_provider_id()      : ad-hoc "type/model@base_url" ids
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from copyaudit.config import Settings
from copyaudit.services.errors import ProviderError
from copyaudit.services.result import Err, Ok, Result

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LLMResponse:
    """Provider-neutral completion result."""

    content: str           # The generated text
    model: str             # Model identifier reported by the provider
    input_tokens: int      # Tokens consumed by the prompt
    output_tokens: int     # Tokens generated in the response

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class ProviderSpec:
    """Static description of one named provider."""

    name: str
    type: str              # "anthropic" | "openai_compatible"
    model: str
    api_key: str
    base_url: str | None = None


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class ChatProvider(Protocol):
    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Generate a completion.

        Args:
            messages: Conversation messages ("user" / "assistant" roles).
            system: System instruction. Anthropic takes it as a top-level
                kwarg, OpenAI-compatible APIs as the first message.
            temperature: Override sampling temperature.
            max_tokens: Override max output tokens.
            json_mode: Ask for a JSON object response where the API
                supports it.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    def __init__(
        self,
        api_key: str,
        model: str,
        temperature: float = 0.1,
        max_tokens: int = 4096,
    ) -> None:
        from anthropic import AsyncAnthropic

        if not api_key:
            raise ValueError("No Anthropic API key configured")

        self._client = AsyncAnthropic(api_key=api_key)
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

        logger.info("Initialized AnthropicProvider (model=%s)", self._model)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        kwargs: dict = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": self._temperature if temperature is None else temperature,
        }
        # No JSON mode on this API; the prompts themselves demand JSON
        if system:
            kwargs["system"] = system

        response = await self._client.messages.create(**kwargs)

        content = ""
        for block in response.content:
            if block.type == "text":
                content = block.text
                break

        return LLMResponse(
            content=content,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible (DeepSeek, Gemini, HF router, ...)
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 4096,
    ) -> None:
        from openai import AsyncOpenAI

        if not api_key:
            raise ValueError("No API key configured for OpenAI-compatible provider")

        client_kwargs: dict = {"api_key": api_key}
        if base_url:
            client_kwargs["base_url"] = base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self._model,
            base_url or "https://api.openai.com/v1",
        )

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        all_messages: list[dict[str, str]] = []
        if system:
            all_messages.append({"role": "system", "content": system})
        all_messages.extend(messages)

        kwargs: dict = {
            "model": self._model,
            "messages": all_messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": self._temperature if temperature is None else temperature,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self._client.chat.completions.create(**kwargs)

        content = response.choices[0].message.content or ""
        usage = response.usage
        return LLMResponse(
            content=content,
            model=response.model or self._model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


_KNOWN_PROVIDER_TYPES = {"anthropic", "openai_compatible"}


def provider_specs(settings: Settings) -> dict[str, ProviderSpec]:
    """The built-in named providers, resolved from settings."""
    specs = [
        ProviderSpec(
            "deepseek", "openai_compatible", settings.deepseek_model,
            settings.deepseek_api_key, settings.deepseek_base_url,
        ),
        ProviderSpec(
            "gemini", "openai_compatible", settings.gemini_model,
            settings.gemini_api_key, settings.gemini_base_url,
        ),
        ProviderSpec(
            "huggingface", "openai_compatible", settings.hf_model,
            settings.hf_access_token, settings.hf_base_url,
        ),
        ProviderSpec(
            "openai", "openai_compatible", settings.openai_model,
            settings.openai_api_key, None,
        ),
        ProviderSpec(
            "anthropic", "anthropic", settings.anthropic_model,
            settings.anthropic_api_key, None,
        ),
    ]
    return {spec.name: spec for spec in specs}


class ProviderRegistry:
    """
    Name → provider lookup with instance caching.

    Names are either built-in (see provider_specs) or ad-hoc ids of the
    form "type/model@base_url", which use the OpenAI or Anthropic key.
    """

    def __init__(
        self,
        specs: Mapping[str, ProviderSpec],
        temperature: float = 0.1,
        max_tokens: int = 4096,
        fallback_keys: Mapping[str, str] | None = None,
    ) -> None:
        self._specs = dict(specs)
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._fallback_keys = dict(fallback_keys or {})
        self._instances: dict[str, ChatProvider] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> ProviderRegistry:
        return cls(
            provider_specs(settings),
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            fallback_keys={
                "openai_compatible": settings.openai_api_key,
                "anthropic": settings.anthropic_api_key,
            },
        )

    def names(self) -> list[str]:
        return list(self._specs)

    def register(self, name: str, provider: ChatProvider) -> None:
        """Install a ready-made provider under `name`."""
        self._instances[name] = provider

    def get(self, name: str) -> Result[ChatProvider]:
        if name in self._instances:
            return Ok(self._instances[name])

        spec = self._specs.get(name)
        if spec is None:
            if "/" not in name:
                return Err(ProviderError(name, "unknown provider"))
            try:
                provider_type, model, base_url = parse_provider_id(name)
            except ValueError as e:
                return Err(ProviderError(name, str(e)))
            spec = ProviderSpec(
                name, provider_type, model,
                self._fallback_keys.get(provider_type, ""), base_url,
            )

        if not spec.api_key:
            return Err(ProviderError(name, "missing credentials"))

        provider = _build(spec, self._temperature, self._max_tokens)
        self._instances[name] = provider
        return Ok(provider)


def _build(spec: ProviderSpec, temperature: float, max_tokens: int) -> ChatProvider:
    if spec.type == "anthropic":
        return AnthropicProvider(
            api_key=spec.api_key, model=spec.model,
            temperature=temperature, max_tokens=max_tokens,
        )
    return OpenAICompatibleProvider(
        api_key=spec.api_key, model=spec.model, base_url=spec.base_url,
        temperature=temperature, max_tokens=max_tokens,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def complete_safely(
    provider: ChatProvider,
    name: str,
    messages: list[dict[str, str]],
    system: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    json_mode: bool = False,
) -> Result[LLMResponse]:
    """Call `provider.complete` and turn any SDK exception into Err."""
    try:
        response = await provider.complete(
            messages=messages,
            system=system,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=json_mode,
        )
    except Exception as e:
        logger.warning("Provider %s call failed: %s", name, e)
        return Err(ProviderError(name, f"{type(e).__name__}: {e}"))
    return Ok(response)


def parse_provider_id(provider_id: str) -> tuple[str, str, str | None]:
    """
    Parse a provider id into (provider_type, model, base_url).

        "anthropic/claude-sonnet-4-6"
            → ("anthropic", "claude-sonnet-4-6", None)
        "openai_compatible/qwen-plus@https://dashscope.aliyuncs.com/compatible-mode/v1"
            → ("openai_compatible", "qwen-plus", "https://dashscope...")

    Raises:
        ValueError: If the format is unrecognisable or the type unknown.
    """
    if "/" not in provider_id:
        raise ValueError(
            f"Invalid provider_id '{provider_id}'. "
            "Expected 'provider_type/model' or 'provider_type/model@base_url'"
        )

    provider_type, rest = provider_id.split("/", 1)

    base_url: str | None = None
    if "@" in rest:
        model, base_url = rest.split("@", 1)
    else:
        model = rest

    if provider_type not in _KNOWN_PROVIDER_TYPES:
        raise ValueError(
            f"Unknown provider type '{provider_type}'. "
            f"Supported types: {sorted(_KNOWN_PROVIDER_TYPES)}"
        )

    return provider_type, model, base_url
