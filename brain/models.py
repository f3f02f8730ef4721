"""Provider/model catalog used to resolve engine identities."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Mapping

from brain.errors import ConfigurationError

OPENAI_COMPLETIONS = "openai-completions"
ANTHROPIC_MESSAGES = "anthropic-messages"


@dataclass(frozen=True)
class ModelDescriptor:
    """Describes how to reach a specific model."""

    provider: str
    id: str
    api: str
    base_url: str
    context_window: int = 128_000
    max_tokens: int = 4096

    def with_base_url(self, base_url: str) -> "ModelDescriptor":
        return replace(self, base_url=base_url.rstrip("/"))


@dataclass(frozen=True)
class ProviderSpec:
    """Static description of a provider endpoint and its known models."""

    name: str
    api: str
    base_url: str
    models: Mapping[str, tuple[int, int]]
    open_catalog: bool = False


PROVIDERS: dict[str, ProviderSpec] = {
    "openai": ProviderSpec(
        name="openai",
        api=OPENAI_COMPLETIONS,
        base_url="https://api.openai.com/v1",
        models={
            "gpt-4.1": (1_047_576, 32_768),
            "gpt-4.1-mini": (1_047_576, 32_768),
            "gpt-4.1-nano": (1_047_576, 32_768),
            "gpt-4o": (128_000, 16_384),
            "gpt-4o-mini": (128_000, 16_384),
            "o3-mini": (200_000, 100_000),
            "o4-mini": (200_000, 100_000),
        },
    ),
    "anthropic": ProviderSpec(
        name="anthropic",
        api=ANTHROPIC_MESSAGES,
        base_url="https://api.anthropic.com/v1",
        models={
            "claude-3-5-haiku-latest": (200_000, 8_192),
            "claude-3-7-sonnet-latest": (200_000, 64_000),
            "claude-sonnet-4-0": (200_000, 64_000),
            "claude-opus-4-0": (200_000, 32_000),
        },
    ),
    "groq": ProviderSpec(
        name="groq",
        api=OPENAI_COMPLETIONS,
        base_url="https://api.groq.com/openai/v1",
        models={
            "llama-3.3-70b-versatile": (131_072, 32_768),
            "llama-3.1-8b-instant": (131_072, 8_192),
            "qwen/qwen3-32b": (131_072, 40_960),
        },
    ),
    "openrouter": ProviderSpec(
        name="openrouter",
        api=OPENAI_COMPLETIONS,
        base_url="https://openrouter.ai/api/v1",
        models={
            "openai/gpt-4.1-mini": (1_047_576, 32_768),
            "anthropic/claude-sonnet-4": (200_000, 64_000),
            "qwen/qwen-2.5-coder-32b-instruct": (32_768, 8_192),
        },
    ),
    "xai": ProviderSpec(
        name="xai",
        api=OPENAI_COMPLETIONS,
        base_url="https://api.x.ai/v1",
        models={
            "grok-3": (131_072, 8_192),
            "grok-3-mini": (131_072, 8_192),
        },
    ),
    "mistral": ProviderSpec(
        name="mistral",
        api=OPENAI_COMPLETIONS,
        base_url="https://api.mistral.ai/v1",
        models={
            "codestral-latest": (256_000, 8_192),
            "devstral-medium-latest": (128_000, 8_192),
            "mistral-small-latest": (128_000, 8_192),
        },
    ),
    # Local servers expose whatever models the user has pulled.
    "ollama": ProviderSpec(
        name="ollama",
        api=OPENAI_COMPLETIONS,
        base_url="http://localhost:11434/v1",
        models={},
        open_catalog=True,
    ),
    "lmstudio": ProviderSpec(
        name="lmstudio",
        api=OPENAI_COMPLETIONS,
        base_url="http://localhost:1234/v1",
        models={},
        open_catalog=True,
    ),
}


def available_providers() -> list[str]:
    return sorted(PROVIDERS)


def get_model(provider: str, model_id: str) -> ModelDescriptor:
    """Resolve a provider/model pair into a descriptor.

    Raises ``ConfigurationError`` when the provider is unknown or the model is
    not part of a fixed catalog.
    """
    key = (provider or "").strip().lower()
    provider_spec = PROVIDERS.get(key)
    if provider_spec is None:
        raise ConfigurationError(f"Unknown provider '{provider}'.")
    model_key = (model_id or "").strip()
    if not model_key:
        raise ConfigurationError(f"No model selected for provider '{provider_spec.name}'.")
    limits = provider_spec.models.get(model_key)
    if limits is None:
        if not provider_spec.open_catalog:
            raise ConfigurationError(f"Unknown model '{model_id}' for provider '{provider_spec.name}'.")
        return ModelDescriptor(provider=provider_spec.name, id=model_key, api=provider_spec.api, base_url=provider_spec.base_url)
    context_window, max_tokens = limits
    return ModelDescriptor(
        provider=provider_spec.name,
        id=model_key,
        api=provider_spec.api,
        base_url=provider_spec.base_url,
        context_window=context_window,
        max_tokens=max_tokens,
    )


__all__ = [
    "ANTHROPIC_MESSAGES",
    "OPENAI_COMPLETIONS",
    "PROVIDERS",
    "ModelDescriptor",
    "ProviderSpec",
    "available_providers",
    "get_model",
]
