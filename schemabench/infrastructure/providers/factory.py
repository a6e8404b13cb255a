from collections.abc import Callable

from ...domain.contracts.generator import GeneratorContract

DEFAULT_KEY_ENV_VARS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_GENERATIVE_AI_API_KEY",
}


def parse_model_id(model_id: str) -> tuple[str, str]:
    if ":" not in model_id:
        raise ValueError(
            f"Invalid model ID '{model_id}'. Expected format: 'provider:model'"
        )

    provider, model = model_id.split(":", 1)
    return provider, model


def _build_registry() -> dict[str, Callable[..., GeneratorContract]]:
    from .anthropic import AnthropicProvider
    from .google import GoogleProvider
    from .mock import MockProvider
    from .openai import OpenAIProvider

    return {
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
        "google": GoogleProvider,
        "mock": MockProvider,
    }


def known_providers() -> frozenset[str]:
    return frozenset(_build_registry().keys())


def get_provider(
    provider_name: str, api_key_env_var: str | None = None
) -> GeneratorContract:
    registry = _build_registry()

    if provider_name not in registry:
        raise ValueError(
            f"Unknown provider '{provider_name}'. "
            f"Available: {', '.join(sorted(registry.keys()))}"
        )

    if api_key_env_var is not None and provider_name in DEFAULT_KEY_ENV_VARS:
        return registry[provider_name](api_key_env_var=api_key_env_var)
    return registry[provider_name]()
