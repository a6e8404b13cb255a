from .anthropic import AnthropicProvider
from .base import Provider
from .factory import DEFAULT_KEY_ENV_VARS, get_provider, known_providers, parse_model_id
from .google import GoogleProvider
from .mock import MockProvider
from .openai import OpenAIProvider

__all__ = [
    "DEFAULT_KEY_ENV_VARS",
    "AnthropicProvider",
    "GoogleProvider",
    "MockProvider",
    "OpenAIProvider",
    "Provider",
    "get_provider",
    "known_providers",
    "parse_model_id",
]
