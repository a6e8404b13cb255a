import logging
import time
from typing import Any

from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    AsyncOpenAI,
    AuthenticationError,
    PermissionDeniedError,
    RateLimitError,
)
from openai.lib._pydantic import to_strict_json_schema
from pydantic import BaseModel

from ...domain.contracts.generator import (
    FatalGeneratorError,
    GenerationMode,
    GenerationParams,
    GenerationResult,
    GeneratorError,
    Message,
    TransientGeneratorError,
)
from .base import Provider, require_api_key

logger = logging.getLogger(__name__)


class OpenAIProvider(Provider):
    def __init__(self, api_key_env_var: str = "OPENAI_API_KEY") -> None:
        self.client = AsyncOpenAI(api_key=require_api_key(api_key_env_var))

    @property
    def name(self) -> str:
        return "openai"

    async def generate(
        self,
        model: str,
        messages: list[Message],
        schema: type[BaseModel],
        mode: GenerationMode,
        params: GenerationParams,
    ) -> GenerationResult:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": params.temperature,
            "max_completion_tokens": params.max_tokens,
        }

        if mode is GenerationMode.ENFORCED:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": schema.__name__,
                    "schema": to_strict_json_schema(schema),
                    "strict": True,
                },
            }

        start_time = time.perf_counter()
        try:
            response = await self.client.chat.completions.create(**kwargs)
        except (AuthenticationError, PermissionDeniedError) as e:
            raise FatalGeneratorError(f"OpenAI rejected credentials: {e}") from e
        except (APIConnectionError, RateLimitError) as e:
            raise TransientGeneratorError(f"OpenAI request failed: {e}") from e
        except APIStatusError as e:
            if e.status_code >= 500:
                raise TransientGeneratorError(f"OpenAI server error: {e}") from e
            raise GeneratorError(f"OpenAI API error: {e}") from e
        except APIError as e:
            raise GeneratorError(f"OpenAI API error: {e}") from e
        latency_ms = int((time.perf_counter() - start_time) * 1000)

        if not response.choices:
            raise TransientGeneratorError(f"OpenAI returned no choices for '{model}'")

        message = response.choices[0].message
        if getattr(message, "refusal", None):
            raise GeneratorError(f"Model refused: {message.refusal}")

        text = message.content or ""
        usage = response.usage
        logger.debug("openai %s responded in %d ms", model, latency_ms)

        return GenerationResult(
            text=text,
            parsed=(
                self.parse_enforced(text, schema)
                if mode is GenerationMode.ENFORCED
                else None
            ),
            input_tokens=usage.prompt_tokens if usage else None,
            output_tokens=usage.completion_tokens if usage else None,
            latency_ms=latency_ms,
        )
