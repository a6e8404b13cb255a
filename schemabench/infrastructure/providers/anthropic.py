import json
import logging
import time
from typing import Any

from anthropic import (
    APIConnectionError,
    APIError,
    APIStatusError,
    AsyncAnthropic,
    AuthenticationError,
    PermissionDeniedError,
    RateLimitError,
)
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

RESPONSE_TOOL_NAME = "submit_response"


class AnthropicProvider(Provider):
    def __init__(self, api_key_env_var: str = "ANTHROPIC_API_KEY") -> None:
        self.client = AsyncAnthropic(api_key=require_api_key(api_key_env_var))

    @property
    def name(self) -> str:
        return "anthropic"

    async def generate(
        self,
        model: str,
        messages: list[Message],
        schema: type[BaseModel],
        mode: GenerationMode,
        params: GenerationParams,
    ) -> GenerationResult:
        system_content, conversation = self.split_system(messages)

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
            "messages": self.merge_consecutive(conversation),
        }

        if system_content:
            kwargs["system"] = system_content

        if mode is GenerationMode.ENFORCED:
            kwargs["tools"] = [
                {
                    "name": RESPONSE_TOOL_NAME,
                    "description": f"Submit the {schema.__name__} response",
                    "input_schema": schema.model_json_schema(),
                }
            ]
            kwargs["tool_choice"] = {"type": "tool", "name": RESPONSE_TOOL_NAME}

        start_time = time.perf_counter()
        try:
            response = await self.client.messages.create(**kwargs)
        except (AuthenticationError, PermissionDeniedError) as e:
            raise FatalGeneratorError(f"Anthropic rejected credentials: {e}") from e
        except (APIConnectionError, RateLimitError) as e:
            raise TransientGeneratorError(f"Anthropic request failed: {e}") from e
        except APIStatusError as e:
            if e.status_code >= 500:
                raise TransientGeneratorError(f"Anthropic server error: {e}") from e
            raise GeneratorError(f"Anthropic API error: {e}") from e
        except APIError as e:
            raise GeneratorError(f"Anthropic API error: {e}") from e
        latency_ms = int((time.perf_counter() - start_time) * 1000)

        text = ""
        tool_input: Any = None
        for block in response.content:
            if block.type == "text":
                text += block.text
            elif block.type == "tool_use" and block.name == RESPONSE_TOOL_NAME:
                tool_input = block.input

        logger.debug("anthropic %s responded in %d ms", model, latency_ms)

        parsed = None
        # without a tool call the prose reply is validated like a guided one
        if mode is GenerationMode.ENFORCED and tool_input is not None:
            text = json.dumps(tool_input)
            parsed = self.parse_enforced(text, schema)

        return GenerationResult(
            text=text,
            parsed=parsed,
            input_tokens=response.usage.input_tokens if response.usage else None,
            output_tokens=response.usage.output_tokens if response.usage else None,
            latency_ms=latency_ms,
        )
