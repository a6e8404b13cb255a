import json
import logging
import time
from typing import Any

import httpx
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

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
REQUEST_TIMEOUT_SECONDS = 120.0


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("error", {}).get("message", response.text[:200])
    except (json.JSONDecodeError, AttributeError):
        return response.text[:200]


class GoogleProvider(Provider):
    def __init__(
        self,
        api_key_env_var: str = "GOOGLE_GENERATIVE_AI_API_KEY",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client = httpx.AsyncClient(
            base_url=GEMINI_BASE_URL,
            headers={"x-goog-api-key": require_api_key(api_key_env_var)},
            timeout=REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "google"

    def build_payload(
        self,
        messages: list[Message],
        schema: type[BaseModel],
        mode: GenerationMode,
        params: GenerationParams,
    ) -> dict[str, Any]:
        system_content, conversation = self.split_system(messages)

        contents = [
            {
                "role": "model" if m["role"] == "assistant" else "user",
                "parts": [{"text": m["content"]}],
            }
            for m in self.merge_consecutive(conversation)
        ]

        generation_config: dict[str, Any] = {
            "temperature": params.temperature,
            "maxOutputTokens": params.max_tokens,
            "candidateCount": 1,
        }
        if mode is GenerationMode.ENFORCED:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseJsonSchema"] = schema.model_json_schema()

        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": generation_config,
        }
        if system_content:
            payload["systemInstruction"] = {"parts": [{"text": system_content}]}
        return payload

    async def generate(
        self,
        model: str,
        messages: list[Message],
        schema: type[BaseModel],
        mode: GenerationMode,
        params: GenerationParams,
    ) -> GenerationResult:
        payload = self.build_payload(messages, schema, mode, params)

        start_time = time.perf_counter()
        try:
            response = await self.client.post(
                f"/models/{model}:generateContent", json=payload
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = f"Google API error ({status}) for model '{model}': {_error_message(e.response)}"
            if status in (401, 403):
                raise FatalGeneratorError(detail) from e
            if status == 429 or status >= 500:
                raise TransientGeneratorError(detail) from e
            raise GeneratorError(detail) from e
        except httpx.TransportError as e:
            raise TransientGeneratorError(
                f"Google API request failed for model '{model}': {e}"
            ) from e
        latency_ms = int((time.perf_counter() - start_time) * 1000)

        try:
            data = response.json()
            text = ""
            candidates = data.get("candidates") or []
            if candidates:
                parts = candidates[0].get("content", {}).get("parts", [])
                text = "".join(part.get("text", "") for part in parts)
            usage = data.get("usageMetadata") or {}
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise TransientGeneratorError(
                f"Google API returned an unreadable body for model '{model}': {e}"
            ) from e

        logger.debug("google %s responded in %d ms", model, latency_ms)

        return GenerationResult(
            text=text,
            parsed=(
                self.parse_enforced(text, schema)
                if mode is GenerationMode.ENFORCED
                else None
            ),
            input_tokens=usage.get("promptTokenCount"),
            output_tokens=usage.get("candidatesTokenCount"),
            latency_ms=latency_ms,
        )
