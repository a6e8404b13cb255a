import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest
from conftest import VALID_RESPONSE

from schemabench.domain.contracts.generator import (
    FatalGeneratorError,
    GenerationMode,
    GenerationParams,
    TransientGeneratorError,
)
from schemabench.domain.schemas import STAGE_SCHEMAS, RecommendationResponse
from schemabench.infrastructure.providers.anthropic import (
    RESPONSE_TOOL_NAME,
    AnthropicProvider,
)
from schemabench.infrastructure.providers.factory import (
    get_provider,
    known_providers,
    parse_model_id,
)
from schemabench.infrastructure.providers.google import GoogleProvider
from schemabench.infrastructure.providers.mock import MockProvider
from schemabench.infrastructure.providers.openai import OpenAIProvider

MESSAGES = [
    {"role": "system", "content": "sys"},
    {"role": "user", "content": "context"},
    {"role": "user", "content": "question"},
]


def _generate(provider, mode, schema=RecommendationResponse):
    return asyncio.run(
        provider.generate(
            model="m",
            messages=MESSAGES,
            schema=schema,
            mode=mode,
            params=GenerationParams(temperature=0.2, max_tokens=300),
        )
    )


@pytest.mark.parametrize(
    "model_id,expected_provider,expected_model",
    [
        ("openai:gpt-4o", "openai", "gpt-4o"),
        ("anthropic:claude-sonnet-4-5", "anthropic", "claude-sonnet-4-5"),
        ("google:gemini-2.5-flash", "google", "gemini-2.5-flash"),
    ],
)
def test_parse_model_id_valid(
    model_id: str, expected_provider: str, expected_model: str
):
    provider, model = parse_model_id(model_id)

    assert provider == expected_provider
    assert model == expected_model


def test_parse_model_id_raises_for_invalid():
    with pytest.raises(ValueError, match="Invalid model ID"):
        parse_model_id("gpt-4o")


def test_get_provider_raises_for_unknown():
    with pytest.raises(ValueError, match="Unknown provider"):
        get_provider("unknown")


def test_known_providers():
    result = known_providers()

    assert isinstance(result, frozenset)
    assert {"openai", "anthropic", "google", "mock"} <= result
    assert "gemini" not in result


def test_get_provider_mock_ignores_key_ref():
    provider = get_provider("mock", api_key_env_var="UNUSED")

    assert provider.name == "mock"


# --- API key environment variables ---


@patch("schemabench.infrastructure.providers.openai.AsyncOpenAI")
def test_openai_provider_custom_env_var(
    mock_openai_client: MagicMock, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setenv("MY_OPENAI_KEY", "test-key-123")

    provider = OpenAIProvider(api_key_env_var="MY_OPENAI_KEY")

    assert provider.name == "openai"
    mock_openai_client.assert_called_once_with(api_key="test-key-123")


@patch("schemabench.infrastructure.providers.anthropic.AsyncAnthropic")
def test_anthropic_provider_default_env_var(
    mock_anthropic_client: MagicMock, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "default-key-456")

    provider = AnthropicProvider()

    assert provider.name == "anthropic"
    mock_anthropic_client.assert_called_once_with(api_key="default-key-456")


def test_provider_custom_env_var_missing(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("MY_CUSTOM_KEY", raising=False)

    with pytest.raises(ValueError, match="MY_CUSTOM_KEY environment variable not set"):
        OpenAIProvider(api_key_env_var="MY_CUSTOM_KEY")


@patch("schemabench.infrastructure.providers.openai.AsyncOpenAI")
def test_get_provider_forwards_api_key_env_var(
    mock_openai_client: MagicMock, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setenv("MY_KEY", "forwarded-key-789")

    provider = get_provider("openai", api_key_env_var="MY_KEY")

    assert provider.name == "openai"
    mock_openai_client.assert_called_once_with(api_key="forwarded-key-789")


# --- OpenAI ---


def _openai_response(content: str, usage=True):
    message = SimpleNamespace(content=content, refusal=None)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message)],
        usage=SimpleNamespace(prompt_tokens=40, completion_tokens=12) if usage else None,
    )


@patch("schemabench.infrastructure.providers.openai.AsyncOpenAI")
def test_openai_enforced_sends_strict_response_format(
    mock_openai_client: MagicMock, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setenv("OPENAI_API_KEY", "k")
    create = AsyncMock(return_value=_openai_response(VALID_RESPONSE))
    mock_openai_client.return_value.chat.completions.create = create

    result = _generate(OpenAIProvider(), GenerationMode.ENFORCED)

    kwargs = create.call_args.kwargs
    assert kwargs["response_format"]["type"] == "json_schema"
    assert kwargs["response_format"]["json_schema"]["strict"] is True
    assert kwargs["temperature"] == 0.2
    assert isinstance(result.parsed, RecommendationResponse)
    assert result.input_tokens == 40
    assert result.output_tokens == 12


@patch("schemabench.infrastructure.providers.openai.AsyncOpenAI")
def test_openai_guided_returns_text_without_usage(
    mock_openai_client: MagicMock, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setenv("OPENAI_API_KEY", "k")
    create = AsyncMock(return_value=_openai_response("hello", usage=False))
    mock_openai_client.return_value.chat.completions.create = create

    result = _generate(OpenAIProvider(), GenerationMode.GUIDED)

    assert "response_format" not in create.call_args.kwargs
    assert result.text == "hello"
    assert result.parsed is None
    assert result.input_tokens is None


def _refs_with_siblings(node, path="root") -> list[str]:
    found = []
    if isinstance(node, dict):
        if "$ref" in node and len(node) > 1:
            found.append(path)
        for key, value in node.items():
            found.extend(_refs_with_siblings(value, f"{path}.{key}"))
    elif isinstance(node, list):
        for i, item in enumerate(node):
            found.extend(_refs_with_siblings(item, f"{path}[{i}]"))
    return found


@patch("schemabench.infrastructure.providers.openai.AsyncOpenAI")
def test_openai_strict_schema_has_no_annotated_refs(
    mock_openai_client: MagicMock, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setenv("OPENAI_API_KEY", "k")
    create = AsyncMock(return_value=_openai_response(VALID_RESPONSE))
    mock_openai_client.return_value.chat.completions.create = create

    _generate(OpenAIProvider(), GenerationMode.ENFORCED)

    schema = create.call_args.kwargs["response_format"]["json_schema"]["schema"]
    assert _refs_with_siblings(schema) == []
    assert schema["additionalProperties"] is False
    assert sorted(schema["required"]) == ["action", "recommendation"]


@patch("schemabench.infrastructure.providers.openai.AsyncOpenAI")
def test_openai_enforced_invalid_output_keeps_usage(
    mock_openai_client: MagicMock, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setenv("OPENAI_API_KEY", "k")
    mock_openai_client.return_value.chat.completions.create = AsyncMock(
        return_value=_openai_response('{"recommendation": "short"}')
    )

    result = _generate(OpenAIProvider(), GenerationMode.ENFORCED)

    assert result.parsed is None
    assert result.text == '{"recommendation": "short"}'
    assert result.input_tokens == 40
    assert result.output_tokens == 12


@patch("schemabench.infrastructure.providers.openai.AsyncOpenAI")
def test_openai_empty_choices_is_transient(
    mock_openai_client: MagicMock, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setenv("OPENAI_API_KEY", "k")
    mock_openai_client.return_value.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(choices=[], usage=None)
    )

    with pytest.raises(TransientGeneratorError, match="no choices"):
        _generate(OpenAIProvider(), GenerationMode.GUIDED)


def _openai_status_error(cls, status: int):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return cls("error", response=httpx.Response(status, request=request), body=None)


@pytest.mark.parametrize(
    "error,expected",
    [
        (_openai_status_error(openai.AuthenticationError, 401), FatalGeneratorError),
        (_openai_status_error(openai.PermissionDeniedError, 403), FatalGeneratorError),
        (_openai_status_error(openai.RateLimitError, 429), TransientGeneratorError),
        (_openai_status_error(openai.InternalServerError, 500), TransientGeneratorError),
        (
            openai.APIConnectionError(
                request=httpx.Request("POST", "https://api.openai.com")
            ),
            TransientGeneratorError,
        ),
    ],
)
@patch("schemabench.infrastructure.providers.openai.AsyncOpenAI")
def test_openai_error_mapping(
    mock_openai_client: MagicMock,
    error: Exception,
    expected: type[Exception],
    monkeypatch: pytest.MonkeyPatch,
):
    monkeypatch.setenv("OPENAI_API_KEY", "k")
    mock_openai_client.return_value.chat.completions.create = AsyncMock(
        side_effect=error
    )

    with pytest.raises(expected):
        _generate(OpenAIProvider(), GenerationMode.GUIDED)


# --- Anthropic ---


@patch("schemabench.infrastructure.providers.anthropic.AsyncAnthropic")
def test_anthropic_enforced_forces_tool_call(
    mock_anthropic_client: MagicMock, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "k")
    block = SimpleNamespace(
        type="tool_use", name=RESPONSE_TOOL_NAME, input=json.loads(VALID_RESPONSE)
    )
    create = AsyncMock(
        return_value=SimpleNamespace(
            content=[block],
            usage=SimpleNamespace(input_tokens=50, output_tokens=20),
        )
    )
    mock_anthropic_client.return_value.messages.create = create

    result = _generate(AnthropicProvider(), GenerationMode.ENFORCED)

    kwargs = create.call_args.kwargs
    assert kwargs["system"] == "sys"
    assert kwargs["tool_choice"] == {"type": "tool", "name": RESPONSE_TOOL_NAME}
    assert kwargs["messages"] == [{"role": "user", "content": "context\n\nquestion"}]
    assert isinstance(result.parsed, RecommendationResponse)
    assert json.loads(result.text) == json.loads(VALID_RESPONSE)
    assert result.input_tokens == 50


# --- Google ---


def _google_provider(handler, monkeypatch: pytest.MonkeyPatch) -> GoogleProvider:
    monkeypatch.setenv("GOOGLE_GENERATIVE_AI_API_KEY", "g-key")
    return GoogleProvider(transport=httpx.MockTransport(handler))


def test_google_enforced_payload_and_parse(monkeypatch: pytest.MonkeyPatch):
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers["x-goog-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "candidates": [{"content": {"parts": [{"text": VALID_RESPONSE}]}}],
                "usageMetadata": {"promptTokenCount": 30, "candidatesTokenCount": 9},
            },
        )

    result = _generate(_google_provider(handler, monkeypatch), GenerationMode.ENFORCED)

    assert seen["url"].endswith("/models/m:generateContent")
    assert seen["key"] == "g-key"
    config = seen["body"]["generationConfig"]
    assert config["responseMimeType"] == "application/json"
    assert "responseJsonSchema" in config
    assert seen["body"]["systemInstruction"] == {"parts": [{"text": "sys"}]}
    assert isinstance(result.parsed, RecommendationResponse)
    assert result.output_tokens == 9


@pytest.mark.parametrize(
    "status,expected",
    [
        (401, FatalGeneratorError),
        (403, FatalGeneratorError),
        (429, TransientGeneratorError),
        (503, TransientGeneratorError),
    ],
)
def test_google_status_mapping(status, expected, monkeypatch: pytest.MonkeyPatch):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"error": {"message": "nope"}})

    with pytest.raises(expected, match="nope"):
        _generate(_google_provider(handler, monkeypatch), GenerationMode.GUIDED)


# --- Mock ---


@pytest.mark.parametrize("schema", [RecommendationResponse, *STAGE_SCHEMAS])
def test_mock_provider_satisfies_every_schema(schema):
    provider = MockProvider()

    enforced = _generate(provider, GenerationMode.ENFORCED, schema)
    guided = _generate(provider, GenerationMode.GUIDED, schema)

    assert isinstance(enforced.parsed, schema)
    assert guided.text.startswith("```json")


@patch("schemabench.infrastructure.providers.anthropic.AsyncAnthropic")
def test_anthropic_enforced_without_tool_call_returns_text(
    mock_anthropic_client: MagicMock, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "k")
    mock_anthropic_client.return_value.messages.create = AsyncMock(
        return_value=SimpleNamespace(
            content=[SimpleNamespace(type="text", text="I would rather chat.")],
            usage=SimpleNamespace(input_tokens=50, output_tokens=6),
        )
    )

    result = _generate(AnthropicProvider(), GenerationMode.ENFORCED)

    assert result.parsed is None
    assert result.text == "I would rather chat."
    assert result.output_tokens == 6


@pytest.mark.parametrize(
    "body",
    ["<html>oops</html>", "[]", '{"candidates": [{"content": "flat"}]}'],
)
def test_google_unreadable_body_is_transient(body, monkeypatch: pytest.MonkeyPatch):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body)

    with pytest.raises(TransientGeneratorError, match="unreadable body"):
        _generate(_google_provider(handler, monkeypatch), GenerationMode.GUIDED)
