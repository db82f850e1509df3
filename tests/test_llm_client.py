"""Tests for the completion client and its settings."""

import asyncio
from types import SimpleNamespace

import anthropic
import httpx
import openai
import pytest

from novelstudio.ai.config import LLMConfig, ModelTier, Provider, config_from_dict, load_config
from novelstudio.ai.llm_client import (
    CompletionBackend,
    GeminiBackend,
    LLMClient,
    OpenAICompatibleBackend,
    _translate_sdk_error,
)
from novelstudio.core.exceptions import (
    CompletionTimeoutError,
    ConfigurationError,
    EmptyResponseError,
    NetworkError,
    RateLimitedError,
    ServiceError,
)
from novelstudio.io.file_handler import FileHandler


class ScriptedBackend(CompletionBackend):
    def __init__(self, config, reply="ok", delay=0.0, error=None):
        super().__init__(config)
        self.reply = reply
        self.delay = delay
        self.error = error
        self.requests = []

    async def generate(self, prompt, system_instruction, json_mode, model, temperature, tier):
        self.requests.append(SimpleNamespace(
            prompt=prompt, system=system_instruction, json_mode=json_mode,
            model=model, temperature=temperature, tier=tier,
        ))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.reply


def make_client(**backend_kwargs):
    config = LLMConfig(api_key="test-key", timeout=5)
    backend = ScriptedBackend(config, **backend_kwargs)
    return LLMClient(config, backend=backend), backend


def test_missing_key_is_rejected_before_any_request():
    with pytest.raises(ConfigurationError):
        LLMClient(LLMConfig(api_key="  "))


def test_request_shape():
    client, backend = make_client(reply="生成的文本")

    text = asyncio.run(client.complete("写一章", system_instruction="You are a ghostwriter.",
                                       json_mode=True, model_tier=ModelTier.DEEP))

    assert text == "生成的文本"
    request = backend.requests[0]
    assert request.model == client.config.model_for(ModelTier.DEEP)
    assert request.json_mode is True
    assert request.temperature == client.config.temperature
    assert request.system.startswith("You are a ghostwriter.")
    assert "Always write your reply in" in request.system


def test_timeout_becomes_service_error():
    config = LLMConfig(api_key="k", timeout=0.01)
    client = LLMClient(config, backend=ScriptedBackend(config, delay=1.0))

    with pytest.raises(CompletionTimeoutError):
        asyncio.run(client.complete("hi"))


def test_blank_reply_is_an_error():
    client, _ = make_client(reply="   \n")

    with pytest.raises(EmptyResponseError):
        asyncio.run(client.complete("hi"))


def test_unexpected_backend_error_is_translated():
    client, _ = make_client(error=RuntimeError("socket closed"))

    with pytest.raises(ServiceError) as excinfo:
        asyncio.run(client.complete("hi"))
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_sdk_error_mapping():
    request = httpx.Request("POST", "https://example.invalid/v1")
    response = httpx.Response(429, request=request)

    assert isinstance(_translate_sdk_error(anthropic.APITimeoutError(request=request), anthropic),
                      CompletionTimeoutError)
    assert isinstance(_translate_sdk_error(openai.APIConnectionError(request=request), openai), NetworkError)
    assert isinstance(
        _translate_sdk_error(openai.RateLimitError("slow down", response=response, body=None), openai),
        RateLimitedError,
    )


def gemini_client_raising(error):
    config = LLMConfig(provider=Provider.GEMINI, api_key="k", timeout=5)
    backend = GeminiBackend(config)

    async def generate_content(**kwargs):
        raise error

    backend.client = SimpleNamespace(aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate_content)))
    return LLMClient(config, backend=backend)


@pytest.mark.parametrize("error, expected", [
    (httpx.ConnectError("connection refused"), NetworkError),
    (httpx.ReadTimeout("read timed out"), CompletionTimeoutError),
    (ConnectionResetError("reset by peer"), NetworkError),
])
def test_gemini_transport_errors_are_classified(error, expected):
    client = gemini_client_raising(error)

    with pytest.raises(expected) as excinfo:
        asyncio.run(client.complete("hi"))
    assert excinfo.value.__cause__ is error


class FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def openai_backend(provider, content):
    backend = OpenAICompatibleBackend(LLMConfig(provider=provider, api_key="k"))
    completions = FakeCompletions(content)
    backend.client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return backend, completions


def test_deepseek_reasoning_preamble_is_stripped():
    backend, completions = openai_backend(Provider.DEEPSEEK, "<think>planning...</think>\n{\"a\": 1}")

    text = asyncio.run(backend.generate("p", "s", True, "deepseek-chat", 0.5, ModelTier.FAST))

    assert text == '{"a": 1}'
    assert "response_format" not in completions.kwargs


def test_json_mode_requests_json_object():
    backend, completions = openai_backend(Provider.QWEN, '{"a": 1}')

    asyncio.run(backend.generate("p", "s", True, "qwen-plus", 0.5, ModelTier.FAST))

    assert completions.kwargs["response_format"] == {"type": "json_object"}


def test_config_environment_overrides():
    config = config_from_dict(
        {"provider": "anthropic", "api_key": "from-file"},
        env={"NOVELSTUDIO_PROVIDER": "deepseek", "DEEPSEEK_API_KEY": "from-env"},
    )

    assert config.provider is Provider.DEEPSEEK
    assert config.api_key == "from-env"
    assert config.resolved_base_url() == "https://api.deepseek.com"


def test_config_custom_base_url_trailing_slash():
    config = config_from_dict({"provider": "openai", "api_key": "k", "base_url": "https://proxy.local/v1/"}, env={})
    assert config.resolved_base_url() == "https://proxy.local/v1"


def test_unknown_provider():
    with pytest.raises(ConfigurationError):
        config_from_dict({"provider": "mystery"}, env={})


def test_load_config_from_yaml(tmp_path):
    path = tmp_path / "settings.yaml"
    FileHandler().write_yaml(path, {
        "provider": "gemini",
        "api_key": "g-key",
        "timeout": 30,
        "models": {"deep": "gemini-custom"},
    })

    config = load_config(path, env={})

    assert config.provider is Provider.GEMINI
    assert config.timeout == 30.0
    assert config.model_for(ModelTier.DEEP) == "gemini-custom"
    assert config.model_for(ModelTier.FAST) == "gemini-2.5-flash"
