"""Completion client: one request/response text-generation call across providers."""

import asyncio
import logging
from typing import Dict, List, Optional

import anthropic
import httpx
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from ..core.exceptions import (
    ServiceError,
    UnauthorizedError,
    RateLimitedError,
    CompletionTimeoutError,
    NetworkError,
    EmptyResponseError,
)
from .config import LLMConfig, ModelTier, Provider

logger = logging.getLogger(__name__)

JSON_ONLY_INSTRUCTION = "Respond with a single valid JSON value and nothing else: no prose, no code fences."


def _translate_sdk_error(exc: Exception, sdk) -> ServiceError:
    """Map anthropic/openai SDK exceptions, which share one class layout, onto ServiceError."""
    message = str(exc) or exc.__class__.__name__
    if isinstance(exc, (sdk.AuthenticationError, sdk.PermissionDeniedError)):
        return UnauthorizedError(f"Credential rejected: {message}")
    if isinstance(exc, sdk.RateLimitError):
        return RateLimitedError(f"Rate limited: {message}")
    # APITimeoutError subclasses APIConnectionError, so it is checked first.
    if isinstance(exc, sdk.APITimeoutError):
        return CompletionTimeoutError(f"Request timed out: {message}")
    if isinstance(exc, sdk.APIConnectionError):
        return NetworkError(f"Could not reach the backend: {message}")
    if isinstance(exc, sdk.APIStatusError):
        return ServiceError(f"Backend error ({exc.status_code}): {message}")
    return ServiceError(message)


class CompletionBackend:
    """One provider's transport. Subclasses raise SDK errors; the client translates them."""

    def __init__(self, config: LLMConfig):
        self.config = config

    async def generate(
        self,
        prompt: str,
        system_instruction: str,
        json_mode: bool,
        model: str,
        temperature: float,
        tier: ModelTier,
    ) -> str:
        raise NotImplementedError

    def translate_error(self, exc: Exception) -> ServiceError:
        return ServiceError(str(exc) or exc.__class__.__name__)


class AnthropicBackend(CompletionBackend):
    """Anthropic Messages API; DEEP-tier requests are streamed."""

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self.client = AsyncAnthropic(api_key=config.api_key.strip(), base_url=config.resolved_base_url())

    async def generate(self, prompt, system_instruction, json_mode, model, temperature, tier):
        if json_mode:
            system_instruction = f"{system_instruction}\n{JSON_ONLY_INSTRUCTION}"
        messages = [{"role": "user", "content": prompt}]

        if tier is ModelTier.DEEP:
            return await self._make_streaming_request(messages, system_instruction, model, temperature)

        response = await self.client.messages.create(
            model=model,
            max_tokens=self.config.max_tokens,
            system=system_instruction,
            messages=messages,
            temperature=temperature,
        )
        return "".join(block.text for block in response.content if getattr(block, "type", "") == "text")

    async def _make_streaming_request(
        self, messages: List[Dict[str, str]], system: str, model: str, temperature: float
    ) -> str:
        """Streaming request for long generations."""
        full_response = []
        async with self.client.messages.stream(
            model=model,
            max_tokens=self.config.max_tokens,
            system=system,
            messages=messages,
            temperature=temperature,
        ) as stream:
            async for text in stream.text_stream:
                full_response.append(text)
        return "".join(full_response)

    def translate_error(self, exc):
        return _translate_sdk_error(exc, anthropic)


class OpenAICompatibleBackend(CompletionBackend):
    """Chat Completions API for OpenAI, DeepSeek and Qwen (DashScope compatible mode)."""

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self.client = AsyncOpenAI(api_key=config.api_key.strip(), base_url=config.resolved_base_url())

    async def generate(self, prompt, system_instruction, json_mode, model, temperature, tier):
        kwargs = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
        }
        # DeepSeek rejects response_format.
        if json_mode and self.config.provider is not Provider.DEEPSEEK:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self.client.chat.completions.create(**kwargs)
        content = response.choices[0].message.content if response.choices else ""
        content = content or ""
        if self.config.provider is Provider.DEEPSEEK and "</think>" in content:
            content = content.split("</think>", 1)[1].strip()
        return content

    def translate_error(self, exc):
        return _translate_sdk_error(exc, openai)


class GeminiBackend(CompletionBackend):
    """Google Gemini through the google-genai async client."""

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        http_options = None
        if config.base_url:
            http_options = genai_types.HttpOptions(base_url=config.resolved_base_url())
        self.client = genai.Client(api_key=config.api_key.strip(), http_options=http_options)

    async def generate(self, prompt, system_instruction, json_mode, model, temperature, tier):
        generation_config = genai_types.GenerateContentConfig(
            temperature=temperature,
            system_instruction=system_instruction,
            response_mime_type="application/json" if json_mode else None,
        )
        response = await self.client.aio.models.generate_content(
            model=model,
            contents=prompt,
            config=generation_config,
        )
        return response.text or ""

    def translate_error(self, exc):
        if isinstance(exc, genai_errors.APIError):
            if exc.code in (401, 403):
                return UnauthorizedError(f"Credential rejected: {exc}")
            if exc.code == 429:
                return RateLimitedError(f"Rate limited: {exc}")
            return ServiceError(f"Gemini error ({exc.code}): {exc}")
        # google-genai lets its httpx transport errors through unwrapped.
        if isinstance(exc, httpx.TimeoutException):
            return CompletionTimeoutError(f"Request timed out: {exc}")
        if isinstance(exc, (httpx.TransportError, ConnectionError)):
            return NetworkError(f"Could not reach the backend: {exc}")
        return super().translate_error(exc)


BACKENDS = {
    Provider.ANTHROPIC: AnthropicBackend,
    Provider.GEMINI: GeminiBackend,
    Provider.DEEPSEEK: OpenAICompatibleBackend,
    Provider.QWEN: OpenAICompatibleBackend,
    Provider.OPENAI: OpenAICompatibleBackend,
}


class LLMClient:
    """Stateless completion capability bound to an explicit :class:`LLMConfig`.

    Every call is bounded by ``config.timeout``. All failures surface as
    :class:`ServiceError` subclasses; nothing is retried automatically.
    """

    def __init__(self, config: LLMConfig, backend: Optional[CompletionBackend] = None):
        config.validate()
        self.config = config
        self.backend = backend or BACKENDS[config.provider](config)

    def _system_instruction(self, system_instruction: str) -> str:
        language = f"Always write your reply in {self.config.output_language}."
        if not system_instruction:
            return language
        return f"{system_instruction}\n{language}"

    async def complete(
        self,
        prompt: str,
        system_instruction: str = "",
        json_mode: bool = False,
        model_tier: ModelTier = ModelTier.FAST,
        temperature: Optional[float] = None,
    ) -> str:
        """Send one prompt and return the generated text."""
        model = self.config.model_for(model_tier)
        temperature = self.config.temperature if temperature is None else temperature
        logger.debug(
            "Completion request: provider=%s model=%s json=%s prompt_chars=%d",
            self.config.provider.value, model, json_mode, len(prompt),
        )
        try:
            text = await asyncio.wait_for(
                self.backend.generate(
                    prompt,
                    self._system_instruction(system_instruction),
                    json_mode,
                    model,
                    temperature,
                    model_tier,
                ),
                timeout=self.config.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Completion timed out after %.0fs", self.config.timeout)
            raise CompletionTimeoutError(
                f"No response within {self.config.timeout:.0f}s; check the network or base URL"
            )
        except ServiceError as e:
            logger.warning("Completion failed: %s", e.__class__.__name__)
            raise
        except Exception as e:
            error = self.backend.translate_error(e)
            logger.warning("Completion failed: %s (%s)", error.__class__.__name__, e)
            raise error from e

        if not text or not text.strip():
            logger.warning("Completion returned empty text")
            raise EmptyResponseError("The backend returned empty content")
        return text
