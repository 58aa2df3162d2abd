"""
LLM client wrapper. Supports Gemini, OpenAI, Anthropic, Groq and Ollama.
All providers are spoken to over plain httpx.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from config import LLMSettings, get_settings


logger = logging.getLogger(__name__)


class LLMCallFailedError(Exception):
    """LLM 호출 실패 예외"""
    pass


def _is_rate_limited(error: Exception) -> bool:
    return (
        isinstance(error, httpx.HTTPStatusError)
        and error.response.status_code == 429
    )


class LLMClient(ABC):
    """Abstract LLM client interface."""

    def __init__(
        self,
        settings: Optional[LLMSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = settings or get_settings().llm
        self.model = settings.model_name
        self.image_model = settings.image_model_name
        self.api_key = settings.api_key
        self.temperature = settings.temperature
        self.max_tokens = settings.max_tokens
        self.timeout = settings.timeout
        self.max_retries = settings.max_retries
        self.rate_limit_delay = settings.rate_limit_delay
        self._transport = transport

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _build_messages(self, prompt: str, system_prompt: Optional[str] = None) -> list:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    @abstractmethod
    async def _generate_once(
        self, prompt: str, system_prompt: Optional[str], json_mode: bool
    ) -> str:
        ...

    async def generate(
        self, prompt: str, system_prompt: Optional[str] = None, json_mode: bool = False
    ) -> str:
        """Text generation with retry. Raises LLMCallFailedError when retries run out."""
        for attempt in range(self.max_retries):
            try:
                response = await self._generate_once(prompt, system_prompt, json_mode)
                if self.rate_limit_delay:
                    await asyncio.sleep(self.rate_limit_delay)
                return response
            except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
                if _is_rate_limited(e):
                    wait_time = (attempt + 1) * 10
                    logger.warning("Rate limit, waiting %ss...", wait_time)
                    await asyncio.sleep(wait_time)
                elif attempt == self.max_retries - 1:
                    raise LLMCallFailedError(f"LLM call failed: {e}") from e
                else:
                    logger.info("LLM call failed (attempt %d): %s", attempt + 1, e)

        raise LLMCallFailedError(f"LLM call failed after {self.max_retries} retries")

    async def generate_image(self, prompt: str) -> str:
        """Base64 image for prompt. Providers without images raise LLMCallFailedError."""
        raise LLMCallFailedError(f"{type(self).__name__} does not support image generation")


class GeminiClient(LLMClient):
    """
    Google Gemini REST client.
    Text: gemini-2.5-pro, images: gemini-2.0-flash-preview-image-generation
    """

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    def __init__(self, settings=None, transport=None):
        super().__init__(settings, transport)
        if not self.api_key:
            raise ValueError("Gemini API key not set (LLM_API_KEY)")

    def _url(self, model: str) -> str:
        return f"{self.BASE_URL}/{model}:generateContent"

    async def _post(self, model: str, body: dict) -> dict:
        async with self._http_client() as client:
            response = await client.post(
                self._url(model),
                headers={
                    "x-goog-api-key": self.api_key,
                    "Content-Type": "application/json",
                },
                json=body,
            )
            response.raise_for_status()
            return response.json()

    async def _generate_once(self, prompt, system_prompt, json_mode):
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_tokens,
            },
        }
        if system_prompt:
            body["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        if json_mode:
            body["generationConfig"]["responseMimeType"] = "application/json"

        data = await self._post(self.model, body)
        parts = data["candidates"][0]["content"]["parts"]
        return "".join(part.get("text", "") for part in parts)

    async def generate_image(self, prompt: str) -> str:
        body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }
        try:
            data = await self._post(self.image_model, body)
            for candidate in data.get("candidates", []):
                for part in candidate.get("content", {}).get("parts", []):
                    inline = part.get("inlineData") or part.get("inline_data")
                    if inline and inline.get("data"):
                        return inline["data"]
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            raise LLMCallFailedError(f"Image generation failed: {e}") from e
        raise LLMCallFailedError("No image data in response")


class OpenAIClient(LLMClient):
    """OpenAI API client."""

    BASE_URL = "https://api.openai.com/v1/chat/completions"
    IMAGE_URL = "https://api.openai.com/v1/images/generations"

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _generate_once(self, prompt, system_prompt, json_mode):
        body = {
            "model": self.model,
            "messages": self._build_messages(prompt, system_prompt),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        async with self._http_client() as client:
            response = await client.post(self.BASE_URL, headers=self._headers(), json=body)
            response.raise_for_status()
            data = response.json()
            return data["choices"][0]["message"]["content"]

    async def generate_image(self, prompt: str) -> str:
        body = {"model": self.image_model, "prompt": prompt, "n": 1, "size": "1536x1024"}
        try:
            async with self._http_client() as client:
                response = await client.post(self.IMAGE_URL, headers=self._headers(), json=body)
                response.raise_for_status()
                data = response.json()
            return data["data"][0]["b64_json"]
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMCallFailedError(f"Image generation failed: {e}") from e


class GroqClient(OpenAIClient):
    """
    Groq API client - OpenAI-compatible chat completions.
    Models: llama-3.3-70b-versatile, llama-3.1-8b-instant
    """

    BASE_URL = "https://api.groq.com/openai/v1/chat/completions"

    def __init__(self, settings=None, transport=None):
        super().__init__(settings, transport)
        if not self.api_key or self.api_key == "your-groq-api-key-here":
            raise ValueError(
                "Groq API key not set. Get free key at https://console.groq.com"
            )

    async def generate_image(self, prompt: str) -> str:
        raise LLMCallFailedError("GroqClient does not support image generation")


class AnthropicClient(LLMClient):
    """Anthropic Claude API client."""

    BASE_URL = "https://api.anthropic.com/v1/messages"

    async def _generate_once(self, prompt, system_prompt, json_mode):
        body = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            body["system"] = system_prompt

        async with self._http_client() as client:
            response = await client.post(
                self.BASE_URL,
                headers={
                    "x-api-key": self.api_key,
                    "anthropic-version": "2023-06-01",
                    "Content-Type": "application/json",
                },
                json=body,
            )
            response.raise_for_status()
            data = response.json()
            return data["content"][0]["text"]


class OllamaClient(LLMClient):
    """
    Ollama REST API 클라이언트.
    로컬에서 실행되는 Ollama 서버와 통신합니다. api_key holds the base URL.
    """

    DEFAULT_BASE_URL = "http://localhost:11434"

    @property
    def base_url(self) -> str:
        if self.api_key.startswith("http"):
            return self.api_key.rstrip("/")
        return self.DEFAULT_BASE_URL

    async def _generate_once(self, prompt, system_prompt, json_mode):
        body = {
            "model": self.model,
            "messages": self._build_messages(prompt, system_prompt),
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }
        if json_mode:
            body["format"] = "json"

        async with self._http_client() as client:
            response = await client.post(f"{self.base_url}/api/chat", json=body)
            response.raise_for_status()
            data = response.json()
            return data["message"]["content"]

    async def is_available(self) -> bool:
        """Ollama 서버 상태 확인."""
        try:
            async with self._http_client() as client:
                response = await client.get(f"{self.base_url}/api/tags", timeout=5)
            return response.status_code == 200
        except httpx.HTTPError:
            return False


PROVIDERS = {
    "gemini": GeminiClient,
    "openai": OpenAIClient,
    "groq": GroqClient,
    "anthropic": AnthropicClient,
    "ollama": OllamaClient,
}


def create_llm_client(
    settings: Optional[LLMSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> LLMClient:
    """Factory: create an LLM client based on settings."""
    settings = settings or get_settings().llm
    provider = settings.provider.lower()

    if provider not in PROVIDERS:
        raise ValueError(
            f"Unknown LLM provider: {provider}. Use one of: {', '.join(PROVIDERS)}"
        )
    return PROVIDERS[provider](settings, transport)
