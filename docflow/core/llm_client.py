import asyncio
import base64
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from httpx import HTTPStatusError, TimeoutException
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from docflow.core.config import settings
from docflow.core.exceptions import (
    APIClientError,
    APITimeoutError,
    ConfigurationError,
    MalformedResponseError,
    ProviderError,
    RateLimitedError,
)
from docflow.utils.logging import get_logger

LOGGER = get_logger(__name__)


class LLMProvider(str, Enum):
    """Supported model backends."""

    OPENROUTER = "openrouter"
    OPENAI = "openai"
    GEMINI = "gemini"


class BaseLLMClient:
    """Base client for JSON-over-HTTP model APIs.

    Handles retries, timeout management and error classification:
    429 is retried and surfaces as :class:`RateLimitedError` once attempts run
    out; other 4xx fail immediately; 5xx, timeouts and transport errors are
    retried with exponential backoff.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: float = 2,
    ):
        """Initialize the LLM client.

        Args:
            api_key: API key for authentication
            base_url: Full endpoint URL
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts
            retry_delay: Base delay for exponential backoff
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.logger = LOGGER

    async def call_api(
        self,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """POST ``payload`` with retry logic and return the decoded JSON body.

        Raises:
            RateLimitedError: If the provider keeps answering 429
            ProviderError: On a non-retryable 4xx
            APIClientError: If the API call fails after retries
            APITimeoutError: If the API call times out after retries
        """
        request_headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if headers:
            request_headers.update(headers)

        self.logger.debug(
            f"Calling LLM API: {self.base_url}",
            extra={"timeout": self.timeout},
        )

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.post(self.base_url, headers=request_headers, json=payload)
                    response.raise_for_status()
                    return response.json()

                except HTTPStatusError as e:
                    await self._handle_http_error(e, attempt)

                except TimeoutException as e:
                    await self._handle_timeout_error(e, attempt)

                except ValueError as e:
                    raise MalformedResponseError(f"Provider returned a non-JSON body: {e}", original_error=e)

                except httpx.HTTPError as e:
                    await self._handle_transport_error(e, attempt)

        raise APIClientError(f"Failed to call API {self.base_url} after {self.max_retries} attempts")

    async def _handle_http_error(self, error: HTTPStatusError, attempt: int):
        status_code = error.response.status_code
        error_body = error.response.text

        self.logger.warning(
            f"API HTTP error (Attempt {attempt + 1}/{self.max_retries})",
            extra={
                "url": self.base_url,
                "status_code": status_code,
                "error_body": error_body[:500],
            },
        )

        # Don't retry on client errors (4xx) unless it's rate limiting (429)
        if 400 <= status_code < 500 and status_code != 429:
            raise ProviderError(
                f"API Client Error {status_code}: {error_body[:200]}",
                original_error=error,
                upstream_status=status_code,
            )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        elif status_code == 429:
            raise RateLimitedError(
                "Rate limit exceeded. Please try again later.",
                original_error=error,
                upstream_status=status_code,
            )
        else:
            raise APIClientError(
                f"API HTTP Error {status_code} after retries",
                original_error=error,
                upstream_status=status_code,
            )

    async def _handle_timeout_error(self, error: TimeoutException, attempt: int):
        self.logger.warning(
            f"API Timeout (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": self.base_url},
        )
        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APITimeoutError(f"API Timeout after {self.max_retries} attempts", original_error=error)

    async def _handle_transport_error(self, error: Exception, attempt: int):
        self.logger.warning(
            f"API transport error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": self.base_url, "error": str(error)},
        )
        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API Error: {str(error)}", original_error=error)

    async def _wait_before_retry(self, attempt: int):
        """Exponential backoff wait."""
        await asyncio.sleep(self.retry_delay * (2 ** attempt))


class ChatCompletionsClient:
    """Client for OpenAI-compatible chat-completions endpoints (OpenRouter, OpenAI)."""

    def __init__(
        self,
        provider: str,
        api_key: str,
        model: str,
        base_url: str,
        timeout: int = 60,
        max_retries: int = 3,
    ):
        self.provider = provider
        self.model = model
        self.client = BaseLLMClient(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )
        LOGGER.info(f"Initialized {provider} client with model {self.model}")

    async def generate_content(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        image: Optional[bytes] = None,
        image_mime_type: str = "image/jpeg",
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate a completion for a text prompt with an optional image.

        Returns:
            Generated text response

        Raises:
            ProviderError: If the provider call fails
            MalformedResponseError: If the response carries no message content
        """
        messages: List[Dict[str, Any]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})

        if image is not None:
            encoded = base64.b64encode(image).decode("ascii")
            messages.append({
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": f"data:{image_mime_type};base64,{encoded}"}},
                ],
            })
        else:
            messages.append({"role": "user", "content": prompt})

        config = generation_config or {}
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": config.get("temperature", settings.llm.temperature),
            "max_tokens": config.get("max_output_tokens", settings.llm.max_output_tokens),
        }

        response = await self.client.call_api(payload=payload)

        choices = response.get("choices") or []
        if not choices:
            LOGGER.error(f"Unexpected {self.provider} response format: {str(response)[:500]}")
            raise MalformedResponseError(f"Invalid response format from {self.provider}")

        content = (choices[0].get("message") or {}).get("content") or ""
        if not content:
            raise MalformedResponseError(f"Empty response from {self.provider}")
        return content


class GeminiClient:
    """Wrapper for the Google Gemini SDK."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        max_retries: int = 3,
        retry_delay: float = 1,
    ):
        self.provider = LLMProvider.GEMINI.value
        self.model = model
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        try:
            self.client = genai.Client(api_key=api_key)
            LOGGER.info(f"Initialized Gemini client with model {self.model}")
        except Exception as e:
            LOGGER.error(f"Failed to initialize Gemini client: {e}")
            raise ConfigurationError(f"Failed to initialize Gemini client: {e}", original_error=e)

    async def generate_content(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        image: Optional[bytes] = None,
        image_mime_type: str = "image/jpeg",
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Generate content with Gemini, optionally with an inline image part.

        Raises:
            RateLimitedError: If Gemini keeps answering 429
            ProviderError: On a non-retryable client error
            APIClientError: If generation fails after retries
        """
        config = types.GenerateContentConfig(
            temperature=settings.llm.temperature,
            max_output_tokens=settings.llm.max_output_tokens,
        )
        if generation_config:
            if "temperature" in generation_config:
                config.temperature = generation_config["temperature"]
            if "max_output_tokens" in generation_config:
                config.max_output_tokens = generation_config["max_output_tokens"]
            if "response_mime_type" in generation_config:
                config.response_mime_type = generation_config["response_mime_type"]
        if system_instruction:
            config.system_instruction = system_instruction

        contents: List[Any] = []
        if image is not None:
            contents.append(types.Part.from_bytes(data=image, mime_type=image_mime_type))
        contents.append(prompt)

        for attempt in range(self.max_retries):
            try:
                response = await self.client.aio.models.generate_content(
                    model=self.model,
                    contents=contents,
                    config=config,
                )
            except genai_errors.APIError as e:
                code = getattr(e, "code", None)
                LOGGER.warning(
                    f"Gemini API error (Attempt {attempt + 1}/{self.max_retries}): {e}",
                    extra={"status_code": code},
                )
                if code is not None and 400 <= code < 500 and code != 429:
                    raise ProviderError(f"Gemini client error {code}: {e}", original_error=e, upstream_status=code)
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay * (2 ** attempt))
                    continue
                if code == 429:
                    raise RateLimitedError("Gemini rate limit exceeded", original_error=e, upstream_status=code)
                raise APIClientError(f"Gemini generation failed: {e}", original_error=e, upstream_status=code)

            if not response.text:
                raise MalformedResponseError("Empty response from Gemini")
            return response.text

        raise APIClientError("Gemini generation failed")


def create_llm_client(
    provider: Optional[str] = None,
    model: Optional[str] = None,
):
    """Build a client for ``provider`` (defaults to ``LLM_PROVIDER``).

    Args:
        provider: One of :class:`LLMProvider` values
        model: Optional model override; provider default otherwise

    Raises:
        ConfigurationError: If the provider is unknown or has no API key
    """
    name = (provider or settings.llm.provider or "").lower()
    llm = settings.llm

    try:
        selected = LLMProvider(name)
    except ValueError as e:
        raise ConfigurationError(f"Unknown LLM provider: {name!r}", original_error=e)

    if selected is LLMProvider.OPENROUTER:
        if not llm.openrouter_api_key:
            raise ConfigurationError("OPENROUTER_API_KEY is not configured")
        return ChatCompletionsClient(
            provider=selected.value,
            api_key=llm.openrouter_api_key,
            model=model or llm.openrouter_model,
            base_url=llm.openrouter_api_url,
            timeout=llm.timeout,
            max_retries=llm.max_retries,
        )

    if selected is LLMProvider.OPENAI:
        if not llm.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is not configured")
        return ChatCompletionsClient(
            provider=selected.value,
            api_key=llm.openai_api_key,
            model=model or llm.openai_model,
            base_url=llm.openai_api_url,
            timeout=llm.timeout,
            max_retries=llm.max_retries,
        )

    if not llm.gemini_api_key:
        raise ConfigurationError("GEMINI_API_KEY is not configured")
    return GeminiClient(
        api_key=llm.gemini_api_key,
        model=model or llm.gemini_model,
        max_retries=llm.max_retries,
    )
