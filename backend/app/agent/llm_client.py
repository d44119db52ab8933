import logging
import re

import httpx
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from openai import AsyncOpenAI
from pydantic import BaseModel

from app.core.config import settings

logger = logging.getLogger(__name__)

# Values shipped in sample .env files; treated the same as a missing key.
PLACEHOLDER_KEY_PREFIXES = ("sk-test-key", "sk-your-", "your-", "changethis")


def has_usable_key(api_key: str | None) -> bool:
    if not api_key or not api_key.strip():
        return False
    return not api_key.strip().lower().startswith(PLACEHOLDER_KEY_PREFIXES)


def _strip_code_fences(text: str) -> str:
    if not text:
        return ""
    fenced = re.match(r"^\s*```[a-zA-Z0-9_-]*\s*([\s\S]*?)\s*```\s*$", text)
    if fenced:
        return fenced.group(1).strip()
    return text.strip()


class Completion(BaseModel):
    text: str
    tokens_used: int = 0
    model: str


class LLMProviderError(Exception):
    """A provider call failed; `status_code` is the upstream HTTP status when known."""

    def __init__(self, message: str, *, provider: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code

    @property
    def is_auth_error(self) -> bool:
        if self.status_code in (401, 403):
            return True
        lowered = self.message.lower()
        return "api key" in lowered or "invalid_api_key" in lowered


class LLMTimeoutError(LLMProviderError):
    pass


class LLMClient:
    """Text completion client for the OpenAI chat completions API."""

    provider = "openai"

    def __init__(
        self,
        model_name: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.model_name = model_name or settings.MODEL_DEFAULT

        # LLM_API_KEY wins; OPENAI_API_KEY is accepted for existing deployments
        self.api_key = api_key or settings.LLM_API_KEY or settings.OPENAI_API_KEY
        resolved_base_url = base_url or settings.LLM_BASE_URL

        self.client = (
            AsyncOpenAI(
                base_url=resolved_base_url,
                api_key=self.api_key,
                # one request per call; the agent owns the time budget
                max_retries=0,
                http_client=http_client,
            )
            if self.is_configured
            else None
        )

    @property
    def is_configured(self) -> bool:
        return has_usable_key(self.api_key)

    def _chat_completion_kwargs(
        self, *, temperature: float | None, max_tokens: int | None
    ) -> dict:
        """Build provider/model-compatible kwargs for chat completions."""
        model_name = (self.model_name or "").lower()
        # GPT-5 family rejects non-default temperature and the legacy max_tokens name.
        if model_name.startswith("gpt-5"):
            return {"max_completion_tokens": max_tokens} if max_tokens else {}
        kwargs: dict = {"presence_penalty": 0.1, "frequency_penalty": 0.1}
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        return kwargs

    async def generate_text(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Completion:
        if self.client is None:
            raise LLMProviderError(
                "OpenAI API key is not configured", provider=self.provider, status_code=401
            )

        logger.info("Issuing text request to model %s...", self.model_name)
        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                **self._chat_completion_kwargs(
                    temperature=temperature, max_tokens=max_tokens
                ),
            )
        except openai.APITimeoutError as e:
            raise LLMTimeoutError(str(e), provider=self.provider) from e
        except openai.APIStatusError as e:
            logger.error("OpenAI returned %s: %s", e.status_code, e.message)
            raise LLMProviderError(
                e.message, provider=self.provider, status_code=e.status_code
            ) from e
        except openai.APIConnectionError as e:
            logger.error("Could not reach OpenAI: %s", e)
            raise LLMProviderError(str(e), provider=self.provider) from e

        if not getattr(response, "choices", None):
            logger.warning("Received 0 choices from %s", self.model_name)
            text_response = ""
        else:
            text_response = _strip_code_fences(response.choices[0].message.content or "")

        usage = getattr(response, "usage", None)
        tokens_used = int(getattr(usage, "total_tokens", 0) or 0)
        logger.info(
            "Received text response from %s (%s tokens).", self.model_name, tokens_used
        )
        return Completion(text=text_response, tokens_used=tokens_used, model=self.model_name)


class GeminiClient:
    """Text completion client for Google Gemini via the google-genai SDK."""

    provider = "gemini"

    def __init__(self, model_name: str | None = None, api_key: str | None = None):
        self.model_name = model_name or settings.GEMINI_MODEL
        self.api_key = api_key or settings.GEMINI_API_KEY
        self.client = genai.Client(api_key=self.api_key) if self.is_configured else None

    @property
    def is_configured(self) -> bool:
        return has_usable_key(self.api_key)

    async def generate_text(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> Completion:
        if self.client is None:
            raise LLMProviderError(
                "Gemini API key is not configured", provider=self.provider, status_code=401
            )

        config = genai_types.GenerateContentConfig(
            system_instruction=system_prompt,
            temperature=temperature,
            max_output_tokens=max_tokens,
        )
        logger.info("Issuing text request to model %s...", self.model_name)
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model_name,
                contents=user_prompt,
                config=config,
            )
        except genai_errors.APIError as e:
            logger.error("Gemini returned %s: %s", e.code, e.message)
            raise LLMProviderError(
                e.message or str(e), provider=self.provider, status_code=e.code
            ) from e

        text_response = _strip_code_fences(response.text or "")
        usage = response.usage_metadata
        tokens_used = int(usage.total_token_count or 0) if usage else 0
        logger.info(
            "Received text response from %s (%s tokens).", self.model_name, tokens_used
        )
        return Completion(text=text_response, tokens_used=tokens_used, model=self.model_name)


CompletionClient = LLMClient | GeminiClient


def get_llm_client(provider: str | None = None) -> CompletionClient:
    selected = provider or settings.LLM_PROVIDER
    if selected == "gemini":
        return GeminiClient()
    return LLMClient()
