"""Completion providers and the ordered fallback chain."""

import hashlib
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from jobscheduler.config import settings
from jobscheduler.exceptions import AllProvidersFailedError, ProviderError

logger = logging.getLogger(__name__)

NO_CONTENT = "No content generated"

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/gemini-pro:generateContent"
OPENAI_ENDPOINT = "https://api.openai.com/v1/chat/completions"


def _hash_text(text: str) -> str:
    """Hash text using SHA256."""
    return hashlib.sha256(text.encode()).hexdigest()


def _first(items: Any) -> Any:
    if isinstance(items, list) and items:
        return items[0]
    return None


def _extract_choice_text(data: Dict[str, Any]) -> str:
    """Pull choices[0].message.content out of a chat completion response."""
    choice = _first(data.get("choices"))
    message = choice.get("message") if isinstance(choice, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    return content or NO_CONTENT


class CompletionProvider:
    """A backend that turns a prompt into completion text."""

    is_cloud = True

    def __init__(
        self,
        name: str,
        endpoint: str,
        api_key: Optional[str] = None,
        max_tokens: int = 2000,
        temperature: float = 0.7,
    ):
        self.name = name
        self.endpoint = endpoint
        self.api_key = api_key
        self.max_tokens = max_tokens
        self.temperature = temperature

    def build_request(self, prompt: str) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        """Return (url, headers, body) for a prompt."""
        raise NotImplementedError

    def extract_text(self, data: Dict[str, Any]) -> str:
        """Pull the completion text out of a decoded response body."""
        raise NotImplementedError

    async def complete(self, client: httpx.AsyncClient, prompt: str) -> str:
        """
        Request a completion from this provider.

        Raises:
            ProviderError: On non-success status, transport failure, a body
                that is not a JSON object, or non-string content
        """
        url, headers, body = self.build_request(prompt)
        try:
            response = await client.post(url, headers=headers, json=body)
        except httpx.HTTPError as e:
            raise ProviderError(f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise ProviderError(f"HTTP {response.status_code}: {response.reason_phrase}")

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"Invalid JSON response: {e}") from e
        if not isinstance(data, dict):
            raise ProviderError("Unexpected response shape")

        text = self.extract_text(data)
        if not isinstance(text, str):
            raise ProviderError(f"Unexpected content type: {type(text).__name__}")
        return text

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, endpoint={self.endpoint!r})"


class GeminiProvider(CompletionProvider):
    """Google Gemini generateContent endpoint."""

    def build_request(self, prompt):
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "x-goog-api-key": self.api_key or "",
        }
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "maxOutputTokens": self.max_tokens,
                "temperature": self.temperature,
            },
        }
        return self.endpoint, headers, body

    def extract_text(self, data):
        candidate = _first(data.get("candidates"))
        content = candidate.get("content") if isinstance(candidate, dict) else None
        part = _first(content.get("parts")) if isinstance(content, dict) else None
        text = part.get("text") if isinstance(part, dict) else None
        return text or NO_CONTENT


class OpenAIProvider(CompletionProvider):
    """OpenAI-style chat completions endpoint with bearer auth."""

    def __init__(self, *args, model: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.model = model

    def build_request(self, prompt):
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        body: Dict[str, Any] = {
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if self.model:
            body["model"] = self.model
        return self.endpoint, headers, body

    def extract_text(self, data):
        return _extract_choice_text(data)


class LocalProvider(CompletionProvider):
    """Local OpenAI-compatible runner such as LM Studio. No auth."""

    is_cloud = False

    def build_request(self, prompt):
        url = f"{self.endpoint.rstrip('/')}/v1/chat/completions"
        headers = {"Content-Type": "application/json"}
        body = {
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "stream": False,
        }
        return url, headers, body

    def extract_text(self, data):
        return _extract_choice_text(data)


def build_providers_from_settings() -> List[CompletionProvider]:
    """Build the provider list: cloud provider first, local fallback second."""
    providers: List[CompletionProvider] = []
    generation = {"max_tokens": settings.LM_MAX_TOKENS, "temperature": settings.LM_TEMPERATURE}

    if settings.LM_CLOUD_API_KEY:
        if settings.LM_CLOUD_PROVIDER == "openai":
            providers.append(
                OpenAIProvider(
                    "openai",
                    settings.LM_CLOUD_ENDPOINT or OPENAI_ENDPOINT,
                    api_key=settings.LM_CLOUD_API_KEY,
                    model=settings.LM_CLOUD_MODEL or None,
                    **generation,
                )
            )
        elif settings.LM_CLOUD_PROVIDER == "gemini":
            providers.append(
                GeminiProvider(
                    "gemini",
                    settings.LM_CLOUD_ENDPOINT or GEMINI_ENDPOINT,
                    api_key=settings.LM_CLOUD_API_KEY,
                    **generation,
                )
            )
        else:
            raise ValueError(f"Unsupported LM_CLOUD_PROVIDER: {settings.LM_CLOUD_PROVIDER}")

    if settings.LM_FALLBACK_URL:
        providers.append(LocalProvider("lm_studio", settings.LM_FALLBACK_URL, **generation))

    return providers


class ProviderChain:
    """Tries completion providers in order until one succeeds."""

    def __init__(
        self,
        providers: Sequence[CompletionProvider],
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize the chain. An injected client is used as-is."""
        self.providers = list(providers)
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls) -> "ProviderChain":
        return cls(build_providers_from_settings(), timeout=settings.PROVIDER_TIMEOUT)

    @property
    def names(self) -> List[str]:
        return [p.name for p in self.providers]

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def complete(self, prompt: str) -> str:
        """
        Return the first successful completion for a prompt.

        Args:
            prompt: Full instruction prompt

        Returns:
            Completion text from the first provider that succeeded

        Raises:
            AllProvidersFailedError: If every provider failed
        """
        last_error: Optional[Exception] = None
        logger.info(f"Completion request, prompt hash: {_hash_text(prompt)[:16]}")

        for provider in self.providers:
            logger.info(f"Trying AI provider: {provider.name}")
            try:
                text = await provider.complete(self.client, prompt)
            except ProviderError as e:
                logger.warning(f"Provider {provider.name} failed: {e}")
                last_error = e
                continue

            logger.info(f"Provider {provider.name} succeeded, response hash: {_hash_text(text)[:16]}")
            return text

        if last_error is None:
            raise AllProvidersFailedError("All AI providers failed. Last error: no providers configured")
        raise AllProvidersFailedError(f"All AI providers failed. Last error: {last_error}")

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
