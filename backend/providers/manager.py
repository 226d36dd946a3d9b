"""
Provider adapters for generating participant replies.

Maps a participant's ProviderRef to the matching vendor HTTP API and returns
the reply text. Every failure (missing credential, HTTP error, transport
error, malformed payload) is raised as ProviderError carrying the vendor's own
error message when it sent one.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from core.settings import GENERATION_MAX_TOKENS, GENERATION_TEMPERATURE
from domain.contexts import GenerationRequest
from domain.enums import ProviderKind
from exceptions import ProviderError

logger = logging.getLogger("ProviderManager")

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
GOOGLE_URL_TEMPLATE = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
OPENROUTER_TITLE = "LLM Chat Arena"


class ProviderManager:
    """
    Shared HTTP client plus one adapter per vendor.

    Instances are callable, so the manager can be passed wherever a provider
    function ``async (GenerationRequest) -> str`` is expected.
    """

    def __init__(
        self,
        openai_api_key: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        openrouter_api_key: Optional[str] = None,
        openrouter_referer: str = "http://localhost:3000",
        timeout_seconds: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._keys: Dict[ProviderKind, Optional[str]] = {
            ProviderKind.OPENAI: openai_api_key,
            ProviderKind.ANTHROPIC: anthropic_api_key,
            ProviderKind.GOOGLE: google_api_key,
            ProviderKind.OPENROUTER: openrouter_api_key,
        }
        self.openrouter_referer = openrouter_referer
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings) -> "ProviderManager":
        return cls(
            openai_api_key=settings.openai_api_key,
            anthropic_api_key=settings.anthropic_api_key,
            google_api_key=settings.google_api_key,
            openrouter_api_key=settings.openrouter_api_key,
            openrouter_referer=settings.openrouter_referer,
            timeout_seconds=settings.provider_timeout_seconds,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds))
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this manager created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __call__(self, request: GenerationRequest) -> str:
        return await self.generate(request)

    async def generate(self, request: GenerationRequest) -> str:
        """
        Produce a reply for ``request.participant``.

        Raises:
            ProviderError: on any failure
        """
        ref = request.participant.provider_ref
        participant_id = request.participant.id
        logger.debug(f"Generating reply | {participant_id} via {ref.provider}/{ref.model_id}")

        if ref.provider == ProviderKind.OPENAI:
            return await self._call_openai(request)
        if ref.provider == ProviderKind.ANTHROPIC:
            return await self._call_anthropic(request)
        if ref.provider == ProviderKind.GOOGLE:
            return await self._call_google(request)
        if ref.provider == ProviderKind.OPENROUTER:
            return await self._call_openrouter(request)
        if ref.provider == ProviderKind.CUSTOM:
            return await self._call_custom(request)
        raise ProviderError(f"Unsupported provider: {ref.provider}", participant_id)

    # ------------------------------------------------------------------
    # Vendors
    # ------------------------------------------------------------------

    async def _call_openai(self, request: GenerationRequest) -> str:
        key = self._require_key(ProviderKind.OPENAI, request)
        data = await self._post(
            request,
            OPENAI_URL,
            json=self._chat_payload(request),
            headers={"Authorization": f"Bearer {key}"},
        )
        return self._extract(request, lambda: data["choices"][0]["message"]["content"])

    async def _call_anthropic(self, request: GenerationRequest) -> str:
        key = self._require_key(ProviderKind.ANTHROPIC, request)
        payload = {
            "model": request.participant.provider_ref.model_id,
            "system": request.persona_prompt,
            "messages": [{"role": "user", "content": request.prompt}],
            "max_tokens": GENERATION_MAX_TOKENS,
            "temperature": GENERATION_TEMPERATURE,
        }
        data = await self._post(
            request,
            ANTHROPIC_URL,
            json=payload,
            headers={"x-api-key": key, "anthropic-version": ANTHROPIC_VERSION},
        )
        return self._extract(request, lambda: data["content"][0]["text"])

    async def _call_google(self, request: GenerationRequest) -> str:
        key = self._require_key(ProviderKind.GOOGLE, request)
        payload = {
            # Gemini takes no separate system prompt here; persona leads the text
            "contents": [{"parts": [{"text": f"{request.persona_prompt}\n\n{request.prompt}"}]}],
            "generationConfig": {
                "temperature": GENERATION_TEMPERATURE,
                "maxOutputTokens": GENERATION_MAX_TOKENS,
            },
        }
        data = await self._post(
            request,
            GOOGLE_URL_TEMPLATE.format(model=request.participant.provider_ref.model_id),
            json=payload,
            params={"key": key},
        )
        return self._extract(request, lambda: data["candidates"][0]["content"]["parts"][0]["text"])

    async def _call_openrouter(self, request: GenerationRequest, key: Optional[str] = None, url: str = OPENROUTER_URL) -> str:
        key = key or self._require_key(ProviderKind.OPENROUTER, request)
        data = await self._post(
            request,
            url,
            json=self._chat_payload(request),
            headers={
                "Authorization": f"Bearer {key}",
                "HTTP-Referer": self.openrouter_referer,
                "X-Title": OPENROUTER_TITLE,
            },
        )
        return self._extract(request, lambda: data["choices"][0]["message"]["content"])

    async def _call_custom(self, request: GenerationRequest) -> str:
        """OpenAI-compatible endpoint with the participant's own credential."""
        ref = request.participant.provider_ref
        key = ref.api_key or self._keys.get(ProviderKind.OPENROUTER)
        if not key:
            raise ProviderError(f"No API key configured for {request.participant.id}", request.participant.id)
        return await self._call_openrouter(request, key=key, url=ref.endpoint or OPENROUTER_URL)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_key(self, provider: ProviderKind, request: GenerationRequest) -> str:
        key = request.participant.provider_ref.api_key or self._keys.get(provider)
        if not key:
            raise ProviderError(f"{provider.value} API key not found", request.participant.id)
        return key

    @staticmethod
    def _chat_payload(request: GenerationRequest) -> Dict[str, Any]:
        return {
            "model": request.participant.provider_ref.model_id,
            "messages": [
                {"role": "system", "content": request.persona_prompt},
                {"role": "user", "content": request.prompt},
            ],
            "max_tokens": GENERATION_MAX_TOKENS,
            "temperature": GENERATION_TEMPERATURE,
        }

    async def _post(self, request: GenerationRequest, url: str, **kwargs) -> Dict[str, Any]:
        participant_id = request.participant.id
        client = await self._get_client()
        try:
            response = await client.post(url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            message = _vendor_error_message(e.response) or f"HTTP {e.response.status_code}"
            logger.error(f"❌ {participant_id} API error: {message}")
            raise ProviderError(message, participant_id) from e
        except httpx.RequestError as e:
            logger.error(f"❌ {participant_id} request failed: {e}")
            raise ProviderError(str(e) or e.__class__.__name__, participant_id) from e
        except ValueError as e:
            raise ProviderError("Malformed response from provider", participant_id) from e

    @staticmethod
    def _extract(request: GenerationRequest, getter) -> str:
        try:
            text = getter()
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError("Malformed response from provider", request.participant.id) from e
        if not isinstance(text, str):
            raise ProviderError("Malformed response from provider", request.participant.id)
        return text


def _vendor_error_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("message")
        if isinstance(error, str):
            return error
    return None
