"""Gemini generative-AI adapter (generateContent REST endpoint)"""
from typing import Optional
import logging

import httpx

from app.core.config import settings
from app.core.exceptions import ExternalServiceError
from app.integrations.base import ProviderClient

logger = logging.getLogger(__name__)


class GeminiClient(ProviderClient):
    provider = "Gemini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        api_key = settings.GEMINI_API_KEY if api_key is None else api_key
        super().__init__(
            base_url=base_url or settings.GEMINI_BASE_URL,
            headers={"x-goog-api-key": api_key},
            api_key=api_key,
            transport=transport,
        )
        self.model = model or settings.GEMINI_MODEL
        self.temperature = settings.GEMINI_TEMPERATURE if temperature is None else temperature
        self.max_output_tokens = max_output_tokens or settings.GEMINI_MAX_OUTPUT_TOKENS

    async def generate(self, prompt: str) -> str:
        """Return the first candidate's text for a prompt"""
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
            },
        }
        data = await self.request("Generate content", "POST", f"/models/{self.model}:generateContent", json=body)
        try:
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts).strip()
        except (KeyError, IndexError, TypeError) as e:
            raise ExternalServiceError("Generate content failed: empty response from Gemini") from e
        if not text:
            raise ExternalServiceError("Generate content failed: empty response from Gemini")
        return text


_ai_client: Optional[GeminiClient] = None


def get_ai_client() -> GeminiClient:
    """FastAPI dependency returning the process-wide AI client"""
    global _ai_client
    if _ai_client is None:
        _ai_client = GeminiClient()
    return _ai_client


async def close_ai_client() -> None:
    global _ai_client
    if _ai_client is not None:
        await _ai_client.aclose()
        _ai_client = None
