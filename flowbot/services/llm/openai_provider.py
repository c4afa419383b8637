from typing import List, Optional

import httpx

from flowbot.errors import UpstreamError
from flowbot.logging_config import get_logger
from flowbot.services.llm.base import LLMProvider, LLMResponse

logger = get_logger("llm.openai")

OPENAI_API_BASE = "https://api.openai.com/v1"


class OpenAIProvider(LLMProvider):
    """Chat completions against the OpenAI API or a compatible endpoint."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4o",
        base_url: Optional[str] = None,
        timeout_seconds: float = 60.0,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.completions_url = f"{(base_url or OPENAI_API_BASE).rstrip('/')}/chat/completions"
        self.timeout_seconds = timeout_seconds

    def _build_payload(
        self,
        messages: List[dict],
        model: str,
        temperature: float,
        max_tokens: int,
        user: Optional[str],
    ) -> dict:
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if user:
            payload["user"] = user
        return payload

    @staticmethod
    def _first_choice_text(data: dict) -> str:
        choices = data.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""

    async def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        user: Optional[str] = None,
    ) -> LLMResponse:
        model = model or self.default_model
        payload = self._build_payload(messages, model, temperature, max_tokens, user)

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    self.completions_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=payload,
                )
        except httpx.HTTPError as e:
            raise UpstreamError(f"OpenAI request failed: {e}") from e

        if response.status_code != 200:
            logger.error(
                "OpenAI returned an error",
                extra={"context": {"status": response.status_code, "body": response.text[:500]}},
            )
            raise UpstreamError(f"OpenAI API error: {response.status_code}")

        data = response.json()
        return LLMResponse(
            content=self._first_choice_text(data),
            model=data.get("model", model),
            usage=data.get("usage"),
        )
