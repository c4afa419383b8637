"""Adapter between free-text conversations and the completion provider.

Stateless per call. The session id only groups an exchange for the
provider's own bookkeeping; no multi-turn memory is kept here.
"""

from dataclasses import dataclass
from typing import Mapping, Optional

from flowbot.config import settings
from flowbot.errors import UpstreamError
from flowbot.logging_config import get_logger
from flowbot.services.llm import LLMProvider, OpenAIProvider

logger = get_logger("ai_responder")

DEFAULT_SYSTEM_PROMPT = (
    "You are the assistant of a cash-flow management platform talking to customers on Telegram. "
    "Answer briefly and politely. If you cannot help, say that an operator will reply soon."
)
FALLBACK_REPLY = "Sorry, I can't process your request right now. An operator will reply soon. 🙏"


@dataclass
class Completion:
    text: str
    tokens_used: int = 0


def session_id_for(chat_id: int, message_id: int) -> str:
    return f"telegram_{chat_id}_{message_id}"


class AIResponder:
    def __init__(self, provider: Optional[LLMProvider] = None, max_tokens: Optional[int] = None):
        self._provider = provider
        self.max_tokens = max_tokens or settings.ai_max_tokens

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            if not settings.openai_api_key:
                raise UpstreamError("completion provider is not configured")
            self._provider = OpenAIProvider(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout_seconds=settings.ai_timeout_seconds,
            )
        return self._provider

    async def complete(
        self,
        session_id: str,
        user_text: str,
        context_tags: Optional[Mapping[str, object]] = None,
        model: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> Completion:
        """Generate a reply for one user message. Raises UpstreamError on any provider failure."""
        system = system_prompt or DEFAULT_SYSTEM_PROMPT
        if context_tags:
            tags = ", ".join(f"{key}={value}" for key, value in context_tags.items())
            system = f"{system}\n\nContext: {tags}"
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": user_text},
        ]

        try:
            response = await self.provider.generate(
                messages,
                model=model,
                max_tokens=self.max_tokens,
                user=session_id,
            )
        except UpstreamError:
            raise
        except Exception as e:
            logger.error(
                "Completion request failed",
                extra={"context": {"session_id": session_id, "error": str(e)}},
            )
            raise UpstreamError(str(e)) from e

        text = (response.content or "").strip()
        if not text:
            raise UpstreamError("completion provider returned empty content")

        logger.info(
            "AI reply generated",
            extra={
                "context": {
                    "session_id": session_id,
                    "model": response.model,
                    "tokens_used": response.total_tokens,
                }
            },
        )
        return Completion(text=text, tokens_used=response.total_tokens)
