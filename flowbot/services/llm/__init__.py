from flowbot.services.llm.base import LLMProvider, LLMResponse
from flowbot.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMProvider", "LLMResponse", "OpenAIProvider"]
