"""Base LLM client interface."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, List, Dict
from pydantic import BaseModel

from schemas.responses import PromptBundle
from .exceptions import GenerationFailure

logger = logging.getLogger(__name__)


class Message(BaseModel):
    """Chat message."""
    role: str  # "system", "user", "assistant"
    content: str


class LLMResponse(BaseModel):
    """Response from LLM."""
    content: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None


def bundle_to_messages(bundle: PromptBundle) -> List[Message]:
    """Turn a prompt bundle into a system + user message pair."""
    return [Message(**message) for message in bundle.to_messages()]


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    temperature: float = 0.7
    max_tokens: int = 2000

    @abstractmethod
    def complete(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 2000
    ) -> LLMResponse:
        """
        Send chat completion request.

        Args:
            messages: List of messages in conversation
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens in response

        Returns:
            LLMResponse with content
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get the name of the LLM provider."""
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        """Get the name of the model being used."""
        pass

    async def generate(self, bundle: PromptBundle) -> str:
        """
        Generate a tutor response for a prompt bundle.

        The blocking SDK call runs in a worker thread.

        Raises:
            GenerationFailure: If the model returned no text
        """
        messages = bundle_to_messages(bundle)
        response = await asyncio.to_thread(
            self.complete, messages, self.temperature, self.max_tokens
        )

        text = (response.content or "").strip()
        if not text:
            raise GenerationFailure(
                f"{self.get_provider_name()} returned an empty response "
                f"(finish_reason={response.finish_reason})"
            )

        if response.usage:
            logger.debug(f"{self.get_provider_name()} usage: {response.usage}")
        return text
