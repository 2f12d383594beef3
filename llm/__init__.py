"""LLM client abstraction layer."""

from .base_client import BaseLLMClient, Message, LLMResponse, bundle_to_messages
from .exceptions import LLMError, GenerationFailure
from .factory import create_llm_client, LLMProvider

__all__ = [
    "BaseLLMClient",
    "Message",
    "LLMResponse",
    "bundle_to_messages",
    "LLMError",
    "GenerationFailure",
    "create_llm_client",
    "LLMProvider",
]
