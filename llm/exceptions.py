"""LLM client errors."""


class LLMError(Exception):
    """Base error for LLM clients."""
    pass


class GenerationFailure(LLMError):
    """The generator returned no usable text."""
    pass
