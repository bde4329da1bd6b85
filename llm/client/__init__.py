"""LLM client module."""

from llm.client.openai_client import (
    CompletionResult,
    LLMError,
    OpenAIClient,
    PermanentLLMError,
    ProviderFn,
    TransientLLMError,
)

__all__ = [
    "CompletionResult",
    "LLMError",
    "OpenAIClient",
    "PermanentLLMError",
    "ProviderFn",
    "TransientLLMError",
]
