"""Reasoning service access: clients, response parsing and retries."""

from .client import (
    OllamaReasoningClient,
    ReasoningRequest,
    ReasoningResponse,
    ReasoningServiceClient,
    create_chat_model,
)
from .parsing import ParsedJson, ParseFailure, parse_response
from .replay import ReplayReasoningClient
from .retry import RetryExecutor, RetryOutcome, RetryPolicy

__all__ = [
    "OllamaReasoningClient",
    "ParseFailure",
    "ParsedJson",
    "ReasoningRequest",
    "ReasoningResponse",
    "ReasoningServiceClient",
    "ReplayReasoningClient",
    "RetryExecutor",
    "RetryOutcome",
    "RetryPolicy",
    "create_chat_model",
    "parse_response",
]
