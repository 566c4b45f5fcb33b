"""
Reasoning service access: HTTP caller, prompts and the structured client.
"""

from .model_caller import (
    ModelInvocationError,
    call_chat,
    call_chat_async,
    call_embeddings_async,
    extract_message_content,
)
from .reasoning_client import (
    ReasoningClient,
    ReasoningResponseError,
    ReflectionAnalysis,
    ToolSelection,
    CompletionVerdict,
    parse_json_response,
)

__all__ = [
    "ModelInvocationError",
    "call_chat",
    "call_chat_async",
    "call_embeddings_async",
    "extract_message_content",
    "ReasoningClient",
    "ReasoningResponseError",
    "ReflectionAnalysis",
    "ToolSelection",
    "CompletionVerdict",
    "parse_json_response",
]
