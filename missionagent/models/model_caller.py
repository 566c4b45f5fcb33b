"""
Centralized Model Caller for MissionAgent.

Unified interface for every HTTP call to the OpenAI-compatible reasoning
service (chat completions and embeddings) with:
- Context-managed HTTP clients (a new client per call, no leaks)
- Exponential backoff retry logic (1s, 2s, 4s...)
- Strict timeout enforcement
- Structured logging for debugging

Arguments left as None are taken from the ``llm`` configuration section.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from ..core.config_manager import get_config

logger = logging.getLogger(__name__)

# Client errors that will not improve on retry
NON_RETRYABLE_STATUS = {400, 401, 403, 404, 422}


class ModelInvocationError(Exception):
    """Exception raised when model invocation fails after retries."""

    def __init__(self, message: str, model: str = "", cause: Optional[Exception] = None):
        super().__init__(message)
        self.model = model
        self.cause = cause


def _settings(
    model: Optional[str],
    base_url: Optional[str],
    api_key: Optional[str],
    timeout: Optional[float],
    max_retries: Optional[int],
    embedding: bool = False,
) -> Dict[str, Any]:
    llm = get_config().llm
    default_model = llm.embedding_model if embedding else llm.chat_model
    return {
        "model": model or default_model,
        "base_url": (base_url or llm.base_url).rstrip("/"),
        "api_key": llm.api_key if api_key is None else api_key,
        "timeout": llm.timeout if timeout is None else timeout,
        "max_retries": max(1, llm.max_retries if max_retries is None else max_retries),
    }


def _headers(api_key: str) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code not in NON_RETRYABLE_STATUS
    return True


def extract_message_content(response: Dict[str, Any]) -> str:
    """
    Pull the assistant message text out of a chat completion response.

    Raises:
        ModelInvocationError: If the response has no choices
    """
    try:
        return response["choices"][0]["message"]["content"] or ""
    except (KeyError, IndexError, TypeError) as e:
        raise ModelInvocationError(
            "Chat completion response has no message content",
            model=str(response.get("model", "")) if isinstance(response, dict) else "",
            cause=e,
        )


def _chat_payload(
    model: str,
    messages: List[Dict[str, str]],
    temperature: Optional[float],
    max_tokens: Optional[int],
) -> Dict[str, Any]:
    llm = get_config().llm
    return {
        "model": model,
        "messages": messages,
        "temperature": llm.temperature if temperature is None else temperature,
        "max_tokens": llm.max_tokens if max_tokens is None else max_tokens,
    }


def call_chat(
    messages: List[Dict[str, str]],
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    timeout: Optional[float] = None,
    max_retries: Optional[int] = None,
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Make a synchronous chat completion call.

    Args:
        messages: Chat messages ({"role", "content"})
        model: Model name
        temperature: Sampling temperature
        max_tokens: Completion token limit
        timeout: Request timeout in seconds
        max_retries: Maximum number of attempts
        base_url: Service base URL (…/v1)
        api_key: Bearer key

    Returns:
        The decoded JSON response

    Raises:
        ModelInvocationError: If all retries fail
    """
    s = _settings(model, base_url, api_key, timeout, max_retries)
    payload = _chat_payload(s["model"], messages, temperature, max_tokens)
    last_error: Optional[Exception] = None

    for attempt in range(s["max_retries"]):
        try:
            logger.debug(f"[ModelCaller] Opening HTTP client (attempt {attempt + 1}/{s['max_retries']})")

            with httpx.Client(timeout=s["timeout"]) as client:
                response = client.post(
                    f"{s['base_url']}/chat/completions",
                    json=payload,
                    headers=_headers(s["api_key"]),
                )
                response.raise_for_status()
                return response.json()

        except httpx.TimeoutException as e:
            last_error = e
            logger.warning(f"[ModelCaller] Timeout calling {s['model']} (attempt {attempt + 1}): {e}")

        except httpx.HTTPStatusError as e:
            last_error = e
            logger.warning(f"[ModelCaller] HTTP error calling {s['model']} (attempt {attempt + 1}): {e}")

        except httpx.RequestError as e:
            last_error = e
            logger.warning(f"[ModelCaller] Request error calling {s['model']} (attempt {attempt + 1}): {e}")

        except ValueError as e:
            last_error = e
            logger.warning(f"[ModelCaller] Invalid JSON from {s['model']} (attempt {attempt + 1}): {e}")

        if not _is_retryable(last_error):
            break

        # Exponential backoff: 1s, 2s, 4s
        if attempt < s["max_retries"] - 1:
            backoff = 2 ** attempt
            logger.info(f"[ModelCaller] Retrying in {backoff}s...")
            time.sleep(backoff)

    raise ModelInvocationError(
        f"Failed to call model {s['model']} after {attempt + 1} attempts",
        model=s["model"],
        cause=last_error,
    )


async def call_chat_async(
    messages: List[Dict[str, str]],
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    timeout: Optional[float] = None,
    max_retries: Optional[int] = None,
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Make an asynchronous chat completion call.

    Same arguments and behaviour as call_chat, using httpx.AsyncClient.

    Raises:
        ModelInvocationError: If all retries fail
    """
    s = _settings(model, base_url, api_key, timeout, max_retries)
    payload = _chat_payload(s["model"], messages, temperature, max_tokens)
    last_error: Optional[Exception] = None

    for attempt in range(s["max_retries"]):
        try:
            logger.debug(f"[ModelCaller] Opening async HTTP client (attempt {attempt + 1}/{s['max_retries']})")

            async with httpx.AsyncClient(timeout=s["timeout"]) as client:
                response = await client.post(
                    f"{s['base_url']}/chat/completions",
                    json=payload,
                    headers=_headers(s["api_key"]),
                )
                response.raise_for_status()
                return response.json()

        except httpx.TimeoutException as e:
            last_error = e
            logger.warning(f"[ModelCaller] Async timeout calling {s['model']} (attempt {attempt + 1}): {e}")

        except httpx.HTTPStatusError as e:
            last_error = e
            logger.warning(f"[ModelCaller] Async HTTP error calling {s['model']} (attempt {attempt + 1}): {e}")

        except httpx.RequestError as e:
            last_error = e
            logger.warning(f"[ModelCaller] Async request error calling {s['model']} (attempt {attempt + 1}): {e}")

        except ValueError as e:
            last_error = e
            logger.warning(f"[ModelCaller] Invalid JSON from {s['model']} (attempt {attempt + 1}): {e}")

        if not _is_retryable(last_error):
            break

        if attempt < s["max_retries"] - 1:
            backoff = 2 ** attempt
            logger.info(f"[ModelCaller] Async retrying in {backoff}s...")
            await asyncio.sleep(backoff)

    raise ModelInvocationError(
        f"Failed to call model {s['model']} after {attempt + 1} attempts (async)",
        model=s["model"],
        cause=last_error,
    )


async def call_embeddings_async(
    text: str,
    model: Optional[str] = None,
    timeout: Optional[float] = None,
    max_retries: Optional[int] = None,
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
) -> List[float]:
    """
    Get an embedding vector for text.

    Args:
        text: Text to embed
        model: Embedding model name

    Returns:
        List of floats representing the embedding vector

    Raises:
        ModelInvocationError: If all retries fail or the response has no vector
    """
    s = _settings(model, base_url, api_key, timeout, max_retries, embedding=True)
    payload = {"model": s["model"], "input": text}
    last_error: Optional[Exception] = None

    for attempt in range(s["max_retries"]):
        try:
            async with httpx.AsyncClient(timeout=s["timeout"]) as client:
                response = await client.post(
                    f"{s['base_url']}/embeddings",
                    json=payload,
                    headers=_headers(s["api_key"]),
                )
                response.raise_for_status()
                result = response.json()

            data = result.get("data") or []
            embedding = data[0].get("embedding") if data else None
            if embedding:
                return [float(x) for x in embedding]
            last_error = ValueError("Embedding response contained no vector")
            logger.warning(f"[ModelCaller] Empty embedding from {s['model']} (attempt {attempt + 1})")

        except httpx.TimeoutException as e:
            last_error = e
            logger.warning(f"[ModelCaller] Timeout getting embeddings from {s['model']} (attempt {attempt + 1}): {e}")

        except httpx.HTTPStatusError as e:
            last_error = e
            logger.warning(f"[ModelCaller] HTTP error getting embeddings from {s['model']} (attempt {attempt + 1}): {e}")

        except httpx.RequestError as e:
            last_error = e
            logger.warning(f"[ModelCaller] Request error getting embeddings from {s['model']} (attempt {attempt + 1}): {e}")

        except ValueError as e:
            last_error = e
            logger.warning(f"[ModelCaller] Invalid JSON from embedding model {s['model']} (attempt {attempt + 1}): {e}")

        if not _is_retryable(last_error):
            break

        if attempt < s["max_retries"] - 1:
            await asyncio.sleep(2 ** attempt)

    logger.error(f"[ModelCaller] Embedding model {s['model']} failed")
    raise ModelInvocationError(
        f"Failed to get embeddings from {s['model']}",
        model=s["model"],
        cause=last_error,
    )
