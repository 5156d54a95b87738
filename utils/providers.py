"""
Provider layer for Infinite Bitcoin Text
The reader talks to the generation proxy over HTTP; the proxy talks to OpenRouter
"""

import json
import logging
from typing import Dict, List, Optional
import httpx
from openai import AsyncOpenAI
from utils.config import (
    load_api_key, get_proxy_url, OPENROUTER_API_URL, APP_NAME, REQUEST_TIMEOUT
)

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Base exception for provider-related errors"""
    pass


class GenerationError(Exception):
    """The generation call failed (network failure or non-success status)"""

    def __init__(self, message: str, status_code: Optional[int] = None, raw_text: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        # Diagnostics only, never shown to the reader
        self.raw_text = raw_text


class MalformedContentError(ValueError):
    """The generation call succeeded but its body is not a usable completion"""
    pass


def create_upstream_client(api_key: str = None, referer: Optional[str] = None, **kwargs) -> AsyncOpenAI:
    """
    Create the OpenRouter client used by the proxy.
    OpenRouter is compatible with OpenAI's API, so we can use the same client.

    Args:
        api_key: OpenRouter API key. If None, loads it from the environment.
        referer: Value for the HTTP-Referer attribution header
        **kwargs: Additional parameters passed to the AsyncOpenAI constructor

    Returns:
        AsyncOpenAI client configured for OpenRouter

    Raises:
        ProviderError: If the API key is missing
    """
    if api_key is None:
        api_key = load_api_key()
    if not api_key:
        raise ProviderError("No API key found for provider: openrouter")

    default_headers = {"X-Title": APP_NAME}
    if referer:
        default_headers["HTTP-Referer"] = referer

    client_kwargs = {
        "api_key": api_key,
        "base_url": OPENROUTER_API_URL,
        "default_headers": default_headers,
        # Status codes are passed through, so never retry behind the caller's back
        "max_retries": 0,
    }
    client_kwargs.update(kwargs)

    return AsyncOpenAI(**client_kwargs)


def get_api_call_params(
    model: str,
    messages: List[Dict[str, str]],
    temperature: Optional[float] = None,
    response_format: Optional[Dict] = None
) -> Dict:
    """
    Build the JSON body for a chat completion request.

    Args:
        model: Model name to use (the proxy replaces it with its own)
        messages: List of messages for the conversation
        temperature: Sampling temperature (0.0 to 2.0)
        response_format: Output format specification

    Returns:
        Dictionary of API call parameters
    """
    params = {
        "model": model,
        "messages": messages,
        "stream": False,
    }

    optional_params = {
        "temperature": temperature,
        "response_format": response_format,
    }

    # Only include parameters that have values
    for key, value in optional_params.items():
        if value is not None:
            params[key] = value

    return params


async def request_completion(params: Dict, url: str = None, timeout: float = REQUEST_TIMEOUT) -> str:
    """
    POST a chat completion body to the proxy and return the raw response text.

    Raises:
        GenerationError: On network failure or a non-success status
    """
    if url is None:
        url = get_proxy_url()

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(url, json=params)
    except httpx.HTTPError as e:
        logger.error(f"Proxy request failed: {type(e).__name__}: {str(e)}")
        raise GenerationError(f"Network error: {type(e).__name__}") from e

    if response.is_error:
        error_text = response.text
        logger.error(f"OpenRouter request failed: {error_text}")
        raise GenerationError(
            f"OpenRouter error: {response.status_code}",
            status_code=response.status_code,
            raw_text=error_text,
        )

    return response.text


def extract_message_content(body: str) -> str:
    """
    Pull choices[0].message.content out of a completion body.

    Returns:
        The message content, or "" when the completion carries no content

    Raises:
        MalformedContentError: If the body is not a JSON object
    """
    try:
        data = json.loads(body)
    except (TypeError, ValueError) as e:
        raise MalformedContentError(f"Completion body is not JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedContentError("Completion body is not a JSON object")

    choices = data.get("choices")
    if not choices or not isinstance(choices, list):
        return ""
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    return content if isinstance(content, str) else ""


def get_token_count(body: str) -> str:
    """
    Extract token count from a completion body.

    Returns:
        str: Token count as string or 'n/a' if not available
    """
    try:
        usage_info = json.loads(body).get("usage")
    except (TypeError, ValueError, AttributeError):
        return 'n/a'
    if isinstance(usage_info, dict):
        return str(usage_info.get('total_tokens', 'n/a'))
    return 'n/a'
