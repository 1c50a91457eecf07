"""
OpenAI-compatible chat completion client.
Communicates with the chat completions API via HTTP.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..utils.helpers import ProxyLogError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"
DEFAULT_BASE_URL = "https://api.openai.com/v1"


class LLMClientError(ProxyLogError):
    """Raised when the chat completion request or its payload fails"""


class ChatCompletionClient:
    """
    Client for an OpenAI-compatible chat completions endpoint.
    Constructed explicitly and handed to whatever needs it.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(timeout=timeout, transport=transport)

    def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        json_response: bool = True,
    ) -> str:
        """
        Request a chat completion and return the first choice's content.

        Args:
            messages: Chat messages ({"role", "content"} dicts)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            json_response: Ask the model for a JSON object response

        Returns:
            Message content of the first choice

        Raises:
            LLMClientError: On missing credentials, HTTP errors or an
                unexpected response shape
        """
        if not self.api_key:
            raise LLMClientError("OpenAI API key is not configured")

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens
        if json_response:
            payload["response_format"] = {"type": "json_object"}

        try:
            response = self.client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Chat completion error: {e}")
            raise LLMClientError(_error_message(e.response)) from e
        except httpx.HTTPError as e:
            logger.error(f"Chat completion error: {e}")
            raise LLMClientError(str(e)) from e
        except ValueError as e:
            raise LLMClientError(f"Invalid JSON from chat completion API: {e}") from e

        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMClientError("Unexpected chat completion response shape") from e

        return content or ""

    def close(self) -> None:
        self.client.close()


def _error_message(response: httpx.Response) -> str:
    """Prefer the API's own error message over the status line"""
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return f"HTTP {response.status_code}: {response.text[:200]}"
