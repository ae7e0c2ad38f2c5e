"""
LLM STEP - Thin async client for the Gemini generateContent endpoint.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from lucy.core import schemas
from lucy.core.config import is_placeholder, settings
from lucy.core.errors import ConfigurationError, ResponseShapeError, UpstreamError

logger = logging.getLogger(__name__)

# Timeouts are fixed per call site
CONNECT_TIMEOUT = 10.0
DEFAULT_TIMEOUT = 30.0
DASHBOARD_TIMEOUT = 45.0

# Generation policies
DASHBOARD_TEMPERATURE = 0.4
DASHBOARD_MAX_TOKENS = 4096
FACTUAL_TEMPERATURE = 0.0
ANSWER_TEMPERATURE = 0.1
TOP_K = 20
TOP_P = 0.8


def build_contents(
    prompt: str, history: Optional[Sequence[schemas.ChatTurn]] = None
) -> List[Dict[str, Any]]:
    """Earlier turns first (anything but "user" is the model), then the prompt."""
    contents = [
        {
            "role": "user" if turn.role == "user" else "model",
            "parts": [{"text": turn.content}],
        }
        for turn in history or []
    ]
    contents.append({"role": "user", "parts": [{"text": prompt}]})
    return contents


def build_payload(
    prompt: str,
    temperature: float,
    max_output_tokens: int,
    history: Optional[Sequence[schemas.ChatTurn]] = None,
) -> Dict[str, Any]:
    return {
        "contents": build_contents(prompt, history),
        "generationConfig": {
            "temperature": temperature,
            "topK": TOP_K,
            "topP": TOP_P,
            "maxOutputTokens": max_output_tokens,
        },
    }


def extract_text(body: Any) -> str:
    """Return candidates[0].content.parts[0].text or raise ResponseShapeError."""
    try:
        text = body["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        raise ResponseShapeError(
            f"Invalid Gemini API response: {str(body)[:200]}"
        )
    if not isinstance(text, str):
        raise ResponseShapeError("Invalid Gemini API response: text is not a string")
    return text


class GeminiClient:
    """
    Sends one prompt, returns the first candidate's text.

    Pass `http_client` to share a connection pool (or a mock transport in
    tests), otherwise the client owns its own httpx.AsyncClient.
    """

    def __init__(
        self,
        api_key: str,
        model: str = settings.GEMINI_MODEL,
        base_url: str = settings.GEMINI_API_URL,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient()

    @classmethod
    def from_settings(cls, http_client: Optional[httpx.AsyncClient] = None):
        return cls(
            api_key=settings.GEMINI_API_KEY,
            model=settings.GEMINI_MODEL,
            base_url=settings.GEMINI_API_URL,
            http_client=http_client,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def generate(
        self,
        prompt: str,
        *,
        temperature: float = FACTUAL_TEMPERATURE,
        max_output_tokens: int = 1024,
        timeout: float = DEFAULT_TIMEOUT,
        history: Optional[Sequence[schemas.ChatTurn]] = None,
    ) -> str:
        if is_placeholder(self.api_key):
            raise ConfigurationError("AI service not configured properly.")

        payload = build_payload(prompt, temperature, max_output_tokens, history)

        try:
            response = await self.http_client.post(
                self.endpoint,
                params={"key": self.api_key},
                json=payload,
                timeout=httpx.Timeout(timeout, connect=CONNECT_TIMEOUT),
            )
        except httpx.TimeoutException as error:
            logger.error(f"Gemini call timed out after {timeout}s: {error}")
            raise UpstreamError(f"Gemini API timed out after {timeout}s")
        except httpx.TransportError as error:
            logger.error(f"Gemini connection error: {error}")
            raise UpstreamError(f"Gemini API connection error: {error}")

        if response.status_code != 200:
            message = _error_message(response)
            logger.error(f"Gemini API error ({response.status_code}): {message}")
            raise UpstreamError(
                f"Gemini API error ({response.status_code}): {message}",
                upstream_status=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            raise ResponseShapeError("Invalid Gemini API response: body is not JSON")

        return extract_text(body)

    async def aclose(self):
        if self._owns_client:
            await self.http_client.aclose()


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return "Unknown error"


# Dependency: one client per request, closed when the request is done
async def get_gemini_client():
    client = GeminiClient.from_settings()
    try:
        yield client
    finally:
        await client.aclose()
