"""Chat protocol client for the text-generation backend.

One request per turn: ``POST {base_url}/api/chat`` with the new user
message and the transcript that precedes it. The backend answers with
``{"status": "ok" | "error", "response": ..., "error": ...}``.
"""

import logging

import httpx

from .config import normalize_base_url
from .connection import ConnectionStatus
from .core import ConnectionState, Message
from .errors import BackendError, ChatError, TransportError, ValidationError

logger = logging.getLogger(__name__)


class ChatClient:
    """Sends a single turn to the backend and returns the assistant reply."""

    def __init__(
        self,
        status: ConnectionStatus,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ) -> None:
        self.status = status
        self._transport = transport
        self._timeout = timeout

    async def send(self, base_url: str, user_text: str, prior_history: list[Message]) -> str:
        """Send ``user_text`` with ``prior_history`` and return the reply text.

        Raises ValidationError for blank input (no request is made) and a
        ChatError subclass for any failed exchange. The shared connection
        status is updated from the outcome either way.
        """
        text = user_text.strip()
        if not text:
            raise ValidationError("Message is empty")

        base_url = normalize_base_url(base_url)
        try:
            reply = await self._exchange(base_url, text, prior_history)
        except ChatError as e:
            logger.error("Chat request to %s failed: %s", base_url, e.cause)
            self.status.set(ConnectionState.ERROR)
            raise

        self.status.set(ConnectionState.CONNECTED)
        return reply

    async def _exchange(self, base_url: str, text: str, history: list[Message]) -> str:
        payload = {
            "message": text,
            "history": [m.to_dict() for m in history],
        }
        client_kwargs = {"transport": self._transport}
        if self._timeout is not None:
            client_kwargs["timeout"] = self._timeout

        try:
            async with httpx.AsyncClient(**client_kwargs) as client:
                resp = await client.post(f"{base_url}/api/chat", json=payload)
        except httpx.HTTPError as e:
            raise TransportError(str(e) or type(e).__name__, base_url) from e
        except Exception as e:
            # Unusable URLs fail below the HTTP layer (InvalidURL, connect errors)
            raise TransportError(f"Could not reach backend: {str(e) or type(e).__name__}", base_url) from e

        if not resp.is_success:
            raise TransportError(f"HTTP error! status: {resp.status_code}", base_url)

        try:
            data = resp.json()
        except ValueError as e:
            raise TransportError("Backend returned a malformed response", base_url) from e

        if not isinstance(data, dict):
            raise TransportError("Backend returned a malformed response", base_url)

        if data.get("status") == "error":
            raise BackendError(str(data.get("error") or "Backend reported an error"), base_url)

        reply = data.get("response")
        if not isinstance(reply, str):
            raise TransportError("Backend response has no reply text", base_url)
        return reply
