"""
Messenger Send API client.

Delivers text messages to a user with a bounded retry policy. Callers get a
success flag; HTTP and transport errors never escape send_text.
"""

import asyncio
import os
import time
from typing import Any, Dict, Optional

import httpx

from logger import get_logger

logger = get_logger(__name__)

DEFAULT_GRAPH_API_URL = "https://graph.facebook.com/v2.6/me/messages"


class DeliveryError(Exception):
    """Raised for a single failed delivery attempt."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class MessengerClient:
    """Sends messages through the Graph API with retries."""

    def __init__(
        self,
        page_access_token: Optional[str] = None,
        api_url: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the client.

        Args:
            page_access_token: Page token (defaults to env PAGE_ACCESS_TOKEN)
            api_url: Send API endpoint
            max_retries: Attempts per message
            retry_delay: Base delay in seconds; attempt N waits N * retry_delay
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.page_access_token = page_access_token or os.getenv("PAGE_ACCESS_TOKEN", "")
        self.api_url = api_url or DEFAULT_GRAPH_API_URL
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def send_text(self, recipient_id: str, text: str) -> bool:
        """
        Deliver a text message.

        Returns:
            True once the API accepts the message, False after the last failed attempt
        """
        return await self.send_message(recipient_id, {"text": text})

    async def send_message(self, recipient_id: str, message: Dict[str, Any]) -> bool:
        """Deliver an arbitrary message payload with retries."""
        request_body = {
            "recipient": {"id": recipient_id},
            "message": message
        }

        for attempt in range(1, self.max_retries + 1):
            start_time = time.time()
            try:
                await self._post(request_body)
                logger.delivery(
                    recipient_id,
                    attempt,
                    True,
                    duration_ms=round((time.time() - start_time) * 1000, 2)
                )
                return True
            except (DeliveryError, httpx.HTTPError) as e:
                logger.delivery(recipient_id, attempt, False, error=str(e))
                if attempt == self.max_retries:
                    logger.error(
                        f"Unable to send message to {recipient_id} after {self.max_retries} attempts",
                        error=str(e)
                    )
                    return False
                await asyncio.sleep(self.retry_delay * attempt)

        return False

    async def _post(self, request_body: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._client.post(
            self.api_url,
            params={"access_token": self.page_access_token},
            json=request_body
        )
        try:
            data = response.json()
        except ValueError:
            data = {"raw": response.text}

        if response.is_success:
            return data

        raise DeliveryError(
            f"Send API error {response.status_code}: {data}",
            status_code=response.status_code,
            body=data
        )

    async def close(self) -> None:
        await self._client.aclose()
