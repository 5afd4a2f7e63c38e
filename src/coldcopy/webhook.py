"""Signed webhook delivery of the run summary."""

import asyncio
import hashlib
import hmac
import logging

import aiohttp

from coldcopy.config import WebhookConfig
from coldcopy.exceptions import NotificationError

logger: logging.Logger = logging.getLogger(__name__)

SIGNATURE_HEADER: str = "X-TRAQ-Signature"


def generate_signature(message: str, secret: str) -> str:
    """
    Computes the hex HMAC-SHA1 of a message body.

    Args:
        message (str): The message body.
        secret (str): The shared webhook secret.

    Returns:
        str: The lower-case hex digest.
    """
    return hmac.new(
        secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha1
    ).hexdigest()


class WebhookNotifier:
    """Posts plain-text messages to a webhook, signed with a shared secret."""

    def __init__(self, session: aiohttp.ClientSession, config: WebhookConfig) -> None:
        if not config.enabled:
            raise ValueError("Webhook id and secret are required.")
        self._session: aiohttp.ClientSession = session
        self._config: WebhookConfig = config

    async def post_message(self, message: str) -> int:
        """
        Sends a message.

        Args:
            message (str): The plain-text body.

        Returns:
            int: The HTTP status code of the delivery.

        Raises:
            NotificationError: On a transport failure or non-2xx response.
        """
        headers = {
            "Content-Type": "text/plain; charset=utf-8",
            SIGNATURE_HEADER: generate_signature(message, self._config.secret or ""),
        }
        try:
            async with self._session.post(
                self._config.url, data=message.encode("utf-8"), headers=headers
            ) as response:
                # The endpoint is not guaranteed to answer in UTF-8.
                body: str = (await response.read()).decode("utf-8", errors="replace")
                if response.status >= 300:
                    raise NotificationError(
                        f"Webhook returned HTTP {response.status}: {body}"
                    )
        except NotificationError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise NotificationError(f"Failed to send webhook: {e}") from e

        logger.info(f"Sent webhook: statusCode: {response.status}")
        return response.status
