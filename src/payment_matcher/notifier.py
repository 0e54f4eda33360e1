"""Slack notifications for reconciliation runs."""

import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DELIVERY_TIMEOUT = 10.0


def build_blocks(title: str, fields: Dict[str, str]) -> List[Dict[str, Any]]:
    """Slack block layout: a header and one mrkdwn field per key."""
    return [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": title},
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*{key}:*\n{value}"}
                for key, value in fields.items()
            ],
        },
    ]


class SlackNotifier:
    """Posts formatted messages to a Slack incoming webhook."""

    def __init__(self, webhook_url: str, client: Optional[httpx.AsyncClient] = None):
        self.webhook_url = webhook_url
        self._client = client

    async def send(self, title: str, fields: Dict[str, str]) -> bool:
        """Send one message. Delivery failures are logged and never raised.

        Returns:
            True if Slack accepted the message.
        """
        payload = {"blocks": build_blocks(title, fields)}
        try:
            if self._client is not None:
                response = await self._client.post(self.webhook_url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=DELIVERY_TIMEOUT) as client:
                    response = await client.post(self.webhook_url, json=payload)
            response.raise_for_status()
            return True
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Error sending Slack notification: HTTP {e.response.status_code}"
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Error sending Slack notification: {type(e).__name__}: {e}")
        return False
