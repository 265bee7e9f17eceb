"""
Microsoft Teams incoming-webhook notifications.
"""

import logging
from datetime import datetime

import httpx

from garoon_calendar_sync.models import SyncStats

logger = logging.getLogger(__name__)

RESULT_TITLE = "Garoon sync result"

THEME_COLORS = {
    "default": "0x6264A7",
    "success": "0x2D8C3C",
    "warning": "0xF2C811",
    "error": "0xC4314B",
}


def build_card(title: str, message: str, color: str = "default") -> dict:
    """Wrap title and message in an Adaptive Card webhook payload."""
    return {
        "type": "message",
        "attachments": [
            {
                "contentType": "application/vnd.microsoft.card.adaptive",
                "content": {
                    "type": "AdaptiveCard",
                    "version": "1.0",
                    "themeColor": THEME_COLORS.get(color, THEME_COLORS["default"]),
                    "body": [
                        {"type": "TextBlock", "size": "medium", "weight": "bolder", "text": title},
                        {"type": "TextBlock", "text": message, "wrap": True},
                        {
                            "type": "TextBlock",
                            "size": "small",
                            "isSubtle": True,
                            "text": f"Sent at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
                        },
                    ],
                },
            }
        ],
    }


class TeamsNotifier:
    """Posts sync outcomes to a Teams channel.

    Every method returns True when the message was delivered.  A missing
    webhook or a failed post is logged and reported as False; it is never
    raised, a notification problem must not fail the sync itself.
    """

    def __init__(self, webhook_url: str | None, http_client: httpx.AsyncClient | None = None):
        self.webhook_url = webhook_url or None
        self.client = http_client or httpx.AsyncClient(timeout=10.0)

    async def aclose(self):
        await self.client.aclose()

    async def send(self, title: str, message: str, color: str = "default") -> bool:
        if not self.webhook_url:
            logger.debug("No Teams webhook configured, notification skipped")
            return False
        try:
            response = await self.client.post(
                self.webhook_url, json=build_card(title, message, color)
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Teams notification failed: {e}")
            return False
        return True

    async def send_error(self, title: str, error: BaseException | str) -> bool:
        return await self.send(f"Error: {title}", str(error), "error")

    async def send_sync_result(self, stats: SyncStats) -> bool:
        if stats.errors:
            title, color = f"{RESULT_TITLE} (errors)", "error"
        elif stats.total == 0:
            title, color = f"{RESULT_TITLE} (no changes)", "default"
        else:
            title, color = f"{RESULT_TITLE} (success)", "success"

        lines = [
            f"Added: {stats.added}",
            f"Updated: {stats.updated}",
            f"Deleted: {stats.deleted}",
        ]
        if stats.errors:
            lines.append(f"Errors: {stats.errors}")
        lines.append(f"Total: {stats.total} event(s) synchronized")
        return await self.send(title, "\n".join(lines), color)
