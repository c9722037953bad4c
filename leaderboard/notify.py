import logging

import httpx

from leaderboard.config import NTFY_TOPIC

logger = logging.getLogger(__name__)

NTFY_BASE_URL = "https://ntfy.sh"


async def send_ntfy_notification(message: str):
    """管理者のスマホ向け通知。トピック未設定なら何もしない"""
    if not NTFY_TOPIC:
        return None
    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            resp = await client.post(f"{NTFY_BASE_URL}/{NTFY_TOPIC}", data=message.encode("utf-8"))
            return resp.status_code
    except httpx.HTTPError as e:
        logger.warning("ntfy notification failed: %s", e)
        return None
