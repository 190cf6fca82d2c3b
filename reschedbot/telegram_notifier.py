from __future__ import annotations

import logging
from typing import Iterable

import httpx

logger = logging.getLogger(__name__)


def send_telegram_message(*, bot_token: str, chat_id: str, text: str, timeout_seconds: float = 20.0) -> None:
    url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
    payload = {
        "chat_id": chat_id,
        "text": text,
        "disable_web_page_preview": True,
    }

    with httpx.Client(timeout=timeout_seconds) as client:
        r = client.post(url, json=payload)
        r.raise_for_status()
        data = r.json()
        if not data.get("ok", False):
            raise RuntimeError(f"Telegram API error: {data}")


def broadcast_telegram(*, bot_token: str, chat_ids: Iterable[str], text: str) -> None:
    """Send ``text`` to every chat; one failing chat does not stop the others."""

    failed: list[str] = []
    for chat_id in chat_ids:
        try:
            send_telegram_message(bot_token=bot_token, chat_id=chat_id, text=text)
        except Exception as e:
            logger.warning("Failed to send telegram message to chat_id=%s (%s: %s)", chat_id, type(e).__name__, e)
            failed.append(chat_id)

    if failed:
        raise RuntimeError(f"Failed to send telegram message to some recipients: {', '.join(failed)}")
