"""Telegram delivery.

The smoke test talks to the real Telegram API and is skipped unless
TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID are set:

    TELEGRAM_BOT_TOKEN=123 TELEGRAM_CHAT_ID=456 python -m pytest -q -m telegram

Only the first chat id of a comma-separated list is used, to avoid spam.
"""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from reschedbot.telegram_notifier import broadcast_telegram, send_telegram_message


def test_broadcast_continues_after_a_failed_chat_and_then_raises() -> None:
    with patch(
        "reschedbot.telegram_notifier.send_telegram_message",
        side_effect=[None, RuntimeError("blocked"), None],
    ) as send:
        with pytest.raises(RuntimeError, match="some recipients: 2"):
            broadcast_telegram(bot_token="t", chat_ids=("1", "2", "3"), text="hi")

    assert [c.kwargs["chat_id"] for c in send.call_args_list] == ["1", "2", "3"]


def test_broadcast_sends_to_every_chat() -> None:
    with patch("reschedbot.telegram_notifier.send_telegram_message") as send:
        broadcast_telegram(bot_token="t", chat_ids=("1", "2"), text="hi")
    assert send.call_count == 2


@pytest.mark.telegram
@pytest.mark.skipif(
    not os.getenv("TELEGRAM_BOT_TOKEN") or not os.getenv("TELEGRAM_CHAT_ID"),
    reason="Set TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID to run Telegram smoke test",
)
def test_telegram_message_delivery_smoke() -> None:
    send_telegram_message(
        bot_token=os.environ["TELEGRAM_BOT_TOKEN"],
        chat_id=os.environ["TELEGRAM_CHAT_ID"].split(",", 1)[0].strip(),
        text="reschedbot: Telegram smoke test (pytest)",
    )
