"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the core pipeline.
"""

from __future__ import annotations

from typing import Optional, Tuple

from telethon.tl.custom import Message

from core.models import InboundMessage


def _sender_username(sender) -> Optional[str]:
    username = getattr(sender, "username", None)
    if isinstance(username, str) and username:
        return username
    # Users without a public username still have a first name worth showing.
    first = getattr(sender, "first_name", None)
    last = getattr(sender, "last_name", None)
    if first or last:
        return " ".join(part for part in [first, last] if part)
    return None


async def build_inbound(message: Message) -> InboundMessage:
    """Build a core InboundMessage from a Telethon Message."""

    sender = await message.get_sender()
    return InboundMessage(
        chat_id=message.chat_id,
        user_id=message.sender_id or 0,
        username=_sender_username(sender),
        text=message.raw_text or "",
        date=int(message.date.timestamp()),
    )


def parse_command(text: str) -> Optional[Tuple[str, str]]:
    """Split ``/cmd@bot args`` into ``("cmd", "args")``; None for plain text."""

    if not text.startswith("/"):
        return None
    parts = text.split(maxsplit=1)
    command = parts[0][1:].split("@", 1)[0].lower()
    if not command:
        return None
    args = parts[1].strip() if len(parts) > 1 else ""
    return command, args
