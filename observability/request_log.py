"""
Request log forwarding to an external analytics endpoint.

Best-effort: a record per webhook delivery is POSTed as {"data": record}.
Failures are logged and never raised.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiohttp

from logging_setup import get_logger, Component

logger = get_logger(Component.REQUEST_LOG)


def _describe_command(update: Dict[str, Any]) -> str:
    message = update.get("message") or {}
    callback = update.get("callback_query") or {}
    text = message.get("text") or callback.get("data")
    if text:
        return f"text: '{text}'"
    document = message.get("document") or {}
    mime = document.get("mime_type") or ""
    if message.get("voice") or message.get("audio") or mime.startswith("audio/"):
        return "audio"
    return ""


def build_record(method: str, url: str, update: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Flatten one webhook delivery into the analytics record shape."""
    update = update if isinstance(update, dict) else {}
    message = update.get("message") or {}
    callback = update.get("callback_query") or {}
    user = message.get("from") or callback.get("from")
    chat_id = (message.get("chat") or {}).get("id")
    if chat_id is None:
        chat_id = ((callback.get("message") or {}).get("chat") or {}).get("id")

    return {
        "time": datetime.now(timezone.utc).isoformat(),
        "request": method,
        "user": json.dumps(user, ensure_ascii=False) if user is not None else None,
        "chatId": chat_id,
        "cmd": _describe_command(update),
        "url": url,
    }


class RequestLogForwarder:
    def __init__(self, endpoint: Optional[str], timeout_seconds: float = 5):
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds

    async def forward(self, record: Dict[str, Any]) -> bool:
        """POST the record. Returns True on a 2xx response."""
        logger.info(
            "Request received",
            request=record.get("request"),
            chat_id=record.get("chatId"),
            cmd=record.get("cmd"),
            url=record.get("url"),
        )
        if not self.endpoint:
            return False
        try:
            async with aiohttp.ClientSession() as s:
                async with s.post(
                    self.endpoint,
                    json={"data": record},
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                ) as resp:
                    return 200 <= resp.status < 300
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "Error sending request log",
                endpoint=self.endpoint,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
