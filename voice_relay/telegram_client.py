"""
Telegram Bot API messaging client.

Best-effort: every call logs its own failure and returns a falsy value
instead of raising, so a messaging hiccup never fails a transcription job.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import aiohttp

from logging_setup import get_logger, Component

from .http_pool import PooledSession

logger = get_logger(Component.TELEGRAM)

MAX_MESSAGE_LENGTH = 4096


class TelegramClient:
    def __init__(
        self,
        bot_token: str,
        api_base: str = "https://api.telegram.org",
        timeout_seconds: float = 10,
    ):
        self._token = bot_token
        self.api_base = api_base.rstrip("/")
        self._pool = PooledSession("telegram", total_timeout=timeout_seconds)

    def method_url(self, method: str) -> str:
        return f"{self.api_base}/bot{self._token}/{method}"

    def file_url(self, file_path: str) -> str:
        return f"{self.api_base}/file/bot{self._token}/{file_path}"

    async def aclose(self) -> None:
        await self._pool.aclose()

    async def _call(self, method: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """POST a Bot API method. Returns the decoded body on HTTP 2xx, else None."""
        try:
            async with self._pool.get().post(self.method_url(method), json=payload) as resp:
                if not 200 <= resp.status < 300:
                    logger.error(
                        "Telegram API error",
                        method=method,
                        status=resp.status,
                        body=(await resp.text())[:500],
                    )
                    return None
                body = await resp.json(content_type=None)
                return body if isinstance(body, dict) else {}
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(
                "Telegram API request failed",
                method=method,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None,
        reply_to: Optional[int] = None,
        markdown: bool = True,
    ) -> Optional[int]:
        """
        Send a message to a chat. Returns the new message id, or None.

        reply_markup can be an inline keyboard dict, e.g.:
        {
            "inline_keyboard": [[{"text": "Button", "callback_data": "foo"}]]
        }
        """
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "text": text[:MAX_MESSAGE_LENGTH],
        }
        if markdown:
            payload["parse_mode"] = "Markdown"
        if reply_to is not None:
            payload["reply_parameters"] = {"message_id": reply_to}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup

        body = await self._call("sendMessage", payload)
        if not body or not body.get("ok"):
            return None
        return (body.get("result") or {}).get("message_id")

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        markdown: bool = True,
    ) -> bool:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text[:MAX_MESSAGE_LENGTH],
        }
        if markdown:
            payload["parse_mode"] = "Markdown"
        return await self._call("editMessageText", payload) is not None

    async def delete_message(self, chat_id: int, message_id: int) -> bool:
        return await self._call("deleteMessage", {"chat_id": chat_id, "message_id": message_id}) is not None

    async def send_chat_action(self, chat_id: int, action: str = "typing") -> bool:
        return await self._call("sendChatAction", {"chat_id": chat_id, "action": action}) is not None

    async def answer_callback_query(
        self,
        callback_query_id: str,
        text: Optional[str] = None,
        show_alert: bool = False,
    ) -> bool:
        """Acknowledge a callback query so Telegram stops the 'loading' spinner."""
        payload: Dict[str, Any] = {
            "callback_query_id": callback_query_id,
            "show_alert": bool(show_alert),
        }
        if text:
            payload["text"] = text
        return await self._call("answerCallbackQuery", payload) is not None

    async def set_webhook(self, url: str, secret_token: Optional[str] = None) -> bool:
        payload: Dict[str, Any] = {"url": url}
        if secret_token:
            payload["secret_token"] = secret_token
        body = await self._call("setWebhook", payload)
        ok = bool(body and body.get("ok"))
        if ok:
            logger.info("Webhook registered", url=url, description=body.get("description"))
        else:
            logger.error("Failed to register webhook", url=url, response=body)
        return ok
