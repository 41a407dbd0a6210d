"""
Pull-based message delivery used when the push channel is off or broken.

One asyncio task per chat: poll right away, then every ``interval`` seconds.
A failed poll bumps the chat's retry count and calls ``on_error``; after
``max_retries`` consecutive failures the poller stops itself. There is no
backoff beyond the fixed interval.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

import httpx

from config import settings
from errors import ServiceError

logger = logging.getLogger(__name__)

FetchMessages = Callable[[object], Awaitable[List[dict]]]


class LongPollingService:
    def __init__(self, fetch_messages: FetchMessages):
        self._fetch = fetch_messages
        self._tasks: Dict[object, asyncio.Task] = {}
        self._retry_counts: Dict[object, int] = {}

    def start_polling(
        self,
        chat_id,
        interval: Optional[float] = None,
        max_retries: Optional[int] = None,
        on_message: Optional[Callable[[List[dict]], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        interval = interval if interval is not None else settings.poll_interval_s
        max_retries = max_retries if max_retries is not None else settings.poll_max_retries
        self.stop_polling(chat_id)
        self._retry_counts[chat_id] = 0
        self._tasks[chat_id] = asyncio.create_task(
            self._run(chat_id, interval, max_retries, on_message, on_error)
        )
        logger.info("started polling chat %s every %ss", chat_id, interval)

    async def _run(self, chat_id, interval, max_retries, on_message, on_error):
        try:
            while await self._poll(chat_id, max_retries, on_message, on_error):
                await asyncio.sleep(interval)
        except Exception:
            logger.exception("polling chat %s stopped by an unexpected error", chat_id)
        finally:
            # a restarted poller has already replaced this task
            if self._tasks.get(chat_id) is asyncio.current_task():
                self._tasks.pop(chat_id)

    async def _poll(self, chat_id, max_retries, on_message, on_error) -> bool:
        try:
            messages = await self._fetch(chat_id)
        except (httpx.HTTPError, ServiceError, ValueError) as exc:
            retries = self._retry_counts.get(chat_id, 0) + 1
            self._retry_counts[chat_id] = retries
            logger.warning("polling chat %s failed (%d/%d): %s", chat_id, retries, max_retries, exc)
            if on_error:
                on_error(exc)
            if retries >= max_retries:
                logger.error("max retries reached for chat %s, stopping polling", chat_id)
                return False
            return True
        self._retry_counts[chat_id] = 0
        if on_message and messages:
            on_message(messages)
        return True

    def stop_polling(self, chat_id) -> None:
        task = self._tasks.pop(chat_id, None)
        self._retry_counts.pop(chat_id, None)
        if task is not None:
            task.cancel()
            logger.info("stopped polling chat %s", chat_id)

    def stop_all_polling(self) -> None:
        for chat_id in list(self._tasks):
            self.stop_polling(chat_id)

    def is_polling(self, chat_id) -> bool:
        return chat_id in self._tasks

    def get_retry_count(self, chat_id) -> int:
        return self._retry_counts.get(chat_id, 0)
