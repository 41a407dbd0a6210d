"""
Client-side state for the open conversation.

States:
    IDLE        no chat selected
    SUBSCRIBED  push mode with a healthy channel; messages arrive as events
    POLLING     push disabled by configuration, or the channel reported an
                error; messages arrive through LongPollingService

The channel's error flag is only looked at by ``refresh()`` (and on chat
selection), so a broken socket demotes the view on its next evaluation rather
than from inside the socket callback. A view never moves from POLLING back
to SUBSCRIBED while it lives.

Sending is one REST call. While SUBSCRIBED the returned message is not added
locally because the push event will deliver it; otherwise it is merged right
away. Either way the id check in MessageCache keeps a message from showing up
twice.
"""
import enum
import logging
from typing import Callable, Dict, List, Optional

import httpx

from errors import ServiceError
from message_cache import MessageCache
from polling import LongPollingService
from schemas import check_message_content
from services import ChatService
from transport import TransportMode

logger = logging.getLogger(__name__)

POLL_FAILED = "Failed to receive new messages. Please refresh the page."
SEND_FAILED = "Failed to send message"
LOAD_FAILED = "Failed to load messages"


class ViewState(str, enum.Enum):
    IDLE = "idle"
    SUBSCRIBED = "subscribed"
    POLLING = "polling"


def _log_notice(text: str) -> None:
    logger.warning("chat notice: %s", text)


class ChatView:
    def __init__(
        self,
        chat_service: ChatService,
        user_id,
        mode: Optional[TransportMode] = None,
        push_channel=None,
        poller: Optional[LongPollingService] = None,
        notify: Callable[[str], None] = _log_notice,
        poll_interval: Optional[float] = None,
        max_retries: Optional[int] = None,
    ):
        self.chat_service = chat_service
        self.user_id = user_id
        self.mode = mode or TransportMode.from_settings()
        self.push_channel = push_channel
        self.poller = poller or LongPollingService(self._fetch_messages)
        self.notify = notify
        self.poll_interval = poll_interval
        self.max_retries = max_retries
        self.cache = MessageCache()
        self.state = ViewState.IDLE
        self.chat_id = None
        self._listening = False
        self._demoted = False

    # -- queries ----------------------------------------------------------

    @property
    def messages(self) -> List[Dict]:
        return self.cache.messages

    @property
    def banner(self) -> Optional[str]:
        if self.push_channel is None or self.mode is not TransportMode.PUSH:
            return None
        return self.push_channel.connection_error

    def _push_healthy(self) -> bool:
        return (
            self.mode is TransportMode.PUSH
            and self.push_channel is not None
            and self.push_channel.connected
            and not self.push_channel.connection_error
        )

    # -- lifecycle --------------------------------------------------------

    async def select_chat(self, chat_id) -> bool:
        """Open a chat: load its history, then subscribe or start polling."""
        await self._detach()
        self.chat_id = chat_id
        generation = self.cache.reset(chat_id)
        try:
            messages = await self._fetch_messages(chat_id)
        except (httpx.HTTPError, ServiceError) as exc:
            logger.warning("loading chat %s failed: %s", chat_id, exc)
            self.notify(LOAD_FAILED)
            messages = None
        if messages is not None:
            self.cache.replace(messages, generation)
        if not self.cache.is_current(generation):
            return False
        await self._attach()
        return messages is not None

    async def refresh(self) -> ViewState:
        """Re-evaluate the transport; demotes SUBSCRIBED to POLLING on channel error."""
        if self.state is ViewState.SUBSCRIBED and not self._push_healthy():
            logger.info("push channel unhealthy, chat %s falls back to polling", self.chat_id)
            self._demoted = True
            await self._unsubscribe()
            self._start_polling()
        return self.state

    async def close(self) -> None:
        await self._detach()
        self.cache.reset(None)
        self.chat_id = None

    async def _attach(self):
        if self._demoted or not self._push_healthy():
            if self.mode is TransportMode.PUSH:
                self._demoted = True
            self._start_polling()
            return
        if not self._listening:
            self.push_channel.add_listener(self.on_push_message)
            self._listening = True
        await self.push_channel.join(self.chat_id)
        self.state = ViewState.SUBSCRIBED

    async def _detach(self):
        if self.chat_id is None:
            return
        if self.state is ViewState.SUBSCRIBED:
            await self._unsubscribe()
        self.poller.stop_polling(self.chat_id)
        self.state = ViewState.IDLE

    async def _unsubscribe(self):
        if self._listening:
            self.push_channel.remove_listener(self.on_push_message)
            self._listening = False
        await self.push_channel.leave(self.chat_id)

    def _start_polling(self):
        generation = self.cache.generation
        self.poller.start_polling(
            self.chat_id,
            interval=self.poll_interval,
            max_retries=self.max_retries,
            on_message=lambda msgs: self.cache.merge(msgs, generation),
            on_error=self._on_poll_error,
        )
        self.state = ViewState.POLLING

    # -- delivery ---------------------------------------------------------

    async def _fetch_messages(self, chat_id) -> List[Dict]:
        resp = await self.chat_service.messages(chat_id)
        resp.raise_for_status()
        return resp.json()

    def _on_poll_error(self, exc: Exception) -> None:
        self.notify(POLL_FAILED)

    def on_push_message(self, payload: Dict) -> None:
        if self.chat_id is None or payload.get("chatId") != self.chat_id:
            return
        self.cache.merge([payload])

    async def send(self, content: str) -> Optional[Dict]:
        """Post a message; returns the stored message, or None when nothing was sent."""
        if self.chat_id is None:
            return None
        try:
            check_message_content(content)
        except ValueError as exc:
            self.notify(str(exc))
            return None
        generation = self.cache.generation
        try:
            resp = await self.chat_service.post_message(
                self.chat_id, {"senderId": self.user_id, "content": content}
            )
        except httpx.HTTPError as exc:
            logger.warning("sending to chat %s failed: %s", self.chat_id, exc)
            self.notify(SEND_FAILED)
            return None
        if not resp.is_success:
            self.notify(SEND_FAILED)
            return None
        message = resp.json()
        if self.state is not ViewState.SUBSCRIBED:
            self.cache.merge([message], generation)
        return message
