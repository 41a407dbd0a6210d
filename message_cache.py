"""
Local copy of the active chat's messages.

Every path that touches the list (initial load, push event, poll merge,
optimistic send) goes through this cache, so the list is always sorted by
(createdAt, id) and never holds the same id twice. ``generation`` is bumped
whenever the cache is pointed at another chat; async work captures it before
awaiting and hands it back so results for a chat that is no longer open are
dropped.
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional


def _parse_ts(value) -> datetime:
    if isinstance(value, datetime):
        ts = value
    elif value:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    else:
        ts = datetime.min
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def message_sort_key(message: Dict):
    return _parse_ts(message.get("createdAt")), message.get("id")


class MessageCache:
    def __init__(self):
        self.chat_id = None
        self.generation = 0
        self._messages: List[Dict] = []
        self._ids = set()

    @property
    def messages(self) -> List[Dict]:
        return list(self._messages)

    def __len__(self):
        return len(self._messages)

    def __contains__(self, message_id):
        return message_id in self._ids

    def reset(self, chat_id=None) -> int:
        """Point the cache at another chat (or none) and return the new generation."""
        self.chat_id = chat_id
        self.generation += 1
        self._messages = []
        self._ids = set()
        return self.generation

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    def replace(self, messages: Iterable[Dict], generation: Optional[int] = None) -> bool:
        """Install a fresh server snapshot (initial load / reconcile)."""
        if generation is not None and not self.is_current(generation):
            return False
        unique = {}
        for m in messages:
            if self._belongs(m):
                unique[m["id"]] = m
        self._messages = sorted(unique.values(), key=message_sort_key)
        self._ids = set(unique)
        return True

    reconcile = replace

    def merge(self, incoming: Iterable[Dict], generation: Optional[int] = None) -> List[Dict]:
        """Add messages whose id is not held yet; returns just the added ones."""
        if generation is not None and not self.is_current(generation):
            return []
        added = []
        for m in incoming:
            if not self._belongs(m) or m.get("id") in self._ids:
                continue
            self._ids.add(m["id"])
            added.append(m)
        if added:
            self._messages = sorted(self._messages + added, key=message_sort_key)
        return added

    def _belongs(self, message: Dict) -> bool:
        chat_id = message.get("chatId")
        return message.get("id") is not None and (
            chat_id is None or self.chat_id is None or chat_id == self.chat_id
        )
