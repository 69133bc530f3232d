"""Per-session conversation history and single-flight session locking."""
from __future__ import annotations

import asyncio
import json
import logging
import threading
import weakref
from collections.abc import AsyncIterator, Iterator, Sequence
from contextlib import asynccontextmanager, contextmanager

from langchain_core.stores import BaseStore

from .models import ChatMessage


def history_key(session_id: str) -> str:
    return f"session:{session_id}:history"


class SessionStore:
    """Append-only message log per session, trimmed to the newest ``max_messages``."""

    def __init__(
        self,
        kv_store: BaseStore[str, str],
        max_messages: int = 10,
        logger: logging.Logger | None = None,
    ) -> None:
        self.kv_store = kv_store
        self.max_messages = max_messages
        self.logger = logger or logging.getLogger(__name__)

    def history(self, session_id: str) -> list[ChatMessage]:
        raw = self.kv_store.mget([history_key(session_id)])[0]
        if raw is None:
            return []
        return [ChatMessage.from_dict(item) for item in json.loads(raw)]

    def read_tail(self, session_id: str, n: int) -> list[ChatMessage]:
        if n <= 0:
            return []
        return self.history(session_id)[-n:]

    def append(self, session_id: str, messages: Sequence[ChatMessage]) -> list[ChatMessage]:
        stored = self.history(session_id)
        stored.extend(messages)
        trimmed = stored[-self.max_messages :]
        self.kv_store.mset([(history_key(session_id), json.dumps([msg.to_dict() for msg in trimmed]))])
        self.logger.debug("Session %s now holds %d messages", session_id, len(trimmed))
        return trimmed


class _SessionSlot:
    __slots__ = ("lock", "async_lock", "__weakref__")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.async_lock = asyncio.Lock()


class SessionLockRegistry:
    """Serialises requests that share a session id; other sessions run freely."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._slots: weakref.WeakValueDictionary[str, _SessionSlot] = weakref.WeakValueDictionary()

    def _slot(self, session_id: str) -> _SessionSlot:
        with self._guard:
            slot = self._slots.get(session_id)
            if slot is None:
                slot = _SessionSlot()
                self._slots[session_id] = slot
            return slot

    @contextmanager
    def hold(self, session_id: str) -> Iterator[None]:
        slot = self._slot(session_id)
        with slot.lock:
            yield

    @asynccontextmanager
    async def hold_async(self, session_id: str) -> AsyncIterator[None]:
        """Awaitable variant for the event loop; waiters do not occupy a worker thread."""
        slot = self._slot(session_id)
        async with slot.async_lock:
            yield

    def __len__(self) -> int:
        return len(self._slots)
