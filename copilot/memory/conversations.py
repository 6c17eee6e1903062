from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from copilot.chat.types import Conversation, CopilotMessage

logger = logging.getLogger(__name__)


class ConversationStore:
    """
    Process-local conversation memory, keyed by conversation id and owned by
    one (organization, user) pair.

    `locked(conversation_id)` serializes requests on the same conversation; the
    store never hands a conversation to a caller that does not own it.
    """

    def __init__(self, *, max_conversations_per_user: int = 50, max_messages_per_conversation: int = 200) -> None:
        self._guard = threading.Lock()
        self._convs: Dict[str, Conversation] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self.max_conversations_per_user = max(1, int(max_conversations_per_user))
        self.max_messages_per_conversation = max(2, int(max_messages_per_conversation))

    @contextmanager
    def locked(self, conversation_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(conversation_id, threading.Lock())
        with lock:
            yield

    def create(self, *, organization_id: str, user_id: str) -> Conversation:
        conv = Conversation(organization_id=organization_id, user_id=user_id)
        with self._guard:
            self._convs[conv.id] = conv
            self._evict(organization_id, user_id)
        logger.info("Conversation created: %s (org=%s)", conv.id, organization_id)
        return conv

    def _evict(self, organization_id: str, user_id: str) -> None:
        owned = [c for c in self._convs.values() if c.organization_id == organization_id and c.user_id == user_id]
        if len(owned) <= self.max_conversations_per_user:
            return
        owned.sort(key=lambda c: c.updated_at)
        for c in owned[: len(owned) - self.max_conversations_per_user]:
            self._convs.pop(c.id, None)
            self._locks.pop(c.id, None)
            logger.info("Conversation evicted: %s", c.id)

    def get(self, conversation_id: str, *, organization_id: str, user_id: str) -> Optional[Conversation]:
        with self._guard:
            conv = self._convs.get(conversation_id)
        if conv is None or conv.organization_id != organization_id or conv.user_id != user_id:
            return None
        return conv

    def list_for(self, *, organization_id: str, user_id: str) -> List[Conversation]:
        with self._guard:
            owned = [c for c in self._convs.values() if c.organization_id == organization_id and c.user_id == user_id]
        return sorted(owned, key=lambda c: c.updated_at, reverse=True)

    def append(self, conv: Conversation, message: CopilotMessage) -> None:
        conv.append(message)
        overflow = len(conv.messages) - self.max_messages_per_conversation
        if overflow > 0:
            del conv.messages[:overflow]
