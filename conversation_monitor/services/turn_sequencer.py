"""Per-conversation serialization of turn writes within one process."""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Optional
import uuid


class TurnSequencer:
    """
    Hands out one ``asyncio.Lock`` per conversation id.

    Writers on the same conversation queue behind each other; writers on
    different conversations never contend. Locks are dropped once no task
    holds or awaits them.
    """

    def __init__(self):
        self._locks: Dict[uuid.UUID, asyncio.Lock] = {}
        self._waiters: Dict[uuid.UUID, int] = {}

    @asynccontextmanager
    async def hold(self, conversation_id: uuid.UUID):
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._waiters[conversation_id] = self._waiters.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[conversation_id] -= 1
            if self._waiters[conversation_id] == 0:
                del self._waiters[conversation_id]
                del self._locks[conversation_id]

    def active_conversations(self) -> int:
        return len(self._locks)


_turn_sequencer_instance: Optional[TurnSequencer] = None


def get_turn_sequencer() -> TurnSequencer:
    """Process-wide sequencer shared by every service instance."""
    global _turn_sequencer_instance

    if _turn_sequencer_instance is None:
        _turn_sequencer_instance = TurnSequencer()

    return _turn_sequencer_instance
