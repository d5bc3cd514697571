"""Per-session conversation log.

Turns are append-only and a chat round always lands as one adjacent
user/assistant pair: both turns are appended under the session's lock, so
concurrent rounds on the same session never interleave their halves.
"""
import asyncio
from collections import defaultdict
from datetime import timedelta
from typing import Dict, List, Optional

import structlog

from rentalscout.core.errors import NotFound, PersistenceFailure
from rentalscout.state.models import Conversation, ConversationTurn, utcnow

logger = structlog.get_logger()


class ConversationStore:
    def __init__(self):
        self._conversations: Dict[str, Conversation] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get(self, session_id: str) -> Conversation:
        conversation = self._conversations.get(session_id)
        if conversation is None:
            raise NotFound(f"Conversation {session_id} not found", session_id=session_id)
        return conversation

    async def history(self, session_id: str) -> List[ConversationTurn]:
        conversation = self._conversations.get(session_id)
        return list(conversation.turns) if conversation else []

    async def recent_turns(self, session_id: str, limit: int) -> List[ConversationTurn]:
        turns = await self.history(session_id)
        return turns[-limit:] if limit > 0 else []

    async def append_round(
        self,
        session_id: str,
        user_turn: ConversationTurn,
        assistant_turn: ConversationTurn,
        user_id: Optional[str] = None,
    ) -> Conversation:
        if user_turn.role != "user" or assistant_turn.role != "assistant":
            raise PersistenceFailure("A chat round is one user turn followed by one assistant turn")
        async with self._locks[session_id]:
            conversation = self._conversations.get(session_id)
            if conversation is None:
                # Created lazily on the first completed round
                conversation = Conversation(session_id=session_id, user_id=user_id)
                self._conversations[session_id] = conversation
            elif user_id and conversation.user_id is None:
                conversation.user_id = user_id
            conversation.turns.extend([user_turn, assistant_turn])
            conversation.last_activity = assistant_turn.timestamp
            logger.debug("Conversation round stored", session_id=session_id, message_count=conversation.message_count)
            return conversation

    async def delete(self, session_id: str) -> bool:
        async with self._locks[session_id]:
            removed = self._conversations.pop(session_id, None) is not None
        self._locks.pop(session_id, None)
        return removed

    async def sessions_for_user(self, user_id: str) -> List[Conversation]:
        owned = [c for c in self._conversations.values() if c.user_id == user_id]
        return sorted(owned, key=lambda c: c.last_activity, reverse=True)

    async def purge_older_than(self, max_age: timedelta) -> int:
        cutoff = utcnow() - max_age
        stale = [sid for sid, c in self._conversations.items() if c.last_activity < cutoff]
        for session_id in stale:
            await self.delete(session_id)
        if stale:
            logger.info("Purged stale conversations", count=len(stale))
        return len(stale)
