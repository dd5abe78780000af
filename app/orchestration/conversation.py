"""
Per-conversation state: turns, current image handle and the undo stack.

``InMemoryConversationStore`` is the default and the test double;
``RedisConversationStore`` keeps state in a Redis hash at
``pixelpilot:conversation:{id}`` so several workers can share it.
"""

from __future__ import annotations

import json
from collections import OrderedDict
from typing import Protocol

from redis.asyncio import Redis

from app.core.config import settings
from app.core.log import logger
from app.schema.orchestration import ConversationState, ConversationTurn

__all__ = (
    "ConversationStore",
    "InMemoryConversationStore",
    "RedisConversationStore",
    "build_conversation_store",
)


class ConversationStore(Protocol):
    async def get(self, conversation_id: str) -> ConversationState: ...

    async def save(self, state: ConversationState) -> None: ...

    async def reset(self, conversation_id: str) -> bool: ...

    async def close(self) -> None: ...


class InMemoryConversationStore:
    """Process-local state, least recently used conversations dropped past *max_active*."""

    def __init__(self, max_active: int | None = None):
        self.max_active = settings.CONVERSATION_MAX_ACTIVE if max_active is None else max_active
        self._states: OrderedDict[str, ConversationState] = OrderedDict()

    async def get(self, conversation_id: str) -> ConversationState:
        state = self._states.get(conversation_id)
        if state is None:
            return ConversationState(conversation_id=conversation_id)
        self._states.move_to_end(conversation_id)
        return state.model_copy(deep=True)

    async def save(self, state: ConversationState) -> None:
        self._states[state.conversation_id] = state.model_copy(deep=True)
        self._states.move_to_end(state.conversation_id)
        while len(self._states) > self.max_active:
            evicted, _ = self._states.popitem(last=False)
            logger.info(f"Conversation {evicted}: evicted from memory")

    async def reset(self, conversation_id: str) -> bool:
        return self._states.pop(conversation_id, None) is not None

    async def close(self) -> None:
        self._states.clear()


class RedisConversationStore:
    """Conversation state in Redis hashes, expiring after ``CONVERSATION_TTL_SECONDS``."""

    def __init__(self, redis: Redis | None = None):
        self._redis = redis

    async def get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = Redis(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                db=settings.REDIS_DB_CONVERSATIONS,
                password=settings.REDIS_PASSWORD,
                decode_responses=True,
            )
        return self._redis

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    @staticmethod
    def _key(conversation_id: str) -> str:
        return f"pixelpilot:conversation:{conversation_id}"

    async def get(self, conversation_id: str) -> ConversationState:
        r = await self.get_redis()
        data = await r.hgetall(self._key(conversation_id))  # type: ignore
        if not data:
            return ConversationState(conversation_id=conversation_id)
        return ConversationState(
            conversation_id=conversation_id,
            turns=[ConversationTurn.model_validate(t) for t in json.loads(data.get("turns", "[]"))],
            current_handle=data.get("current_handle") or None,
            undo_stack=json.loads(data.get("undo_stack", "[]")),
        )

    async def save(self, state: ConversationState) -> None:
        r = await self.get_redis()
        key = self._key(state.conversation_id)
        mapping = {
            "turns": json.dumps([t.model_dump(mode="json") for t in state.turns]),
            "current_handle": state.current_handle or "",
            "undo_stack": json.dumps(state.undo_stack),
        }
        async with r.pipeline(transaction=True) as pipe:
            pipe.hset(key, mapping=mapping)
            pipe.expire(key, settings.CONVERSATION_TTL_SECONDS)
            await pipe.execute()
        logger.debug(f"Conversation {state.conversation_id}: state saved ({len(state.turns)} turns)")

    async def reset(self, conversation_id: str) -> bool:
        r = await self.get_redis()
        return bool(await r.delete(self._key(conversation_id)))


def build_conversation_store() -> ConversationStore:
    if settings.CONVERSATION_BACKEND == "redis":
        return RedisConversationStore()
    return InMemoryConversationStore()
