"""Conversation stores: an in-process default and an aiosqlite-backed one."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from admissions_agent.core.models import ConversationState, MemoryRecord, Message, UserContext, utcnow
from admissions_agent.storage.conversation_repo import ConversationRepository


class ConversationStore(ABC):
    """Conversation storage keyed by (user_id, conversation_id)."""

    @abstractmethod
    async def load(self, user_id: str, conversation_id: str) -> Optional[ConversationState]:
        """Return the stored conversation with its messages in insertion order."""
        ...

    @abstractmethod
    async def save_conversation(self, state: ConversationState) -> None:
        """Create or update the conversation header (metadata, summary)."""
        ...

    @abstractmethod
    async def append(self, user_id: str, conversation_id: str, message: Message) -> None: ...

    @abstractmethod
    async def delete(self, user_id: str, conversation_id: str | None = None) -> int:
        """Delete one conversation, or all of the user's when no id is given."""
        ...

    @abstractmethod
    async def list_conversations(self, user_id: str) -> list[str]: ...

    @abstractmethod
    async def save_memories(self, user_id: str, memories: list[MemoryRecord]) -> None: ...

    @abstractmethod
    async def load_memories(self, user_id: str, limit: int = 50) -> list[MemoryRecord]: ...


@dataclass
class _StoredConversation:
    metadata: dict[str, Any]
    summary: Optional[str]
    created_at: datetime
    updated_at: datetime
    messages: list[Message] = field(default_factory=list)


class InMemoryConversationStore(ConversationStore):
    """Process-local store. Contents are lost on restart."""

    def __init__(self) -> None:
        self._conversations: dict[tuple[str, str], _StoredConversation] = {}
        self._memories: dict[str, dict[str, MemoryRecord]] = {}

    async def load(self, user_id: str, conversation_id: str) -> Optional[ConversationState]:
        stored = self._conversations.get((user_id, conversation_id))
        if stored is None:
            return None
        return ConversationState(
            id=conversation_id,
            user_id=user_id,
            context=UserContext(user_id=user_id),
            messages=list(stored.messages),
            metadata=dict(stored.metadata),
            summary=stored.summary,
            created_at=stored.created_at,
            updated_at=stored.updated_at,
        )

    async def save_conversation(self, state: ConversationState) -> None:
        stored = self._conversations.get((state.user_id, state.id))
        if stored is None:
            self._conversations[(state.user_id, state.id)] = _StoredConversation(
                metadata=dict(state.metadata),
                summary=state.summary,
                created_at=state.created_at,
                updated_at=state.updated_at,
            )
            return
        stored.metadata = dict(state.metadata)
        stored.summary = state.summary
        stored.updated_at = utcnow()

    async def append(self, user_id: str, conversation_id: str, message: Message) -> None:
        stored = self._conversations.get((user_id, conversation_id))
        if stored is None:
            raise KeyError(f"Unknown conversation: {user_id}:{conversation_id}")
        stored.messages.append(message)
        stored.updated_at = utcnow()

    async def delete(self, user_id: str, conversation_id: str | None = None) -> int:
        keys = [
            (owner, cid)
            for owner, cid in self._conversations
            if owner == user_id and (conversation_id is None or cid == conversation_id)
        ]
        removed = 0
        for key in keys:
            removed += len(self._conversations.pop(key).messages)
        return removed

    async def list_conversations(self, user_id: str) -> list[str]:
        owned = [
            (stored.updated_at, cid)
            for (owner, cid), stored in self._conversations.items()
            if owner == user_id
        ]
        return [cid for _, cid in sorted(owned, reverse=True)]

    async def save_memories(self, user_id: str, memories: list[MemoryRecord]) -> None:
        bucket = self._memories.setdefault(user_id, {})
        for memory in memories:
            existing = bucket.get(memory.key)
            if existing is not None and existing.importance > memory.importance:
                memory = MemoryRecord(
                    type=memory.type,
                    category=memory.category,
                    content=memory.content,
                    key=memory.key,
                    importance=existing.importance,
                    created_at=memory.created_at,
                )
            bucket[memory.key] = memory

    async def load_memories(self, user_id: str, limit: int = 50) -> list[MemoryRecord]:
        memories = sorted(
            self._memories.get(user_id, {}).values(),
            key=lambda m: (m.importance, m.created_at),
            reverse=True,
        )
        return memories[:limit]


class SqliteConversationStore(ConversationStore):
    """Long-term store on top of ConversationRepository."""

    def __init__(self, repo: ConversationRepository):
        self._repo = repo

    async def load(self, user_id: str, conversation_id: str) -> Optional[ConversationState]:
        row = await self._repo.get_conversation(user_id, conversation_id)
        if row is None:
            return None
        return ConversationState(
            id=conversation_id,
            user_id=user_id,
            context=UserContext(user_id=user_id),
            messages=await self._repo.get_messages(user_id, conversation_id),
            metadata=row["metadata"],
            summary=row["summary"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def save_conversation(self, state: ConversationState) -> None:
        await self._repo.upsert_conversation(state.id, state.user_id, state.metadata, state.summary)

    async def append(self, user_id: str, conversation_id: str, message: Message) -> None:
        await self._repo.save_message(user_id, conversation_id, message)

    async def delete(self, user_id: str, conversation_id: str | None = None) -> int:
        if conversation_id is None:
            return await self._repo.delete_user_conversations(user_id)
        return await self._repo.delete_conversation(user_id, conversation_id)

    async def list_conversations(self, user_id: str) -> list[str]:
        return await self._repo.list_conversations(user_id)

    async def save_memories(self, user_id: str, memories: list[MemoryRecord]) -> None:
        if memories:
            await self._repo.save_memories(user_id, memories)

    async def load_memories(self, user_id: str, limit: int = 50) -> list[MemoryRecord]:
        return await self._repo.load_memories(user_id, limit)
