"""Conversation repository: conversations, messages and extracted memories."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from admissions_agent.core.models import Message, MemoryRecord, ToolCall
from admissions_agent.core.types import AgentType, MemoryType, Role
from admissions_agent.log import get_logger
from admissions_agent.storage.database import Database

logger = get_logger(__name__)


class ConversationRepository:
    """CRUD over conversations and their append-only message log."""

    def __init__(self, db: Database):
        self._db = db

    async def upsert_conversation(
        self,
        conversation_id: str,
        user_id: str,
        metadata: dict[str, Any],
        summary: str | None = None,
    ) -> None:
        await self._db.conn.execute(
            """INSERT INTO conversations (id, user_id, metadata_json, summary)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(user_id, id) DO UPDATE SET
                   metadata_json = excluded.metadata_json,
                   summary = excluded.summary,
                   updated_at = strftime('%Y-%m-%dT%H:%M:%f','now')""",
            (conversation_id, user_id, json.dumps(metadata, ensure_ascii=False), summary),
        )
        await self._db.conn.commit()

    async def get_conversation(self, user_id: str, conversation_id: str) -> Optional[dict[str, Any]]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM conversations WHERE id = ? AND user_id = ?",
            (conversation_id, user_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return {
            "id": row["id"],
            "user_id": row["user_id"],
            "summary": row["summary"],
            "metadata": json.loads(row["metadata_json"]),
            "created_at": datetime.fromisoformat(row["created_at"]),
            "updated_at": datetime.fromisoformat(row["updated_at"]),
        }

    async def list_conversations(self, user_id: str) -> list[str]:
        cursor = await self._db.conn.execute(
            "SELECT id FROM conversations WHERE user_id = ? ORDER BY updated_at DESC",
            (user_id,),
        )
        return [row["id"] for row in await cursor.fetchall()]

    async def save_message(self, user_id: str, conversation_id: str, message: Message) -> int:
        """Append a message and return its sequence number."""
        usage = message.metadata.get("usage") or {}
        tool_calls = (
            json.dumps([c.to_dict() for c in message.tool_calls], ensure_ascii=False)
            if message.tool_calls
            else None
        )
        cursor = await self._db.conn.execute(
            """INSERT INTO messages
               (id, user_id, conversation_id, role, content, agent_type, tool_calls_json,
                tool_call_id, metadata_json, token_input, token_output, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                message.id,
                user_id,
                conversation_id,
                message.role.value,
                message.content,
                message.agent_type.value if message.agent_type else None,
                tool_calls,
                message.tool_call_id,
                json.dumps(message.metadata, ensure_ascii=False, default=str),
                usage.get("input_tokens", 0),
                usage.get("output_tokens", 0),
                message.timestamp.isoformat(),
            ),
        )
        await self._db.conn.execute(
            "UPDATE conversations SET updated_at = strftime('%Y-%m-%dT%H:%M:%f','now') "
            "WHERE user_id = ? AND id = ?",
            (user_id, conversation_id),
        )
        await self._db.conn.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    async def get_messages(self, user_id: str, conversation_id: str) -> list[Message]:
        """All messages of a conversation in insertion order."""
        cursor = await self._db.conn.execute(
            "SELECT * FROM messages WHERE user_id = ? AND conversation_id = ? ORDER BY seq ASC",
            (user_id, conversation_id),
        )
        rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in rows]

    async def delete_conversation(self, user_id: str, conversation_id: str) -> int:
        cursor = await self._db.conn.execute(
            "DELETE FROM messages WHERE user_id = ? AND conversation_id = ?",
            (user_id, conversation_id),
        )
        await self._db.conn.execute(
            "DELETE FROM conversations WHERE id = ? AND user_id = ?",
            (conversation_id, user_id),
        )
        await self._db.conn.commit()
        return cursor.rowcount

    async def delete_user_conversations(self, user_id: str) -> int:
        cursor = await self._db.conn.execute(
            "DELETE FROM messages WHERE user_id = ?",
            (user_id,),
        )
        await self._db.conn.execute("DELETE FROM conversations WHERE user_id = ?", (user_id,))
        await self._db.conn.commit()
        return cursor.rowcount

    async def save_memories(self, user_id: str, memories: list[MemoryRecord]) -> None:
        """Insert or replace memories keyed by their dedupe key."""
        await self._db.conn.executemany(
            """INSERT INTO memories (user_id, type, category, key, content, importance, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(user_id, key) DO UPDATE SET
                   content = excluded.content,
                   importance = MAX(memories.importance, excluded.importance),
                   created_at = excluded.created_at""",
            [
                (
                    user_id,
                    m.type.value,
                    m.category,
                    m.key,
                    m.content,
                    m.importance,
                    m.created_at.isoformat(),
                )
                for m in memories
            ],
        )
        await self._db.conn.commit()

    async def load_memories(self, user_id: str, limit: int = 50) -> list[MemoryRecord]:
        cursor = await self._db.conn.execute(
            """SELECT * FROM memories WHERE user_id = ?
               ORDER BY importance DESC, created_at DESC LIMIT ?""",
            (user_id, limit),
        )
        return [
            MemoryRecord(
                type=MemoryType(row["type"]),
                category=row["category"],
                content=row["content"],
                key=row["key"],
                importance=row["importance"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in await cursor.fetchall()
        ]

    @staticmethod
    def _row_to_message(row) -> Message:
        tool_calls = ()
        if row["tool_calls_json"]:
            tool_calls = tuple(ToolCall.from_dict(c) for c in json.loads(row["tool_calls_json"]))
        return Message(
            id=row["id"],
            role=Role(row["role"]),
            content=row["content"],
            agent_type=AgentType(row["agent_type"]) if row["agent_type"] else None,
            tool_calls=tool_calls,
            tool_call_id=row["tool_call_id"],
            metadata=json.loads(row["metadata_json"]),
            timestamp=datetime.fromisoformat(row["created_at"]),
        )
