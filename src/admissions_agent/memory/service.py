"""Memory service: conversation state, message windows and user context."""

from __future__ import annotations

import json
import time
from collections import OrderedDict
from dataclasses import replace
from typing import Any

import aiosqlite

from admissions_agent.config import MemoryConfig
from admissions_agent.core.models import ConversationState, MemoryRecord, Message, UserContext, utcnow
from admissions_agent.core.types import Role
from admissions_agent.log import get_logger
from admissions_agent.memory.extractor import MemoryExtractor
from admissions_agent.memory.store import ConversationStore
from admissions_agent.memory.summarizer import ConversationSummarizer
from admissions_agent.storage.admissions_repo import AdmissionsRepository

logger = get_logger(__name__)

TOOL_RESULT_MAX_ITEMS = 5
TOOL_RESULT_MAX_KEYS = 10
TOOL_RESULT_NESTED_KEYS = 3
MAX_SUMMARY_MEMORIES = 8

_SUMMARY_LABELS = {
    "zh": {
        "empty": "用户档案为空",
        "incomplete": "档案信息不完整",
        "tests": "标化",
        "major": "目标专业",
        "activities": "活动: {n}项",
        "awards": "奖项: {n}项",
        "memories": "已知信息",
    },
    "en": {
        "empty": "User profile is empty",
        "incomplete": "Profile is incomplete",
        "tests": "Tests",
        "major": "Target major",
        "activities": "Activities: {n}",
        "awards": "Awards: {n}",
        "memories": "Known facts",
    },
}


def _pick_keys(obj: dict[str, Any], max_keys: int) -> dict[str, Any]:
    picked: dict[str, Any] = {}
    for key in list(obj)[:max_keys]:
        value = obj[key]
        if isinstance(value, dict):
            picked[key] = _pick_keys(value, TOOL_RESULT_NESTED_KEYS)
        elif isinstance(value, list):
            picked[key] = value[:TOOL_RESULT_NESTED_KEYS]
        else:
            picked[key] = value
    return picked


def summarize_tool_result(data: Any) -> Any:
    """Shrink a tool payload before it is replayed to the model."""
    if isinstance(data, list):
        return [
            _pick_keys(item, TOOL_RESULT_MAX_ITEMS) if isinstance(item, dict) else item
            for item in data[:TOOL_RESULT_MAX_ITEMS]
        ]
    if isinstance(data, dict):
        return _pick_keys(data, TOOL_RESULT_MAX_KEYS)
    return data


def _lru_get(cache: OrderedDict[str, Any], key: str) -> Any:
    value = cache.get(key)
    if value is not None:
        cache.move_to_end(key)
    return value


def _lru_put(cache: OrderedDict[str, Any], key: str, value: Any, max_size: int) -> None:
    cache[key] = value
    cache.move_to_end(key)
    while len(cache) > max_size:
        cache.popitem(last=False)


def _merge_memories(existing: list[MemoryRecord], new: list[MemoryRecord]) -> list[MemoryRecord]:
    by_key = {m.key: m for m in existing}
    for memory in new:
        by_key[memory.key] = memory
    return sorted(by_key.values(), key=lambda m: m.importance, reverse=True)


class MemoryService:
    """Short-term conversation cache in front of a ConversationStore.

    Conversations and user contexts are held in LRU caches bounded by
    ``memory.cache_size``; evicted entries are reloaded from the store.
    """

    def __init__(
        self,
        store: ConversationStore,
        profiles: AdmissionsRepository,
        summarizer: ConversationSummarizer,
        config: MemoryConfig | None = None,
        extractor: MemoryExtractor | None = None,
        default_locale: str = "zh",
    ):
        self._store = store
        self._profiles = profiles
        self._summarizer = summarizer
        self._config = config or MemoryConfig()
        self._extractor = extractor or MemoryExtractor()
        self._default_locale = default_locale
        self._conversations: OrderedDict[str, ConversationState] = OrderedDict()
        self._contexts: OrderedDict[str, UserContext] = OrderedDict()

    # ── conversations ───────────────────────────────────────────────

    async def get_or_create_conversation(
        self,
        user_id: str,
        conversation_id: str | None = None,
        locale: str | None = None,
    ) -> ConversationState:
        conv_id = conversation_id or f"conv_{user_id}_{int(time.time() * 1000)}"
        key = f"{user_id}:{conv_id}"

        conversation = _lru_get(self._conversations, key)
        if conversation is None:
            context = await self.load_user_context(user_id)
            conversation = await self._store.load(user_id, conv_id)
            if conversation is None:
                conversation = ConversationState(
                    id=conv_id,
                    user_id=user_id,
                    context=context,
                    metadata={"locale": locale or self._default_locale},
                )
                await self._store.save_conversation(conversation)
                logger.info("conversation_created", user_id=user_id, conversation_id=conv_id)
            else:
                conversation.context = context
            _lru_put(self._conversations, key, conversation, self._config.cache_size)

        if locale and conversation.metadata.get("locale") != locale:
            conversation.metadata["locale"] = locale
            await self._store.save_conversation(conversation)
        return conversation

    async def add_message(self, conversation: ConversationState, message: Message) -> Message:
        """Append in arrival order and persist. User messages feed fact extraction."""
        conversation.messages.append(message)
        conversation.updated_at = utcnow()
        await self._store.append(conversation.user_id, conversation.id, message)

        if message.role is Role.USER and self._config.extract_facts:
            extracted = self._extractor.extract(message.content)
            if extracted:
                context = conversation.context
                context.memories = _merge_memories(context.memories, extracted)
                await self._store.save_memories(conversation.user_id, extracted)
                logger.debug(
                    "memories_extracted",
                    user_id=conversation.user_id,
                    keys=[m.key for m in extracted],
                )
        return message

    def get_recent_messages(self, conversation: ConversationState, limit: int = 20) -> list[Message]:
        window = conversation.messages[-limit:] if limit > 0 else []
        recent: list[Message] = []
        for message in window:
            if message.role is Role.TOOL:
                try:
                    data = json.loads(message.content)
                except json.JSONDecodeError:
                    recent.append(message)
                    continue
                message = replace(
                    message,
                    content=json.dumps(summarize_tool_result(data), ensure_ascii=False, default=str),
                )
            recent.append(message)
        return recent

    async def get_history(self, user_id: str, conversation_id: str | None = None) -> list[Message]:
        """User and assistant messages of a conversation, oldest first."""
        if conversation_id is None:
            ids = await self._store.list_conversations(user_id)
            if not ids:
                return []
            conversation_id = ids[0]

        conversation = _lru_get(self._conversations, f"{user_id}:{conversation_id}")
        if conversation is None:
            conversation = await self._store.load(user_id, conversation_id)
        if conversation is None:
            return []
        return [
            m for m in conversation.messages
            if m.role in (Role.USER, Role.ASSISTANT) and m.content
        ]

    async def list_conversations(self, user_id: str) -> list[str]:
        return await self._store.list_conversations(user_id)

    async def clear_conversation(self, user_id: str, conversation_id: str | None = None) -> int:
        if conversation_id is None:
            prefix = f"{user_id}:"
            for key in [k for k in self._conversations if k.startswith(prefix)]:
                del self._conversations[key]
        else:
            self._conversations.pop(f"{user_id}:{conversation_id}", None)
        removed = await self._store.delete(user_id, conversation_id)
        logger.info("conversation_cleared", user_id=user_id, conversation_id=conversation_id, messages=removed)
        return removed

    async def maybe_summarize(self, conversation: ConversationState) -> bool:
        """Fold messages older than the recent window into the rolling summary."""
        done = int(conversation.metadata.get("summarized_count", 0))
        total = len(conversation.messages)
        if total - done <= self._config.summarize_after:
            return False

        cutoff = total - self._config.keep_recent
        summary = await self._summarizer.summarize(conversation.messages[done:cutoff], conversation.summary)
        conversation.summary = summary.render()
        conversation.metadata["summarized_count"] = cutoff
        if summary.key_topics:
            conversation.metadata["key_topics"] = summary.key_topics
        await self._store.save_conversation(conversation)
        logger.info(
            "conversation_summarized",
            conversation_id=conversation.id,
            summarized=cutoff - done,
            total=total,
        )
        return True

    # ── user context ────────────────────────────────────────────────

    async def load_user_context(self, user_id: str) -> UserContext:
        cached = _lru_get(self._contexts, user_id)
        if cached is not None:
            return cached

        try:
            profile = await self._profiles.get_profile(user_id)
        except aiosqlite.Error as exc:
            logger.error("user_context_load_failed", user_id=user_id, error=str(exc))
            return UserContext(user_id=user_id)

        context = UserContext(
            user_id=user_id,
            profile=profile,
            memories=await self._store.load_memories(user_id),
        )
        _lru_put(self._contexts, user_id, context, self._config.cache_size)
        return context

    async def refresh_user_context(self, user_id: str) -> UserContext:
        self._contexts.pop(user_id, None)
        context = await self.load_user_context(user_id)
        for conversation in self._conversations.values():
            if conversation.user_id == user_id:
                conversation.context = context
        return context

    @staticmethod
    def get_context_summary(context: UserContext, locale: str = "zh") -> str:
        labels = _SUMMARY_LABELS.get(locale, _SUMMARY_LABELS["zh"])
        profile = context.profile

        if profile is None:
            text = labels["empty"]
        else:
            parts: list[str] = []
            if profile.gpa:
                parts.append(f"GPA: {profile.gpa}/{profile.gpa_scale or 4.0}")
            if profile.test_scores:
                scores = ", ".join(f"{s['type']} {s['score']}" for s in profile.test_scores)
                parts.append(f"{labels['tests']}: {scores}")
            if profile.target_major:
                parts.append(f"{labels['major']}: {profile.target_major}")
            if profile.activities:
                parts.append(labels["activities"].format(n=len(profile.activities)))
            if profile.awards:
                parts.append(labels["awards"].format(n=len(profile.awards)))
            text = " | ".join(parts) if parts else labels["incomplete"]

        if context.memories:
            facts = "; ".join(m.content for m in context.memories[:MAX_SUMMARY_MEMORIES])
            text += f"\n{labels['memories']}: {facts}"
        return text
