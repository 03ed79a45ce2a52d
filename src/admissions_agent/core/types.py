"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class AgentType(StrEnum):
    ORCHESTRATOR = "orchestrator"
    ESSAY = "essay"
    SCHOOL = "school"
    PROFILE = "profile"
    TIMELINE = "timeline"


SPECIALIST_AGENTS: tuple[AgentType, ...] = (
    AgentType.ESSAY,
    AgentType.SCHOOL,
    AgentType.PROFILE,
    AgentType.TIMELINE,
)


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class ErrorCategory(StrEnum):
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    QUOTA = "quota"
    NETWORK = "network"
    CIRCUIT_OPEN = "circuit_open"
    MODERATION = "moderation"
    UNKNOWN = "unknown"


class StreamEventType(StrEnum):
    START = "start"
    CONTENT = "content"
    TOOL_START = "tool_start"
    TOOL_END = "tool_end"
    AGENT_SWITCH = "agent_switch"
    DONE = "done"
    ERROR = "error"


class MemoryType(StrEnum):
    FACT = "fact"
    PREFERENCE = "preference"
    DECISION = "decision"
