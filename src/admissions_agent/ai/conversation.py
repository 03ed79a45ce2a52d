"""Convert conversation history to Anthropic API message format."""

from __future__ import annotations

from typing import Any

from admissions_agent.core.models import Message
from admissions_agent.core.types import Role


def build_messages(history: list[Message]) -> list[dict[str, Any]]:
    """Convert stored messages into Anthropic API messages format.

    Assistant tool calls become ``tool_use`` blocks and tool messages become
    ``tool_result`` blocks. A result is only emitted after the assistant turn
    that issued its call, and a call is only emitted when a result for it
    exists, so a window cut mid-exchange never produces an invalid request.
    Mid-conversation system notes are passed as bracketed user text.
    Consecutive turns with the same role are merged.
    """
    answered = {m.tool_call_id for m in history if m.role == Role.TOOL and m.tool_call_id}
    issued: set[str] = set()
    messages: list[dict[str, Any]] = []

    for message in history:
        match message.role:
            case Role.USER:
                if message.content:
                    _append(messages, "user", [{"type": "text", "text": message.content}])

            case Role.SYSTEM:
                if message.content:
                    _append(messages, "user", [{"type": "text", "text": f"[{message.content}]"}])

            case Role.ASSISTANT:
                blocks: list[dict[str, Any]] = []
                if message.content:
                    blocks.append({"type": "text", "text": message.content})
                for call in message.tool_calls:
                    if call.id not in answered:
                        continue
                    issued.add(call.id)
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": call.id,
                            "name": call.name,
                            "input": call.arguments,
                        }
                    )
                if blocks:
                    _append(messages, "assistant", blocks)

            case Role.TOOL:
                if message.tool_call_id not in issued:
                    continue
                _append(
                    messages,
                    "user",
                    [
                        {
                            "type": "tool_result",
                            "tool_use_id": message.tool_call_id,
                            "content": message.content,
                        }
                    ],
                )

    # The API requires the first turn to come from the user.
    while messages and messages[0]["role"] != "user":
        messages.pop(0)

    return [_simplify(m) for m in messages]


def _append(messages: list[dict[str, Any]], role: str, blocks: list[dict[str, Any]]) -> None:
    if messages and messages[-1]["role"] == role:
        messages[-1]["content"].extend(blocks)
    else:
        messages.append({"role": role, "content": list(blocks)})


def _simplify(message: dict[str, Any]) -> dict[str, Any]:
    """Collapse a single text block back to a plain string."""
    content = message["content"]
    if len(content) == 1 and content[0]["type"] == "text":
        return {"role": message["role"], "content": content[0]["text"]}
    return message
