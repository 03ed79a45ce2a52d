"""Tool registry: definitions plus the handler dispatch tables behind them."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from admissions_agent.ai.tools.base import (
    DELEGATE_HANDLER,
    ToolContext,
    ToolDefinition,
    ToolHandler,
    ToolName,
)
from admissions_agent.ai.tools.definitions import TOOLS
from admissions_agent.core.errors import UnknownToolError
from admissions_agent.log import get_logger

if TYPE_CHECKING:
    from admissions_agent.ai.agents import AgentConfig

logger = get_logger(__name__)


class ToolRegistry:
    """Registry of tool definitions and the handlers that execute them."""

    def __init__(self, definitions: list[ToolDefinition] | None = None):
        self._definitions: dict[str, ToolDefinition] = {
            d.name: d for d in (TOOLS if definitions is None else definitions)
        }
        self._handlers: dict[str, ToolHandler] = {}

    def register_handler(self, handler: ToolHandler) -> None:
        self._handlers[handler.category] = handler
        logger.info("tool_handler_registered", category=handler.category)

    def get(self, name: str) -> ToolDefinition | None:
        return self._definitions.get(name)

    def has(self, name: str) -> bool:
        return name in self._definitions

    def all_tools(self) -> list[ToolDefinition]:
        return list(self._definitions.values())

    def get_tools_by_names(self, names: list[str] | tuple[str, ...]) -> list[ToolDefinition]:
        """Get a subset of tools by name list."""
        return [self._definitions[n] for n in names if n in self._definitions]

    def tools_for(self, agent: AgentConfig) -> list[ToolDefinition]:
        """Tools an agent may call. The delegate tool is restricted to the agent's targets."""
        tools = [t for t in self.get_tools_by_names(agent.tools) if t.name != ToolName.DELEGATE_TO_AGENT]
        delegate = self._definitions.get(ToolName.DELEGATE_TO_AGENT)
        if agent.can_delegate and delegate is not None:
            params = copy.deepcopy(delegate.parameters)
            params["properties"]["agent"]["enum"] = [a.value for a in agent.can_delegate]
            tools.insert(
                0,
                ToolDefinition(
                    name=delegate.name,
                    description=delegate.description,
                    parameters=params,
                    handler=delegate.handler,
                ),
            )
        return tools

    def validate(self) -> list[str]:
        """Return one error per definition whose handler category has no dispatch table."""
        errors: list[str] = []
        for definition in self._definitions.values():
            if definition.handler == DELEGATE_HANDLER:
                continue
            handler = self._handlers.get(definition.category)
            if handler is None:
                errors.append(f"Tool {definition.name}: no handler for category '{definition.category}'")
            elif definition.method not in handler.methods:
                errors.append(f"Tool {definition.name}: handler '{definition.handler}' not implemented")
        return errors

    async def dispatch(self, name: str, args: dict[str, Any], context: ToolContext) -> Any:
        definition = self._definitions.get(name)
        if definition is None or definition.handler == DELEGATE_HANDLER:
            raise UnknownToolError(name)
        handler = self._handlers.get(definition.category)
        if handler is None:
            raise UnknownToolError(name)
        return await handler.execute(definition.method, args, context)
