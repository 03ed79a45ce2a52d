"""Startup validation of agent configs against the tool registry."""

from __future__ import annotations

from dataclasses import dataclass, field

from admissions_agent.ai.agents import AgentConfig
from admissions_agent.ai.tools.registry import ToolRegistry
from admissions_agent.core.errors import ConfigValidationError
from admissions_agent.core.types import AgentType
from admissions_agent.log import get_logger

logger = get_logger(__name__)

MAX_PROMPT_CHARS = 5000


@dataclass
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise ConfigValidationError(self.errors)


def _check_agent(agent_type: AgentType, config: AgentConfig, registry: ToolRegistry,
                 configs: dict[AgentType, AgentConfig], report: ValidationReport) -> None:
    prefix = f"[{agent_type.value}]"

    if config.type is not agent_type:
        report.errors.append(f"{prefix} type: config declares '{config.type}'")
    for name, value in (("name", config.name), ("system_prompt", config.system_prompt), ("model", config.model)):
        if not value:
            report.errors.append(f"{prefix} {name}: missing required field")

    for tool in config.tools:
        if not registry.has(tool):
            report.errors.append(f"{prefix} tools: tool '{tool}' is not registered")

    for target in config.can_delegate:
        if target not in configs:
            report.errors.append(f"{prefix} can_delegate: target '{target}' has no configuration")

    if not 0 <= config.temperature <= 2:
        report.errors.append(f"{prefix} temperature: {config.temperature} is out of range [0, 2]")
    if config.max_tokens < 1:
        report.errors.append(f"{prefix} max_tokens: {config.max_tokens} must be positive")

    if not config.tools and agent_type is not AgentType.ORCHESTRATOR:
        report.warnings.append(f"{prefix} agent has no tools configured")
    if agent_type in config.can_delegate:
        report.warnings.append(f"{prefix} agent can delegate to itself")
    if len(config.system_prompt) > MAX_PROMPT_CHARS:
        report.warnings.append(
            f"{prefix} system prompt is very long ({len(config.system_prompt)} chars)"
        )


def validate_agent_configs(
    configs: dict[AgentType, AgentConfig], registry: ToolRegistry
) -> ValidationReport:
    """Check every agent config, every AgentType and the registry's handler wiring."""
    report = ValidationReport()

    for agent_type, config in configs.items():
        _check_agent(agent_type, config, registry, configs, report)

    for agent_type in AgentType:
        if agent_type not in configs:
            report.errors.append(f"[{agent_type.value}] config: agent type has no configuration")

    report.errors.extend(registry.validate())

    for error in report.errors:
        logger.error("agent_config_error", error=error)
    for warning in report.warnings:
        logger.warning("agent_config_warning", warning=warning)
    logger.info(
        "agent_config_validated",
        agents=len(configs),
        tools=len(registry.all_tools()),
        valid=report.valid,
    )
    return report
