"""Exception hierarchy for the orchestration core."""

from __future__ import annotations


class AdmissionsAgentError(Exception):
    """Base class for all errors raised by admissions_agent."""


class ConfigValidationError(AdmissionsAgentError):
    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Agent configuration invalid: " + "; ".join(errors))


class AgentNotFoundError(AdmissionsAgentError):
    def __init__(self, agent: str):
        self.agent = agent
        super().__init__(f"Agent config not found: {agent}")


class UnknownToolError(AdmissionsAgentError):
    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name}")


class ToolInputError(AdmissionsAgentError):
    """Raised by handlers when the model passes unusable arguments."""


class LLMError(AdmissionsAgentError):
    """The model provider returned an error or unusable output."""


class OperationTimeoutError(AdmissionsAgentError, TimeoutError):
    def __init__(self, operation: str, timeout_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{operation} timeout after {timeout_seconds:g}s")


class CircuitOpenError(AdmissionsAgentError):
    def __init__(self, service: str):
        self.service = service
        super().__init__(f"Circuit breaker is open for {service}")
