"""Error categorisation and canned degraded responses."""

from __future__ import annotations

from dataclasses import replace

from admissions_agent.core.models import ActionSuggestion, AgentResponse
from admissions_agent.core.types import AgentType, ErrorCategory
from admissions_agent.log import get_logger

logger = get_logger(__name__)

FALLBACK_RESPONSES: dict[str, AgentResponse] = {
    "default": AgentResponse(
        message="抱歉，我暂时无法处理您的请求。请稍后再试，或尝试换一种方式提问。",
        agent_type=AgentType.ORCHESTRATOR,
        suggestions=["稍后重试", "简化问题", "联系客服"],
    ),
    "busy": AgentResponse(
        message="当前使用人数较多，请稍后再试。您也可以先浏览院校库或案例库。",
        agent_type=AgentType.ORCHESTRATOR,
        actions=[
            ActionSuggestion("浏览院校", "navigate:/schools"),
            ActionSuggestion("查看案例", "navigate:/cases"),
        ],
    ),
    "quota": AgentResponse(
        message="您今日的对话次数已达上限。升级会员可获得更多对话额度，或明天再来。",
        agent_type=AgentType.ORCHESTRATOR,
        actions=[ActionSuggestion("升级会员", "navigate:/pricing")],
    ),
    "network": AgentResponse(
        message="网络连接不稳定，请检查网络后重试。",
        agent_type=AgentType.ORCHESTRATOR,
        suggestions=["检查网络", "刷新页面"],
    ),
    "moderation": AgentResponse(
        message="抱歉，您的问题暂时无法回答。请调整问题内容后重试。",
        agent_type=AgentType.ORCHESTRATOR,
    ),
}

AGENT_FALLBACKS: dict[AgentType, AgentResponse] = {
    AgentType.ESSAY: AgentResponse(
        message="文书服务暂时不可用。您可以先整理思路，稍后再让我帮您分析。",
        agent_type=AgentType.ESSAY,
        suggestions=["先写一个初稿", "列出想表达的要点", "稍后再试"],
    ),
    AgentType.SCHOOL: AgentResponse(
        message="选校服务暂时不可用。您可以先浏览院校库了解学校信息。",
        agent_type=AgentType.SCHOOL,
        actions=[
            ActionSuggestion("浏览院校库", "navigate:/schools"),
            ActionSuggestion("查看排名", "navigate:/ranking"),
        ],
    ),
    AgentType.PROFILE: AgentResponse(
        message="档案分析服务暂时不可用。建议先完善您的档案信息。",
        agent_type=AgentType.PROFILE,
        actions=[ActionSuggestion("完善档案", "navigate:/profile")],
    ),
    AgentType.TIMELINE: AgentResponse(
        message="时间规划服务暂时不可用。您可以先查看目标学校的截止日期。",
        agent_type=AgentType.TIMELINE,
        actions=[ActionSuggestion("查看截止日期", "navigate:/schools")],
    ),
}

_CATEGORY_RESPONSE_KEY: dict[ErrorCategory, str] = {
    ErrorCategory.RATE_LIMIT: "busy",
    ErrorCategory.CIRCUIT_OPEN: "busy",
    ErrorCategory.QUOTA: "quota",
    ErrorCategory.NETWORK: "network",
    ErrorCategory.TIMEOUT: "network",
    ErrorCategory.MODERATION: "moderation",
}

USER_FRIENDLY_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.TIMEOUT: "请求处理时间较长，请稍后重试",
    ErrorCategory.RATE_LIMIT: "请求过于频繁，请稍后再试",
    ErrorCategory.QUOTA: "您的使用额度已达上限",
    ErrorCategory.NETWORK: "网络连接出现问题，请检查网络",
    ErrorCategory.CIRCUIT_OPEN: "服务暂时不可用，请稍后重试",
    ErrorCategory.MODERATION: "您的问题无法处理，请修改后重试",
    ErrorCategory.UNKNOWN: "遇到了一些问题，请稍后重试",
}

_RETRYABLE = frozenset({ErrorCategory.TIMEOUT, ErrorCategory.NETWORK, ErrorCategory.UNKNOWN})

_NETWORK_MARKERS = ("network", "econnreset", "enotfound", "fetch failed", "connection")


def _class_names(error: BaseException) -> set[str]:
    return {cls.__name__ for cls in type(error).__mro__}


class FallbackService:
    """Maps errors to categories and degraded responses."""

    def __init__(self, environment: str = "production"):
        self._environment = environment

    def categorize_error(self, error: BaseException) -> ErrorCategory:
        names = _class_names(error)
        text = f"{type(error).__name__} {error}".lower()

        if "TimeoutError" in names or "timeout" in text:
            return ErrorCategory.TIMEOUT
        if "RateLimitError" in names or "rate limit" in text or "429" in text:
            return ErrorCategory.RATE_LIMIT
        if "QuotaExceededError" in names or "quota" in text:
            return ErrorCategory.QUOTA
        if "CircuitOpenError" in names or "circuit" in text:
            return ErrorCategory.CIRCUIT_OPEN
        if "ConnectionError" in names or any(m in text for m in _NETWORK_MARKERS):
            return ErrorCategory.NETWORK
        if "moderation" in text or "content_policy" in text:
            return ErrorCategory.MODERATION
        return ErrorCategory.UNKNOWN

    def get_fallback_response(
        self, error: BaseException, agent_type: AgentType | None = None
    ) -> AgentResponse:
        """Agent-specific response first, otherwise one chosen by error category."""
        category = self.categorize_error(error)
        logger.warning(
            "fallback_triggered",
            category=category,
            agent=agent_type,
            error=str(error),
            error_type=type(error).__name__,
        )

        base = AGENT_FALLBACKS.get(agent_type) if agent_type is not None else None
        if base is None:
            base = FALLBACK_RESPONSES[_CATEGORY_RESPONSE_KEY.get(category, "default")]

        data: dict[str, object] = {"fallback": True, "category": category.value}
        if self._environment == "development":
            data["originalError"] = str(error)

        return replace(
            base,
            suggestions=list(base.suggestions),
            actions=list(base.actions),
            data=data,
        )

    def should_retry(self, error: BaseException) -> bool:
        return self.categorize_error(error) in _RETRYABLE

    def should_silence(self, error: BaseException) -> bool:
        """Unknown errors may carry internals and are never shown verbatim."""
        return self.categorize_error(error) is ErrorCategory.UNKNOWN

    def get_user_friendly_message(self, error: BaseException) -> str:
        return USER_FRIENDLY_MESSAGES[self.categorize_error(error)]
