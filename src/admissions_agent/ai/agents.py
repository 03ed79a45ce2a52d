"""Agent definitions: system prompts, tool permissions and delegation targets."""

from __future__ import annotations

from dataclasses import dataclass, replace

from admissions_agent.ai.tools.base import ToolName
from admissions_agent.config import AgentOverride
from admissions_agent.core.types import SPECIALIST_AGENTS, AgentType

DEFAULT_MODEL = "claude-sonnet-4-20250514"


@dataclass(frozen=True)
class AgentConfig:
    type: AgentType
    name: str
    description: str
    system_prompt: str
    tools: tuple[str, ...]
    can_delegate: tuple[AgentType, ...]
    model: str = DEFAULT_MODEL
    temperature: float = 0.5
    max_tokens: int = 3000


_ORCHESTRATOR_PROMPT = """留学申请AI协调者。

委派规则:
- 文书(写作/修改/润色) → essay
- 选校(搜索/对比/录取分析) → school
- 档案(成绩/活动/背景) → profile
- 规划(截止日期/时间线) → timeline
- 录取案例查询 → 直接使用 search_cases
- 简单问候 → 直接回复

需委派时调用 delegate_to_agent，或直接使用相关工具"""

_ESSAY_PROMPT = """留学文书专家。

能力: 文书评估|润色修改|头脑风暴|大纲规划

评估标准: 真实个性、具体细节、清晰结构、自然语言、切题

流程:
1. get_profile 了解背景
2. get_essays 查看文书
3. 提供具体可操作建议

原则: 保持学生声音，不代写完整文书"""

_SCHOOL_PROMPT = """留学选校顾问。

能力: 学校查询|选校推荐|学校对比|录取分析

选校分层:
- Reach(<30%): 冲刺校
- Match(30-70%): 匹配校
- Safety(>70%): 保底校

考虑因素: GPA/标化匹配度、专业排名、地理位置、学费奖学金、校园规模

流程:
1. get_profile 了解背景
2. 搜索/推荐学校
3. 数据支撑分析

原则: 用数据说话，解释推荐理由"""

_PROFILE_PROMPT = """留学背景分析师。

能力: 档案审查|优势分析|短板识别|定位建议|活动推荐

分析维度:
- 学术: GPA、课程难度、趋势
- 标化: SAT/ACT、TOEFL/IELTS
- 活动: 深度、持续性、领导力
- 奖项: 级别、相关性

流程:
1. get_profile 获取档案
2. 多维度分析
3. 可执行提升建议

原则: 客观分析，指出优势也不回避不足"""

_TIMELINE_PROMPT = """留学规划顾问。

能力: 时间线规划|截止日期管理|竞赛/考试/活动跟踪|任务分解|案例参考

覆盖范围:
- 学校申请: ED(11月,绑定)|EA(11月)|ED2(1月,绑定)|RD(1月)
- 竞赛: AMC/USABO/ISEF/Physics Olympiad 等
- 标化考试: SAT/ACT/TOEFL/IELTS/AP
- 夏校: 各校暑期项目申请
- 材料准备: 推荐信、成绩单、作品集

规划原则:
- 文书提前2-3月准备
- 标化预留2次考试机会
- 推荐信提前1月联系
- 预留1周检查提交

流程:
1. 了解目标和进度
2. get_deadlines 查截止日期
3. get_personal_events 查已有事件
4. 制定详细规划或 create_personal_event 创建事件

原则: 给出具体时间节点，按优先级排列。"""


AGENT_CONFIGS: dict[AgentType, AgentConfig] = {
    AgentType.ORCHESTRATOR: AgentConfig(
        type=AgentType.ORCHESTRATOR,
        name="留学助手",
        description="智能路由和任务协调，将用户请求分发给专业 Agent",
        system_prompt=_ORCHESTRATOR_PROMPT,
        tools=(ToolName.DELEGATE_TO_AGENT, ToolName.SEARCH_CASES),
        can_delegate=SPECIALIST_AGENTS,
        temperature=0.3,
        max_tokens=2000,
    ),
    AgentType.ESSAY: AgentConfig(
        type=AgentType.ESSAY,
        name="文书专家",
        description="专注于文书写作、修改、评估和创意生成",
        system_prompt=_ESSAY_PROMPT,
        tools=(
            ToolName.GET_PROFILE,
            ToolName.GET_ESSAYS,
            ToolName.REVIEW_ESSAY,
            ToolName.POLISH_ESSAY,
            ToolName.GENERATE_OUTLINE,
            ToolName.BRAINSTORM_IDEAS,
        ),
        can_delegate=(AgentType.ORCHESTRATOR,),
        temperature=0.7,
        max_tokens=4000,
    ),
    AgentType.SCHOOL: AgentConfig(
        type=AgentType.SCHOOL,
        name="选校专家",
        description="专注于学校搜索、对比、推荐和录取分析",
        system_prompt=_SCHOOL_PROMPT,
        tools=(
            ToolName.GET_PROFILE,
            ToolName.SEARCH_SCHOOLS,
            ToolName.GET_SCHOOL_DETAILS,
            ToolName.COMPARE_SCHOOLS,
            ToolName.RECOMMEND_SCHOOLS,
            ToolName.ANALYZE_ADMISSION_CHANCE,
        ),
        can_delegate=(AgentType.ORCHESTRATOR,),
        temperature=0.5,
        max_tokens=4000,
    ),
    AgentType.PROFILE: AgentConfig(
        type=AgentType.PROFILE,
        name="档案分析师",
        description="专注于用户档案管理和背景分析",
        system_prompt=_PROFILE_PROMPT,
        tools=(ToolName.GET_PROFILE, ToolName.UPDATE_PROFILE),
        can_delegate=(AgentType.ORCHESTRATOR,),
        temperature=0.5,
        max_tokens=3000,
    ),
    AgentType.TIMELINE: AgentConfig(
        type=AgentType.TIMELINE,
        name="规划顾问",
        description="专注于申请时间线规划、竞赛活动跟踪和截止日期管理",
        system_prompt=_TIMELINE_PROMPT,
        tools=(
            ToolName.GET_PROFILE,
            ToolName.GET_DEADLINES,
            ToolName.CREATE_TIMELINE,
            ToolName.GET_PERSONAL_EVENTS,
            ToolName.CREATE_PERSONAL_EVENT,
            ToolName.SEARCH_CASES,
        ),
        can_delegate=(AgentType.ORCHESTRATOR,),
        temperature=0.5,
        max_tokens=3000,
    ),
}

LOCALE_INSTRUCTIONS: dict[str, str] = {
    "zh": "请使用中文回复用户。",
    "en": "Please respond to the user in English.",
}


def localized_system_prompt(config: AgentConfig, locale: str) -> str:
    """Base prompt plus the reply-language requirement. Unknown locales fall back to zh."""
    instruction = LOCALE_INSTRUCTIONS.get(locale, LOCALE_INSTRUCTIONS["zh"])
    return f"{config.system_prompt}\n\n## Language Requirement\n{instruction}"


def build_agent_configs(
    default_model: str = DEFAULT_MODEL,
    overrides: dict[str, AgentOverride] | None = None,
) -> dict[AgentType, AgentConfig]:
    """Apply the configured default model and per-agent overrides."""
    configs: dict[AgentType, AgentConfig] = {}
    for agent_type, base in AGENT_CONFIGS.items():
        cfg = replace(base, model=default_model)
        override = (overrides or {}).get(agent_type.value)
        if override is not None:
            cfg = replace(
                cfg,
                model=override.model or cfg.model,
                temperature=cfg.temperature if override.temperature is None else override.temperature,
                max_tokens=override.max_tokens or cfg.max_tokens,
            )
        configs[agent_type] = cfg
    return configs
