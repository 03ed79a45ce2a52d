"""Declarative tool catalogue exposed to the agents."""

from __future__ import annotations

from admissions_agent.ai.tools.base import DELEGATE_HANDLER, ToolDefinition, ToolName
from admissions_agent.core.types import SPECIALIST_AGENTS

_EVENT_CATEGORIES = [
    "COMPETITION",
    "TEST",
    "SUMMER_PROGRAM",
    "INTERNSHIP",
    "ACTIVITY",
    "MATERIAL",
    "OTHER",
]


def _schema(properties: dict | None = None, required: list[str] | None = None) -> dict:
    return {"type": "object", "properties": properties or {}, "required": required or []}


TOOLS: list[ToolDefinition] = [
    ToolDefinition(
        name=ToolName.DELEGATE_TO_AGENT,
        description=(
            "将任务委派给专业 Agent 处理。当用户问题涉及文书(essay)、选校(school)、档案(profile)、"
            "时间规划(timeline)等专业领域时使用。返回委派确认信息。不要用于可以直接回答的简单问题。"
        ),
        parameters=_schema(
            {
                "agent": {
                    "type": "string",
                    "description": "目标 Agent",
                    "enum": [a.value for a in SPECIALIST_AGENTS],
                },
                "task": {"type": "string", "description": "任务描述，说明需要该 Agent 做什么"},
                "context": {"type": "string", "description": "上下文信息，帮助目标 Agent 理解背景"},
            },
            ["agent", "task"],
        ),
        handler=DELEGATE_HANDLER,
    ),
    # profile
    ToolDefinition(
        name=ToolName.GET_PROFILE,
        description=(
            "获取当前用户的完整档案信息。当需要了解用户的 GPA、标化成绩、活动、奖项、目标专业等背景时使用。"
            "返回包含学术和课外活动的完整档案对象。不要用于更新档案（请用 update_profile）。"
        ),
        parameters=_schema(),
        handler="profile.get",
    ),
    ToolDefinition(
        name=ToolName.UPDATE_PROFILE,
        description=(
            "更新用户档案中的特定字段（目标专业、目标学校、预算等级）。当用户明确要求修改档案信息时使用。"
            "返回更新后的字段值。不要用于读取档案信息（请用 get_profile）。"
        ),
        parameters=_schema(
            {
                "field": {
                    "type": "string",
                    "description": "要更新的字段名",
                    "enum": ["targetMajor", "targetSchools", "budgetTier"],
                },
                "value": {"type": "string", "description": "新的值"},
            },
            ["field", "value"],
        ),
        handler="profile.update",
    ),
    # school
    ToolDefinition(
        name=ToolName.SEARCH_SCHOOLS,
        description=(
            "搜索和筛选学校列表。支持按名称、排名范围、学费、地理位置筛选。"
            "返回匹配的学校列表（含名称、排名、基本信息）。不要用于获取单个学校的详细信息（请用 get_school_details）。"
        ),
        parameters=_schema(
            {
                "query": {"type": "string", "description": "搜索关键词（学校名称）"},
                "rankRange": {"type": "string", "description": '排名范围，如 "1-20", "21-50"'},
                "maxTuition": {"type": "number", "description": "最高学费限制"},
                "state": {"type": "string", "description": "所在州"},
            }
        ),
        handler="school.search",
    ),
    ToolDefinition(
        name=ToolName.GET_SCHOOL_DETAILS,
        description=(
            "获取指定学校的详细信息（录取要求、截止日期、文书题目、学费等）。支持通过 schoolId 或 schoolName 查询。"
            "不要用于搜索多所学校（请用 search_schools）。"
        ),
        parameters=_schema(
            {
                "schoolId": {"type": "string", "description": "学校ID"},
                "schoolName": {"type": "string", "description": "学校名称（如果不知道ID）"},
            }
        ),
        handler="school.details",
    ),
    ToolDefinition(
        name=ToolName.COMPARE_SCHOOLS,
        description=(
            "对比多所学校的关键指标（排名、学费、录取率、地理位置）。返回结构化的对比数据。"
            "不要用于单个学校查询（请用 get_school_details）。"
        ),
        parameters=_schema(
            {
                "schoolIds": {"type": "string", "description": "学校ID列表，用逗号分隔"},
                "schoolNames": {"type": "string", "description": "学校名称列表，用逗号分隔"},
                "aspects": {"type": "string", "description": "对比维度：ranking, tuition, admission, location"},
            }
        ),
        handler="school.compare",
    ),
    ToolDefinition(
        name=ToolName.RECOMMEND_SCHOOLS,
        description=(
            "根据学生档案推荐学校，分为冲刺校、匹配校、保底校三个层次。返回分层的推荐学校列表（含匹配理由）。"
            "不要用于分析单个学校的录取概率（请用 analyze_admission_chance）。"
        ),
        parameters=_schema(
            {
                "count": {"type": "number", "description": "推荐数量"},
                "preference": {"type": "string", "description": "偏好：research, liberal_arts, urban, rural"},
            }
        ),
        handler="school.recommend",
    ),
    ToolDefinition(
        name=ToolName.ANALYZE_ADMISSION_CHANCE,
        description=(
            '分析用户申请某所学校的录取概率。当用户询问"我能不能进 XX"时使用。支持通过 schoolId 或 schoolName 查询。'
            "返回录取概率评估、优劣势分析和建议。不要用于多校推荐（请用 recommend_schools）。"
        ),
        parameters=_schema(
            {
                "schoolId": {"type": "string", "description": "学校ID"},
                "schoolName": {"type": "string", "description": "学校名称"},
            }
        ),
        handler="school.admission_chance",
    ),
    # essay
    ToolDefinition(
        name=ToolName.GET_ESSAYS,
        description=(
            "获取用户保存的所有文书列表（含标题、状态、关联学校）。"
            "不要用于评估或修改文书内容（请用 review_essay 或 polish_essay）。"
        ),
        parameters=_schema(),
        handler="essay.list",
    ),
    ToolDefinition(
        name=ToolName.REVIEW_ESSAY,
        description=(
            "评估文书质量并给出评分和改进建议。支持通过 essayId 或直接传入 content。"
            "返回评分、优缺点分析和改进建议。不要用于润色修改文书（请用 polish_essay）。"
        ),
        parameters=_schema(
            {
                "essayId": {"type": "string", "description": "文书ID"},
                "content": {"type": "string", "description": "文书内容（如果是新文书）"},
                "prompt": {"type": "string", "description": "文书题目"},
            }
        ),
        handler="essay.review",
    ),
    ToolDefinition(
        name=ToolName.POLISH_ESSAY,
        description=(
            "润色文书内容，提升语言表达质量。支持 formal/vivid/concise 三种风格。返回润色后的完整文书内容。"
            "不要用于评估打分（请用 review_essay）或生成新文书（请用 generate_outline）。"
        ),
        parameters=_schema(
            {
                "content": {"type": "string", "description": "文书内容"},
                "style": {
                    "type": "string",
                    "description": "润色风格",
                    "enum": ["formal", "vivid", "concise"],
                },
            },
            ["content"],
        ),
        handler="essay.polish",
    ),
    ToolDefinition(
        name=ToolName.GENERATE_OUTLINE,
        description=(
            "根据题目和学生背景生成文书大纲。返回分段落的大纲结构和写作建议。不要用于生成完整文书或润色已有内容。"
        ),
        parameters=_schema(
            {
                "prompt": {"type": "string", "description": "文书题目"},
                "background": {"type": "string", "description": "学生背景信息"},
                "wordLimit": {"type": "number", "description": "字数限制"},
            },
            ["prompt"],
        ),
        handler="essay.outline",
    ),
    ToolDefinition(
        name=ToolName.BRAINSTORM_IDEAS,
        description=(
            "为文书题目生成创意素材和写作角度。返回多个创意方向和对应的素材建议。"
            "不要用于已有思路需要大纲的情况（请用 generate_outline）。"
        ),
        parameters=_schema(
            {
                "prompt": {"type": "string", "description": "文书题目"},
                "background": {"type": "string", "description": "学生背景（可选）"},
            },
            ["prompt"],
        ),
        handler="essay.brainstorm",
    ),
    # case
    ToolDefinition(
        name=ToolName.SEARCH_CASES,
        description=(
            "搜索历史录取案例。支持按学校、专业、年份、GPA 范围筛选。返回匹配的案例列表（含背景和录取结果）。"
            "不要用于分析用户自己的录取概率（请用 analyze_admission_chance）。"
        ),
        parameters=_schema(
            {
                "schoolName": {"type": "string", "description": "学校名称"},
                "major": {"type": "string", "description": "专业"},
                "year": {"type": "number", "description": "申请年份"},
                "gpaRange": {"type": "string", "description": 'GPA范围，如 "3.8-4.0"'},
            }
        ),
        handler="case.search",
    ),
    # timeline
    ToolDefinition(
        name=ToolName.GET_DEADLINES,
        description=(
            "获取目标学校的申请截止日期，支持按申请轮次筛选。不要用于创建完整时间线（请用 create_timeline）。"
        ),
        parameters=_schema(
            {
                "schoolIds": {"type": "string", "description": "学校ID列表，用逗号分隔"},
                "schoolNames": {"type": "string", "description": "学校名称列表，用逗号分隔"},
                "round": {
                    "type": "string",
                    "description": "申请轮次",
                    "enum": ["ED", "EA", "REA", "ED2", "RD"],
                },
            }
        ),
        handler="timeline.deadlines",
    ),
    ToolDefinition(
        name=ToolName.CREATE_TIMELINE,
        description=(
            "根据目标学校创建个性化申请时间线。返回按时间排序的任务清单（含截止日期和优先级）。"
            "不要用于只查看截止日期（请用 get_deadlines）。"
        ),
        parameters=_schema(
            {
                "targetSchools": {"type": "string", "description": "目标学校列表"},
                "startDate": {"type": "string", "description": "开始日期"},
            }
        ),
        handler="timeline.create",
    ),
    ToolDefinition(
        name=ToolName.GET_PERSONAL_EVENTS,
        description=(
            "获取用户的个人事件列表（竞赛、考试、夏校、实习等），支持按分类筛选。"
            "不要用于创建新事件（请用 create_personal_event）。"
        ),
        parameters=_schema(
            {"category": {"type": "string", "description": "事件分类过滤", "enum": _EVENT_CATEGORIES}}
        ),
        handler="timeline.personal_events",
    ),
    ToolDefinition(
        name=ToolName.CREATE_PERSONAL_EVENT,
        description=(
            "为用户创建个人事件并自动生成子任务。返回创建的事件信息和子任务列表。"
            "不要用于查看已有事件（请用 get_personal_events）。注意: 此操作会写入数据库，不可撤销。"
        ),
        parameters=_schema(
            {
                "title": {"type": "string", "description": "事件名称，如 AMC 12 竞赛、TOEFL 考试"},
                "category": {"type": "string", "description": "事件分类", "enum": _EVENT_CATEGORIES},
                "deadline": {"type": "string", "description": "截止日期 (ISO 格式)"},
                "eventDate": {"type": "string", "description": "事件日期 (ISO 格式)"},
                "description": {"type": "string", "description": "事件描述/备注"},
            },
            ["title", "category"],
        ),
        handler="timeline.create_personal_event",
    ),
]
