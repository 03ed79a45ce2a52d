"""Essay tool handler. Review, polish, outline and brainstorm delegate to the model."""

from __future__ import annotations

from typing import Any

from admissions_agent.ai.client import LLMClient
from admissions_agent.ai.tools.base import ToolContext, ToolHandler, parse_json_object, reply_language
from admissions_agent.storage.admissions_repo import AdmissionsRepository

_REVIEW_PROMPT = """你是资深留学文书评估专家。请评估以下文书。

评估标准: 真实个性、具体细节、清晰结构、自然语言、切题

返回JSON格式:
{
  "score": 0-10 的评分,
  "strengths": ["优点1", "优点2"],
  "weaknesses": ["不足1", "不足2"],
  "suggestions": ["改进建议1", "改进建议2"],
  "summary": "总体评价"
}"""

_POLISH_STYLES = {
    "formal": "正式、严谨、学术化",
    "vivid": "生动、形象、富有画面感",
    "concise": "简洁、精炼、去除冗余",
}

_POLISH_PROMPT = """你是留学文书润色专家。请以"{style}"的风格润色文书，保持作者原意和个人声音，不要添加虚构经历。

返回JSON格式:
{{
  "polished": "润色后的完整文书",
  "changes": ["主要修改说明1", "主要修改说明2"]
}}"""

_OUTLINE_PROMPT = """你是文书写作专家。根据题目生成详细的文书大纲。

大纲应包括:
1. 开头策略 (Hook)
2. 主体段落结构 (3-4段)
3. 每段的核心内容和过渡
4. 结尾呼应

返回JSON格式:
{
  "hook": "开头策略描述",
  "paragraphs": [
    { "focus": "段落重点", "content": "内容建议", "transition": "过渡句建议" }
  ],
  "ending": "结尾策略",
  "tips": ["写作建议1", "写作建议2"]
}"""

_BRAINSTORM_PROMPT = """你是文书创意顾问。为文书题目提供多个不同的写作角度和素材建议。

返回JSON格式:
{
  "ideas": [
    { "angle": "写作角度", "material": "可用素材", "why": "为什么这个角度有力" }
  ],
  "questions": ["帮助学生挖掘素材的问题1", "问题2"]
}"""


class EssayToolHandler(ToolHandler):
    def __init__(self, repo: AdmissionsRepository, llm: LLMClient):
        self._repo = repo
        self._llm = llm

    @property
    def category(self) -> str:
        return "essay"

    @property
    def methods(self) -> frozenset[str]:
        return frozenset({"list", "review", "polish", "outline", "brainstorm"})

    async def execute(self, method: str, args: dict[str, Any], context: ToolContext) -> Any:
        match method:
            case "list":
                return await self._list(context.user_id)
            case "review":
                return await self._review(args, context)
            case "polish":
                return await self._polish(args, context)
            case "outline":
                return await self._outline(args, context)
            case "brainstorm":
                return await self._brainstorm(args, context)
            case _:
                raise ValueError(f"Unknown essay method: {method}")

    async def _list(self, user_id: str) -> dict[str, Any]:
        essays = await self._repo.list_essays(user_id)
        if not essays:
            return {"message": "暂无保存的文书"}
        return {"count": len(essays), "essays": [e.summary() for e in essays]}

    async def _review(self, args: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        content = args.get("content")
        prompt = args.get("prompt")
        if args.get("essayId"):
            essay = await self._repo.get_essay(context.user_id, args["essayId"])
            if essay is not None:
                content = essay.content
                prompt = essay.prompt or essay.title
        if not content:
            return {"error": "请提供文书内容"}

        text = await self._llm.complete(
            _REVIEW_PROMPT + reply_language(context.locale),
            f"题目: {prompt or 'Personal Statement'}\n\n文书内容:\n{content}",
            temperature=0.3,
        )
        return parse_json_object(text) or {"review": text}

    async def _polish(self, args: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        content = args.get("content")
        if not content:
            return {"error": "请提供文书内容"}
        style = args.get("style") if args.get("style") in _POLISH_STYLES else "formal"

        text = await self._llm.complete(
            _POLISH_PROMPT.format(style=_POLISH_STYLES[style]) + reply_language(context.locale),
            content,
            temperature=0.7,
            max_tokens=4000,
        )
        parsed = parse_json_object(text)
        if parsed is None:
            return {"style": style, "polished": text}
        return {"style": style, **parsed}

    async def _outline(self, args: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        if not args.get("prompt"):
            return {"error": "请提供文书题目"}
        lines = [f"题目: {args['prompt']}"]
        if args.get("background"):
            lines.append(f"背景: {args['background']}")
        if args.get("wordLimit"):
            lines.append(f"字数限制: {args['wordLimit']}词")

        text = await self._llm.complete(
            _OUTLINE_PROMPT + reply_language(context.locale), "\n".join(lines), temperature=0.7
        )
        return parse_json_object(text) or {"outline": text}

    async def _brainstorm(self, args: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        if not args.get("prompt"):
            return {"error": "请提供文书题目"}
        user = f"题目: {args['prompt']}"
        if args.get("background"):
            user += f"\n背景: {args['background']}"

        text = await self._llm.complete(
            _BRAINSTORM_PROMPT + reply_language(context.locale), user, temperature=0.9
        )
        return parse_json_object(text) or {"ideas": text}
