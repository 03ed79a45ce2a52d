"""Shared fixtures: a scripted LLM client, a temp SQLite database and wired services."""

from __future__ import annotations

import itertools
from typing import Any, AsyncIterator, Callable

import pytest
import pytest_asyncio

from admissions_agent.ai.agents import build_agent_configs
from admissions_agent.ai.client import LLMClient, LLMResponse
from admissions_agent.ai.fallback import FallbackService
from admissions_agent.ai.fast_router import FastRouter
from admissions_agent.ai.orchestrator import Orchestrator
from admissions_agent.ai.resilience import ResilienceService
from admissions_agent.ai.runner import AgentRunner
from admissions_agent.ai.tools.base import ToolDefinition
from admissions_agent.ai.tools.case import CaseToolHandler
from admissions_agent.ai.tools.essay import EssayToolHandler
from admissions_agent.ai.tools.executor import ToolExecutor
from admissions_agent.ai.tools.profile import ProfileToolHandler
from admissions_agent.ai.tools.registry import ToolRegistry
from admissions_agent.ai.tools.school import SchoolToolHandler
from admissions_agent.ai.tools.timeline import TimelineToolHandler
from admissions_agent.ai.workflow import WorkflowEngine
from admissions_agent.core.models import Message, ProfileSnapshot, ToolCall
from admissions_agent.memory.service import MemoryService
from admissions_agent.memory.store import InMemoryConversationStore
from admissions_agent.memory.summarizer import ConversationSummarizer
from admissions_agent.storage.admissions_repo import AdmissionsRepository
from admissions_agent.storage.conversation_repo import ConversationRepository
from admissions_agent.storage.database import Database
from admissions_agent.storage.models import SchoolRecord

_call_ids = itertools.count(1)


def text_response(content: str) -> LLMResponse:
    return LLMResponse(content=content, finish_reason="end_turn", input_tokens=10, output_tokens=5)


def tool_response(name: str, arguments: dict[str, Any] | None = None, content: str = "") -> LLMResponse:
    return LLMResponse(
        content=content,
        tool_calls=[ToolCall(id=f"call_{next(_call_ids)}", name=name, arguments=arguments or {})],
        finish_reason="tool_use",
    )


def delegate_response(agent: str, task: str = "处理用户请求") -> LLMResponse:
    return tool_response("delegate_to_agent", {"agent": agent, "task": task})


class FakeLLMClient(LLMClient):
    """Scripted model. ``chat`` pops ``responses``; ``stream`` pops ``streams``.

    When the script runs out, ``default`` is called to produce a response.
    Items in ``responses`` that are exceptions are raised instead of returned.
    """

    default_model = "test-model"

    def __init__(
        self,
        responses: list[LLMResponse | Exception] | None = None,
        streams: list[list[str]] | None = None,
        default: Callable[[], LLMResponse] | None = None,
    ):
        self.responses = list(responses or [])
        self.streams = list(streams or [])
        self.default = default or (lambda: text_response("好的"))
        self.chat_calls: list[dict[str, Any]] = []
        self.stream_calls: list[dict[str, Any]] = []

    @property
    def call_count(self) -> int:
        return len(self.chat_calls) + len(self.stream_calls)

    async def chat(
        self,
        system: str,
        messages: list[Message],
        model: str = "",
        max_tokens: int = 4096,
        temperature: float = 0.7,
        tools: list[ToolDefinition] | None = None,
    ) -> LLMResponse:
        self.chat_calls.append(
            {"system": system, "messages": list(messages), "model": model, "tools": tools}
        )
        if not self.responses:
            return self.default()
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def stream(
        self,
        system: str,
        messages: list[Message],
        model: str = "",
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AsyncIterator[str]:
        self.stream_calls.append({"system": system, "messages": list(messages), "model": model})
        chunks = self.streams.pop(0) if self.streams else []
        for chunk in chunks:
            yield chunk


async def _no_sleep(_: float) -> None:
    return None


# ── storage ─────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "test.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def admissions_repo(db) -> AdmissionsRepository:
    return AdmissionsRepository(db)


@pytest.fixture
def conversation_repo(db) -> ConversationRepository:
    return ConversationRepository(db)


@pytest.fixture
def sample_profile() -> ProfileSnapshot:
    return ProfileSnapshot(
        gpa=3.8,
        gpa_scale=4.0,
        grade="12",
        target_major="Computer Science",
        test_scores=[{"type": "SAT", "score": 1500}, {"type": "TOEFL", "score": 110}],
        activities=[{"name": "Robotics Club", "role": "President"}],
        awards=[{"name": "USACO Gold", "level": "NATIONAL"}],
    )


@pytest_asyncio.fixture
async def seeded_repo(admissions_repo, sample_profile) -> AdmissionsRepository:
    await admissions_repo.save_profile("u1", sample_profile)
    for school in (
        SchoolRecord(
            id="mit",
            name="Massachusetts Institute of Technology",
            name_zh="麻省理工学院",
            us_news_rank=2,
            acceptance_rate=3.9,
            tuition=59750,
            state="MA",
            city="Cambridge",
            sat_25=1520,
            sat_75=1580,
            metadata={"deadlines": {"ea": "11-01", "rd": "01-04"}},
        ),
        SchoolRecord(
            id="bu",
            name="Boston University",
            name_zh="波士顿大学",
            us_news_rank=41,
            acceptance_rate=14.4,
            tuition=65168,
            state="MA",
            city="Boston",
            sat_25=1370,
            sat_75=1510,
            metadata={"deadlines": {"ed": "11-01", "rd": "01-04"}},
        ),
        SchoolRecord(
            id="asu",
            name="Arizona State University",
            name_zh="亚利桑那州立大学",
            us_news_rank=105,
            acceptance_rate=89.0,
            tuition=32193,
            state="AZ",
            city="Tempe",
            is_private=False,
            sat_25=1120,
            sat_75=1360,
        ),
    ):
        await admissions_repo.upsert_school(school)
    return admissions_repo


# ── ai core ─────────────────────────────────────────────────────────


@pytest.fixture
def llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def resilience() -> ResilienceService:
    return ResilienceService(sleep=_no_sleep)


@pytest.fixture
def registry(admissions_repo, llm) -> ToolRegistry:
    reg = ToolRegistry()
    reg.register_handler(ProfileToolHandler(admissions_repo))
    reg.register_handler(SchoolToolHandler(admissions_repo, llm))
    reg.register_handler(EssayToolHandler(admissions_repo, llm))
    reg.register_handler(CaseToolHandler(admissions_repo))
    reg.register_handler(TimelineToolHandler(admissions_repo, llm))
    return reg


@pytest.fixture
def executor(registry, resilience) -> ToolExecutor:
    return ToolExecutor(registry, resilience)


@pytest.fixture
def agent_configs():
    return build_agent_configs("test-model")


@pytest.fixture
def memory(admissions_repo, llm) -> MemoryService:
    return MemoryService(
        store=InMemoryConversationStore(),
        profiles=admissions_repo,
        summarizer=ConversationSummarizer(llm),
    )


@pytest.fixture
def runner(llm, executor, memory, registry, resilience, agent_configs) -> AgentRunner:
    return AgentRunner(llm, executor, memory, registry, resilience, agent_configs)


@pytest.fixture
def workflow(llm, executor, memory, registry, resilience) -> WorkflowEngine:
    return WorkflowEngine(llm, executor, memory, registry, resilience)


@pytest.fixture
def orchestrator(memory, runner, workflow) -> Orchestrator:
    return Orchestrator(
        memory=memory,
        runner=runner,
        workflow=workflow,
        router=FastRouter(),
        fallback=FallbackService("development"),
    )
