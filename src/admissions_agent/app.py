"""Application wiring - builds every component once and manages lifecycle."""

from __future__ import annotations

from admissions_agent.ai.agents import build_agent_configs
from admissions_agent.ai.client import AnthropicClient, LLMClient
from admissions_agent.ai.config_validator import ValidationReport, validate_agent_configs
from admissions_agent.ai.fallback import FallbackService
from admissions_agent.ai.fast_router import FastRouter
from admissions_agent.ai.orchestrator import Orchestrator
from admissions_agent.ai.resilience import ResilienceService
from admissions_agent.ai.runner import AgentRunner
from admissions_agent.ai.tools.case import CaseToolHandler
from admissions_agent.ai.tools.essay import EssayToolHandler
from admissions_agent.ai.tools.executor import ToolExecutor
from admissions_agent.ai.tools.profile import ProfileToolHandler
from admissions_agent.ai.tools.registry import ToolRegistry
from admissions_agent.ai.tools.school import SchoolToolHandler
from admissions_agent.ai.tools.timeline import TimelineToolHandler
from admissions_agent.ai.workflow import WorkflowEngine
from admissions_agent.config import AppConfig
from admissions_agent.log import get_logger
from admissions_agent.memory.service import MemoryService
from admissions_agent.memory.store import (
    ConversationStore,
    InMemoryConversationStore,
    SqliteConversationStore,
)
from admissions_agent.memory.summarizer import ConversationSummarizer
from admissions_agent.storage.admissions_repo import AdmissionsRepository
from admissions_agent.storage.conversation_repo import ConversationRepository
from admissions_agent.storage.database import Database

logger = get_logger(__name__)


class AdmissionsAgentApp:
    """Top-level application object. ``orchestrator`` is the public entry point."""

    def __init__(self, config: AppConfig, llm: LLMClient | None = None):
        self.config = config
        runtime = config.agent

        self.db = Database(config.storage.db_path)
        self.admissions_repo = AdmissionsRepository(self.db)
        self.conversation_repo = ConversationRepository(self.db)
        self.llm = llm or self._create_llm_client()
        self.resilience = ResilienceService()

        self.tool_registry = ToolRegistry()
        self.tool_registry.register_handler(ProfileToolHandler(self.admissions_repo))
        self.tool_registry.register_handler(SchoolToolHandler(self.admissions_repo, self.llm))
        self.tool_registry.register_handler(EssayToolHandler(self.admissions_repo, self.llm))
        self.tool_registry.register_handler(CaseToolHandler(self.admissions_repo))
        self.tool_registry.register_handler(TimelineToolHandler(self.admissions_repo, self.llm))
        self.tool_executor = ToolExecutor(self.tool_registry, self.resilience)

        self.agent_configs = build_agent_configs(runtime.default_model, config.agents)

        self.memory = MemoryService(
            store=self._create_store(),
            profiles=self.admissions_repo,
            summarizer=ConversationSummarizer(self.llm),
            config=config.memory,
            default_locale=runtime.default_locale,
        )
        self.runner = AgentRunner(
            llm=self.llm,
            executor=self.tool_executor,
            memory=self.memory,
            registry=self.tool_registry,
            resilience=self.resilience,
            configs=self.agent_configs,
            max_iterations=runtime.max_iterations,
            tool_timeout=runtime.tool_timeout_seconds,
            history_window=runtime.history_window,
        )
        self.workflow = WorkflowEngine(
            llm=self.llm,
            executor=self.tool_executor,
            memory=self.memory,
            registry=self.tool_registry,
            resilience=self.resilience,
            tool_timeout=runtime.workflow_tool_timeout_seconds,
            history_window=runtime.history_window,
        )
        self.orchestrator = Orchestrator(
            memory=self.memory,
            runner=self.runner,
            workflow=self.workflow,
            router=FastRouter(threshold=config.fast_router.confidence_threshold),
            fallback=FallbackService(config.environment),
            max_delegation_depth=runtime.max_delegation_depth,
            use_workflow=runtime.use_workflow,
            fast_routing=config.fast_router.enabled,
        )

    def validate(self) -> ValidationReport:
        return validate_agent_configs(self.agent_configs, self.tool_registry)

    async def start(self) -> None:
        """Validate agent wiring, then open the database."""
        report = self.validate()
        if self.config.is_production:
            report.raise_for_errors()

        await self.db.initialize()
        logger.info(
            "admissions_agent_started",
            agents=len(self.agent_configs),
            tools=len(self.tool_registry.all_tools()),
            store=self.config.storage.backend,
            config_valid=report.valid,
        )

    async def stop(self) -> None:
        await self.db.close()
        logger.info("admissions_agent_stopped")

    def _create_llm_client(self) -> LLMClient:
        if not self.config.anthropic:
            raise ValueError("No 'anthropic' section in config")
        return AnthropicClient(self.config.anthropic, self.config.agent.default_model)

    def _create_store(self) -> ConversationStore:
        match self.config.storage.backend:
            case "sqlite":
                return SqliteConversationStore(self.conversation_repo)
            case "memory":
                return InMemoryConversationStore()
            case _:
                raise ValueError(f"Unknown storage backend: {self.config.storage.backend}")
