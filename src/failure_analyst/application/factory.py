"""
Application Layer - Investigation Factory

Builds a fully wired InvestigationExecutor from a YAML configuration profile
(configs/<profile>.yaml): reasoning service, session store, tool registry,
engine and continuation scheduler. Components are constructed once and
injected; nothing in the core looks them up globally.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
import yaml

from failure_analyst.application.executor import InvestigationExecutor
from failure_analyst.core.domain.models import EngineMode
from failure_analyst.core.domain.orchestrator import HypothesisOrchestrator
from failure_analyst.core.domain.react_agent import ReActAgent
from failure_analyst.core.interfaces.driver import ContinuationSchedulerProtocol
from failure_analyst.core.interfaces.engine import InvestigationEngineProtocol
from failure_analyst.core.interfaces.llm import ReasoningServiceProtocol
from failure_analyst.core.interfaces.state import SessionStoreProtocol
from failure_analyst.core.tools.registry import ToolDefinition, ToolRegistry


@dataclass
class EngineSettings:
    """Validated ``engine`` section of a profile."""

    mode: EngineMode = EngineMode.HYPOTHESIS
    max_cycles: int = 5
    max_hypotheses: int = 3
    knowledge_tool: str | None = None
    response_language: str = "English"

    def __post_init__(self):
        try:
            self.mode = EngineMode(self.mode)
        except ValueError:
            raise ValueError(
                f"Unknown engine mode: {self.mode!r} (expected 'react' or 'hypothesis')"
            ) from None
        if self.max_cycles < 1:
            raise ValueError("engine.max_cycles must be at least 1")
        if self.max_hypotheses < 1:
            raise ValueError("engine.max_hypotheses must be at least 1")

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "EngineSettings":
        engine_config = config.get("engine", {}) or {}
        return cls(
            mode=engine_config.get("mode", EngineMode.HYPOTHESIS.value),
            max_cycles=int(engine_config.get("max_cycles", 5)),
            max_hypotheses=int(engine_config.get("max_hypotheses", 3)),
            knowledge_tool=engine_config.get("knowledge_tool"),
            response_language=engine_config.get("response_language", "English"),
        )


class InvestigationFactory:
    """
    Factory for investigation executors with dependency injection.

    Example:
        >>> factory = InvestigationFactory()
        >>> executor = factory.create_executor(profile="dev")
        >>> session = await executor.run_to_completion("API latency spike at 10:32 UTC")
    """

    def __init__(self, config_dir: str = "configs"):
        """
        Initialize InvestigationFactory with configuration directory.

        Args:
            config_dir: Path to directory containing profile YAML files
        """
        self.config_dir = Path(config_dir)
        self.logger = structlog.get_logger().bind(component="investigation_factory")

    def load_profile(self, profile: str) -> dict[str, Any]:
        """
        Load configuration profile from YAML file.

        Raises:
            FileNotFoundError: If profile YAML not found
            ValueError: If the profile is empty
        """
        profile_path = self.config_dir / f"{profile}.yaml"

        if not profile_path.exists():
            self.logger.error(
                "profile_not_found",
                profile=profile,
                path=str(profile_path),
                hint="Ensure profile YAML exists in configs directory",
            )
            raise FileNotFoundError(f"Profile not found: {profile_path}")

        with open(profile_path, encoding="utf-8") as f:
            config = yaml.safe_load(f)

        if not isinstance(config, dict):
            raise ValueError(f"Profile is empty or invalid: {profile_path}")

        self.logger.debug("profile_loaded", profile=profile, config_keys=list(config.keys()))
        return config

    def create_reasoning_service(self, config: dict[str, Any]) -> ReasoningServiceProtocol:
        from failure_analyst.infrastructure.llm.litellm_service import LiteLLMReasoningService

        llm_config = config.get("llm", {}) or {}
        return LiteLLMReasoningService(
            config_path=llm_config.get("config_path", "configs/llm_config.yaml"),
            model=llm_config.get("model"),
        )

    def create_session_store(
        self, config: dict[str, Any], work_dir: str | None = None
    ) -> SessionStoreProtocol:
        """
        Create the session store named by ``persistence.type``.

        Raises:
            ValueError: If the persistence type is unknown
        """
        persistence_config = config.get("persistence", {}) or {}
        persistence_type = persistence_config.get("type", "file")

        if persistence_type == "file":
            from failure_analyst.infrastructure.persistence.file_session_store import (
                FileSessionStore,
            )

            return FileSessionStore(
                work_dir=work_dir or persistence_config.get("work_dir", ".failure_analyst")
            )

        elif persistence_type == "memory":
            from failure_analyst.infrastructure.persistence.memory_session_store import (
                InMemorySessionStore,
            )

            return InMemorySessionStore()

        else:
            raise ValueError(f"Unknown persistence type: {persistence_type}")

    def create_tool_registry(
        self,
        config: dict[str, Any],
        extra_tools: list[ToolDefinition] | None = None,
    ) -> ToolRegistry:
        """
        Create the registry from the profile's ``tools`` list plus any extra definitions.

        Raises:
            ValueError: If a tool entry has an unknown type or is incomplete
        """
        from failure_analyst.infrastructure.tools.command_tool import CommandTool

        registry = ToolRegistry()
        for tool_config in config.get("tools", []) or []:
            tool_type = tool_config.get("type", "command")
            if tool_type != "command":
                raise ValueError(
                    f"Unknown tool type '{tool_type}' for tool '{tool_config.get('name')}'"
                )
            registry.register_tool(CommandTool.from_config(tool_config).to_definition())

        for definition in extra_tools or []:
            registry.register_tool(definition)

        self.logger.debug("tool_registry_created", tools=registry.tool_names())
        return registry

    def create_engine(
        self,
        settings: EngineSettings,
        reasoning_service: ReasoningServiceProtocol,
        tool_registry: ToolRegistry,
    ) -> InvestigationEngineProtocol:
        if settings.mode == EngineMode.REACT:
            return ReActAgent(
                reasoning_service,
                tool_registry,
                max_cycles=settings.max_cycles,
                response_language=settings.response_language,
            )
        return HypothesisOrchestrator(
            reasoning_service,
            tool_registry,
            max_cycles=settings.max_cycles,
            max_hypotheses=settings.max_hypotheses,
            knowledge_tool=settings.knowledge_tool,
            response_language=settings.response_language,
        )

    def create_executor(
        self,
        profile: str = "dev",
        mode: str | None = None,
        work_dir: str | None = None,
        reasoning_service: ReasoningServiceProtocol | None = None,
        scheduler: ContinuationSchedulerProtocol | None = None,
        extra_tools: list[ToolDefinition] | None = None,
    ) -> InvestigationExecutor:
        """
        Create a fully wired executor.

        Args:
            profile: Configuration profile name
            mode: Engine mode override ("react" or "hypothesis")
            work_dir: Override for the file store's work directory
            reasoning_service: Pre-built reasoning service (defaults to LiteLLM from config)
            scheduler: Continuation scheduler for asynchronous re-invocation
            extra_tools: Tool definitions registered after the configured ones

        Raises:
            FileNotFoundError: If profile YAML not found
            ValueError: If configuration is invalid
        """
        config = self.load_profile(profile)
        if mode:
            config["engine"] = {**(config.get("engine") or {}), "mode": mode}

        settings = EngineSettings.from_config(config)
        self.logger.info(
            "creating_executor",
            profile=profile,
            mode=settings.mode.value,
            max_cycles=settings.max_cycles,
            max_hypotheses=settings.max_hypotheses,
        )

        service = reasoning_service or self.create_reasoning_service(config)
        registry = self.create_tool_registry(config, extra_tools)
        engine = self.create_engine(settings, service, registry)
        store = self.create_session_store(config, work_dir=work_dir)
        return InvestigationExecutor(engine, store, scheduler)
