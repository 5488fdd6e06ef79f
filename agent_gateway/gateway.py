"""
Application wiring.

Builds the process-wide collaborators once at startup and bundles them in
an immutable ``Gateway`` handed to every request handler.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from .agent_loader import AgentRegistry, load_agents
from .chat import ChatService
from .config import Config, IntegrationsConfig
from .llm_client import ModelRuntimeClient
from .store import ConversationStore, Database
from .tools import ExecutorRegistry, build_default_registry

logger = logging.getLogger(__name__)


def configured_credentials(integrations: IntegrationsConfig) -> dict[str, Optional[str]]:
    """Executor name -> credential from configuration."""
    return {
        "github": integrations.github_token or None,
        "linear": integrations.linear_api_key or None,
    }


@dataclass(frozen=True)
class Gateway:
    """Collaborators shared by all requests."""

    config: Config
    agents: AgentRegistry
    database: Database
    store: ConversationStore
    llm_client: ModelRuntimeClient
    executors: ExecutorRegistry
    chat: ChatService
    started_at: float = field(default_factory=time.time)

    @property
    def uptime(self) -> float:
        return time.time() - self.started_at

    def default_credentials(self) -> dict[str, Optional[str]]:
        return configured_credentials(self.config.integrations)

    def close(self) -> None:
        self.llm_client.close()
        self.database.close()


def build_gateway(
    app_config: Config,
    agents: AgentRegistry | None = None,
    database: Database | None = None,
    llm_client: ModelRuntimeClient | None = None,
    executors: ExecutorRegistry | None = None,
) -> Gateway:
    """
    Construct a Gateway from configuration.

    Any collaborator may be passed in to replace the configured one.
    """
    agents = agents if agents is not None else load_agents(app_config.agents.directory)
    database = database or Database.from_config(app_config.database)
    store = ConversationStore(database)
    llm_client = llm_client or ModelRuntimeClient.from_config(app_config.model_runtime)
    executors = executors or build_default_registry(app_config.integrations)
    chat = ChatService(
        agents=agents,
        store=store,
        llm_client=llm_client,
        executors=executors,
        chat_config=app_config.chat,
        use_agent_models=app_config.model_runtime.use_agent_models,
        default_credentials=configured_credentials(app_config.integrations),
    )
    return Gateway(
        config=app_config,
        agents=agents,
        database=database,
        store=store,
        llm_client=llm_client,
        executors=executors,
        chat=chat,
    )


def prepare_gateway(gateway: Gateway) -> dict:
    """
    Run startup tasks: create the schema, seed memory blocks, check the model runtime.

    Database failures are logged and do not stop startup.

    Returns:
        Model runtime health report
    """
    try:
        gateway.database.init_schema()
    except SQLAlchemyError as e:
        logger.error(f"Database initialization failed, continuing without schema: {e}")

    seeded = 0
    for agent in gateway.agents.values():
        if not agent.memory_blocks:
            continue
        try:
            seeded += gateway.store.seed_memory_blocks(agent.id, agent.memory_blocks)
        except SQLAlchemyError as e:
            logger.warning(f"Memory seeding failed for agent {agent.id}: {e}")
    if seeded:
        logger.info(f"Created {seeded} initial memory blocks")

    runtime = gateway.llm_client.health_check()
    if runtime["connected"]:
        logger.info(f"Model runtime connected - {runtime['models']} model(s) available")
        if not runtime["model_available"]:
            logger.warning(
                f"Default model '{gateway.llm_client.default_model}' not found. "
                f"Available: {', '.join(runtime.get('model_list') or []) or 'none'}"
            )
    else:
        logger.warning(f"Model runtime not reachable: {runtime.get('error')}")
    return runtime
