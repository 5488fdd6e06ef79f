"""
Pytest configuration and fixtures for agent gateway tests.
"""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from agent_gateway.agent_loader import AgentRegistry
from agent_gateway.api.main import create_app
from agent_gateway.config import ChatConfig, config
from agent_gateway.gateway import build_gateway
from agent_gateway.llm_client import ModelRuntimeClient
from agent_gateway.models import AgentDefinition, MemoryBlockSeed, ModelPreferences
from agent_gateway.store import ConversationStore, Database
from agent_gateway.tools import ExecutorRegistry
from agent_gateway.tracing import shutdown_tracing

from helpers import EchoExecutor, make_response


@pytest.fixture(autouse=True)
def reset_tracing():
    """Make sure no tracing client leaks between tests."""
    shutdown_tracing()
    yield
    shutdown_tracing()


@pytest.fixture
def database():
    """In-memory SQLite database shared across threads."""
    db = Database(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    db.init_schema()
    yield db
    db.close()


@pytest.fixture
def store(database):
    return ConversationStore(database)


@pytest.fixture
def mock_llm():
    """Mock model runtime client returning a plain answer."""
    llm = Mock(spec=ModelRuntimeClient)
    llm.default_model = "test-model"
    llm.chat.return_value = make_response("Hello from the model")
    llm.health_check.return_value = {
        "connected": True,
        "models": 1,
        "model_available": True,
        "model_list": ["test-model"],
    }
    return llm


@pytest.fixture
def echo_executor():
    return EchoExecutor()


@pytest.fixture
def executor_registry(echo_executor):
    return ExecutorRegistry([echo_executor])


@pytest.fixture
def sample_agents():
    """One agent with tools, one without."""
    return AgentRegistry(
        [
            AgentDefinition(
                id="tool-agent",
                name="Tool Agent",
                instructions="You use tools.",
                description="Agent with the echo tools",
                frameworks=("python",),
                model_preferences=ModelPreferences(default_model="agent-model", temperature=0.2),
                allowed_tools=("echo",),
                memory_blocks=(MemoryBlockSeed(label="persona", value="Helpful"),),
            ),
            AgentDefinition(
                id="plain-agent",
                name="Plain Agent",
                instructions="You just talk.",
            ),
        ]
    )


@pytest.fixture
def chat_config():
    return ChatConfig(
        max_tool_iterations=3,
        tool_max_workers=4,
        history_limit=50,
        default_temperature=0.7,
        default_max_tokens=1024,
    )


@pytest.fixture
def gateway(sample_agents, database, mock_llm, executor_registry):
    """Gateway wired to the test collaborators instead of configured services."""
    return build_gateway(
        config,
        agents=sample_agents,
        database=database,
        llm_client=mock_llm,
        executors=executor_registry,
    )


@pytest.fixture
def client(gateway):
    return TestClient(create_app(gateway))
