"""
Agent definition loader.

Reads agent definition files (JSON or YAML) from a directory once at
startup and builds an immutable ``AgentRegistry``. Supports environment
variable interpolation in string values.
"""

import json
import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Iterator, Optional

import yaml

from .models import AgentDefinition, MemoryBlockSeed, ModelPreferences

logger = logging.getLogger(__name__)

AGENT_FILE_SUFFIXES = (".json", ".yaml", ".yml")

# Regex for environment variable interpolation: ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


def resolve_env_vars(value: Any) -> Any:
    """
    Resolve ``${VAR}`` and ``${VAR:-default}`` references.

    Strings are substituted; lists and dicts are resolved recursively and
    other values are returned unchanged.
    """
    if isinstance(value, str):
        return ENV_VAR_PATTERN.sub(
            lambda m: os.environ.get(m.group(1), m.group(2) if m.group(2) is not None else ""),
            value,
        )
    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]
    if isinstance(value, dict):
        return {key: resolve_env_vars(item) for key, item in value.items()}
    return value


class AgentRegistry(Mapping):
    """Read-only mapping of agent id to ``AgentDefinition``."""

    def __init__(self, agents: Optional[list[AgentDefinition]] = None):
        self._agents: dict[str, AgentDefinition] = {}
        for agent in agents or []:
            if agent.id in self._agents:
                logger.warning(
                    f"Duplicate agent id '{agent.id}' in {agent.source_file}, "
                    f"keeping {self._agents[agent.id].source_file}"
                )
                continue
            self._agents[agent.id] = agent

    def __getitem__(self, agent_id: str) -> AgentDefinition:
        return self._agents[agent_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._agents)

    def __len__(self) -> int:
        return len(self._agents)

    def __repr__(self) -> str:
        return f"AgentRegistry({list(self._agents)})"


def parse_agent(data: dict, source_file: Optional[str] = None) -> Optional[AgentDefinition]:
    """
    Build an ``AgentDefinition`` from a parsed agent file.

    Returns:
        The definition, or None when ``id`` or ``systemInstructions`` is missing
    """
    data = resolve_env_vars(data)
    if not data.get("id") or not data.get("systemInstructions"):
        return None

    prefs = data.get("modelPreferences") or {}
    temperature = prefs.get("temperature")
    letta = data.get("lettaConfig") or {}
    memory_blocks = tuple(
        MemoryBlockSeed(label=str(block["label"]), value=str(block["value"]))
        for block in letta.get("memoryBlocks") or []
        if isinstance(block, dict) and block.get("label") and block.get("value")
    )

    return AgentDefinition(
        id=str(data["id"]),
        name=data.get("name") or str(data["id"]),
        instructions=data["systemInstructions"],
        description=data.get("description") or "",
        version=str(data.get("version") or "1.0.0"),
        frameworks=tuple(data.get("frameworks") or ()),
        model_preferences=ModelPreferences(
            default_model=prefs.get("defaultModel"),
            temperature=float(temperature) if temperature is not None else None,
        ),
        allowed_tools=tuple(letta.get("allowedTools") or ()),
        permission_mode=letta.get("permissionMode"),
        memory_blocks=memory_blocks,
        knowledge=data.get("knowledge") or {},
        created_at=data.get("createdAt"),
        source_file=source_file,
    )


def _read_file(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        if path.suffix == ".json":
            return json.load(f)
        return yaml.safe_load(f)


def load_agents(directory: str | Path) -> AgentRegistry:
    """
    Load every agent definition file in a directory.

    Unparseable files and files without ``id`` or ``systemInstructions``
    are skipped with a warning. A missing directory yields an empty registry.

    Args:
        directory: Directory containing ``*.json``, ``*.yaml`` or ``*.yml`` files

    Returns:
        AgentRegistry with the loaded agents
    """
    agent_dir = Path(directory)
    if not agent_dir.is_dir():
        logger.warning(f"Agent directory not found: {agent_dir}")
        return AgentRegistry()

    agents: list[AgentDefinition] = []
    skipped = 0
    for path in sorted(agent_dir.iterdir()):
        if path.suffix not in AGENT_FILE_SUFFIXES or not path.is_file():
            continue
        try:
            data = _read_file(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error(f"Failed to load agent file {path.name}: {e}")
            skipped += 1
            continue

        agent = parse_agent(data, source_file=path.name) if isinstance(data, dict) else None
        if agent is None:
            logger.warning(f"Skipped {path.name}: no id/systemInstructions")
            skipped += 1
            continue
        agents.append(agent)

    registry = AgentRegistry(agents)
    logger.info(f"Loaded {len(registry)} agents, skipped {skipped}")
    for agent_id, agent in registry.items():
        logger.debug(f"  - {agent_id}: {agent.name}")
    return registry
