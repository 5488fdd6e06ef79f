"""
Data models for agent definitions.

An agent is a persona combining a system prompt, model preferences and
the list of tools it may call. Definitions are read from static files at
startup and never change afterwards.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class ModelPreferences:
    """Generation preferences declared by an agent."""

    default_model: Optional[str] = None
    temperature: Optional[float] = None


@dataclass(frozen=True)
class MemoryBlockSeed:
    """An initial memory block written to the store the first time an agent boots."""

    label: str
    value: str


@dataclass(frozen=True)
class AgentDefinition:
    """Complete, immutable definition of a single agent."""

    id: str
    name: str
    instructions: str
    description: str = ""
    version: str = "1.0.0"
    frameworks: tuple[str, ...] = ()
    model_preferences: ModelPreferences = field(default_factory=ModelPreferences)
    allowed_tools: tuple[str, ...] = ()
    permission_mode: Optional[str] = None
    memory_blocks: tuple[MemoryBlockSeed, ...] = ()
    knowledge: Any = None
    created_at: Optional[str] = None
    source_file: Optional[str] = None

    @property
    def memory_block_labels(self) -> list[str]:
        """Labels of the initial memory blocks."""
        return [block.label for block in self.memory_blocks]
