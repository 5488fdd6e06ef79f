"""
Data models for the agent gateway.
"""

from .runtime import ConnectionType
from .agent import AgentDefinition, MemoryBlockSeed, ModelPreferences

__all__ = [
    # Runtime models
    "ConnectionType",
    # Agent models
    "AgentDefinition",
    "MemoryBlockSeed",
    "ModelPreferences",
]
