"""
Data models for the model runtime connection.
"""

from enum import Enum


class ConnectionType(Enum):
    """Supported model runtime connection types."""

    OPENAI_COMPATIBLE = "openai_compatible"
    OLLAMA = "ollama"
