"""
Agent gateway - chat with configured agents backed by a local model runtime.

This package provides:
- Model runtime client (Ollama and OpenAI-compatible)
- GitHub and Linear function executors
- Bounded tool-calling orchestration loop
- Conversation and agent memory persistence
- FastAPI server
"""

from .gateway import Gateway, build_gateway
from .llm_client import ModelRuntimeClient
from .orchestration import ToolCallingLoop

__all__ = [
    "Gateway",
    "build_gateway",
    "ModelRuntimeClient",
    "ToolCallingLoop",
]

__version__ = "0.1.0"
