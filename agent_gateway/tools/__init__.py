"""
Function executors exposed to the model.

Available executors:
- github: GitHub REST API (repositories, files, issues, pull requests)
- linear: Linear GraphQL API (teams, projects, issues, workflow states)
"""

from .dispatch import ArgumentError, DispatchedCall, dispatch_call, normalize_arguments
from .github import GITHUB_FUNCTIONS, GitHubExecutor
from .linear import LINEAR_FUNCTIONS, LinearExecutor
from .registry import (
    ExecutorRegistry,
    FunctionDescriptor,
    FunctionExecutor,
    IntegrationError,
    ToolError,
    ToolResult,
    ToolSuccess,
    tool_allowed,
)


def build_default_registry(integrations) -> ExecutorRegistry:
    """Create the GitHub and Linear executors from integration settings."""
    return ExecutorRegistry(
        [
            GitHubExecutor(api_base=integrations.github_api_base, timeout=integrations.timeout),
            LinearExecutor(api_url=integrations.linear_api_url, timeout=integrations.timeout),
        ]
    )


__all__ = [
    "ArgumentError",
    "DispatchedCall",
    "dispatch_call",
    "normalize_arguments",
    "GITHUB_FUNCTIONS",
    "GitHubExecutor",
    "LINEAR_FUNCTIONS",
    "LinearExecutor",
    "ExecutorRegistry",
    "FunctionDescriptor",
    "FunctionExecutor",
    "IntegrationError",
    "ToolError",
    "ToolResult",
    "ToolSuccess",
    "tool_allowed",
    "build_default_registry",
]
