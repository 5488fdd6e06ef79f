"""
GitHub and Linear proxy endpoints.

Thin HTTP wrappers over the function executors, used by clients to browse
repositories and issues and to verify credentials. A credential passed in
the request takes precedence over the configured one.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from ...errors import GatewayError, NotFoundError, ServiceUnavailableError, ValidationError
from ...gateway import Gateway
from ...tools import ToolError, ToolResult
from ..dependencies import get_gateway
from ..schemas import ErrorResponse, GitHubFileRequest, GitHubTokenRequest, LinearRequest

logger = logging.getLogger(__name__)

router = APIRouter()

_PROXY_ERRORS = {
    400: {"model": ErrorResponse},
    503: {"model": ErrorResponse, "description": "Integration not configured"},
}


def _credential(gateway: Gateway, service: str, *candidates: Optional[str]) -> Optional[str]:
    """First non-empty candidate, else the configured credential."""
    for candidate in candidates:
        if candidate:
            return candidate
    return gateway.default_credentials().get(service)


def _run(gateway: Gateway, function_name: str, args: dict, credential: str) -> ToolResult:
    executor = gateway.executors.get_executor(function_name)
    if executor is None:
        raise ServiceUnavailableError(f"No executor registered for {function_name}")
    return executor.execute(function_name, args, credential)


def _output(result: ToolResult) -> Any:
    """Return a successful result's output; raise for a failed one."""
    if isinstance(result, ToolError):
        raise GatewayError(result.error)
    return result.output


# ---------------------------------------------------------------------------
# GitHub
# ---------------------------------------------------------------------------


def _github_token(gateway: Gateway, *candidates: Optional[str]) -> str:
    token = _credential(gateway, "github", *candidates)
    if not token:
        raise ServiceUnavailableError("GitHub not configured")
    return token


@router.get("/api/github/repos", responses=_PROXY_ERRORS, summary="List GitHub repositories")
def github_repos(
    token: Optional[str] = None,
    x_github_token: Optional[str] = Header(default=None),
    gateway: Gateway = Depends(get_gateway),
) -> dict:
    credential = _github_token(gateway, token, x_github_token)
    output = _output(_run(gateway, "github_list_repos", {}, credential))
    repos = [
        {
            "name": r.get("name"),
            "fullName": r.get("full_name"),
            "description": r.get("description"),
            "private": r.get("private"),
            "url": r.get("html_url"),
            "language": r.get("language"),
            "updatedAt": r.get("updated_at"),
        }
        for r in output.get("repos") or []
    ]
    return {"count": len(repos), "repos": repos}


@router.post("/api/github/file", responses=_PROXY_ERRORS, summary="Read a file from a repository")
def github_file(body: GitHubFileRequest, gateway: Gateway = Depends(get_gateway)) -> dict:
    credential = _github_token(gateway, body.token)
    if not body.repo or not body.path:
        raise ValidationError("'repo' and 'path' are required")
    result = _run(gateway, "github_get_file", {"repo": body.repo, "path": body.path}, credential)
    if isinstance(result, ToolError) and "not found" in result.error.lower():
        raise NotFoundError(result.error)
    return _output(result)


@router.post("/api/github/files", responses=_PROXY_ERRORS, summary="List a repository directory")
def github_files(body: GitHubFileRequest, gateway: Gateway = Depends(get_gateway)) -> dict:
    credential = _github_token(gateway, body.token)
    if not body.repo:
        raise ValidationError("'repo' is required", field="repo")
    return _output(_run(gateway, "github_list_files", {"repo": body.repo, "path": body.path or ""}, credential))


@router.get("/api/github/issues/{repo:path}", responses=_PROXY_ERRORS, summary="List repository issues")
def github_issues(
    repo: str,
    token: Optional[str] = None,
    state: str = "open",
    gateway: Gateway = Depends(get_gateway),
) -> dict:
    credential = _github_token(gateway, token)
    return _output(_run(gateway, "github_list_issues", {"repo": repo, "state": state}, credential))


@router.post("/api/github/test", summary="Verify a GitHub token")
def github_test(body: GitHubTokenRequest, gateway: Gateway = Depends(get_gateway)):
    credential = _credential(gateway, "github", body.token)
    if not credential:
        raise ValidationError("No token provided", field="token")
    result = _run(gateway, "github_list_repos", {}, credential)
    if isinstance(result, ToolError):
        logger.info(f"GitHub connection test failed: {result.error}")
        return JSONResponse(status_code=401, content={"connected": False, "error": result.error})
    return {"connected": True, "repos": len(result.output.get("repos") or [])}


# ---------------------------------------------------------------------------
# Linear
# ---------------------------------------------------------------------------


def _linear_key(gateway: Gateway, body: LinearRequest) -> str:
    api_key = _credential(gateway, "linear", body.api_key)
    if not api_key:
        raise ServiceUnavailableError("Linear not configured")
    return api_key


@router.post("/api/linear/teams", responses=_PROXY_ERRORS, summary="List Linear teams")
def linear_teams(body: LinearRequest, gateway: Gateway = Depends(get_gateway)) -> list:
    return _output(_run(gateway, "linear_list_teams", {}, _linear_key(gateway, body)))


@router.post("/api/linear/issues", responses=_PROXY_ERRORS, summary="List Linear issues")
def linear_issues(body: LinearRequest, gateway: Gateway = Depends(get_gateway)) -> list:
    args = {"teamId": body.team_id, "state": body.state, "limit": body.limit or 50}
    return _output(_run(gateway, "linear_list_issues", args, _linear_key(gateway, body)))


@router.post("/api/linear/search", responses=_PROXY_ERRORS, summary="Search Linear issues")
def linear_search(body: LinearRequest, gateway: Gateway = Depends(get_gateway)) -> list:
    api_key = _linear_key(gateway, body)
    if not body.query:
        raise ValidationError("'query' is required", field="query")
    return _output(_run(gateway, "linear_search_issues", {"query": body.query}, api_key))


@router.post("/api/linear/test", summary="Verify a Linear API key")
def linear_test(body: LinearRequest, gateway: Gateway = Depends(get_gateway)):
    api_key = _credential(gateway, "linear", body.api_key)
    if not api_key:
        raise ValidationError("No API key provided", field="apiKey")
    result = _run(gateway, "linear_list_teams", {}, api_key)
    if isinstance(result, ToolError):
        logger.info(f"Linear connection test failed: {result.error}")
        return JSONResponse(status_code=401, content={"connected": False, "error": result.error})
    teams = result.output
    return {"connected": True, "teams": len(teams) if isinstance(teams, list) else 0}
