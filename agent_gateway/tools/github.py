"""
GitHub REST executor

Exposes repository, file, issue and pull request operations to the model.
"""

import base64
import logging
from typing import Any, Optional

import requests

from .registry import FunctionDescriptor, FunctionExecutor, Handler, IntegrationError

logger = logging.getLogger(__name__)

_REPO = {"type": "string", "description": 'Repository name in format "owner/repo"'}
_REF = {"type": "string", "description": 'Branch, tag, or commit reference (default: "main")'}


def _state(kind: str) -> dict:
    return {
        "type": "string",
        "description": f'{kind} state: "open", "closed", or "all" (default: "open")',
        "enum": ["open", "closed", "all"],
    }


def _schema(properties: dict, required: list[str]) -> dict:
    return {"type": "object", "properties": properties, "required": required}


GITHUB_FUNCTIONS = (
    FunctionDescriptor(
        "github_list_repos",
        "List all GitHub repositories of the authenticated user, sorted by recent updates",
        _schema({}, []),
    ),
    FunctionDescriptor(
        "github_search_repos",
        "Search GitHub repositories by query string",
        _schema(
            {"query": {"type": "string", "description": 'Search query (e.g., "language:python stars:>100")'}},
            ["query"],
        ),
    ),
    FunctionDescriptor(
        "github_get_file",
        "Get the content of a specific file from a GitHub repository",
        _schema(
            {
                "repo": _REPO,
                "path": {"type": "string", "description": "File path within the repository"},
                "ref": _REF,
            },
            ["repo", "path"],
        ),
    ),
    FunctionDescriptor(
        "github_list_files",
        "List files and directories in a repository path",
        _schema(
            {
                "repo": _REPO,
                "path": {"type": "string", "description": "Directory path (empty string for root)"},
                "ref": _REF,
            },
            ["repo"],
        ),
    ),
    FunctionDescriptor(
        "github_search_code",
        "Search code across GitHub repositories",
        _schema(
            {
                "query": {"type": "string", "description": "Code search query"},
                "repo": {"type": "string", "description": 'Optional repository filter in format "owner/repo"'},
            },
            ["query"],
        ),
    ),
    FunctionDescriptor(
        "github_list_issues",
        "List issues in a GitHub repository",
        _schema({"repo": _REPO, "state": _state("Issue")}, ["repo"]),
    ),
    FunctionDescriptor(
        "github_create_issue",
        "Create a new issue in a GitHub repository",
        _schema(
            {
                "repo": _REPO,
                "title": {"type": "string", "description": "Issue title"},
                "body": {"type": "string", "description": "Issue body/description"},
                "labels": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Array of label names to apply",
                },
            },
            ["repo", "title", "body"],
        ),
    ),
    FunctionDescriptor(
        "github_list_pulls",
        "List pull requests in a GitHub repository",
        _schema({"repo": _REPO, "state": _state("PR")}, ["repo"]),
    ),
    FunctionDescriptor(
        "github_get_repo",
        "Get detailed information about a GitHub repository",
        _schema({"repo": _REPO}, ["repo"]),
    ),
    FunctionDescriptor(
        "github_list_branches",
        "List all branches in a GitHub repository",
        _schema({"repo": _REPO}, ["repo"]),
    ),
    FunctionDescriptor(
        "github_create_or_update_file",
        "Create a new file or update an existing file in a GitHub repository",
        _schema(
            {
                "repo": _REPO,
                "path": {"type": "string", "description": "File path in the repository"},
                "content": {"type": "string", "description": "File content (will be automatically base64 encoded)"},
                "message": {"type": "string", "description": "Commit message"},
                "sha": {"type": "string", "description": "File SHA (required for updates, omit for new files)"},
                "branch": {"type": "string", "description": "Branch name (optional, uses repo default if not specified)"},
            },
            ["repo", "path", "content", "message"],
        ),
    ),
)


class GitHubExecutor(FunctionExecutor):
    """Executes ``github_*`` functions against the GitHub REST API."""

    name = "github"
    label = "GitHub"
    descriptors = GITHUB_FUNCTIONS

    def __init__(self, api_base: str = "https://api.github.com", timeout: float = 30):
        super().__init__(timeout=timeout)
        self.api_base = api_base.rstrip("/")

    def handlers(self) -> dict[str, Handler]:
        return {
            "github_list_repos": self.list_repos,
            "github_search_repos": self.search_repos,
            "github_get_file": self.get_file,
            "github_list_files": self.list_files,
            "github_search_code": self.search_code,
            "github_list_issues": self.list_issues,
            "github_create_issue": self.create_issue,
            "github_list_pulls": self.list_pulls,
            "github_get_repo": self.get_repo,
            "github_list_branches": self.list_branches,
            "github_create_or_update_file": self.create_or_update_file,
        }

    def _request(
        self,
        method: str,
        path: str,
        token: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> Any:
        """Send one request and return the decoded JSON body."""
        logger.debug(f"GitHub {method} {path}")
        response = requests.request(
            method,
            f"{self.api_base}{path}",
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "User-Agent": "agent-gateway",
            },
            params=params,
            json=json,
            timeout=self.timeout,
        )
        if not response.ok:
            try:
                message = response.json().get("message") or response.reason
            except ValueError:
                message = response.reason
            raise IntegrationError(f"GitHub API error ({response.status_code}): {message}")
        return response.json()

    def list_repos(self, args: dict, token: str) -> dict:
        repos = self._request("GET", "/user/repos", token, params={"per_page": 100, "sort": "updated"})
        return {"repos": repos}

    def search_repos(self, args: dict, token: str) -> dict:
        return {"results": self._request("GET", "/search/repositories", token, params={"q": args["query"]})}

    def get_file(self, args: dict, token: str) -> dict:
        ref = args.get("ref") or "main"
        data = self._request("GET", f"/repos/{args['repo']}/contents/{args['path']}", token, params={"ref": ref})
        if not isinstance(data, dict) or not data.get("content"):
            raise IntegrationError("File content not found")
        return {
            "content": base64.b64decode(data["content"]).decode("utf-8", errors="replace"),
            "sha": data.get("sha"),
            "size": data.get("size"),
            "path": data.get("path"),
        }

    def list_files(self, args: dict, token: str) -> dict:
        ref = args.get("ref") or "main"
        path = args.get("path") or ""
        return {"files": self._request("GET", f"/repos/{args['repo']}/contents/{path}", token, params={"ref": ref})}

    def search_code(self, args: dict, token: str) -> dict:
        query = args["query"]
        if args.get("repo"):
            query = f"{query} repo:{args['repo']}"
        return {"results": self._request("GET", "/search/code", token, params={"q": query})}

    def list_issues(self, args: dict, token: str) -> dict:
        state = args.get("state") or "open"
        return {"issues": self._request("GET", f"/repos/{args['repo']}/issues", token, params={"state": state})}

    def create_issue(self, args: dict, token: str) -> dict:
        payload = {"title": args["title"], "body": args["body"], "labels": args.get("labels") or []}
        return {"issue": self._request("POST", f"/repos/{args['repo']}/issues", token, json=payload)}

    def list_pulls(self, args: dict, token: str) -> dict:
        state = args.get("state") or "open"
        return {"pulls": self._request("GET", f"/repos/{args['repo']}/pulls", token, params={"state": state})}

    def get_repo(self, args: dict, token: str) -> dict:
        return {"repository": self._request("GET", f"/repos/{args['repo']}", token)}

    def list_branches(self, args: dict, token: str) -> dict:
        return {"branches": self._request("GET", f"/repos/{args['repo']}/branches", token)}

    def create_or_update_file(self, args: dict, token: str) -> dict:
        payload = {
            "message": args["message"],
            "content": base64.b64encode(args["content"].encode("utf-8")).decode("ascii"),
        }
        if args.get("sha"):
            payload["sha"] = args["sha"]
        if args.get("branch"):
            payload["branch"] = args["branch"]
        result = self._request("PUT", f"/repos/{args['repo']}/contents/{args['path']}", token, json=payload)
        return {"result": result}
