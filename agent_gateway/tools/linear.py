"""
Linear GraphQL executor

Exposes team, project, issue and workflow-state operations to the model.
"""

import logging
from typing import Any, Optional

import requests

from .registry import FunctionDescriptor, FunctionExecutor, Handler, IntegrationError

logger = logging.getLogger(__name__)

_PRIORITY = "0=none, 1=urgent, 2=high, 3=medium, 4=low"

LINEAR_FUNCTIONS = (
    FunctionDescriptor(
        "linear_list_teams",
        "List all teams in Linear workspace",
    ),
    FunctionDescriptor(
        "linear_list_projects",
        "List projects from Linear, optionally filtered by team",
        {
            "type": "object",
            "properties": {
                "teamId": {"type": "string", "description": "Team ID to filter projects by (optional)"},
            },
            "required": [],
        },
    ),
    FunctionDescriptor(
        "linear_list_issues",
        "List issues from Linear project management",
        {
            "type": "object",
            "properties": {
                "teamId": {"type": "string", "description": "Team ID to filter by"},
                "state": {"type": "string", "description": 'Filter by state name (e.g., "Todo", "In Progress", "Done")'},
                "limit": {"type": "number", "description": "Max results (default 50)"},
            },
            "required": [],
        },
    ),
    FunctionDescriptor(
        "linear_search_issues",
        "Search issues in Linear by query term",
        {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query to find issues"},
            },
            "required": ["query"],
        },
    ),
    FunctionDescriptor(
        "linear_create_issue",
        "Create a new issue in Linear",
        {
            "type": "object",
            "properties": {
                "teamId": {"type": "string", "description": "Team ID where the issue will be created"},
                "title": {"type": "string", "description": "Issue title"},
                "description": {"type": "string", "description": "Issue description (optional)"},
                "priority": {"type": "number", "description": f"Priority level: {_PRIORITY} (default 0)"},
                "projectId": {"type": "string", "description": "Project ID to assign the issue to (optional)"},
            },
            "required": ["teamId", "title"],
        },
    ),
    FunctionDescriptor(
        "linear_update_issue",
        "Update an existing issue in Linear",
        {
            "type": "object",
            "properties": {
                "issueId": {"type": "string", "description": "Issue ID to update"},
                "title": {"type": "string", "description": "New title (optional)"},
                "description": {"type": "string", "description": "New description (optional)"},
                "priority": {"type": "number", "description": f"New priority: {_PRIORITY} (optional)"},
                "stateId": {"type": "string", "description": "New workflow state ID (optional)"},
            },
            "required": ["issueId"],
        },
    ),
    FunctionDescriptor(
        "linear_list_states",
        "List workflow states for a team in Linear",
        {
            "type": "object",
            "properties": {
                "teamId": {"type": "string", "description": "Team ID to get workflow states for"},
            },
            "required": ["teamId"],
        },
    ),
)

TEAMS_QUERY = """{
  teams { nodes { id name key description } }
}"""

PROJECT_FIELDS = "nodes { id name description state startDate targetDate }"

ISSUES_QUERY = """query($filter: IssueFilter, $first: Int) {
  issues(filter: $filter, first: $first, orderBy: updatedAt) {
    nodes {
      id identifier title description
      state { name }
      priority priorityLabel
      assignee { name }
      project { name }
      createdAt updatedAt
    }
  }
}"""

SEARCH_QUERY = """query($query: String!) {
  searchIssues(term: $query, first: 20) {
    nodes {
      id identifier title description
      state { name }
      priority priorityLabel
      assignee { name }
    }
  }
}"""

CREATE_ISSUE_MUTATION = """mutation($input: IssueCreateInput!) {
  issueCreate(input: $input) {
    success
    issue { id identifier title url }
  }
}"""

UPDATE_ISSUE_MUTATION = """mutation($id: String!, $input: IssueUpdateInput!) {
  issueUpdate(id: $id, input: $input) {
    success
    issue { id identifier title state { name } }
  }
}"""

STATES_QUERY = """query($teamId: String!) {
  workflowStates(filter: { team: { id: { eq: $teamId } } }) {
    nodes { id name type position }
  }
}"""


class LinearExecutor(FunctionExecutor):
    """Executes ``linear_*`` functions against the Linear GraphQL API."""

    name = "linear"
    label = "Linear"
    descriptors = LINEAR_FUNCTIONS

    def __init__(self, api_url: str = "https://api.linear.app/graphql", timeout: float = 30):
        super().__init__(timeout=timeout)
        self.api_url = api_url

    def handlers(self) -> dict[str, Handler]:
        return {
            "linear_list_teams": self.list_teams,
            "linear_list_projects": self.list_projects,
            "linear_list_issues": self.list_issues,
            "linear_search_issues": self.search_issues,
            "linear_create_issue": self.create_issue,
            "linear_update_issue": self.update_issue,
            "linear_list_states": self.list_states,
        }

    def graphql(self, api_key: str, query: str, variables: Optional[dict] = None) -> Any:
        """
        Run a GraphQL query or mutation.

        Returns:
            The ``data`` member of the response

        Raises:
            IntegrationError: HTTP failure or a GraphQL ``errors`` member
        """
        logger.debug("Linear GraphQL request")
        response = requests.post(
            self.api_url,
            json={"query": query, "variables": variables or {}},
            headers={"Authorization": api_key, "Content-Type": "application/json"},
            timeout=self.timeout,
        )
        if not response.ok:
            raise IntegrationError(f"Linear API error: {response.status_code} - {response.reason}")
        body = response.json()
        if body.get("errors"):
            raise IntegrationError(body["errors"][0].get("message", "Unknown GraphQL error"))
        return body.get("data") or {}

    def list_teams(self, args: dict, api_key: str) -> list:
        return self.graphql(api_key, TEAMS_QUERY)["teams"]["nodes"]

    def list_projects(self, args: dict, api_key: str) -> list:
        team_id = args.get("teamId")
        if team_id:
            query = (
                "query($teamId: String) { projects(filter: { teams: { id: { eq: $teamId } } }) { "
                + PROJECT_FIELDS
                + " } }"
            )
            data = self.graphql(api_key, query, {"teamId": team_id})
        else:
            data = self.graphql(api_key, "{ projects { " + PROJECT_FIELDS + " } }")
        return data["projects"]["nodes"]

    def list_issues(self, args: dict, api_key: str) -> list:
        issue_filter = {}
        if args.get("teamId"):
            issue_filter["team"] = {"id": {"eq": args["teamId"]}}
        if args.get("state"):
            issue_filter["state"] = {"name": {"eq": args["state"]}}
        variables = {"first": int(args.get("limit") or 50)}
        if issue_filter:
            variables["filter"] = issue_filter
        return self.graphql(api_key, ISSUES_QUERY, variables)["issues"]["nodes"]

    def search_issues(self, args: dict, api_key: str) -> list:
        return self.graphql(api_key, SEARCH_QUERY, {"query": args["query"]})["searchIssues"]["nodes"]

    def create_issue(self, args: dict, api_key: str) -> dict:
        issue_input = {
            "teamId": args["teamId"],
            "title": args["title"],
            "description": args.get("description") or "",
            "priority": int(args.get("priority") or 0),
        }
        if args.get("projectId"):
            issue_input["projectId"] = args["projectId"]
        return self.graphql(api_key, CREATE_ISSUE_MUTATION, {"input": issue_input})["issueCreate"]

    def update_issue(self, args: dict, api_key: str) -> dict:
        issue_input = {}
        for key in ("title", "description", "stateId"):
            if args.get(key) is not None:
                issue_input[key] = args[key]
        if args.get("priority") is not None:
            issue_input["priority"] = int(args["priority"])
        data = self.graphql(api_key, UPDATE_ISSUE_MUTATION, {"id": args["issueId"], "input": issue_input})
        return data["issueUpdate"]

    def list_states(self, args: dict, api_key: str) -> list:
        return self.graphql(api_key, STATES_QUERY, {"teamId": args["teamId"]})["workflowStates"]["nodes"]
