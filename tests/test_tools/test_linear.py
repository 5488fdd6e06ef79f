"""Tests for the Linear executor."""

from unittest.mock import Mock, patch

from agent_gateway.tools import LINEAR_FUNCTIONS, LinearExecutor


def _response(body, status_code=200, reason="OK"):
    response = Mock()
    response.ok = status_code < 400
    response.status_code = status_code
    response.reason = reason
    response.json.return_value = body
    return response


def test_seven_functions():
    assert len(LINEAR_FUNCTIONS) == 7
    assert {d.name for d in LINEAR_FUNCTIONS} == set(LinearExecutor().handlers())


@patch("agent_gateway.tools.linear.requests.post")
class TestLinearExecutor:
    def test_list_teams(self, mock_post):
        mock_post.return_value = _response({"data": {"teams": {"nodes": [{"id": "t1", "name": "Core"}]}}})

        result = LinearExecutor().execute("linear_list_teams", {}, "lin-key")

        assert result.output == [{"id": "t1", "name": "Core"}]
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "lin-key"

    def test_list_issues_builds_filter(self, mock_post):
        mock_post.return_value = _response({"data": {"issues": {"nodes": []}}})

        LinearExecutor().execute("linear_list_issues", {"teamId": "t1", "state": "Todo", "limit": 5}, "k")

        variables = mock_post.call_args.kwargs["json"]["variables"]
        assert variables["first"] == 5
        assert variables["filter"] == {
            "team": {"id": {"eq": "t1"}},
            "state": {"name": {"eq": "Todo"}},
        }

    def test_list_issues_without_filter(self, mock_post):
        mock_post.return_value = _response({"data": {"issues": {"nodes": []}}})
        LinearExecutor().execute("linear_list_issues", {}, "k")
        variables = mock_post.call_args.kwargs["json"]["variables"]
        assert variables == {"first": 50}

    def test_graphql_errors_become_tool_error(self, mock_post):
        mock_post.return_value = _response({"errors": [{"message": "Authentication required"}]})
        result = LinearExecutor().execute("linear_list_teams", {}, "bad")
        assert result.ok is False
        assert result.error == "Authentication required"

    def test_http_error(self, mock_post):
        mock_post.return_value = _response({}, status_code=500, reason="Server Error")
        result = LinearExecutor().execute("linear_list_teams", {}, "k")
        assert result.error == "Linear API error: 500 - Server Error"

    def test_create_issue_payload(self, mock_post):
        mock_post.return_value = _response(
            {"data": {"issueCreate": {"success": True, "issue": {"identifier": "CORE-1"}}}}
        )
        result = LinearExecutor().execute(
            "linear_create_issue", {"teamId": "t1", "title": "Bug", "priority": "2"}, "k"
        )
        assert result.output["issue"]["identifier"] == "CORE-1"
        issue_input = mock_post.call_args.kwargs["json"]["variables"]["input"]
        assert issue_input == {"teamId": "t1", "title": "Bug", "description": "", "priority": 2}

    def test_update_issue_sends_only_given_fields(self, mock_post):
        mock_post.return_value = _response({"data": {"issueUpdate": {"success": True}}})
        LinearExecutor().execute("linear_update_issue", {"issueId": "i1", "stateId": "s2"}, "k")
        variables = mock_post.call_args.kwargs["json"]["variables"]
        assert variables == {"id": "i1", "input": {"stateId": "s2"}}
