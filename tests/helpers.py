"""Shared test doubles."""

from agent_gateway.llm_client import ChatResponse, ToolCall, Usage
from agent_gateway.tools import FunctionDescriptor, FunctionExecutor


class EchoExecutor(FunctionExecutor):
    """In-process executor used instead of the GitHub/Linear ones."""

    name = "echo"
    label = "Echo"
    descriptors = (
        FunctionDescriptor(
            name="echo_say",
            description="Echo the given text",
            parameters={
                "type": "object",
                "properties": {"text": {"type": "string"}},
                "required": ["text"],
            },
        ),
        FunctionDescriptor(name="echo_fail", description="Always fails"),
    )

    def handlers(self):
        return {"echo_say": self.say, "echo_fail": self.fail}

    def say(self, args: dict, credential: str) -> dict:
        return {"echo": args["text"]}

    def fail(self, args: dict, credential: str) -> dict:
        raise RuntimeError("boom")


def make_response(content: str = "", tool_calls=None, model: str = "test-model") -> ChatResponse:
    """Build a ChatResponse as the model runtime client would return it.

    ``tool_calls`` is a list of ``(call_id, name, arguments)`` tuples.
    """
    return ChatResponse(
        content=content,
        model=model,
        tool_calls=[ToolCall(id=c[0], name=c[1], arguments=c[2]) for c in tool_calls or []],
        usage=Usage(prompt_tokens=10, completion_tokens=5, total_duration=100, eval_count=5),
    )
