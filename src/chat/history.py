import json
from typing import Any, List

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage

from src.chat.schemas import Message, ReasoningPart, TextPart, ToolCallPart, ToolResultPart

MISSING_RESULT = {"error": True, "message": "No result was recorded for this tool call."}


def serialize_tool_output(output: Any) -> str:
    if isinstance(output, str):
        return output
    return json.dumps(output, default=str)


def trim_history(messages: List[Message], limit: int) -> List[Message]:
    """Last ``limit`` messages, starting at a user message."""
    trimmed = messages[-limit:] if limit > 0 else list(messages)
    while trimmed and trimmed[0].role != "user":
        trimmed = trimmed[1:]
    return trimmed or messages[-1:]


class _AssistantSteps:
    """Splits one stored assistant message into model rounds.

    A round is the text and tool calls the model produced, followed by the
    results of those calls. Providers reject a tool call with no matching
    result, so unanswered calls get a placeholder.
    """

    def __init__(self):
        self.out: List[BaseMessage] = []
        self._reset()

    def _reset(self):
        self.text: List[str] = []
        self.calls: List[ToolCallPart] = []
        self.results: List[ToolResultPart] = []

    def flush(self):
        if self.text or self.calls:
            self.out.append(AIMessage(
                content="".join(self.text),
                tool_calls=[
                    {"name": c.tool_name, "args": c.input, "id": c.tool_call_id}
                    for c in self.calls
                ],
            ))
        answered = {r.tool_call_id: r for r in self.results}
        for call in self.calls:
            result = answered.get(call.tool_call_id)
            self.out.append(ToolMessage(
                content=serialize_tool_output(result.output if result else MISSING_RESULT),
                tool_call_id=call.tool_call_id,
                name=call.tool_name,
            ))
        self._reset()

    def add(self, part):
        if isinstance(part, ReasoningPart):
            return
        if isinstance(part, ToolResultPart):
            self.results.append(part)
            return
        if self.results:
            self.flush()
        if isinstance(part, TextPart):
            self.text.append(part.text)
        elif isinstance(part, ToolCallPart):
            self.calls.append(part)


def to_model_messages(messages: List[Message]) -> List[BaseMessage]:
    """Replay stored messages as LangChain messages; reasoning is not sent back."""
    converted: List[BaseMessage] = []
    for message in messages:
        if message.role == "user":
            converted.append(HumanMessage(content=message.text))
            continue
        steps = _AssistantSteps()
        for part in message.content:
            steps.add(part)
        steps.flush()
        converted.extend(steps.out)
    return converted
