import json
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import AliasChoices, Field

from src.shared.schemas import CamelModel


class TextPart(CamelModel):
    type: Literal["text"] = "text"
    text: str


class ReasoningPart(CamelModel):
    type: Literal["reasoning"] = "reasoning"
    text: str


class ToolCallPart(CamelModel):
    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(CamelModel):
    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    tool_name: str
    output: Any = None
    is_error: bool = False


MessagePart = Annotated[
    Union[TextPart, ReasoningPart, ToolCallPart, ToolResultPart],
    Field(discriminator="type"),
]


class Message(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    role: Literal["user", "assistant"]
    content: List[MessagePart] = Field(
        default_factory=list, validation_alias=AliasChoices("content", "parts")
    )
    processing_time_ms: Optional[int] = None

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.content if isinstance(part, TextPart))


class ChatRequest(CamelModel):
    messages: List[Message] = Field(..., min_length=1)
    session_id: Optional[str] = None
    auth_token: Optional[str] = None


class StreamEvent(CamelModel):
    """One unit of the streamed response; ``data`` is already camelCase."""
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)

    def to_sse(self) -> dict:
        return {"event": self.type, "data": json.dumps(self.data, default=str)}


class ChatSessionResponse(CamelModel):
    id: UUID
    title: str
    last_message_at: Optional[datetime] = None
    messages: List[Message]
