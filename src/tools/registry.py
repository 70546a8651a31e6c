"""Tools the assistant can call during a turn.

A ``Tool`` pairs a pydantic input model with an async execute function. The
registry validates model-produced arguments, runs the tool and turns every
failure into a structured ``{"error": True, ...}`` payload, so a failing tool
never aborts the turn or its sibling calls.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Type

from langchain_core.utils.function_calling import convert_to_openai_tool
from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from src.artifacts.service import ArtifactService
from src.core.errors import AssistantError, ErrorKind
from src.patents.store import PatentDocumentStore
from src.providers.sandbox import SandboxProvider
from src.providers.search import SearchProvider

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """Per-turn collaborators and identity passed to every tool."""
    search: SearchProvider
    sandbox: SandboxProvider
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    patent_store: Optional[PatentDocumentStore] = None
    artifacts: Optional[ArtifactService] = None

    @property
    def authenticated(self) -> bool:
        return self.user_id is not None


ToolFunction = Callable[[Any, ToolContext], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    args_schema: Type[BaseModel]
    execute: ToolFunction
    side_effects: Tuple[str, ...] = ()
    requires_user: bool = False

    def to_model_tool(self) -> dict:
        spec = convert_to_openai_tool(self.args_schema)
        spec["function"]["name"] = self.name
        spec["function"]["description"] = self.description
        return spec


@dataclass
class ToolCall:
    id: str
    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolOutcome:
    call: ToolCall
    output: Any
    is_error: bool = False


def error_payload(kind: ErrorKind, message: str, **extra: Any) -> Dict[str, Any]:
    return {"error": True, "kind": kind.value, "message": message, **extra}


def _describe_validation_error(exc: SchemaValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "input"
        problems.append(f"{location}: {error.get('msg')}")
    return "; ".join(problems)


class ToolRegistry:
    def __init__(self, tools: Iterable[Tool]):
        self._tools: Dict[str, Tool] = {tool.name: tool for tool in tools}

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def for_user(self, authenticated: bool) -> "ToolRegistry":
        """Tools offered to this caller; anonymous callers lose user-only tools."""
        if authenticated:
            return self
        return ToolRegistry(t for t in self._tools.values() if not t.requires_user)

    def model_tools(self) -> List[dict]:
        return [tool.to_model_tool() for tool in self._tools.values()]

    async def invoke(self, call: ToolCall, ctx: ToolContext) -> ToolOutcome:
        tool = self._tools.get(call.name)
        if tool is None:
            output = error_payload(ErrorKind.VALIDATION_ERROR, f"Unknown tool: {call.name}")
            return ToolOutcome(call, output, is_error=True)

        try:
            args = tool.args_schema.model_validate(call.args or {})
        except SchemaValidationError as e:
            message = f"Invalid input for {call.name}: {_describe_validation_error(e)}"
            logger.warning(message)
            return ToolOutcome(call, error_payload(ErrorKind.VALIDATION_ERROR, message), is_error=True)

        try:
            output = await tool.execute(args, ctx)
        except AssistantError as e:
            logger.warning(f"Tool {call.name} failed: {e.message}")
            extra = {"detail": e.detail} if e.detail is not None else {}
            output = error_payload(e.kind, e.message, **extra)
        except Exception as e:
            logger.error(f"Tool {call.name} raised: {e}", exc_info=True)
            output = error_payload(
                ErrorKind.TOOL_EXECUTION_ERROR, f"{call.name} failed: {str(e) or type(e).__name__}"
            )

        is_error = isinstance(output, dict) and output.get("error") is True
        return ToolOutcome(call, output, is_error=is_error)


def build_tool_registry() -> ToolRegistry:
    from src.tools.artifacts import CREATE_CHART_TOOL, CREATE_CSV_TOOL
    from src.tools.code import CODE_EXECUTION_TOOL
    from src.tools.patents import PATENT_SEARCH_TOOL, READ_FULL_PATENT_TOOL
    from src.tools.web import WEB_SEARCH_TOOL

    return ToolRegistry([
        PATENT_SEARCH_TOOL,
        READ_FULL_PATENT_TOOL,
        WEB_SEARCH_TOOL,
        CODE_EXECUTION_TOOL,
        CREATE_CHART_TOOL,
        CREATE_CSV_TOOL,
    ])
