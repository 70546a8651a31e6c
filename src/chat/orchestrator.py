"""Drives one chat turn: model selection, streaming, tool dispatch, persistence.

The turn moves through ``TurnState``: selecting-provider, then streaming and
awaiting-tool-results alternately until the model answers without tool
calls, then complete (or error). Events are yielded in the order they are
produced. Tool calls requested together run concurrently and their results
are reported as they finish, correlated by tool call id.
"""

import asyncio
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, List, Optional, Tuple
from uuid import uuid4

import anyio
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage, SystemMessage, ToolMessage

from src.chat.history import serialize_tool_output, to_model_messages, trim_history
from src.chat.persistence import MessagePersistence
from src.chat.prompts import build_system_prompt
from src.chat.reasoning import ThinkTagSplitter, split_chunk
from src.chat.schemas import (
    Message,
    ReasoningPart,
    StreamEvent,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)
from src.config import settings
from src.core.errors import AssistantError, ErrorKind, classify_provider_error
from src.llm.factory import ModelSelection, ModelSelector, ProviderPreferences
from src.tools.registry import ToolCall, ToolContext, ToolOutcome, ToolRegistry, error_payload

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    SELECTING_PROVIDER = "selecting-provider"
    STREAMING = "streaming"
    AWAITING_TOOL_RESULTS = "awaiting-tool-results"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class Turn:
    messages: List[Message]
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    preferences: ProviderPreferences = field(default_factory=ProviderPreferences)
    stop: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def persistent(self) -> bool:
        return bool(self.session_id and self.user_id)


class ConversationOrchestrator:
    def __init__(
        self,
        selector: ModelSelector,
        registry: ToolRegistry,
        tool_context: ToolContext,
        persistence: Optional[MessagePersistence] = None,
        max_steps: Optional[int] = None,
        max_history: Optional[int] = None,
    ):
        self.selector = selector
        self.registry = registry
        self.tool_context = tool_context
        self.persistence = persistence
        self.max_steps = max_steps or settings.MAX_TOOL_STEPS
        self.max_history = max_history or settings.MAX_HISTORY_MESSAGES
        self.state = TurnState.SELECTING_PROVIDER

    async def stream(self, turn: Turn) -> AsyncIterator[StreamEvent]:
        """Yield the turn's events.

        Errors raised before the first event propagate to the caller so the
        HTTP layer can answer with a status code. Later errors become an
        ``error`` event followed by ``finish``.
        """
        started = time.monotonic()
        assistant = Message(role="assistant")
        emitted = False
        try:
            self.state = TurnState.SELECTING_PROVIDER
            selection = await self.selector.select(turn.preferences)
            registry = self.registry.for_user(self.tool_context.authenticated)
            model = selection.client
            if len(registry):
                model = model.bind_tools(registry.model_tools())

            if turn.persistent and self.persistence and turn.messages[-1].role == "user":
                await self.persistence.persist_user_message(
                    turn.session_id, turn.messages[-1], turn.user_id
                )

            history: List[BaseMessage] = [
                SystemMessage(content=build_system_prompt(self.tool_context.authenticated))
            ]
            history.extend(to_model_messages(trim_history(turn.messages, self.max_history)))

            finish_reason = "max-steps"
            for step in range(self.max_steps):
                self.state = TurnState.STREAMING
                step_start = len(assistant.content)
                splitter = ThinkTagSplitter()
                gathered: Optional[AIMessageChunk] = None

                async with aclosing(self._model_stream(model, history)) as chunks:
                    async for chunk in chunks:
                        if not emitted:
                            emitted = True
                            yield self._start_event(selection, assistant, turn)
                        for kind, text in split_chunk(chunk, splitter):
                            yield self._append_delta(assistant, kind, text)
                        gathered = chunk if gathered is None else gathered + chunk
                        if turn.stop.is_set():
                            break
                for kind, text in splitter.flush():
                    yield self._append_delta(assistant, kind, text)
                if not emitted:
                    emitted = True
                    yield self._start_event(selection, assistant, turn)

                if turn.stop.is_set():
                    finish_reason = "cancelled"
                    break
                calls, rejected = self._tool_calls(gathered)
                if not calls and not rejected:
                    finish_reason = "stop"
                    break

                self.state = TurnState.AWAITING_TOOL_RESULTS
                for call in calls + [outcome.call for outcome in rejected]:
                    assistant.content.append(ToolCallPart(
                        tool_call_id=call.id, tool_name=call.name, input=call.args
                    ))
                    yield StreamEvent(type="tool-call", data={
                        "toolCallId": call.id, "toolName": call.name, "input": call.args,
                    })

                outcomes = {outcome.call.id: outcome for outcome in rejected}
                for outcome in rejected:
                    yield self._record_result(assistant, outcome)
                async for outcome in self._run_tools(registry, calls):
                    outcomes[outcome.call.id] = outcome
                    yield self._record_result(assistant, outcome)

                ordered = calls + [outcome.call for outcome in rejected]
                history.append(AIMessage(
                    content=self._step_text(assistant, step_start),
                    tool_calls=[{"name": c.name, "args": c.args, "id": c.id} for c in ordered],
                ))
                history.extend(
                    ToolMessage(
                        content=serialize_tool_output(outcomes[c.id].output),
                        tool_call_id=c.id,
                        name=c.name,
                    )
                    for c in ordered
                )

                if turn.stop.is_set():
                    # Finished tool results are kept but not sent back to the model
                    finish_reason = "cancelled"
                    break
            else:
                logger.warning(f"Turn stopped after {self.max_steps} model steps")

            self.state = TurnState.COMPLETE
            assistant.processing_time_ms = self._elapsed_ms(started)
            yield StreamEvent(type="finish", data={
                "finishReason": finish_reason,
                "processingTimeMs": assistant.processing_time_ms,
            })
        except Exception as e:
            self.state = TurnState.ERROR
            error = e if isinstance(e, AssistantError) else AssistantError(str(e) or type(e).__name__)
            if not emitted:
                raise error from (None if error is e else e)
            logger.error(f"Chat turn failed mid-stream: {error.message}", exc_info=True)
            yield StreamEvent(type="error", data=error.to_dict())
            yield StreamEvent(type="finish", data={
                "finishReason": "error",
                "processingTimeMs": self._elapsed_ms(started),
            })
        finally:
            # A client disconnect cancels the stream; the partial answer is still saved
            with anyio.CancelScope(shield=True):
                await self._persist_turn(turn, assistant, started)

    async def _model_stream(self, model, history: List[BaseMessage]) -> AsyncIterator[AIMessageChunk]:
        try:
            async for chunk in model.astream(history):
                yield chunk
        except Exception as e:
            logger.error(f"Model stream failed: {e}", exc_info=True)
            raise classify_provider_error(e) from e

    async def _run_tools(self, registry: ToolRegistry, calls: List[ToolCall]) -> AsyncIterator[ToolOutcome]:
        pending = {asyncio.create_task(registry.invoke(call, self.tool_context)) for call in calls}
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                yield task.result()

    @staticmethod
    def _tool_calls(gathered: Optional[AIMessageChunk]) -> Tuple[List[ToolCall], List[ToolOutcome]]:
        """Valid calls to dispatch, and calls whose arguments could not be parsed."""
        if gathered is None:
            return [], []
        calls = [
            ToolCall(
                id=call.get("id") or f"call_{uuid4().hex[:12]}",
                name=call["name"],
                args=call.get("args") or {},
            )
            for call in gathered.tool_calls
        ]
        rejected = []
        for invalid in gathered.invalid_tool_calls:
            call = ToolCall(
                id=invalid.get("id") or f"call_{uuid4().hex[:12]}",
                name=invalid.get("name") or "unknown",
            )
            message = f"Could not parse arguments for {call.name}: {invalid.get('error') or 'invalid JSON'}"
            rejected.append(ToolOutcome(
                call, error_payload(ErrorKind.VALIDATION_ERROR, message), is_error=True
            ))
        return calls, rejected

    @staticmethod
    def _start_event(selection: ModelSelection, assistant: Message, turn: Turn) -> StreamEvent:
        return StreamEvent(type="start", data={
            "messageId": assistant.id,
            "sessionId": turn.session_id,
            "model": selection.model_name,
            "provider": selection.provider,
            "supportsReasoning": selection.supports_reasoning,
        })

    @staticmethod
    def _append_delta(assistant: Message, kind: str, text: str) -> StreamEvent:
        part_type = ReasoningPart if kind == "reasoning" else TextPart
        last = assistant.content[-1] if assistant.content else None
        if isinstance(last, part_type):
            last.text += text
        else:
            assistant.content.append(part_type(text=text))
        return StreamEvent(type=kind, data={"delta": text})

    @staticmethod
    def _record_result(assistant: Message, outcome: ToolOutcome) -> StreamEvent:
        assistant.content.append(ToolResultPart(
            tool_call_id=outcome.call.id,
            tool_name=outcome.call.name,
            output=outcome.output,
            is_error=outcome.is_error,
        ))
        return StreamEvent(type="tool-result", data={
            "toolCallId": outcome.call.id,
            "toolName": outcome.call.name,
            "output": outcome.output,
            "isError": outcome.is_error,
        })

    @staticmethod
    def _step_text(assistant: Message, start: int) -> str:
        return "".join(
            part.text for part in assistant.content[start:] if isinstance(part, TextPart)
        )

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    async def _persist_turn(self, turn: Turn, assistant: Message, started: float) -> None:
        if not (turn.persistent and self.persistence):
            return
        messages = list(turn.messages)
        if assistant.content:
            messages.append(assistant)
        await self.persistence.persist_turn_result(
            turn.session_id,
            messages,
            processing_time_ms=self._elapsed_ms(started),
            user_id=turn.user_id,
        )
