import asyncio
import json
from uuid import uuid4

import anyio
import pytest
from langchain_core.messages import AIMessageChunk, ToolMessage
from langchain_core.messages.tool import tool_call_chunk
from conftest import FakeChatModel, FakeSearchProvider, FakeSelector

from src.chat.orchestrator import ConversationOrchestrator, Turn
from src.chat.schemas import Message, TextPart
from src.core.errors import AssistantError, ModelCompatibilityError, ProviderSelectionError
from src.tools.registry import ToolContext, build_tool_registry


def text(*tokens: str) -> list:
    return [AIMessageChunk(content=token) for token in tokens]


def tool_calls(*calls) -> list:
    return [AIMessageChunk(
        content="",
        tool_call_chunks=[
            tool_call_chunk(name=name, args=json.dumps(args) if isinstance(args, dict) else args, id=call_id, index=i)
            for i, (call_id, name, args) in enumerate(calls)
        ],
    )]


def user_message(content: str) -> Message:
    return Message(role="user", content=[TextPart(text=content)])


@pytest.fixture
def tool_context(search_provider, sandbox_provider, patent_store, artifact_service):
    return ToolContext(
        search=search_provider,
        sandbox=sandbox_provider,
        session_id=str(uuid4()),
        user_id="user-1",
        patent_store=patent_store,
        artifacts=artifact_service,
    )


def make_orchestrator(model, tool_context, persistence=None, **kwargs):
    return ConversationOrchestrator(
        FakeSelector(model), build_tool_registry(), tool_context, persistence, **kwargs
    )


def make_turn(tool_context, content="Find solid-state battery patents") -> Turn:
    return Turn(
        messages=[user_message(content)],
        session_id=tool_context.session_id,
        user_id=tool_context.user_id,
    )


async def collect(orchestrator, turn):
    return [event async for event in orchestrator.stream(turn)]


@pytest.mark.asyncio
async def test_plain_answer(tool_context):
    model = FakeChatModel([text("Solid-state ", "batteries.")])
    events = await collect(make_orchestrator(model, tool_context), make_turn(tool_context))

    assert [e.type for e in events] == ["start", "text", "text", "finish"]
    assert events[0].data["model"] == "fake-model"
    assert events[-1].data["finishReason"] == "stop"
    assert {t["function"]["name"] for t in model.bound_tools} >= {"patentSearch", "readFullPatent"}


@pytest.mark.asyncio
async def test_tool_round_trip(tool_context):
    model = FakeChatModel([
        tool_calls(("call_web", "webSearch", {"query": "battery news"})),
        text("Here is what I found."),
    ])
    events = await collect(make_orchestrator(model, tool_context), make_turn(tool_context))

    assert [e.type for e in events] == ["start", "tool-call", "tool-result", "text", "finish"]
    assert events[1].data == {"toolCallId": "call_web", "toolName": "webSearch", "input": {"query": "battery news"}}
    assert events[2].data["toolCallId"] == "call_web"
    assert events[2].data["isError"] is False

    second_history = model.histories[1]
    assert isinstance(second_history[-1], ToolMessage)
    assert second_history[-1].tool_call_id == "call_web"
    assert second_history[-2].tool_calls[0]["id"] == "call_web"


@pytest.mark.asyncio
async def test_parallel_results_are_correlated_by_id(tool_context, search_provider):
    search_provider.gate = asyncio.Event()
    model = FakeChatModel([
        tool_calls(
            ("call_search", "patentSearch", {"query": "solid-state battery"}),
            ("call_code", "codeExecution", {"code": "print(6 * 7)"}),
        ),
        text("Done."),
    ])
    results = []
    async for event in make_orchestrator(model, tool_context).stream(make_turn(tool_context)):
        if event.type == "tool-result":
            results.append(event.data)
            search_provider.gate.set()

    assert [r["toolCallId"] for r in results] == ["call_code", "call_search"]
    assert results[0]["output"]["stdout"] == "42\n"
    assert results[1]["output"]["type"] == "patents"

    replayed = [m.tool_call_id for m in model.histories[1] if isinstance(m, ToolMessage)]
    assert replayed == ["call_search", "call_code"]


@pytest.mark.asyncio
async def test_failing_tool_does_not_abort_turn(tool_context):
    tool_context.search = FakeSearchProvider(error=ConnectionError("search backend down"))
    model = FakeChatModel([
        tool_calls(
            ("call_search", "webSearch", {"query": "battery news"}),
            ("call_code", "codeExecution", {"code": "print(6 * 7)"}),
        ),
        text("Partial answer."),
    ])
    events = await collect(make_orchestrator(model, tool_context), make_turn(tool_context))

    results = {e.data["toolCallId"]: e.data for e in events if e.type == "tool-result"}
    assert results["call_search"]["isError"] is True
    assert results["call_code"]["isError"] is False
    assert events[-1].data["finishReason"] == "stop"


@pytest.mark.asyncio
async def test_unparseable_arguments_become_error_result(tool_context):
    model = FakeChatModel([
        tool_calls(("call_bad", "webSearch", "not json")),
        text("Retrying is not needed."),
    ])
    events = await collect(make_orchestrator(model, tool_context), make_turn(tool_context))

    result = next(e for e in events if e.type == "tool-result")
    assert result.data["toolCallId"] == "call_bad"
    assert result.data["isError"] is True
    assert result.data["output"]["kind"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_think_tags_become_reasoning(tool_context):
    model = FakeChatModel([text("<thi", "nk>compare claims</think>", "Answer")])
    events = await collect(make_orchestrator(model, tool_context), make_turn(tool_context))

    assert [(e.type, e.data.get("delta")) for e in events[1:-1]] == [
        ("reasoning", "compare claims"),
        ("text", "Answer"),
    ]


@pytest.mark.asyncio
async def test_reasoning_content_from_provider(tool_context):
    model = FakeChatModel([[
        AIMessageChunk(content="", additional_kwargs={"reasoning_content": "Thinking about it."}),
        AIMessageChunk(content="Final."),
    ]])
    events = await collect(make_orchestrator(model, tool_context), make_turn(tool_context))
    assert [e.type for e in events] == ["start", "reasoning", "text", "finish"]


@pytest.mark.asyncio
async def test_max_steps(tool_context):
    model = FakeChatModel([tool_calls(("call_web", "webSearch", {"query": "again"}))])
    events = await collect(make_orchestrator(model, tool_context, max_steps=2), make_turn(tool_context))
    assert len(model.histories) == 2
    assert events[-1].data["finishReason"] == "max-steps"


@pytest.mark.asyncio
async def test_no_provider_raises_before_streaming(tool_context):
    orchestrator = ConversationOrchestrator(
        FakeSelector(error=ProviderSelectionError("No language model provider is available")),
        build_tool_registry(),
        tool_context,
    )
    with pytest.raises(ProviderSelectionError):
        await orchestrator.stream(make_turn(tool_context)).__anext__()


@pytest.mark.asyncio
async def test_incompatible_model_raises_before_streaming(tool_context):
    model = FakeChatModel([text("never")], fail_after=0, error=RuntimeError("this model does not support tools"))
    with pytest.raises(ModelCompatibilityError) as info:
        await collect(make_orchestrator(model, tool_context), make_turn(tool_context))
    assert info.value.compatibility_issue == "tools"
    assert info.value.status_code == 400


@pytest.mark.asyncio
async def test_mid_stream_failure_becomes_error_event(tool_context):
    model = FakeChatModel([text("Partial ", "answer")], fail_after=1, error=RuntimeError("connection reset"))
    events = await collect(make_orchestrator(model, tool_context), make_turn(tool_context))

    assert [e.type for e in events] == ["start", "text", "error", "finish"]
    assert events[2].data == {"error": "CHAT_ERROR", "message": "connection reset"}
    assert events[-1].data["finishReason"] == "error"


@pytest.mark.asyncio
async def test_stop_signal_cancels_turn(tool_context):
    model = FakeChatModel([text("one ", "two ", "three")])
    turn = make_turn(tool_context)
    events = []
    async for event in make_orchestrator(model, tool_context).stream(turn):
        events.append(event)
        if event.type == "text":
            turn.stop.set()

    assert [e.type for e in events] == ["start", "text", "finish"]
    assert events[-1].data["finishReason"] == "cancelled"


class TestPersistence:
    @pytest.mark.asyncio
    async def test_user_message_saved_before_tools_run(self, tool_context, message_persistence, message_repository):
        seen = []

        class ObservingSearch(FakeSearchProvider):
            async def search(self, query, *, max_results, included_sources=None):
                seen.extend(await message_repository.get_messages(tool_context.session_id))
                return []

        tool_context.search = ObservingSearch()
        model = FakeChatModel([
            tool_calls(("call_web", "webSearch", {"query": "battery news"})),
            text("Nothing new."),
        ])
        turn = make_turn(tool_context, "Any battery news?")
        await collect(make_orchestrator(model, tool_context, message_persistence), turn)

        assert [m.id for m in seen] == [turn.messages[0].id]

        stored = await message_repository.get_messages(tool_context.session_id)
        assert [m.role for m in stored] == ["user", "assistant"]
        assert [p.type for p in stored[1].content] == ["tool-call", "tool-result", "text"]
        assert stored[1].processing_time_ms is not None
        assert stored[0].processing_time_ms is None

        session = await message_repository.get_session(tool_context.session_id)
        assert session.user_id == "user-1"
        assert session.title == "Any battery news?"

    @pytest.mark.asyncio
    async def test_failed_turn_still_saves_partial_answer(self, tool_context, message_persistence, message_repository):
        model = FakeChatModel([text("Partial ", "answer")], fail_after=1, error=RuntimeError("connection reset"))
        await collect(make_orchestrator(model, tool_context, message_persistence), make_turn(tool_context))

        stored = await message_repository.get_messages(tool_context.session_id)
        assert stored[-1].role == "assistant"
        assert stored[-1].text == "Partial "

    @pytest.mark.asyncio
    async def test_anonymous_turn_is_not_saved(self, tool_context, message_persistence, session_factory):
        tool_context.user_id = None
        model = FakeChatModel([text("Hello.")])
        turn = make_turn(tool_context)
        turn.user_id = None
        await collect(make_orchestrator(model, tool_context, message_persistence), turn)

        assert "readFullPatent" not in {t["function"]["name"] for t in model.bound_tools}
        repository = message_persistence.repository
        assert await repository.get_session(tool_context.session_id) is None


@pytest.mark.asyncio
async def test_unexpected_errors_are_wrapped(tool_context):
    model = FakeChatModel([text("x")], fail_after=0, error=KeyError("boom"))
    with pytest.raises(AssistantError) as info:
        await collect(make_orchestrator(model, tool_context), make_turn(tool_context))
    assert info.value.kind.value == "CHAT_ERROR"


@pytest.mark.asyncio
async def test_disconnect_still_saves_partial_answer(tool_context, message_persistence, message_repository):
    model = FakeChatModel([text("Partial ", "answer")], hang_after=1)
    orchestrator = make_orchestrator(model, tool_context, message_persistence)
    turn = make_turn(tool_context, "Summarise the claims")

    async with anyio.create_task_group() as tg:
        async def consume():
            async for event in orchestrator.stream(turn):
                if event.type == "text":
                    tg.cancel_scope.cancel()

        tg.start_soon(consume)

    stored = await message_repository.get_messages(tool_context.session_id)
    assert [m.role for m in stored] == ["user", "assistant"]
    assert stored[1].text == "Partial "


@pytest.mark.asyncio
async def test_turn_in_foreign_session_is_not_saved(tool_context, message_persistence, message_repository):
    owner_question = user_message("What does claim 1 cover?")
    await message_persistence.persist_user_message(tool_context.session_id, owner_question, "owner")

    model = FakeChatModel([text("Overwritten.")])
    await collect(make_orchestrator(model, tool_context, message_persistence), make_turn(tool_context))

    stored = await message_repository.get_messages(tool_context.session_id)
    assert [m.text for m in stored] == ["What does claim 1 cover?"]
