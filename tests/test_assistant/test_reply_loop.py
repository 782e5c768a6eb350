import asyncio
from datetime import date

import pytest
from pydantic import BaseModel

from clippy.assistant import LoopState, ModelAssistant, ReplyLoop
from clippy.exceptions import EmptyReplyError, LoopBoundExceededError, ModelUnavailableError
from clippy.llm import LLMProvider, LLMResponse, ToolCall
from clippy.models import Conversation
from clippy.tools.registry import Tool, ToolRegistry, ToolResult


class ScriptedProvider(LLMProvider):
    """Replays a fixed list of responses (or raises queued exceptions)."""

    def __init__(self, *steps):
        self.steps = list(steps)
        self.calls: list[dict] = []

    async def complete(self, messages, tools=None, temperature=None, max_tokens=None):
        self.calls.append({"messages": list(messages), "tools": tools})
        step = self.steps.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step


class EndlessToolProvider(LLMProvider):
    def __init__(self):
        self.calls = 0

    async def complete(self, messages, tools=None, temperature=None, max_tokens=None):
        self.calls += 1
        return LLMResponse(
            content="",
            tool_calls=[ToolCall(id=f"call_{self.calls}", name="echo", arguments='{"text": "again"}')],
        )


class EchoArguments(BaseModel):
    text: str


class EchoTool(Tool):
    name = "echo"
    description = "Echo text back"
    parameters = {
        "type": "object",
        "properties": {"text": {"type": "string"}},
        "required": ["text"],
    }

    def __init__(self):
        self.calls: list[str] = []

    async def handle(self, raw_arguments):
        args = self.parse_arguments(raw_arguments, EchoArguments)
        self.calls.append(args.text)
        return ToolResult(content=args.text)


class ExplodingTool(Tool):
    name = "explode"
    description = "Raises"

    async def handle(self, raw_arguments):
        raise RuntimeError("api key sk-live-123 rejected")


class OverlapTool(Tool):
    """Finishes only when a sibling call is running at the same time."""

    description = "Concurrency probe"

    def __init__(self, name: str, peers: dict):
        self.name = name
        self.peers = peers

    async def handle(self, raw_arguments):
        self.peers["active"] += 1
        self.peers["max_active"] = max(self.peers["max_active"], self.peers["active"])
        await asyncio.sleep(0.05)
        self.peers["active"] -= 1
        return ToolResult(content=f"{self.name} done")


def _conversation(text: str = "What is the weather like in Barcelona?") -> Conversation:
    return Conversation.start(text)


@pytest.mark.asyncio
async def test_final_answer_on_first_round_trip():
    provider = ScriptedProvider(LLMResponse(content="  Hello there!  "))
    registry = ToolRegistry(EchoTool())
    loop = ReplyLoop(provider, registry)

    reply = await loop.run(_conversation("Hi"))

    assert reply == "Hello there!"
    assert loop.state == LoopState.DONE
    assert loop.round_trips == 1
    call = provider.calls[0]
    assert [d["name"] for d in call["tools"]] == ["echo"]
    assert call["messages"][0].role == "system"
    assert date.today().isoformat() in call["messages"][0].content
    assert [(m.role, m.content) for m in call["messages"][1:]] == [("user", "Hi")]


@pytest.mark.asyncio
async def test_empty_registry_sends_no_tools():
    provider = ScriptedProvider(LLMResponse(content="Hello"))

    await ReplyLoop(provider, ToolRegistry()).run(_conversation("Hi"))

    assert provider.calls[0]["tools"] is None


@pytest.mark.asyncio
async def test_tool_result_is_fed_back_to_model():
    echo = EchoTool()
    provider = ScriptedProvider(
        LLMResponse(
            content="",
            tool_calls=[ToolCall(id="call_1", name="echo", arguments='{"text": "22°C and sunny"}')],
        ),
        LLMResponse(content="It is 22°C and sunny in Barcelona."),
    )
    loop = ReplyLoop(provider, ToolRegistry(echo))

    reply = await loop.run(_conversation())

    assert reply == "It is 22°C and sunny in Barcelona."
    assert loop.round_trips == 2
    assert echo.calls == ["22°C and sunny"]

    second = provider.calls[1]["messages"]
    assert [m.role for m in second] == ["system", "user", "assistant", "tool"]
    assert second[2].tool_calls[0].id == "call_1"
    assert second[3].tool_call_id == "call_1"
    assert second[3].tool_name == "echo"
    assert second[3].content == "22°C and sunny"


@pytest.mark.asyncio
async def test_tool_calls_in_one_turn_run_concurrently_and_keep_order():
    peers = {"active": 0, "max_active": 0}
    registry = ToolRegistry(OverlapTool("first", peers), OverlapTool("second", peers))
    provider = ScriptedProvider(
        LLMResponse(
            content="",
            tool_calls=[
                ToolCall(id="a", name="second"),
                ToolCall(id="b", name="first"),
            ],
        ),
        LLMResponse(content="Both done."),
    )

    await ReplyLoop(provider, registry).run(_conversation())

    assert peers["max_active"] == 2
    tool_messages = [m for m in provider.calls[1]["messages"] if m.role == "tool"]
    assert [(m.tool_call_id, m.content) for m in tool_messages] == [
        ("a", "second done"),
        ("b", "first done"),
    ]


@pytest.mark.asyncio
async def test_tool_failures_become_error_text_and_loop_continues():
    provider = ScriptedProvider(
        LLMResponse(
            content="",
            tool_calls=[
                ToolCall(id="u", name="get_horoscope", arguments="{}"),
                ToolCall(id="x", name="explode", arguments="{}"),
                ToolCall(id="e", name="echo", arguments="not json"),
            ],
        ),
        LLMResponse(content="Sorry, I could not look that up."),
    )
    loop = ReplyLoop(provider, ToolRegistry(EchoTool(), ExplodingTool()))

    reply = await loop.run(_conversation())

    assert reply == "Sorry, I could not look that up."
    tool_messages = [m for m in provider.calls[1]["messages"] if m.role == "tool"]
    assert [m.content for m in tool_messages] == [
        "Error: Unknown tool: get_horoscope",
        "Error: Tool 'explode' failed: tool failed",
        "Error: Tool 'echo' failed: invalid arguments",
    ]
    assert all("sk-live-123" not in m.content for m in tool_messages)


@pytest.mark.asyncio
async def test_loop_bound_stops_after_max_round_trips():
    provider = EndlessToolProvider()
    echo = EchoTool()
    loop = ReplyLoop(provider, ToolRegistry(echo), max_round_trips=3)

    with pytest.raises(LoopBoundExceededError) as exc_info:
        await loop.run(_conversation())

    assert provider.calls == 3
    assert len(echo.calls) == 2
    assert loop.state == LoopState.FAILED
    assert exc_info.value.max_round_trips == 3


@pytest.mark.asyncio
async def test_single_round_trip_bound_never_dispatches_tools():
    provider = EndlessToolProvider()
    echo = EchoTool()

    with pytest.raises(LoopBoundExceededError):
        await ReplyLoop(provider, ToolRegistry(echo), max_round_trips=1).run(_conversation())

    assert provider.calls == 1
    assert echo.calls == []


@pytest.mark.asyncio
async def test_model_unavailable_is_not_retried():
    provider = ScriptedProvider(
        ModelUnavailableError("upstream 503", status_code=503),
        LLMResponse(content="never reached"),
    )
    loop = ReplyLoop(provider, ToolRegistry(EchoTool()))

    with pytest.raises(ModelUnavailableError):
        await loop.run(_conversation())

    assert len(provider.calls) == 1
    assert loop.state == LoopState.FAILED


@pytest.mark.asyncio
async def test_unexpected_provider_error_maps_to_model_unavailable():
    provider = ScriptedProvider(RuntimeError("socket closed"))

    with pytest.raises(ModelUnavailableError):
        await ReplyLoop(provider, ToolRegistry()).run(_conversation())


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["", "   \n  "])
async def test_blank_final_answer_raises_empty_reply(content):
    provider = ScriptedProvider(LLMResponse(content=content))
    loop = ReplyLoop(provider, ToolRegistry())

    with pytest.raises(EmptyReplyError):
        await loop.run(_conversation())

    assert loop.state == LoopState.FAILED


def test_reply_loop_requires_at_least_one_round_trip():
    with pytest.raises(ValueError):
        ReplyLoop(ScriptedProvider(), ToolRegistry(), max_round_trips=0)


@pytest.mark.asyncio
async def test_reply_leaves_conversation_untouched():
    provider = ScriptedProvider(
        LLMResponse(content="", tool_calls=[ToolCall(id="c", name="echo", arguments='{"text": "x"}')]),
        LLMResponse(content="Done."),
    )
    conversation = _conversation()

    await ReplyLoop(provider, ToolRegistry(EchoTool())).run(conversation)

    assert [m.role for m in conversation.messages] == ["user"]


@pytest.mark.asyncio
async def test_model_assistant_uses_fresh_loop_per_reply():
    provider = ScriptedProvider(
        LLMResponse(content="First."),
        LLMResponse(content="Second."),
    )
    assistant = ModelAssistant(provider, ToolRegistry(EchoTool()), max_round_trips=2)

    assert await assistant.reply(_conversation()) == "First."
    assert await assistant.reply(_conversation()) == "Second."
