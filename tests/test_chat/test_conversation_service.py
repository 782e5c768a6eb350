import asyncio
import time

import pytest

from clippy.assistant import Assistant
from clippy.chat import ConversationService
from clippy.exceptions import (
    ConversationNotFoundError,
    EmptyReplyError,
    InvalidArgumentError,
    ModelUnavailableError,
)
from clippy.models import DEFAULT_TITLE
from clippy.store import InMemoryConversationStore


class StubAssistant(Assistant):
    def __init__(
        self,
        title: str = "Weather in Barcelona",
        reply: str = "It is sunny in Barcelona.",
        title_error: Exception | None = None,
        reply_error: Exception | None = None,
        title_delay: float = 0.0,
    ):
        self._title = title
        self._reply = reply
        self.title_error = title_error
        self.reply_error = reply_error
        self.title_delay = title_delay
        self.title_calls: list[int] = []
        self.reply_calls: list[int] = []
        self.title_cancelled = False

    async def title(self, conversation):
        self.title_calls.append(len(conversation.messages))
        try:
            await asyncio.sleep(self.title_delay)
        except asyncio.CancelledError:
            self.title_cancelled = True
            raise
        if self.title_error is not None:
            raise self.title_error
        return self._title

    async def reply(self, conversation):
        self.reply_calls.append(len(conversation.messages))
        if self.reply_error is not None:
            raise self.reply_error
        return self._reply


class RecordingStore(InMemoryConversationStore):
    def __init__(self):
        super().__init__()
        self.creates = 0
        self.updates = 0

    async def create(self, conversation):
        self.creates += 1
        await super().create(conversation)

    async def update(self, conversation):
        self.updates += 1
        await super().update(conversation)


class RendezvousAssistant(Assistant):
    """Title and reply each wait for the other to start."""

    def __init__(self):
        self.title_started = asyncio.Event()
        self.reply_started = asyncio.Event()

    async def title(self, conversation):
        self.title_started.set()
        await asyncio.wait_for(self.reply_started.wait(), timeout=1.0)
        return "Concurrent"

    async def reply(self, conversation):
        self.reply_started.set()
        await asyncio.wait_for(self.title_started.wait(), timeout=1.0)
        return "Both ran together."


@pytest.mark.asyncio
async def test_start_conversation_persists_title_and_reply():
    store = RecordingStore()
    assistant = StubAssistant()
    service = ConversationService(store, assistant)

    result = await service.start_conversation("What is the weather like in Barcelona?")

    conversation = result.conversation
    assert result.reply == "It is sunny in Barcelona."
    assert conversation.title == "Weather in Barcelona"
    assert [(m.role, m.content) for m in conversation.messages] == [
        ("user", "What is the weather like in Barcelona?"),
        ("assistant", "It is sunny in Barcelona."),
    ]
    assert store.creates == 1

    stored = await store.load(conversation.id)
    assert stored.title == "Weather in Barcelona"
    assert len(stored.messages) == 2


@pytest.mark.asyncio
async def test_title_and_reply_see_the_same_initial_state():
    assistant = StubAssistant()

    await ConversationService(RecordingStore(), assistant).start_conversation("hello")

    assert assistant.title_calls == [1]
    assert assistant.reply_calls == [1]


@pytest.mark.asyncio
async def test_title_and_reply_run_concurrently():
    service = ConversationService(RecordingStore(), RendezvousAssistant())

    result = await service.start_conversation("hello")

    assert result.conversation.title == "Concurrent"
    assert result.reply == "Both ran together."


@pytest.mark.asyncio
async def test_title_failure_falls_back_to_default_title():
    store = RecordingStore()
    assistant = StubAssistant(title_error=ModelUnavailableError("title model down"))
    service = ConversationService(store, assistant)

    result = await service.start_conversation("hello")

    assert result.conversation.title == DEFAULT_TITLE == "Untitled conversation"
    assert result.reply == "It is sunny in Barcelona."
    assert store.creates == 1


@pytest.mark.asyncio
async def test_reply_failure_persists_nothing():
    store = RecordingStore()
    assistant = StubAssistant(reply_error=ModelUnavailableError("model down"))
    service = ConversationService(store, assistant)

    with pytest.raises(ModelUnavailableError):
        await service.start_conversation("hello")

    assert store.creates == 0
    assert len(store) == 0


@pytest.mark.asyncio
async def test_reply_failure_cancels_pending_title():
    assistant = StubAssistant(reply_error=EmptyReplyError(), title_delay=5.0)
    service = ConversationService(RecordingStore(), assistant)

    started = time.monotonic()
    with pytest.raises(EmptyReplyError):
        await service.start_conversation("hello")

    assert time.monotonic() - started < 1.0
    assert assistant.title_cancelled is True


@pytest.mark.asyncio
@pytest.mark.parametrize("message", ["", "   ", "\n\t"])
async def test_start_rejects_blank_message_before_any_work(message):
    store = RecordingStore()
    assistant = StubAssistant()
    service = ConversationService(store, assistant)

    with pytest.raises(InvalidArgumentError) as exc_info:
        await service.start_conversation(message)

    assert exc_info.value.argument == "message"
    assert assistant.title_calls == []
    assert assistant.reply_calls == []
    assert store.creates == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "message",
    ["hi", "What is the weather like in Barcelona?", "¿Qué tiempo hace?", "x" * 2000],
)
async def test_started_conversation_always_has_two_messages(message):
    service = ConversationService(RecordingStore(), StubAssistant())

    result = await service.start_conversation(message)

    assert [m.role for m in result.conversation.messages] == ["user", "assistant"]
    assert result.conversation.title


@pytest.mark.asyncio
async def test_continue_conversation_appends_user_and_assistant_messages():
    store = RecordingStore()
    assistant = StubAssistant(reply="Tomorrow will be cloudy.")
    service = ConversationService(store, assistant)
    started = await service.start_conversation("What is the weather like in Barcelona?")

    result = await service.continue_conversation(started.conversation.id, "And tomorrow?")

    assert result.reply == "Tomorrow will be cloudy."
    stored = await store.load(started.conversation.id)
    assert [(m.role, m.content) for m in stored.messages[2:]] == [
        ("user", "And tomorrow?"),
        ("assistant", "Tomorrow will be cloudy."),
    ]
    assert len(stored.messages) == 4
    assert stored.title == started.conversation.title
    assert stored.updated_at >= started.conversation.updated_at
    assert assistant.reply_calls == [1, 3]
    assert store.updates == 1


@pytest.mark.asyncio
async def test_continue_unknown_conversation_writes_nothing():
    store = RecordingStore()
    assistant = StubAssistant()
    service = ConversationService(store, assistant)

    with pytest.raises(ConversationNotFoundError):
        await service.continue_conversation("does-not-exist", "hello")

    assert store.updates == 0
    assert assistant.reply_calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("conversation_id", "message", "argument"),
    [
        ("", "hello", "conversation_id"),
        ("  ", "hello", "conversation_id"),
        ("some-id", "", "message"),
        ("some-id", "   ", "message"),
    ],
)
async def test_continue_validates_arguments_first(conversation_id, message, argument):
    store = RecordingStore()
    assistant = StubAssistant()
    service = ConversationService(store, assistant)

    with pytest.raises(InvalidArgumentError) as exc_info:
        await service.continue_conversation(conversation_id, message)

    assert exc_info.value.argument == argument
    assert assistant.reply_calls == []
    assert store.updates == 0


@pytest.mark.asyncio
async def test_continue_reply_failure_keeps_stored_conversation():
    store = RecordingStore()
    assistant = StubAssistant()
    service = ConversationService(store, assistant)
    started = await service.start_conversation("hello")

    assistant.reply_error = ModelUnavailableError("model down")
    with pytest.raises(ModelUnavailableError):
        await service.continue_conversation(started.conversation.id, "again")

    stored = await store.load(started.conversation.id)
    assert len(stored.messages) == 2
    assert store.updates == 0
