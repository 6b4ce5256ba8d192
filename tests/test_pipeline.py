from __future__ import annotations

import asyncio
import dataclasses

from core.config import PipelineConfig
from core.context import ProcessingContext
from core.models import CHAT_GROUP, CHAT_IM, ChatMessage, ProcessorResult
from core.pipeline import ChatPipeline
from core.processor import ChatProcessor
from core.processors import PersistenceProcessor

from fakes import (
    ACCOUNT,
    SENDER_ID,
    FakeConnection,
    FakeConnections,
    FakeHistory,
    FakeStore,
    OtherRecordingProcessor,
    RaisingProcessor,
    RecordingProcessor,
    make_message,
)


def _pipeline(connection=None, history=None, **kwargs) -> ChatPipeline:
    return ChatPipeline(
        FakeConnections(connection),
        history or FakeHistory(),
        kwargs.get("config"),
    )


def test_runs_processors_in_priority_order() -> None:
    calls: list[str] = []
    pipeline = _pipeline()
    pipeline.register(RecordingProcessor("thirty", calls), 30)
    pipeline.register(OtherRecordingProcessor("five", calls), 5)
    pipeline.register(RecordingProcessor("ten", calls), 10)

    asyncio.run(pipeline.process(make_message(), ACCOUNT))

    assert calls == ["five", "ten", "thirty"]


def test_equal_priorities_run_in_registration_order() -> None:
    calls: list[str] = []
    pipeline = _pipeline()
    pipeline.register(RecordingProcessor("first", calls), 10)
    pipeline.register(OtherRecordingProcessor("second", calls), 10)

    asyncio.run(pipeline.process(make_message(), ACCOUNT))

    assert calls == ["first", "second"]


def test_default_priority_is_used_when_none_given() -> None:
    pipeline = _pipeline()
    pipeline.register(PersistenceProcessor(FakeStore()))

    [entry] = pipeline.entries()
    assert entry.priority == 20
    assert entry.name == "Database Save"


def test_reregistering_same_type_and_priority_replaces_entry() -> None:
    calls: list[str] = []
    pipeline = _pipeline()
    pipeline.register(RecordingProcessor("old", calls), 10)
    pipeline.register(OtherRecordingProcessor("middle", calls), 10)
    pipeline.register(RecordingProcessor("new", calls), 10)

    asyncio.run(pipeline.process(make_message(), ACCOUNT))

    assert len(pipeline.entries()) == 2
    # The replacement keeps the original slot ahead of "middle".
    assert calls == ["new", "middle"]


def test_same_instance_at_two_priorities_runs_twice_and_unregisters_both() -> None:
    calls: list[str] = []
    pipeline = _pipeline()
    processor = RecordingProcessor("twice", calls)
    pipeline.register(processor, 10)
    pipeline.register(processor, 20)

    asyncio.run(pipeline.process(make_message(), ACCOUNT))
    assert calls == ["twice", "twice"]

    removed = pipeline.unregister(processor)
    assert removed == 2
    assert pipeline.entries() == []


def test_unregister_matches_by_identity() -> None:
    calls: list[str] = []
    pipeline = _pipeline()
    kept = RecordingProcessor("kept", calls)
    pipeline.register(kept, 10)

    assert pipeline.unregister(RecordingProcessor("kept", calls)) == 0
    assert [entry.processor for entry in pipeline.entries()] == [kept]


def test_stop_result_short_circuits_later_processors() -> None:
    calls: list[str] = []
    pipeline = _pipeline()
    pipeline.register(RecordingProcessor("stopper", calls, ProcessorResult.stop()), 5)
    spy = OtherRecordingProcessor("spy", calls)
    pipeline.register(spy, 50)

    asyncio.run(pipeline.process(make_message(), ACCOUNT))

    assert calls == ["stopper"]
    assert spy.seen == []


def test_stop_with_reply_still_sends_reply() -> None:
    connection = FakeConnection()
    calls: list[str] = []
    pipeline = _pipeline(connection)
    result = ProcessorResult(reply="go away", continue_processing=False)
    pipeline.register(RecordingProcessor("stopper", calls, result), 5)
    pipeline.register(OtherRecordingProcessor("spy", calls), 50)

    asyncio.run(pipeline.process(make_message(), ACCOUNT))

    assert connection.chats == ["go away"]
    assert calls == ["stopper"]


def test_raising_processor_does_not_stop_later_processors() -> None:
    calls: list[str] = []
    store = FakeStore()
    pipeline = _pipeline()
    pipeline.register(RaisingProcessor(calls), 5)
    pipeline.register(PersistenceProcessor(store), 20)

    asyncio.run(pipeline.process(make_message("still saved"), ACCOUNT))

    assert calls == ["raiser"]
    assert [message.message for message in store.saved] == ["still saved"]


def test_failed_result_still_honours_reply_and_continue() -> None:
    connection = FakeConnection()
    calls: list[str] = []
    pipeline = _pipeline(connection)
    failing = ProcessorResult(success=False, error="store offline", reply="sorry")
    pipeline.register(RecordingProcessor("failing", calls, failing), 10)
    pipeline.register(OtherRecordingProcessor("after", calls), 20)

    asyncio.run(pipeline.process(make_message(), ACCOUNT))

    assert calls == ["failing", "after"]
    assert connection.chats == ["sorry"]


class _Uppercase(ChatProcessor):
    name = "uppercase"

    async def process(self, message: ChatMessage, context: ProcessingContext) -> ProcessorResult:
        return ProcessorResult.replaced(dataclasses.replace(message, message=message.message.upper()))


def test_replacement_message_is_seen_by_later_processors() -> None:
    calls: list[str] = []
    pipeline = _pipeline()
    pipeline.register(_Uppercase(), 10)
    observer = RecordingProcessor("observer", calls)
    pipeline.register(observer, 20)

    asyncio.run(pipeline.process(make_message("quiet please"), ACCOUNT))

    assert observer.seen == ["QUIET PLEASE"]


def test_none_text_is_normalised_to_empty_string() -> None:
    calls: list[str] = []
    pipeline = _pipeline()
    observer = RecordingProcessor("observer", calls)
    pipeline.register(observer, 10)

    asyncio.run(pipeline.process(make_message(None), ACCOUNT))

    assert observer.seen == [""]


def test_reply_routes_normal_chat_to_local_chat() -> None:
    connection = FakeConnection()
    pipeline = _pipeline(connection)
    pipeline.register(RecordingProcessor("replier", [], ProcessorResult.respond("hi there")), 10)

    asyncio.run(pipeline.process(make_message(), ACCOUNT))

    assert connection.chats == ["hi there"]
    assert connection.ims == []


def test_reply_routes_im_back_to_sender() -> None:
    connection = FakeConnection()
    pipeline = _pipeline(connection)
    pipeline.register(RecordingProcessor("replier", [], ProcessorResult.respond("got it")), 10)

    asyncio.run(pipeline.process(make_message(chat_type=CHAT_IM), ACCOUNT))

    assert connection.ims == [("got it", SENDER_ID)]
    assert connection.chats == []


def test_reply_is_skipped_for_group_chat_and_disconnected_accounts() -> None:
    connection = FakeConnection()
    pipeline = _pipeline(connection)
    pipeline.register(RecordingProcessor("replier", [], ProcessorResult.respond("nope")), 10)

    asyncio.run(pipeline.process(make_message(chat_type=CHAT_GROUP, target_id="g"), ACCOUNT))
    connection.is_connected = False
    asyncio.run(pipeline.process(make_message(), ACCOUNT))

    assert connection.chats == []
    assert connection.ims == []


def test_reply_uses_channel_of_current_replacement_message() -> None:
    connection = FakeConnection()

    class _MakeIm(ChatProcessor):
        name = "make im"

        async def process(self, message, context):
            return ProcessorResult(
                replacement=dataclasses.replace(message, chat_type=CHAT_IM),
                reply="private answer",
            )

    pipeline = _pipeline(connection)
    pipeline.register(_MakeIm(), 10)

    asyncio.run(pipeline.process(make_message(), ACCOUNT))

    assert connection.ims == [("private answer", SENDER_ID)]


def test_reply_send_failure_is_contained() -> None:
    class _BrokenConnection(FakeConnection):
        async def send_chat(self, text: str) -> None:
            raise ConnectionError("socket closed")

    calls: list[str] = []
    pipeline = _pipeline(_BrokenConnection())
    pipeline.register(RecordingProcessor("replier", calls, ProcessorResult.respond("hi")), 10)
    pipeline.register(OtherRecordingProcessor("after", calls), 20)

    asyncio.run(pipeline.process(make_message(), ACCOUNT))

    assert calls == ["replier", "after"]


def test_context_lookup_failures_fall_back_to_empty_context() -> None:
    seen: list[ProcessingContext] = []

    class _Capture(ChatProcessor):
        name = "capture"

        async def process(self, message, context):
            seen.append(context)
            return ProcessorResult.ok()

    pipeline = ChatPipeline(FakeConnections(error=True), FakeHistory(error=True))
    pipeline.register(_Capture(), 10)

    asyncio.run(pipeline.process(make_message(), ACCOUNT))

    [context] = seen
    assert context.connection is None
    assert context.recent_history == ()
    assert context.session_id == "local-chat"


def test_history_is_requested_for_session_with_configured_limit() -> None:
    earlier = make_message("earlier")
    history = FakeHistory([earlier])
    pipeline = _pipeline(history=history, config=PipelineConfig(history_limit=3))
    observer: list[ProcessingContext] = []

    class _Capture(ChatProcessor):
        name = "capture"

        async def process(self, message, context):
            observer.append(context)
            return ProcessorResult.ok()

    pipeline.register(_Capture(), 10)
    asyncio.run(pipeline.process(make_message(session_id="im-session"), ACCOUNT))

    assert history.calls == [(ACCOUNT, "im-session", 3)]
    assert observer[0].recent_history == (earlier,)


def test_shutdown_stops_runs_before_next_processor() -> None:
    calls: list[str] = []
    pipeline = _pipeline()

    class _ShutsDown(ChatProcessor):
        name = "shuts down"

        async def process(self, message, context):
            calls.append("shuts down")
            pipeline.request_shutdown()
            return ProcessorResult.ok()

    pipeline.register(_ShutsDown(), 10)
    pipeline.register(RecordingProcessor("after", calls), 20)

    asyncio.run(pipeline.process(make_message(), ACCOUNT))

    assert pipeline.shutting_down
    assert calls == ["shuts down"]


def test_cancelled_run_finishes_current_processor_then_stops() -> None:
    calls: list[str] = []
    store = FakeStore()

    class _Slow(ChatProcessor):
        name = "slow"

        def __init__(self) -> None:
            self.started = asyncio.Event()

        async def process(self, message, context):
            self.started.set()
            await asyncio.sleep(0.05)
            calls.append("slow finished")
            return ProcessorResult.ok()

    slow = _Slow()
    pipeline = _pipeline()
    pipeline.register(slow, 10)
    pipeline.register(PersistenceProcessor(store), 20)

    async def _scenario() -> bool:
        task = asyncio.ensure_future(pipeline.process(make_message(), ACCOUNT))
        await slow.started.wait()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            return True
        return False

    assert asyncio.run(_scenario()) is True
    assert calls == ["slow finished"]
    assert store.saved == []


def test_registration_during_run_does_not_affect_in_flight_run() -> None:
    calls: list[str] = []
    pipeline = _pipeline()

    class _Registers(ChatProcessor):
        name = "registers"

        async def process(self, message, context):
            calls.append("registers")
            pipeline.register(RecordingProcessor("late", calls), 50)
            return ProcessorResult.ok()

    pipeline.register(_Registers(), 10)

    asyncio.run(pipeline.process(make_message(), ACCOUNT))
    assert calls == ["registers"]

    asyncio.run(pipeline.process(make_message(), ACCOUNT))
    assert calls == ["registers", "registers", "late"]


def test_concurrent_runs_get_independent_contexts() -> None:
    contexts: dict[str, ProcessingContext] = {}

    class _Tracks(ChatProcessor):
        name = "tracks"

        async def process(self, message, context):
            contexts[context.account_id] = context
            context.persisted = context.account_id == "acct-a"
            await asyncio.sleep(0)
            return ProcessorResult.ok()

    pipeline = _pipeline()
    pipeline.register(_Tracks(), 10)

    async def _both() -> None:
        await asyncio.gather(
            pipeline.process(make_message(account_id="acct-a"), "acct-a"),
            pipeline.process(make_message(account_id="acct-b"), "acct-b"),
        )

    asyncio.run(_both())

    assert contexts["acct-a"] is not contexts["acct-b"]
    assert contexts["acct-a"].persisted is True
    assert contexts["acct-b"].persisted is False
