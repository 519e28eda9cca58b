"""Tests for the agent run loop."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from opencowork.agent.errors import CONTENT_SAFETY_RETRY_PROMPT, AlreadyProcessing
from opencowork.agent.events import AgentEvent, EventKind
from opencowork.agent.loop import CANCELLED_RESULT, IMAGE_ONLY_PROMPT, AgentLoop, UserInput, build_user_content
from opencowork.agent.stream import INTERRUPTED_MARKER
from opencowork.agent.tools.executor import WRITE_DENIED
from opencowork.config.schema import AgentConfig
from opencowork.core.llm.content import ImageBlock, TextBlock, ToolResultBlock, ToolUseBlock
from opencowork.core.llm.provider import Message, ProviderError, Role
from opencowork.security.trust_store import TrustLevel, TrustStore
from tests.utils import (
    EventRecorder,
    FakeProvider,
    FakeTerminal,
    Hang,
    multi_tool_events,
    text_events,
    tool_events,
    wait_for_async,
)


def make_loop(
    provider: FakeProvider,
    trust_store: TrustStore,
    *,
    clock=None,
    **config,
) -> tuple[AgentLoop, EventRecorder]:
    kwargs = {"clock": clock} if clock is not None else {}
    loop = AgentLoop(
        provider,
        trust_store,
        terminal=FakeTerminal(),
        config=AgentConfig(**config),
        **kwargs,
    )
    recorder = EventRecorder()
    loop.on_event(recorder)
    return loop, recorder


def assert_tool_uses_answered(history: list[Message]) -> None:
    """Every assistant tool call is followed by a result for it."""
    for index, message in enumerate(history):
        ids = [t.id for t in message.tool_uses()]
        if not ids:
            continue
        assert index + 1 < len(history), "tool call left unanswered"
        answered = {r.tool_use_id for r in history[index + 1].tool_results()}
        assert set(ids) <= answered


class TestBuildUserContent:
    """Test conversion of user input to message content."""

    def test_plain_text(self) -> None:
        assert build_user_content("hello") == "hello"

    def test_images_then_text(self) -> None:
        content = build_user_content(UserInput("what is this?", ["data:image/png;base64,AAAA"]))

        assert content == [ImageBlock("image/png", "AAAA"), TextBlock("what is this?")]

    def test_image_only_gets_default_prompt(self) -> None:
        content = build_user_content(UserInput("", ["data:image/jpeg;base64,BBBB"]))

        assert content == [ImageBlock("image/jpeg", "BBBB"), TextBlock(IMAGE_ONLY_PROMPT)]

    def test_malformed_images_are_skipped(self) -> None:
        content = build_user_content(UserInput("hi", ["https://example.com/a.png", "data:text/plain;base64,x"]))

        assert content == [TextBlock("hi")]


class TestConversation:
    """Test complete runs."""

    @pytest.mark.asyncio
    async def test_text_response(self, authorized: TrustStore, workspace: Path) -> None:
        provider = FakeProvider([text_events("Hello there")])
        loop, events = make_loop(provider, authorized)

        await loop.process_user_message("hi")

        assert [m.role for m in loop.history] == [Role.USER, Role.ASSISTANT]
        assert loop.history[1].content == [TextBlock("Hello there")]
        assert events.payloads(EventKind.STREAM_TOKEN) == ["Hello there"]
        assert events.kinds()[-1] is EventKind.DONE
        assert "timestamp" in events.payloads(EventKind.DONE)[0]
        assert not loop.is_processing

        call = provider.calls[0]
        assert f"- Primary: {workspace.resolve()}" in call.system
        assert [t["name"] for t in call.tools] == ["read_file", "write_file", "list_dir", "run_command"]

    @pytest.mark.asyncio
    async def test_no_folders_prompt(self, trust_store: TrustStore) -> None:
        provider = FakeProvider([text_events("ok")])
        loop, _ = make_loop(provider, trust_store)

        await loop.process_user_message("hi")

        assert "No working directory has been selected yet" in provider.calls[0].system

    @pytest.mark.asyncio
    async def test_reasoning_is_streamed_not_stored(self, authorized: TrustStore) -> None:
        from opencowork.core.llm.provider import StreamEvent

        provider = FakeProvider([[StreamEvent.reasoning_delta("hmm"), *text_events("answer")]])
        loop, events = make_loop(provider, authorized)

        await loop.process_user_message("hi")

        assert events.payloads(EventKind.STREAM_THINKING) == ["hmm"]
        assert loop.history[1].text() == "answer"

    @pytest.mark.asyncio
    async def test_tool_round_trip(self, authorized: TrustStore, workspace: Path) -> None:
        (workspace / "todo.txt").write_text("buy milk", encoding="utf-8")
        provider = FakeProvider(
            [
                tool_events("t1", "read_file", {"path": str(workspace / "todo.txt")}, text="Reading."),
                text_events("You need to buy milk."),
            ]
        )
        loop, _ = make_loop(provider, authorized)

        await loop.process_user_message("what's on my list?")

        history = loop.history
        assert [m.role for m in history] == [Role.USER, Role.ASSISTANT, Role.USER, Role.ASSISTANT]
        assert history[1].tool_uses()[0].name == "read_file"
        assert history[2].content == [ToolResultBlock("t1", "buy milk")]
        assert history[3].text() == "You need to buy milk."
        assert len(provider.calls[1].messages) == 3

    @pytest.mark.asyncio
    async def test_invalid_tool_json_is_reported_to_model(self, authorized: TrustStore) -> None:
        provider = FakeProvider([tool_events("t1", "read_file", '{"path": '), text_events("Sorry.")])
        loop, _ = make_loop(provider, authorized)

        await loop.process_user_message("read it")

        result = loop.history[2].tool_results()[0]
        assert result.content.startswith("Error: The tool input was not valid JSON.")

    @pytest.mark.asyncio
    async def test_iteration_bound(self, authorized: TrustStore, workspace: Path) -> None:
        provider = FakeProvider(
            [tool_events("t", "list_dir", {"path": str(workspace)})],
            repeat_last=True,
        )
        loop, events = make_loop(provider, authorized, max_iterations=3)

        await loop.process_user_message("loop forever")

        assert len(provider.calls) == 3
        assert len(loop.history) == 7
        assert_tool_uses_answered(loop.history)
        assert events.kinds()[-1] is EventKind.DONE
        assert not loop.is_processing

    @pytest.mark.asyncio
    async def test_empty_response_ends_run(self, authorized: TrustStore) -> None:
        provider = FakeProvider([[]])
        loop, events = make_loop(provider, authorized)

        await loop.process_user_message("hi")

        assert len(loop.history) == 1
        assert EventKind.DONE in events.kinds()

    @pytest.mark.asyncio
    async def test_artifacts(self, authorized: TrustStore, workspace: Path) -> None:
        authorized.set_folder_trust(str(workspace), TrustLevel.TRUST)
        target = workspace / "out.md"
        provider = FakeProvider(
            [tool_events("t1", "write_file", {"path": str(target), "content": "# Out"}), text_events("Done.")]
        )
        loop, events = make_loop(provider, authorized)

        await loop.process_user_message("write it")

        expected = {"path": str(target), "name": "out.md", "type": "file"}
        assert loop.artifacts == [expected]
        assert events.payloads(EventKind.ARTIFACT_CREATED) == [expected]
        assert target.read_text(encoding="utf-8") == "# Out"

    @pytest.mark.asyncio
    async def test_image_message(self, authorized: TrustStore) -> None:
        provider = FakeProvider([text_events("A cat.")])
        loop, _ = make_loop(provider, authorized)

        await loop.process_user_message(UserInput("", ["data:image/png;base64,AAAA"]))

        assert loop.history[0].content == [ImageBlock("image/png", "AAAA"), TextBlock(IMAGE_ONLY_PROMPT)]


class TestConfirmations:
    """Test confirmation round trips through the loop."""

    @pytest.mark.asyncio
    async def test_approve_and_remember(self, authorized: TrustStore, workspace: Path) -> None:
        target = workspace / "notes.md"
        provider = FakeProvider(
            [
                tool_events("t1", "write_file", {"path": str(target), "content": "x"}),
                text_events("Saved."),
            ]
        )
        loop, events = make_loop(provider, authorized)

        def answer(event: AgentEvent) -> None:
            if event.kind is EventKind.CONFIRM_REQUEST:
                asyncio.get_running_loop().call_soon(
                    loop.handle_confirm_response, event.payload["id"], True, True
                )

        loop.on_event(answer)
        await loop.process_user_message("save notes")

        request = events.payloads(EventKind.CONFIRM_REQUEST)[0]
        assert request["tool"] == "write_file"
        assert request["args"]["path"] == str(target)
        assert target.exists()
        assert authorized.has_standing_permission("write_file", str(target))
        assert loop.pending_confirmations == []

    @pytest.mark.asyncio
    async def test_deny(self, authorized: TrustStore, workspace: Path) -> None:
        target = workspace / "notes.md"
        provider = FakeProvider(
            [
                tool_events("t1", "write_file", {"path": str(target), "content": "x"}),
                text_events("Okay, I won't."),
            ]
        )
        loop, _ = make_loop(provider, authorized)

        def answer(event: AgentEvent) -> None:
            if event.kind is EventKind.CONFIRM_REQUEST:
                asyncio.get_running_loop().call_soon(loop.handle_confirm_response, event.payload["id"], False)

        loop.on_event(answer)
        await loop.process_user_message("save notes")

        assert loop.history[2].tool_results()[0].content == WRITE_DENIED
        assert not target.exists()
        assert not authorized.has_standing_permission("write_file", str(target))

    def test_unknown_confirmation_id(self, authorized: TrustStore) -> None:
        loop, _ = make_loop(FakeProvider([]), authorized)

        assert not loop.handle_confirm_response("confirm-0-000000", True)


class TestAbort:
    """Test abort semantics."""

    @pytest.mark.asyncio
    async def test_abort_mid_stream_keeps_partial_text(self, authorized: TrustStore) -> None:
        from opencowork.core.llm.provider import StreamEvent

        provider = FakeProvider([Hang([StreamEvent.text_start(), StreamEvent.text_delta("Partial answ")])])
        loop, events = make_loop(provider, authorized)

        task = asyncio.create_task(loop.process_user_message("long question"))
        await wait_for_async(provider.hanging.wait())
        loop.abort()

        assert not loop.is_processing
        await wait_for_async(task)

        assert provider.cancelled
        assert loop.history[-1].content == [TextBlock("Partial answ" + INTERRUPTED_MARKER)]
        kinds = events.kinds()
        assert EventKind.ABORTED in kinds
        assert kinds.index(EventKind.ABORTED) < kinds.index(EventKind.DONE)
        assert events.payloads(EventKind.ABORTED)[0]["aborted"] is True
        assert EventKind.ERROR not in kinds

    @pytest.mark.asyncio
    async def test_abort_after_streamed_tool_call_answers_it(self, authorized: TrustStore, workspace: Path) -> None:
        from opencowork.core.llm.provider import StreamEvent

        provider = FakeProvider(
            [
                Hang(
                    [
                        StreamEvent.tool_start("t1", "list_dir"),
                        StreamEvent.argument_delta(f'{{"path": "{workspace.as_posix()}"}}'),
                        StreamEvent.block_stop(),
                    ]
                )
            ]
        )
        loop, _ = make_loop(provider, authorized)

        task = asyncio.create_task(loop.process_user_message("look around"))
        await wait_for_async(provider.hanging.wait())
        loop.abort()
        await wait_for_async(task)

        assert [t.id for t in loop.history[1].tool_uses()] == ["t1"]
        assert loop.history[-1].tool_results() == [ToolResultBlock("t1", CANCELLED_RESULT, is_error=True)]
        assert_tool_uses_answered(loop.history)

    @pytest.mark.asyncio
    async def test_abort_denies_pending_and_cancels_remaining_tools(
        self, authorized: TrustStore, workspace: Path
    ) -> None:
        first = workspace / "one.txt"
        second = workspace / "two.txt"
        provider = FakeProvider(
            [
                multi_tool_events(
                    ("t1", "write_file", {"path": str(first), "content": "1"}),
                    ("t2", "write_file", {"path": str(second), "content": "2"}),
                )
            ]
        )
        loop, events = make_loop(provider, authorized)

        def abort_on_request(event: AgentEvent) -> None:
            if event.kind is EventKind.CONFIRM_REQUEST:
                asyncio.get_running_loop().call_soon(loop.abort)

        loop.on_event(abort_on_request)
        await wait_for_async(loop.process_user_message("write both"))

        results = loop.history[-1].tool_results()
        assert [r.tool_use_id for r in results] == ["t1", "t2"]
        assert results[0].content == WRITE_DENIED
        assert results[1] == ToolResultBlock("t2", CANCELLED_RESULT, is_error=True)
        assert len(events.payloads(EventKind.CONFIRM_REQUEST)) == 1
        assert loop.pending_confirmations == []
        assert len(provider.calls) == 1
        assert not first.exists()
        assert not second.exists()

    @pytest.mark.asyncio
    async def test_abort_lets_running_command_finish(self, authorized: TrustStore, workspace: Path) -> None:
        class GatedTerminal(FakeTerminal):
            def __init__(self) -> None:
                super().__init__(output="3 passed")
                self.started = asyncio.Event()
                self.release = asyncio.Event()
                self.cancel_events: list[asyncio.Event | None] = []

            async def run(self, command, cwd, *, cancel=None, **kwargs):
                self.cancel_events.append(cancel)
                self.started.set()
                await self.release.wait()
                return await super().run(command, cwd, **kwargs)

        authorized.set_folder_trust(str(workspace), TrustLevel.TRUST)
        terminal = GatedTerminal()
        provider = FakeProvider([tool_events("t1", "run_command", {"command": "npm test"}), text_events("unused")])
        loop = AgentLoop(provider, authorized, terminal=terminal, config=AgentConfig())

        task = asyncio.create_task(loop.process_user_message("run the tests"))
        await wait_for_async(terminal.started.wait())
        loop.abort()
        terminal.release.set()
        await wait_for_async(task)

        assert terminal.cancel_events == [None]
        assert loop.history[-1].tool_results() == [ToolResultBlock("t1", "3 passed")]
        assert len(provider.calls) == 1
        assert_tool_uses_answered(loop.history)

    def test_abort_when_idle_is_noop(self, authorized: TrustStore) -> None:
        loop, events = make_loop(FakeProvider([]), authorized)

        loop.abort()

        assert events.events == []

    @pytest.mark.asyncio
    async def test_new_message_after_abort(self, authorized: TrustStore) -> None:
        provider = FakeProvider([Hang(), text_events("Second answer")])
        loop, events = make_loop(provider, authorized)

        first = asyncio.create_task(loop.process_user_message("first"))
        await wait_for_async(provider.hanging.wait())
        loop.abort()
        await wait_for_async(loop.process_user_message("second"))
        await wait_for_async(first)

        assert [m.text() for m in loop.history] == ["first", "second", "Second answer"]
        assert not loop.is_processing


class TestConcurrency:
    """Test the single-run guard and stale-run recovery."""

    @pytest.mark.asyncio
    async def test_already_processing(self, authorized: TrustStore) -> None:
        provider = FakeProvider([Hang()])
        loop, _ = make_loop(provider, authorized)

        task = asyncio.create_task(loop.process_user_message("first"))
        await wait_for_async(provider.hanging.wait())

        with pytest.raises(AlreadyProcessing):
            await loop.process_user_message("second")

        loop.abort()
        await wait_for_async(task)
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_stale_run_is_reset(self, authorized: TrustStore) -> None:
        now = [0.0]
        provider = FakeProvider([Hang(), text_events("Fresh")])
        loop, events = make_loop(provider, authorized, clock=lambda: now[0], stale_timeout=60.0)

        stuck = asyncio.create_task(loop.process_user_message("first"))
        await wait_for_async(provider.hanging.wait())

        now[0] = 61.0
        await wait_for_async(loop.process_user_message("second"))
        await wait_for_async(stuck)

        assert provider.cancelled
        assert [m.text() for m in loop.history] == ["first", "second", "Fresh"]
        assert events.kinds().count(EventKind.DONE) == 1
        assert not loop.is_processing


class TestErrors:
    """Test provider failure handling."""

    @pytest.mark.asyncio
    async def test_content_safety_retry(self, authorized: TrustStore) -> None:
        provider = FakeProvider(
            [
                ProviderError(status=500, message="output new_sensitive", code="1027"),
                text_events("Here is a safer answer."),
            ]
        )
        loop, events = make_loop(provider, authorized)

        await loop.process_user_message("tell me")

        history = loop.history
        assert [m.role for m in history] == [Role.USER, Role.USER, Role.ASSISTANT]
        assert history[1].content == CONTENT_SAFETY_RETRY_PROMPT
        assert EventKind.ERROR not in events.kinds()

    @pytest.mark.asyncio
    async def test_provider_error_is_reported(self, authorized: TrustStore) -> None:
        provider = FakeProvider([ProviderError(status=401, message="invalid key")])
        loop, events = make_loop(provider, authorized)

        await loop.process_user_message("hi")

        (message,) = events.payloads(EventKind.ERROR)
        assert message.startswith("Authentication failed (401)")
        assert events.kinds()[-1] is EventKind.DONE
        assert not loop.is_processing
        assert len(loop.history) == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reported(self, authorized: TrustStore) -> None:
        provider = FakeProvider([RuntimeError("kaput")])
        loop, events = make_loop(provider, authorized)

        await loop.process_user_message("hi")

        assert events.payloads(EventKind.ERROR) == ["Unexpected error: kaput"]


class TestHistory:
    """Test history management."""

    @pytest.mark.asyncio
    async def test_trailing_tool_calls_are_closed(self, authorized: TrustStore) -> None:
        provider = FakeProvider([text_events("ok")])
        loop, _ = make_loop(provider, authorized)
        loop.load_history(
            [
                Message(role=Role.USER, content="do it"),
                Message(role=Role.ASSISTANT, content=[ToolUseBlock(id="old", name="read_file", input={})]),
            ]
        )

        await loop.process_user_message("hello again")

        sent = provider.calls[0].messages
        assert sent[2].content == [ToolResultBlock("old", CANCELLED_RESULT, is_error=True)]
        assert sent[3].content == "hello again"
        assert_tool_uses_answered(loop.history)

    def test_clear_history(self, authorized: TrustStore) -> None:
        loop, events = make_loop(FakeProvider([]), authorized)
        loop.load_history([Message(role=Role.USER, content="x")])

        loop.clear_history()

        assert loop.history == []
        assert events.payloads(EventKind.HISTORY_UPDATED)[-1] == []

    def test_update_config(self, authorized: TrustStore) -> None:
        provider = FakeProvider([])
        loop, _ = make_loop(provider, authorized)

        assert loop.update_config(model="other-model")
        assert not loop.update_config(model="other-model")
        assert provider.model == "other-model"
