"""Unit tests for the execution pipeline."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from src.models import (
    FORBIDDEN_CHARACTER_MESSAGE,
    CommandOutcome,
    ExecutionMode,
    ForbiddenCodeError,
    ParsedCommand,
    SandboxState,
)
from src.services.execution import ExecutionPipeline
from src.services.execution.pipeline import NO_OUTPUT, validate_code
from tests.conftest import make_thread


def capture_sources(mock_engine):
    """Record the text of every file staged into a container."""
    staged = []

    async def _copy(handle, local_path, remote_path):
        staged.append((remote_path, Path(local_path).read_text()))
        return True

    mock_engine.copy_file.side_effect = _copy
    return staged


class TestValidateCode:
    """Test snippet validation."""

    def test_plain_code_passes(self):
        """Ordinary code is accepted."""
        validate_code('cout << "hi";')

    def test_hash_rejected(self):
        """A '#' anywhere in the snippet is rejected."""
        with pytest.raises(ForbiddenCodeError) as exc_info:
            validate_code('cout << "#";')
        assert exc_info.value.message == FORBIDDEN_CHARACTER_MESSAGE


class TestExecute:
    """Test end-to-end execution against a mocked engine."""

    @pytest.mark.asyncio
    async def test_forbidden_code_never_creates_container(self, pipeline, mock_engine, chat):
        """A '#' snippet is answered with the advisory and no container."""
        command = ParsedCommand(ExecutionMode.PLAY, "#include <x>")

        handle = await pipeline.execute("user", make_thread(), command)

        assert handle is None
        mock_engine.create.assert_not_awaited()
        mock_engine.exec.assert_not_awaited()
        assert chat.texts == [FORBIDDEN_CHARACTER_MESSAGE]

    @pytest.mark.asyncio
    async def test_play_success(self, pipeline, mock_engine, chat):
        """Compile, run, destroy, then reply with rendered stdout."""
        staged = capture_sources(mock_engine)
        mock_engine.exec.side_effect = [
            CommandOutcome.completed(0, b"", b""),
            CommandOutcome.completed(0, b"2\n", b""),
        ]

        handle = await pipeline.execute(
            "user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "cout << 1 + 1;")
        )

        remote_path, source = staged[0]
        assert remote_path.startswith("/usr/src/main-")
        assert remote_path.endswith(".cpp")
        assert "cout << 1 + 1;" in source

        compile_call, run_call = mock_engine.exec.await_args_list
        binary = remote_path[: -len(".cpp")] + ".o"
        assert compile_call.args == (handle, ["g++", remote_path, "-o", binary])
        assert run_call.args == (handle, [binary])

        mock_engine.kill.assert_awaited_once_with(handle)
        mock_engine.remove.assert_awaited_once_with(handle)
        assert chat.texts == ["```cpp\n2\n```"]

    @pytest.mark.asyncio
    async def test_output_sent_after_destroy(self, pipeline, mock_engine, chat):
        """The container is gone before the reply goes out."""
        order = []
        mock_engine.remove.side_effect = lambda handle: order.append("remove") or True
        chat.send_message = AsyncMock(
            side_effect=lambda thread, text: order.append("send") or "reply-1"
        )
        mock_engine.exec.side_effect = [
            CommandOutcome.completed(0, b"", b""),
            CommandOutcome.completed(0, b"ok", b""),
        ]

        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "x;"))

        assert order == ["remove", "send"]

    @pytest.mark.asyncio
    async def test_valgrind_wraps_run_command(self, pipeline, mock_engine):
        """Valgrind mode runs the binary under valgrind."""
        await pipeline.execute(
            "user", make_thread(), ParsedCommand(ExecutionMode.VALGRIND, "int x = 1;")
        )

        run_call = mock_engine.exec.await_args_list[1]
        command = run_call.args[1]
        assert command[0] == "valgrind"
        assert command[1].endswith(".o")

    @pytest.mark.asyncio
    async def test_compile_error_reported(self, pipeline, mock_engine, chat):
        """Compiler diagnostics are reported and nothing is run."""
        mock_engine.exec.return_value = CommandOutcome.completed(
            1, b"", b"error: expected ';'"
        )

        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "x"))

        assert mock_engine.exec.await_count == 1
        assert chat.texts == ["Compilation failed. ```cpp\nerror: expected ';'\n```"]

    @pytest.mark.asyncio
    async def test_stderr_preferred_over_stdout(self, pipeline, mock_engine, chat):
        """When the program writes to stderr, only stderr is shown."""
        mock_engine.exec.side_effect = [
            CommandOutcome.completed(0, b"", b""),
            CommandOutcome.completed(0, b"out", b"err"),
        ]

        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "x;"))

        assert chat.texts == ["```cpp\nerr\n```"]

    @pytest.mark.asyncio
    async def test_no_output(self, pipeline, chat):
        """A silent program yields the sentinel reply."""
        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "x;"))

        assert chat.texts == [NO_OUTPUT]

    @pytest.mark.asyncio
    async def test_unprintable_output_yields_no_output(self, pipeline, mock_engine, chat):
        """Output that renders to nothing falls back to the sentinel."""
        mock_engine.exec.side_effect = [
            CommandOutcome.completed(0, b"", b""),
            CommandOutcome.completed(0, b"```\n\t", b""),
        ]

        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "x;"))

        assert chat.texts == [NO_OUTPUT]

    @pytest.mark.asyncio
    async def test_staging_failure_stops_pipeline(self, pipeline, mock_engine, chat):
        """If the source cannot be copied nothing is executed or sent."""
        mock_engine.copy_file.return_value = False

        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "x;"))

        mock_engine.exec.assert_not_awaited()
        assert chat.texts == []

    @pytest.mark.asyncio
    async def test_provisioning_failure_stops_pipeline(self, pipeline, mock_engine, chat):
        """A sandbox without a container never stages or executes."""
        mock_engine.create.return_value = False

        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "x;"))

        mock_engine.copy_file.assert_not_awaited()
        mock_engine.exec.assert_not_awaited()
        assert chat.texts == []

    @pytest.mark.asyncio
    async def test_compile_not_invoked_is_silent(self, pipeline, mock_engine, chat):
        """An exec that cannot be dispatched produces no reply."""
        mock_engine.exec.return_value = CommandOutcome.failed("container gone")

        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "x;"))

        assert mock_engine.exec.await_count == 1
        assert chat.texts == []

    @pytest.mark.asyncio
    async def test_superseded_mid_run_sends_nothing(self, pipeline, store, mock_engine, chat):
        """A request replaced while its program runs never replies."""

        async def _exec(handle, command):
            if command[0] != "g++":
                store.register("user", make_thread("m2"))
            return CommandOutcome.completed(0, b"late output", b"")

        mock_engine.exec.side_effect = _exec

        await pipeline.execute("user", make_thread("m1"), ParsedCommand(ExecutionMode.PLAY, "x;"))

        assert chat.texts == []

    @pytest.mark.asyncio
    async def test_destroyed_mid_compile_replies_no_output(self, pipeline, store, mock_engine, chat):
        """A compile cut short by the hard timeout still gets a reply."""

        async def _exec(handle, command):
            await store.destroy("user", handle, silent=True)
            return CommandOutcome.completed(137, b"", b"")

        mock_engine.exec.side_effect = _exec

        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "x;"))

        assert mock_engine.exec.await_count == 1
        assert chat.texts == [NO_OUTPUT]

    @pytest.mark.asyncio
    async def test_destroyed_mid_compile_with_diagnostics(self, pipeline, store, mock_engine, chat):
        """Diagnostics captured before the kill are reported as a compile failure."""

        async def _exec(handle, command):
            await store.destroy("user", handle, silent=True)
            return CommandOutcome.completed(137, b"", b"warning: slow")

        mock_engine.exec.side_effect = _exec

        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "x;"))

        assert chat.texts == ["Compilation failed. ```cpp\nwarning: slow\n```"]

    @pytest.mark.asyncio
    async def test_hard_timeout_during_run_delivers_partial_output(
        self, store, mock_engine, chat, templates
    ):
        """A program killed by the hard timeout replies with what it printed."""
        pipeline = ExecutionPipeline(
            store=store,
            engine=mock_engine,
            chat=chat,
            templates=templates,
            hard_timeout=0.05,
        )

        async def _exec(handle, command):
            if command[0] == "g++":
                return CommandOutcome.completed(0, b"", b"")
            await asyncio.sleep(0.2)
            return CommandOutcome.completed(137, b"partial output", b"")

        mock_engine.exec.side_effect = _exec

        await pipeline.execute(
            "user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "while (true) {}")
        )

        mock_engine.kill.assert_awaited_once()
        assert chat.texts == ["```cpp\npartial output\n```"]

    @pytest.mark.asyncio
    async def test_run_not_invoked_after_hard_timeout(self, pipeline, store, mock_engine, chat):
        """A run that cannot start because the timer removed the container replies."""

        async def _exec(handle, command):
            if command[0] == "g++":
                return CommandOutcome.completed(0, b"", b"")
            await store.destroy("user", handle, silent=True)
            return CommandOutcome.failed("container gone")

        mock_engine.exec.side_effect = _exec

        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "x;"))

        mock_engine.kill.assert_awaited_once()
        assert chat.texts == [NO_OUTPUT]

    @pytest.mark.asyncio
    async def test_run_not_invoked_is_silent(self, pipeline, mock_engine, chat):
        """A run that cannot be dispatched without a timeout produces no reply."""
        mock_engine.exec.side_effect = [
            CommandOutcome.completed(0, b"", b""),
            CommandOutcome.failed("daemon restarted"),
        ]

        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "x;"))

        assert chat.texts == []

    @pytest.mark.asyncio
    async def test_hard_timeout_armed(self, pipeline, store, mock_engine):
        """A safety timer is armed once the source is staged."""
        seen = []

        async def _exec(handle, command):
            seen.append(store.get("user").hard_timer)
            return CommandOutcome.completed(0, b"", b"")

        mock_engine.exec.side_effect = _exec

        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "x;"))

        assert seen[0] is not None
        assert store.get("user").hard_timer is None
        assert store.get("user").state == SandboxState.DESTROYED

    @pytest.mark.asyncio
    async def test_chat_failure_is_swallowed(self, pipeline, chat):
        """A failing chat send is logged, never raised."""
        chat.send_message = AsyncMock(side_effect=RuntimeError("rate limited"))

        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "x;"))

        chat.send_message.assert_awaited_once()


class TestTemplateSelection:
    """Test which template wraps each snippet."""

    @pytest.mark.asyncio
    async def test_play_wraps_in_main(self, pipeline, mock_engine):
        """Statements are placed inside a generated main."""
        staged = capture_sources(mock_engine)

        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "int x = 1;"))

        source = staged[0][1]
        assert "int main() {\nint x = 1;" in source
        assert "%CODE" not in source

    @pytest.mark.asyncio
    async def test_play_with_own_main(self, pipeline, mock_engine):
        """A snippet defining main is placed at top level."""
        staged = capture_sources(mock_engine)
        code = "int main() { return 0; }"

        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, code))

        source = staged[0][1]
        assert source.count("int main") == 1
        assert source.rstrip().endswith(code)

    @pytest.mark.asyncio
    async def test_eval_prints_expression(self, pipeline, mock_engine):
        """Eval wraps the expression in a print statement."""
        staged = capture_sources(mock_engine)

        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.EVAL, "1 << 10"))

        assert "cout << (\n1 << 10\n    ) << endl;" in staged[0][1]


class TestReplyContinuity:
    """Test reply sending versus editing."""

    @pytest.mark.asyncio
    async def test_first_output_is_sent(self, pipeline, chat):
        """A fresh sandbox sends a new reply."""
        await pipeline.execute("user", make_thread(), ParsedCommand(ExecutionMode.PLAY, "x;"))

        assert len(chat.sent) == 1
        assert chat.edits == []

    @pytest.mark.asyncio
    async def test_reuse_claim_edits_previous_reply(self, pipeline, chat):
        """Re-running an edited source message edits the earlier reply."""
        command = ParsedCommand(ExecutionMode.PLAY, "x;")
        await pipeline.execute("user", make_thread("m1"), command)
        await pipeline.execute("user", make_thread("m1"), command, reuse_claim=True)

        assert len(chat.sent) == 1
        assert chat.edits == [("reply-1", NO_OUTPUT)]

    @pytest.mark.asyncio
    async def test_new_request_sends_new_reply(self, pipeline, chat):
        """Without a reuse claim every request gets its own reply."""
        command = ParsedCommand(ExecutionMode.PLAY, "x;")
        await pipeline.execute("user", make_thread("m1"), command)
        await pipeline.execute("user", make_thread("m2"), command)

        assert len(chat.sent) == 2
        assert chat.edits == []

    @pytest.mark.asyncio
    async def test_advisory_edits_reused_reply(self, pipeline, chat):
        """A rejected edit replaces the earlier output in place."""
        await pipeline.execute("user", make_thread("m1"), ParsedCommand(ExecutionMode.PLAY, "x;"))
        await pipeline.execute(
            "user", make_thread("m1"), ParsedCommand(ExecutionMode.PLAY, "#"), reuse_claim=True
        )

        assert chat.edits == [("reply-1", FORBIDDEN_CHARACTER_MESSAGE)]
