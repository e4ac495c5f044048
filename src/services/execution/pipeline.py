"""Build-then-run pipeline for chat snippets.

Coordinates one request end to end:
1. Validate the snippet
2. Wrap it in a source template
3. Stage the source into the sandbox container
4. Arm the hard safety timeout
5. Compile
6. Run (optionally under a diagnostic wrapper)
7. Destroy the container
8. Render and deliver the output

Every step first checks that its sandbox is still current. A superseded
sandbox's pipeline stops silently and never sends output. A sandbox whose
container was torn down by the hard timeout still replies with whatever its
last command captured.
"""

import tempfile
import uuid
from pathlib import Path
from typing import Any, Optional

import structlog

from ...config.modes import get_mode
from ...models.errors import ForbiddenCodeError, ValidationError
from ...models.execution import CommandOutcome, ExecutionMode, ParsedCommand
from ...models.sandbox import Sandbox, SandboxState, ThreadRef
from ..interfaces import ChatPlatform, ContainerEngine
from ..renderer import render
from ..sandbox.store import SandboxStore
from .templates import TemplateLibrary

logger = structlog.get_logger(__name__)

FORBIDDEN_CHARACTERS = ("#",)
NO_OUTPUT = "No output"
COMPILATION_FAILED = "Compilation failed."


def validate_code(code: str) -> None:
    """Reject snippets containing preprocessor directives.

    Raises:
        ForbiddenCodeError: if a forbidden character is present
    """
    for character in FORBIDDEN_CHARACTERS:
        if character in code:
            raise ForbiddenCodeError(character)


class ExecutionPipeline:
    """Runs snippets inside sandboxes and relays the result to the chat."""

    def __init__(
        self,
        store: SandboxStore,
        engine: ContainerEngine,
        chat: ChatPlatform,
        templates: TemplateLibrary,
        hard_timeout: float = 5.0,
        source_dir: str = "/usr/src",
        compiler: str = "g++",
        output_language: str = "cpp",
        output_max_chars: int = 800,
        output_max_lines: int = 30,
    ):
        self._store = store
        self._engine = engine
        self._chat = chat
        self._templates = templates
        self._hard_timeout = hard_timeout
        self._source_dir = source_dir.rstrip("/") or "/"
        self._compiler = compiler
        self._output_language = output_language
        self._output_max_chars = output_max_chars
        self._output_max_lines = output_max_lines

    @classmethod
    def from_settings(
        cls, store: SandboxStore, engine: ContainerEngine, chat: ChatPlatform
    ) -> "ExecutionPipeline":
        """Create a pipeline configured from application settings."""
        from ...config import settings

        sandbox = settings.sandbox
        return cls(
            store=store,
            engine=engine,
            chat=chat,
            templates=TemplateLibrary(settings.templates_dir),
            hard_timeout=sandbox.sandbox_hard_timeout_seconds,
            source_dir=sandbox.sandbox_source_dir,
            compiler=sandbox.compiler_command,
            output_language=settings.output_language,
            output_max_chars=settings.output_max_chars,
            output_max_lines=settings.output_max_lines,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def execute(
        self,
        identity: str,
        thread_ref: ThreadRef,
        command: ParsedCommand,
        reuse_claim: bool = False,
    ) -> Optional[str]:
        """Acquire a sandbox for ``identity`` and run ``command`` in it.

        Snippets failing validation are answered with an advisory and never
        reach the container engine.

        Returns:
            The sandbox handle used, or None if the snippet was rejected
        """
        try:
            validate_code(command.code)
        except ValidationError as e:
            logger.info("Rejected snippet", identity=identity, **e.to_dict())
            await self.report(identity, thread_ref, e.message, reuse_claim)
            return None

        handle = await self._store.acquire(identity, thread_ref, reuse_claim)
        await self.run(identity, handle, command.code, command.mode)
        return handle

    async def report(
        self,
        identity: str,
        thread_ref: ThreadRef,
        text: str,
        reuse_claim: bool = False,
    ) -> None:
        """Answer a request with ``text`` without creating a container.

        The request still supersedes the identity's previous sandbox.
        """
        handle = self._store.register(identity, thread_ref, reuse_claim)
        await self.deliver(identity, handle, text)

    async def run(
        self, identity: str, handle: str, code: str, mode: ExecutionMode
    ) -> None:
        """Compile and run ``code`` in the sandbox identified by ``handle``."""
        try:
            validate_code(code)
        except ValidationError as e:
            await self.deliver(identity, handle, e.message)
            return

        mode_config = get_mode(mode)
        source = self._templates.build_source(mode_config, code)

        unit = f"main-{uuid.uuid4().hex[:12]}"
        source_path = f"{self._source_dir}/{unit}.cpp"
        binary_path = f"{self._source_dir}/{unit}.o"

        if not await self._stage(identity, handle, source, source_path):
            return

        self._store.schedule_hard_timeout(identity, handle, self._hard_timeout)

        # Compile stage
        if not self._store.set_state(identity, handle, SandboxState.COMPILING):
            return
        outcome = await self._engine.exec(
            handle, [self._compiler, source_path, "-o", binary_path]
        )
        if not self._checkpoint(identity, handle, outcome, "compile"):
            return
        if outcome.has_stderr:
            await self.deliver(
                identity,
                handle,
                f"{COMPILATION_FAILED} {self._render(outcome.stderr)}",
            )
            return
        if self._timed_out(identity, handle):
            # Killed mid-compile: there is no binary to run
            await self.deliver(identity, handle, self.compose(outcome))
            return

        # Run stage
        if not self._store.set_state(identity, handle, SandboxState.RUNNING):
            return
        outcome = await self._engine.exec(
            handle, mode_config.build_run_command(binary_path)
        )
        if not self._checkpoint(identity, handle, outcome, "run"):
            return

        await self._store.destroy(identity, handle, silent=False)
        await self.deliver(identity, handle, self.compose(outcome))

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def compose(self, outcome: CommandOutcome) -> str:
        """Build the final reply: stderr if any, else stdout, else a sentinel."""
        if outcome.stderr:
            message = self._render(outcome.stderr)
        elif outcome.stdout:
            message = self._render(outcome.stdout)
        else:
            message = ""
        return message or NO_OUTPUT

    async def deliver(self, identity: str, handle: str, text: str) -> None:
        """Send ``text`` as the sandbox's reply, editing it if already sent."""

        async def _send(sandbox: Sandbox) -> None:
            try:
                if sandbox.reply_ref is None:
                    sandbox.reply_ref = await self._chat.send_message(
                        sandbox.thread_ref, text
                    )
                else:
                    await self._chat.edit_message(sandbox.reply_ref, text)
            except Exception as e:
                logger.error(
                    "Failed to deliver sandbox output",
                    identity=identity,
                    sandbox_id=handle[:12],
                    error=str(e),
                )

        await self._store.with_sandbox(identity, handle, _send)

    def _render(self, raw: Any) -> str:
        return render(
            raw,
            language=self._output_language,
            max_chars=self._output_max_chars,
            max_lines=self._output_max_lines,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _stage(
        self, identity: str, handle: str, source: str, remote_path: str
    ) -> bool:
        sandbox = await self._store.with_sandbox(identity, handle, lambda s: s)
        if sandbox is None or sandbox.is_terminal:
            return False
        if not sandbox.provisioned:
            logger.warning(
                "Sandbox has no container, skipping execution",
                identity=identity,
                sandbox_id=handle[:12],
                error=sandbox.provision_error,
            )
            return False

        with tempfile.TemporaryDirectory(prefix="code-runner-") as tmp:
            local_path = Path(tmp) / Path(remote_path).name
            local_path.write_text(source, encoding="utf-8")
            staged = await self._engine.copy_file(handle, str(local_path), remote_path)

        if not staged:
            logger.error(
                "Failed to stage source file",
                identity=identity,
                sandbox_id=handle[:12],
                remote_path=remote_path,
            )
            return False
        return not self._abandoned(identity, handle)

    def _checkpoint(
        self, identity: str, handle: str, outcome: CommandOutcome, stage: str
    ) -> bool:
        if self._abandoned(identity, handle):
            return False
        if self._timed_out(identity, handle):
            logger.info(
                "Hard timeout ended command",
                identity=identity,
                sandbox_id=handle[:12],
                stage=stage,
                invoked=outcome.invoked,
            )
            return True
        if not outcome.invoked:
            logger.warning(
                "Command could not be invoked",
                identity=identity,
                sandbox_id=handle[:12],
                stage=stage,
                error=outcome.error,
            )
            return False
        return True

    def _abandoned(self, identity: str, handle: str) -> bool:
        """Whether the sandbox was superseded or went idle."""
        if not self._store.is_current(identity, handle):
            logger.debug(
                "Abandoning pipeline for stale sandbox",
                identity=identity,
                sandbox_id=handle[:12],
            )
            return True
        return False

    def _timed_out(self, identity: str, handle: str) -> bool:
        """Whether the hard timeout tore down the still-current sandbox."""
        sandbox = self._store.get(identity)
        return (
            sandbox is not None
            and sandbox.container_handle == handle
            and sandbox.is_terminal
        )
