"""Per-user sandbox registry.

Holds at most one sandbox per user identity. A new request from a user
always supersedes that user's previous sandbox, so no cross-request locking
is needed: every operation re-checks that the (identity, handle) pair it was
given is still the registered one before acting, and quietly does nothing
otherwise.

All registry reads and writes happen on the event loop thread without an
intervening await, which makes each check-then-act atomic.
"""

import asyncio
import inspect
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import structlog

from ...models.sandbox import Sandbox, SandboxState, ThreadRef
from ..interfaces import ContainerEngine

logger = structlog.get_logger(__name__)

DEFAULT_IDLE_TIMEOUT = 60.0


class SandboxStore:
    """Registry owning creation, supersession, timers and teardown of sandboxes.

    Args:
        engine: Container engine hosting the sandboxes
        container_config: Config passed through to ``engine.create``
        idle_timeout: Seconds of inactivity after which a sandbox is gone
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        engine: ContainerEngine,
        container_config: Any = None,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._engine = engine
        self._container_config = container_config
        self._idle_timeout = idle_timeout
        self._clock = clock

        # identity -> current sandbox
        self._sandboxes: Dict[str, Sandbox] = {}
        # handle -> sandbox, for every sandbox whose container is not yet destroyed
        self._handles: Dict[str, Sandbox] = {}
        self._background: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return sum(1 for _ in self._live())

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    def register(
        self, identity: str, thread_ref: ThreadRef, reuse_claim: bool = False
    ) -> str:
        """Register a fresh sandbox record for ``identity`` without a container.

        Supersedes and tears down any previous sandbox of the same identity.
        When ``reuse_claim`` holds, the previous sandbox's reply is carried
        over so output keeps editing the same message.

        Returns:
            The new sandbox's container handle
        """
        self.reap_idle()
        now = self._clock()

        reply_ref = None
        previous = self._sandboxes.pop(identity, None)
        if previous is not None:
            if reuse_claim:
                reply_ref = previous.reply_ref
            logger.debug(
                "Superseding sandbox",
                identity=identity,
                sandbox_id=previous.container_handle[:12],
                reuse_reply=reuse_claim,
            )
            self._spawn(self.destroy(identity, previous.container_handle, silent=True))

        handle = f"exec-{uuid.uuid4().hex}"
        sandbox = Sandbox(
            identity=identity,
            container_handle=handle,
            thread_ref=thread_ref,
            created_at=now,
            last_activity_at=now,
            reply_ref=reply_ref,
        )
        self._sandboxes[identity] = sandbox
        self._handles[handle] = sandbox
        return handle

    async def provision(self, identity: str, handle: str) -> bool:
        """Create the container backing a registered sandbox.

        On failure the sandbox stays registered with ``provision_error`` set;
        later operations against it no-op.
        """
        sandbox = self._lookup(identity, handle)
        if sandbox is None or sandbox.provisioned:
            return False

        created = await self._engine.create(handle, self._container_config)

        if sandbox.is_terminal or self._sandboxes.get(identity) is not sandbox:
            # Superseded while the container was starting; a pending destroy
            # sees provisioned=False and leaves the teardown to us
            if created:
                await self._teardown(handle, silent=True)
            return False

        if not created:
            sandbox.provision_error = "container creation failed"
            logger.error(
                "Failed to provision sandbox",
                identity=identity,
                sandbox_id=handle[:12],
            )
            return False

        sandbox.provisioned = True
        sandbox.state = SandboxState.READY
        sandbox.touch(self._clock())
        logger.info("Provisioned sandbox", identity=identity, sandbox_id=handle[:12])
        return True

    async def acquire(
        self, identity: str, thread_ref: ThreadRef, reuse_claim: bool = False
    ) -> str:
        """Register a new sandbox for ``identity`` and start its container.

        The handle is returned even if the container could not be created.
        """
        handle = self.register(identity, thread_ref, reuse_claim)
        await self.provision(identity, handle)
        return handle

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, identity: str) -> Optional[Sandbox]:
        """Get the live sandbox for ``identity``, if any."""
        sandbox = self._sandboxes.get(identity)
        if sandbox is None or sandbox.is_idle(self._clock(), self._idle_timeout):
            return None
        return sandbox

    def is_active(self, identity: str) -> bool:
        """Whether ``identity`` has a live, non-idle sandbox."""
        return self.get(identity) is not None

    def source_message_id(self, identity: str) -> Optional[str]:
        """ID of the message the identity's live sandbox was created from."""
        sandbox = self.get(identity)
        return sandbox.source_message_id if sandbox else None

    def is_current(self, identity: str, handle: str) -> bool:
        """Whether ``handle`` is still the live sandbox of ``identity``."""
        return self._lookup(identity, handle) is not None

    async def with_sandbox(
        self,
        identity: str,
        handle: str,
        fn: Callable[[Sandbox], Any],
    ) -> Any:
        """Run ``fn`` against the sandbox if it is still current.

        Touches the sandbox's activity timestamp first. Returns ``fn``'s
        result, or None when the request is stale.
        """
        sandbox = self._lookup(identity, handle)
        if sandbox is None:
            logger.debug("Ignoring stale sandbox operation", identity=identity)
            return None

        sandbox.touch(self._clock())
        result = fn(sandbox)
        if inspect.isawaitable(result):
            result = await result
        return result

    def set_state(self, identity: str, handle: str, state: SandboxState) -> bool:
        """Move a current, non-terminal sandbox to ``state``."""
        sandbox = self._lookup(identity, handle)
        if sandbox is None or sandbox.is_terminal:
            return False
        sandbox.state = state
        sandbox.touch(self._clock())
        return True

    # ------------------------------------------------------------------
    # Timers and teardown
    # ------------------------------------------------------------------

    def schedule_hard_timeout(
        self, identity: str, handle: str, delay: float
    ) -> Optional[asyncio.Task]:
        """Destroy the sandbox's container after ``delay`` seconds, unconditionally.

        Fires regardless of pipeline progress, including mid-compile. Does
        nothing when it fires if the sandbox has been superseded.
        """
        sandbox = self._lookup(identity, handle)
        if sandbox is None:
            return None

        async def _fire() -> None:
            await asyncio.sleep(delay)
            if self._sandboxes.get(identity) is sandbox:
                logger.debug(
                    "Hard timeout reached",
                    identity=identity,
                    sandbox_id=handle[:12],
                    delay=delay,
                )
                await self.destroy(identity, handle, silent=True)

        if sandbox.hard_timer is not None:
            sandbox.hard_timer.cancel()
        sandbox.hard_timer = self._spawn(_fire())
        return sandbox.hard_timer

    async def destroy(
        self, identity: str, handle: str, silent: bool = False, retire: bool = False
    ) -> None:
        """Tear down a sandbox's container. Idempotent.

        The container is killed and then force-removed; each attempt is made
        regardless of the other's outcome. The record stays registered (so
        its reply can still be edited) unless ``retire`` is set, and a stale
        handle never retires the sandbox that superseded it.

        Args:
            identity: Owner of the sandbox
            handle: Container handle to destroy
            silent: Suppress logging of kill/remove failures
            retire: Also drop the record if it is still current
        """
        sandbox = self._handles.get(handle)
        if sandbox is not None and not sandbox.is_terminal:
            sandbox.state = SandboxState.TERMINATING
            self._cancel_timer(sandbox)
            if sandbox.provisioned:
                await self._teardown(handle, silent)
            sandbox.state = SandboxState.DESTROYED
            self._handles.pop(handle, None)

        if retire:
            current = self._sandboxes.get(identity)
            if current is not None and current.container_handle == handle:
                del self._sandboxes[identity]

    def reap_idle(self) -> int:
        """Drop every idle sandbox and tear down its container in the background.

        Returns:
            Number of sandboxes reaped
        """
        now = self._clock()
        idle = [
            identity
            for identity, sandbox in self._sandboxes.items()
            if sandbox.is_idle(now, self._idle_timeout)
        ]
        for identity in idle:
            sandbox = self._sandboxes.pop(identity)
            logger.debug(
                "Reaping idle sandbox",
                identity=identity,
                sandbox_id=sandbox.container_handle[:12],
            )
            self._spawn(self.destroy(identity, sandbox.container_handle, silent=True))
        return len(idle)

    async def close(self) -> None:
        """Destroy every sandbox and wait for background work to finish."""
        for identity, sandbox in list(self._sandboxes.items()):
            await self.destroy(identity, sandbox.container_handle, retire=True)
        for sandbox in list(self._handles.values()):
            await self.destroy(sandbox.identity, sandbox.container_handle)

        # Hard timers were cancelled by destroy; what remains is teardown work
        pending = [task for task in self._background if task is not asyncio.current_task()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lookup(self, identity: str, handle: str) -> Optional[Sandbox]:
        sandbox = self.get(identity)
        if sandbox is None or sandbox.container_handle != handle:
            return None
        return sandbox

    def _live(self):
        now = self._clock()
        return (
            s
            for s in self._sandboxes.values()
            if not s.is_terminal and not s.is_idle(now, self._idle_timeout)
        )

    async def _teardown(self, handle: str, silent: bool) -> None:
        killed = await self._engine.kill(handle)
        removed = await self._engine.remove(handle)
        if not silent:
            if not killed:
                logger.warning("Failed to kill container", sandbox_id=handle[:12])
            if not removed:
                logger.warning("Failed to remove container", sandbox_id=handle[:12])
        logger.debug("Destroyed sandbox container", sandbox_id=handle[:12])

    def _cancel_timer(self, sandbox: Sandbox) -> None:
        timer = sandbox.hard_timer
        sandbox.hard_timer = None
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task
