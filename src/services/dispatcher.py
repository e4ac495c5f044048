"""Chat event dispatch.

Turns inbound chat messages and edits into (identity, mode, code) requests
for the execution pipeline. Messages look like::

    ?play `cout << 1 + 1;`
    ?eval ```cpp
    1 << 10
    ```
"""

import re
from typing import Optional

import structlog

from ..config.modes import get_supported_modes
from ..models.chat import ChatEdit, ChatMessage
from ..models.errors import MissingCodeBlockError, ValidationError
from ..models.execution import ExecutionMode, ParsedCommand
from ..models.sandbox import ThreadRef
from .execution.pipeline import ExecutionPipeline
from .renderer import asciiify
from .sandbox.store import SandboxStore

logger = structlog.get_logger(__name__)

COMMAND_WORD = re.compile(
    r"^(%s)(?=[\s`]|$)" % "|".join(re.escape(word) for word in get_supported_modes())
)
TAGGED_FENCE_PREFIXES = ("```cpp", "```c++")
FENCE = "```"
INLINE = "`"


def isolate_code(body: str) -> str:
    """Extract the snippet from the text following a command word.

    Raises:
        MissingCodeBlockError: if the text is not a single non-empty code block
    """
    body = body.strip()

    code = None
    for prefix in TAGGED_FENCE_PREFIXES:
        if (
            body.startswith(prefix)
            and body.endswith(FENCE)
            and len(body) >= len(prefix) + len(FENCE)
        ):
            code = body[len(prefix):-len(FENCE)]
            break
    if code is None:
        if body.startswith(FENCE) and body.endswith(FENCE) and len(body) >= 2 * len(FENCE):
            code = body[len(FENCE):-len(FENCE)]
        elif (
            body.startswith(INLINE)
            and body.endswith(INLINE)
            and not body.startswith(FENCE)
            and len(body) >= 2
        ):
            code = body[1:-1]

    code = code.strip() if code is not None else ""
    if not code:
        raise MissingCodeBlockError()
    return code


def parse_command(content: str, prefix: str = "?") -> Optional[ParsedCommand]:
    """Parse a chat message into a command.

    Returns:
        The parsed command, or None if the message is not a command

    Raises:
        MissingCodeBlockError: if the command has no usable code block
    """
    if not content.startswith(prefix):
        return None

    text = asciiify(content[len(prefix):])
    match = COMMAND_WORD.match(text)
    if match is None:
        return None

    mode = ExecutionMode(match.group(1))
    return ParsedCommand(mode=mode, code=isolate_code(text[match.end():]))


class RequestDispatcher:
    """Routes chat events to the execution pipeline."""

    def __init__(
        self,
        store: SandboxStore,
        pipeline: ExecutionPipeline,
        prefix: str = "?",
    ):
        self._store = store
        self._pipeline = pipeline
        self._prefix = prefix

    async def handle_message(self, message: ChatMessage) -> None:
        """Handle a newly created chat message."""
        try:
            await self._dispatch(
                message.author_id, message.content, message.thread, reuse_claim=False
            )
        except Exception as e:
            logger.error(
                "Failed to handle chat event",
                chat_event="message",
                identity=message.author_id,
                error=str(e),
                exc_info=True,
            )

    async def handle_edit(self, edit: ChatEdit) -> None:
        """Handle an edited chat message.

        Edits are only considered while the author has a live sandbox. An
        edit of the very message that sandbox was created from continues
        the same reply.
        """
        if not self._store.is_active(edit.author_id):
            return

        reuse_claim = self._store.source_message_id(edit.author_id) == edit.edited_message_id
        try:
            await self._dispatch(
                edit.author_id, edit.content, edit.thread, reuse_claim=reuse_claim
            )
        except Exception as e:
            logger.error(
                "Failed to handle chat event",
                chat_event="edit",
                identity=edit.author_id,
                error=str(e),
                exc_info=True,
            )

    async def _dispatch(
        self, identity: str, content: str, thread: ThreadRef, reuse_claim: bool
    ) -> None:
        try:
            command = parse_command(content, self._prefix)
        except ValidationError as e:
            logger.info("Rejected command", identity=identity, **e.to_dict())
            await self._pipeline.report(identity, thread, e.message, reuse_claim)
            return

        if command is None:
            return

        logger.info(
            "Dispatching command",
            identity=identity,
            mode=command.mode.value,
            code_length=len(command.code),
            reuse_reply=reuse_claim,
        )
        await self._pipeline.execute(identity, thread, command, reuse_claim)
