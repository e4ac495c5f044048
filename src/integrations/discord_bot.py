"""Discord binding for the request dispatcher.

The bot only translates gateway events into ChatMessage / ChatEdit and
replies through DiscordChat. It holds no sandbox state of its own.
"""

from typing import Optional

import discord
import structlog

from ..models.chat import ChatEdit, ChatMessage
from ..models.sandbox import ThreadRef
from ..services.dispatcher import RequestDispatcher

logger = structlog.get_logger(__name__)


def thread_ref_for(message: discord.Message) -> ThreadRef:
    """Build a thread reference pointing at ``message``."""
    return ThreadRef(
        message_id=str(message.id),
        channel_id=str(message.channel.id),
        native=message,
    )


class DiscordChat:
    """ChatPlatform implementation sending replies into Discord channels."""

    async def send_message(self, thread: ThreadRef, text: str) -> discord.Message:
        return await thread.native.channel.send(text)

    async def edit_message(self, reply: discord.Message, text: str) -> None:
        await reply.edit(content=text)


class CodeRunnerBot(discord.Client):
    """Discord client feeding message and edit events to the dispatcher."""

    def __init__(self, dispatcher: RequestDispatcher, intents: Optional[discord.Intents] = None):
        if intents is None:
            intents = discord.Intents.default()
            intents.guilds = True
            intents.guild_messages = True
            intents.message_content = True
        super().__init__(intents=intents)
        self._dispatcher = dispatcher

    @property
    def is_connected(self) -> bool:
        return self.is_ready() and not self.is_closed()

    async def on_ready(self) -> None:
        logger.info("Logged in to Discord", user=str(self.user))

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot:
            return
        await self._dispatcher.handle_message(
            ChatMessage(
                author_id=str(message.author.id),
                content=message.content,
                thread=thread_ref_for(message),
            )
        )

    async def on_message_edit(self, before: discord.Message, after: discord.Message) -> None:
        if after.author.bot:
            return
        await self._dispatcher.handle_edit(
            ChatEdit(
                author_id=str(before.author.id),
                content=after.content,
                thread=thread_ref_for(after),
                edited_message_id=str(before.id),
            )
        )
