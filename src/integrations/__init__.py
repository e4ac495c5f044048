"""Chat platform integrations."""

from .discord_bot import CodeRunnerBot, DiscordChat, thread_ref_for

__all__ = ["CodeRunnerBot", "DiscordChat", "thread_ref_for"]
