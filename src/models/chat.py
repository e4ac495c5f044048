"""Inbound chat event models."""

from dataclasses import dataclass

from .sandbox import ThreadRef


@dataclass(frozen=True)
class ChatMessage:
    """A newly created chat message."""

    author_id: str
    content: str
    thread: ThreadRef


@dataclass(frozen=True)
class ChatEdit:
    """An edit of an existing chat message.

    ``edited_message_id`` identifies the message before the edit and is
    compared against the message the author's sandbox was created from.
    """

    author_id: str
    content: str
    thread: ThreadRef
    edited_message_id: str
