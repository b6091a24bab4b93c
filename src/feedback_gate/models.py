"""
Platform-neutral chat message model handed from the gateway to the workflow.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class MessageKind(Enum):
    PLAIN = "plain"
    REPLY = "reply"


@dataclass(frozen=True)
class ChatMessage:
    """A posted message as seen by the credit workflow.

    ``thread_id`` is the id of the message this one replies to, as reported by
    the platform. ``referenced`` is that message itself, only set when the
    gateway could resolve it.
    """
    author: str
    guild: str
    channel: str
    id: str
    content: str = ""
    attachments: Tuple[str, ...] = field(default_factory=tuple)
    kind: MessageKind = MessageKind.PLAIN
    thread_id: Optional[str] = None
    referenced: Optional["ChatMessage"] = None

    @property
    def is_reply(self) -> bool:
        return self.kind is MessageKind.REPLY
