"""
Credit workflow: spend a credit to post a feedback request, earn one by
replying to someone else's request.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..classifier import is_feedback_reply, is_feedback_request
from ..config import ChannelRegistry, FeedbackChannel
from ..models import ChatMessage
from ..utils.request_formatter import RequestFormatter
from .ledger_storage import CreditEntry, LedgerStorage, OpenRequest

logger = logging.getLogger(__name__)

REQUEST_ACCEPTED = "Successfully spent your permission to ask for feedback."
REQUEST_REJECTED = "We *highly encourage* you to give feedback before you ask for it yourself. YEET!"
REPLY_ACCEPTED = "Your feedback has been observed by forces unknown..."
UNKNOWN_COMMAND = "not implemented, yikes"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChatGateway(ABC):
    """Outbound actions of the chat platform.

    Implementations log delivery failures and report them as ``False``;
    they never raise into the workflow.
    """

    @abstractmethod
    def send_reply(self, message: ChatMessage, text: str, mention_author: bool = True) -> bool:
        ...

    @abstractmethod
    def send_message(self, channel: str, text: str) -> bool:
        ...

    @abstractmethod
    def delete_message(self, channel: str, message_id: str) -> bool:
        ...


class CreditWorkflow:
    def __init__(
        self,
        storage: LedgerStorage,
        registry: ChannelRegistry,
        gateway: ChatGateway,
        min_msg_len: int,
        permission_timeout_days: int,
        bot_user_id: Optional[str] = None,
        formatter: Optional[RequestFormatter] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.storage = storage
        self.registry = registry
        self.gateway = gateway
        self.min_msg_len = min_msg_len
        self.permission_timeout_days = permission_timeout_days
        self.bot_user_id = bot_user_id
        self.formatter = formatter or RequestFormatter()
        self.clock = clock

    def on_message(self, message: ChatMessage):
        """Entry point for every posted message."""
        if self.bot_user_id is not None and message.author == self.bot_user_id:
            return

        channel = self.registry.lookup(message.guild, message.channel)
        if channel is None:
            return

        if message.content == "ping":
            self.gateway.send_message(message.channel, "pong")

        if is_feedback_request(message):
            self.handle_feedback_request(channel, message)
        elif is_feedback_reply(message, self.min_msg_len):
            self.handle_feedback_reply(channel, message)

    def on_command(self, name: str, guild: Optional[str], channel_id: Optional[str]) -> Optional[str]:
        """Response text for a command, or None when the channel does not participate."""
        channel = self.registry.lookup(guild, channel_id)
        if channel is None:
            return None

        if name == "open":
            return self.list_open(channel)
        return UNKNOWN_COMMAND

    def handle_feedback_request(self, channel: FeedbackChannel, message: ChatMessage):
        # An expired credit is consumed here as well, it is never refunded
        permit = self.storage.take_credit(message.author, message.guild)
        if permit is not None:
            t_days = (self.clock() - permit.last_reply).days
            if t_days <= self.permission_timeout_days:
                self.storage.add_open_request(
                    channel, OpenRequest(user=message.author, msg=message.id, thread=message.thread_id),
                )
                logger.info(f"Accepted feedback request {message.id} from {message.author} in {channel.key}")
                self.gateway.send_reply(message, REQUEST_ACCEPTED, mention_author=True)
                return
            logger.info(f"Credit of {message.author} expired after {t_days} days")

        logger.info(f"Rejected feedback request {message.id} from {message.author} in {channel.key}")
        self.gateway.send_reply(message, REQUEST_REJECTED, mention_author=True)
        self.gateway.delete_message(message.channel, message.id)

    def handle_feedback_reply(self, channel: FeedbackChannel, message: ChatMessage):
        ref_msg = message.referenced

        # Raises when the request is not open; nothing is granted in that case
        self.storage.remove_open_request(channel, OpenRequest(user=ref_msg.author, msg=ref_msg.id))
        self.storage.grant_credit(message.author, message.guild, CreditEntry(last_reply=self.clock()))
        logger.info(f"Granted credit to {message.author} for feedback on {ref_msg.id} in {channel.key}")

        self.gateway.send_reply(message, REPLY_ACCEPTED, mention_author=True)

    def list_open(self, channel: FeedbackChannel) -> str:
        lines: List[str] = []
        self.storage.for_each_open_request(
            channel, lambda entry: lines.append(self.formatter.format_open_request(channel, entry))
        )
        return self.formatter.format_open_list(lines)
