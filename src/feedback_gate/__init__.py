"""Feedback Gate - give feedback before you ask for it."""

__version__ = "1.0.0"

from .classifier import is_feedback_reply, is_feedback_request
from .config import ChannelRegistry, FeedbackChannel, Settings, load_settings
from .ledger import ChatGateway, CreditEntry, CreditWorkflow, LedgerStorage, OpenRequest
from .models import ChatMessage, MessageKind

__all__ = [
    "is_feedback_request",
    "is_feedback_reply",
    "ChannelRegistry",
    "FeedbackChannel",
    "Settings",
    "load_settings",
    "ChatGateway",
    "CreditEntry",
    "CreditWorkflow",
    "LedgerStorage",
    "OpenRequest",
    "ChatMessage",
    "MessageKind",
]
