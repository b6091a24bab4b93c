"""Shared fixtures for the feedback gate tests."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from feedback_gate.config import ChannelRegistry, FeedbackChannel
from feedback_gate.ledger.credit_workflow import ChatGateway, CreditWorkflow
from feedback_gate.ledger.ledger_storage import LedgerStorage
from feedback_gate.models import ChatMessage, MessageKind

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
GUILD = "T01"
CHANNEL = "C01"
BOT = "UBOT"


@pytest.fixture
def channel():
    return FeedbackChannel(guild=GUILD, channel=CHANNEL)


@pytest.fixture
def registry(channel):
    return ChannelRegistry([channel])


@pytest.fixture
def storage(tmp_path, channel):
    store = LedgerStorage(tmp_path / "ledger.db")
    store.init_channels([channel])
    return store


@pytest.fixture
def gateway():
    return MagicMock(spec=ChatGateway)


@pytest.fixture
def workflow(storage, registry, gateway):
    return CreditWorkflow(
        storage=storage,
        registry=registry,
        gateway=gateway,
        min_msg_len=20,
        permission_timeout_days=5,
        bot_user_id=BOT,
        clock=lambda: NOW,
    )


def make_message(author="U1", msg_id="100.000001", content="", guild=GUILD, channel=CHANNEL,
                 attachments=(), referenced=None):
    """Plain message, or a reply when ``referenced`` is given."""
    kind = MessageKind.REPLY if referenced is not None else MessageKind.PLAIN
    return ChatMessage(
        author=author,
        guild=guild,
        channel=channel,
        id=msg_id,
        content=content,
        attachments=tuple(attachments),
        kind=kind,
        thread_id=referenced.id if referenced is not None else None,
        referenced=referenced,
    )
