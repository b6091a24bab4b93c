"""Tests for the Slack adapter: event translation, gateway and dispatch."""

import threading
from unittest.mock import MagicMock

from slack_sdk.errors import SlackApiError

from feedback_gate.models import MessageKind
from feedback_gate.slack_bot_socket import (
    EventDispatcher,
    SlackEventHandler,
    SlackGateway,
    to_chat_message,
)

from conftest import CHANNEL, GUILD, make_message


class InlineDispatcher:
    """Runs submitted jobs immediately."""

    def submit(self, job):
        job()


def slack_error(error="not_allowed"):
    return SlackApiError("failed", {"ok": False, "error": error})


def parent_reply(ts="100.0", user="U1", text="https://example.com/track"):
    return {"messages": [{"ts": ts, "user": user, "text": text}]}


def test_plain_event_translation():
    client = MagicMock()
    event = {
        "type": "message", "user": "U1", "channel": CHANNEL, "ts": "100.0",
        "text": "new mix", "files": [{"name": "mix.wav", "url_private": "https://files.slack.com/mix.wav"}],
    }

    message = to_chat_message(event, GUILD, client)

    assert message.kind is MessageKind.PLAIN
    assert message.attachments == ("https://files.slack.com/mix.wav",)
    assert message.referenced is None
    client.conversations_replies.assert_not_called()


def test_thread_reply_resolves_parent():
    client = MagicMock()
    client.conversations_replies.return_value = parent_reply()
    event = {"user": "U2", "channel": CHANNEL, "ts": "101.0", "thread_ts": "100.0", "text": "great low end"}

    message = to_chat_message(event, GUILD, client)

    client.conversations_replies.assert_called_once_with(channel=CHANNEL, ts="100.0", limit=1)
    assert message.kind is MessageKind.REPLY
    assert message.thread_id == "100.0"
    assert message.referenced.author == "U1"
    assert message.referenced.content == "https://example.com/track"


def test_unreadable_parent_leaves_reference_unresolved():
    client = MagicMock()
    client.conversations_replies.side_effect = slack_error("thread_not_found")
    event = {"user": "U2", "channel": CHANNEL, "ts": "101.0", "thread_ts": "100.0", "text": "x" * 40}

    message = to_chat_message(event, GUILD, client)

    assert message.kind is MessageKind.REPLY
    assert message.referenced is None


def test_gateway_reply_mentions_author_in_thread():
    client = MagicMock()
    gateway = SlackGateway(client)
    message = make_message(author="U1", msg_id="100.0")

    assert gateway.send_reply(message, "thanks", mention_author=True)

    client.chat_postMessage.assert_called_once_with(channel=CHANNEL, text="<@U1> thanks", thread_ts="100.0")


def test_gateway_reply_to_thread_reply_uses_parent():
    client = MagicMock()
    request = make_message(author="U1", msg_id="100.0")
    reply = make_message(author="U2", msg_id="101.0", referenced=request)

    SlackGateway(client).send_reply(reply, "observed", mention_author=False)

    client.chat_postMessage.assert_called_once_with(channel=CHANNEL, text="observed", thread_ts="100.0")


def test_gateway_delete_uses_user_client_and_logs_failure():
    bot_client, user_client = MagicMock(), MagicMock()
    user_client.chat_delete.side_effect = slack_error("cant_delete_message")
    gateway = SlackGateway(bot_client, delete_client=user_client)

    assert gateway.delete_message(CHANNEL, "100.0") is False
    user_client.chat_delete.assert_called_once_with(channel=CHANNEL, ts="100.0")
    bot_client.chat_delete.assert_not_called()


def test_gateway_send_failure_is_reported():
    client = MagicMock()
    client.chat_postMessage.side_effect = slack_error()

    assert SlackGateway(client).send_message(CHANNEL, "pong") is False


def test_handler_forwards_participating_messages(workflow, gateway, storage):
    handler = SlackEventHandler(workflow, InlineDispatcher())
    event = {"user": "U1", "channel": CHANNEL, "ts": "100.0", "text": "https://example.com/track"}

    handler.on_message(event, {"team_id": GUILD}, MagicMock())

    gateway.delete_message.assert_called_once_with(CHANNEL, "100.0")


def test_handler_drops_edits_bots_and_other_channels(workflow, gateway):
    handler = SlackEventHandler(workflow, InlineDispatcher())
    body = {"team_id": GUILD}
    link = "https://example.com/track"

    handler.on_message({"subtype": "message_changed", "channel": CHANNEL, "ts": "1.0"}, body, MagicMock())
    handler.on_message({"bot_id": "B1", "user": "U9", "channel": CHANNEL, "ts": "2.0", "text": link}, body, MagicMock())
    handler.on_message({"user": "U1", "channel": "C99", "ts": "3.0", "text": link}, body, MagicMock())

    gateway.send_reply.assert_not_called()


def test_handler_accepts_file_shares(workflow, gateway):
    handler = SlackEventHandler(workflow, InlineDispatcher())
    event = {
        "subtype": "file_share", "user": "U1", "channel": CHANNEL, "ts": "100.0", "text": "",
        "files": [{"name": "demo.mp3"}],
    }

    handler.on_message(event, {"team_id": GUILD}, MagicMock())

    gateway.delete_message.assert_called_once_with(CHANNEL, "100.0")


def test_open_command_acks_and_responds(workflow):
    handler = SlackEventHandler(workflow, InlineDispatcher())
    ack, respond = MagicMock(), MagicMock()

    handler.on_command(ack, {"command": "/open", "team_id": GUILD, "channel_id": CHANNEL}, respond)

    ack.assert_called_once_with()
    respond.assert_called_once_with(text="No open messages...", response_type="in_channel")


def test_open_command_elsewhere_is_silent(workflow):
    handler = SlackEventHandler(workflow, InlineDispatcher())
    ack, respond = MagicMock(), MagicMock()

    handler.on_command(ack, {"command": "/open", "team_id": GUILD, "channel_id": "C99"}, respond)

    ack.assert_called_once_with()
    respond.assert_not_called()


def test_dispatcher_runs_jobs_and_survives_failures():
    dispatcher = EventDispatcher(worker_count=2)
    dispatcher.start()
    done = []
    lock = threading.Lock()

    def boom():
        raise RuntimeError("broken invariant")

    def record(value):
        with lock:
            done.append(value)

    dispatcher.submit(boom)
    for value in range(5):
        dispatcher.submit(lambda value=value: record(value))
    dispatcher.join()
    dispatcher.stop()

    assert sorted(done) == [0, 1, 2, 3, 4]
