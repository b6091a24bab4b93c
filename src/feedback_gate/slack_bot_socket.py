"""
Socket Mode Slack Bot for the Feedback Gate
Uses WebSocket connection - no public URL needed!

Slack events are acknowledged right away and queued for a small pool of
worker threads, which run the credit workflow against the shared ledger.
"""

import logging
import queue
import sys
import threading
from typing import Any, Callable, Dict, List, Optional

from slack_bolt import App
from slack_bolt.adapter.socket_mode import SocketModeHandler
from slack_sdk import WebClient

from .config import Settings, load_settings
from .exceptions import ConfigError
from .ledger.credit_workflow import ChatGateway, CreditWorkflow
from .ledger.ledger_storage import LedgerStorage
from .models import ChatMessage, MessageKind
from .utils.request_formatter import RequestFormatter

logger = logging.getLogger(__name__)

# Message subtypes that are still ordinary user posts
USER_MESSAGE_SUBTYPES = {None, "file_share", "thread_broadcast"}

Job = Callable[[], None]


class EventDispatcher:
    """Queue of inbound events consumed by worker threads."""

    def __init__(self, worker_count: int = 4):
        self.worker_count = worker_count
        self._queue: "queue.Queue[Optional[Job]]" = queue.Queue()
        self._workers: List[threading.Thread] = []

    def start(self):
        for index in range(self.worker_count):
            worker = threading.Thread(target=self._run, name=f"feedback-worker-{index}", daemon=True)
            worker.start()
            self._workers.append(worker)
        logger.info(f"Started {self.worker_count} event workers")

    def submit(self, job: Job):
        self._queue.put(job)

    def join(self):
        """Block until every queued event has been processed."""
        self._queue.join()

    def stop(self):
        for _ in self._workers:
            self._queue.put(None)
        for worker in self._workers:
            worker.join()
        self._workers.clear()

    def _run(self):
        while True:
            job = self._queue.get()
            try:
                if job is None:
                    return
                job()
            except Exception:
                logger.exception("Error processing chat event")
            finally:
                self._queue.task_done()


class SlackGateway(ChatGateway):
    """Outbound Slack actions. Failures are logged and reported as False."""

    def __init__(self, client: WebClient, delete_client: Optional[WebClient] = None):
        self.client = client
        # Deleting other users' messages needs an admin user token
        self.delete_client = delete_client or client

    def send_reply(self, message: ChatMessage, text: str, mention_author: bool = True) -> bool:
        if mention_author:
            text = f"<@{message.author}> {text}"
        try:
            self.client.chat_postMessage(
                channel=message.channel,
                text=text,
                thread_ts=message.thread_id or message.id,
            )
            return True
        except Exception as e:
            logger.error(f"Error replying to message {message.id}: {e}")
            return False

    def send_message(self, channel: str, text: str) -> bool:
        try:
            self.client.chat_postMessage(channel=channel, text=text)
            return True
        except Exception as e:
            logger.error(f"Error sending message: {e}")
            return False

    def delete_message(self, channel: str, message_id: str) -> bool:
        try:
            self.delete_client.chat_delete(channel=channel, ts=message_id)
            return True
        except Exception as e:
            logger.error(f"Error deleting message {message_id} in {channel}: {e}")
            return False


def file_urls(files: Optional[List[Dict[str, Any]]]) -> tuple:
    """Attachment references of shared files, URL first, file name as fallback."""
    urls = []
    for item in files or []:
        url = item.get("url_private") or item.get("name")
        if url:
            urls.append(url)
    return tuple(urls)


def fetch_thread_parent(client: WebClient, guild: str, channel: str, thread_ts: str) -> Optional[ChatMessage]:
    """Resolve the parent of a thread, or None when it cannot be read."""
    try:
        replies = client.conversations_replies(channel=channel, ts=thread_ts, limit=1)
    except Exception as e:
        logger.warning(f"Could not fetch thread parent {thread_ts} in {channel}: {e}")
        return None

    messages = replies.get("messages", []) or []
    if not messages or messages[0].get("ts") != thread_ts:
        logger.warning(f"No message found for thread ts={thread_ts}")
        return None

    parent = messages[0]
    author = parent.get("user") or parent.get("bot_id")
    if not author:
        return None
    return ChatMessage(
        author=author,
        guild=guild,
        channel=channel,
        id=thread_ts,
        content=parent.get("text", "") or "",
        attachments=file_urls(parent.get("files")),
    )


def to_chat_message(event: Dict[str, Any], guild: str, client: WebClient) -> ChatMessage:
    """Translate a Slack message event, resolving the thread parent of replies."""
    ts = event["ts"]
    channel = event["channel"]
    thread_ts = event.get("thread_ts")
    is_reply = bool(thread_ts) and thread_ts != ts

    referenced = fetch_thread_parent(client, guild, channel, thread_ts) if is_reply else None
    return ChatMessage(
        author=event["user"],
        guild=guild,
        channel=channel,
        id=ts,
        content=event.get("text", "") or "",
        attachments=file_urls(event.get("files")),
        kind=MessageKind.REPLY if is_reply else MessageKind.PLAIN,
        thread_id=thread_ts if is_reply else None,
        referenced=referenced,
    )


class SlackEventHandler:
    """Bolt listeners: filter raw Slack payloads and queue workflow calls."""

    def __init__(self, workflow: CreditWorkflow, dispatcher: EventDispatcher):
        self.workflow = workflow
        self.dispatcher = dispatcher

    def on_message(self, event: Dict[str, Any], body: Dict[str, Any], client: WebClient):
        subtype = event.get("subtype")
        if subtype not in USER_MESSAGE_SUBTYPES:
            logger.debug(f"Ignoring message with subtype: {subtype}")
            return
        if event.get("bot_id") or not event.get("user") or not event.get("channel"):
            return

        guild = body.get("team_id") or event.get("team")
        if not guild or self.workflow.registry.lookup(guild, event["channel"]) is None:
            return

        def job():
            self.workflow.on_message(to_chat_message(event, guild, client))

        self.dispatcher.submit(job)

    def on_command(self, ack: Callable, command: Dict[str, Any], respond: Callable):
        ack()

        name = command.get("command", "").lstrip("/")
        guild = command.get("team_id")
        channel = command.get("channel_id")

        def job():
            content = self.workflow.on_command(name, guild, channel)
            if content is None:
                return
            try:
                respond(text=content, response_type="in_channel")
            except Exception as e:
                logger.error(f"Cannot respond to slash command: {e}")

        self.dispatcher.submit(job)


def register_listeners(app: App, handler: SlackEventHandler):
    @app.event("message")
    def handle_message_events(event, body, client):
        """Every posted message, filtered to participating channels."""
        handler.on_message(event, body, client)

    @app.command("/open")
    def handle_open_command(ack, command, respond):
        """Handle /open slash command"""
        handler.on_command(ack, command, respond)


def create_app(settings: Settings, storage: LedgerStorage, dispatcher: EventDispatcher) -> App:
    """Build the bolt app with its workflow and listeners."""
    app = App(token=settings.bot_token, signing_secret=settings.signing_secret)

    bot_user_id = settings.bot_user_id
    if not bot_user_id:
        bot_user_id = app.client.auth_test()["user_id"]
    logger.info(f"Bot user ID: {bot_user_id}")

    delete_client = WebClient(token=settings.user_token) if settings.user_token else None
    workflow = CreditWorkflow(
        storage=storage,
        registry=settings.registry(),
        gateway=SlackGateway(app.client, delete_client=delete_client),
        min_msg_len=settings.min_msg_len,
        permission_timeout_days=settings.permission_timeout_days,
        bot_user_id=bot_user_id,
        formatter=RequestFormatter(settings.workspace_url),
    )
    register_listeners(app, SlackEventHandler(workflow, dispatcher))
    return app


def main():
    try:
        settings = load_settings()
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    logging.basicConfig(level=settings.log_level)

    storage = LedgerStorage(settings.db_path)
    storage.init_channels(settings.channels)
    logger.info(f"Ledger ready at {settings.db_path} for {len(settings.channels)} channels")

    dispatcher = EventDispatcher(settings.worker_count)
    dispatcher.start()

    app = create_app(settings, storage, dispatcher)

    logger.info("🤖 Starting Feedback Gate Slack Bot (Socket Mode)")
    logger.info("ℹ️  Required scopes: channels:history, chat:write, commands, files:read")
    logger.info("ℹ️  Required events: message.channels")

    # Start the Socket Mode handler
    handler = SocketModeHandler(app, settings.app_token)
    try:
        handler.start()
    finally:
        dispatcher.stop()


if __name__ == "__main__":
    main()
