"""
Formatting helpers for links, mentions and the open-request listing.
"""
from typing import List, Optional

from ..config import FeedbackChannel
from ..ledger.ledger_storage import OpenRequest

NO_OPEN_MESSAGES = "No open messages..."
OPEN_LIST_HEADER = "Here is a list of posts that still need feedback:"


class RequestFormatter:
    """Render open requests as Slack message links and user mentions."""

    def __init__(self, workspace_url: str = "https://slack.com"):
        self.workspace_url = workspace_url.rstrip("/")

    def message_link(self, channel: FeedbackChannel, message_id: str, thread: Optional[str] = None) -> str:
        """Permalink of a message; Slack drops the dot from the ts."""
        link = f"{self.workspace_url}/archives/{channel.channel}/p{message_id.replace('.', '')}"
        if thread:
            link += f"?thread_ts={thread}&cid={channel.channel}"
        return link

    @staticmethod
    def mention(user: str) -> str:
        return f"<@{user}>"

    def format_open_request(self, channel: FeedbackChannel, entry: OpenRequest) -> str:
        return f"- {self.message_link(channel, entry.msg, entry.thread)} from {self.mention(entry.user)}"

    def format_open_list(self, lines: List[str]) -> str:
        if not lines:
            return NO_OPEN_MESSAGES
        return OPEN_LIST_HEADER + "\n" + "\n".join(lines)
