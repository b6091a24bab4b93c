"""
Message classification: feedback requests and feedback replies.
"""
import re

from .models import ChatMessage

LINK_PATTERN = re.compile(r"(http(s)?://)[-a-zA-Z0-9@:%._+~#=]+\.[a-z]+\b")
AUDIO_EXTENSIONS = (".mp3", ".wav")


def is_feedback_request(message: ChatMessage) -> bool:
    """True if the message carries a web link or an audio attachment."""
    link_result = LINK_PATTERN.search(message.content or "") is not None
    file_result = any(attachment.endswith(AUDIO_EXTENSIONS) for attachment in message.attachments)

    return link_result or file_result


def is_feedback_reply(message: ChatMessage, min_length: int) -> bool:
    """True if the message is a long enough reply to someone else's request.

    Length is measured in UTF-8 bytes. An unresolved referenced message is a
    negative classification.
    """
    if message.is_reply and len((message.content or "").encode("utf-8")) > min_length:
        ref_msg = message.referenced
        if ref_msg is not None:
            return is_feedback_request(ref_msg) and ref_msg.author != message.author
    return False
