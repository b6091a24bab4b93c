"""
Startup configuration for the feedback gate.

Values come from the environment, with a local ``.env`` file loaded first.
The resulting ``Settings`` object is an immutable snapshot for the process
lifetime.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, Iterator, Mapping, Optional

from dotenv import load_dotenv

from .exceptions import ConfigError

DEFAULT_DB_PATH = "config/ledger.db"
DEFAULT_MIN_MSG_LEN = 20
DEFAULT_PERMISSION_TIMEOUT_DAYS = 5
DEFAULT_WORKER_COUNT = 4
DEFAULT_WORKSPACE_URL = "https://slack.com"


@dataclass(frozen=True)
class FeedbackChannel:
    """A (guild, channel) pair taking part in the credit economy."""
    guild: str
    channel: str

    @property
    def key(self) -> str:
        """Ledger key of this channel's open-request list."""
        return f"fc_{self.guild},{self.channel}"

    @classmethod
    def parse(cls, raw: str) -> "FeedbackChannel":
        """Parse a ``TEAM:CHANNEL`` pair."""
        guild, sep, channel = raw.strip().partition(":")
        guild, channel = guild.strip(), channel.strip()
        if not sep or not guild or not channel:
            raise ConfigError(f"Invalid feedback channel '{raw}', expected TEAM:CHANNEL")
        return cls(guild=guild, channel=channel)


class ChannelRegistry:
    """Static set of participating channels, consulted before any ledger access."""

    def __init__(self, channels: Iterable[FeedbackChannel]):
        self._channels: FrozenSet[FeedbackChannel] = frozenset(channels)

    def lookup(self, guild: Optional[str], channel: Optional[str]) -> Optional[FeedbackChannel]:
        """Return the descriptor for a participating pair, or None."""
        if not guild or not channel:
            return None
        candidate = FeedbackChannel(guild=guild, channel=channel)
        return candidate if candidate in self._channels else None

    def __contains__(self, item: FeedbackChannel) -> bool:
        return item in self._channels

    def __iter__(self) -> Iterator[FeedbackChannel]:
        return iter(sorted(self._channels, key=lambda c: (c.guild, c.channel)))

    def __len__(self) -> int:
        return len(self._channels)


@dataclass(frozen=True)
class Settings:
    bot_token: str
    app_token: str
    channels: FrozenSet[FeedbackChannel]
    signing_secret: Optional[str] = None
    user_token: Optional[str] = None
    bot_user_id: Optional[str] = None
    min_msg_len: int = DEFAULT_MIN_MSG_LEN
    permission_timeout_days: int = DEFAULT_PERMISSION_TIMEOUT_DAYS
    db_path: Path = Path(DEFAULT_DB_PATH)
    worker_count: int = DEFAULT_WORKER_COUNT
    workspace_url: str = DEFAULT_WORKSPACE_URL
    log_level: str = "INFO"

    def registry(self) -> ChannelRegistry:
        return ChannelRegistry(self.channels)


def parse_channels(raw: str) -> FrozenSet[FeedbackChannel]:
    """Parse a comma separated list of ``TEAM:CHANNEL`` pairs."""
    channels = frozenset(FeedbackChannel.parse(item) for item in raw.split(",") if item.strip())
    if not channels:
        raise ConfigError("FEEDBACK_CHANNELS must list at least one TEAM:CHANNEL pair")
    return channels


def _int_setting(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'") from None
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _optional(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(name, "").strip()
    return value or None


def _log_level(env: Mapping[str, str]) -> str:
    level = (env.get("LOG_LEVEL", "").strip() or "INFO").upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigError(f"LOG_LEVEL must be a logging level name, got '{level}'")
    return level


def load_settings(env: Optional[Mapping[str, str]] = None, require_tokens: bool = True) -> Settings:
    """Build ``Settings`` from the environment.

    When ``env`` is omitted the process environment is used, after loading
    variables from a ``.env`` file in the working directory. Offline tools
    pass ``require_tokens=False`` to read the ledger without Slack credentials.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    required_vars = ["FEEDBACK_CHANNELS"]
    if require_tokens:
        required_vars = ["SLACK_BOT_TOKEN", "SLACK_APP_TOKEN"] + required_vars
    missing_vars = [var for var in required_vars if not env.get(var, "").strip()]
    if missing_vars:
        raise ConfigError(f"Missing required environment variables: {missing_vars}")

    return Settings(
        bot_token=env.get("SLACK_BOT_TOKEN", "").strip(),
        app_token=env.get("SLACK_APP_TOKEN", "").strip(),
        channels=parse_channels(env["FEEDBACK_CHANNELS"]),
        signing_secret=_optional(env, "SLACK_SIGNING_SECRET"),
        user_token=_optional(env, "SLACK_USER_TOKEN"),
        bot_user_id=_optional(env, "BOT_USER_ID"),
        min_msg_len=_int_setting(env, "MIN_MSG_LEN", DEFAULT_MIN_MSG_LEN),
        permission_timeout_days=_int_setting(
            env, "PERMISSION_TIMEOUT_DAYS", DEFAULT_PERMISSION_TIMEOUT_DAYS
        ),
        db_path=Path(env.get("LEDGER_DB_PATH", "").strip() or DEFAULT_DB_PATH),
        worker_count=_int_setting(env, "WORKER_COUNT", DEFAULT_WORKER_COUNT, minimum=1),
        workspace_url=(env.get("SLACK_WORKSPACE_URL", "").strip() or DEFAULT_WORKSPACE_URL).rstrip("/"),
        log_level=_log_level(env),
    )
