"""
Persistent credit ledger and open-request tracker.

A single SQLite key/value table holds both logical tables, JSON encoded:

- ``f_{user},{guild}``     -> credit entry ``{"last_reply": "<ISO-8601 UTC>"}``
- ``fc_{guild},{channel}`` -> ordered list of ``{"user": ..., "msg": ...}``

Every public operation holds one store-wide lock for its whole duration,
including the commit, so individual calls never interleave.
"""
import json
import logging
import sqlite3
import threading
from contextlib import closing, contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from ..config import FeedbackChannel
from ..exceptions import LedgerError, OpenRequestNotFoundError, UnknownChannelError

# Configure logging
logger = logging.getLogger(__name__)

CREDIT_PREFIX = "f_"
CHANNEL_PREFIX = "fc_"


@dataclass(frozen=True)
class CreditEntry:
    """An unused permission to post a feedback request."""
    last_reply: datetime

    def to_json(self) -> Dict[str, str]:
        return {"last_reply": self.last_reply.astimezone(timezone.utc).isoformat()}

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "CreditEntry":
        raw = data["last_reply"]
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        parsed = datetime.fromisoformat(raw)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return cls(last_reply=parsed.astimezone(timezone.utc))


@dataclass(frozen=True)
class OpenRequest:
    """A feedback request still waiting for a qualifying reply.

    Identity is (user, msg). ``thread`` is the parent of a request that was
    itself posted as a thread reply, kept only to link to it.
    """
    user: str
    msg: str
    thread: Optional[str] = field(default=None, compare=False)

    def to_json(self) -> Dict[str, str]:
        data = {"user": self.user, "msg": self.msg}
        if self.thread:
            data["thread"] = self.thread
        return data

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "OpenRequest":
        thread = data.get("thread")
        return cls(user=str(data["user"]), msg=str(data["msg"]), thread=str(thread) if thread else None)


def credit_key(user: str, guild: str) -> str:
    return f"{CREDIT_PREFIX}{user},{guild}"


class LedgerStorage:
    def __init__(self, db_path: str = "config/ledger.db"):
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self.init_database()

    def init_database(self):
        """Open the ledger file, replacing it with a fresh store if unreadable."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._create_table()
        except sqlite3.DatabaseError as e:
            backup = self.db_path.with_name(self.db_path.name + ".corrupt")
            logger.error(f"Ledger at {self.db_path} is unreadable ({e}), moving it to {backup} and starting fresh")
            self.db_path.replace(backup)
            self._create_table()

    def _create_table(self):
        with closing(sqlite3.connect(self.db_path)) as conn, conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS ledger (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            # Forces a read so a non-database file fails here, not on first traffic
            conn.execute("SELECT COUNT(*) FROM ledger").fetchone()

    def init_channels(self, channels: Iterable[FeedbackChannel]):
        """Ensure an open-request list exists for every configured channel."""
        with self._lock, self._connect() as conn:
            for channel in channels:
                created = conn.execute(
                    "INSERT OR IGNORE INTO ledger (key, value) VALUES (?, ?)",
                    (channel.key, "[]"),
                ).rowcount
                if created:
                    logger.info(f"Created open-request list for {channel.key}")

    def take_credit(self, user: str, guild: str) -> Optional[CreditEntry]:
        """Remove and return the credit of (user, guild), if there is one."""
        key = credit_key(user, guild)
        with self._lock, self._connect() as conn:
            value = self._get(conn, key)
            if value is None:
                return None
            conn.execute("DELETE FROM ledger WHERE key = ?", (key,))
            return CreditEntry.from_json(value)

    def grant_credit(self, user: str, guild: str, entry: CreditEntry):
        """Set the credit of (user, guild), overwriting any previous one."""
        with self._lock, self._connect() as conn:
            self._set(conn, credit_key(user, guild), entry.to_json())

    def get_credit(self, user: str, guild: str) -> Optional[CreditEntry]:
        """Read a credit without consuming it."""
        with self._lock, self._connect() as conn:
            value = self._get(conn, credit_key(user, guild))
            return CreditEntry.from_json(value) if value is not None else None

    def has_credit(self, user: str, guild: str) -> bool:
        return self.get_credit(user, guild) is not None

    def credit_entries(self) -> Dict[Tuple[str, str], CreditEntry]:
        """All credit entries keyed by (user, guild)."""
        entries = {}
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                "SELECT key, value FROM ledger WHERE key GLOB ? ORDER BY key",
                (f"{CREDIT_PREFIX}*",),
            )
            for key, value in cursor.fetchall():
                user, _, guild = key[len(CREDIT_PREFIX):].partition(",")
                entries[(user, guild)] = CreditEntry.from_json(json.loads(value))
        return entries

    def add_open_request(self, channel: FeedbackChannel, entry: OpenRequest):
        """Append an open request to the channel's list."""
        with self._lock, self._connect() as conn:
            items = self._get_list(conn, channel)
            items.append(entry.to_json())
            self._set(conn, channel.key, items)

    def remove_open_request(self, channel: FeedbackChannel, entry: OpenRequest):
        """Remove the first open request equal to ``entry`` from the channel's list."""
        with self._lock, self._connect() as conn:
            items = self._get_list(conn, channel)
            for index, item in enumerate(items):
                if OpenRequest.from_json(item) == entry:
                    del items[index]
                    break
            else:
                raise OpenRequestNotFoundError(
                    f"Open request {entry.msg} from {entry.user} is not tracked in {channel.key}"
                )
            self._set(conn, channel.key, items)

    def for_each_open_request(self, channel: FeedbackChannel, visitor: Callable[[OpenRequest], None]):
        """Call ``visitor`` for every open request of the channel, in insertion order."""
        with self._lock, self._connect() as conn:
            for item in self._get_list(conn, channel):
                visitor(OpenRequest.from_json(item))

    def open_requests(self, channel: FeedbackChannel) -> List[OpenRequest]:
        """Snapshot of the channel's open requests."""
        items: List[OpenRequest] = []
        self.for_each_open_request(channel, items.append)
        return items

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Connection committed on success and always closed."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise LedgerError(f"Cannot open ledger at {self.db_path}: {e}") from e
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise LedgerError(f"Ledger operation failed on {self.db_path}: {e}") from e
        finally:
            conn.close()

    def _get(self, conn: sqlite3.Connection, key: str) -> Optional[Any]:
        row = conn.execute("SELECT value FROM ledger WHERE key = ?", (key,)).fetchone()
        return json.loads(row[0]) if row else None

    def _set(self, conn: sqlite3.Connection, key: str, value: Any):
        conn.execute(
            "INSERT OR REPLACE INTO ledger (key, value) VALUES (?, ?)",
            (key, json.dumps(value)),
        )

    def _get_list(self, conn: sqlite3.Connection, channel: FeedbackChannel) -> List[Dict[str, Any]]:
        items = self._get(conn, channel.key)
        if items is None:
            raise UnknownChannelError(f"No open-request list for {channel.key}")
        return items
