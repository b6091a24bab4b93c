#!/usr/bin/env python3
"""
Ledger Administration Tool - inspect open requests and credits.
"""

import sys
import argparse
from datetime import datetime, timezone
from pathlib import Path

# Add the project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from feedback_gate.config import load_settings
from feedback_gate.exceptions import ConfigError, LedgerError, UnknownChannelError
from feedback_gate.ledger.ledger_storage import LedgerStorage
from feedback_gate.utils.request_formatter import RequestFormatter


def show_open(storage: LedgerStorage, settings):
    """Show open requests for every configured channel."""
    formatter = RequestFormatter(settings.workspace_url)

    print("=" * 50)
    print("OPEN FEEDBACK REQUESTS")
    print("=" * 50)

    for channel in settings.registry():
        try:
            entries = storage.open_requests(channel)
        except UnknownChannelError:
            print(f"\n{channel.guild}:{channel.channel} (not initialized, run init)")
            continue
        print(f"\n{channel.guild}:{channel.channel} ({len(entries)} open)")
        print("-" * 30)
        if not entries:
            print("• No open messages")
        for entry in entries:
            print(formatter.format_open_request(channel, entry))


def show_credits(storage: LedgerStorage, settings):
    """Show unused credits with their age in days."""
    now = datetime.now(timezone.utc)
    entries = storage.credit_entries()

    print("=" * 50)
    print("UNUSED CREDITS")
    print("=" * 50)
    print(f"Permission timeout: {settings.permission_timeout_days} days")

    if not entries:
        print("• No credits held")
        return

    for (user, guild), entry in entries.items():
        age = (now - entry.last_reply).days
        status = "expired" if age > settings.permission_timeout_days else "valid"
        print(f"• {user} in {guild}: earned {entry.last_reply.isoformat()} ({age} days, {status})")


def init_channels(storage: LedgerStorage, settings):
    """Create missing open-request lists for the configured channels."""
    storage.init_channels(settings.channels)
    print(f"✅ Open-request lists ready for {len(settings.channels)} channels")


def main():
    parser = argparse.ArgumentParser(description="Feedback Gate Ledger Administration")
    parser.add_argument('command', choices=['open', 'credits', 'init'],
                       help='Command to execute')
    parser.add_argument('--db', default=None,
                       help='Ledger file (default: LEDGER_DB_PATH)')

    args = parser.parse_args()

    try:
        settings = load_settings(require_tokens=False)
        storage = LedgerStorage(args.db or settings.db_path)

        if args.command == 'open':
            show_open(storage, settings)
        elif args.command == 'credits':
            show_credits(storage, settings)
        elif args.command == 'init':
            init_channels(storage, settings)

    except (ConfigError, LedgerError) as e:
        print(f"Error: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
