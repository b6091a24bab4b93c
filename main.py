#!/usr/bin/env python3
"""
Feedback Gate - Main Application Entry Point

Starts the Slack bot in Socket Mode. Configuration comes from the
environment or a local .env file (see .env.example).
"""

import sys
from pathlib import Path

# Add the source tree to the path when running from a checkout
sys.path.insert(0, str(Path(__file__).parent / "src"))

from feedback_gate.slack_bot_socket import main

if __name__ == "__main__":
    main()
