#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Domain Watch launcher
- Settings come from .env (CHECK_DOMAIN, RECIPIENT_NUMBER, ...), loaded by the CLI
- Starts the bot: connect the WhatsApp session, check once, then daily at 09:00
- Extra arguments are passed to the CLI (e.g. `check example.com`)

Usage (after `pip install -e .`):
    python watch_bot.py            # same as `domain-watch run`
    python watch_bot.py check example.com
"""

import sys

from domain_watch.cli import main

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:] or ["run"]))
