#!/usr/bin/env python3
"""
Launcher for the EventSub chat bot
"""

from eventbot.main import run

if __name__ == "__main__":
    run()
