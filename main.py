"""Entry point for the chat relay: ``python main.py`` serves, ``python main.py <user>`` chats."""

import sys

from chatrelay.cli import main

if __name__ == "__main__":
    sys.exit(main())
