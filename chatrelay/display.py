"""Terminal rendering for the chat log."""

import os
import sys


def clear_terminal():
    os.system("cls" if os.name == "nt" else "clear")


class TerminalDisplay:
    """Clears the screen and prints the whole conversation."""

    def __init__(self, stream=None, clear_func=None):
        self._stream = stream or sys.stdout
        self._clear = clear_func or clear_terminal

    def render(self, lines: list[str]):
        self._clear()
        for line in lines:
            print(line, file=self._stream)
        print(file=self._stream)
        self._stream.flush()
