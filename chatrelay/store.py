"""Append-only chat log backed by a single UTF-8 text file."""

import os
from datetime import datetime

from chatrelay.errors import LogStoreError

TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S"


def format_entry(message: str, now: datetime) -> str:
    """Build one log line: local timestamp, a space, then the message as received."""
    return f"{now.strftime(TIMESTAMP_FORMAT)} {message}"


class LogStore:
    """Owns the chat log file.

    The file is opened per operation, so every connection thread works
    through the filesystem rather than a shared handle. Each append is a
    single write to a file opened in append mode.
    """

    def __init__(self, path: str, time_func=None):
        self._path = path
        self._time_func = time_func or datetime.now

    @property
    def path(self) -> str:
        return self._path

    def ensure_exists(self) -> bool:
        """Create the log file if absent. Returns True if it was created."""
        if os.path.isfile(self._path):
            return False
        try:
            with open(self._path, "a", encoding="utf-8"):
                pass
        except OSError as exc:
            raise LogStoreError(f"Cannot create {self._path}: {exc}") from exc
        return True

    def append(self, entry: str):
        """Append one entry followed by a newline."""
        try:
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(entry + "\n")
        except OSError as exc:
            raise LogStoreError(f"Cannot append to {self._path}: {exc}") from exc

    def append_message(self, message: str) -> str:
        """Timestamp a message with the local clock and append it. Returns the entry."""
        entry = format_entry(message, self._time_func())
        self.append(entry)
        return entry

    def read_all(self) -> str:
        """Return the whole file as text."""
        try:
            with open(self._path, "r", encoding="utf-8", newline="") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as exc:
            raise LogStoreError(f"Cannot read {self._path}: {exc}") from exc
