"""Chat client tasks: the input sender and the log poller."""

import asyncio
import enum
import errno
import logging
import random
import sys
import threading
from urllib.parse import unquote

from chatrelay.display import TerminalDisplay
from chatrelay.errors import ChatConnectionError, ChatDecodeError
from chatrelay.transport import ChatTransport

logger = logging.getLogger(__name__)


async def wait_for_event(event: asyncio.Event, timeout: float) -> bool:
    """Wait up to timeout seconds for event. Returns True if it was set."""
    try:
        await asyncio.wait_for(event.wait(), timeout)
        return True
    except asyncio.TimeoutError:
        return event.is_set()


class ConsoleInput:
    """Reads lines from a text stream on a daemon thread.

    A read blocked on the terminal never holds up shutdown: the thread is a
    daemon and the awaiting coroutine can simply be cancelled.
    """

    max_read_errors = 5

    def __init__(self, stream=None):
        self._stream = stream or sys.stdin
        self._queue: asyncio.Queue = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None

    def start(self):
        """Start the reader thread. Must be called from inside the event loop."""
        self._loop = asyncio.get_running_loop()
        self._thread = threading.Thread(target=self._reader, daemon=True)
        self._thread.start()

    def _reader(self):
        failures = 0
        while True:
            try:
                line = self._stream.readline()
            except OSError as exc:
                failures += 1
                if exc.errno == errno.EBADF or failures >= self.max_read_errors:
                    logger.warning("Input unreadable, treating as end of input: %s", exc)
                    line = ""
                else:
                    self._loop.call_soon_threadsafe(self._queue.put_nowait, exc)
                    continue
            except UnicodeDecodeError as exc:
                self._loop.call_soon_threadsafe(self._queue.put_nowait, exc)
                continue
            except ValueError:
                # stream closed underneath us
                line = ""
            else:
                failures = 0
            self._loop.call_soon_threadsafe(self._queue.put_nowait, line)
            if line == "":
                return

    async def readline(self) -> str:
        """Return the next line. Raises EOFError at end of input."""
        item = await self._queue.get()
        if isinstance(item, Exception):
            raise item
        if item == "":
            raise EOFError("end of input")
        return item


class SenderState(enum.Enum):
    JOIN_ANNOUNCE = "join_announce"
    RELAY = "relay"


class ClientSender:
    """Announces the user once, then relays each input line to the server."""

    def __init__(self, user: str, transport: ChatTransport, read_line,
                 shutdown_event: asyncio.Event):
        self._user = user
        self._transport = transport
        self._read_line = read_line
        self._shutdown = shutdown_event
        self.state = SenderState.JOIN_ANNOUNCE

    def format_message(self, text: str) -> str:
        return f"{self._user}: {text.strip()}"

    async def _send(self, text: str):
        try:
            await self._transport.send_message(self._user, self.format_message(text))
        except ChatConnectionError as exc:
            logger.debug("Dropped message: %s", exc)

    async def step(self) -> bool:
        """Run one iteration. Returns False once input is exhausted."""
        if self.state is SenderState.JOIN_ANNOUNCE:
            await self._send(f"{self._user} joined...")
            self.state = SenderState.RELAY
            return True

        try:
            line = await self._read_line()
        except EOFError:
            logger.info("End of input, sender stopping")
            return False
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("Skipping unreadable input: %s", exc)
            return True

        await self._send(line)
        return True

    async def run(self):
        while not self._shutdown.is_set():
            if not await self.step():
                return


def decode_log_lines(text: str) -> list[str]:
    """Split log text on newlines and percent-decode every line."""
    lines = []
    for raw in text.split("\n"):
        try:
            lines.append(unquote(raw, errors="strict"))
        except UnicodeDecodeError as exc:
            raise ChatDecodeError(f"Cannot decode log line {raw[:200]!r}") from exc
    return lines


def should_redraw(lines: list[str], cache: list[str]) -> bool:
    """Redraw whenever non-empty content differs from what is on screen."""
    return bool(lines) and lines != cache


class ClientPoller:
    """Polls /logs and redraws the terminal when the conversation changes."""

    def __init__(self, transport: ChatTransport, display: TerminalDisplay,
                 shutdown_event: asyncio.Event, poll_interval: float = 0.25,
                 max_retries: int = 5, retry_base_delay: float = 0.5,
                 retry_max_delay: float = 10.0):
        self._transport = transport
        self._display = display
        self._shutdown = shutdown_event
        self._poll_interval = poll_interval
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self.cache: list[str] = []

    def backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with jitter for the given 1-based attempt."""
        delay = min(self._retry_base_delay * (2 ** (attempt - 1)), self._retry_max_delay)
        return delay + random.uniform(0, delay * 0.3)

    async def fetch(self) -> str | None:
        """Fetch the log text, retrying network failures.

        Returns None if shutdown was requested while backing off. Raises
        ChatConnectionError once the retry budget is spent.
        """
        attempt = 0
        while True:
            try:
                return await self._transport.fetch_logs()
            except ChatConnectionError as exc:
                attempt += 1
                if attempt > self._max_retries:
                    logger.error("Giving up after %d retries: %s", self._max_retries, exc)
                    raise
                delay = self.backoff_delay(attempt)
                logger.warning("Poll failed (%s), retrying in %.1fs (attempt %d)",
                               exc, delay, attempt)
                if await wait_for_event(self._shutdown, delay):
                    return None

    def update(self, text: str) -> bool:
        """Apply a fresh log snapshot. Returns True if the screen was redrawn."""
        lines = decode_log_lines(text)
        if not should_redraw(lines, self.cache):
            return False
        self.cache = lines
        self._display.render(lines)
        return True

    async def poll_once(self) -> bool:
        text = await self.fetch()
        if text is None:
            return False
        return self.update(text)

    async def run(self):
        while not self._shutdown.is_set():
            await self.poll_once()
            if self._poll_interval > 0:
                await wait_for_event(self._shutdown, self._poll_interval)
            else:
                await asyncio.sleep(0)
