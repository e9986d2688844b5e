"""TCP accept loop — spawns a thread per client connection."""

import logging
import socket
import threading

from chatrelay.config import Config
from chatrelay.handler import handle_client
from chatrelay.store import LogStore

logger = logging.getLogger(__name__)


class ChatServer:
    """Multi-threaded chat relay server over a single append-only log."""

    def __init__(self, config: Config, shutdown_event: threading.Event,
                 store: LogStore | None = None):
        self._config = config
        self._shutdown_event = shutdown_event
        self._store = store or LogStore(config.log_file)
        self._sock = None
        self._server_address = None

    @property
    def server_address(self) -> tuple:
        """Return (host, port) the server is bound to. Useful when port=0."""
        return self._server_address

    @property
    def store(self) -> LogStore:
        return self._store

    def bind(self) -> tuple:
        """Create the listening socket. Returns the bound address."""
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.settimeout(1.0)
        self._sock.bind((self._config.host, self._config.port))
        self._sock.listen(5)
        self._server_address = self._sock.getsockname()
        return self._server_address

    def start(self):
        """Bind (if needed), listen, and accept connections until shutdown."""
        if self._sock is None:
            self.bind()
        logger.info("Server listening on %s:%d", *self._server_address)

        while not self._shutdown_event.is_set():
            try:
                conn, addr = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break

            conn.settimeout(None)
            t = threading.Thread(
                target=handle_client,
                args=(conn, addr, self._config, self._store),
                daemon=True,
            )
            t.start()

    def stop(self):
        """Signal shutdown and close the listen socket."""
        logger.info("Server shutting down...")
        self._shutdown_event.set()
        if self._sock:
            try:
                self._sock.close()
            except OSError:
                pass
