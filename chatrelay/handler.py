"""Per-connection handler — one request, one response, then close."""

import logging
import socket

from chatrelay.config import Config
from chatrelay.errors import LogStoreError, RequestParseError
from chatrelay.protocol import (
    AppendRequest,
    HttpResponse,
    NotFoundRequest,
    ReadLogsRequest,
    RequestKind,
    classify_target,
    logs_response,
    no_logs_response,
    not_found_response,
    read_request_target,
    store_failed_response,
)
from chatrelay.store import LogStore

logger = logging.getLogger(__name__)


def _read_logs(store: LogStore) -> HttpResponse:
    try:
        return logs_response(store.read_all())
    except LogStoreError as exc:
        logger.warning("Log read failed: %s", exc)
        return no_logs_response()


def dispatch(request: RequestKind, store: LogStore) -> HttpResponse:
    """Run a classified request against the store and build its response."""
    if isinstance(request, AppendRequest):
        try:
            entry = store.append_message(request.message)
        except LogStoreError as exc:
            logger.error("Append from %r failed: %s", request.user, exc)
            return store_failed_response()
        logger.info("Appended message from %r: %s", request.user, entry)
        return _read_logs(store)
    if isinstance(request, ReadLogsRequest):
        return _read_logs(store)
    if isinstance(request, NotFoundRequest):
        logger.debug("Unknown target %r", request.target)
        return not_found_response()
    raise TypeError(f"Unhandled request kind: {type(request).__name__}")


def handle_client(conn: socket.socket, addr: tuple, config: Config, store: LogStore):
    """Handle a single client connection. Runs in its own thread."""
    logger.debug("Client connected: %s:%d", addr[0], addr[1])
    rfile = conn.makefile("rb")
    try:
        try:
            target = read_request_target(rfile, config.max_request_line)
        except RequestParseError as exc:
            logger.debug("Dropping %s:%d: %s", addr[0], addr[1], exc)
            return
        except OSError as exc:
            logger.debug("Read from %s:%d failed: %s", addr[0], addr[1], exc)
            return

        response = dispatch(classify_target(target), store)
        try:
            conn.sendall(response.to_bytes())
        except OSError as exc:
            logger.debug("Write to %s:%d failed: %s", addr[0], addr[1], exc)
    except Exception:
        logger.exception("Unexpected error handling %s:%d", addr[0], addr[1])
    finally:
        rfile.close()
        conn.close()
        logger.debug("Client disconnected: %s:%d", addr[0], addr[1])
