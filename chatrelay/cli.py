"""Command-line entry point: no user argument runs the server, a user name runs the client."""

import argparse
import asyncio
import logging
import signal
import sys
import threading
from dataclasses import replace

from chatrelay.client import ClientPoller, ClientSender, ConsoleInput
from chatrelay.config import Config, load_config
from chatrelay.display import TerminalDisplay
from chatrelay.errors import ChatRelayError, LogStoreError
from chatrelay.server import ChatServer
from chatrelay.shutdown import ShutdownCoordinator
from chatrelay.transport import ChatTransport, parse_address

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Minimal text-chat relay")
    parser.add_argument("user", nargs="?", help="Run as a client with this user name")
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--host", help="Server bind host")
    parser.add_argument("--port", type=int, help="Server bind port (0 = any)")
    parser.add_argument("--log-file", dest="log_file", help="Chat log file")
    parser.add_argument("--server", dest="server_address", help="Server address as ip:port")
    parser.add_argument("--poll-interval", dest="poll_interval", type=float,
                        help="Seconds between polls (0 = back-to-back)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def _prompt(text: str) -> str:
    print(text, end="", flush=True)
    return sys.stdin.readline().strip()


def run_server(config: Config) -> int:
    log_file = config.log_file or _prompt("Enter a filename to store the logs (eg. logs.txt): ")
    if not log_file:
        print("No log filename given", file=sys.stderr)
        return 1

    shutdown_event = threading.Event()
    server = ChatServer(replace(config, log_file=log_file), shutdown_event)
    try:
        created = server.store.ensure_exists()
        print(f"{'Created' if created else 'Opened'} {log_file} log file")
    except LogStoreError as exc:
        logger.error("%s", exc)
        print("Failed to create file!")

    def signal_handler(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    host, port = server.bind()
    print(f"Server running at: http://{host}:{port}", flush=True)
    try:
        server.start()
    finally:
        server.stop()
    return 0


async def run_client_session(user: str, host: str, port: int, config: Config,
                             console: ConsoleInput | None = None,
                             display: TerminalDisplay | None = None):
    transport = ChatTransport(host, port, timeout=config.timeout)
    coordinator = ShutdownCoordinator()
    console = console or ConsoleInput()
    console.start()
    coordinator.install_signal_handlers()

    sender = ClientSender(user, transport, console.readline, coordinator.event)
    poller = ClientPoller(
        transport,
        display or TerminalDisplay(),
        coordinator.event,
        poll_interval=config.poll_interval,
        max_retries=config.max_retries,
        retry_base_delay=config.retry_base_delay,
        retry_max_delay=config.retry_max_delay,
    )
    try:
        await coordinator.run(
            asyncio.create_task(sender.run(), name="sender"),
            asyncio.create_task(poller.run(), name="poller"),
        )
    finally:
        coordinator.remove_signal_handlers()
        await transport.aclose()


def run_client(user: str, config: Config) -> int:
    try:
        address = config.server_address or _prompt("Enter server address (e.g. 127.0.0.1:PORT): ")
        try:
            host, port = parse_address(address)
        except ValueError as exc:
            print(f"Invalid server address: {exc}", file=sys.stderr)
            return 1
        asyncio.run(run_client_session(user, host, port, config))
    except KeyboardInterrupt:
        # interrupted before the session's own signal handlers were installed
        print("\nExited.")
    except ChatRelayError as exc:
        logger.error("Client stopped: %s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    default_level = logging.INFO if args.user is None else logging.WARNING
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else default_level,
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_config(args.config, vars(args))
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    if args.user is None:
        return run_server(config)
    return run_client(args.user, config)


if __name__ == "__main__":
    sys.exit(main())
