"""Exception hierarchy shared by the server and the client."""


class ChatRelayError(Exception):
    """Base class for chat relay failures."""


class RequestParseError(ChatRelayError):
    """The request line was absent or had fewer than two tokens."""


class LogStoreError(ChatRelayError, IOError):
    """The log file could not be opened, read or written."""


class ChatConnectionError(ChatRelayError, ConnectionError):
    """A request to the chat server failed at the network level."""


class ChatDecodeError(ChatRelayError, ValueError):
    """A server response or a log line could not be decoded."""
