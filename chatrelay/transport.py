"""HTTP calls the client makes against the chat server."""

import json
from urllib.parse import quote

import httpx

from chatrelay.errors import ChatConnectionError, ChatDecodeError


def parse_address(address: str) -> tuple[str, int]:
    """Split an ``ip:port`` string into (host, port).

    IPv6 hosts must be bracketed, as in ``[::1]:8080``; the brackets are
    stripped from the returned host.
    """
    host, sep, port = address.strip().rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"Expected ip:port, got {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
        if not host:
            raise ValueError(f"Empty IPv6 host in {address!r}")
    elif ":" in host:
        raise ValueError(f"IPv6 hosts must be bracketed, got {address!r}")
    port_num = int(port)
    if not 0 < port_num < 65536:
        raise ValueError(f"Port out of range: {port_num}")
    return host, port_num


def decode_logs_body(body: str) -> str:
    """Extract the ``logs`` string from a /logs response body."""
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as exc:
        raise ChatDecodeError(f"Response is not JSON: {body[:200]!r}") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("logs"), str):
        raise ChatDecodeError(f"Unexpected response shape: {body[:200]!r}")
    return payload["logs"]


class ChatTransport:
    """One connection per request against ``http://host:port``."""

    def __init__(self, host: str, port: int, timeout: float | None = None,
                 transport: httpx.AsyncBaseTransport | None = None):
        netloc = f"[{host}]" if ":" in host else host
        self._base_url = f"http://{netloc}:{port}"
        self._client = httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(max_keepalive_connections=0),
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def message_url(self, user: str, text: str) -> str:
        return f"{self._base_url}/{quote(user, safe='')}?{quote(text.strip(), safe='')}"

    async def send_message(self, user: str, text: str):
        """Append a message on the server. Raises ChatConnectionError on failure."""
        try:
            await self._client.get(self.message_url(user, text))
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ChatConnectionError(f"Send to {self._base_url} failed: {exc}") from exc

    async def fetch_logs(self) -> str:
        """Return the full log text from ``/logs``."""
        try:
            response = await self._client.get(f"{self._base_url}/logs")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise ChatConnectionError(f"Poll of {self._base_url} failed: {exc}") from exc
        return decode_logs_body(response.text)

    async def aclose(self):
        await self._client.aclose()
