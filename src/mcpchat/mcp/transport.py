"""Transports — NDJSON-over-HTTP and stdio communication layers.

Each transport satisfies the :class:`Transport` protocol, providing
``connect``, ``send``, ``messages``, and ``close``.  ``messages`` yields
every inbound JSON object in arrival order; correlating them with requests
is the job of :class:`~mcpchat.mcp.session.ClientSession`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shlex
from collections.abc import AsyncIterator
from typing import Any, Protocol, runtime_checkable

import httpx

from mcpchat.errors import TransportError

logger = logging.getLogger(__name__)

# Largest NDJSON record the stdio reader accepts; tool results can be big.
STDIO_LINE_LIMIT = 16 * 1024 * 1024


@runtime_checkable
class Transport(Protocol):
    """Abstract bidirectional channel for JSON-RPC messages."""

    async def connect(self) -> None: ...
    async def send(self, data: dict[str, Any]) -> None: ...
    def messages(self) -> AsyncIterator[dict[str, Any]]: ...
    async def close(self) -> None: ...


def _parse_line(line: str) -> dict[str, Any] | None:
    """Decode one NDJSON record; blank, malformed, and non-object lines give ``None``."""
    line = line.strip()
    if not line:
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed line: %.80s", line)
        return None
    if not isinstance(data, dict):
        logger.debug("Skipping non-object record: %.80s", line)
        return None
    return data


class StreamableHttpTransport:
    """Talks to the tool server with line-delimited JSON over plain HTTP.

    Outbound messages are POSTed to ``{base}{write_path}``; inbound messages
    arrive as an NDJSON stream from ``GET {base}{read_path}``.  When the read
    endpoint answers 404 the transport probes :attr:`PROBE_CANDIDATES` in
    order and switches both paths to the first pair that responds.
    """

    PROBE_CANDIDATES: tuple[tuple[str, str], ...] = (
        ("/read", "/write"),
        ("/stream/read", "/stream/write"),
        ("/events", "/send"),
    )

    def __init__(
        self,
        base_url: str,
        *,
        read_path: str = "/read",
        write_path: str = "/write",
        handshake_path: str | None = "/client",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self.read_path = read_path
        self.write_path = write_path
        self._handshake_path = handshake_path
        self._client = client
        self._owns_client = client is None
        self._stream: httpx.Response | None = None

    @property
    def read_url(self) -> str:
        return self._base_url + self.read_path

    @property
    def write_url(self) -> str:
        return self._base_url + self.write_path

    async def connect(self) -> None:
        """Open the HTTP client and attempt the optional handshake."""
        if self._client is None:
            # The read stream is long-lived, so reads never time out.
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(30.0, read=None))
            self._owns_client = True

        if self._handshake_path is None:
            logger.debug("Skipping handshake")
            return

        handshake_url = self._base_url + self._handshake_path
        try:
            response = await self._client.post(handshake_url)
            logger.debug("Handshake %s -> %s", handshake_url, response.status_code)
        except httpx.HTTPError as exc:
            logger.debug("Handshake %s failed: %s", handshake_url, exc)

    async def send(self, data: dict[str, Any]) -> None:
        """POST one JSON message to the write endpoint."""
        client = self._http()
        try:
            response = await client.post(self.write_url, json=data)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TransportError(f"POST {self.write_url} failed: {exc}") from exc

    async def messages(self) -> AsyncIterator[dict[str, Any]]:
        """Yield every JSON object from the read stream until it ends."""
        stream = await self._open_read_stream()
        self._stream = stream
        logger.debug("Read stream %s -> %s", self.read_url, stream.status_code)
        try:
            async for line in stream.aiter_lines():
                message = _parse_line(line)
                if message is not None:
                    yield message
        except httpx.HTTPError as exc:
            raise TransportError(f"Read stream {self.read_url} failed: {exc}") from exc
        finally:
            await stream.aclose()
            if self._stream is stream:
                self._stream = None

    async def close(self) -> None:
        """Abort the read stream and release the HTTP client."""
        if self._stream is not None:
            await self._stream.aclose()
            self._stream = None
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "Transport not connected"
            raise TransportError(msg)
        return self._client

    async def _get_stream(self, url: str) -> httpx.Response:
        client = self._http()
        request = client.build_request("GET", url)
        try:
            return await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise TransportError(f"GET {url} failed: {exc}") from exc

    async def _open_read_stream(self) -> httpx.Response:
        response = await self._get_stream(self.read_url)
        if response.is_success:
            return response
        await response.aclose()

        if response.status_code != httpx.codes.NOT_FOUND:
            msg = f"Read endpoint {self.read_url} returned HTTP {response.status_code}"
            raise TransportError(msg)

        for read_path, write_path in self.PROBE_CANDIDATES:
            url = self._base_url + read_path
            try:
                candidate = await self._get_stream(url)
            except TransportError as exc:
                logger.debug("Probe %s failed: %s", url, exc)
                continue
            if candidate.is_success:
                logger.info("Switched read path to %s (write path %s)", read_path, write_path)
                self.read_path = read_path
                self.write_path = write_path
                return candidate
            await candidate.aclose()
            logger.debug("Probe %s -> %s", url, candidate.status_code)

        tried = ", ".join(read for read, _ in self.PROBE_CANDIDATES)
        msg = f"Read endpoint {self.read_url} not found; probed {tried} without success"
        raise TransportError(msg)


class StdioTransport:
    """Communicates with a locally launched tool server via stdin/stdout.

    Sends and receives newline-delimited JSON.
    """

    def __init__(self, command: str, env: dict[str, str] | None = None) -> None:
        self._command = command
        self._env = env
        self._process: asyncio.subprocess.Process | None = None

    async def connect(self) -> None:
        """Launch the subprocess."""
        parts = shlex.split(self._command)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *parts,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                env=self._env,
                limit=STDIO_LINE_LIMIT,
            )
        except OSError as exc:
            raise TransportError(f"Failed to launch {self._command!r}: {exc}") from exc

    async def send(self, data: dict[str, Any]) -> None:
        """Write a JSON line to stdin."""
        if self._process is None or self._process.stdin is None:
            msg = "Transport not connected"
            raise TransportError(msg)
        line = json.dumps(data) + "\n"
        try:
            self._process.stdin.write(line.encode())
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise TransportError(f"Server process closed stdin: {exc}") from exc

    async def messages(self) -> AsyncIterator[dict[str, Any]]:
        """Yield JSON lines from stdout until the process closes it."""
        if self._process is None or self._process.stdout is None:
            msg = "Transport not connected"
            raise TransportError(msg)
        stdout = self._process.stdout
        while True:
            line = await stdout.readline()
            if not line:
                return
            message = _parse_line(line.decode(errors="replace"))
            if message is not None:
                yield message

    async def close(self) -> None:
        """Terminate the subprocess."""
        if self._process is not None:
            if self._process.stdin:
                self._process.stdin.close()
            if self._process.returncode is None:
                self._process.terminate()
            await self._process.wait()
            self._process = None
