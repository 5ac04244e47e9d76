from __future__ import annotations
import asyncio
import logging
import socket
import ssl
from contextlib import contextmanager
from typing import (
    Generator,
    cast,
)
from neor.core.utilities import ssl_ctx
from neor.core.net.conn_config import SSLParams
from neor.core.errors import (
    ReqlDriverError,
    ReqlError,
)

logger = logging.getLogger(__name__)


class ErrProc:
    """
    Translate socket level exceptions into driver errors.
    """

    @staticmethod
    @contextmanager
    def except_connect_err(host: str, port: int) -> Generator[None, None, None]:
        try:
            yield
        except ssl.SSLError as exc:
            raise ReqlDriverError(f"SSL handshake failed (see server log for more information): {exc}") from exc
        except OSError as exc:
            raise ReqlDriverError(f"Could not connect to {host}:{port}. Error: {exc}") from exc

    @staticmethod
    @contextmanager
    def except_recv_err(host: str, port: int) -> Generator[None, None, None]:
        try:
            yield
        except asyncio.IncompleteReadError as exc:
            raise ReqlDriverError("Connection is closed.") from exc
        except asyncio.LimitOverrunError as exc:
            raise ReqlDriverError(f"Message from {host}:{port} is too long.") from exc
        except ConnectionResetError as exc:
            raise ReqlDriverError("Connection is closed.") from exc
        except OSError as exc:
            raise ReqlDriverError(f"Connection interrupted receiving from {host}:{port} - {exc}") from exc

    @staticmethod
    @contextmanager
    def except_send_err(host: str, port: int) -> Generator[None, None, None]:
        try:
            yield
        except ConnectionResetError as exc:
            raise ReqlDriverError("Connection is closed.") from exc
        except OSError as exc:
            raise ReqlDriverError(f"Connection interrupted sending to {host}:{port} - {exc}") from exc

    @staticmethod
    @contextmanager
    def except_close_err() -> Generator[None, None, None]:
        try:
            yield
        except ReqlError as exc:
            logger.error(exc.message)
        except Exception as exc:  # pylint: disable=broad-except
            logger.error(exc)


async def new_connection(host: str, port: int, ssl_context: ssl.SSLContext | None = None) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    (
        streamreader,
        streamwriter,
    ) = await asyncio.open_connection(host, port, ssl=ssl_context)
    socket_: socket.socket = streamwriter.get_extra_info("socket")
    socket_.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    socket_.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
    return streamreader, streamwriter


class AsyncClient:
    """
    Thin wrapper over an asyncio stream pair which reports failures as
    driver errors.
    """
    __slots__ = (
        "host",
        "port",
        "ssl",
        "_streamreader",
        "_streamwriter",
    )

    def __init__(self, host_: str, port_: int, ssl_: SSLParams) -> None:
        self.host = host_
        self.port = port_
        self.ssl = ssl_
        self._streamreader: asyncio.StreamReader | None = None
        self._streamwriter: asyncio.StreamWriter | None = None

    @property
    def r_stream(self) -> asyncio.StreamReader:
        if self._streamreader is None:
            raise ReqlDriverError("Connection is closed.")
        return self._streamreader

    @property
    def w_stream(self) -> asyncio.StreamWriter:
        if not self.is_open():
            raise ReqlDriverError("Connection is closed.")
        return cast(asyncio.StreamWriter, self._streamwriter)

    def client_port(self) -> int | None:
        if not self.is_open():
            return None
        return self.w_stream.get_extra_info("sockname")[1]

    def client_address(self) -> str | None:
        if not self.is_open():
            return None
        return self.w_stream.get_extra_info("sockname")[0]

    def is_open(self) -> bool:
        """
        Return if the connection is open.
        """
        return self._streamwriter is not None and not self._streamwriter.is_closing()

    async def connect(self) -> None:
        """
        :raises: ReqlDriverError
        """
        with ErrProc.except_connect_err(self.host, self.port):
            ssl_context = ssl_ctx(str(self.ssl["ca_certs"])) if (self.ssl and "ca_certs" in self.ssl) else None
            (
                self._streamreader,
                self._streamwriter
            ) = await new_connection(
                self.host,
                self.port,
                ssl_context,
            )
        logger.debug("connected to %s:%d", self.host, self.port)

    def close(self) -> None:
        """
        Close the connection.
        """
        if self._streamwriter is None:
            return None

        writer = self._streamwriter
        self._streamwriter = None
        with ErrProc.except_close_err():
            writer.close()
        if self._streamreader is not None:
            self._streamreader.feed_eof()
        logger.debug("closed connection to %s:%d", self.host, self.port)

    async def readuntil(self, separator: bytes) -> bytes:
        """
        Read up to `separator` and return the data without it.
        """
        with ErrProc.except_recv_err(self.host, self.port):
            data = await self.r_stream.readuntil(separator)
        return data[:-len(separator)]

    async def recvall(self, length: int) -> bytes:
        """
        Read exactly `length` bytes.
        """
        with ErrProc.except_recv_err(self.host, self.port):
            return await self.r_stream.readexactly(length)

    def write(self, data: bytes) -> None:
        """
        Buffer the whole of `data` for sending.
        """
        with ErrProc.except_send_err(self.host, self.port):
            self.w_stream.write(data)

    async def drain(self) -> None:
        with ErrProc.except_send_err(self.host, self.port):
            await self.w_stream.drain()
