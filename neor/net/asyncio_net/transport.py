from __future__ import annotations

import asyncio
import logging
from typing import (
    Protocol,
)

from neor.core.errors import ReqlDriverError, ReqlTimeoutError
from neor.core.net.protocol import RdbProtocol
from neor.core.net.conn_config import SSLParams

from ._client import AsyncClient

logger = logging.getLogger(__name__)


class Dispatcher(Protocol):
    def dispatch(self, token: int, body: bytes | bytearray) -> None:
        ...

    def abort(self, exc: Exception) -> None:
        ...


class AsyncTransport:
    """
    Owns the socket of a session: runs the handshake, serializes writes and
    runs the one task which reads response frames and hands them to the
    dispatcher by token.
    """

    def __init__(self,
        host: str,
        port: int,
        ssl: SSLParams,
        rdb_protocol: RdbProtocol,
    ) -> None:
        self._closing = False
        self.__client = AsyncClient(host, port, ssl)
        self.__reql_protocol = rdb_protocol
        self._write_lock: asyncio.Lock | None = None
        self._reader_task: asyncio.Task | None = None

    @property
    def client_port(self) -> int | None:
        """
        Return the port on which the connection instance is connected to the server.
        """
        return self.__client.client_port()

    @property
    def client_address(self) -> str | None:
        """
        Return the address on which the connection instance is connected to the server.
        """
        return self.__client.client_address()

    @property
    def is_open(self) -> bool:
        """
        Return if the connection instance is set and the connection is open.
        """
        return self.__client.is_open()

    async def connect(self, timeout: float | None, dispatcher: Dispatcher) -> None:
        """
        Open the socket, run the handshake and start the reader.

        :raises: ReqlTimeoutError | ReqlAuthError | ReqlDriverError
        """
        self._closing = False
        try:
            await asyncio.wait_for(self.__open(), timeout)
        except asyncio.TimeoutError as exc:
            self.__client.close()
            raise ReqlTimeoutError(self.__client.host, self.__client.port) from exc
        except Exception:
            self.__client.close()
            raise

        self._write_lock = asyncio.Lock()
        self._reader_task = asyncio.create_task(self._read_worker(dispatcher))

    async def __open(self) -> None:
        await self.__client.connect()

        handshake = self.__reql_protocol.new_handshake()
        for request in handshake:
            if request:
                self.__client.write(request)
                await self.__client.drain()
            response = await self.__client.readuntil(b"\0")
            handshake.send(response)
        logger.debug("handshake with %s:%d done", self.__client.host, self.__client.port)

    async def send(self, data: bytes) -> None:
        """
        Write one whole frame. Concurrent senders queue up on the write lock.

        :raises: ReqlDriverError
        """
        if self._write_lock is None or not self.is_open:
            raise ReqlDriverError("Connection is closed.")
        async with self._write_lock:
            self.__client.write(data)
            await self.__client.drain()

    def send_nowait(self, data: bytes) -> None:
        """
        Buffer one whole frame without waiting for the lock or the drain.
        """
        if self.is_open:
            self.__client.write(data)

    async def close(self) -> None:
        self._closing = True
        self.__client.close()

        task, self._reader_task = self._reader_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _read_worker(self, dispatcher: Dispatcher) -> None:
        protocol = self.__reql_protocol
        try:
            while True:
                header = await self.__client.recvall(protocol.HEADER_SIZE)
                token, length = protocol.parse_header(header)
                body = await self.__client.recvall(length)
                logger.debug("received %d bytes for token %d", length, token)
                dispatcher.dispatch(token, body)
        except Exception as exc:  # pylint: disable=broad-except
            if self._closing:
                logger.debug("reader stopped: %s", exc)
                return
            self.__client.close()
            dispatcher.abort(exc)
