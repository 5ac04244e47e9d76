# Copyright 2022 RethinkDB
#
# Licensed under the Apache License, Version 2.0 (the 'License');
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an 'AS IS' BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# This file incorporates work covered by the following copyright:
# Copyright 2010-2016 RethinkDB, all rights reserved.
from __future__ import annotations
import asyncio
import logging
import weakref
from typing import (
    Any,
    Protocol,
)
from typing_extensions import Unpack, Self

from neor.ql2 import QueryType, ResponseType, TermType
from neor.core import ast
from neor.core import errors as errs
from neor.core.options import FORMAT_OPTIONS, GlobalOptions
from . import msg
from .cursor import Cursor
from .protocol import RdbProtocol
from .token import TokenGenerator

logger = logging.getLogger(__name__)


class Transport(Protocol):

    async def connect(self, timeout: float | None, dispatcher: Session) -> None:
        ...

    async def send(self, data: bytes) -> None:
        ...

    def send_nowait(self, data: bytes) -> None:
        ...

    async def close(self) -> None:
        ...

    @property
    def client_port(self) -> int | None:
        ...

    @property
    def client_address(self) -> str | None:
        ...

    @property
    def is_open(self) -> bool:
        ...


class Connection:
    """
    Logical handle for one query: owns one token of the session and the queue
    its responses are delivered to. A connection runs a single query; once
    the query is finished (or stopped) it releases its token.
    """
    __slots__ = (
        "session",
        "token",
        "decoder",
        "_queue",
        "_used",
        "__weakref__",
    )

    def __init__(self, session: Session, token: int) -> None:
        self.session = session
        self.token = token
        self.decoder = session.protocol.new_decoder()
        self._queue: asyncio.Queue[msg.Response | Exception | None] = asyncio.Queue()
        self._used = False

    def __repr__(self) -> str:
        return f"<Connection token={self.token}>"

    # region delivery, called by the session

    def put(self, body: bytes | bytearray) -> None:
        """
        Decode a response body with this connection's decoder and queue it.
        """
        self._queue.put_nowait(msg.Response(self.token, body, self.decoder))

    def fail(self, exc: Exception) -> None:
        self._queue.put_nowait(exc)

    def interrupt(self) -> None:
        """
        Wake up a pending `receive`, which then returns None.
        """
        self._queue.put_nowait(None)

    # endregion

    async def send(self, query_type: QueryType, term: ast.Command | None = None, global_opts: dict[str, Any] | None = None) -> None:
        query = msg.Query(query_type, self.token, term, global_opts)
        try:
            frame = self.session.protocol.build_query(query)
        except (TypeError, ValueError) as exc:
            raise errs.ReqlDriverCompileError(f"Cannot encode the query: {exc}") from exc
        logger.debug("sending %r", query)
        await self.session.transport.send(frame)

    def stop_nowait(self) -> None:
        """
        Best-effort STOP which does not wait for the write lock.
        """
        if self.session.is_open():
            query = msg.Q_Stop(self.token)
            logger.debug("sending %r without waiting", query)
            self.session.transport.send_nowait(self.session.protocol.build_query(query))

    async def receive(self) -> msg.Response | None:
        """
        Wait for the next response of this token.

        :raises: ReqlDriverError
        """
        item = await self._queue.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def request(self, query_type: QueryType) -> msg.Response:
        """
        Send a control query and wait for its reply.
        """
        await self.send(query_type)
        response = await self.receive()
        if response is None:
            raise errs.ReqlDriverError("Connection is closed.")
        return response

    def lock_feed(self) -> None:
        logger.debug("changefeed opened on token %d", self.token)
        self.session._changefeed = self.token

    def release(self) -> None:
        """
        Deregister the token. Frames arriving later for it are discarded.
        """
        self.session._release(self)

    # region running queries

    def __claim(self) -> None:
        if self._used:
            raise errs.ReqlDriverError(f"Connection {self.token} has already run a query.")
        self._used = True

    async def start(self, term: ast.Command, **global_options: Unpack[GlobalOptions]) -> Any:
        """
        Run `term` under this connection's token.
        """
        self.__claim()
        options = self.session.query_options(global_options)
        self.decoder = self.session.protocol.new_decoder(
            **{name: options[name] for name in FORMAT_OPTIONS if name in options}
        )

        if options.get("noreply"):
            try:
                await self.send(QueryType.START, term, options)
            finally:
                self.release()
            return None

        cursor = Cursor(self, term, options)
        await cursor.prefetch()

        value: Any = cursor
        if cursor.is_atom:
            value = cursor.items.popleft()
        if options.get("profile"):
            return {"value": value, "profile": cursor.profile}
        return value

    def build_query(self, term: ast.Command, **global_options: Unpack[GlobalOptions]) -> Cursor:
        """
        Return a cursor which sends `term` on its first iteration.
        """
        self.__claim()
        options = self.session.query_options(global_options)
        self.decoder = self.session.protocol.new_decoder(
            **{name: options[name] for name in FORMAT_OPTIONS if name in options}
        )
        return Cursor(self, term, options)

    # endregion


class Session:
    """
    One physical connection to a server, shared by any number of concurrent
    queries. Every query gets its own token and `Connection`; a background
    reader routes the response frames to them by token.
    """
    __slots__ = (
        "db",
        "protocol",
        "transport",
        "_timeout",
        "_token",
        "_registry",
        "_broken",
        "_changefeed",
    )

    def __init__(self, *, transport: Transport, protocol: RdbProtocol, db_name: str, timeout: float | None) -> None:
        self.db = db_name
        self.protocol = protocol
        self.transport = transport
        self._timeout = timeout
        self._token = TokenGenerator()
        self._registry: weakref.WeakValueDictionary[int, Connection] = weakref.WeakValueDictionary()
        self._broken: str | None = None
        self._changefeed: int | None = None

    def __repr__(self) -> str:
        state = "broken" if self.is_broken() else ("open" if self.is_open() else "closed")
        return f"<Session db={self.db!r} {state}>"

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close(noreply_wait=False)

    # region state

    def is_open(self) -> bool:
        """
        Return if the underlying socket is open.
        """
        return self.transport.is_open

    def is_broken(self) -> bool:
        return self._broken is not None

    def is_locked(self) -> bool:
        """
        Return if a changefeed is running; a feed whose handle was dropped
        does not count.
        """
        return self._changefeed is not None and self._changefeed in self._registry

    def client_port(self) -> int | None:
        """
        Return the local port of the socket.
        """
        if not self.is_open():
            return None
        return self.transport.client_port

    def client_address(self) -> str | None:
        """
        Return the local address of the socket.
        """
        if not self.is_open():
            return None
        return self.transport.client_address

    def use(self, db: str) -> None:
        """
        Set the database used by queries which do not name one.
        """
        self.db = db

    # endregion

    # region connections

    def __check_usable(self) -> None:
        if self._broken is not None:
            raise errs.ReqlConnectionBrokenError(self._broken)
        if not self.is_open():
            raise errs.ReqlDriverError("Connection is closed.")

    def __new_connection(self) -> Connection:
        token = self._token.new()
        if self._token.exhausted:
            self.__mark_broken("query tokens exhausted")
        conn = Connection(self, token)
        self._registry[token] = conn
        return conn

    def connection(self) -> Connection:
        """
        Allocate a token and return a new logical connection for it.

        :raises: ReqlConnectionBrokenError | ReqlDriverError | ReqlConnectionLockedError
        """
        self.__check_usable()
        if self.is_locked():
            raise errs.ReqlConnectionLockedError()
        return self.__new_connection()

    def _release(self, conn: Connection) -> None:
        if self._registry.get(conn.token) is conn:
            del self._registry[conn.token]
        if self._changefeed == conn.token:
            logger.debug("changefeed closed on token %d", conn.token)
            self._changefeed = None

    # endregion

    # region dispatcher, called by the transport's reader

    def dispatch(self, token: int, body: bytes | bytearray) -> None:
        conn = self._registry.get(token)
        if conn is None:
            logger.debug("discarding a frame for unknown token %d", token)
            return
        conn.put(body)

    def abort(self, exc: Exception) -> None:
        """
        Mark the session broken and fail every waiting connection.
        """
        self.__mark_broken(str(exc) or exc.__class__.__name__)
        error = errs.ReqlConnectionBrokenError(self._broken)
        error.__cause__ = exc
        for conn in list(self._registry.values()):
            conn.fail(error)

    def __mark_broken(self, reason: str) -> None:
        logger.warning("session marked broken: %s", reason)
        self._broken = reason

    # endregion

    # region queries

    def query_options(self, global_options: GlobalOptions) -> dict[str, Any]:
        """
        Validate the run options and fill the default database.

        :raises: ReqlDriverError
        """
        options: dict[str, Any] = {key: value for key, value in global_options.items() if value is not None}
        for name in FORMAT_OPTIONS:
            if options.get(name, "native") not in ("native", "raw"):
                raise errs.ReqlDriverError(f"Unknown {name} run option \"{options[name]}\".")

        db = options.get("db", self.db)
        if db is not None:
            options["db"] = db if isinstance(db, ast.Command) else ast.Command(TermType.DB, (db,))
        return options

    async def start(self, term: ast.Command, **global_options: Unpack[GlobalOptions]) -> Any:
        """
        Run a query on a new connection of this session.
        """
        return await self.connection().start(term, **global_options)

    def build_query(self, term: ast.Command, **global_options: Unpack[GlobalOptions]) -> Cursor:
        return self.connection().build_query(term, **global_options)

    async def __control(self, query_type: QueryType, expected: ResponseType) -> msg.Response:
        # Control queries are allowed while a changefeed is running.
        self.__check_usable()
        conn = self.__new_connection()
        try:
            response = await conn.request(query_type)
        finally:
            conn.release()
        return response.expect(expected)

    async def noreply_wait(self) -> None:
        """
        Wait until every noreply query sent so far has been processed.
        """
        await self.__control(QueryType.NOREPLY_WAIT, ResponseType.WAIT_COMPLETE)

    async def server(self) -> msg.ServerInfo:
        """
        Return the server we connected to.
        """
        response = await self.__control(QueryType.SERVER_INFO, ResponseType.SERVER_INFO)
        return msg.ServerInfo.from_dict(response.data[0])

    # endregion

    # region lifecycle

    async def close(self, noreply_wait: bool = True) -> None:
        """
        Close the socket. Outstanding queries fail with "Connection is closed.".
        """
        if not self.is_open():
            return None

        try:
            if noreply_wait and self._broken is None:
                await self.noreply_wait()

            feed = self._registry.get(self._changefeed) if self._changefeed is not None else None
            if feed is not None and self._broken is None:
                try:
                    await feed.send(QueryType.STOP)
                except errs.ReqlDriverError as exc:
                    logger.error("could not stop changefeed %d: %s", feed.token, exc)
        finally:
            await self.transport.close()

            error = errs.ReqlDriverError("Connection is closed.")
            for conn in list(self._registry.values()):
                conn.fail(error)
            self._registry.clear()
            self._changefeed = None

    async def reconnect(self, noreply_wait: bool = True, timeout: float | None = None) -> Self:
        """
        Close the socket and open a new one. Tokens keep counting up.
        """
        await self.close(noreply_wait)
        await self.transport.connect(self._timeout if timeout is None else timeout, self)
        self._broken = None
        return self

    # endregion
