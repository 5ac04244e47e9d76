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
import enum
import logging
import pprint
from collections import deque
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterator,
    Mapping,
)

from neor.ql2 import QueryType, ResponseType
from neor.core import ast
from neor.core import errors as errs
from . import msg
from .changefeed import FeedTracker
if TYPE_CHECKING:
    from .connection import Connection

logger = logging.getLogger(__name__)


class CursorState(enum.Enum):
    AWAITING_FIRST_BATCH = enum.auto()
    PARTIAL = enum.auto()
    AWAITING_NEXT_BATCH = enum.auto()
    DONE = enum.auto()
    ERROR = enum.auto()
    STOPPED = enum.auto()


# States in which the query is still open on the server.
_OPEN_STATES = frozenset({
    CursorState.AWAITING_FIRST_BATCH,
    CursorState.PARTIAL,
    CursorState.AWAITING_NEXT_BATCH,
})


def _fmt_cursor(obj: Cursor) -> tuple[str, str, str]:
    items = list(obj.items)
    val_str = pprint.pformat(items[:10] + (["..."] if len(items) > 10 else []))
    if val_str.endswith("'...']"):
        val_str = val_str[: -len("'...']")] + "...]"
    spacer_str = "\n" if "\n" in val_str else ""
    if obj.state in _OPEN_STATES:
        status_str = "streaming"
    elif obj.state is CursorState.ERROR:
        status_str = f"error: {obj.error}" if obj.error is not None else "error"
    elif obj.state is CursorState.STOPPED:
        status_str = "stopped"
    else:
        status_str = "done streaming"
    return status_str, spacer_str, val_str


class Cursor:
    """
    Async stream over the results of one query.

    Items are buffered per batch; a CONTINUE is only sent once the buffer of a
    partial batch is drained. A server error is raised once, after the items
    received before it, and ends the stream. Closing an unfinished cursor
    sends a STOP for its token.

    A cursor whose first batch carries a feed note is a changefeed: its state
    documents are tracked in `feed_state` and overflow notices are returned
    as `ChangefeedOverflow` items.
    """

    def __init__(self, conn: Connection, term: ast.Command, global_opts: Mapping[str, Any] | None = None) -> None:
        self.conn = conn
        self.term = term
        self.global_opts = dict(global_opts or {})
        self.items: deque[Any] = deque()
        self.state = CursorState.AWAITING_FIRST_BATCH
        self.error: Exception | None = None
        self.profile: Any = None
        self.is_feed = False
        self.is_atom = False
        self._feed = FeedTracker()
        self._started = False

    @property
    def token(self) -> int:
        return self.conn.token

    @property
    def feed_state(self) -> str | None:
        """
        The last state document seen on a changefeed ("initializing" or "ready").
        """
        return self._feed.state

    def __str__(self) -> str:
        status_str, spacer_str, val_str = _fmt_cursor(self)
        return (
            f"{self.__class__.__module__}.{self.__class__.__name__} ({status_str}):"
            f"{spacer_str}{val_str}"
        )

    def __repr__(self) -> str:
        status_str, spacer_str, val_str = _fmt_cursor(self)
        return (
            f"<{self.__class__.__module__}.{self.__class__.__name__} object at "
            f"{hex(id(self))} ({status_str}): {spacer_str}{val_str}>"
        )

    def __set_state(self, state: CursorState) -> None:
        if state is not self.state:
            logger.debug("cursor %d: %s -> %s", self.token, self.state.name, state.name)
            self.state = state

    # region wire

    async def prefetch(self) -> None:
        """
        Send the query if needed and wait for its first batch. Raises the
        query's error right away instead of leaving it for iteration.
        """
        if self.state is CursorState.AWAITING_FIRST_BATCH:
            await self.__start()
            await self.__fetch()
        if self.error is not None and not self.items:
            error, self.error = self.error, None
            raise error

    async def __start(self) -> None:
        if self._started:
            return
        self._started = True
        try:
            await self.conn.send(QueryType.START, self.term, self.global_opts)
        except errs.ReqlError as exc:
            self.__fail(exc)

    async def __fetch(self) -> None:
        if self.state not in _OPEN_STATES:
            return
        try:
            response = await self.conn.receive()
        except errs.ReqlError as exc:
            if self.state is not CursorState.STOPPED:
                self.__fail(exc)
            return
        # Interrupted by `close`, or a late batch of a stopped cursor.
        if response is None or self.state is CursorState.STOPPED:
            return
        self.__extend(response)

    async def __continue(self) -> None:
        self.__set_state(CursorState.AWAITING_NEXT_BATCH)
        try:
            await self.conn.send(QueryType.CONTINUE)
        except errs.ReqlError as exc:
            self.__fail(exc)
            return
        await self.__fetch()

    def __extend(self, response: msg.Response) -> None:
        if self.state is CursorState.AWAITING_FIRST_BATCH:
            self.profile = response.profile
            if response.is_feed:
                self.is_feed = True
                self.conn.lock_feed()

        if response.type is ResponseType.SUCCESS_ATOM:
            self.is_atom = not self.is_feed
            self.items.append(response.data[0] if response.data else None)
            self.__finish(CursorState.DONE)
        elif response.type is ResponseType.SUCCESS_SEQUENCE:
            self.items.extend(response.data)
            self.__finish(CursorState.DONE)
        elif response.type is ResponseType.SUCCESS_PARTIAL:
            self.items.extend(response.data)
            self.__set_state(CursorState.PARTIAL)
        else:
            self.__fail(response.make_error(self.term))

    def __fail(self, error: Exception) -> None:
        self.error = error
        self.__finish(CursorState.ERROR)

    def __finish(self, state: CursorState) -> None:
        self.__set_state(state)
        self.conn.release()

    # endregion

    # region iteration

    def __aiter__(self) -> AsyncIterator[Any]:
        return self

    async def __anext__(self) -> Any:
        while not self.items:
            if self.state is CursorState.AWAITING_FIRST_BATCH:
                await self.__start()
                await self.__fetch()
            elif self.state is CursorState.PARTIAL:
                await self.__continue()
            elif self.state is CursorState.AWAITING_NEXT_BATCH:
                await self.__fetch()
            elif self.error is not None:
                error, self.error = self.error, None
                raise error
            else:
                raise StopAsyncIteration()

        item = self.items.popleft()
        if self.is_feed:
            return self._feed.observe(item)
        return item

    async def next(self) -> Any:
        """
        Return the next item.

        :raises: ReqlCursorEmpty
        """
        try:
            return await self.__anext__()
        except StopAsyncIteration:
            raise errs.ReqlCursorEmpty() from None

    async def to_list(self) -> list[Any]:
        """
        Collect all remaining items. Never returns on a changefeed.
        """
        return [item async for item in self]

    # endregion

    # region lifecycle

    async def close(self) -> None:
        """
        Stop the query on the server if it is still open and drop the buffered
        items.
        """
        if self.state not in _OPEN_STATES:
            self.conn.release()
            return None

        self.items.clear()
        self.__set_state(CursorState.STOPPED)
        self.conn.interrupt()
        try:
            if self._started:
                await self.conn.send(QueryType.STOP)
        finally:
            self.conn.release()

    async def __aenter__(self) -> Cursor:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __del__(self) -> None:
        if not getattr(self, "_started", False) or self.state not in _OPEN_STATES:
            return
        try:
            self.conn.stop_nowait()
        except Exception as exc:  # pylint: disable=broad-except
            logger.debug("could not stop cursor %d: %s", self.conn.token, exc)
        self.conn.release()

    # endregion
