"""
Tests for Cursor: batching, ordering, errors and stopping streams.
"""

from __future__ import annotations

import asyncio
import gc

import pytest

from neor import Cursor, r
from neor.core import errors as errs
from neor.core.net import CursorState

from fake_server import CONTINUE, START, STOP, partial, sequence


def runtime_error(message: str, error_type: int = 3000000) -> dict:
    return {"t": 18, "r": [message], "e": error_type, "b": []}


class TestBatches:
    """Tests for streaming batches."""

    async def test_single_batch(self, server, session):
        """Test a sequence in one batch."""
        server.respond = lambda query: [sequence(1, 2, 3)]
        cursor = await r.expr([1, 2, 3]).run(session)

        assert isinstance(cursor, Cursor)
        assert await cursor.to_list() == [1, 2, 3]
        assert cursor.state is CursorState.DONE
        assert server.tokens(CONTINUE) == []

    async def test_partial_batches_keep_order(self, server, session):
        """Test items of several batches come out in the order sent."""
        server.respond = lambda query: [partial(1, 2), partial(3), sequence(4, 5)]
        cursor = await r.table("t").run(session)

        assert await cursor.to_list() == [1, 2, 3, 4, 5]
        assert server.tokens(CONTINUE) == [cursor.token, cursor.token]

    async def test_continue_is_lazy(self, server, session):
        """Test CONTINUE is only sent once the buffered batch is drained."""
        server.respond = lambda query: [partial(1, 2), sequence(3)]
        cursor = await r.table("t").run(session)

        assert await cursor.next() == 1
        assert await cursor.next() == 2
        assert server.tokens(CONTINUE) == []
        assert await cursor.next() == 3
        assert server.tokens(CONTINUE) == [cursor.token]

    async def test_empty_partial_batch(self, server, session):
        """Test an empty partial batch is skipped."""
        server.respond = lambda query: [partial(), partial(1), sequence()]
        cursor = await r.table("t").run(session)
        assert await cursor.to_list() == [1]

    async def test_next_after_end(self, server, session):
        """Test next on an exhausted cursor raises ReqlCursorEmpty."""
        server.respond = lambda query: [sequence(1)]
        cursor = await r.table("t").run(session)

        assert await cursor.next() == 1
        with pytest.raises(errs.ReqlCursorEmpty):
            await cursor.next()

    async def test_async_for(self, server, session):
        """Test iterating with async for."""
        server.respond = lambda query: [partial("a"), sequence("b")]
        cursor = await r.table("t").run(session)
        assert [item async for item in cursor] == ["a", "b"]

    async def test_build_query_is_lazy(self, server, session):
        """Test build_query sends the query on first iteration."""
        server.respond = lambda query: [sequence(1, 2)]
        cursor = r.table("t").build_query(session)

        await asyncio.sleep(0.05)
        assert server.starts() == []
        assert await cursor.to_list() == [1, 2]
        assert len(server.starts()) == 1

    async def test_interleaved_streams(self, server, session):
        """Test two streams on one session keep their items apart."""
        server.respond = lambda query: [
            partial(query[1] + "1"),
            partial(query[1] + "2"),
            sequence(query[1] + "3"),
        ]
        first = await r.expr("a").run(session)
        second = await r.expr("b").run(session)

        assert await first.next() == "a1"
        assert await second.next() == "b1"
        assert await second.next() == "b2"

        first_items, second_items = await asyncio.gather(first.to_list(), second.to_list())
        assert first_items == ["a2", "a3"]
        assert second_items == ["b3"]
        assert first.token != second.token


class TestErrors:
    """Tests for errors inside a stream."""

    async def test_error_after_items(self, server, session):
        """Test the items received before an error come out first."""
        server.respond = lambda query: [partial(1, 2), runtime_error("Cannot perform bracket on a non-object.")]
        cursor = await r.table("t").run(session)

        assert await cursor.next() == 1
        assert await cursor.next() == 2
        with pytest.raises(errs.ReqlQueryLogicError):
            await cursor.next()
        assert cursor.state is CursorState.ERROR

    async def test_error_is_raised_once(self, server, session):
        """Test the stream ends after its error."""
        server.respond = lambda query: [partial(1), runtime_error("boom", 5000000)]
        cursor = await r.table("t").run(session)

        with pytest.raises(errs.ReqlUserError):
            await cursor.to_list()
        with pytest.raises(errs.ReqlCursorEmpty):
            await cursor.next()


class TestStopping:
    """Tests for closing unfinished streams."""

    async def test_close_sends_stop(self, server, session):
        """Test closing an unfinished cursor stops the query."""
        server.respond = lambda query: [partial(1, 2), sequence(3)]
        cursor = await r.table("t").run(session)

        await cursor.close()
        await server.wait_for(STOP, cursor.token)
        assert cursor.state is CursorState.STOPPED
        with pytest.raises(errs.ReqlCursorEmpty):
            await cursor.next()

    async def test_close_finished_cursor(self, server, session):
        """Test closing a finished cursor sends nothing."""
        server.respond = lambda query: [sequence(1)]
        cursor = await r.table("t").run(session)

        await cursor.close()
        assert server.tokens(STOP) == []
        assert cursor.state is CursorState.DONE

    async def test_context_manager(self, server, session):
        """Test leaving async with closes the cursor."""
        server.respond = lambda query: [partial(1), sequence(2)]
        async with await r.table("t").run(session) as cursor:
            assert await cursor.next() == 1
        await server.wait_for(STOP, cursor.token)

    async def test_close_wakes_waiting_reader(self, server, session):
        """Test a reader blocked on the next batch ends when the cursor is closed."""
        server.respond = lambda query: [partial(1)]
        cursor = await r.table("t").run(session)
        assert await cursor.next() == 1

        pending = asyncio.create_task(cursor.next())
        await server.wait_for(CONTINUE, cursor.token)
        await cursor.close()

        with pytest.raises(errs.ReqlCursorEmpty):
            await pending

    async def test_dropped_cursor_sends_stop(self, server, session):
        """Test a garbage collected unfinished cursor stops its query."""
        server.respond = lambda query: [partial(1), sequence(2)]
        cursor = await r.table("t").run(session)
        token = cursor.token

        del cursor
        gc.collect()
        await server.wait_for(STOP, token)

    async def test_late_frames_are_discarded(self, server, session):
        """Test frames for a stopped token do not reach other queries."""
        server.respond = lambda query: [partial(1), sequence(2)]
        cursor = await r.table("t").run(session)
        await cursor.close()

        server.push(cursor.token, sequence("late"))
        server.respond = lambda query: [sequence("fresh")]
        assert await (await r.table("t").run(session)).to_list() == ["fresh"]

    async def test_unstarted_cursor_close(self, server, session):
        """Test closing a cursor which never sent its query."""
        cursor = r.table("t").build_query(session)
        await cursor.close()

        assert cursor.state is CursorState.STOPPED
        await session.noreply_wait()
        assert server.tokens(START) == []
        assert server.tokens(STOP) == []
