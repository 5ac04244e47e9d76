"""
Tests for Session: connecting, running queries, options and failure modes.
"""

from __future__ import annotations

import asyncio
import datetime
import gc

import pytest

from neor import Connection, ServerInfo, Session, r
from neor.core import errors as errs

from fake_server import (
    NOREPLY_WAIT,
    SERVER_ID,
    START,
    STOP,
    atom,
)


def never(query):
    return []


async def wait_until(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


class TestConnect:
    """Tests for opening sessions."""

    async def test_connect(self, server):
        """Test connecting runs the handshake and opens the session."""
        session = await r.connect(host="127.0.0.1", port=server.port)
        try:
            assert isinstance(session, Session)
            assert session.is_open()
            assert not session.is_broken()
            assert session.db == "test"
            assert session.client_address() == "127.0.0.1"
            assert isinstance(session.client_port(), int)
        finally:
            await session.close()
        assert not session.is_open()
        assert session.client_port() is None

    async def test_connect_with_url(self, server):
        """Test connecting with a URL."""
        session = await r.connect(url=f"rethinkdb://admin@127.0.0.1:{server.port}/blog")
        async with session:
            assert session.db == "blog"
        assert not session.is_open()

    async def test_password(self, make_server):
        """Test connecting with the right password."""
        fake = await make_server(password="secret")
        session = await r.connect(host="127.0.0.1", port=fake.port, password="secret")
        await session.close()

    async def test_wrong_password(self, make_server):
        """Test a wrong password raises ReqlAuthError."""
        fake = await make_server(password="secret")
        with pytest.raises(errs.ReqlAuthError):
            await r.connect(host="127.0.0.1", port=fake.port, password="wrong")

    async def test_unknown_user(self, server):
        """Test an unknown user raises ReqlAuthError."""
        with pytest.raises(errs.ReqlAuthError):
            await r.connect(host="127.0.0.1", port=server.port, user="mallory")

    async def test_timeout(self):
        """Test a server which never answers the handshake times out."""
        async def silent(reader, writer):
            await reader.read()
            writer.close()

        listener = await asyncio.start_server(silent, "127.0.0.1", 0)
        port = listener.sockets[0].getsockname()[1]
        try:
            with pytest.raises(errs.ReqlTimeoutError):
                await r.connect(host="127.0.0.1", port=port, timeout=0.2)
        finally:
            listener.close()
            await listener.wait_closed()

    async def test_refused(self):
        """Test connecting to a closed port raises ReqlDriverError."""
        listener = await asyncio.start_server(lambda reader, writer: None, "127.0.0.1", 0)
        port = listener.sockets[0].getsockname()[1]
        listener.close()
        await listener.wait_closed()

        with pytest.raises(errs.ReqlDriverError):
            await r.connect(host="127.0.0.1", port=port, timeout=1)


class TestQueries:
    """Tests for running queries on a session."""

    async def test_atom(self, server, session):
        """Test an atom result is returned as its value."""
        server.respond = lambda query: [atom(42)]
        assert await r.expr(42).run(session) == 42
        assert server.starts()[-1] == [1, 42, {"db": [14, ["test"]]}]

    async def test_tokens_are_unique(self, server, session):
        """Test every query gets a new, increasing token."""
        server.respond = lambda query: [atom(1)]
        for _ in range(5):
            await r.expr(1).run(session)
        tokens = server.tokens(START)
        assert len(set(tokens)) == 5
        assert tokens == sorted(tokens)

    async def test_concurrent_queries(self, server, session):
        """Test queries running at the same time get their own results."""
        server.respond = lambda query: [atom(query[1])]
        results = await asyncio.gather(*(r.expr(i).run(session) for i in range(20)))
        assert results == list(range(20))

    async def test_server_error(self, server, session):
        """Test a runtime error response raises the matching exception."""
        server.respond = lambda query: [
            {"t": 18, "r": ["Table `test.missing` does not exist."], "e": 4100000, "b": []}
        ]
        with pytest.raises(errs.ReqlOpFailedError) as exc_info:
            await r.table("missing").run(session)
        assert "does not exist" in str(exc_info.value)
        assert "r.table('missing')" in str(exc_info.value)

    async def test_compile_error(self, server, session):
        """Test a compile error response."""
        server.respond = lambda query: [{"t": 17, "r": ["Expected 2 arguments."], "b": []}]
        with pytest.raises(errs.ReqlServerCompileError):
            await r.expr(1).run(session)

    async def test_db_option(self, server, session):
        """Test the db option and the session default."""
        server.respond = lambda query: [atom(None)]
        await r.table("t").run(session, db="other")
        assert server.starts()[-1][2]["db"] == [14, ["other"]]

        session.use("blog")
        await r.table("t").run(session)
        assert server.starts()[-1][2]["db"] == [14, ["blog"]]

    async def test_options_are_sent(self, server, session):
        """Test run options reach the server and None is left out."""
        server.respond = lambda query: [atom(None)]
        await r.expr(1).run(session, read_mode="majority", array_limit=10, durability=None)
        options = server.starts()[-1][2]
        assert options["read_mode"] == "majority"
        assert options["array_limit"] == 10
        assert "durability" not in options

    async def test_profile(self, server, session):
        """Test profile=True returns the value with the profile."""
        profile = [{"description": "Evaluating datum.", "duration(ms)": 0.01}]
        server.respond = lambda query: [atom(1, p=profile)]
        assert await r.expr(1).run(session, profile=True) == {"value": 1, "profile": profile}

    async def test_time_format(self, server, session):
        """Test native and raw time formats."""
        raw = {"$reql_type$": "TIME", "epoch_time": 0, "timezone": "+00:00"}
        server.respond = lambda query: [atom(raw)]

        value = await r.now().run(session)
        assert value == datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)
        assert await r.now().run(session, time_format="raw") == raw

    async def test_unknown_format(self, server, session):
        """Test an unknown format is refused before anything is sent."""
        with pytest.raises(errs.ReqlDriverError):
            await r.now().run(session, time_format="iso")
        assert server.starts() == []

    async def test_unencodable_option(self, server, session):
        """Test a run option JSON cannot carry fails before anything is sent."""
        with pytest.raises(errs.ReqlDriverCompileError):
            await r.expr(1).run(session, max_batch_seconds=float("nan"))
        gc.collect()
        await session.noreply_wait()
        assert server.starts() == []
        assert server.tokens(STOP) == []

        server.respond = lambda query: [atom(1)]
        assert await r.expr(1).run(session) == 1

    async def test_noreply(self, server, session):
        """Test noreply queries return None without waiting."""
        result = await r.table("t").insert({"a": 1}).run(session, noreply=True)
        assert result is None
        await server.wait_for(START)
        assert server.starts()[-1][2]["noreply"] is True

        await session.noreply_wait()
        await server.wait_for(NOREPLY_WAIT)

    async def test_server_info(self, server, session):
        """Test server() returns the server identity."""
        assert await session.server() == ServerInfo(id=SERVER_ID, name="fake_server", proxy=False)

    async def test_connection_runs_one_query(self, server, session):
        """Test a Connection handle runs a single query."""
        server.respond = lambda query: [atom(1)]
        conn = session.connection()
        assert isinstance(conn, Connection)

        assert await r.expr(1).run(conn) == 1
        with pytest.raises(errs.ReqlDriverError):
            await r.expr(1).run(conn)


class TestLifecycle:
    """Tests for closing, failures and reconnecting."""

    async def test_close_waits_for_noreply(self, server, session):
        """Test close sends NOREPLY_WAIT by default."""
        await session.close()
        assert server.tokens(NOREPLY_WAIT)
        assert not session.is_open()

    async def test_closed_session_refuses_queries(self, server, session):
        """Test queries on a closed session fail."""
        await session.close(noreply_wait=False)
        with pytest.raises(errs.ReqlDriverError, match="Connection is closed"):
            await r.expr(1).run(session)

    async def test_close_fails_pending_queries(self, server, session):
        """Test close fails the queries still waiting for a response."""
        server.respond = never
        pending = asyncio.create_task(r.expr(1).run(session))
        await server.wait_for(START)

        await session.close(noreply_wait=False)
        with pytest.raises(errs.ReqlDriverError, match="Connection is closed"):
            await pending

    async def test_lost_connection_breaks_session(self, server, session):
        """Test a dropped socket fails pending queries and later ones fast."""
        server.respond = never
        pending = asyncio.create_task(r.expr(1).run(session))
        await server.wait_for(START)

        server.drop()
        with pytest.raises(errs.ReqlConnectionBrokenError):
            await pending

        assert session.is_broken()
        with pytest.raises(errs.ReqlConnectionBrokenError):
            await r.expr(1).run(session)

    async def test_malformed_frame_breaks_session(self, server, session):
        """Test a response body which is not JSON breaks the session."""
        server.respond = never
        pending = asyncio.create_task(r.expr(1).run(session))
        await server.wait_for(START)

        server.push_raw(server.tokens(START)[-1], b"nojsn")
        with pytest.raises(errs.ReqlConnectionBrokenError):
            await pending
        assert session.is_broken()
        with pytest.raises(errs.ReqlConnectionBrokenError):
            await r.expr(1).run(session)

    async def test_reconnect(self, server, session):
        """Test reconnect clears the broken state and keeps counting tokens."""
        server.respond = lambda query: [atom(1)]
        await r.expr(1).run(session)
        before = server.tokens(START)[-1]

        server.drop()
        await wait_until(session.is_broken)

        await session.reconnect(noreply_wait=False)
        assert not session.is_broken()
        assert await r.expr(1).run(session) == 1
        assert server.tokens(START)[-1] > before

    async def test_token_exhaustion(self, server, session):
        """Test the session breaks once the last token was handed out."""
        server.respond = lambda query: [atom(1)]
        session._token._last = 2 ** 64 - 2

        assert await r.expr(1).run(session) == 1
        assert session.is_broken()
        with pytest.raises(errs.ReqlConnectionBrokenError):
            await r.expr(1).run(session)
