"""
Pytest fixtures for neor tests.
"""

from __future__ import annotations

import pytest

from neor import r

from fake_server import FakeServer


@pytest.fixture
async def server():
    fake = FakeServer()
    await fake.start()
    yield fake
    await fake.stop()


@pytest.fixture
async def session(server):
    conn = await r.connect(host="127.0.0.1", port=server.port, timeout=5)
    yield conn
    await conn.close(noreply_wait=False)


@pytest.fixture
async def make_server():
    """Factory for extra fake servers, e.g. with a password."""
    servers: list[FakeServer] = []

    async def _make(**kwargs) -> FakeServer:
        fake = FakeServer(**kwargs)
        await fake.start()
        servers.append(fake)
        return fake

    yield _make
    for fake in servers:
        await fake.stop()
