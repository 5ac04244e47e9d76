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
from typing_extensions import Unpack

from neor.core.net.conn_config import (
    DEFAULT_DB,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    DEFAULT_USER,
    ConnectionConfig,
    ExtraArgs,
    SSLParams,
)
from neor.core.net.connection import Session
from neor.core.net import handshake
from neor.core.net import protocol
from neor.net.asyncio_net import AsyncTransport


def new_session(config: ConnectionConfig) -> Session:
    """
    Wire up a session for `config` without opening the socket.
    """
    _handshake = handshake.HandshakeV1_0(
        username=config.user,
        password=config.password
    )
    _rdb_protocol = protocol.RdbProtocol(
        handshake=_handshake,
        decoder_type=config.json_decoder,
        encoder_type=config.json_encoder
    )
    _transport = AsyncTransport(
        host=config.host,
        port=config.port,
        ssl=config.ssl,
        rdb_protocol=_rdb_protocol,
    )
    return Session(
        transport=_transport,
        protocol=_rdb_protocol,
        db_name=config.db,
        timeout=config.timeout
    )


async def connect(
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    db: str = DEFAULT_DB,
    user: str = DEFAULT_USER,
    password: str = "",
    timeout: float = DEFAULT_TIMEOUT,
    ssl: SSLParams | None = None,
    url: str | None = None,
    **kwargs: Unpack[ExtraArgs],
) -> Session:
    """
    Open a session to a RethinkDB server.

    :raises: ReqlTimeoutError | ReqlAuthError | ReqlDriverError
    """
    _cfg = ConnectionConfig.new(
        host=host,
        port=port,
        db=db,
        user=user,
        password=password,
        timeout=timeout,
        ssl=ssl,
        url=url,
        **kwargs
    )
    session = new_session(_cfg)
    return await session.reconnect(noreply_wait=False)
