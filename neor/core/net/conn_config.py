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

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import (
    Type,
    TypedDict,
    cast,
)
from typing_extensions import Unpack
from urllib.parse import (
    parse_qs,
    unquote,
    urlparse,
)

from neor.core import converter
from neor.core.errors import ReqlDriverError


DEFAULT_HOST = "localhost"
DEFAULT_PORT = 28015
DEFAULT_USER = "admin"
DEFAULT_PWD = ""
DEFAULT_DB = "test"
DEFAULT_TIMEOUT = 20

URL_SCHEMES = ("rethinkdb", "")


class SSLParams(TypedDict, total=False):
    ca_certs: str | Path


class ExtraArgs(TypedDict, total=False):
    json_encoder: Type[json.JSONEncoder]
    json_decoder: Type[json.JSONDecoder]


@dataclass(frozen=True)
class ConnectionConfig:
    """
    Everything needed to open a session. Build it with `ConnectionConfig.new`,
    which fills the defaults and applies a connection URL on top of the
    keyword arguments.
    """
    host: str
    port: int
    db: str
    user: str
    password: str = ""
    timeout: float = DEFAULT_TIMEOUT
    ssl: SSLParams = field(default_factory=cast(Type[SSLParams], dict))
    json_encoder: Type[json.JSONEncoder] = converter.ReqlEncoder
    json_decoder: Type[json.JSONDecoder] = converter.ReqlDecoder

    @property
    def uses_tls(self) -> bool:
        return "ca_certs" in self.ssl

    @classmethod
    def new(
        cls,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        db: str = DEFAULT_DB,
        user: str = DEFAULT_USER,
        password: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        ssl: SSLParams | None = None,
        url: str | None = None,
        **kwargs: Unpack[ExtraArgs]
    ) -> ConnectionConfig:
        """
        :raises: ReqlDriverError
        """
        password = password or DEFAULT_PWD
        ssl = ssl or {}
        json_encoder = kwargs.pop("json_encoder", converter.ReqlEncoder)
        json_decoder = kwargs.pop("json_decoder", converter.ReqlDecoder)

        if url:
            connection_string = urlparse(url)
            if connection_string.scheme not in URL_SCHEMES:
                raise ReqlDriverError(f"Unsupported connection URL scheme \"{connection_string.scheme}\".")
            query_string = parse_qs(connection_string.query)
            user = unquote(connection_string.username or "") or user
            password = unquote(connection_string.password or "") or password
            host = connection_string.hostname or host
            try:
                port = connection_string.port or port
                timeout = next(map(float, query_string.get("timeout", [])), timeout)
            except ValueError as exc:
                raise ReqlDriverError(f"Invalid connection URL \"{url}\": {exc}") from exc
            db = connection_string.path.strip("/") or db

        if timeout is not None and timeout <= 0:
            raise ReqlDriverError(f"Timeout must be positive, got {timeout}.")

        return cls(
            host=host,
            port=int(port),
            db=db,
            user=user,
            password=password,
            timeout=timeout,
            ssl=ssl,
            json_encoder=json_encoder,
            json_decoder=json_decoder
        )
