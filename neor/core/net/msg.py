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
from dataclasses import dataclass
import struct
from functools import partial
from typing import (
    Any,
    Mapping,
    cast,
)

from neor.ql2 import (
    FEED_NOTES,
    ErrorType,
    QueryType,
    ResponseType,
)
from neor.core import ast
from neor.core.converter import (
    ReqlEncoder,
    ReqlDecoder,
)
from neor.core import errors as errs


class Query:
    """
    Query sent to the database.

    Only START carries a term and the global options; the other query types
    are bare: ``[2]``, ``[3]``, ``[4]``, ``[5]``.
    """

    __slots__ = (
        "type",
        "token",
        "term",
        "global_opts",
    )

    def __init__(self, type: QueryType, token: int, term: ast.Command | None = None, global_opts: Mapping[str, Any] | None = None) -> None:
        self.type = type
        self.token = token
        self.term = term
        self.global_opts = global_opts or {}

    def build(self) -> list[Any]:
        message: list[Any] = [int(self.type)]
        if self.type is QueryType.START:
            if self.term is None:
                raise errs.ReqlDriverError("A START query needs a term.")
            message.append(self.term)
            message.append({key: ast.expr(value) for key, value in self.global_opts.items()})
        return message

    def serialize(self, reql_encoder: ReqlEncoder = ReqlEncoder()) -> bytes:
        """
        Serialize the query into one frame: token, body length and JSON body.
        """
        query_bytes = reql_encoder.encode(self.build()).encode("utf-8")
        query_header = struct.pack("<QL", self.token, len(query_bytes))
        return query_header + query_bytes

    def __repr__(self) -> str:
        return f"<Query {self.type.name} token={self.token}>"


Q_NoReplyWait = partial(Query, QueryType.NOREPLY_WAIT)
Q_ServerInfo = partial(Query, QueryType.SERVER_INFO)
Q_Start = partial(Query, QueryType.START)
Q_Continue = partial(Query, QueryType.CONTINUE)
Q_Stop = partial(Query, QueryType.STOP)


_RUNTIME_ERRORS: dict[int, type[errs.ReqlRuntimeError]] = {
    ErrorType.INTERNAL: errs.ReqlInternalError,
    ErrorType.RESOURCE_LIMIT: errs.ReqlResourceLimitError,
    ErrorType.QUERY_LOGIC: errs.ReqlQueryLogicError,
    ErrorType.NON_EXISTENCE: errs.ReqlNonExistenceError,
    ErrorType.OP_FAILED: errs.ReqlOpFailedError,
    ErrorType.OP_INDETERMINATE: errs.ReqlOpIndeterminateError,
    ErrorType.USER: errs.ReqlUserError,
    ErrorType.PERMISSION_ERROR: errs.ReqlPermissionError,
}


class Response:
    """
    Response received from the DB.
    """
    __slots__ = (
        "token",
        "type",
        "data",
        "backtrace",
        "profile",
        "error_type",
        "notes",
    )

    def __init__(self, token: int, json_response: bytes | bytearray | str, reql_decoder: ReqlDecoder = ReqlDecoder()) -> None:
        if isinstance(json_response, (bytes, bytearray)):
            json_response = json_response.decode("utf-8")
        try:
            full_response: dict[str, Any] = reql_decoder.decode(json_response)
            response_type = full_response["t"]
            data = full_response["r"]
        except (ValueError, KeyError, TypeError) as exc:
            raise errs.ReqlDriverError(f"Malformed response for token {token}: {exc}") from exc

        self.token = token
        try:
            self.type: ResponseType | int = ResponseType(response_type)
        except ValueError:
            self.type = response_type
        self.data: list[Any] = data
        self.backtrace: list[int | str] | None = full_response.get("b")
        self.profile: Any = full_response.get("p")
        self.error_type: int | None = full_response.get("e")
        self.notes: list[int] = full_response.get("n") or []

    @property
    def is_feed(self) -> bool:
        return any(note in FEED_NOTES for note in self.notes)

    @property
    def is_error(self) -> bool:
        return self.type in (
            ResponseType.CLIENT_ERROR,
            ResponseType.COMPILE_ERROR,
            ResponseType.RUNTIME_ERROR,
        )

    def make_error(self, term: ast.Command | None) -> errs.ReqlError:
        """
        Turn an error response into the matching exception, carrying the term
        and backtrace for pretty printing. Unknown response types become a
        `ReqlDriverError`.
        """
        message = cast(str, self.data[0]) if self.data else "Unknown error."
        if self.type is ResponseType.CLIENT_ERROR:
            return errs.ReqlDriverError(message, term, self.backtrace)
        if self.type is ResponseType.COMPILE_ERROR:
            return errs.ReqlServerCompileError(message, term, self.backtrace)
        if self.type is ResponseType.RUNTIME_ERROR:
            error_class = _RUNTIME_ERRORS.get(cast(int, self.error_type), errs.ReqlRuntimeError)
            return error_class(message, term, self.backtrace)
        return errs.ReqlDriverError(
            f"Unknown Response type {self.type} encountered in a response."
        )

    def expect(self, response_type: ResponseType, term: ast.Command | None = None) -> Response:
        """
        Return the response itself if it has the given type.

        :raises: ReqlError
        """
        if self.type is response_type:
            return self
        if self.is_error:
            raise self.make_error(term)
        raise errs.ReqlDriverError(
            f"Unexpected response type {self.type}, expected {response_type.name}."
        )

    def __repr__(self) -> str:
        name = self.type.name if isinstance(self.type, ResponseType) else self.type
        return f"<Response {name} token={self.token} items={len(self.data)}>"


@dataclass(frozen=True)
class ServerInfo:
    """
    Identity of the server a session is connected to.
    """
    id: str
    name: str | None
    proxy: bool

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ServerInfo:
        try:
            return cls(id=data["id"], name=data.get("name"), proxy=bool(data["proxy"]))
        except (KeyError, TypeError) as exc:
            raise errs.ReqlDriverError(f"Malformed server info: {data!r}") from exc
