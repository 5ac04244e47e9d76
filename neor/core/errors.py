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
from typing import TYPE_CHECKING, Sequence
if TYPE_CHECKING:
    from .ast import Command

from .q_printer import QueryPrinter


__all__ = [
    "ReqlAuthError",
    "ReqlCompileError",
    "ReqlConnectionBrokenError",
    "ReqlConnectionLockedError",
    "ReqlCursorEmpty",
    "ReqlDriverCompileError",
    "ReqlDriverError",
    "ReqlError",
    "ReqlInternalError",
    "ReqlNonExistenceError",
    "ReqlOperationError",
    "ReqlOpFailedError",
    "ReqlOpIndeterminateError",
    "ReqlPermissionError",
    "ReqlQueryLogicError",
    "ReqlResourceLimitError",
    "ReqlRuntimeError",
    "ReqlServerCompileError",
    "ReqlTimeoutError",
    "ReqlUserError",
    "InvalidHandshakeStateError",
]


class ReqlCursorEmpty(Exception):
    def __init__(self) -> None:
        self.message = "Cursor is empty."
        super().__init__(self.message)


class ReqlError(Exception):
    """
    Base RethinkDB Query Language Error.
    """

    # NOTE: frames are the backtrace details sent by the server
    def __init__(self, message: str, term: "Command" | None = None, frames: Sequence[int | str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.term = term
        self.frames = list(frames) if frames is not None else None
        self.__query_printer = QueryPrinter(term, self.frames) if not (term is None or frames is None) else None

    def __str__(self) -> str:
        """
        Return the string representation of the error
        """
        if self.__query_printer is None:
            return self.message
        message_ = self.message.rstrip(".")
        return f"{message_} in:\n{self.__query_printer.query}\n{self.__query_printer.carets}"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} instance: {str(self)} >"


class ReqlCompileError(ReqlError):
    """
    Exception representing any kind of compilation error. A compilation error
    can be raised while converting a Python value into a term, or by the server
    when it cannot parse the term tree it received.
    """


class ReqlDriverCompileError(ReqlCompileError):
    """
    A Python value cannot be converted into a term.
    """


class ReqlServerCompileError(ReqlCompileError):
    """
    The server could not compile the term tree.
    """


class ReqlRuntimeError(ReqlError):
    """
    The query compiled but failed while the server was executing it.
    """


class ReqlQueryLogicError(ReqlRuntimeError):
    """
    The query is well formed but logically wrong (e.g. a type mismatch).
    """


class ReqlNonExistenceError(ReqlQueryLogicError):
    """
    An expected value is absent (e.g. a missing field).
    """


class ReqlResourceLimitError(ReqlRuntimeError):
    """
    The server exceeded a resource limit (e.g. the array size limit).
    """


class ReqlUserError(ReqlRuntimeError):
    """
    Raised by `r.error` inside the query.
    """


class ReqlInternalError(ReqlRuntimeError):
    """
    Some internal error happened on the server side.
    """


class ReqlOperationError(ReqlRuntimeError):
    """
    The error happened due to availability issues.
    """


class ReqlOpFailedError(ReqlOperationError):
    """
    The operation failed.
    """


class ReqlOpIndeterminateError(ReqlOperationError):
    """
    It is unknown whether the operation failed or not.
    """


class ReqlPermissionError(ReqlRuntimeError):
    """
    The user is not allowed to run the query.
    """


class ReqlDriverError(ReqlError):
    """
    Errors raised by the driver itself: transport failures, protocol violations,
    misuse of a session.
    """


class ReqlAuthError(ReqlDriverError):
    """
    The authentication against the server was unsuccessful.
    """

    def __init__(self, message: str) -> None:
        message = f"Authentication failed, {message}"
        super().__init__(message)


class ReqlTimeoutError(ReqlDriverError, TimeoutError):
    """
    The request towards the server timed out.
    """

    def __init__(self, host: str | None = None, port: int | None = None) -> None:
        message = "Operation timed out."

        if host and port:
            message = f"Could not connect to {host}:{port}, {message}"
        elif host and port is None:
            raise ValueError("If host is set, you must set port as well")
        elif host is None and port:
            raise ValueError("If port is set, you must set host as well")

        super().__init__(message)


class ReqlConnectionBrokenError(ReqlDriverError):
    """
    The session hit a fatal transport error and refuses new queries.
    """

    def __init__(self, reason: str | None = None) -> None:
        message = "Connection is broken."
        if reason:
            message = f"Connection is broken ({reason})."
        super().__init__(message)


class ReqlConnectionLockedError(ReqlDriverError):
    """
    The session has an open changefeed; it must be closed before the session
    accepts another query.
    """

    def __init__(self) -> None:
        super().__init__("Connection is locked by an active changefeed.")


class InvalidHandshakeStateError(ReqlDriverError):
    """
    Exception raised when the client entered a not existing state during connection handshake.
    """
