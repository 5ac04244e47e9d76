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
import ssl
from typing import (
    Any,
    Generator,
    Generic,
    Iterable,
    TypeVar,
)

__all__ = (
    "EnhancedTuple",
    "chain_to_bytes",
    "IterableGenerator",
    "ssl_ctx",
)


class EnhancedTuple:  # pylint: disable=too-few-public-methods
    """
    Recursively iterates over its elements, inserting `int_separator` between
    them. Strings are flattened into characters, which lets the query printer
    map every printed character of a term to a caret or a blank.
    """

    def __init__(self, *sequence: Any, int_separator: Iterable[str] = "") -> None:
        self.sequence = sequence
        self.int_separator = int_separator

    def __iter__(self) -> Generator[str, None, None]:
        iterator = iter(self.sequence)
        try:
            yield from next(iterator)
        except StopIteration:
            return
        for token in iterator:
            yield from self.int_separator
            yield from token


def chain_to_bytes(*strings: str | bytes) -> bytes:
    """
    Ensure the bytes and/or strings are chained as bytes.
    """
    return b"".join(
        string.encode("latin-1") if isinstance(string, str) else string
        for string in strings
    )


GTY = TypeVar("GTY")
GTS = TypeVar("GTS")


class IterableGenerator(Generic[GTY, GTS]):
    """
    Drives a send-style generator from a `for` loop.

    Iterating yields the generator's current request; the loop body must
    answer it with `send`, which advances the generator to its next request.
    Iteration stops once the generator returns. The handshake uses it so the
    protocol steps stay free of socket calls.
    """
    __slots__ = (
        "__generator",
        "__out",
    )

    def __init__(self, generator: Generator[GTY, GTS, None]) -> None:
        self.__generator = generator
        self.__out: GTY | None = None

    def __iter__(self) -> IterableGenerator[GTY, GTS]:
        self.__out = next(self.__generator)
        return self

    def __next__(self) -> GTY:
        out = self.__out
        if out is None:
            raise StopIteration()
        return out

    def send(self, data: GTS) -> None:
        try:
            self.__out = self.__generator.send(data)
        except StopIteration:
            self.__out = None


def ssl_ctx(cert_path: str) -> ssl.SSLContext:
    """
    Create a client TLS context which verifies the server against `cert_path`.

    :raises: FileNotFoundError
    """
    ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    ssl_context.minimum_version = ssl.TLSVersion.TLSv1_2
    ssl_context.verify_mode = ssl.CERT_REQUIRED
    ssl_context.check_hostname = True
    ssl_context.load_verify_locations(cert_path)
    return ssl_context
