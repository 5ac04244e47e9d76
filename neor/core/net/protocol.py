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
import struct
from typing import (
    Any,
    Generator,
    Protocol,
    Type,
    TypeVar,
)
from typing_extensions import Unpack

from neor.core.utilities import IterableGenerator
from neor.core.options import GlobalOptions
from neor.core import converter
from . import msg


EncoderType = TypeVar("EncoderType", bound="json.JSONEncoder")
DecoderType = TypeVar("DecoderType", bound="json.JSONDecoder")


class RdbHandshake(Protocol):
    def set_decoder(self, decoder_type: Type[DecoderType]) -> None:
        ...

    def set_encoder(self, encoder_type: Type[EncoderType]) -> None:
        ...

    def reset(self) -> None:
        ...

    def run(self) -> Generator[bytes | bytearray, bytes | bytearray, None]:
        ...


class RdbProtocol:
    """
    Knows the shape of the wire: how a query becomes a frame, how a frame
    header is read and how responses are decoded. Holds no socket.
    """

    __slots__ = (
        "_json_decoder",
        "_json_encoder",
        "_encoder",
        "_handshake",
    )

    HEADER_SIZE = 12
    HEADER = struct.Struct("<QL")

    def __init__(self, decoder_type: Type["converter.ReqlDecoder"], encoder_type: Type["converter.ReqlEncoder"], handshake: RdbHandshake) -> None:
        self._json_decoder = decoder_type
        self._json_encoder = encoder_type
        self._encoder = encoder_type()

        handshake.set_decoder(decoder_type)
        handshake.set_encoder(encoder_type)
        self._handshake = handshake

    def new_handshake(self) -> IterableGenerator:
        return IterableGenerator(self._handshake.run())

    def new_decoder(self, **format_opts: Unpack[GlobalOptions]) -> "converter.ReqlDecoder":
        """
        Return a decoder honouring the query's time/group/binary formats.
        """
        return self._json_decoder(**format_opts)

    def build_query(self, query: msg.Query) -> bytes:
        return query.serialize(self._encoder)

    def parse_header(self, header: bytes | bytearray) -> tuple[int, int]:
        """
        Return the token and the body length of a response frame.
        """
        token, length = self.HEADER.unpack(header)
        return token, length

    def parse_response(self, token: int, body: bytes | bytearray, decoder: Any = None) -> msg.Response:
        return msg.Response(token, body, decoder or self._json_decoder())
