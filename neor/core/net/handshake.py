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

"""
RethinkDB client drivers are responsible for serializing queries, sending them to the server
using the ReQL wire protocol, and receiving responses from the server and returning them to
the calling application.

This module contains the handshake used to open a session: protocol version negotiation
followed by a SCRAM-SHA-256 exchange.
"""
from __future__ import annotations

import base64
import enum
import hashlib
import hmac
import json
import logging
import struct
from functools import partial
from random import SystemRandom
from typing import (
    Any,
    Dict,
    Generator,
    Type,
    TypeVar,
)

from neor.ql2 import Version, Protocol
from neor.core.errors import (
    InvalidHandshakeStateError,
    ReqlAuthError,
    ReqlDriverError,
)
from neor.core.utilities import chain_to_bytes

logger = logging.getLogger(__name__)

new_hash = partial(hmac.new, digestmod=hashlib.sha256)

EncoderType = TypeVar("EncoderType", bound="json.JSONEncoder")
DecoderType = TypeVar("DecoderType", bound="json.JSONDecoder")


class HandshakeState(enum.Enum):
    INITIAL = enum.auto()
    VERSION_SENT = enum.auto()
    VERSION_CHECKED = enum.auto()
    PROOF_SENT = enum.auto()
    DONE = enum.auto()


class HandshakeV1_0:  # pylint: disable=invalid-name
    """
    The client sends the protocol version, authentication method, and authentication as a
    null-terminated JSON message. RethinkDB supports only one authentication method,
    SCRAM-SHA-256, as specified in IETF RFC 7677 and RFC 5802. The RFC is followed with the
    exception of error handling (RethinkDB uses its own higher level error reporting rather than
    the e= field) and channel binding, which is not supported.

    `run` is a generator: it yields the bytes to send (empty when there is nothing to send)
    and receives each null-terminated server message, without the terminator, in return.

    More info: https://rethinkdb.com/docs/writing-drivers/
    """

    __slots__ = (
        "__username",
        "__password",
        "_random_nonce",
        "_first_client_message",
        "_server_signature",
        "state",
        "json_encoder",
        "json_decoder",
    )

    VERSION = Version.V1_0
    PROTOCOL = Protocol.JSON
    PROTOCOL_VERSION = 0
    NONCE_SIZE = 18

    def __init__(self, username: str, password: str) -> None:
        self.__username = username.replace("=", "=3D").replace(",", "=2C")
        self.__password = password

        self.reset()

        self.json_encoder = json.JSONEncoder()
        self.json_decoder = json.JSONDecoder()

    def set_decoder(self, decoder_type: Type[DecoderType]) -> None:
        self.json_decoder = decoder_type()

    def set_encoder(self, encoder_type: Type[EncoderType]) -> None:
        self.json_encoder = encoder_type()

    def reset(self) -> None:
        """
        Reset the handshake to its initial state.
        """
        self._random_nonce = bytes()
        self._first_client_message = bytes()
        self._server_signature = bytes()
        self.state = HandshakeState.INITIAL

    def run(self) -> Generator[bytes, bytes | bytearray, None]:
        self.reset()
        version_response = yield self.__initialize_connection()
        server_first = yield self.__read_version(version_response)
        server_final = yield self.__prepare_auth_request(server_first)
        self.__read_auth_response(server_final)

    def __advance(self, expected: HandshakeState, new_state: HandshakeState) -> None:
        if self.state is not expected:
            raise InvalidHandshakeStateError(
                f"Handshake is in state {self.state.name}, expected {expected.name}."
            )
        logger.debug("handshake %s -> %s", self.state.name, new_state.name)
        self.state = new_state

    @staticmethod
    def __parse_scram(message: str) -> Dict[bytes, bytes]:
        """
        Split a SCRAM message ("r=...,s=...,i=...") into its attributes.
        """
        attributes: Dict[bytes, bytes] = {}
        for attribute in message.encode("ascii").split(b","):
            key, value = attribute.split(b"=", 1)
            attributes[key] = value
        return attributes

    def __decode_json_response(self, response: bytes | bytearray) -> Dict[str, Any]:
        """
        Get decoded json response from response.

        :raises: ReqlDriverError | ReqlAuthError
        """
        try:
            json_response: Dict[str, Any] = self.json_decoder.decode(response.decode("utf-8"))
        except ValueError as exc:
            # Servers older than V1_0 answer with a plain string.
            raise ReqlDriverError(f"Unexpected handshake response: {bytes(response)!r}") from exc

        if not json_response.get("success"):
            if 10 <= int(json_response.get("error_code", 0)) <= 20:
                raise ReqlAuthError(json_response["error"])

            raise ReqlDriverError(json_response.get("error", "Handshake failed."))

        return json_response

    def __initialize_connection(self) -> bytes:
        """
        Prepare the initial message. The version is sent together with the
        first authentication JSON to save a round trip.
        """
        self.__advance(HandshakeState.INITIAL, HandshakeState.VERSION_SENT)

        self._random_nonce = base64.b64encode(
            bytearray(SystemRandom().getrandbits(8) for _ in range(self.NONCE_SIZE))
        )

        self._first_client_message = chain_to_bytes(
            "n=", self.__username,
            ",r=", self._random_nonce,
        )

        return chain_to_bytes(
            struct.pack("<L", self.VERSION),
            self.json_encoder.encode(
                {
                    "protocol_version": self.PROTOCOL_VERSION,
                    "authentication_method": "SCRAM-SHA-256",
                    "authentication": chain_to_bytes("n,,", self._first_client_message).decode("ascii"),
                }
            ).encode("utf-8"),
            b"\0",
        )

    def __read_version(self, response: bytes | bytearray) -> bytes:
        """
        Check the server's protocol range. Nothing is sent back: the first
        authentication message already went out with the version.

        :raises: ReqlDriverError | ReqlAuthError
        """
        self.__advance(HandshakeState.VERSION_SENT, HandshakeState.VERSION_CHECKED)

        json_response = self.__decode_json_response(response)
        min_protocol_version = int(json_response["min_protocol_version"])
        max_protocol_version = int(json_response["max_protocol_version"])

        if not min_protocol_version <= self.PROTOCOL_VERSION <= max_protocol_version:
            raise ReqlDriverError(
                f"Unsupported protocol version {self.PROTOCOL_VERSION}, expected between "
                f"{min_protocol_version} and {max_protocol_version}"
            )
        logger.debug("connected to server %s", json_response.get("server_version"))
        return b""

    def __prepare_auth_request(self, response: bytes | bytearray) -> bytes:
        """
        Answer the server-first message with the client proof.

        :raises: ReqlDriverError | ReqlAuthError
        """
        self.__advance(HandshakeState.VERSION_CHECKED, HandshakeState.PROOF_SENT)

        json_response = self.__decode_json_response(response)
        server_first_message = json_response["authentication"].encode("ascii")
        authentication = self.__parse_scram(json_response["authentication"])

        server_nonce: bytes = authentication[b"r"]
        if not server_nonce.startswith(self._random_nonce):
            raise ReqlAuthError("Invalid nonce from server")

        salted_password: bytes = hashlib.pbkdf2_hmac(
            "sha256",
            self.__password.encode("utf-8"),
            base64.standard_b64decode(authentication[b"s"]),
            int(authentication[b"i"]),
        )

        message_without_proof: bytes = chain_to_bytes("c=biws,r=", server_nonce)
        auth_message: bytes = b",".join(
            (self._first_client_message, server_first_message, message_without_proof)
        )

        self._server_signature = new_hash(
            new_hash(salted_password, b"Server Key").digest(),
            auth_message
        ).digest()
        client_key: bytes = new_hash(salted_password, b"Client Key").digest()
        client_signature: bytes = new_hash(hashlib.sha256(client_key).digest(), auth_message).digest()
        client_proof = bytes(key ^ sig for key, sig in zip(client_key, client_signature))

        return chain_to_bytes(
            self.json_encoder.encode(
                {
                    "authentication": chain_to_bytes(
                        message_without_proof,
                        ",p=",
                        base64.standard_b64encode(client_proof),
                    ).decode("ascii")
                }
            ),
            b"\0",
        )

    def __read_auth_response(self, response: bytes | bytearray) -> None:
        """
        Validate the server signature returned for our proof.

        :raises: ReqlDriverError | ReqlAuthError
        """
        self.__advance(HandshakeState.PROOF_SENT, HandshakeState.DONE)

        json_response = self.__decode_json_response(response)
        authentication = self.__parse_scram(json_response["authentication"])
        signature: bytes = base64.standard_b64decode(authentication[b"v"])

        if not hmac.compare_digest(signature, self._server_signature):
            raise ReqlAuthError("Invalid server signature")
