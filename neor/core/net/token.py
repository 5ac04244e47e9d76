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
import logging

from neor.core.errors import ReqlConnectionBrokenError

logger = logging.getLogger(__name__)

MAX_TOKEN = 2 ** 64 - 1


class TokenGenerator:
    """
    Hands out the query tokens of one session: 1, 2, 3, ... The counter is
    never reset, so a token is not reused for the lifetime of the session,
    reconnects included.
    """
    __slots__ = ("_last",)

    def __init__(self) -> None:
        self._last = 0

    @property
    def last(self) -> int:
        return self._last

    @property
    def exhausted(self) -> bool:
        """
        True once the last representable token was handed out.
        """
        return self._last >= MAX_TOKEN

    def new(self) -> int:
        """
        Return the next token.

        :raises: ReqlConnectionBrokenError
        """
        if self.exhausted:
            raise ReqlConnectionBrokenError("query tokens exhausted")
        self._last += 1
        logger.debug("allocated token %d", self._last)
        return self._last
