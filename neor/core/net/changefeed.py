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
import re
from typing import Any, Mapping

logger = logging.getLogger(__name__)

__all__ = (
    "ChangefeedOverflow",
    "FeedTracker",
    "FEED_STATES",
)

FEED_STATES = ("initializing", "ready")

_OVERFLOW_RE = re.compile(r"skipped (\d+) elements?")


class ChangefeedOverflow(dict):
    """
    The document the server pushes when a feed's buffer overflowed. It stays
    a regular item of the feed and equals the original document; `skipped`
    is the number of changes the server dropped.
    """

    def __init__(self, document: Mapping[str, Any], skipped: int) -> None:
        super().__init__(document)
        self.skipped = skipped

    @property
    def message(self) -> str:
        return self.get("error", "")

    def __repr__(self) -> str:
        return f"<ChangefeedOverflow skipped={self.skipped}>"


def parse_overflow(item: Any) -> ChangefeedOverflow | None:
    if not (isinstance(item, dict) and set(item) == {"error"} and isinstance(item["error"], str)):
        return None
    match = _OVERFLOW_RE.search(item["error"])
    if match is None:
        return None
    return ChangefeedOverflow(item, int(match.group(1)))


def parse_state(item: Any) -> str | None:
    if isinstance(item, dict) and set(item) == {"state"} and item["state"] in FEED_STATES:
        return item["state"]
    return None


class FeedTracker:
    """
    Follows the documents of one changefeed. State documents are passed
    through and remembered in `state`; overflow notices are wrapped into a
    `ChangefeedOverflow`. Everything else is returned untouched.
    """
    __slots__ = ("state", "skipped")

    def __init__(self) -> None:
        self.state: str | None = None
        self.skipped = 0

    @property
    def is_ready(self) -> bool:
        return self.state == "ready"

    def observe(self, item: Any) -> Any:
        state = parse_state(item)
        if state is not None:
            logger.debug("changefeed state %s -> %s", self.state, state)
            self.state = state
            return item

        overflow = parse_overflow(item)
        if overflow is not None:
            logger.debug("changefeed skipped %d elements", overflow.skipped)
            self.skipped += overflow.skipped
            return overflow

        return item
