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
Option structs of the commands. Every key is optional; a key that is missing
(or set to None) is not sent to the server.
"""
from __future__ import annotations
from typing import (
    Any,
    Literal,
    TypedDict,
    Union,
)

ReadMode = Literal["single", "majority", "outdated"]
Durability = Literal["hard", "soft"]
Format = Literal["native", "raw"]
ReturnChanges = Union[bool, Literal["always"]]
Conflict = Literal["error", "replace", "update"]
Bound = Literal["open", "closed"]


class GlobalOptions(TypedDict, total=False):
    read_mode: ReadMode
    """
    default: "single"
    """
    time_format: Format
    """
    default "native"
    """
    profile: bool
    """
    default: False
    """
    durability: Durability
    """
    default: hard
    """
    group_format: Format
    """
    default "native"
    """
    noreply: bool
    """
    default: False
    """
    db: str
    """
    default: the session's database
    """
    array_limit: int
    """
    default: 100_000
    """
    binary_format: Format
    """
    default "native"
    """
    min_batch_rows: int
    """
    default: 8
    """
    max_batch_rows: int
    """
    default: unlimited
    """
    max_batch_bytes: int
    """
    default: 1MB
    """
    max_batch_seconds: float
    """
    default: 0.5
    """
    first_batch_scaledown_factor: int
    """
    default: 4
    """


FORMAT_OPTIONS = ("time_format", "group_format", "binary_format")
"""
Run options consumed by the response decoder rather than by the server only.
"""


class TableOptions(TypedDict, total=False):
    read_mode: ReadMode
    identifier_format: Literal["name", "uuid"]


class TableCreateOptions(TypedDict, total=False):
    primary_key: str
    durability: Durability
    shards: int
    replicas: Union[int, dict[str, int]]
    primary_replica_tag: str
    nonvoting_replica_tags: list[str]


class WriteOptions(TypedDict, total=False):
    durability: Durability
    return_changes: ReturnChanges
    ignore_write_hook: bool


class InsertOptions(WriteOptions, total=False):
    conflict: Union[Conflict, Any]


class UpdateOptions(WriteOptions, total=False):
    non_atomic: bool


class BetweenOptions(TypedDict, total=False):
    index: str
    left_bound: Bound
    right_bound: Bound


class ChangesOptions(TypedDict, total=False):
    squash: Union[bool, float]
    changefeed_queue_size: int
    include_initial: bool
    include_states: bool
    include_offsets: bool
    include_types: bool


class IndexCreateOptions(TypedDict, total=False):
    multi: bool
    geo: bool


class ReconfigureOptions(TypedDict, total=False):
    shards: int
    replicas: Union[int, dict[str, int]]
    primary_replica_tag: str
    nonvoting_replica_tags: list[str]
    dry_run: bool
    emergency_repair: Literal["unsafe_rollback", "unsafe_rollback_or_erase"]


class WaitOptions(TypedDict, total=False):
    wait_for: Literal["ready_for_outdated_reads", "ready_for_reads", "ready_for_writes", "all_replicas_ready"]
    timeout: float


class GrantPermissions(TypedDict, total=False):
    read: bool
    write: bool
    connect: bool
    config: bool
