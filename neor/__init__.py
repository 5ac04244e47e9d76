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
from neor import r
from neor.core.ast import Command
from neor.core.errors import *  # noqa: F401,F403
from neor.core.net import (
    ChangefeedOverflow,
    Connection,
    Cursor,
    ServerInfo,
    Session,
)

__version__ = "0.1.0"

__all__ = [
    "r",
    "ChangefeedOverflow",
    "Command",
    "Connection",
    "Cursor",
    "ServerInfo",
    "Session",
]
