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
import typing as t
if t.TYPE_CHECKING:
    from .ast import Command


class QueryPrinter:
    """
    Helper class to print Query failures in a formatted way using carets.
    """
    def __init__(self, root: "Command", frames: t.Sequence[int | str] | None = None):
        self.root = root
        self.frames = list(frames or [])

    @property
    def query(self) -> str:
        """
        Return the composed query.
        """
        return "".join(self.__compose_term(self.root))

    @property
    def carets(self) -> str:
        """
        Return the carets indicating the location of the failure for the query.
        """
        return "".join(self.__compose_carets(self.root, self.frames))

    def __compose_term(self, term: "Command") -> t.Iterable[str]:
        args = [self.__compose_term(arg) for arg in term.args]
        optargs = {k: self.__compose_term(v) for k, v in term.optargs.items()}
        return term.compose(args, optargs)

    def __compose_carets(self, term: "Command", frames: list[int | str]) -> t.Iterable[str]:
        # An empty frame list means the current term is the one that failed.
        if not frames:
            return ("^" for _ in self.__compose_term(term))

        current_frame, rest = frames[0], frames[1:]
        args = [
            self.__compose_carets(arg, rest) if current_frame == i else self.__compose_term(arg)
            for i, arg in enumerate(term.args)
        ]
        optargs = {
            key: self.__compose_carets(value, rest) if current_frame == key else self.__compose_term(value)
            for key, value in term.optargs.items()
        }
        return ("^" if char == "^" else " " for char in term.compose(args, optargs))
