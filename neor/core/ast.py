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
The ReQL abstract syntax tree.

A query is a tree of immutable `Command` nodes. Each node has a term type, an
ordered tuple of child nodes and a (sparse) mapping of options. Chaining a
builder never mutates the receiver: it allocates a new root whose first
argument is the receiver, so sub-expressions can be shared between queries
freely.

Wire form of a node::

    [term_type, [args...]]
    [term_type, [args...], {options...}]

Literals are `Datum` nodes which are sent as their bare JSON value, arrays are
`MAKE_ARRAY` terms and objects are plain JSON objects of built values.
"""
from __future__ import annotations

import base64
import contextvars
import datetime
import inspect
import itertools
import math
from types import MappingProxyType
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Iterable,
    Iterator,
    Mapping,
    Protocol,
    Sequence,
)
from typing_extensions import Unpack

from neor.ql2 import TermType
from neor.core.errors import ReqlDriverCompileError
from neor.core.utilities import EnhancedTuple
from neor.core.q_printer import QueryPrinter
from neor.core import options as opt

if TYPE_CHECKING:
    from neor.core.net.cursor import Cursor

__all__ = (
    "Command",
    "Datum",
    "MakeObj",
    "ReqlBinary",
    "ReqlTzinfo",
    "expr",
    "func",
    "func_wrap",
    "funcall",
)

MAX_NESTING_DEPTH = 20

_EMPTY: Mapping[str, "Command"] = MappingProxyType({})

# Ids handed to `VAR` terms while the outermost function of a query is built.
_var_ids: contextvars.ContextVar[Iterator[int] | None] = contextvars.ContextVar("neor_var_ids", default=None)


class ReqlBinary(bytes):
    """
    Bytes returned by the server for the BINARY pseudo-type.
    """

    def __repr__(self) -> str:
        excerpt = " ".join(f"{byte:02x}" for byte in self[:6])
        ellipsis = "..." if len(self) > 6 else ""
        return f"<binary, {len(self)} byte{'s' if len(self) != 1 else ''}, '{excerpt}{ellipsis}'>"


class ReqlTzinfo(datetime.tzinfo):
    """
    Fixed offset timezone built from the server's "+HH:MM" notation.
    """

    def __init__(self, offset_string: str) -> None:
        super().__init__()
        self.offset_string = offset_string
        if offset_string in ("Z", "z"):
            self.delta = datetime.timedelta(0)
            return

        try:
            sign = -1 if offset_string[0] == "-" else 1
            hours, minutes = offset_string[1:].split(":")
            self.delta = sign * datetime.timedelta(hours=int(hours), minutes=int(minutes))
        except (IndexError, ValueError) as exc:
            raise ValueError(f"Invalid timezone offset \"{offset_string}\"") from exc

    def __copy__(self) -> ReqlTzinfo:
        return ReqlTzinfo(self.offset_string)

    def __deepcopy__(self, memo: dict) -> ReqlTzinfo:
        return ReqlTzinfo(self.offset_string)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ReqlTzinfo) and self.delta == other.delta

    def __hash__(self) -> int:
        return hash(self.delta)

    def utcoffset(self, dt: datetime.datetime | None) -> datetime.timedelta:
        return self.delta

    def tzname(self, dt: datetime.datetime | None) -> str:
        return self.offset_string

    def dst(self, dt: datetime.datetime | None) -> datetime.timedelta:
        return datetime.timedelta(0)


class Runner(Protocol):
    """
    Anything a query can be run against: a `Session` or one of its `Connection`s.
    """

    async def start(self, term: Command, **global_options: Unpack[opt.GlobalOptions]) -> Any:
        ...

    def build_query(self, term: Command, **global_options: Unpack[opt.GlobalOptions]) -> "Cursor":
        ...


_LITERALS = frozenset({TermType.DATUM, TermType.MAKE_ARRAY, TermType.MAKE_OBJ})

# Terms printed as `r.name(...)` unless chained on a database.
_TOP_LEVEL = frozenset({
    TermType.DB, TermType.TABLE, TermType.DB_CREATE, TermType.DB_DROP, TermType.DB_LIST,
    TermType.TABLE_CREATE, TermType.TABLE_DROP, TermType.TABLE_LIST, TermType.GRANT,
    TermType.ASC, TermType.DESC, TermType.BRANCH, TermType.FUNCALL, TermType.JAVASCRIPT,
    TermType.JSON, TermType.HTTP, TermType.ERROR, TermType.UUID, TermType.RANDOM, TermType.RANGE,
    TermType.TIME, TermType.EPOCH_TIME, TermType.ISO8601, TermType.NOW, TermType.POINT,
    TermType.LINE, TermType.POLYGON, TermType.CIRCLE, TermType.GEOJSON, TermType.LITERAL,
    TermType.OBJECT, TermType.ARGS, TermType.BINARY, TermType.MINVAL, TermType.MAXVAL,
})

# Printed without parentheses: `r.row`, `r.monday`, `r.minval`.
_CONSTANTS = frozenset({
    TermType.IMPLICIT_VAR, TermType.MINVAL, TermType.MAXVAL,
    TermType.MONDAY, TermType.TUESDAY, TermType.WEDNESDAY, TermType.THURSDAY,
    TermType.FRIDAY, TermType.SATURDAY, TermType.SUNDAY,
    TermType.JANUARY, TermType.FEBRUARY, TermType.MARCH, TermType.APRIL,
    TermType.MAY, TermType.JUNE, TermType.JULY, TermType.AUGUST,
    TermType.SEPTEMBER, TermType.OCTOBER, TermType.NOVEMBER, TermType.DECEMBER,
})

_METHOD_NAMES = {
    TermType.NOT: "not_",
    TermType.AND: "and_",
    TermType.OR: "or_",
    TermType.FUNCALL: "do",
    TermType.TO_JSON_STRING: "to_json",
    TermType.JAVASCRIPT: "js",
    TermType.IMPLICIT_VAR: "row",
    TermType.MINVAL: "minval",
    TermType.MAXVAL: "maxval",
}


def _sparse(optargs: Mapping[str, Any]) -> Mapping[str, Command]:
    if not optargs:
        return _EMPTY
    return MappingProxyType({
        key: expr(value)
        for key, value in optargs.items()
        if value is not None
    })


class Command:
    """
    One node of a ReQL query.
    """

    __slots__ = ("term_type", "args", "optargs")

    def __init__(self, term_type: TermType, args: Iterable[Any] = (), optargs: Mapping[str, Any] | None = None) -> None:
        self.term_type = term_type
        self.args: tuple[Command, ...] = tuple(expr(arg) for arg in args)
        self.optargs: Mapping[str, Command] = _sparse(optargs or {})

    @classmethod
    def _derive(cls, term_type: TermType, args: tuple[Command, ...], optargs: Mapping[str, Command]) -> Command:
        node = Command.__new__(Command)
        node.term_type = term_type
        node.args = args
        node.optargs = optargs
        return node

    # region composition

    def with_arg(self, arg: Any) -> Command:
        """
        Return a copy of this node with `arg` appended to its arguments.
        """
        return self._derive(self.term_type, self.args + (expr(arg),), self.optargs)

    def with_parent(self, parent: Any) -> Command:
        """
        Return a copy of this node with `parent` as its first argument.
        """
        return self._derive(self.term_type, (expr(parent),) + self.args, self.optargs)

    def with_opts(self, **optargs: Any) -> Command:
        """
        Return a copy of this node with the given options merged in. Options
        set to None are left out.
        """
        merged = dict(self.optargs)
        merged.update(_sparse(optargs))
        return self._derive(self.term_type, self.args, MappingProxyType(merged))

    def _then(self, term_type: TermType, *args: Any, **optargs: Any) -> Command:
        return Command(term_type, args, optargs).with_parent(self)

    # endregion

    # region serialization

    def build(self) -> Any:
        """
        Return the wire representation of the tree rooted at this node.
        """
        message: list[Any] = [int(self.term_type), [arg.build() for arg in self.args]]
        if self.optargs:
            message.append({key: value.build() for key, value in self.optargs.items()})
        return message

    def serialize(self) -> str:
        # Imported lazily, the encoder module depends on this one.
        from neor.core.converter import ReqlEncoder
        return ReqlEncoder().encode(self)

    # endregion

    # region printing

    def compose(self, args: Sequence[Iterable[str]], optargs: Mapping[str, Iterable[str]]) -> Iterable[str]:
        """
        Render this node as Python source, given the already rendered
        arguments and options.
        """
        term_type = self.term_type
        options = [EnhancedTuple(key, "=", value) for key, value in optargs.items()]

        if term_type is TermType.MAKE_ARRAY:
            return EnhancedTuple("[", EnhancedTuple(*args, int_separator=", "), "]")

        if term_type is TermType.VAR:
            return EnhancedTuple("var_", *args)

        if term_type is TermType.FUNC:
            params = ", ".join(f"var_{var.value}" for var in self.args[0].args if isinstance(var, Datum))
            return EnhancedTuple("lambda ", params, ": ", args[1])

        name = _METHOD_NAMES.get(term_type, term_type.name.lower())
        if term_type in _CONSTANTS and not self.args:
            return EnhancedTuple("r.", name)

        chained = bool(self.args) and (
            term_type not in _TOP_LEVEL or self.args[0].term_type is TermType.DB
        )
        if not chained:
            return EnhancedTuple("r.", name, "(", EnhancedTuple(*args, *options, int_separator=", "), ")")

        receiver: Iterable[str] = args[0]
        if self.args[0].term_type in _LITERALS:
            receiver = EnhancedTuple("r.expr(", receiver, ")")
        if term_type is TermType.BRACKET:
            return EnhancedTuple(receiver, "[", args[1], "]")
        return EnhancedTuple(receiver, ".", name, "(", EnhancedTuple(*args[1:], *options, int_separator=", "), ")")

    def __str__(self) -> str:
        return QueryPrinter(self).query

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {QueryPrinter(self).query}>"

    # endregion

    # region execution

    async def run(self, c: Runner, **global_options: Unpack[opt.GlobalOptions]) -> Any:
        """
        Run the query. Returns the value of an atom, a `Cursor` for sequences
        and changefeeds, and None for noreply queries.
        """
        return await c.start(self, **global_options)

    def build_query(self, c: Runner, **global_options: Unpack[opt.GlobalOptions]) -> "Cursor":
        """
        Return a lazily started stream of the query's values.
        """
        return c.build_query(self, **global_options)

    # endregion

    # region operators

    def __eq__(self, other: Any) -> Command:  # type: ignore[override]
        return self.eq(other)

    def __ne__(self, other: Any) -> Command:  # type: ignore[override]
        return self.ne(other)

    def __lt__(self, other: Any) -> Command:
        return self.lt(other)

    def __le__(self, other: Any) -> Command:
        return self.le(other)

    def __gt__(self, other: Any) -> Command:
        return self.gt(other)

    def __ge__(self, other: Any) -> Command:
        return self.ge(other)

    def __invert__(self) -> Command:
        return self.not_()

    def __add__(self, other: Any) -> Command:
        return self.add(other)

    def __radd__(self, other: Any) -> Command:
        return Command(TermType.ADD, (other, self))

    def __sub__(self, other: Any) -> Command:
        return self.sub(other)

    def __rsub__(self, other: Any) -> Command:
        return Command(TermType.SUB, (other, self))

    def __mul__(self, other: Any) -> Command:
        return self.mul(other)

    def __rmul__(self, other: Any) -> Command:
        return Command(TermType.MUL, (other, self))

    def __truediv__(self, other: Any) -> Command:
        return self.div(other)

    def __rtruediv__(self, other: Any) -> Command:
        return Command(TermType.DIV, (other, self))

    def __mod__(self, other: Any) -> Command:
        return self.mod(other)

    def __rmod__(self, other: Any) -> Command:
        return Command(TermType.MOD, (other, self))

    def __and__(self, other: Any) -> Command:
        return self.and_(other)

    def __rand__(self, other: Any) -> Command:
        return Command(TermType.AND, (other, self))

    def __or__(self, other: Any) -> Command:
        return self.or_(other)

    def __ror__(self, other: Any) -> Command:
        return Command(TermType.OR, (other, self))

    __hash__ = None  # type: ignore[assignment]

    def __getitem__(self, index: Any) -> Command:
        if isinstance(index, slice):
            if index.step is not None:
                raise ReqlDriverCompileError("ReQL slices do not support a step.")
            if index.stop is None:
                return self.slice(index.start or 0, -1, right_bound="closed")
            return self.slice(index.start or 0, index.stop)
        return self._then(TermType.BRACKET, index)

    def __iter__(self) -> Iterator[Any]:
        raise ReqlDriverCompileError("A query is not iterable in Python, run it to iterate over its result.")

    # endregion

    # region selection

    def db(self, db_name: str) -> Command:
        return self._then(TermType.DB, db_name)

    def table(self, table_name: Any, **options: Unpack[opt.TableOptions]) -> Command:
        return self._then(TermType.TABLE, table_name, **options)

    def get(self, key: Any) -> Command:
        return self._then(TermType.GET, key)

    def get_all(self, *keys: Any, index: str | None = None) -> Command:
        return self._then(TermType.GET_ALL, *keys, index=index)

    def between(self, lower_key: Any, upper_key: Any, **options: Unpack[opt.BetweenOptions]) -> Command:
        return self._then(TermType.BETWEEN, lower_key, upper_key, **options)

    def filter(self, predicate: Any, default: Any = None) -> Command:
        return self._then(TermType.FILTER, func_wrap(predicate), default=default)

    def get_intersecting(self, geometry: Any, index: str) -> Command:
        return self._then(TermType.GET_INTERSECTING, geometry, index=index)

    def get_nearest(self, point: Any, index: str, **options: Any) -> Command:
        return self._then(TermType.GET_NEAREST, point, index=index, **options)

    # endregion

    # region writing

    def insert(self, documents: Any, **options: Unpack[opt.InsertOptions]) -> Command:
        return self._then(TermType.INSERT, documents, **options)

    def update(self, document: Any, **options: Unpack[opt.UpdateOptions]) -> Command:
        return self._then(TermType.UPDATE, func_wrap(document), **options)

    def replace(self, document: Any, **options: Unpack[opt.UpdateOptions]) -> Command:
        return self._then(TermType.REPLACE, func_wrap(document), **options)

    def delete(self, **options: Unpack[opt.WriteOptions]) -> Command:
        return self._then(TermType.DELETE, **options)

    def sync(self) -> Command:
        return self._then(TermType.SYNC)

    # endregion

    # region transformations

    def map(self, *args: Any) -> Command:
        """
        Map a function over one or more sequences; the function comes last.
        """
        if not args:
            return self._then(TermType.MAP)
        *sequences, mapping = args
        return self._then(TermType.MAP, *sequences, func_wrap(mapping))

    def concat_map(self, mapping: Any) -> Command:
        return self._then(TermType.CONCAT_MAP, func_wrap(mapping))

    def order_by(self, *keys: Any, index: Any = None) -> Command:
        return self._then(TermType.ORDER_BY, *map(func_wrap, keys), index=index)

    def skip(self, count: Any) -> Command:
        return self._then(TermType.SKIP, count)

    def limit(self, count: Any) -> Command:
        return self._then(TermType.LIMIT, count)

    def slice(self, start: Any, end: Any = None, **options: Unpack[opt.BetweenOptions]) -> Command:
        if end is None:
            return self._then(TermType.SLICE, start, **options)
        return self._then(TermType.SLICE, start, end, **options)

    def nth(self, index: Any) -> Command:
        return self._then(TermType.NTH, index)

    def bracket(self, attr: Any) -> Command:
        return self._then(TermType.BRACKET, attr)

    def offsets_of(self, predicate: Any) -> Command:
        return self._then(TermType.OFFSETS_OF, func_wrap(predicate))

    def is_empty(self) -> Command:
        return self._then(TermType.IS_EMPTY)

    def union(self, *sequences: Any, interleave: Any = None) -> Command:
        return self._then(TermType.UNION, *sequences, interleave=interleave)

    def sample(self, count: Any) -> Command:
        return self._then(TermType.SAMPLE, count)

    def with_fields(self, *fields: Any) -> Command:
        return self._then(TermType.WITH_FIELDS, *fields)

    def fold(self, base: Any, function: Any, emit: Any = None, final_emit: Any = None) -> Command:
        return self._then(
            TermType.FOLD, base, func_wrap(function),
            emit=None if emit is None else func_wrap(emit),
            final_emit=None if final_emit is None else func_wrap(final_emit),
        )

    def for_each(self, write_function: Any) -> Command:
        return self._then(TermType.FOR_EACH, func_wrap(write_function))

    # endregion

    # region aggregation

    def group(self, *fields: Any, index: str | None = None, multi: bool | None = None) -> Command:
        return self._then(TermType.GROUP, *map(func_wrap, fields), index=index, multi=multi)

    def ungroup(self) -> Command:
        return self._then(TermType.UNGROUP)

    def reduce(self, function: Any) -> Command:
        return self._then(TermType.REDUCE, func_wrap(function))

    def count(self, *predicate: Any) -> Command:
        return self._then(TermType.COUNT, *map(func_wrap, predicate))

    def sum(self, *field: Any) -> Command:
        return self._then(TermType.SUM, *map(func_wrap, field))

    def avg(self, *field: Any) -> Command:
        return self._then(TermType.AVG, *map(func_wrap, field))

    def min(self, *field: Any, index: str | None = None) -> Command:
        return self._then(TermType.MIN, *map(func_wrap, field), index=index)

    def max(self, *field: Any, index: str | None = None) -> Command:
        return self._then(TermType.MAX, *map(func_wrap, field), index=index)

    def distinct(self, index: str | None = None) -> Command:
        return self._then(TermType.DISTINCT, index=index)

    def contains(self, *values: Any) -> Command:
        return self._then(TermType.CONTAINS, *map(func_wrap, values))

    # endregion

    # region documents

    def pluck(self, *selectors: Any) -> Command:
        return self._then(TermType.PLUCK, *selectors)

    def without(self, *selectors: Any) -> Command:
        return self._then(TermType.WITHOUT, *selectors)

    def merge(self, *objects: Any) -> Command:
        return self._then(TermType.MERGE, *map(func_wrap, objects))

    def append(self, value: Any) -> Command:
        return self._then(TermType.APPEND, value)

    def prepend(self, value: Any) -> Command:
        return self._then(TermType.PREPEND, value)

    def difference(self, array: Any) -> Command:
        return self._then(TermType.DIFFERENCE, array)

    def set_insert(self, value: Any) -> Command:
        return self._then(TermType.SET_INSERT, value)

    def set_union(self, array: Any) -> Command:
        return self._then(TermType.SET_UNION, array)

    def set_intersection(self, array: Any) -> Command:
        return self._then(TermType.SET_INTERSECTION, array)

    def set_difference(self, array: Any) -> Command:
        return self._then(TermType.SET_DIFFERENCE, array)

    def get_field(self, field: Any) -> Command:
        return self._then(TermType.GET_FIELD, field)

    def has_fields(self, *selectors: Any) -> Command:
        return self._then(TermType.HAS_FIELDS, *selectors)

    def keys(self) -> Command:
        return self._then(TermType.KEYS)

    def values(self) -> Command:
        return self._then(TermType.VALUES)

    def insert_at(self, offset: Any, value: Any) -> Command:
        return self._then(TermType.INSERT_AT, offset, value)

    def splice_at(self, offset: Any, array: Any) -> Command:
        return self._then(TermType.SPLICE_AT, offset, array)

    def delete_at(self, offset: Any, end_offset: Any = None) -> Command:
        if end_offset is None:
            return self._then(TermType.DELETE_AT, offset)
        return self._then(TermType.DELETE_AT, offset, end_offset)

    def change_at(self, offset: Any, value: Any) -> Command:
        return self._then(TermType.CHANGE_AT, offset, value)

    # endregion

    # region joins

    def inner_join(self, other: Any, predicate: Any) -> Command:
        return self._then(TermType.INNER_JOIN, other, func_wrap(predicate))

    def outer_join(self, other: Any, predicate: Any) -> Command:
        return self._then(TermType.OUTER_JOIN, other, func_wrap(predicate))

    def eq_join(self, left_field: Any, other: Any, index: str | None = None, ordered: bool | None = None) -> Command:
        return self._then(TermType.EQ_JOIN, func_wrap(left_field), other, index=index, ordered=ordered)

    def zip(self) -> Command:
        return self._then(TermType.ZIP)

    # endregion

    # region logic and math

    def eq(self, *others: Any) -> Command:
        return self._then(TermType.EQ, *others)

    def ne(self, *others: Any) -> Command:
        return self._then(TermType.NE, *others)

    def lt(self, *others: Any) -> Command:
        return self._then(TermType.LT, *others)

    def le(self, *others: Any) -> Command:
        return self._then(TermType.LE, *others)

    def gt(self, *others: Any) -> Command:
        return self._then(TermType.GT, *others)

    def ge(self, *others: Any) -> Command:
        return self._then(TermType.GE, *others)

    def not_(self) -> Command:
        return self._then(TermType.NOT)

    def and_(self, *others: Any) -> Command:
        return self._then(TermType.AND, *others)

    def or_(self, *others: Any) -> Command:
        return self._then(TermType.OR, *others)

    def add(self, *others: Any) -> Command:
        return self._then(TermType.ADD, *others)

    def sub(self, *others: Any) -> Command:
        return self._then(TermType.SUB, *others)

    def mul(self, *others: Any) -> Command:
        return self._then(TermType.MUL, *others)

    def div(self, *others: Any) -> Command:
        return self._then(TermType.DIV, *others)

    def mod(self, other: Any) -> Command:
        return self._then(TermType.MOD, other)

    def floor(self) -> Command:
        return self._then(TermType.FLOOR)

    def ceil(self) -> Command:
        return self._then(TermType.CEIL)

    def round(self) -> Command:
        return self._then(TermType.ROUND)

    def bit_and(self, *others: Any) -> Command:
        return self._then(TermType.BIT_AND, *others)

    def bit_or(self, *others: Any) -> Command:
        return self._then(TermType.BIT_OR, *others)

    def bit_xor(self, *others: Any) -> Command:
        return self._then(TermType.BIT_XOR, *others)

    def bit_not(self) -> Command:
        return self._then(TermType.BIT_NOT)

    def bit_sal(self, *others: Any) -> Command:
        return self._then(TermType.BIT_SAL, *others)

    def bit_sar(self, *others: Any) -> Command:
        return self._then(TermType.BIT_SAR, *others)

    # endregion

    # region strings

    def match(self, regex: Any) -> Command:
        return self._then(TermType.MATCH, regex)

    def split(self, *args: Any) -> Command:
        return self._then(TermType.SPLIT, *args)

    def upcase(self) -> Command:
        return self._then(TermType.UPCASE)

    def downcase(self) -> Command:
        return self._then(TermType.DOWNCASE)

    # endregion

    # region control

    def do(self, *args: Any) -> Command:
        """
        Call the last argument (a function) with this value followed by the
        other arguments.
        """
        if not args:
            raise ReqlDriverCompileError("do() expects a function.")
        *rest, function = args
        return Command(TermType.FUNCALL, (func_wrap(function), self, *rest))

    def default(self, value: Any) -> Command:
        return self._then(TermType.DEFAULT, func_wrap(value))

    def coerce_to(self, type_name: Any) -> Command:
        return self._then(TermType.COERCE_TO, type_name)

    def type_of(self) -> Command:
        return self._then(TermType.TYPE_OF)

    def info(self) -> Command:
        return self._then(TermType.INFO)

    def to_json(self) -> Command:
        return self._then(TermType.TO_JSON_STRING)

    # endregion

    # region changefeeds

    def changes(self, **options: Unpack[opt.ChangesOptions]) -> Command:
        return self._then(TermType.CHANGES, **options)

    # endregion

    # region administration

    def table_create(self, table_name: Any, **options: Unpack[opt.TableCreateOptions]) -> Command:
        return self._then(TermType.TABLE_CREATE, table_name, **options)

    def table_drop(self, table_name: Any) -> Command:
        return self._then(TermType.TABLE_DROP, table_name)

    def table_list(self) -> Command:
        return self._then(TermType.TABLE_LIST)

    def index_create(self, index_name: Any, index_function: Any = None, **options: Unpack[opt.IndexCreateOptions]) -> Command:
        if index_function is None:
            return self._then(TermType.INDEX_CREATE, index_name, **options)
        return self._then(TermType.INDEX_CREATE, index_name, func_wrap(index_function), **options)

    def index_drop(self, index_name: Any) -> Command:
        return self._then(TermType.INDEX_DROP, index_name)

    def index_list(self) -> Command:
        return self._then(TermType.INDEX_LIST)

    def index_rename(self, old_name: Any, new_name: Any, overwrite: bool | None = None) -> Command:
        return self._then(TermType.INDEX_RENAME, old_name, new_name, overwrite=overwrite)

    def index_status(self, *index_names: Any) -> Command:
        return self._then(TermType.INDEX_STATUS, *index_names)

    def index_wait(self, *index_names: Any) -> Command:
        return self._then(TermType.INDEX_WAIT, *index_names)

    def config(self) -> Command:
        return self._then(TermType.CONFIG)

    def status(self) -> Command:
        return self._then(TermType.STATUS)

    def wait(self, **options: Unpack[opt.WaitOptions]) -> Command:
        return self._then(TermType.WAIT, **options)

    def reconfigure(self, **options: Unpack[opt.ReconfigureOptions]) -> Command:
        return self._then(TermType.RECONFIGURE, **options)

    def rebalance(self) -> Command:
        return self._then(TermType.REBALANCE)

    def grant(self, username: Any, **permissions: Unpack[opt.GrantPermissions]) -> Command:
        return self._then(TermType.GRANT, username, permissions)

    def set_write_hook(self, function: Any) -> Command:
        return self._then(TermType.SET_WRITE_HOOK, function)

    def get_write_hook(self) -> Command:
        return self._then(TermType.GET_WRITE_HOOK)

    # endregion

    # region geo

    def distance(self, geometry: Any, geo_system: str | None = None, unit: str | None = None) -> Command:
        return self._then(TermType.DISTANCE, geometry, geo_system=geo_system, unit=unit)

    def intersects(self, geometry: Any) -> Command:
        return self._then(TermType.INTERSECTS, geometry)

    def includes(self, geometry: Any) -> Command:
        return self._then(TermType.INCLUDES, geometry)

    def fill(self) -> Command:
        return self._then(TermType.FILL)

    def polygon_sub(self, polygon: Any) -> Command:
        return self._then(TermType.POLYGON_SUB, polygon)

    def to_geojson(self) -> Command:
        return self._then(TermType.TO_GEOJSON)

    # endregion

    # region time

    def in_timezone(self, timezone: Any) -> Command:
        return self._then(TermType.IN_TIMEZONE, timezone)

    def during(self, start_time: Any, end_time: Any, **options: Unpack[opt.BetweenOptions]) -> Command:
        return self._then(TermType.DURING, start_time, end_time, **options)

    def to_iso8601(self) -> Command:
        return self._then(TermType.TO_ISO8601)

    def to_epoch_time(self) -> Command:
        return self._then(TermType.TO_EPOCH_TIME)

    def timezone(self) -> Command:
        return self._then(TermType.TIMEZONE)

    def date(self) -> Command:
        return self._then(TermType.DATE)

    def time_of_day(self) -> Command:
        return self._then(TermType.TIME_OF_DAY)

    def year(self) -> Command:
        return self._then(TermType.YEAR)

    def month(self) -> Command:
        return self._then(TermType.MONTH)

    def day(self) -> Command:
        return self._then(TermType.DAY)

    def day_of_week(self) -> Command:
        return self._then(TermType.DAY_OF_WEEK)

    def day_of_year(self) -> Command:
        return self._then(TermType.DAY_OF_YEAR)

    def hours(self) -> Command:
        return self._then(TermType.HOURS)

    def minutes(self) -> Command:
        return self._then(TermType.MINUTES)

    def seconds(self) -> Command:
        return self._then(TermType.SECONDS)

    # endregion


class Datum(Command):
    """
    A literal. Sent to the server as its bare JSON value.
    """

    __slots__ = ("value",)

    def __init__(self, value: Any) -> None:
        self.term_type = TermType.DATUM
        self.args = ()
        self.optargs = _EMPTY
        self.value = value

    def build(self) -> Any:
        return self.value

    def compose(self, args: Sequence[Iterable[str]], optargs: Mapping[str, Iterable[str]]) -> Iterable[str]:
        return EnhancedTuple(repr(self.value))


class MakeObj(Command):
    """
    An object literal whose values may be terms. The fields live in `optargs`
    so the query printer can point at them.
    """

    __slots__ = ()

    def __init__(self, fields: Mapping[str, Any], nesting_depth: int = MAX_NESTING_DEPTH) -> None:
        for key in fields:
            if not isinstance(key, str):
                raise ReqlDriverCompileError(f"Object keys must be strings, got {key!r}.")
        self.term_type = TermType.MAKE_OBJ
        self.args = ()
        self.optargs = MappingProxyType({key: expr(value, nesting_depth) for key, value in fields.items()})

    def build(self) -> Any:
        return {key: value.build() for key, value in self.optargs.items()}

    def compose(self, args: Sequence[Iterable[str]], optargs: Mapping[str, Iterable[str]]) -> Iterable[str]:
        return EnhancedTuple(
            "{",
            EnhancedTuple(*(EnhancedTuple(repr(key), ": ", value) for key, value in optargs.items()), int_separator=", "),
            "}",
        )


def _time_datum(value: datetime.datetime) -> Datum:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ReqlDriverCompileError(
            "Cannot convert a datetime without timezone information to a ReQL time object."
        )
    offset = value.utcoffset() or datetime.timedelta(0)
    minutes = int(offset.total_seconds()) // 60
    sign = "-" if minutes < 0 else "+"
    hours, minutes = divmod(abs(minutes), 60)
    return Datum({
        "$reql_type$": "TIME",
        "epoch_time": value.timestamp(),
        "timezone": f"{sign}{hours:02d}:{minutes:02d}",
    })


def _binary_datum(value: bytes | bytearray) -> Datum:
    return Datum({
        "$reql_type$": "BINARY",
        "data": base64.b64encode(bytes(value)).decode("utf-8"),
    })


def expr(value: Any, nesting_depth: int = MAX_NESTING_DEPTH) -> Command:
    """
    Convert a Python value into a term.

    :raises: ReqlDriverCompileError
    """
    if isinstance(value, Command):
        return value

    if nesting_depth <= 0:
        raise ReqlDriverCompileError("Nesting depth limit exceeded.")

    if isinstance(value, float) and not math.isfinite(value):
        raise ReqlDriverCompileError(f"Cannot convert the non-finite number {value!r} to a ReQL term.")

    if value is None or isinstance(value, (bool, int, float, str)):
        return Datum(value)

    if isinstance(value, (list, tuple)):
        return Command._derive(
            TermType.MAKE_ARRAY,
            tuple(expr(item, nesting_depth - 1) for item in value),
            _EMPTY,
        )

    if isinstance(value, dict):
        return MakeObj(value, nesting_depth - 1)

    if isinstance(value, datetime.datetime):
        return _time_datum(value)

    if isinstance(value, datetime.date):
        return _time_datum(datetime.datetime(value.year, value.month, value.day, tzinfo=datetime.timezone.utc))

    if isinstance(value, (bytes, bytearray)):
        return _binary_datum(value)

    if callable(value):
        return func(value)

    raise ReqlDriverCompileError(f"Cannot convert {type(value).__name__} to a ReQL term.")


def _arity(function: Callable[..., Any]) -> int:
    try:
        parameters = inspect.signature(function).parameters.values()
    except (TypeError, ValueError) as exc:
        raise ReqlDriverCompileError(f"Cannot inspect the parameters of {function!r}.") from exc
    return sum(
        1 for param in parameters
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD)
    )


def func(function: Callable[..., Any]) -> Command:
    """
    Turn a Python callable into a `FUNC` term by calling it once with `VAR`
    terms in place of its parameters.
    """
    counter = _var_ids.get()
    reset_token = None
    if counter is None:
        counter = itertools.count(1)
        reset_token = _var_ids.set(counter)
    try:
        var_ids = [next(counter) for _ in range(_arity(function))]
        body = expr(function(*(Command(TermType.VAR, (var_id,)) for var_id in var_ids)))
    finally:
        if reset_token is not None:
            _var_ids.reset(reset_token)
    return Command(TermType.FUNC, (var_ids, body))


def _uses_row(term: Command) -> bool:
    if term.term_type is TermType.IMPLICIT_VAR:
        return True
    # r.row below a FUNC is already bound to that function
    if term.term_type is TermType.FUNC:
        return False
    return any(_uses_row(arg) for arg in term.args) or any(_uses_row(value) for value in term.optargs.values())


def func_wrap(value: Any) -> Command:
    """
    Convert `value` for an argument which takes a function. A term using
    `r.row` becomes a one parameter `FUNC` whose body is that term, the
    server binds the implicit variable to the parameter.
    """
    term = expr(value)
    if not _uses_row(term):
        return term
    return func(lambda row: term)


def funcall(*args: Any) -> Command:
    """
    `r.do(arg1, ..., function)`: the function is sent first.
    """
    if not args:
        raise ReqlDriverCompileError("do() expects a function.")
    *rest, function = args
    return Command(TermType.FUNCALL, (func_wrap(function), *rest))
