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
The `r` namespace: `connect` plus the top-level query builders.

    from neor import r

    async with await r.connect(db="blog") as session:
        await r.table("posts").insert({"title": "Hello"}).run(session)
"""
from __future__ import annotations
from typing import Any
from typing_extensions import Unpack

from neor.ql2 import TermType
from neor.core import ast
from neor.core import options as opt
from neor import connections

__all__ = [
    "connect",
    "expr",
    "Command",
]

Command = ast.Command

# region Connections

connect = connections.connect

# endregion

expr = ast.expr


def json(json_string: Any) -> Command:
    """
    Parse a JSON string on the server.
    """
    return Command(TermType.JSON, (json_string,))


def js(js_string: Any, timeout: float | None = None) -> Command:  # pylint: disable=invalid-name
    """
    Create a javascript expression.
    """
    return Command(TermType.JAVASCRIPT, (js_string,), {"timeout": timeout})


def args(array: Any) -> Command:
    """
    r.args is a special term that's used to splice an array of arguments into
    another term. This is useful when you want to call a variadic term such as
    get_all with a set of arguments produced at runtime.
    """
    return Command(TermType.ARGS, (array,))


def http(url: Any, **kwargs: Any) -> Command:
    """
    Retrieve data from the specified URL over HTTP. The return type depends on
    the result_format option, which checks the Content-Type of the response by
    default. Make sure that you never use this command for user provided URLs.
    """
    return Command(TermType.HTTP, (ast.func_wrap(url),), kwargs)


def error(*message: Any) -> Command:
    """
    Throw a runtime error. If called with no arguments inside the second
    argument to default, re-throw the current error.
    """
    return Command(TermType.ERROR, message)


def random(*arguments: Any, **kwargs: Any) -> Command:
    """
    Generate a random number between given (or implied) bounds. random takes
    zero, one or two arguments.

    * With zero arguments, the result will be a floating-point number in the
    range [0,1).
    * With one argument x, the result will be in the range [0,x), and will be
    integer unless float=True is given as an option.
    * With two arguments x and y, the result will be in the range [x,y), and
    will be integer unless float=True is given as an option.
    """
    return Command(TermType.RANDOM, arguments, kwargs)


def do(*arguments: Any) -> Command:  # pylint: disable=invalid-name
    """
    Call an anonymous function using return values from other ReQL commands or
    queries as arguments.

    The last argument to do is an expression or an anonymous function which
    receives the values of the previous arguments. The function is sent to the
    server first, as the FUNCALL term expects.
    """
    return ast.funcall(*arguments)


def table(table_name: Any, **kwargs: Unpack[opt.TableOptions]) -> Command:
    """
    Return all documents in a table. Other commands may be chained after table
    to return a subset of documents (such as get and filter) or perform further
    processing.
    """
    return Command(TermType.TABLE, (table_name,), kwargs)


def db(db_name: Any) -> Command:  # pylint: disable=invalid-name
    """
    Reference a database.

    The db command is optional. If it is not present in a query, the query will
    run against the database given to run, or else against the default database
    of the session.
    """
    return Command(TermType.DB, (db_name,))


def db_create(db_name: Any) -> Command:
    """
    Create a database. A RethinkDB database is a collection of tables, similar
    to relational databases.
    """
    return Command(TermType.DB_CREATE, (db_name,))


def db_drop(db_name: Any) -> Command:
    """
    Drop a database. The database, all its tables, and corresponding data will
    be deleted.
    """
    return Command(TermType.DB_DROP, (db_name,))


def db_list() -> Command:
    """
    List all database names in the system. The result is a list of strings.
    """
    return Command(TermType.DB_LIST)


def table_create(table_name: Any, **kwargs: Unpack[opt.TableCreateOptions]) -> Command:
    """
    Create a table in the default database.
    """
    return Command(TermType.TABLE_CREATE, (table_name,), kwargs)


def table_drop(table_name: Any) -> Command:
    """
    Drop a table. The table and all its data will be deleted.
    """
    return Command(TermType.TABLE_DROP, (table_name,))


def table_list() -> Command:
    """
    List all table names in a database. The result is a list of strings.
    """
    return Command(TermType.TABLE_LIST)


def grant(username: Any, **permissions: Unpack[opt.GrantPermissions]) -> Command:
    """
    Grant or deny access permissions for a user account globally.
    """
    return Command(TermType.GRANT, (username, dict(permissions)))


def branch(*arguments: Any) -> Command:
    """
    Perform a branching conditional equivalent to if-then-else.

    The branch command takes 2n+1 arguments: pairs of conditional expressions
    and commands to be executed if the conditionals return any value but False
    or None, with a final "else" command to be evaluated if all of the
    conditionals are False or None.
    """
    return Command(TermType.BRANCH, arguments)


def union(*arguments: Any, interleave: Any = None) -> Command:
    """
    Merge two or more sequences.
    """
    return Command(TermType.UNION, arguments, {"interleave": interleave})


def map(*arguments: Any) -> Command:  # pylint: disable=redefined-builtin
    """
    Transform each element of one or more sequences by applying a mapping
    function to them. The function is the last argument.
    """
    if arguments:
        # `func_wrap` only the last argument
        return Command(TermType.MAP, arguments[:-1] + (ast.func_wrap(arguments[-1]),))
    return Command(TermType.MAP)


def group(*arguments: Any, index: str | None = None, multi: bool | None = None) -> Command:
    """
    Takes a stream and partitions it into multiple groups based on the fields
    or functions provided.
    """
    return Command(TermType.GROUP, (ast.func_wrap(arg) for arg in arguments), {"index": index, "multi": multi})


def reduce(*arguments: Any) -> Command:
    return Command(TermType.REDUCE, (ast.func_wrap(arg) for arg in arguments))


def count(*arguments: Any) -> Command:
    return Command(TermType.COUNT, (ast.func_wrap(arg) for arg in arguments))


def sum(*arguments: Any) -> Command:  # pylint: disable=redefined-builtin
    return Command(TermType.SUM, (ast.func_wrap(arg) for arg in arguments))


def avg(*arguments: Any) -> Command:
    return Command(TermType.AVG, (ast.func_wrap(arg) for arg in arguments))


def min(*arguments: Any, index: str | None = None) -> Command:  # pylint: disable=redefined-builtin
    return Command(TermType.MIN, (ast.func_wrap(arg) for arg in arguments), {"index": index})


def max(*arguments: Any, index: str | None = None) -> Command:  # pylint: disable=redefined-builtin
    return Command(TermType.MAX, (ast.func_wrap(arg) for arg in arguments), {"index": index})


def distinct(*arguments: Any, index: str | None = None) -> Command:
    return Command(TermType.DISTINCT, arguments, {"index": index})


def contains(*arguments: Any) -> Command:
    return Command(TermType.CONTAINS, (ast.func_wrap(arg) for arg in arguments))


def asc(key: Any) -> Command:
    """
    Ascending ordering for order_by.
    """
    return Command(TermType.ASC, (ast.func_wrap(key),))


def desc(key: Any) -> Command:
    """
    Descending ordering for order_by.
    """
    return Command(TermType.DESC, (ast.func_wrap(key),))


# region logic and math

def eq(*arguments: Any) -> Command:  # pylint: disable=invalid-name
    return Command(TermType.EQ, arguments)


def ne(*arguments: Any) -> Command:  # pylint: disable=invalid-name
    return Command(TermType.NE, arguments)


def lt(*arguments: Any) -> Command:  # pylint: disable=invalid-name
    return Command(TermType.LT, arguments)


def le(*arguments: Any) -> Command:  # pylint: disable=invalid-name
    return Command(TermType.LE, arguments)


def gt(*arguments: Any) -> Command:  # pylint: disable=invalid-name
    return Command(TermType.GT, arguments)


def ge(*arguments: Any) -> Command:  # pylint: disable=invalid-name
    return Command(TermType.GE, arguments)


def add(*arguments: Any) -> Command:
    return Command(TermType.ADD, arguments)


def sub(*arguments: Any) -> Command:
    return Command(TermType.SUB, arguments)


def mul(*arguments: Any) -> Command:
    return Command(TermType.MUL, arguments)


def div(*arguments: Any) -> Command:
    return Command(TermType.DIV, arguments)


def mod(*arguments: Any) -> Command:
    return Command(TermType.MOD, arguments)


def bit_and(*arguments: Any) -> Command:
    return Command(TermType.BIT_AND, arguments)


def bit_or(*arguments: Any) -> Command:
    return Command(TermType.BIT_OR, arguments)


def bit_xor(*arguments: Any) -> Command:
    return Command(TermType.BIT_XOR, arguments)


def bit_not(*arguments: Any) -> Command:
    return Command(TermType.BIT_NOT, arguments)


def bit_sal(*arguments: Any) -> Command:
    """
    Shift the bits of a number to the left (arithmetic shift).
    """
    return Command(TermType.BIT_SAL, arguments)


def bit_sar(*arguments: Any) -> Command:
    """
    Shift the bits of a number to the right, keeping the sign bit.
    """
    return Command(TermType.BIT_SAR, arguments)


def floor(*arguments: Any) -> Command:
    return Command(TermType.FLOOR, arguments)


def ceil(*arguments: Any) -> Command:
    return Command(TermType.CEIL, arguments)


def round(*arguments: Any) -> Command:  # pylint: disable=redefined-builtin
    return Command(TermType.ROUND, arguments)


def not_(*arguments: Any) -> Command:
    return Command(TermType.NOT, arguments)


def and_(*arguments: Any) -> Command:
    return Command(TermType.AND, arguments)


def or_(*arguments: Any) -> Command:
    return Command(TermType.OR, arguments)

# endregion


def type_of(*arguments: Any) -> Command:
    return Command(TermType.TYPE_OF, arguments)


def info(*arguments: Any) -> Command:
    return Command(TermType.INFO, arguments)


def binary(data: Any) -> Command:
    """
    Binary data. Python bytes are sent inline, a term is converted by the
    server.
    """
    if isinstance(data, (bytes, bytearray)):
        return ast.expr(data)
    return Command(TermType.BINARY, (data,))


def range(*arguments: Any) -> Command:  # pylint: disable=redefined-builtin
    """
    Generate a stream of integers; without arguments the stream is infinite.
    """
    return Command(TermType.RANGE, arguments)


# region time

def make_timezone(offset: str) -> ast.ReqlTzinfo:
    """
    A tzinfo for an offset such as "+02:00".
    """
    return ast.ReqlTzinfo(offset)


def time(*arguments: Any) -> Command:
    """
    Create a time from year, month, day (and optionally hours, minutes,
    seconds) followed by a timezone.
    """
    return Command(TermType.TIME, arguments)


def iso8601(iso_string: Any, default_timezone: str | None = None) -> Command:
    return Command(TermType.ISO8601, (iso_string,), {"default_timezone": default_timezone})


def epoch_time(seconds: Any) -> Command:
    return Command(TermType.EPOCH_TIME, (seconds,))


def now() -> Command:
    """
    The time the query was received by the server.
    """
    return Command(TermType.NOW)

# endregion


# Merge values

def literal(*arguments: Any) -> Command:
    """
    Replace an object in a field instead of merging it with an existing object
    in a merge or update operation. Using literal with no arguments in a
    merge or update operation will remove the corresponding field.
    """
    return Command(TermType.LITERAL, arguments)


def object(*arguments: Any) -> Command:  # pylint: disable=redefined-builtin
    """
    Creates an object from a list of key-value pairs, where the keys must be
    strings. r.object(A, B, C, D) is equivalent to
    r.expr([[A, B], [C, D]]).coerce_to('OBJECT').
    """
    return Command(TermType.OBJECT, arguments)


def uuid(*arguments: Any) -> Command:
    """
    Return a UUID. If a string is passed to uuid as an argument, the UUID will
    be deterministic, derived from the string's SHA-1 hash.
    """
    return Command(TermType.UUID, arguments)


# Global geospatial operations

def geojson(geojson_object: Any) -> Command:
    """
    Convert a GeoJSON object (Point, LineString or Polygon) to a ReQL
    geometry object.
    """
    return Command(TermType.GEOJSON, (geojson_object,))


def point(longitude: Any, latitude: Any) -> Command:
    """
    Construct a geometry object of type Point from a longitude (-180 to 180)
    and a latitude (-90 to 90).
    """
    return Command(TermType.POINT, (longitude, latitude))


def line(*points: Any) -> Command:
    return Command(TermType.LINE, points)


def polygon(*points: Any) -> Command:
    return Command(TermType.POLYGON, points)


def distance(point1: Any, point2: Any, geo_system: str | None = None, unit: str | None = None) -> Command:
    """
    Compute the distance between a point and another geometry object.
    """
    return Command(TermType.DISTANCE, (point1, point2), {"geo_system": geo_system, "unit": unit})


def intersects(geometry1: Any, geometry2: Any) -> Command:
    return Command(TermType.INTERSECTS, (geometry1, geometry2))


def circle(center: Any, radius: Any, **kwargs: Any) -> Command:
    """
    Construct a circular line or polygon approximating a circle of a given
    radius around a given center (32 vertices by default).
    """
    return Command(TermType.CIRCLE, (center, radius), kwargs)


row = Command(TermType.IMPLICIT_VAR)

# Days of the week
monday = Command(TermType.MONDAY)
tuesday = Command(TermType.TUESDAY)
wednesday = Command(TermType.WEDNESDAY)
thursday = Command(TermType.THURSDAY)
friday = Command(TermType.FRIDAY)
saturday = Command(TermType.SATURDAY)
sunday = Command(TermType.SUNDAY)

# Months of the year
january = Command(TermType.JANUARY)
february = Command(TermType.FEBRUARY)
march = Command(TermType.MARCH)
april = Command(TermType.APRIL)
may = Command(TermType.MAY)
june = Command(TermType.JUNE)
july = Command(TermType.JULY)
august = Command(TermType.AUGUST)
september = Command(TermType.SEPTEMBER)
october = Command(TermType.OCTOBER)
november = Command(TermType.NOVEMBER)
december = Command(TermType.DECEMBER)

minval = Command(TermType.MINVAL)
maxval = Command(TermType.MAXVAL)
