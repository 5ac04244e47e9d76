"""
Tests for the ReQL term tree: construction, serialization and literals.
"""

from __future__ import annotations

import datetime

import pytest

from neor import r
from neor.core import ast
from neor.core.errors import ReqlDriverCompileError
from neor.ql2 import TermType


class TestSerialization:
    """Tests for the wire form of terms."""

    def test_insert_into_table(self):
        """Test a chained insert builds the documented wire form."""
        query = r.table("foo").insert({"item": "bar"})
        assert query.build() == [56, [[15, ["foo"]], {"item": "bar"}]]

    def test_serialize_is_compact_json(self):
        """Test serialize emits JSON without whitespace."""
        query = r.table("foo").insert({"item": "bar"})
        assert query.serialize() == '[56,[[15,["foo"]],{"item":"bar"}]]'

    def test_arrays_become_make_array(self):
        """Test Python lists are sent as MAKE_ARRAY terms."""
        assert r.expr([1, [2, 3]]).build() == [2, [1, [2, [2, 3]]]]

    def test_objects_are_plain_json(self):
        """Test dicts are sent as objects of built values."""
        assert r.expr({"a": [1], "b": {"c": None}}).build() == {"a": [2, [1]], "b": {"c": None}}

    def test_datum_is_bare_value(self):
        """Test scalars are sent as their JSON value."""
        for value in (None, True, 1, 1.5, "s"):
            assert r.expr(value).build() == value

    def test_options_are_sent_when_set(self):
        """Test options end up in the third element."""
        query = r.table("t").get_all(1, 2, index="tag")
        assert query.build() == [78, [[15, ["t"]], 1, 2], {"index": "tag"}]

    def test_none_options_are_dropped(self):
        """Test options set to None are not sent."""
        query = r.table("t").get_all(1, index=None)
        assert query.build() == [78, [[15, ["t"]], 1]]

    def test_option_values_are_terms(self):
        """Test option values are converted like arguments."""
        query = r.table("t").between(r.minval, 10, right_bound="closed")
        assert query.build() == [182, [[15, ["t"]], [int(TermType.MINVAL), []], 10], {"right_bound": "closed"}]

    def test_db_chain(self):
        """Test a table chained on a database."""
        assert r.db("blog").table("posts").build() == [15, [[14, ["blog"]], "posts"]]

    def test_grant_permissions_are_an_argument(self):
        """Test grant sends its permissions as an object argument."""
        query = r.db("d").grant("bob", read=True, write=False)
        assert query.build() == [int(TermType.GRANT), [[14, ["d"]], "bob", {"read": True, "write": False}]]

    def test_admin_options(self):
        """Test reconfigure and wait carry their options."""
        assert r.table("t").reconfigure(shards=2, replicas=1).build() == [
            176, [[15, ["t"]]], {"shards": 2, "replicas": 1}
        ]
        assert r.table("t").wait(wait_for="ready_for_writes").build() == [
            177, [[15, ["t"]]], {"wait_for": "ready_for_writes"}
        ]

    def test_changes_options(self):
        """Test changefeed options."""
        query = r.table("t").changes(include_states=True, squash=None)
        assert query.build() == [152, [[15, ["t"]]], {"include_states": True}]


class TestImmutability:
    """Tests for structural sharing of sub-expressions."""

    def test_chaining_does_not_mutate_receiver(self):
        """Test a builder returns a new node and leaves the receiver untouched."""
        base = r.table("users")
        filtered = base.filter({"active": True})
        limited = base.limit(5)

        assert base.build() == [15, ["users"]]
        assert filtered.args[0] is base
        assert limited.args[0] is base
        assert filtered.build() != limited.build()

    def test_with_opts_returns_copy(self):
        """Test with_opts leaves the original options in place."""
        base = r.table("t").get_all(1, index="a")
        other = base.with_opts(index="b")
        assert base.build()[2] == {"index": "a"}
        assert other.build()[2] == {"index": "b"}

    def test_with_arg(self):
        """Test with_arg appends an argument."""
        assert r.expr([1]).with_arg(2).build() == [2, [1, 2]]


class TestFunctions:
    """Tests for Python callables turned into FUNC terms."""

    def test_single_parameter(self):
        """Test the identity function."""
        assert ast.func(lambda x: x).build() == [69, [[2, [1]], [10, [1]]]]

    def test_var_ids_restart_per_query(self):
        """Test two independent functions get the same ids."""
        first = ast.func(lambda x: x).build()
        second = ast.func(lambda y: y).build()
        assert first == second

    def test_two_parameters(self):
        """Test each parameter gets its own id."""
        built = ast.func(lambda a, b: a + b).build()
        assert built == [69, [[2, [1, 2]], [24, [[10, [1]], [10, [2]]]]]]

    def test_nested_functions_get_fresh_ids(self):
        """Test inner functions do not reuse the ids of the outer one."""
        query = r.expr([1]).map(lambda x: r.expr([2]).map(lambda y: x + y))
        inner = [69, [[2, [2]], [24, [[10, [1]], [10, [2]]]]]]
        outer = [69, [[2, [1]], [38, [[2, [2]], inner]]]]
        assert query.build() == [38, [[2, [1]], outer]]

    def test_filter_with_lambda(self):
        """Test a predicate using brackets and comparison."""
        query = r.table("t").filter(lambda doc: doc["age"] > 18)
        predicate = [69, [[2, [1]], [21, [[170, [[10, [1]], "age"]], 18]]]]
        assert query.build() == [39, [[15, ["t"]], predicate]]

    def test_do_puts_function_first(self):
        """Test do sends the function before its arguments."""
        query = r.expr(1).do(lambda v: v + 1)
        assert query.build() == [64, [[69, [[2, [1]], [24, [[10, [1]], 1]]]], 1]]

    def test_r_do(self):
        """Test r.do with several arguments."""
        query = r.do(1, 2, lambda a, b: a + b)
        assert query.build() == [64, [[69, [[2, [1, 2]], [24, [[10, [1]], [10, [2]]]]]], 1, 2]]

    def test_do_without_function(self):
        """Test do requires a function."""
        with pytest.raises(ReqlDriverCompileError):
            r.expr(1).do()


class TestImplicitRow:
    """Tests for r.row in arguments which take a function."""

    row_a_is_1 = [17, [[170, [[13, []], "a"]], 1]]

    def test_filter_wraps_row(self):
        """Test a predicate using r.row is sent as a one parameter function."""
        query = r.table("t").filter(r.row["a"] == 1)
        assert query.build() == [39, [[15, ["t"]], [69, [[2, [1]], self.row_a_is_1]]]]

    def test_update_object_using_row(self):
        """Test r.row inside an object literal is found."""
        query = r.table("t").update({"n": r.row["n"] + 1})
        body = {"n": [24, [[170, [[13, []], "n"]], 1]]}
        assert query.build() == [53, [[15, ["t"]], [69, [[2, [1]], body]]]]

    def test_map_wraps_last_argument(self):
        """Test only the mapping function of map is wrapped."""
        query = r.map(r.table("t"), r.row["a"])
        assert query.build() == [38, [[15, ["t"]], [69, [[2, [1]], [170, [[13, []], "a"]]]]]]

    def test_aggregations_and_ordering(self):
        """Test group, count and desc wrap r.row."""
        wrapped = [69, [[2, [1]], self.row_a_is_1]]
        assert r.table("t").count(r.row["a"] == 1).build() == [43, [[15, ["t"]], wrapped]]
        assert r.group(r.table("t"), r.row["a"] == 1).build() == [144, [[15, ["t"]], wrapped]]
        assert r.table("t").order_by(r.desc(r.row["a"] == 1)).build() == [41, [[15, ["t"]], [74, [wrapped]]]]

    def test_values_without_row_are_untouched(self):
        """Test plain values and field names are not wrapped."""
        assert r.table("t").filter({"a": 1}).build() == [39, [[15, ["t"]], {"a": 1}]]
        assert r.table("t").order_by("a").build() == [41, [[15, ["t"]], "a"]]

    def test_functions_are_not_wrapped_twice(self):
        """Test a lambda stays a single function."""
        query = r.table("t").filter(lambda doc: doc["a"] == 1)
        assert query.build() == [39, [[15, ["t"]], [69, [[2, [1]], [17, [[170, [[10, [1]], "a"]], 1]]]]]]

    def test_printing(self):
        """Test the wrapped predicate prints as a lambda over r.row."""
        query = r.table("t").filter(r.row["a"] == 1)
        assert str(query) == "r.table('t').filter(lambda var_1: r.row['a'].eq(1))"


class TestOperators:
    """Tests for Python operators on terms."""

    def test_comparison(self):
        """Test == builds EQ on the implicit row."""
        assert (r.row["a"] == 1).build() == [17, [[170, [[13, []], "a"]], 1]]

    def test_arithmetic(self):
        """Test arithmetic operators."""
        value = r.expr(2)
        assert (value + 1).build() == [24, [2, 1]]
        assert (value - 1).build() == [25, [2, 1]]
        assert (value * 3).build() == [26, [2, 3]]

    def test_reflected_arithmetic(self):
        """Test the Python value stays on the left."""
        assert (1 + r.expr(2)).build() == [24, [1, 2]]
        assert (10 - r.expr(2)).build() == [25, [10, 2]]

    def test_logic(self):
        """Test &, | and ~."""
        assert (r.expr(True) & False).build() == [67, [True, False]]
        assert (~r.expr(True)).build() == [23, [True]]

    def test_terms_are_not_hashable(self):
        """Test terms cannot be used as dict keys."""
        with pytest.raises(TypeError):
            hash(r.expr(1))

    def test_terms_are_not_iterable(self):
        """Test iterating a query raises a compile error."""
        with pytest.raises(ReqlDriverCompileError):
            list(r.expr([1, 2]))


class TestSlicing:
    """Tests for Python slices on terms."""

    def test_slice_with_both_bounds(self):
        """Test [1:3] builds SLICE."""
        assert r.expr([1, 2, 3])[1:3].build() == [30, [[2, [1, 2, 3]], 1, 3]]

    def test_open_ended_slice(self):
        """Test [1:] runs to the end, inclusive."""
        assert r.expr([1, 2, 3])[1:].build() == [30, [[2, [1, 2, 3]], 1, -1], {"right_bound": "closed"}]

    def test_slice_from_start(self):
        """Test [:2] starts at zero."""
        assert r.expr([1, 2, 3])[:2].build() == [30, [[2, [1, 2, 3]], 0, 2]]

    def test_slice_step(self):
        """Test a step is rejected."""
        with pytest.raises(ReqlDriverCompileError):
            r.expr([1, 2, 3])[::2]


class TestExpr:
    """Tests for converting Python values."""

    def test_expr_returns_terms_untouched(self):
        """Test expr is the identity on terms."""
        term = r.table("t")
        assert r.expr(term) is term

    def test_unsupported_type(self):
        """Test arbitrary objects are rejected."""
        with pytest.raises(ReqlDriverCompileError):
            r.expr(object())

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_numbers(self, value):
        """Test NaN and infinities are rejected, JSON cannot carry them."""
        with pytest.raises(ReqlDriverCompileError):
            r.expr(value)
        with pytest.raises(ReqlDriverCompileError):
            r.expr([1, {"a": value}])

    def test_non_string_keys(self):
        """Test object keys must be strings."""
        with pytest.raises(ReqlDriverCompileError):
            r.expr({1: "a"})

    def test_nesting_depth(self):
        """Test deeply nested values are rejected."""
        value: list = []
        for _ in range(30):
            value = [value]
        with pytest.raises(ReqlDriverCompileError):
            r.expr(value)
        assert r.expr([[1]], nesting_depth=3).build() == [2, [[2, [1]]]]

    def test_aware_datetime(self):
        """Test datetimes are sent as TIME pseudo-types."""
        tz = datetime.timezone(datetime.timedelta(hours=-5, minutes=-30))
        value = datetime.datetime(2020, 1, 1, tzinfo=tz)
        assert r.expr(value).build() == {
            "$reql_type$": "TIME",
            "epoch_time": value.timestamp(),
            "timezone": "-05:30",
        }

    def test_utc_datetime(self):
        """Test UTC datetimes use +00:00."""
        value = datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone.utc)
        assert r.expr(value).build()["timezone"] == "+00:00"
        assert r.expr(value).build()["epoch_time"] == 1577836800.0

    def test_naive_datetime(self):
        """Test datetimes without timezone are rejected."""
        with pytest.raises(ReqlDriverCompileError):
            r.expr(datetime.datetime(2020, 1, 1))

    def test_bytes(self):
        """Test bytes are sent as BINARY pseudo-types."""
        assert r.expr(b"\x00\x01").build() == {"$reql_type$": "BINARY", "data": "AAE="}

    def test_binary_term(self):
        """Test r.binary sends bytes inline and converts terms on the server."""
        assert r.binary(b"\x00\x01").build() == {"$reql_type$": "BINARY", "data": "AAE="}
        assert r.binary(r.expr("abc")).build() == [155, ["abc"]]

    def test_time_term(self):
        """Test r.time with a timezone."""
        assert r.time(2020, 1, 2, "Z").build() == [136, [2020, 1, 2, "Z"]]


class TestTzinfo:
    """Tests for the fixed offset timezone."""

    def test_offsets(self):
        """Test positive, negative and Z offsets."""
        assert ast.ReqlTzinfo("+01:30").utcoffset(None) == datetime.timedelta(hours=1, minutes=30)
        assert ast.ReqlTzinfo("-02:00").utcoffset(None) == datetime.timedelta(hours=-2)
        assert ast.ReqlTzinfo("Z").utcoffset(None) == datetime.timedelta(0)

    def test_equality(self):
        """Test timezones with the same offset are equal."""
        assert ast.ReqlTzinfo("+00:00") == ast.ReqlTzinfo("Z")
        assert r.make_timezone("+01:00") == ast.ReqlTzinfo("+01:00")

    def test_invalid(self):
        """Test malformed offsets raise ValueError."""
        with pytest.raises(ValueError):
            ast.ReqlTzinfo("+0100")


class TestTopLevel:
    """Tests for builders on r."""

    def test_branch(self):
        """Test r.branch keeps its arguments in order."""
        assert r.branch(r.expr(True), "yes", "no").build() == [65, [True, "yes", "no"]]

    def test_order_by_desc(self):
        """Test ordering helpers."""
        query = r.table("t").order_by(r.desc("age"), index=r.asc("id"))
        assert query.build() == [41, [[15, ["t"]], [74, ["age"]]], {"index": [73, ["id"]]}]

    def test_args(self):
        """Test r.args wraps an array."""
        assert r.table("t").get_all(r.args(["a", "b"])).build() == [78, [[15, ["t"]], [154, [[2, ["a", "b"]]]]]]

    def test_js_timeout(self):
        """Test r.js sends its timeout only when given."""
        assert r.js("1 + 1").build() == [11, ["1 + 1"]]
        assert r.js("1 + 1", timeout=2.5).build() == [11, ["1 + 1"], {"timeout": 2.5}]

    def test_range_and_uuid(self):
        """Test builders without required arguments."""
        assert r.range().build() == [173, []]
        assert r.uuid("name").build() == [169, ["name"]]

    def test_point(self):
        """Test a geometry constructor."""
        assert r.point(-122.4, 37.7).build() == [159, [-122.4, 37.7]]

    def test_db_admin(self):
        """Test table management chained on a database."""
        assert r.db("d").table_create("t", primary_key="key").build() == [
            int(TermType.TABLE_CREATE), [[14, ["d"]], "t"], {"primary_key": "key"}
        ]
        assert r.table_list().build() == [int(TermType.TABLE_LIST), []]
