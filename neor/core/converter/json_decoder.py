from __future__ import annotations
import base64
from datetime import datetime, timezone
import json
from typing import (
    Any,
    Callable,
    Dict,
    Tuple,
    TYPE_CHECKING,
)
from typing_extensions import Unpack
if TYPE_CHECKING:
    from neor.core.options import GlobalOptions


from neor.core.ast import (
    ReqlBinary,
    ReqlTzinfo,
)
from neor.core.errors import ReqlDriverError

__all__ = (
    "ReqlDecoder",
    "make_hashable",
)

PSEUDO_TYPE_KEY = "$reql_type$"


def _require(obj: dict[str, Any], field: str) -> Any:
    try:
        return obj[field]
    except KeyError:
        raise ReqlDriverError(
            f"pseudo-type {obj[PSEUDO_TYPE_KEY]} object {json.dumps(obj)} "
            f"does not have the expected field \"{field}\"."
        ) from None


def time_to_datetime(obj: dict[str, Any]) -> datetime:
    """
    TIME to an aware datetime. The server's "timezone" is kept as a
    ReqlTzinfo; a TIME without one is UTC.
    """
    epoch_time = _require(obj, "epoch_time")
    tz = ReqlTzinfo(obj["timezone"]) if "timezone" in obj else timezone.utc
    return datetime.fromtimestamp(epoch_time, tz)


def binary_to_bytes(obj: dict[str, Any]) -> ReqlBinary:
    return ReqlBinary(base64.b64decode(_require(obj, "data")))


def grouped_data_to_dict(obj: dict[str, Any]) -> dict:
    """
    GROUPED_DATA to a dict of group key to reduction.
    """
    return {make_hashable(key): value for key, value in _require(obj, "data")}


def make_hashable(obj: Any) -> Any:
    """
    Group keys may be arrays or objects, which Python cannot hash. Lists become
    tuples and dicts become frozensets of their items.
    """
    if isinstance(obj, list):
        return tuple(map(make_hashable, obj))
    if isinstance(obj, dict):
        return frozenset((key, make_hashable(value)) for key, value in obj.items())
    return obj


# pseudo-type -> (format run option, native converter)
PSEUDO_TYPES: Dict[str, Tuple[str, Callable[[dict[str, Any]], Any]]] = {
    "TIME": ("time_format", time_to_datetime),
    "BINARY": ("binary_format", binary_to_bytes),
    "GROUPED_DATA": ("group_format", grouped_data_to_dict),
}

# Returned as plain dicts in every format.
PASSTHROUGH_TYPES = frozenset({"GEOMETRY"})


class ReqlDecoder(json.JSONDecoder):
    """
    JSONDecoder turning the TIME, BINARY and GROUPED_DATA pseudo-types into
    Python values. A pseudo-type whose format run option is "raw" is left as
    the object the server sent.
    """

    def __init__(
        self,
        *,
        object_hook: Callable[[dict[str, Any]], Any] | None = None,
        parse_float: Callable[[str], Any] | None = None,
        strict: bool = True,
        **reql_format_opts: Unpack[GlobalOptions],
    ) -> None:
        super().__init__(
            object_hook=object_hook or self.convert_pseudo_type,
            parse_float=parse_float,
            strict=strict,
        )

        self.reql_format_opts = reql_format_opts
        self._converters: Dict[str, Callable[[dict[str, Any]], Any] | None] = {}
        for reql_type, (option, converter) in PSEUDO_TYPES.items():
            mode = reql_format_opts.get(option) or "native"
            if mode not in ("native", "raw"):
                raise ReqlDriverError(f"Unknown {option} run option \"{mode}\".")
            self._converters[reql_type] = converter if mode == "native" else None

    def convert_pseudo_type(self, obj: dict[str, Any]) -> Any:
        """
        Object hook dispatching on the "$reql_type$" key.

        :raises: ReqlDriverError
        """
        reql_type = obj.get(PSEUDO_TYPE_KEY)
        if reql_type is None or reql_type in PASSTHROUGH_TYPES:
            return obj
        if reql_type not in self._converters:
            raise ReqlDriverError(f"Unknown pseudo-type \"{reql_type}\"")

        converter = self._converters[reql_type]
        return obj if converter is None else converter(obj)
