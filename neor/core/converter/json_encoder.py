from __future__ import annotations
import json
from typing import Any

from neor.core.ast import Command

__all__ = ("ReqlEncoder",)


class ReqlEncoder(json.JSONEncoder):
    """
    Encoder for query bodies: terms found anywhere in the value are replaced
    by their wire form, the output is compact and non-ASCII text is sent as is.
    """

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("ensure_ascii", False)
        kwargs.setdefault("allow_nan", False)
        kwargs.setdefault("check_circular", False)
        kwargs.setdefault("separators", (",", ":"))
        super().__init__(**kwargs)

    def default(self, o: Any) -> Any:
        if isinstance(o, Command):
            return o.build()
        return super().default(o)
