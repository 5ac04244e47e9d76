from .connection import Connection, Session
from .cursor import Cursor, CursorState
from .changefeed import ChangefeedOverflow
from .msg import ServerInfo

__all__ = (
    "ChangefeedOverflow",
    "Connection",
    "Cursor",
    "CursorState",
    "ServerInfo",
    "Session",
)
