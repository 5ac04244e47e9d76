from .transport import AsyncTransport

__all__ = ("AsyncTransport",)
