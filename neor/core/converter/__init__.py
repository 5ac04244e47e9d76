from .json_decoder import ReqlDecoder
from .json_encoder import ReqlEncoder

__all__ = (
    "ReqlDecoder",
    "ReqlEncoder",
)
