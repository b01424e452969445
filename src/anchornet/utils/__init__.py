from .json import json_dumps
from .timestamps import now_iso, utc_now, from_millis_iso, monotonic_ms
from .logging import get_logger, configure_logging

__all__ = [
    "json_dumps",
    "now_iso",
    "utc_now",
    "from_millis_iso",
    "monotonic_ms",
    "get_logger",
    "configure_logging",
]
