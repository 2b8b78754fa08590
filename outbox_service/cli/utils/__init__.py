"""CLI utilities."""

from .async_runner import coro
from .formatters import error, header, info, key_value, print_json, success, warning

__all__ = [
    "coro",
    "error",
    "header",
    "info",
    "key_value",
    "print_json",
    "success",
    "warning",
]
