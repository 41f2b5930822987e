"""
Общие утилиты доменного слоя.
"""

from .callables import maybe_await, handler_name

__all__ = ["maybe_await", "handler_name"]
