"""
Устойчивость: бюджеты времени стадий и повторы вызовов моделей.
"""

from .retry_service import call_with_retry, create_retry_decorator
from .stage_guard import RunEpoch, StageToken, run_with_budget

__all__ = [
    "call_with_retry",
    "create_retry_decorator",
    "RunEpoch",
    "StageToken",
    "run_with_budget",
]
