"""
Управление конкурентностью.
"""

from .room_lock import RoomLockManager

__all__ = [
    "RoomLockManager",
]
