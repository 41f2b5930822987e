from .in_memory_store import InMemoryMemoryStore

__all__ = ["InMemoryMemoryStore"]
