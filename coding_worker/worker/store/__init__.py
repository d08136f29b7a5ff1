"""Durable session storage implementations."""

from coding_worker.worker.store.base import SessionStorage
from coding_worker.worker.store.local import LocalSessionStorage

__all__ = ["LocalSessionStorage", "SessionStorage"]
