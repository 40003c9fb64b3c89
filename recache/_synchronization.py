"""
Locks shared by the storages.

The async storages use `AsyncLock` and their generated sync
counterparts use `Lock`, so both names must stay importable from here.
"""

from threading import Lock

import anyio

AsyncLock = anyio.Lock

__all__ = ("AsyncLock", "Lock")
