"""Per-game locks.

Conquests and setup changes (including the start transition) on one game
share a single lock. Entries live only while some thread holds a reference
to the lock, so finished or abandoned games do not keep one forever.
"""

import threading
import weakref
from contextlib import contextmanager
from typing import Optional

from flask import current_app

from subrisk.errors import GameBusyError


_game_locks: "weakref.WeakValueDictionary[int, threading.Lock]" = weakref.WeakValueDictionary()
_registry_lock = threading.Lock()


def game_lock(game_id: int) -> threading.Lock:
    with _registry_lock:
        lock = _game_locks.get(game_id)
        if lock is None:
            lock = threading.Lock()
            _game_locks[game_id] = lock
        return lock


@contextmanager
def serialized(game_id: int, timeout: Optional[float] = None):
    """Hold the game's lock for the duration of the block."""
    if timeout is None:
        timeout = float(current_app.config.get('CONQUEST_LOCK_TIMEOUT_SEC', 5))
    lock = game_lock(game_id)
    if not lock.acquire(timeout=timeout):
        current_app.logger.warning(f"[game-busy] game={game_id} lock not acquired within {timeout}s")
        raise GameBusyError('Game is busy, try again')
    try:
        yield
    finally:
        lock.release()
