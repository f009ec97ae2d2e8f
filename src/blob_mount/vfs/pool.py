"""Process-wide pool of reusable chunk buffers."""

import threading
from typing import List

DEFAULT_BLOB_SIZE = 128 * 1024


class BufferPool:
    """
    Free list of ``bytearray`` buffers of a fixed default capacity.

    A buffer is owned either by the pool (idle) or by whoever acquired it,
    never both. ``acquire`` and ``release`` are the only transfer points.
    Buffers grown beyond the default capacity are dropped on release so the
    pool only retains default-sized entries. The pool is unbounded.
    """

    def __init__(self, default_size: int = DEFAULT_BLOB_SIZE):
        self.default_size = default_size
        self._idle: List[bytearray] = []
        self._lock = threading.Lock()

    def acquire(self) -> bytearray:
        with self._lock:
            if self._idle:
                return self._idle.pop()
        return bytearray(self.default_size)

    def release(self, buf: bytearray) -> None:
        if len(buf) > self.default_size:
            return
        with self._lock:
            self._idle.append(buf)

    def idle_count(self) -> int:
        with self._lock:
            return len(self._idle)


blob_pool = BufferPool()
