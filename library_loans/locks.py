import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class BookLocks:
    """One mutex per book id.

    Loan operations on the same book run one at a time; operations on
    different books never wait on each other here.  Locks are created on
    first use and kept for the life of the registry.
    """

    def __init__(self) -> None:
        self._locks: Dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, book_id: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(book_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[book_id] = lock
            return lock

    @contextmanager
    def hold(self, book_id: int) -> Iterator[None]:
        lock = self._lock_for(book_id)
        with lock:
            yield

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)
