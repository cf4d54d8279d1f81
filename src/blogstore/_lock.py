"""Advisory repository lock guarding ref compare-and-swap.

Combines a per-process thread lock with an OS file lock so that two
publishers in different threads or processes cannot interleave the
read-compare-write of a branch ref.
"""

from __future__ import annotations

import os
import threading
from contextlib import contextmanager

_thread_locks: dict[tuple[int, int] | str, threading.Lock] = {}
_thread_locks_guard = threading.Lock()


def _lock_key(repo_path: str) -> tuple[int, int] | str:
    real = os.path.realpath(repo_path)
    try:
        st = os.stat(real)
    except OSError:
        return os.path.normcase(real)
    if st.st_ino == 0:
        return os.path.normcase(real)
    return (st.st_dev, st.st_ino)


def _get_thread_lock(repo_path: str) -> threading.Lock:
    key = _lock_key(repo_path)
    with _thread_locks_guard:
        return _thread_locks.setdefault(key, threading.Lock())


def _lock_path(repo_path: str) -> str:
    if os.path.isdir(repo_path):
        return os.path.join(repo_path, "blogstore.lock")
    return repo_path + ".lock"


try:
    import fcntl

    def _acquire(fd: int) -> None:
        fcntl.flock(fd, fcntl.LOCK_EX)

    def _release(fd: int) -> None:
        fcntl.flock(fd, fcntl.LOCK_UN)

except ImportError:
    import msvcrt

    def _acquire(fd: int) -> None:
        msvcrt.locking(fd, msvcrt.LK_LOCK, 1)

    def _release(fd: int) -> None:
        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)


@contextmanager
def repo_lock(repo_path: str):
    tlock = _get_thread_lock(repo_path)
    with tlock:
        fd = os.open(_lock_path(repo_path), os.O_CREAT | os.O_RDWR | getattr(os, "O_CLOEXEC", 0))
        os.set_inheritable(fd, False)
        try:
            _acquire(fd)
            try:
                yield
            finally:
                _release(fd)
        finally:
            os.close(fd)
