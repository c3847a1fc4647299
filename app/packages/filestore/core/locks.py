"""按归一化路径加锁：串行化同一子树上的“物理操作 + 索引同步”。

每个路径对应一把读写锁。变更操作对目标路径取写锁，对它的所有祖先路径
（含根目录 ``""``）取读锁，因此：
- 删除/重命名 ``a`` 会等待 ``a`` 之下正在进行的上传、新建完成，反之亦然；
- 兄弟路径上的操作互不阻塞。

同步接口运行在线程池中，因此基于 ``threading``。锁对象按引用计数回收，
不会随着访问过的路径无限增长。所有路径按字典序获取，祖先总是先于后代，避免死锁。
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterable, Iterator


class _PathLock:
    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    def acquire(self, exclusive: bool) -> None:
        with self._cond:
            if exclusive:
                while self._writer or self._readers:
                    self._cond.wait()
                self._writer = True
            else:
                while self._writer:
                    self._cond.wait()
                self._readers += 1

    def release(self, exclusive: bool) -> None:
        with self._cond:
            if exclusive:
                self._writer = False
            else:
                self._readers -= 1
            self._cond.notify_all()


def _ancestors(path: str) -> list[str]:
    parts = path.split("/") if path else []
    return [""] + ["/".join(parts[:i]) for i in range(1, len(parts))]


class PathLockRegistry:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, _PathLock] = {}
        self._refs: dict[str, int] = {}

    def _checkout(self, key: str) -> _PathLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = _PathLock()
                self._locks[key] = lock
                self._refs[key] = 0
            self._refs[key] += 1
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                del self._refs[key]
                del self._locks[key]

    @staticmethod
    def _plan(exclusive: Iterable[str], shared: Iterable[str]) -> list[tuple[str, bool]]:
        modes: dict[str, bool] = {}
        for path in shared:
            for key in _ancestors(path) + [path]:
                modes.setdefault(key, False)
        for path in exclusive:
            for key in _ancestors(path):
                modes.setdefault(key, False)
        for path in exclusive:
            modes[path] = True
        return sorted(modes.items())

    @contextmanager
    def hold(self, *paths: str, shared: Iterable[str] = ()) -> Iterator[None]:
        """对 ``paths`` 取写锁、对 ``shared`` 及全部祖先取读锁，退出上下文时逆序释放。"""
        held: list[tuple[str, _PathLock, bool]] = []
        try:
            for key, exclusive in self._plan(paths, shared):
                lock = self._checkout(key)
                try:
                    lock.acquire(exclusive)
                except BaseException:
                    self._checkin(key)
                    raise
                held.append((key, lock, exclusive))
            yield
        finally:
            for key, lock, exclusive in reversed(held):
                lock.release(exclusive)
                self._checkin(key)

    def active_count(self) -> int:
        with self._guard:
            return len(self._locks)
