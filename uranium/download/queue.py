"""
下载任务队列

实现优先级队列、任务状态与取消时的队列清空。
"""

import asyncio
import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from uranium.models import FileEntry, HashAlgorithm


class Priority(Enum):
    """下载优先级"""

    HIGH = 0
    NORMAL = 1
    LOW = 2


@dataclass
class DownloadTask:
    """
    下载任务

    attempts 记录本次下载的已尝试次数，由下载管理器独占修改，
    每次重新提交时清零。
    """

    url: str
    destination: str
    expected_hash: Optional[str] = None
    algorithm: HashAlgorithm = HashAlgorithm.SHA1
    size: Optional[int] = None
    entry: Optional[FileEntry] = None
    priority: Priority = Priority.NORMAL
    executable: bool = False
    attempts: int = 0

    @classmethod
    def from_entry(
        cls,
        entry: FileEntry,
        destination: str,
        priority: Priority = Priority.NORMAL,
    ) -> "DownloadTask":
        """由清单条目创建下载任务"""
        return cls(
            url=entry.url or "",
            destination=destination,
            expected_hash=entry.hash,
            algorithm=entry.algorithm,
            size=entry.size,
            entry=entry,
            priority=priority,
            executable=entry.executable,
        )

    @property
    def filename(self) -> str:
        if self.entry is not None:
            return self.entry.path
        return self.destination


@dataclass(order=True)
class _QueueItem:
    priority: int
    sequence: int
    task: DownloadTask = field(compare=False)


class DownloadQueue:
    """下载队列"""

    def __init__(self):
        self._queue: asyncio.PriorityQueue = asyncio.PriorityQueue()
        self._counter = itertools.count()
        self._total_queued = 0

    async def put(self, task: DownloadTask) -> None:
        """添加任务到队列（同优先级按提交顺序）"""
        await self._queue.put(
            _QueueItem(task.priority.value, next(self._counter), task)
        )
        self._total_queued += 1

    async def get(self) -> DownloadTask:
        """获取下一个任务"""
        item = await self._queue.get()
        return item.task

    def task_done(self):
        """标记任务完成"""
        self._queue.task_done()

    def qsize(self) -> int:
        """获取队列大小"""
        return self._queue.qsize()

    def empty(self) -> bool:
        """检查队列是否为空"""
        return self._queue.empty()

    async def join(self):
        """等待所有任务完成"""
        await self._queue.join()

    def drain(self) -> List[DownloadTask]:
        """取出所有尚未开始的任务（每个都会被标记为完成）"""
        drained = []
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            drained.append(item.task)
            self._queue.task_done()
        return drained

    def get_stats(self) -> dict:
        """获取队列统计"""
        return {
            "pending": self.qsize(),
            "total_queued": self._total_queued,
        }
