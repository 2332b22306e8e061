"""
下载管理器

有界工作池、按任务重试、原子发布（临时文件校验通过后才 rename 到目标路径）
以及协作式取消。每个提交的任务都恰好产生一个终态结果。
"""

import asyncio
import os
import uuid
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Tuple

import aiofiles
import aiohttp
from loguru import logger

from uranium.download.fetcher import Fetcher, default_fetcher
from uranium.download.queue import DownloadQueue, DownloadTask
from uranium.download.verifier import Hasher, matches
from uranium.exceptions import (
    DownloadCancelled,
    DownloadError,
    FilesystemError,
    HashMismatch,
    TransportError,
)
from uranium.models.config import default_concurrency

EXECUTABLE_MODE = 0o755

ProgressCallback = Callable[[str, int, Optional[int]], None]


@dataclass
class DownloadStats:
    """下载统计"""

    total: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    retried: int = 0
    bytes_downloaded: int = 0


@dataclass(frozen=True)
class DownloadResult:
    """单个任务的终态结果：成功或失败，二者互斥"""

    task: DownloadTask
    error: Optional[DownloadError] = None
    bytes_written: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def path(self) -> str:
        return self.task.filename


class CancelToken:
    """协作式取消信号"""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class _Submission:
    queue: DownloadQueue
    cancel: Optional[CancelToken]
    results: List[DownloadResult] = field(default_factory=list)


class DownloadManager:
    """下载管理器"""

    def __init__(
        self,
        fetcher: Optional[Fetcher] = None,
        max_concurrent: Optional[int] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.fetcher = fetcher or default_fetcher()
        self._owned_fetcher = fetcher is None
        self.max_concurrent = max_concurrent or default_concurrency()
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.stats = DownloadStats()
        self._progress_callback = progress_callback
        self._failed_downloads: List[str] = []

    async def submit(
        self,
        tasks: Iterable[DownloadTask],
        concurrency_limit: Optional[int] = None,
        cancel: Optional[CancelToken] = None,
    ) -> List[DownloadResult]:
        """
        提交一批下载任务并等待全部结束

        Args:
            tasks: 下载任务
            concurrency_limit: 最大同时传输数（默认使用管理器配置）
            cancel: 取消信号；触发后不再启动新任务，进行中的传输照常结束

        Returns:
            每个任务一个结果，顺序与完成顺序一致而非提交顺序
        """
        tasks = list(tasks)
        if not tasks:
            return []

        limit = concurrency_limit or self.max_concurrent
        submission = _Submission(queue=DownloadQueue(), cancel=cancel)
        for task in tasks:
            await submission.queue.put(task)
        self.stats.total += len(tasks)

        worker_count = min(limit, len(tasks))
        logger.info(f"[启动] 下载 {len(tasks)} 个文件，最大并发数: {worker_count}")
        workers = [
            asyncio.create_task(self._worker(submission), name=f"downloader-{i}")
            for i in range(worker_count)
        ]

        try:
            await submission.queue.join()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        return submission.results

    async def _worker(self, submission: _Submission):
        """下载工作协程"""
        queue = submission.queue
        while True:
            task = await queue.get()
            try:
                if submission.cancel is not None and submission.cancel.cancelled:
                    pending = [task, *queue.drain()]
                    for cancelled in pending:
                        submission.results.append(self._cancelled(cancelled))
                    continue

                try:
                    result = await self.download(task, submission.cancel)
                except Exception as e:
                    logger.exception(f"[错误] 下载 '{task.filename}' 出现未预期的异常")
                    result = self._fail(
                        task,
                        DownloadError(
                            f"下载异常: {e!r}", context={"file": task.filename}
                        ),
                    )
                submission.results.append(result)
            finally:
                queue.task_done()

    def _cancelled(self, task: DownloadTask) -> DownloadResult:
        self.stats.cancelled += 1
        logger.debug(f"[取消] '{task.filename}' 未开始")
        return DownloadResult(
            task, DownloadCancelled("下载已取消", context={"file": task.filename})
        )

    async def download(
        self, task: DownloadTask, cancel: Optional[CancelToken] = None
    ) -> DownloadResult:
        """
        下载单个任务，带重试上限

        Returns:
            终态结果（不会因传输或校验失败而抛出异常）
        """
        if not task.url:
            return self._fail(
                task, TransportError("缺少下载地址", context={"file": task.filename})
            )

        try:
            os.makedirs(os.path.dirname(task.destination) or ".", exist_ok=True)
        except OSError as e:
            return self._fail(
                task,
                FilesystemError(
                    f"无法创建目录: {e}", context={"file": task.filename}
                ),
            )

        logger.info(f"[开始] 下载: {task.filename}")
        last_error: Optional[DownloadError] = None
        task.attempts = 0

        while task.attempts <= self.max_retries:
            if task.attempts > 0 and cancel is not None and cancel.cancelled:
                logger.warning(f"[取消] '{task.filename}' 放弃重试")
                break

            task.attempts += 1
            error, written = await self._attempt(task)
            if error is None:
                self.stats.completed += 1
                logger.success(f"[完成] '{task.filename}' 下载完成")
                return DownloadResult(task, bytes_written=written)

            last_error = error
            if not error.retryable:
                break

            if task.attempts <= self.max_retries:
                self.stats.retried += 1
                delay = self.retry_delay * (2 ** (task.attempts - 1))
                logger.warning(
                    f"[重试] 下载 '{task.filename}' 失败 (第 {task.attempts} 次): "
                    f"{error}. {delay:.1f}s 后重试..."
                )
                await asyncio.sleep(delay)

        if last_error is None:
            last_error = DownloadCancelled("下载已取消", context={"file": task.filename})
        return self._fail(task, last_error)

    def _fail(self, task: DownloadTask, error: DownloadError) -> DownloadResult:
        self.stats.failed += 1
        self._failed_downloads.append(task.filename)
        logger.error(f"[错误] 下载 '{task.filename}' 最终失败: {error}")
        return DownloadResult(task, error)

    async def _attempt(
        self, task: DownloadTask
    ) -> Tuple[Optional[DownloadError], int]:
        """单次传输：写入临时文件、计算摘要、匹配后原子替换目标文件"""
        temp_path = f"{task.destination}.{uuid.uuid4().hex[:8]}.part"
        hasher = Hasher(task.algorithm) if task.expected_hash else None
        written = 0

        try:
            try:
                f = await aiofiles.open(temp_path, "wb")
            except OSError as e:
                return FilesystemError(
                    f"无法创建临时文件: {e}", context={"file": task.filename}
                ), 0

            try:
                async for chunk in self.fetcher.fetch(task.url):
                    try:
                        await f.write(chunk)
                    except OSError as e:
                        raise FilesystemError(
                            f"写入失败: {e}", context={"file": task.filename}
                        ) from e
                    if hasher is not None:
                        hasher.update(chunk)
                    written += len(chunk)
                    self.stats.bytes_downloaded += len(chunk)
                    if self._progress_callback:
                        self._progress_callback(task.filename, written, task.size)
            finally:
                await f.close()
        except DownloadError as e:
            self._discard(temp_path)
            return e, written
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            self._discard(temp_path)
            return TransportError(
                f"传输失败: {e}", context={"url": task.url, "file": task.filename}
            ), written
        except asyncio.CancelledError:
            self._discard(temp_path)
            raise
        except Exception as e:
            self._discard(temp_path)
            logger.opt(exception=e).debug(f"[错误] '{task.filename}' 传输层异常")
            return DownloadError(
                f"传输层异常: {e!r}", context={"url": task.url, "file": task.filename}
            ), written

        if hasher is not None:
            actual = hasher.hexdigest()
            if not matches(actual, task.expected_hash):
                self._discard(temp_path)
                return HashMismatch(
                    f"{task.algorithm.value} 校验失败: {task.filename}",
                    context={
                        "file": task.filename,
                        "expected": task.expected_hash,
                        "actual": actual,
                    },
                ), written

        try:
            if task.executable and os.name != "nt":
                os.chmod(temp_path, EXECUTABLE_MODE)
            os.replace(temp_path, task.destination)
        except OSError as e:
            self._discard(temp_path)
            return FilesystemError(
                f"无法写入目标文件: {e}", context={"file": task.filename}
            ), written

        return None, written

    @staticmethod
    def _discard(temp_path: str) -> None:
        """删除临时文件"""
        try:
            os.remove(temp_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[清理] 无法删除临时文件 {temp_path}: {e}")

    def get_stats(self) -> DownloadStats:
        """获取下载统计"""
        return self.stats

    def get_failed(self) -> List[str]:
        """获取失败的下载列表"""
        return self._failed_downloads.copy()

    async def close(self):
        """关闭自有的传输资源"""
        if self._owned_fetcher:
            await self.fetcher.close()

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()
