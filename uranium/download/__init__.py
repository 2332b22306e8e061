"""
Uranium 下载层

包含传输能力、下载管理、任务队列、文件校验等功能。
"""

from uranium.download.fetcher import (
    Fetcher,
    HttpFetcher,
    LocalFileFetcher,
    ArchiveFetcher,
    RoutingFetcher,
    default_fetcher,
)
from uranium.download.manager import (
    CancelToken,
    DownloadManager,
    DownloadResult,
    DownloadStats,
)
from uranium.download.queue import DownloadQueue, DownloadTask, Priority
from uranium.download.verifier import Hasher, digest, hash_file, verify

__all__ = [
    "Fetcher",
    "HttpFetcher",
    "LocalFileFetcher",
    "ArchiveFetcher",
    "RoutingFetcher",
    "default_fetcher",
    "CancelToken",
    "DownloadManager",
    "DownloadResult",
    "DownloadStats",
    "DownloadQueue",
    "DownloadTask",
    "Priority",
    "Hasher",
    "digest",
    "hash_file",
    "verify",
]
