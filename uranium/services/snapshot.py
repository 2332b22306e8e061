"""
本地快照

每次解析都重新读取磁盘状态，不跨调用缓存。哈希计算在线程池中并行进行，
结果按输入顺序合并。
"""

import asyncio
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from collections.abc import Mapping
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from loguru import logger

from uranium.download.verifier import hash_file
from uranium.models import FileEntry, HashAlgorithm, Manifest, normalize_path, safe_join

STATE_DIR = ".uranium"


@dataclass(frozen=True)
class SnapshotEntry:
    """本地文件状态"""

    size: int
    hash: Optional[str] = None
    algorithm: Optional[HashAlgorithm] = None


class LocalSnapshot(Mapping[str, SnapshotEntry]):
    """相对路径 -> 本地文件状态"""

    def __init__(self, root: str, entries: Optional[Dict[str, SnapshotEntry]] = None):
        self.root = root
        self._entries: Dict[str, SnapshotEntry] = dict(entries or {})

    def __getitem__(self, path: str) -> SnapshotEntry:
        return self._entries[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"LocalSnapshot(root={self.root!r}, files={len(self)})"


def scan_paths(
    root: str,
    subtrees: Optional[Iterable[str]] = None,
    skip_dirs: Sequence[str] = (STATE_DIR,),
) -> List[str]:
    """
    列出目录下所有文件的相对路径（POSIX 风格，已排序）

    Args:
        root: 根目录
        subtrees: 只扫描这些子目录；None 表示扫描整个根目录
        skip_dirs: 根目录下需要跳过的目录名
    """
    if not os.path.isdir(root):
        return []

    starts = [root] if subtrees is None else [safe_join(root, s) for s in subtrees]
    found = set()
    for start in starts:
        if not os.path.isdir(start):
            continue
        for current, dirs, files in os.walk(start):
            relative_dir = os.path.relpath(current, root)
            if relative_dir == ".":
                dirs[:] = [d for d in dirs if d not in skip_dirs]
            for name in files:
                relative = os.path.normpath(os.path.join(relative_dir, name))
                found.add(relative.replace(os.sep, "/"))
    return sorted(found)


async def parallel_hash(
    items: Sequence[Tuple[str, HashAlgorithm]],
    workers: Optional[int] = None,
) -> List[Optional[str]]:
    """
    在线程池中并行计算多个文件的摘要

    Args:
        items: (绝对路径, 算法) 列表
        workers: 线程数

    Returns:
        与 items 一一对应的摘要列表
    """
    if not items:
        return []

    loop = asyncio.get_running_loop()
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [
            loop.run_in_executor(executor, hash_file, path, algorithm)
            for path, algorithm in items
        ]
        return list(await asyncio.gather(*futures))


async def build_snapshot(
    root: str,
    manifest: Optional[Manifest] = None,
    extra_paths: Iterable[str] = (),
    workers: Optional[int] = None,
) -> LocalSnapshot:
    """
    构建本地快照

    对清单中的路径计算摘要（大小与清单不符时跳过哈希，直接视为不匹配）；
    extra_paths 中的路径只记录大小，用于清理判断。
    """
    wanted: Dict[str, FileEntry] = {}
    if manifest is not None:
        for entry in manifest:
            wanted[entry.path] = entry

    entries: Dict[str, SnapshotEntry] = {}
    to_hash: List[Tuple[str, FileEntry]] = []

    for path, entry in wanted.items():
        full_path = safe_join(root, path)
        if not os.path.isfile(full_path):
            continue
        size = os.path.getsize(full_path)
        if entry.size is not None and entry.size != size:
            entries[path] = SnapshotEntry(size=size)
            continue
        to_hash.append((path, entry))

    hashes = await parallel_hash(
        [(safe_join(root, path), entry.algorithm) for path, entry in to_hash],
        workers=workers,
    )
    for (path, entry), value in zip(to_hash, hashes):
        full_path = safe_join(root, path)
        entries[path] = SnapshotEntry(
            size=os.path.getsize(full_path), hash=value, algorithm=entry.algorithm
        )

    for path in extra_paths:
        path = normalize_path(path)
        if path in entries or path in wanted:
            continue
        full_path = safe_join(root, path)
        if os.path.isfile(full_path):
            entries[path] = SnapshotEntry(size=os.path.getsize(full_path))

    logger.debug(
        f"[快照] {root}: {len(entries)} 个文件，其中 {len(to_hash)} 个计算了摘要"
    )
    return LocalSnapshot(root, entries)
