"""
Uranium 服务层

包含本地快照、清单解析、远程索引与 API 客户端。
"""

from uranium.services.api_client import CurseForgeClient, ModrinthClient, MojangClient
from uranium.services.remote_index import RemoteIndex, StaticIndex
from uranium.services.resolver import ManifestResolver
from uranium.services.snapshot import (
    LocalSnapshot,
    SnapshotEntry,
    build_snapshot,
    parallel_hash,
    scan_paths,
)

__all__ = [
    "CurseForgeClient",
    "ModrinthClient",
    "MojangClient",
    "RemoteIndex",
    "StaticIndex",
    "ManifestResolver",
    "LocalSnapshot",
    "SnapshotEntry",
    "build_snapshot",
    "parallel_hash",
    "scan_paths",
]
