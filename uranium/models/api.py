"""
API 数据模型

远程仓库返回的文件信息，作为 FileEntry 的片段使用。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from uranium.models.manifest import FileEntry, HashAlgorithm

# CurseForge hashes[].algo 取值
CURSE_HASH_ALGOS = {1: "sha1", 2: "md5"}


@dataclass
class FileInfo:
    """文件信息"""

    url: Optional[str]
    filename: str
    size: Optional[int] = None
    hashes: Dict[str, str] = field(default_factory=dict)
    project_id: Optional[str] = None

    @classmethod
    def from_modrinth(cls, data: Dict[str, Any], project_id: Optional[str] = None):
        """由 Modrinth version.files[] 条目构造"""
        return cls(
            url=data.get("url"),
            filename=data["filename"],
            size=data.get("size"),
            hashes=dict(data.get("hashes") or {}),
            project_id=project_id,
        )

    @classmethod
    def from_curse(cls, data: Dict[str, Any]):
        """由 CurseForge /v1/mods/{modId}/files/{fileId} 的 data 字段构造"""
        hashes = {
            CURSE_HASH_ALGOS[item["algo"]]: item["value"]
            for item in data.get("hashes", [])
            if item.get("algo") in CURSE_HASH_ALGOS
        }
        if data.get("fileFingerprint") is not None:
            hashes["murmur2"] = str(data["fileFingerprint"])
        return cls(
            url=data.get("downloadUrl") or None,
            filename=data["fileName"],
            size=data.get("fileLength"),
            hashes=hashes,
            project_id=str(data.get("modId")) if data.get("modId") else None,
        )

    def best_hash(self) -> Optional[tuple]:
        """按 sha1 > sha512 > murmur2 的优先级挑选摘要"""
        for algorithm in (HashAlgorithm.SHA1, HashAlgorithm.SHA512, HashAlgorithm.MURMUR2):
            value = self.hashes.get(algorithm.value)
            if value:
                return algorithm, value
        return None

    def to_entry(self, path: str) -> FileEntry:
        """转换为清单条目"""
        best = self.best_hash()
        if best is None:
            raise ValueError(f"文件 {self.filename} 没有可用的摘要")
        algorithm, value = best
        return FileEntry(
            path=path,
            hash=value,
            algorithm=algorithm,
            size=self.size,
            url=self.url,
            name=self.filename,
        )
