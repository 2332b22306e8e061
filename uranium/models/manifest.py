"""
清单数据模型

定义 FileEntry、Manifest 以及路径安全检查。
"""

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import PurePosixPath, PureWindowsPath
from typing import Any, Dict, Iterable, Optional, Tuple

from uranium.exceptions import PathTraversalError


class HashAlgorithm(Enum):
    """哈希算法"""

    SHA1 = "sha1"
    SHA512 = "sha512"
    MURMUR2 = "murmur2"  # CurseForge fingerprint

    @classmethod
    def parse(cls, value: "str | HashAlgorithm") -> "HashAlgorithm":
        if isinstance(value, HashAlgorithm):
            return value
        return cls(value.lower())


def normalize_path(path: str) -> str:
    """
    规范化清单中的相对路径

    Raises:
        PathTraversalError: 路径为空、为绝对路径或包含 `..`
    """
    if not path or not path.strip():
        raise PathTraversalError("清单条目路径为空", context={"path": path})

    unified = path.replace("\\", "/")
    if unified.startswith("/") or PureWindowsPath(path).drive:
        raise PathTraversalError(
            f"清单条目使用了绝对路径: {path}", context={"path": path}
        )

    parts = [p for p in PurePosixPath(unified).parts if p not in ("", ".")]
    if not parts or ".." in parts:
        raise PathTraversalError(
            f"清单条目路径越出安装目录: {path}", context={"path": path}
        )
    return "/".join(parts)


def safe_join(root: "str | os.PathLike[str]", path: str) -> str:
    """将相对路径拼接到根目录下，保证结果不越出根目录"""
    relative = normalize_path(path)
    root_abs = os.path.abspath(root)
    target = os.path.abspath(os.path.join(root_abs, *relative.split("/")))
    if os.path.commonpath([root_abs, target]) != root_abs:
        raise PathTraversalError(
            f"清单条目路径越出安装目录: {path}", context={"path": path}
        )
    return target


@dataclass(frozen=True)
class FileEntry:
    """
    清单中的单个文件

    path 为相对安装根目录的 POSIX 路径，构造时即完成校验。
    executable 表示发布时需要可执行权限（Java 运行时中的 bin/java 等）。
    """

    path: str
    hash: str
    algorithm: HashAlgorithm = HashAlgorithm.SHA1
    size: Optional[int] = None
    url: Optional[str] = None
    name: Optional[str] = None
    env: Optional[Dict[str, str]] = field(default=None, compare=False, hash=False)
    executable: bool = field(default=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "path", normalize_path(self.path))
        object.__setattr__(self, "algorithm", HashAlgorithm.parse(self.algorithm))
        object.__setattr__(self, "hash", self.hash.lower())

    @property
    def filename(self) -> str:
        return self.name or self.path.rsplit("/", 1)[-1]

    def to_mrpack(self) -> Dict[str, Any]:
        """转换为 modrinth.index.json 中的 files 条目"""
        data: Dict[str, Any] = {
            "path": self.path,
            "hashes": {self.algorithm.value: self.hash},
            "downloads": [self.url] if self.url else [],
            "fileSize": self.size or 0,
        }
        if self.env:
            data["env"] = dict(self.env)
        return data


@dataclass(frozen=True)
class Manifest:
    """
    声明式文件清单

    entries 保持清单原始顺序；同一路径出现多次时，后出现者生效（见
    ManifestResolver）。
    """

    name: str
    version: str
    game_version: Optional[str]
    entries: Tuple[FileEntry, ...] = ()
    loaders: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)
    summary: str = ""

    def __post_init__(self):
        object.__setattr__(self, "entries", tuple(self.entries))

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def paths(self) -> set:
        return {entry.path for entry in self.entries}

    def extend(self, entries: Iterable[FileEntry]) -> "Manifest":
        """返回追加了条目的新清单"""
        return replace(self, entries=self.entries + tuple(entries))

    def to_mrpack_index(self) -> Dict[str, Any]:
        """序列化为 modrinth.index.json 结构"""
        dependencies: Dict[str, str] = {}
        if self.game_version:
            dependencies["minecraft"] = self.game_version
        dependencies.update(self.loaders)

        return {
            "game": "minecraft",
            "formatVersion": 1,
            "versionId": self.version,
            "name": self.name,
            "summary": self.summary,
            "files": [entry.to_mrpack() for entry in self.entries],
            "dependencies": dependencies,
        }
