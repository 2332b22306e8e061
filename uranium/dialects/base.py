"""
清单格式基类

每种远程清单格式都要在解析阶段归一化为通用的 Manifest。
"""

import asyncio
import json
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional

from uranium.download.fetcher import ArchiveFetcher
from uranium.download.verifier import CHUNK_SIZE, Hasher
from uranium.exceptions import ManifestParseError
from uranium.models import FileEntry, HashAlgorithm, Manifest


@dataclass
class ParsedPack:
    """解析结果：通用清单 + 内嵌文件所在的归档"""

    manifest: Manifest
    archive_path: Optional[str] = None


class Dialect(ABC):
    """清单格式"""

    name: str = ""

    @abstractmethod
    async def parse(self, source: Any) -> ParsedPack:
        """
        解析并归一化

        Raises:
            ManifestParseError: 文档格式错误
            PathTraversalError: 条目路径越出安装目录
        """


def expect(value: Any, kind, where: str, optional: bool = False) -> Any:
    """
    检查清单字段的类型

    Raises:
        ManifestParseError: 类型不符（optional 时允许 None）
    """
    if value is None and optional:
        return None
    # bool 是 int 的子类
    if not isinstance(value, kind) or (isinstance(value, bool) and kind is int):
        names = kind.__name__ if isinstance(kind, type) else "/".join(k.__name__ for k in kind)
        raise ManifestParseError(
            f"{where} 类型错误: 需要 {names}, 实际为 {type(value).__name__}",
            context={"field": where},
        )
    return value


def read_archive_json(archive_path: str, member: str) -> dict:
    """读取归档中的 JSON 文档"""
    try:
        with zipfile.ZipFile(archive_path) as archive:
            raw = archive.read(member)
    except FileNotFoundError as e:
        raise ManifestParseError(
            f"整合包文件不存在: {archive_path}", context={"path": archive_path}
        ) from e
    except zipfile.BadZipFile as e:
        raise ManifestParseError(
            f"不是有效的 zip 归档: {archive_path}", context={"path": archive_path}
        ) from e
    except KeyError as e:
        raise ManifestParseError(
            f"整合包中缺少 {member}", context={"path": archive_path}
        ) from e
    return loads_document(raw, member)


def loads_document(raw: bytes, name: str) -> dict:
    """解析 JSON 文档，顶层必须是对象"""
    try:
        data = json.loads(raw.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ManifestParseError(f"{name} 不是有效的 JSON: {e}") from e
    if not isinstance(data, dict):
        raise ManifestParseError(f"{name} 顶层必须是对象")
    return data


def archive_entries(archive_path: str, prefixes: List[str]) -> List[FileEntry]:
    """
    把归档中若干前缀目录下的文件转换为内嵌条目

    前缀按给定顺序处理，后面的前缀覆盖前面的同名文件。
    """
    entries: List[FileEntry] = []
    with zipfile.ZipFile(archive_path) as archive:
        members = sorted(
            (info for info in archive.infolist() if not info.is_dir()),
            key=lambda info: info.filename,
        )
        for prefix in prefixes:
            for info in members:
                if not info.filename.startswith(prefix):
                    continue
                relative = info.filename[len(prefix) :]
                if not relative:
                    continue
                hasher = Hasher(HashAlgorithm.SHA1)
                with archive.open(info) as f:
                    for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                        hasher.update(chunk)
                entries.append(
                    FileEntry(
                        path=relative,
                        hash=hasher.hexdigest(),
                        algorithm=HashAlgorithm.SHA1,
                        size=info.file_size,
                        url=ArchiveFetcher.url_for(info.filename),
                    )
                )
    return entries


async def run_blocking(func, *args):
    """在默认线程池中运行阻塞的归档读取"""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func, *args)
