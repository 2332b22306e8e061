"""
Mrpack 生成器

扫描本地目录，在远程索引中按摘要匹配文件：命中的文件写入
modrinth.index.json 的 files，未命中的文件以 overrides/<path> 内嵌进归档。

生成结果是确定性的：成员按名称排序、时间戳固定、JSON 按键排序，
对未改动的目录重复打包得到逐字节相同的归档。
"""

import asyncio
import fnmatch
import json
import os
import shutil
import uuid
import zipfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from loguru import logger

from uranium.exceptions import APIError, MrpackError
from uranium.models import FileEntry, FileInfo, Manifest, PackConfig, safe_join
from uranium.services.remote_index import RemoteIndex
from uranium.services.snapshot import parallel_hash, scan_paths

MODRINTH_INDEX = "modrinth.index.json"
OVERRIDES = "overrides"
MRPACK_SUFFIX = ".mrpack"

# zip 格式能表示的最早时间
FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)
COPY_CHUNK_SIZE = 64 * 1024


@dataclass
class PackDescriptor:
    """打包结果"""

    manifest: Manifest
    archive_path: str
    embedded: List[str] = field(default_factory=list)


class PackBuilder:
    """Mrpack 构建器"""

    def __init__(
        self,
        remote_index: Optional[RemoteIndex] = None,
        config: Optional[PackConfig] = None,
    ):
        self.remote_index = remote_index
        self.config = config or PackConfig()

    async def build(
        self,
        source_dir: str,
        output_path: str,
        metadata: Union[PackConfig, dict, None] = None,
    ) -> PackDescriptor:
        """
        构建 mrpack 文件

        Args:
            source_dir: 源文件目录
            output_path: 输出文件路径（自动补全 .mrpack 后缀）
            metadata: 包元数据，缺省使用构建器配置

        Returns:
            打包结果

        Raises:
            MrpackError: 扫描、查询或写入失败
        """
        if isinstance(metadata, dict):
            metadata = PackConfig.from_dict(metadata)
        metadata = metadata or self.config

        if not os.path.isdir(source_dir):
            raise MrpackError(
                f"源目录不存在: {source_dir}", context={"source_dir": source_dir}
            )
        if not output_path.endswith(MRPACK_SUFFIX):
            output_path += MRPACK_SUFFIX

        try:
            paths = self._collect(source_dir, output_path, metadata.exclude)
            logger.info(f"[扫描] {source_dir}: {len(paths)} 个文件")

            matched, embedded = await self._match(source_dir, paths, metadata)
            manifest = Manifest(
                name=metadata.name,
                version=metadata.version,
                game_version=metadata.game_version,
                entries=tuple(matched),
                loaders=dict(metadata.loaders),
                summary=metadata.summary,
            )
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                None, self._write_archive, source_dir, output_path, manifest, embedded
            )
        except APIError as e:
            raise MrpackError(
                f"远程索引查询失败: {e.message}", context={"source_dir": source_dir}
            ) from e
        except (OSError, zipfile.BadZipFile) as e:
            raise MrpackError(
                f"构建 mrpack 失败: {e}",
                context={"source_dir": source_dir, "output_path": output_path},
            ) from e

        logger.success(
            f"[完成] {output_path}: {len(matched)} 个引用文件, {len(embedded)} 个内嵌文件"
        )
        return PackDescriptor(manifest, output_path, embedded)

    @staticmethod
    def _collect(source_dir: str, output_path: str, exclude: List[str]) -> List[str]:
        """扫描源目录，排除输出文件本身与 exclude 模式"""
        output_abs = os.path.abspath(output_path)
        paths = []
        for path in scan_paths(source_dir):
            if os.path.abspath(safe_join(source_dir, path)) == output_abs:
                continue
            if any(fnmatch.fnmatch(path, pattern) for pattern in exclude):
                logger.debug(f"[跳过] {path}")
                continue
            paths.append(path)
        return paths

    async def _match(
        self, source_dir: str, paths: List[str], metadata: PackConfig
    ) -> Tuple[List[FileEntry], List[str]]:
        if self.remote_index is None or not paths:
            return [], list(paths)

        algorithm = self.remote_index.algorithm
        hashes = await parallel_hash(
            [(safe_join(source_dir, path), algorithm) for path in paths],
            workers=metadata.hash_workers,
        )
        missing = [path for path, value in zip(paths, hashes) if value is None]
        if missing:
            raise MrpackError(f"无法读取文件: {missing[0]}", context={"paths": missing})

        found: Dict[str, FileInfo] = await self.remote_index.lookup(
            sorted(set(hashes))
        )

        matched: List[FileEntry] = []
        embedded: List[str] = []
        for path, value in zip(paths, hashes):
            info = found.get(value)
            if info is None or not info.url:
                embedded.append(path)
                continue
            entry = info.to_entry(path)
            matched.append(entry)
            logger.debug(f"[匹配] {path} -> {info.url}")
        return matched, embedded

    @staticmethod
    def _write_archive(
        source_dir: str,
        output_path: str,
        manifest: Manifest,
        embedded: List[str],
    ) -> None:
        """写入临时文件后原子替换输出路径"""
        index = json.dumps(
            manifest.to_mrpack_index(), indent=2, sort_keys=True, ensure_ascii=False
        )
        os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
        temp_path = f"{output_path}.{uuid.uuid4().hex[:8]}.part"

        try:
            with zipfile.ZipFile(temp_path, "w", zipfile.ZIP_DEFLATED) as archive:
                archive.writestr(_member(MODRINTH_INDEX), index.encode("utf-8"))
                for path in sorted(embedded):
                    full_path = safe_join(source_dir, path)
                    info = _member(f"{OVERRIDES}/{path}")
                    # 预先给出大小，超过 2 GiB 的成员才会启用 zip64
                    info.file_size = os.path.getsize(full_path)
                    with open(full_path, "rb") as src, archive.open(info, "w") as dst:
                        shutil.copyfileobj(src, dst, COPY_CHUNK_SIZE)
            os.replace(temp_path, output_path)
        except BaseException:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise


def _member(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=FIXED_DATE_TIME)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = 0o644 << 16
    info.create_system = 3
    return info
