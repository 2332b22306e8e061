"""
Modrinth 整合包 (.mrpack)

modrinth.index.json 中的 files 为远程文件；overrides/ 与
client-overrides/（或 server-overrides/）目录为内嵌文件，按此顺序覆盖。
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from uranium.dialects.base import (
    Dialect,
    ParsedPack,
    archive_entries,
    expect,
    read_archive_json,
    run_blocking,
)
from uranium.exceptions import ManifestParseError
from uranium.models import FileEntry, HashAlgorithm, Manifest

MODRINTH_INDEX = "modrinth.index.json"
OVERRIDES = "overrides/"
SIDE_OVERRIDES = {"client": "client-overrides/", "server": "server-overrides/"}


def parse_index(index: Dict[str, Any], side: Optional[str] = "client") -> Manifest:
    """
    将 modrinth.index.json 归一化为 Manifest（不含内嵌文件）

    side 为 None 时不按 env 过滤（读取安装记录时使用）。

    Raises:
        ManifestParseError: 文档结构不符合 mrpack 格式
    """
    if index.get("formatVersion") != 1:
        raise ManifestParseError(
            f"不支持的 formatVersion: {index.get('formatVersion')}"
        )
    if index.get("game", "minecraft") != "minecraft":
        raise ManifestParseError(f"不支持的游戏: {index.get('game')}")

    files = expect(index.get("files", []), list, "files")

    entries: List[FileEntry] = []
    for position, item in enumerate(files):
        entry = _parse_file(item, position, side)
        if entry is not None:
            entries.append(entry)

    dependencies = dict(
        expect(index.get("dependencies"), dict, "dependencies", optional=True) or {}
    )
    for key, value in dependencies.items():
        expect(value, str, f"dependencies.{key}")
    game_version = dependencies.pop("minecraft", None)

    return Manifest(
        name=str(index.get("name", "Modrinth Pack")),
        version=str(index.get("versionId", "1.0.0")),
        game_version=game_version,
        entries=tuple(entries),
        loaders=dependencies,
        summary=str(index.get("summary") or ""),
    )


def _parse_file(item: Any, position: int, side: Optional[str]) -> Optional[FileEntry]:
    where = f"files[{position}]"
    if not isinstance(item, dict) or "path" not in item:
        raise ManifestParseError(f"{where} 缺少 path")
    path = expect(item["path"], str, f"{where}.path")

    env = expect(item.get("env") or None, dict, f"{where}.env", optional=True)
    if side and env and env.get(side) == "unsupported":
        logger.debug(f"[清单] 跳过 {side} 端不支持的文件: {path}")
        return None

    hashes = expect(item.get("hashes") or {}, dict, f"{where}.hashes")
    for algorithm in HashAlgorithm:
        if hashes.get(algorithm.value):
            break
    else:
        raise ManifestParseError(
            f"{where} 缺少可用的摘要", context={"path": path}
        )
    digest = expect(hashes[algorithm.value], str, f"{where}.hashes.{algorithm.value}")

    downloads = expect(item.get("downloads") or [], list, f"{where}.downloads")
    url = expect(downloads[0], str, f"{where}.downloads[0]") if downloads else None
    return FileEntry(
        path=path,
        hash=digest,
        algorithm=algorithm,
        size=expect(item.get("fileSize"), int, f"{where}.fileSize", optional=True),
        url=url,
        env=env,
    )


class ModrinthDialect(Dialect):
    """Modrinth .mrpack 解析器"""

    name = "modrinth"

    def __init__(self, side: str = "client"):
        if side not in SIDE_OVERRIDES:
            raise ValueError(f"side 只支持 client/server: {side}")
        self.side = side

    async def parse(self, source: str) -> ParsedPack:
        index = await run_blocking(read_archive_json, source, MODRINTH_INDEX)
        manifest = parse_index(index, self.side)

        overrides = await run_blocking(
            archive_entries, source, [OVERRIDES, SIDE_OVERRIDES[self.side]]
        )
        manifest = manifest.extend(overrides)

        logger.info(
            f"[解析] {manifest.name} {manifest.version}: "
            f"{len(manifest) - len(overrides)} 个远程文件, {len(overrides)} 个内嵌文件"
        )
        return ParsedPack(manifest=manifest, archive_path=source)
