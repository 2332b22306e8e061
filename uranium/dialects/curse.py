"""
CurseForge 整合包 (manifest.json)

manifest.json 只记录 projectID/fileID，需要逐个通过 API 查询文件信息。
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger

from uranium.dialects.base import (
    Dialect,
    ParsedPack,
    archive_entries,
    expect,
    read_archive_json,
    run_blocking,
)
from uranium.exceptions import APIError, ManifestParseError
from uranium.models import FileEntry, FileInfo, Manifest

CURSE_MANIFEST = "manifest.json"
MODS_DIR = "mods"

FileResolver = Callable[[int, int], Awaitable[Optional[FileInfo]]]


def parse_loaders(minecraft: Dict[str, Any]) -> Dict[str, str]:
    """
    modLoaders[].id 形如 "forge-47.2.0"，转换为 {"forge": "47.2.0"}
    """
    loaders: Dict[str, str] = {}
    mod_loaders = expect(
        minecraft.get("modLoaders") or [], list, "minecraft.modLoaders"
    )
    for position, loader in enumerate(mod_loaders):
        where = f"minecraft.modLoaders[{position}]"
        loader = expect(loader, dict, where)
        loader_id = expect(loader.get("id", ""), str, f"{where}.id")
        name, sep, version = loader_id.partition("-")
        if not sep:
            raise ManifestParseError(f"无法识别的加载器: {loader_id}")
        loaders[name] = version
    return loaders


class CurseDialect(Dialect):
    """
    CurseForge 整合包解析器

    Args:
        resolver: (projectID, fileID) -> FileInfo 的异步查询，一般为 CurseForgeClient
        concurrency: 同时进行的查询数
    """

    name = "curse"

    def __init__(self, resolver: FileResolver, concurrency: int = 8):
        self.resolver = resolver
        self.concurrency = max(1, concurrency)

    async def parse(self, source: str) -> ParsedPack:
        document = await run_blocking(read_archive_json, source, CURSE_MANIFEST)
        if document.get("manifestType", "minecraftModpack") != "minecraftModpack":
            raise ManifestParseError(
                f"不支持的 manifestType: {document.get('manifestType')}"
            )

        minecraft = document.get("minecraft")
        if not isinstance(minecraft, dict) or not minecraft.get("version"):
            raise ManifestParseError("manifest.json 缺少 minecraft.version")
        expect(minecraft["version"], str, "minecraft.version")
        loaders = parse_loaders(minecraft)

        files = expect(document.get("files", []), list, "files")
        overrides_dir = expect(
            document.get("overrides") or "overrides", str, "overrides"
        ).strip("/")

        entries = await self._resolve_files(files)
        overrides = await run_blocking(
            archive_entries, source, [f"{overrides_dir}/"]
        )

        manifest = Manifest(
            name=str(document.get("name", "CurseForge Pack")),
            version=str(document.get("version", "1.0.0")),
            game_version=minecraft["version"],
            entries=tuple(entries) + tuple(overrides),
            loaders=loaders,
            summary=str(document.get("author") or ""),
        )
        logger.info(
            f"[解析] {manifest.name} {manifest.version}: "
            f"{len(entries)} 个远程文件, {len(overrides)} 个内嵌文件"
        )
        return ParsedPack(manifest=manifest, archive_path=source)

    async def _resolve_files(self, files: List[Any]) -> List[FileEntry]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def resolve(position: int, item: Any) -> Optional[FileEntry]:
            expect(item, dict, f"files[{position}]")
            try:
                project_id = int(item["projectID"])
                file_id = int(item["fileID"])
            except (KeyError, TypeError, ValueError) as e:
                raise ManifestParseError(
                    f"files[{position}] 缺少 projectID/fileID"
                ) from e

            if item.get("required") is False:
                logger.debug(f"[清单] 跳过可选文件: {project_id}/{file_id}")
                return None

            async with semaphore:
                try:
                    info = await self.resolver(project_id, file_id)
                except APIError as e:
                    raise ManifestParseError(
                        f"查询文件 {project_id}/{file_id} 失败: {e.message}",
                        context={"project_id": project_id, "file_id": file_id},
                    ) from e

            if info is None:
                raise ManifestParseError(
                    f"文件不存在: {project_id}/{file_id}",
                    context={"project_id": project_id, "file_id": file_id},
                )
            if info.url is None:
                logger.warning(
                    f"[清单] {info.filename} 不允许第三方下载，安装时将失败"
                )
            try:
                return info.to_entry(f"{MODS_DIR}/{info.filename}")
            except ValueError as e:
                raise ManifestParseError(str(e)) from e

        pending = [
            asyncio.ensure_future(resolve(position, item))
            for position, item in enumerate(files)
        ]
        try:
            resolved = await asyncio.gather(*pending)
        except BaseException:
            # 任一查询失败时取消其余查询
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            raise
        return [entry for entry in resolved if entry is not None]
