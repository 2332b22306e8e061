"""
Minecraft 本体

把 Mojang 的 version JSON 与资源索引归一化为清单：客户端 jar、
运行库（按操作系统规则过滤）以及资源对象。
"""

import platform
from typing import Any, Dict, List, Optional, Tuple, Union

from loguru import logger

from uranium.dialects.base import Dialect, ParsedPack, expect
from uranium.dialects.runtime import fetch_runtime, runtime_entries, runtime_platform
from uranium.exceptions import APIError, ManifestParseError
from uranium.models import FileEntry, HashAlgorithm, Manifest

RESOURCES_URL = "https://resources.download.minecraft.net"

VersionSource = Union[str, Tuple[Dict[str, Any], Dict[str, Any]]]


def current_os() -> str:
    """Mojang 规则中使用的操作系统名"""
    system = platform.system().lower()
    if system == "darwin":
        return "osx"
    if system == "windows":
        return "windows"
    return "linux"


def rules_allow(rules: Optional[List[Dict[str, Any]]], os_name: str) -> bool:
    """
    计算 libraries[].rules

    没有规则时允许；有规则时默认禁止，按顺序应用匹配的规则，最后一条生效。
    """
    if not rules:
        return True
    allowed = False
    for position, rule in enumerate(expect(rules, list, "rules")):
        rule = expect(rule, dict, f"rules[{position}]")
        os_rule = expect(rule.get("os") or {}, dict, f"rules[{position}].os")
        target = os_rule.get("name")
        if target is None or target == os_name:
            allowed = rule.get("action") == "allow"
    return allowed


def _entry(path: str, data: Any, what: str) -> FileEntry:
    data = expect(data, dict, what)
    for key in ("sha1", "url"):
        if key not in data:
            raise ManifestParseError(f"{what} 缺少字段 '{key}'")
    return FileEntry(
        path=path,
        hash=expect(data["sha1"], str, f"{what}.sha1"),
        algorithm=HashAlgorithm.SHA1,
        size=expect(data.get("size"), int, f"{what}.size", optional=True),
        url=expect(data["url"], str, f"{what}.url"),
    )


def version_entries(version_data: Dict[str, Any], os_name: str) -> List[FileEntry]:
    """客户端 jar 与运行库"""
    version_id = version_data.get("id")
    if not version_id:
        raise ManifestParseError("version JSON 缺少 id")
    expect(version_id, str, "id")

    entries: List[FileEntry] = []
    downloads = expect(version_data.get("downloads") or {}, dict, "downloads")
    client = downloads.get("client")
    if client is None:
        raise ManifestParseError(f"版本 {version_id} 缺少客户端下载信息")
    entries.append(
        _entry(f"versions/{version_id}/{version_id}.jar", client, "downloads.client")
    )

    libraries = expect(version_data.get("libraries") or [], list, "libraries")
    for position, library in enumerate(libraries):
        where = f"libraries[{position}]"
        library = expect(library, dict, where)
        if not rules_allow(library.get("rules"), os_name):
            continue
        library_downloads = expect(
            library.get("downloads") or {}, dict, f"{where}.downloads"
        )
        artifact = library_downloads.get("artifact")
        if artifact is None:
            continue
        artifact = expect(artifact, dict, f"{where}.downloads.artifact")
        if "path" not in artifact:
            raise ManifestParseError(f"运行库 {library.get('name')} 缺少 path")
        path = expect(artifact["path"], str, f"{where}.downloads.artifact.path")
        entries.append(
            _entry(f"libraries/{path}", artifact, str(library.get("name", where)))
        )
    return entries


def asset_entries(
    version_data: Dict[str, Any], asset_index: Dict[str, Any]
) -> List[FileEntry]:
    """资源索引文件本身以及去重后的资源对象"""
    index_info = expect(version_data.get("assetIndex") or {}, dict, "assetIndex")
    if "id" not in index_info:
        raise ManifestParseError("version JSON 缺少 assetIndex.id")

    entries = [
        _entry(f"assets/indexes/{index_info['id']}.json", index_info, "assetIndex")
    ]

    seen = set()
    objects = expect(asset_index.get("objects") or {}, dict, "objects")
    for name in sorted(objects):
        item = expect(objects[name], dict, f"objects.{name}")
        value = item.get("hash")
        if not value:
            raise ManifestParseError(f"资源 {name} 缺少 hash")
        value = expect(value, str, f"objects.{name}.hash").lower()
        if value in seen:
            continue
        seen.add(value)
        prefix = value[:2]
        entries.append(
            FileEntry(
                path=f"assets/objects/{prefix}/{value}",
                hash=value,
                algorithm=HashAlgorithm.SHA1,
                size=expect(
                    item.get("size"), int, f"objects.{name}.size", optional=True
                ),
                url=f"{RESOURCES_URL}/{prefix}/{value}",
            )
        )
    return entries


class MinecraftDialect(Dialect):
    """
    Minecraft 本体解析器

    source 可以是版本号（通过 client 在线获取），也可以是
    (version_data, asset_index) 元组。java=True 时一并安装 version JSON
    指定的 Java 运行时（需要 client）。
    """

    name = "minecraft"

    def __init__(
        self,
        client=None,
        os_name: Optional[str] = None,
        java: bool = False,
        platform_name: Optional[str] = None,
    ):
        self.client = client
        self.os_name = os_name or current_os()
        self.java = java
        self.platform_name = platform_name or runtime_platform()

    async def parse(self, source: VersionSource) -> ParsedPack:
        entries: List[FileEntry] = []
        if isinstance(source, str):
            if self.client is None:
                raise ManifestParseError("按版本号解析需要 MojangClient")
            try:
                info = await self.client.find_version(source)
                version_data = await self.client.get_version_data(info)
                asset_index = await self.client.get_asset_index(version_data)
            except APIError as e:
                raise ManifestParseError(
                    f"无法获取版本 {source}: {e.message}", context={"version": source}
                ) from e
            # version JSON 本身也纳入清单，sha1 来自版本列表
            if info.get("sha1"):
                entries.append(
                    _entry(f"versions/{source}/{source}.json", info, "版本条目")
                )
        else:
            version_data, asset_index = source

        version_data = expect(version_data, dict, "version JSON")
        asset_index = expect(asset_index, dict, "资源索引")
        entries[:0] = version_entries(version_data, self.os_name)
        entries.extend(asset_entries(version_data, asset_index))

        if self.java:
            entries.extend(await self._runtime_entries(version_data))

        version_id = version_data["id"]
        manifest = Manifest(
            name=f"Minecraft {version_id}",
            version=version_id,
            game_version=version_id,
            entries=tuple(entries),
        )
        logger.info(f"[解析] Minecraft {version_id}: {len(entries)} 个文件")
        return ParsedPack(manifest=manifest)

    async def _runtime_entries(self, version_data: Dict[str, Any]) -> List[FileEntry]:
        java_version = expect(
            version_data.get("javaVersion") or {}, dict, "javaVersion"
        )
        component = java_version.get("component")
        if not component:
            logger.warning(f"[运行时] 版本 {version_data['id']} 未指定 Java 运行时")
            return []
        component = expect(component, str, "javaVersion.component")
        files_manifest = await fetch_runtime(self.client, component, self.platform_name)
        return runtime_entries(component, files_manifest, self.platform_name)
