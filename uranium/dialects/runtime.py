"""
Java 运行时

Mojang 为每个版本指定一个运行时组件（version JSON 的 javaVersion.component，
如 java-runtime-gamma）。运行时清单逐文件给出 sha1 与下载地址，bin/java
等文件需要可执行权限。目录与符号链接条目不进入清单。
"""

import platform
from typing import Any, Dict, List, Optional, Tuple, Union

from loguru import logger

from uranium.dialects.base import Dialect, ParsedPack, expect
from uranium.exceptions import APIError, ManifestParseError
from uranium.models import FileEntry, HashAlgorithm, Manifest

RuntimeSource = Union[str, Tuple[str, Dict[str, Any]]]


def runtime_platform() -> str:
    """Mojang 运行时列表中使用的平台名"""
    system = platform.system().lower()
    machine = platform.machine().lower()
    arm = machine in ("arm64", "aarch64")
    if system == "darwin":
        return "mac-os-arm64" if arm else "mac-os"
    if system == "windows":
        if arm:
            return "windows-arm64"
        return "windows-x64" if machine in ("amd64", "x86_64") else "windows-x86"
    return "linux-i386" if machine in ("i386", "i686", "x86") else "linux"


def runtime_root(component: str, platform_name: str) -> str:
    return f"runtime/{component}/{platform_name}/{component}"


def runtime_entries(
    component: str, files_manifest: Dict[str, Any], platform_name: str
) -> List[FileEntry]:
    """
    运行时清单中的普通文件

    Raises:
        ManifestParseError: 文件条目缺少 raw 下载信息或字段类型错误
    """
    files = expect(files_manifest.get("files"), dict, "files")
    root = runtime_root(component, platform_name)

    entries: List[FileEntry] = []
    for name in sorted(files):
        where = f"files.{name}"
        item = expect(files[name], dict, where)
        if item.get("type") != "file":
            continue
        downloads = expect(item.get("downloads"), dict, f"{where}.downloads")
        raw = expect(downloads.get("raw"), dict, f"{where}.downloads.raw")
        entries.append(
            FileEntry(
                path=f"{root}/{name}",
                hash=expect(raw.get("sha1"), str, f"{where}.sha1"),
                algorithm=HashAlgorithm.SHA1,
                size=expect(raw.get("size"), int, f"{where}.size", optional=True),
                url=expect(raw.get("url"), str, f"{where}.url"),
                executable=bool(item.get("executable")),
            )
        )
    return entries


class RuntimeDialect(Dialect):
    """
    Java 运行时解析器

    source 可以是组件名（通过 MojangClient 在线获取），也可以是
    (component, files_manifest) 元组。
    """

    name = "runtime"

    def __init__(self, client=None, platform_name: Optional[str] = None):
        self.client = client
        self.platform_name = platform_name or runtime_platform()

    async def parse(self, source: RuntimeSource) -> ParsedPack:
        if isinstance(source, str):
            component = source
            files_manifest = await fetch_runtime(self.client, component, self.platform_name)
        else:
            component, files_manifest = source

        entries = runtime_entries(component, files_manifest, self.platform_name)
        manifest = Manifest(
            name=f"Java {component}",
            version=component,
            game_version=None,
            entries=tuple(entries),
        )
        logger.info(
            f"[解析] 运行时 {component} ({self.platform_name}): {len(entries)} 个文件"
        )
        return ParsedPack(manifest=manifest)


async def fetch_runtime(client, component: str, platform_name: str) -> Dict[str, Any]:
    """在线获取运行时文件清单，API 错误转换为清单解析错误"""
    if client is None:
        raise ManifestParseError("按组件名解析运行时需要 MojangClient")
    try:
        return await client.get_runtime_files(component, platform_name)
    except APIError as e:
        raise ManifestParseError(
            f"无法获取运行时 {component}: {e.message}",
            context={"component": component, "platform": platform_name},
        ) from e
