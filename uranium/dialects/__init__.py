"""
清单格式

modrinth (.mrpack)、curse (manifest.json)、minecraft（本体）与 runtime（Java 运行时）。
"""

from uranium.dialects.base import Dialect, ParsedPack
from uranium.dialects.curse import CurseDialect
from uranium.dialects.minecraft import MinecraftDialect
from uranium.dialects.modrinth import ModrinthDialect
from uranium.dialects.runtime import RuntimeDialect
from uranium.models import ManifestDialect

DIALECTS = {
    ManifestDialect.MODRINTH: ModrinthDialect,
    ManifestDialect.CURSE: CurseDialect,
    ManifestDialect.MINECRAFT: MinecraftDialect,
    ManifestDialect.RUNTIME: RuntimeDialect,
}


def get_dialect(kind: "str | ManifestDialect", **kwargs) -> Dialect:
    """按名称创建清单格式解析器"""
    return DIALECTS[ManifestDialect(kind)](**kwargs)


__all__ = [
    "Dialect",
    "ParsedPack",
    "ModrinthDialect",
    "CurseDialect",
    "MinecraftDialect",
    "RuntimeDialect",
    "get_dialect",
]
