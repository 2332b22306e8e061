"""
配置模型

定义下载、安装、打包相关的配置数据类。
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from uranium.exceptions import ConfigValidationError


DEFAULT_MANAGED_ROOTS = ["mods", "resourcepacks", "shaderpacks", "config"]


def default_concurrency() -> int:
    """默认并发数：与可用 CPU 数量一致"""
    return os.cpu_count() or 4


class PruneScope(Enum):
    """
    清理范围

    PREVIOUS: 只删除上一次安装记录中出现、而新清单中不再出现的文件
    MANAGED: 删除受管子目录下所有不在新清单中的文件
    """

    PREVIOUS = "previous"
    MANAGED = "managed"


class ManifestDialect(Enum):
    """远程清单格式"""

    MODRINTH = "modrinth"
    CURSE = "curse"
    MINECRAFT = "minecraft"
    RUNTIME = "runtime"


@dataclass
class DownloadConfig:
    """下载引擎配置"""

    max_concurrent: int = field(default_factory=default_concurrency)
    max_retries: int = 3
    retry_delay: float = 1.0
    timeout: float = 60.0
    user_agent: str = "uranium/1.0"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DownloadConfig":
        config = cls(
            max_concurrent=data.get("max_concurrent", default_concurrency()),
            max_retries=data.get("max_retries", 3),
            retry_delay=data.get("retry_delay", 1.0),
            timeout=data.get("timeout", 60.0),
            user_agent=data.get("user_agent", "uranium/1.0"),
        )
        config.validate()
        return config

    def validate(self):
        if not isinstance(self.max_concurrent, int) or self.max_concurrent <= 0:
            raise ConfigValidationError(
                "max_concurrent 必须为正整数",
                context={"max_concurrent": self.max_concurrent},
            )
        if not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise ConfigValidationError(
                "max_retries 不能为负数", context={"max_retries": self.max_retries}
            )


@dataclass
class InstallerConfig:
    """安装器配置"""

    download: DownloadConfig = field(default_factory=DownloadConfig)
    prune: bool = False
    prune_scope: PruneScope = PruneScope.PREVIOUS
    managed_roots: List[str] = field(
        default_factory=lambda: list(DEFAULT_MANAGED_ROOTS)
    )
    permissive: bool = False
    hash_workers: Optional[int] = None
    curse_api_key: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstallerConfig":
        install = data.get("install", data)
        try:
            prune_scope = PruneScope(install.get("prune_scope", "previous"))
        except ValueError:
            raise ConfigValidationError(
                "prune_scope 只支持 'previous' 或 'managed'",
                context={"prune_scope": install.get("prune_scope")},
            )

        managed_roots = install.get("managed_roots", DEFAULT_MANAGED_ROOTS)
        if not isinstance(managed_roots, list):
            raise ConfigValidationError(
                "managed_roots 必须为列表", context={"managed_roots": managed_roots}
            )

        return cls(
            download=DownloadConfig.from_dict(data.get("download", {})),
            prune=bool(install.get("prune", False)),
            prune_scope=prune_scope,
            managed_roots=list(managed_roots),
            permissive=bool(install.get("permissive", False)),
            hash_workers=install.get("hash_workers"),
            curse_api_key=install.get("curse_api_key")
            or os.environ.get("CURSEFORGE_API_KEY"),
        )


@dataclass
class PackConfig:
    """打包器配置"""

    name: str = "Uranium Pack"
    version: str = "1.0.0"
    summary: str = ""
    game_version: Optional[str] = None
    loaders: Dict[str, str] = field(default_factory=dict)
    hash_workers: Optional[int] = None
    exclude: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PackConfig":
        metadata = data.get("metadata", data)
        if not metadata.get("name", "Uranium Pack"):
            raise ConfigValidationError("整合包名称不能为空")
        return cls(
            name=metadata.get("name", "Uranium Pack"),
            version=str(metadata.get("version", "1.0.0")),
            summary=metadata.get("description", metadata.get("summary", "")),
            game_version=metadata.get("game_version"),
            loaders=dict(metadata.get("loaders", {})),
            hash_workers=data.get("hash_workers"),
            exclude=list(data.get("exclude", [])),
        )
