"""
Uranium 数据模型包

包含清单模型、解析动作和配置模型定义。
"""

from uranium.models.manifest import (
    HashAlgorithm,
    FileEntry,
    Manifest,
    normalize_path,
    safe_join,
)
from uranium.models.actions import Action, ActionKind
from uranium.models.api import FileInfo
from uranium.models.config import (
    DownloadConfig,
    InstallerConfig,
    PackConfig,
    PruneScope,
    ManifestDialect,
    DEFAULT_MANAGED_ROOTS,
)

__all__ = [
    # 清单模型
    "HashAlgorithm",
    "FileEntry",
    "Manifest",
    "normalize_path",
    "safe_join",
    # 动作
    "Action",
    "ActionKind",
    # API 模型
    "FileInfo",
    # 配置模型
    "DownloadConfig",
    "InstallerConfig",
    "PackConfig",
    "PruneScope",
    "ManifestDialect",
    "DEFAULT_MANAGED_ROOTS",
]
