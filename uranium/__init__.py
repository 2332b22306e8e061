"""
Uranium - Minecraft 本体与整合包安装核心

下载引擎、清单解析、整合包安装与 mrpack 打包。
"""

from uranium.installer import InstallReport, InstallState, ModpackInstaller
from uranium.packager import PackBuilder, PackDescriptor

__version__ = "0.1.0"

__all__ = [
    "InstallReport",
    "InstallState",
    "ModpackInstaller",
    "PackBuilder",
    "PackDescriptor",
    "__version__",
]
