"""
Uranium 打包层

把本地目录打包为可分发的 mrpack。
"""

from uranium.packager.mrpack import PackBuilder, PackDescriptor

__all__ = [
    "PackBuilder",
    "PackDescriptor",
]
