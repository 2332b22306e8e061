"""
远程模组索引

打包器通过摘要在远程索引中查找文件，以恢复可共享的下载地址。
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Mapping

from uranium.models import FileInfo, HashAlgorithm


class RemoteIndex(ABC):
    """按摘要查询远程文件信息"""

    algorithm: HashAlgorithm = HashAlgorithm.SHA1

    @abstractmethod
    async def lookup(self, hashes: Iterable[str]) -> Dict[str, FileInfo]:
        """
        批量查询

        Args:
            hashes: 本地文件摘要（算法为 self.algorithm）

        Returns:
            摘要 -> 远程文件信息；未命中的摘要不出现在结果中
        """


class StaticIndex(RemoteIndex):
    """基于字典的离线索引"""

    def __init__(
        self,
        files: Mapping[str, FileInfo],
        algorithm: HashAlgorithm = HashAlgorithm.SHA1,
    ):
        self.files = {key.lower(): value for key, value in files.items()}
        self.algorithm = algorithm

    async def lookup(self, hashes: Iterable[str]) -> Dict[str, FileInfo]:
        found = {}
        for value in hashes:
            info = self.files.get(value.lower())
            if info is not None:
                found[value] = info
        return found
