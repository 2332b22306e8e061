"""
文件校验器

实现 SHA1 / SHA512 / CurseForge murmur2 摘要计算与校验。
所有计算都是单次遍历，不重复读取数据。
"""

import hashlib
import struct
from typing import Optional, Union

from uranium.models import HashAlgorithm

_MURMUR_M = 0x5BD1E995
_MURMUR_MASK = 0xFFFFFFFF
# CurseForge 计算 fingerprint 前会剔除的字节：\t \n \r 空格
_CURSE_WHITESPACE = bytes([9, 10, 13, 32])

CHUNK_SIZE = 64 * 1024

AlgorithmLike = Union[str, HashAlgorithm]

def murmur2(data: bytes, seed: int = 1) -> int:
    """32 位 MurmurHash2"""
    length = len(data)
    h = (seed ^ length) & _MURMUR_MASK

    aligned = length - (length % 4)
    for (k,) in struct.iter_unpack("<I", data[:aligned]):
        k = (k * _MURMUR_M) & _MURMUR_MASK
        k ^= k >> 24
        k = (k * _MURMUR_M) & _MURMUR_MASK
        h = (h * _MURMUR_M) & _MURMUR_MASK
        h ^= k

    tail = data[aligned:]
    if len(tail) == 3:
        h ^= tail[2] << 16
    if len(tail) >= 2:
        h ^= tail[1] << 8
    if len(tail) >= 1:
        h ^= tail[0]
        h = (h * _MURMUR_M) & _MURMUR_MASK

    h ^= h >> 13
    h = (h * _MURMUR_M) & _MURMUR_MASK
    h ^= h >> 15
    return h

class Hasher:
    """
    增量摘要计算

    sha 系列直接交给 hashlib；murmur2 需要完整（剔除空白后的）数据长度，
    因此在 update 时只做过滤和缓存，hexdigest 时一次性计算。
    """

    def __init__(self, algorithm: AlgorithmLike):
        self.algorithm = HashAlgorithm.parse(algorithm)
        if self.algorithm is HashAlgorithm.MURMUR2:
            self._buffer = bytearray()
            self._hash = None
        else:
            self._hash = hashlib.new(self.algorithm.value)

    def update(self, data: bytes) -> None:
        if self._hash is None:
            self._buffer += data.translate(None, _CURSE_WHITESPACE)
        else:
            self._hash.update(data)

    def hexdigest(self) -> str:
        if self._hash is None:
            return str(murmur2(bytes(self._buffer)))
        return self._hash.hexdigest()

def digest(data: bytes, algorithm: AlgorithmLike) -> str:
    """计算字节数据的摘要"""
    hasher = Hasher(algorithm)
    hasher.update(data)
    return hasher.hexdigest()

def matches(actual: Optional[str], expected: Optional[str]) -> bool:
    """比较两个摘要（十六进制大小写不敏感）"""
    if actual is None or expected is None:
        return False
    return actual.strip().lower() == expected.strip().lower()

def verify(data: bytes, expected_hash: str, algorithm: AlgorithmLike) -> bool:
    """校验字节数据是否与预期摘要一致"""
    return matches(digest(data, algorithm), expected_hash)

def hash_file(file_path: str, algorithm: AlgorithmLike) -> Optional[str]:
    """
    同步计算文件摘要（供线程池使用）

    Returns:
        摘要值，文件不存在或不可读时返回 None
    """
    hasher = Hasher(algorithm)
    try:
        with open(file_path, "rb") as f:
            while True:
                data = f.read(CHUNK_SIZE)
                if not data:
                    break
                hasher.update(data)
    except (IOError, OSError):
        return None
    return hasher.hexdigest()
