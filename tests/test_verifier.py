"""摘要校验测试"""

import hashlib

from uranium.download.verifier import (
    Hasher,
    digest,
    hash_file,
    matches,
    murmur2,
    verify,
)
from uranium.models import HashAlgorithm


class TestDigest:
    """测试摘要计算"""

    def test_sha1_and_sha512(self):
        """sha 系列与 hashlib 一致"""
        data = b"hello uranium"
        assert digest(data, HashAlgorithm.SHA1) == hashlib.sha1(data).hexdigest()
        assert digest(data, "sha512") == hashlib.sha512(data).hexdigest()

    def test_incremental_equals_one_shot(self):
        """分块计算与一次性计算结果相同"""
        data = bytes(range(256)) * 100
        for algorithm in HashAlgorithm:
            hasher = Hasher(algorithm)
            for start in range(0, len(data), 1000):
                hasher.update(data[start : start + 1000])
            assert hasher.hexdigest() == digest(data, algorithm)

    def test_murmur2_empty_input(self):
        """空输入的 murmur2（seed=1）"""
        assert murmur2(b"") == 1540447798
        assert digest(b"", HashAlgorithm.MURMUR2) == "1540447798"

    def test_murmur2_single_byte(self):
        """单字节输入只经过尾部处理和收尾混合"""
        assert murmur2(b"a") == 626045324
        assert digest(b" a\r\n", "murmur2") == "626045324"

    def test_murmur2_aligned_block(self):
        """整块输入走 4 字节混合路径"""
        assert murmur2(b"abcd") == 3376380438
        assert digest(b"ab\tcd ", "murmur2") == "3376380438"

    def test_murmur2_ignores_whitespace(self):
        """CurseForge fingerprint 忽略 \\t \\n \\r 和空格"""
        assert digest(b"a b\tc\r\nd", "murmur2") == digest(b"abcd", "murmur2")
        assert digest(b"abcd", "murmur2") != digest(b"abce", "murmur2")

    def test_murmur2_tail_lengths(self):
        """不同尾部长度得到不同结果"""
        values = {murmur2(b"abcdefg"[:n]) for n in range(1, 8)}
        assert len(values) == 7


class TestVerify:
    """测试摘要比较"""

    def test_verify_case_insensitive(self):
        """十六进制摘要比较不区分大小写"""
        data = b"content"
        expected = hashlib.sha1(data).hexdigest().upper()
        assert verify(data, expected, HashAlgorithm.SHA1)

    def test_verify_mismatch(self):
        """内容不符时校验失败"""
        assert not verify(b"a", hashlib.sha1(b"b").hexdigest(), "sha1")

    def test_matches_none(self):
        """任一方为 None 时视为不匹配"""
        assert not matches(None, "abc")
        assert not matches("abc", None)
        assert matches(" ABC ", "abc")


class TestFileHashing:
    """测试文件摘要"""

    def test_hash_file(self, tmp_path):
        """同步计算文件摘要"""
        path = tmp_path / "a.jar"
        path.write_bytes(b"x" * 200_000)
        assert hash_file(str(path), "sha1") == hashlib.sha1(b"x" * 200_000).hexdigest()

    def test_hash_missing_file(self, tmp_path):
        """文件不存在时返回 None"""
        assert hash_file(str(tmp_path / "missing"), "sha1") is None

