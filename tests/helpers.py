"""测试辅助工具"""

import asyncio
import hashlib
import json
import zipfile
from typing import Dict, Optional

from uranium.download import Fetcher
from uranium.exceptions import TransportError


def sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


class FakeFetcher(Fetcher):
    """
    可编排的传输替身

    files: URL -> 内容
    fail_times: URL -> 前 N 次直接抛出 TransportError
    corrupt_times: URL -> 前 N 次返回被篡改的内容
    interrupt: 这些 URL 在产出一半数据后中断
    errors: URL -> 直接抛出的任意异常
    """

    def __init__(self, files: Optional[Dict[str, bytes]] = None, delay: float = 0):
        self.files = dict(files or {})
        self.fail_times: Dict[str, int] = {}
        self.corrupt_times: Dict[str, int] = {}
        self.interrupt = set()
        self.errors: Dict[str, Exception] = {}
        self.delay = delay
        self.calls = []
        self.active = 0
        self.max_active = 0
        self.on_fetch = None

    async def fetch(self, url):
        self.calls.append(url)
        if self.on_fetch is not None:
            self.on_fetch(url)

        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)

            if url in self.errors:
                raise self.errors[url]
            if self.fail_times.get(url, 0) > 0:
                self.fail_times[url] -= 1
                raise TransportError(f"模拟网络错误: {url}")
            if url not in self.files:
                raise TransportError(f"HTTP 404: {url}")

            data = self.files[url]
            if self.corrupt_times.get(url, 0) > 0:
                self.corrupt_times[url] -= 1
                data = b"corrupted" + data

            if url in self.interrupt:
                yield data[: len(data) // 2]
                raise TransportError(f"连接中断: {url}")

            yield data
        finally:
            self.active -= 1


def remote_file(path: str, data: bytes, url: Optional[str] = None, **extra) -> dict:
    """modrinth.index.json 中的 files 条目"""
    item = {
        "path": path,
        "hashes": {"sha1": sha1(data), "sha512": hashlib.sha512(data).hexdigest()},
        "downloads": [url or f"https://cdn.example.com/{path}"],
        "fileSize": len(data),
    }
    item.update(extra)
    return item


def write_mrpack(
    archive_path,
    files=(),
    overrides: Optional[Dict[str, bytes]] = None,
    name: str = "Test Pack",
    version: str = "1.0.0",
    dependencies: Optional[dict] = None,
    extra_members: Optional[Dict[str, bytes]] = None,
) -> str:
    """写入一个 .mrpack 测试归档"""
    index = {
        "formatVersion": 1,
        "game": "minecraft",
        "versionId": version,
        "name": name,
        "summary": "测试整合包",
        "files": list(files),
        "dependencies": dependencies or {"minecraft": "1.20.1", "fabric-loader": "0.15.0"},
    }
    with zipfile.ZipFile(archive_path, "w") as archive:
        archive.writestr("modrinth.index.json", json.dumps(index))
        for path, data in (overrides or {}).items():
            archive.writestr(f"overrides/{path}", data)
        for member, data in (extra_members or {}).items():
            archive.writestr(member, data)
    return str(archive_path)


