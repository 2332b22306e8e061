"""
传输层

Fetcher 是下载引擎唯一依赖的传输能力：给定 URL，逐块产出字节，
或以 TransportError 明确失败。替换传输方式（测试替身、限速包装等）
不需要改动编排逻辑。
"""

import asyncio
import os
import zipfile
import zlib
from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, Optional
from urllib.parse import urlparse

import aiofiles
import aiohttp
from loguru import logger

from uranium.exceptions import TransportError

CHUNK_SIZE = 64 * 1024
ARCHIVE_SCHEME = "pack"


class Fetcher(ABC):
    """传输能力接口"""

    @abstractmethod
    def fetch(self, url: str) -> AsyncIterator[bytes]:
        """
        获取 URL 对应的内容

        Returns:
            字节块的异步迭代器

        Raises:
            TransportError: 传输失败（可以在产出部分数据之后抛出）
        """

    async def read(self, url: str) -> bytes:
        """一次性读取全部内容"""
        chunks = []
        async for chunk in self.fetch(url):
            chunks.append(chunk)
        return b"".join(chunks)

    async def close(self):
        """释放传输资源"""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class HttpFetcher(Fetcher):
    """基于 aiohttp 的 HTTP 传输"""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 60.0,
        user_agent: str = "uranium/1.0",
        headers: Optional[Dict[str, str]] = None,
    ):
        self._session = session
        self._owned_session = session is None
        self._timeout = timeout
        self._headers = {"User-Agent": user_agent, **(headers or {})}

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
        return self._session

    async def fetch(self, url: str) -> AsyncIterator[bytes]:
        try:
            async with self.session.get(url) as response:
                if response.status != 200:
                    raise TransportError(
                        f"HTTP {response.status}",
                        context={"url": url, "status": response.status},
                    )
                async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                    yield chunk
        except aiohttp.ClientError as e:
            raise TransportError(f"网络错误: {e}", context={"url": url}) from e
        except asyncio.TimeoutError as e:
            raise TransportError("请求超时", context={"url": url}) from e

    async def close(self):
        """关闭 session"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()


class LocalFileFetcher(Fetcher):
    """file:// 本地文件传输"""

    async def fetch(self, url: str) -> AsyncIterator[bytes]:
        src_path = url[len("file://") :] if url.startswith("file://") else url
        if not os.path.isfile(src_path):
            raise TransportError(f"本地文件不存在: {src_path}", context={"url": url})

        try:
            async with aiofiles.open(src_path, "rb") as f:
                while True:
                    data = await f.read(CHUNK_SIZE)
                    if not data:
                        break
                    yield data
        except OSError as e:
            raise TransportError(f"读取本地文件失败: {e}", context={"url": url}) from e


class ArchiveFetcher(Fetcher):
    """
    从整合包归档中读取内嵌文件

    URL 形如 ``pack://overrides/config/foo.toml``，路径即归档成员名。
    """

    def __init__(self, archive_path: str):
        self.archive_path = archive_path

    @staticmethod
    def url_for(member: str) -> str:
        return f"{ARCHIVE_SCHEME}://{member}"

    async def fetch(self, url: str) -> AsyncIterator[bytes]:
        member = url[len(f"{ARCHIVE_SCHEME}://") :]
        try:
            with zipfile.ZipFile(self.archive_path) as archive:
                with archive.open(member) as f:
                    while True:
                        data = f.read(CHUNK_SIZE)
                        if not data:
                            break
                        yield data
        except KeyError as e:
            raise TransportError(
                f"归档中不存在: {member}", context={"url": url}
            ) from e
        except (OSError, EOFError, RuntimeError, zipfile.BadZipFile, zlib.error) as e:
            raise TransportError(f"读取归档失败: {e}", context={"url": url}) from e


class RoutingFetcher(Fetcher):
    """按 URL scheme 分发到不同的传输实现"""

    def __init__(
        self,
        routes: Optional[Dict[str, Fetcher]] = None,
        default: Optional[Fetcher] = None,
    ):
        self.routes: Dict[str, Fetcher] = dict(routes or {})
        self.default = default

    def register(self, scheme: str, fetcher: Fetcher) -> None:
        self.routes[scheme] = fetcher

    def resolve(self, url: str) -> Fetcher:
        scheme = urlparse(url).scheme.lower()
        fetcher = self.routes.get(scheme, self.default)
        if fetcher is None:
            raise TransportError(
                f"不支持的 URL 协议: {scheme or '(无)'}", context={"url": url}
            )
        return fetcher

    async def fetch(self, url: str) -> AsyncIterator[bytes]:
        fetcher = self.resolve(url)
        async for chunk in fetcher.fetch(url):
            yield chunk

    async def close(self):
        closed = set()
        for fetcher in [*self.routes.values(), self.default]:
            if fetcher is not None and id(fetcher) not in closed:
                closed.add(id(fetcher))
                await fetcher.close()


def default_fetcher(
    session: Optional[aiohttp.ClientSession] = None,
    archive_path: Optional[str] = None,
    timeout: float = 60.0,
    user_agent: str = "uranium/1.0",
) -> RoutingFetcher:
    """http/https、file 以及（可选）整合包内嵌文件的组合传输"""
    http = HttpFetcher(session=session, timeout=timeout, user_agent=user_agent)
    fetcher = RoutingFetcher({"http": http, "https": http, "file": LocalFileFetcher()})
    if archive_path:
        fetcher.register(ARCHIVE_SCHEME, ArchiveFetcher(archive_path))
        logger.debug(f"[传输] 已挂载整合包归档: {archive_path}")
    return fetcher
