"""
API 客户端

Modrinth（按摘要查询文件）、CurseForge（按项目/文件 ID 查询）以及
Mojang 版本元数据的轻量客户端。
"""

import asyncio
from typing import Any, Dict, Iterable, List, Optional

import aiohttp
from loguru import logger

from uranium.exceptions import APIError, APINotFoundError
from uranium.models import FileInfo, HashAlgorithm
from uranium.services.remote_index import RemoteIndex


MODRINTH_BASE_URL = "https://api.modrinth.com/v2"
CURSEFORGE_BASE_URL = "https://api.curseforge.com/v1"
MOJANG_VERSION_MANIFEST = (
    "https://piston-meta.mojang.com/mc/game/version_manifest_v2.json"
)
JAVA_RUNTIMES_URL = (
    "https://launchermeta.mojang.com/v1/products/java-runtime/"
    "2ec0cc96c44e5a76b9c8b7c39df7210883d12871/all.json"
)

LOOKUP_BATCH_SIZE = 500


class BaseClient:
    """aiohttp session 管理与通用请求"""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self._session = session
        self._owned_session = session is None
        self._headers = headers or {}

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._headers)
        return self._session

    async def _request(
        self,
        endpoint: str,
        params: Optional[dict] = None,
        method: str = "GET",
        json: Any = None,
    ) -> Optional[Any]:
        """
        发送 API 请求，404 返回 None

        Raises:
            APIError: 非 200/404 状态码、网络错误、超时或响应不是 JSON
        """
        try:
            async with self.session.request(
                method, endpoint, params=params, json=json
            ) as response:
                if response.status == 200:
                    return await response.json(content_type=None)
                elif response.status == 404:
                    return None
                else:
                    raise APIError(
                        f"API 请求失败 (状态码: {response.status})",
                        response=response,
                    )
        except aiohttp.ClientError as e:
            raise APIError(f"网络错误: {e}", context={"url": endpoint}) from e
        except asyncio.TimeoutError as e:
            raise APIError("请求超时", context={"url": endpoint}) from e
        except ValueError as e:
            raise APIError(f"响应不是有效的 JSON: {e}", context={"url": endpoint}) from e

    async def close(self):
        """关闭客户端"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()


class ModrinthClient(BaseClient, RemoteIndex):
    """Modrinth API 客户端"""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        algorithm: HashAlgorithm = HashAlgorithm.SHA1,
        user_agent: str = "uranium/1.0",
    ):
        super().__init__(session, headers={"User-Agent": user_agent})
        self.algorithm = algorithm

    async def get_version_files(self, hashes: List[str]) -> Dict[str, dict]:
        """
        按摘要批量获取版本信息

        POST /version_files，返回 摘要 -> 版本对象
        """
        if not hashes:
            return {}
        response = await self._request(
            f"{MODRINTH_BASE_URL}/version_files",
            method="POST",
            json={"hashes": hashes, "algorithm": self.algorithm.value},
        )
        if response is not None and not isinstance(response, dict):
            raise APIError("Modrinth 响应格式错误: 需要对象")
        return response or {}

    async def lookup(self, hashes: Iterable[str]) -> Dict[str, FileInfo]:
        hashes = list(hashes)
        found: Dict[str, FileInfo] = {}

        for start in range(0, len(hashes), LOOKUP_BATCH_SIZE):
            batch = hashes[start : start + LOOKUP_BATCH_SIZE]
            versions = await self.get_version_files(batch)
            for value in batch:
                version = versions.get(value)
                if not version:
                    continue
                try:
                    info = self._match_file(version, value)
                except (KeyError, TypeError, AttributeError) as e:
                    raise APIError(
                        f"Modrinth 响应格式错误: {e!r}", context={"hash": value}
                    ) from e
                if info is not None:
                    found[value] = info

        logger.info(f"[索引] Modrinth 命中 {len(found)}/{len(hashes)} 个文件")
        return found

    def _match_file(self, version: dict, value: str) -> Optional[FileInfo]:
        """在版本的文件列表中找到摘要对应的文件"""
        for file in version.get("files", []):
            if (file.get("hashes") or {}).get(self.algorithm.value, "").lower() == value.lower():
                return FileInfo.from_modrinth(file, version.get("project_id"))
        return None


class CurseForgeClient(BaseClient):
    """CurseForge API 客户端（需要 API key）"""

    def __init__(
        self,
        api_key: Optional[str],
        session: Optional[aiohttp.ClientSession] = None,
    ):
        super().__init__(
            session,
            headers={"x-api-key": api_key or "", "Accept": "application/json"},
        )
        self.api_key = api_key

    async def get_file(self, project_id: int, file_id: int) -> Optional[FileInfo]:
        """获取单个文件信息"""
        response = await self._request(
            f"{CURSEFORGE_BASE_URL}/mods/{project_id}/files/{file_id}"
        )
        if response is None:
            return None
        try:
            return FileInfo.from_curse(response["data"])
        except (KeyError, TypeError, AttributeError) as e:
            raise APIError(
                f"CurseForge 响应格式错误: {e!r}",
                context={"project_id": project_id, "file_id": file_id},
            ) from e

    async def __call__(self, project_id: int, file_id: int) -> Optional[FileInfo]:
        return await self.get_file(project_id, file_id)


class MojangClient(BaseClient):
    """Mojang 版本元数据客户端"""

    async def get_version_manifest(self) -> dict:
        """获取版本列表"""
        response = await self._request(MOJANG_VERSION_MANIFEST)
        if response is None:
            raise APINotFoundError("无法获取 Minecraft 版本列表")
        return response

    async def find_version(self, version_id: str) -> dict:
        """在版本列表中查找版本条目（id、url、sha1）"""
        manifest = await self.get_version_manifest()
        for version in manifest.get("versions", []):
            if version.get("id") == version_id:
                return version
        raise APINotFoundError(
            f"未找到 Minecraft 版本: {version_id}", context={"version": version_id}
        )

    async def get_version_data(self, version: dict) -> dict:
        """按版本条目下载 version JSON"""
        data = await self._request(version["url"])
        if data is None:
            raise APINotFoundError(
                f"version JSON 不存在: {version.get('id')}",
                context={"url": version["url"]},
            )
        return data

    async def get_version(self, version_id: str) -> dict:
        """获取指定版本的 version JSON"""
        return await self.get_version_data(await self.find_version(version_id))

    async def get_asset_index(self, version_data: dict) -> dict:
        """获取 version JSON 引用的资源索引"""
        url = (version_data.get("assetIndex") or {}).get("url")
        if not url:
            raise APINotFoundError("version JSON 中缺少 assetIndex")
        data = await self._request(url)
        if data is None:
            raise APINotFoundError("资源索引不存在", context={"url": url})
        return data

    async def get_latest(self, kind: str = "release") -> str:
        """最新的正式版 (release) 或快照 (snapshot) 版本号"""
        manifest = await self.get_version_manifest()
        version_id = (manifest.get("latest") or {}).get(kind)
        if not version_id:
            raise APINotFoundError(
                f"版本列表中没有最新的 {kind}", context={"kind": kind}
            )
        return version_id

    async def list_versions(self, kind: Optional[str] = None) -> List[dict]:
        """
        列出全部版本

        Args:
            kind: release / snapshot / old_beta / old_alpha，None 表示不过滤
        """
        manifest = await self.get_version_manifest()
        versions = manifest.get("versions", [])
        if kind is None:
            return list(versions)
        return [v for v in versions if v.get("type") == kind]

    async def get_java_runtimes(self) -> dict:
        """获取各平台可用的 Java 运行时组件"""
        response = await self._request(JAVA_RUNTIMES_URL)
        if response is None:
            raise APINotFoundError("无法获取 Java 运行时列表")
        return response

    async def get_runtime_files(self, component: str, platform_name: str) -> dict:
        """获取指定运行时组件的文件清单"""
        runtimes = await self.get_java_runtimes()
        candidates = (runtimes.get(platform_name) or {}).get(component) or []
        if not (
            isinstance(candidates, list) and candidates and isinstance(candidates[0], dict)
        ):
            raise APINotFoundError(
                f"{platform_name} 上没有 Java 运行时 {component}",
                context={"component": component, "platform": platform_name},
            )
        url = (candidates[0].get("manifest") or {}).get("url")
        if not url:
            raise APIError(f"运行时 {component} 缺少清单地址")
        data = await self._request(url)
        if data is None:
            raise APINotFoundError(f"运行时清单不存在: {component}", context={"url": url})
        logger.debug(f"[运行时] {component} ({platform_name}): {url}")
        return data
