"""
整合包安装器

按 PARSING -> RESOLVING -> DOWNLOADING -> VERIFYING -> INSTALLED 的顺序推进，
任何阶段出错都进入 FAILED。

默认失败即关闭（fail-closed）：只要有一个 Fetch 失败，整次安装失败且不执行
任何删除。permissive 模式下返回部分成功的报告，同样跳过删除。
"""

import json
import os
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import aiofiles
from loguru import logger

from uranium.dialects.base import Dialect, loads_document
from uranium.dialects.modrinth import parse_index
from uranium.download import (
    ArchiveFetcher,
    CancelToken,
    DownloadManager,
    DownloadResult,
    DownloadTask,
    Fetcher,
    RoutingFetcher,
    default_fetcher,
)
from uranium.download.fetcher import ARCHIVE_SCHEME
from uranium.download.manager import ProgressCallback
from uranium.exceptions import (
    FilesystemError,
    InstallError,
    ManifestParseError,
    UraniumError,
)
from uranium.models import Action, InstallerConfig, Manifest, PruneScope, safe_join
from uranium.services.resolver import ManifestResolver
from uranium.services.snapshot import STATE_DIR, build_snapshot, scan_paths

STATE_FILE = "installed.json"


class InstallState(Enum):
    """安装状态"""

    PARSING = "parsing"
    RESOLVING = "resolving"
    DOWNLOADING = "downloading"
    VERIFYING = "verifying"
    INSTALLED = "installed"
    FAILED = "failed"


@dataclass(frozen=True)
class FileError:
    """单个文件的失败记录"""

    path: str
    error: UraniumError

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, **self.error.to_dict()}


@dataclass
class InstallReport:
    """安装报告"""

    state: InstallState = InstallState.PARSING
    manifest: Optional[Manifest] = None
    actions: List[Action] = field(default_factory=list)
    errors: List[FileError] = field(default_factory=list)
    fetched: List[str] = field(default_factory=list)
    kept: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    partial: bool = False
    fatal: Optional[UraniumError] = None

    @property
    def ok(self) -> bool:
        return self.state is InstallState.INSTALLED and not self.partial

    def summary(self) -> Dict[str, Any]:
        """统计信息"""
        return {
            "state": self.state.value,
            "fetched": len(self.fetched),
            "kept": len(self.kept),
            "removed": len(self.removed),
            "failed": len(self.errors),
            "partial": self.partial,
        }


class ModpackInstaller:
    """
    整合包安装器

    Args:
        dialect: 清单格式解析器
        root: 安装根目录
        config: 安装配置
        fetcher: 传输实现；为 None 时使用 http/file/内嵌文件的组合传输
        progress_callback: 下载进度回调 (path, done, total)
    """

    def __init__(
        self,
        dialect: Dialect,
        root: str,
        config: Optional[InstallerConfig] = None,
        fetcher: Optional[Fetcher] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.dialect = dialect
        self.root = os.path.abspath(root)
        self.config = config or InstallerConfig()
        self.fetcher = fetcher
        self.progress_callback = progress_callback
        self.resolver = ManifestResolver(
            prune=self.config.prune,
            prune_scope=self.config.prune_scope,
            managed_roots=self.config.managed_roots,
        )

    @property
    def state_path(self) -> str:
        return os.path.join(self.root, STATE_DIR, STATE_FILE)

    async def install(
        self, source: Any, cancel: Optional[CancelToken] = None
    ) -> InstallReport:
        """
        安装整合包

        Returns:
            安装报告（INSTALLED，permissive 模式下可能 partial=True）

        Raises:
            InstallError: 安装失败，e.report 为失败时的报告
        """
        report = InstallReport()
        logger.info(f"[安装] 目标目录: {self.root}")

        # PARSING
        try:
            parsed = await self._parse(source)
        except UraniumError as e:
            raise self._fatal(report, e) from e
        report.manifest = parsed.manifest

        # RESOLVING
        report.state = InstallState.RESOLVING
        try:
            previous = await self.load_installed()
            actions = await self._resolve(parsed.manifest, previous)
        except (UraniumError, OSError) as e:
            if isinstance(e, OSError):
                e = FilesystemError(f"读取安装目录失败: {e}", context={"root": self.root})
            raise self._fatal(report, e) from e
        report.actions = actions
        report.kept = [a.path for a in actions if a.is_keep]

        summary = self.resolver.summarize(actions)
        logger.info(
            f"[解析] 下载 {summary['fetch']} 个, 保留 {summary['keep']} 个, "
            f"删除 {summary['remove']} 个"
        )

        # DOWNLOADING
        report.state = InstallState.DOWNLOADING
        results = await self._download(
            [a for a in actions if a.is_fetch], parsed.archive_path, cancel
        )
        succeeded = set()
        for result in results:
            if result.ok:
                succeeded.add(result.path)
            else:
                report.errors.append(FileError(result.path, result.error))
        report.fetched = [a.path for a in actions if a.is_fetch and a.path in succeeded]

        # VERIFYING
        report.state = InstallState.VERIFYING
        if report.errors:
            return self._finish_failed(report)

        removals = [a for a in actions if a.is_remove]
        self._apply_removals(removals, report)
        if report.errors:
            return self._finish_failed(report)

        try:
            await self.save_installed(self.resolver_manifest(parsed.manifest))
        except OSError as e:
            report.errors.append(
                FileError(
                    f"{STATE_DIR}/{STATE_FILE}",
                    FilesystemError(f"无法写入安装记录: {e}"),
                )
            )
            return self._finish_failed(report)

        report.state = InstallState.INSTALLED
        logger.success(
            f"[完成] {parsed.manifest.name} 安装完成: 下载 {len(report.fetched)}, "
            f"保留 {len(report.kept)}, 删除 {len(report.removed)}"
        )
        return report

    async def plan(self, source: Any = None) -> List[Action]:
        """
        只解析、不下载

        source 为 None 时对照上一次的安装记录检查安装目录。

        Raises:
            InstallError: 无安装记录
        """
        previous = await self.load_installed()
        if source is None:
            if previous is None:
                raise InstallError(f"{self.root} 中没有安装记录")
            manifest = previous
        else:
            manifest = (await self._parse(source)).manifest
        return await self._resolve(manifest, previous)

    async def _parse(self, source: Any):
        """解析清单；格式实现抛出的非 Uranium 异常统一视为清单解析错误"""
        try:
            return await self.dialect.parse(source)
        except UraniumError:
            raise
        except Exception as e:
            raise ManifestParseError(
                f"清单格式错误: {e!r}", context={"dialect": self.dialect.name}
            ) from e

    @staticmethod
    def resolver_manifest(manifest: Manifest) -> Manifest:
        """去重后的清单，作为安装记录保存"""
        return Manifest(
            name=manifest.name,
            version=manifest.version,
            game_version=manifest.game_version,
            entries=tuple(ManifestResolver.effective_entries(manifest)),
            loaders=manifest.loaders,
            summary=manifest.summary,
        )

    async def _resolve(
        self, manifest: Manifest, previous: Optional[Manifest]
    ) -> List[Action]:
        extra: List[str] = []
        if self.resolver.prune:
            if self.resolver.prune_scope is PruneScope.MANAGED:
                extra = scan_paths(self.root, self.resolver.managed_roots)
            elif previous is not None:
                extra = sorted(previous.paths())

        snapshot = await build_snapshot(
            self.root,
            self.resolver_manifest(manifest),
            extra_paths=extra,
            workers=self.config.hash_workers,
        )
        return self.resolver.resolve(manifest, snapshot, previous)

    def _fetcher_for(self, archive_path: Optional[str]):
        """返回 (fetcher, 是否由本次安装负责关闭)"""
        download = self.config.download
        if self.fetcher is None:
            return (
                default_fetcher(
                    archive_path=archive_path,
                    timeout=download.timeout,
                    user_agent=download.user_agent,
                ),
                True,
            )
        if archive_path is None:
            return self.fetcher, False
        return (
            RoutingFetcher(
                {ARCHIVE_SCHEME: ArchiveFetcher(archive_path)}, default=self.fetcher
            ),
            False,
        )

    async def _download(
        self,
        fetches: List[Action],
        archive_path: Optional[str],
        cancel: Optional[CancelToken],
    ) -> List[DownloadResult]:
        if not fetches:
            return []

        tasks = [
            DownloadTask.from_entry(action.entry, safe_join(self.root, action.path))
            for action in fetches
        ]
        fetcher, owned = self._fetcher_for(archive_path)
        download = self.config.download
        manager = DownloadManager(
            fetcher=fetcher,
            max_concurrent=download.max_concurrent,
            max_retries=download.max_retries,
            retry_delay=download.retry_delay,
            progress_callback=self.progress_callback,
        )
        try:
            return await manager.submit(tasks, cancel=cancel)
        finally:
            if owned:
                await fetcher.close()

    def _apply_removals(self, removals: List[Action], report: InstallReport) -> None:
        for action in removals:
            try:
                os.remove(safe_join(self.root, action.path))
            except FileNotFoundError:
                logger.debug(f"[删除] '{action.path}' 已不存在")
            except OSError as e:
                report.errors.append(
                    FileError(
                        action.path,
                        FilesystemError(f"无法删除: {e}", context={"file": action.path}),
                    )
                )
                continue
            logger.info(f"[删除] {action.path}")
            report.removed.append(action.path)

    def _fatal(self, report: InstallReport, error: UraniumError) -> InstallError:
        logger.error(f"[失败] 安装在 {report.state.value} 阶段终止: {error}")
        report.fatal = error
        report.state = InstallState.FAILED
        return InstallError(f"安装失败: {error.message}", report=report)

    def _finish_failed(self, report: InstallReport) -> InstallReport:
        for failure in report.errors:
            logger.error(f"[失败] {failure.path}: {failure.error}")

        if self.config.permissive and report.state is InstallState.VERIFYING:
            report.partial = True
            report.state = InstallState.INSTALLED
            logger.warning(
                f"[部分完成] {len(report.errors)} 个文件失败，安装记录未更新"
            )
            return report

        report.state = InstallState.FAILED
        raise InstallError(
            f"{len(report.errors)} 个文件安装失败", report=report
        )

    async def load_installed(self) -> Optional[Manifest]:
        """读取上一次成功安装的清单"""
        if not os.path.isfile(self.state_path):
            return None
        async with aiofiles.open(self.state_path, "r", encoding="utf-8") as f:
            raw = await f.read()
        try:
            index = loads_document(raw.encode("utf-8"), STATE_FILE)
            return parse_index(index, side=None)
        except ManifestParseError as e:
            logger.warning(f"[记录] 安装记录已损坏，忽略: {e}")
            return None

    async def save_installed(self, manifest: Manifest) -> None:
        """原子写入安装记录"""
        os.makedirs(os.path.dirname(self.state_path), exist_ok=True)
        temp_path = f"{self.state_path}.{uuid.uuid4().hex[:8]}.part"
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(
                json.dumps(manifest.to_mrpack_index(), indent=2, sort_keys=True)
            )
        os.replace(temp_path, self.state_path)
