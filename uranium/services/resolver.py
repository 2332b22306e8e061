"""
清单解析服务

对比声明的文件清单与本地快照，得出最小的 Fetch / Keep / Remove 动作集。

重复路径规则：同一清单中多个条目指向同一路径时，按清单顺序后出现的条目
生效（last-write-wins）。这是明确约定的行为，解析时会对每个被覆盖的条目
输出警告，便于发现格式错误的清单。
"""

from typing import Dict, Iterable, List, Optional

from loguru import logger

from uranium.download.verifier import matches
from uranium.models import (
    Action,
    DEFAULT_MANAGED_ROOTS,
    FileEntry,
    Manifest,
    PruneScope,
    normalize_path,
)
from uranium.services.snapshot import LocalSnapshot


class ManifestResolver:
    """清单解析器"""

    def __init__(
        self,
        prune: bool = False,
        prune_scope: PruneScope = PruneScope.PREVIOUS,
        managed_roots: Iterable[str] = DEFAULT_MANAGED_ROOTS,
    ):
        self.prune = prune
        self.prune_scope = prune_scope
        self.managed_roots = [normalize_path(root) for root in managed_roots]

    def is_managed(self, path: str) -> bool:
        """路径是否位于受管子目录下"""
        return any(
            path == root or path.startswith(root + "/") for root in self.managed_roots
        )

    @staticmethod
    def effective_entries(manifest: Manifest) -> List[FileEntry]:
        """
        按 last-write-wins 规则去重

        返回顺序为每个路径首次出现的位置，内容为该路径最后一次出现的条目。
        """
        effective: Dict[str, FileEntry] = {}
        for entry in manifest:
            path = normalize_path(entry.path)
            previous = effective.get(path)
            if previous is not None and previous != entry:
                logger.warning(
                    f"[清单] 路径 '{path}' 重复声明，使用后出现的条目 "
                    f"({previous.hash[:12]} -> {entry.hash[:12]})"
                )
            effective[path] = entry
        return list(effective.values())

    def resolve(
        self,
        manifest: Manifest,
        snapshot: LocalSnapshot,
        previous: Optional[Manifest] = None,
    ) -> List[Action]:
        """
        计算动作集

        Args:
            manifest: 目标清单
            snapshot: 安装目录的本地快照
            previous: 上一次成功安装的清单（prune_scope=PREVIOUS 时使用）

        Returns:
            Fetch/Keep 按清单顺序在前，Remove 按路径排序在后
        """
        actions: List[Action] = []
        declared = set()

        for entry in self.effective_entries(manifest):
            declared.add(entry.path)
            local = snapshot.get(entry.path)
            if local is None:
                actions.append(Action.fetch(entry))
            elif local.algorithm is entry.algorithm and matches(local.hash, entry.hash):
                actions.append(Action.keep(entry))
            else:
                logger.debug(f"[解析] '{entry.path}' 本地摘要不匹配，需要重新下载")
                actions.append(Action.fetch(entry))

        if self.prune:
            actions.extend(
                Action.remove(path)
                for path in sorted(self._prune_candidates(declared, snapshot, previous))
            )

        return actions

    def _prune_candidates(
        self,
        declared: set,
        snapshot: LocalSnapshot,
        previous: Optional[Manifest],
    ) -> set:
        candidates = {
            path
            for path in snapshot
            if path not in declared and self.is_managed(path)
        }
        if self.prune_scope is PruneScope.PREVIOUS:
            previously_installed = previous.paths() if previous is not None else set()
            candidates &= previously_installed
        return candidates

    def summarize(self, actions: Iterable[Action]) -> Dict[str, int]:
        """统计各类动作数量"""
        summary = {"fetch": 0, "keep": 0, "remove": 0}
        for action in actions:
            summary[action.kind.value] += 1
        return summary
