"""
解析动作

ManifestResolver 的输出：Fetch / Keep / Remove。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from uranium.models.manifest import FileEntry


class ActionKind(Enum):
    """动作类型"""

    FETCH = "fetch"
    KEEP = "keep"
    REMOVE = "remove"


@dataclass(frozen=True)
class Action:
    """单个解析动作"""

    kind: ActionKind
    path: str
    entry: Optional[FileEntry] = None

    @classmethod
    def fetch(cls, entry: FileEntry) -> "Action":
        return cls(ActionKind.FETCH, entry.path, entry)

    @classmethod
    def keep(cls, entry: FileEntry) -> "Action":
        return cls(ActionKind.KEEP, entry.path, entry)

    @classmethod
    def remove(cls, path: str) -> "Action":
        return cls(ActionKind.REMOVE, path)

    @property
    def is_fetch(self) -> bool:
        return self.kind is ActionKind.FETCH

    @property
    def is_keep(self) -> bool:
        return self.kind is ActionKind.KEEP

    @property
    def is_remove(self) -> bool:
        return self.kind is ActionKind.REMOVE

    def __str__(self) -> str:
        return f"{self.kind.value.capitalize()}({self.path})"
