"""
Uranium 统一异常体系

提供分层的异常结构，支持错误代码、上下文信息和 JSON 序列化。
"""

from typing import Any, Dict, Optional

import aiohttp


class UraniumError(Exception):
    """Uranium 基础异常类"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self._get_default_code()
        self.context = context or {}

    def _get_default_code(self) -> str:
        """获取默认错误代码"""
        return "E000"

    @property
    def retryable(self) -> bool:
        """该错误是否允许重试"""
        return False

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigError(UraniumError):
    """配置相关错误"""

    def _get_default_code(self) -> str:
        return "E100"


class ConfigParseError(ConfigError):
    """配置解析错误"""

    def _get_default_code(self) -> str:
        return "E101"


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def _get_default_code(self) -> str:
        return "E102"


class ManifestParseError(UraniumError):
    """清单解析错误（对整次安装是致命的）"""

    def _get_default_code(self) -> str:
        return "E110"


class PathTraversalError(UraniumError):
    """清单条目试图写到受管目录之外"""

    def _get_default_code(self) -> str:
        return "E120"


class APIError(UraniumError):
    """API 相关错误"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        response: Optional[aiohttp.ClientResponse] = None,
    ):
        super().__init__(message, code, context)
        self.response = response
        if response:
            self.context["status_code"] = response.status
            self.context["url"] = str(response.url)

    def _get_default_code(self) -> str:
        return "E200"


class APINotFoundError(APIError):
    """API 资源不存在"""

    def _get_default_code(self) -> str:
        return "E404"


class DownloadError(UraniumError):
    """下载相关错误"""

    def _get_default_code(self) -> str:
        return "E300"


class TransportError(DownloadError):
    """网络传输错误（可重试）"""

    def _get_default_code(self) -> str:
        return "E301"

    @property
    def retryable(self) -> bool:
        return True


class HashMismatch(DownloadError):
    """内容哈希与预期不一致（可重试，超过上限后终止）"""

    def _get_default_code(self) -> str:
        return "E302"

    @property
    def retryable(self) -> bool:
        return True


class FilesystemError(DownloadError):
    """文件系统错误（权限、空间、路径）"""

    def _get_default_code(self) -> str:
        return "E303"


class DownloadCancelled(DownloadError):
    """任务因取消而未开始"""

    def _get_default_code(self) -> str:
        return "E304"


class PackagerError(UraniumError):
    """打包相关错误"""

    def _get_default_code(self) -> str:
        return "E400"


class MrpackError(PackagerError):
    """Mrpack 生成错误"""

    def _get_default_code(self) -> str:
        return "E401"


class InstallError(UraniumError):
    """安装失败，携带安装报告"""

    def __init__(
        self,
        message: str,
        report: Any = None,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code, context)
        self.report = report

    def _get_default_code(self) -> str:
        return "E500"


__all__ = [
    # 基础异常
    "UraniumError",
    # 配置 / 清单
    "ConfigError",
    "ConfigParseError",
    "ConfigValidationError",
    "ManifestParseError",
    "PathTraversalError",
    # API 异常
    "APIError",
    "APINotFoundError",
    # 下载异常
    "DownloadError",
    "TransportError",
    "HashMismatch",
    "FilesystemError",
    "DownloadCancelled",
    # 打包异常
    "PackagerError",
    "MrpackError",
    # 安装
    "InstallError",
]
