"""
日志模块

使用 loguru 提供统一的日志记录功能。核心模块只调用 logger，从不自行配置；
由调用方在任何核心操作之前调用一次 setup_logger()。
"""

import os
import sys
from typing import Optional

from loguru import logger


def setup_logger(
    level: Optional[str] = None,
    sink=sys.stdout,
    enqueue: bool = True,
    colorize: bool = True,
) -> None:
    """
    设置日志记录器

    Args:
        level: 日志级别 (DEBUG, INFO, WARNING, ERROR)
        sink: 输出目标
        enqueue: 是否启用队列（线程安全）
        colorize: 是否启用颜色
    """
    # 从环境变量获取日志级别
    if level is None:
        level = "DEBUG" if os.environ.get("URANIUM_DEBUG", "0") == "1" else "INFO"

    # 移除默认处理器
    logger.remove()

    logger.add(
        sink=sink,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
        enqueue=enqueue,
        level=level,
        colorize=colorize,
        backtrace=(level == "DEBUG"),
        diagnose=(level == "DEBUG"),
    )

    if level == "DEBUG":
        logger.debug("DEBUG 模式已启用")


def teardown_logger() -> None:
    """等待队列中的日志写完并移除所有处理器"""
    logger.complete()
    logger.remove()


__all__ = ["logger", "setup_logger", "teardown_logger"]
