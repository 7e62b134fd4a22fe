"""
日志配置模块
"""

import sys
from pathlib import Path
from typing import Optional
from loguru import logger

def setup_logger(level: str = "INFO", log_file: Optional[str] = None):
    """设置日志配置"""
    # 移除默认的日志处理器
    logger.remove()

    # 控制台日志格式
    console_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level>"
    )

    # 文件日志格式
    file_format = (
        "{time:YYYY-MM-DD HH:mm:ss} | "
        "{level: <8} | "
        "{name}:{function}:{line} | "
        "{message}"
    )

    # 添加控制台日志处理器
    logger.add(
        sys.stdout,
        format=console_format,
        level=level,
        colorize=True
    )

    # 容器中默认只输出到标准输出
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path,
            format=file_format,
            level=level,
            rotation="100 MB",
            retention="30 days",
            compression="zip",
            encoding="utf-8"
        )

        # 错误日志单独存放
        logger.add(
            log_path.with_name("error.log"),
            format=file_format,
            level="ERROR",
            rotation="50 MB",
            retention="60 days",
            compression="zip",
            encoding="utf-8"
        )

    logger.info("日志系统初始化完成")
    logger.info(f"日志级别: {level}")
    if log_file:
        logger.info(f"日志文件: {log_file}")
