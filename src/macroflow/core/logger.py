"""
日志配置模块
"""
import sys
from pathlib import Path

from loguru import logger

from .config import settings

_configured = False


def setup_logger(force: bool = False):
    """配置日志系统

    Args:
        force: 重新安装所有 sink（配置变更后调用）
    """
    global _configured
    if _configured and not force:
        return logger

    # 移除默认处理器
    logger.remove()

    # 控制台输出
    if settings.log_console_enabled:
        logger.add(
            sys.stdout,
            level=settings.log_level,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        )

    if settings.log_file_enabled:
        log_dir = Path(settings.log_path)
        log_dir.mkdir(parents=True, exist_ok=True)

        # 文件输出 - 全局日志
        logger.add(
            log_dir / "app_{time:YYYY-MM-DD}.log",
            level=settings.log_level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            rotation=settings.log_rotation,
            retention=f"{settings.log_retention_days} days",
            encoding="utf-8",
        )

        # 错误日志单独记录
        logger.add(
            log_dir / "error_{time:YYYY-MM-DD}.log",
            level="ERROR",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            rotation=settings.log_rotation,
            retention=f"{settings.log_retention_days * 2} days",
            encoding="utf-8",
        )

    _configured = True
    return logger


def get_scenario_logger(scenario_key: str):
    """获取场景专用日志器"""
    return logger.bind(module="ScenarioRun", scenario_key=scenario_key)


# 初始化日志系统
setup_logger()

__all__ = ["logger", "setup_logger", "get_scenario_logger"]
