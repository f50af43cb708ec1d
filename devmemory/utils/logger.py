"""
Logger工具模块 - 统一的日志管理

提供：
- 多模块独立的logger实例（统一挂在 ``devmemory.`` 命名空间下）
- 可配置的日志级别和格式
- 可选的文件日志输出（带自动轮转）

使用示例:
    from devmemory.utils.logger import get_logger

    logger = get_logger("kg_storage")
    logger.debug("调试信息")
    logger.warning("警告信息")
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Dict, Optional

# 全局配置
_LOG_CONFIG = {
    "level": "INFO",
    "log_dir": None,  # setup_logging 时设置
    "max_bytes": 10 * 1024 * 1024,  # 10MB
    "backup_count": 5,
    "format": "%(asctime)s - %(name)s - %(levelname)s - [%(module)s:%(lineno)d] - %(message)s",
    "date_format": "%Y-%m-%d %H:%M:%S",
    "console_output": True,
    "file_output": False,
}

# 已创建的logger缓存
_loggers: Dict[str, logging.Logger] = {}


def setup_logging(
    log_dir: Optional[Path] = None,
    level: str = "INFO",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    console_output: bool = True,
    file_output: bool = False,
    format_string: Optional[str] = None,
) -> None:
    """
    配置日志系统

    Args:
        log_dir: 日志文件目录，为None时不写文件
        level: 日志级别 (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        max_bytes: 单个日志文件最大大小（字节）
        backup_count: 保留的备份文件数量
        console_output: 是否输出到控制台
        file_output: 是否输出到文件
        format_string: 自定义日志格式
    """
    _LOG_CONFIG["level"] = level.upper()
    _LOG_CONFIG["max_bytes"] = max_bytes
    _LOG_CONFIG["backup_count"] = backup_count
    _LOG_CONFIG["console_output"] = console_output
    _LOG_CONFIG["file_output"] = file_output and log_dir is not None
    if format_string:
        _LOG_CONFIG["format"] = format_string

    _LOG_CONFIG["log_dir"] = Path(log_dir) if log_dir is not None else None

    if _LOG_CONFIG["file_output"]:
        _LOG_CONFIG["log_dir"].mkdir(parents=True, exist_ok=True)

    # 更新所有已存在的logger
    for name, logger in _loggers.items():
        _configure_logger(logger, name)

    root_logger = get_logger("logger_setup")
    root_logger.info(f"Logging system configured: level={level}, log_dir={log_dir}")


def _configure_logger(logger: logging.Logger, name: str) -> None:
    """配置单个logger实例"""
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []
    logger.setLevel(getattr(logging, _LOG_CONFIG["level"], logging.INFO))

    formatter = logging.Formatter(
        _LOG_CONFIG["format"],
        datefmt=_LOG_CONFIG["date_format"]
    )

    # 控制台输出
    if _LOG_CONFIG["console_output"]:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    # 文件输出
    if _LOG_CONFIG["file_output"] and _LOG_CONFIG["log_dir"]:
        log_file = _LOG_CONFIG["log_dir"] / f"{name}.log"
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=_LOG_CONFIG["max_bytes"],
            backupCount=_LOG_CONFIG["backup_count"],
            encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        # 同时写入到统一日志文件
        unified_log = _LOG_CONFIG["log_dir"] / "devmemory.log"
        unified_handler = logging.handlers.RotatingFileHandler(
            unified_log,
            maxBytes=_LOG_CONFIG["max_bytes"],
            backupCount=_LOG_CONFIG["backup_count"],
            encoding="utf-8"
        )
        unified_handler.setFormatter(formatter)
        logger.addHandler(unified_handler)


def get_logger(name: str) -> logging.Logger:
    """
    获取或创建一个logger实例

    Args:
        name: logger名称，建议使用模块名（如 "kg_storage", "kg_extractor"）

    Returns:
        配置好的logger实例
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(f"devmemory.{name}")
    _configure_logger(logger, name)
    _loggers[name] = logger
    return logger


def init_logging_from_config(data_path: Optional[Path] = None) -> None:
    """
    从配置管理器初始化日志系统

    Args:
        data_path: 数据目录；开启文件日志时写入 ``data_path/logs``
    """
    from devmemory.core.config_manager import get_config_manager

    cfg = get_config_manager()
    level = cfg.get("log.level")
    file_output = bool(cfg.get("log.file_output")) and data_path is not None
    log_dir = Path(data_path) / "logs" if file_output else None

    setup_logging(
        log_dir=log_dir,
        level=level,
        max_bytes=int(cfg.get("log.max_file_size")) * 1024 * 1024,  # MB to bytes
        backup_count=cfg.get("log.backup_count"),
        console_output=cfg.get("log.console_output"),
        file_output=file_output,
    )

    logger = get_logger("init")
    logger.info(f"Logging initialized from config: level={level}, log_dir={log_dir}")


__all__ = [
    "get_logger",
    "setup_logging",
    "init_logging_from_config",
]
