"""
配置管理器 - 统一配置访问接口

负责：
1. 合并用户配置（dict / YAML 文件）和默认配置
2. 提供点号键的配置访问 API（如 ``extraction.trigger_bonus``）
"""

import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from devmemory.core.defaults import get_default
from devmemory.utils.logger import get_logger

logger = get_logger("config_manager")


class ConfigManager:
    """配置管理器

    统一管理用户配置和默认配置的访问。
    线程安全：对 _cache 和 _user_config 的读写均通过锁保护。
    """

    # 默认配置缓存 TTL（秒），可通过构造参数覆盖
    DEFAULT_CACHE_TTL: float = 10.0

    def __init__(self, user_config: Optional[Dict[str, Any]] = None, *, cache_ttl: Optional[float] = None):
        """
        Args:
            user_config: 嵌套字典形式的用户配置
            cache_ttl: 配置缓存 TTL（秒），None 使用默认值
        """
        self._lock = threading.Lock()
        self._user_config = user_config
        self._cache: Dict[str, Tuple[Any, float]] = {}  # key -> (value, expire_time)
        self._cache_ttl: float = cache_ttl if cache_ttl is not None else self.DEFAULT_CACHE_TTL

    def set_user_config(self, config: Optional[Dict[str, Any]]) -> None:
        """设置用户配置（线程安全）"""
        with self._lock:
            self._user_config = config
            self._cache.clear()

    def invalidate_cache(self, key: Optional[str] = None) -> None:
        """主动失效配置缓存

        Args:
            key: 特定的配置键，为 None 则清除所有缓存
        """
        with self._lock:
            if key is None:
                self._cache.clear()
            else:
                self._cache.pop(key, None)

    def get(self, key: str, default: Any = None) -> Any:
        """获取配置值（线程安全，带 TTL 缓存）

        字典类型的默认值（如 ``extraction.min_confidence``）会与用户配置
        的同名字典合并，用户只需覆盖其中的部分键。

        Args:
            key: 配置键，格式如 "extraction.trigger_bonus"
            default: 用户配置和内置默认值都缺失时的回退值
        """
        now = time.monotonic()
        with self._lock:
            if key in self._cache:
                cached_value, expire_at = self._cache[key]
                if now < expire_at:
                    return cached_value
                del self._cache[key]

            value = self._get_value(key, default)
            self._cache[key] = (value, now + self._cache_ttl)
            return value

    def _get_value(self, key: str, default: Any = None) -> Any:
        """内部获取配置值"""
        user_value = self._get_from_user_config(key)

        builtin = None
        if '.' in key:
            section, attr = key.split('.', 1)
            builtin = get_default(section, attr)

        if isinstance(builtin, dict):
            merged = dict(builtin)
            if isinstance(user_value, dict):
                merged.update(user_value)
            return merged
        if user_value is not None:
            return user_value
        if builtin is not None:
            return builtin
        return default

    def _get_from_user_config(self, key: str) -> Any:
        """从用户配置获取值"""
        if self._user_config is None:
            return None

        value: Any = self._user_config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return None
        return value

    # 便捷访问方法
    @property
    def log_level(self) -> str:
        return self.get("log.level", "INFO")

    @property
    def max_depth(self) -> int:
        return self.get("traversal.max_depth", 3)

    @property
    def db_name(self) -> str:
        return self.get("storage.db_name", "knowledge_graph.db")


def load_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    """从 YAML 文件读取用户配置

    文件不存在或格式错误时记录日志并返回空字典，回退到内置默认值。
    """
    config_path = Path(path)
    if not config_path.exists():
        logger.info(f"Config file not found, using built-in defaults: {config_path}")
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config file {config_path}: {e}")
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Config file {config_path} is not a mapping, ignored")
        return {}
    logger.info(f"Loaded config file: {config_path}")
    return data


# 全局配置管理器
_config_manager: Optional[ConfigManager] = None
_manager_lock = threading.Lock()


def get_config_manager() -> ConfigManager:
    """获取全局配置管理器（线程安全）"""
    global _config_manager
    with _manager_lock:
        if _config_manager is None:
            _config_manager = ConfigManager()
        return _config_manager


def init_config_manager(user_config: Union[Dict[str, Any], str, Path, None] = None) -> ConfigManager:
    """初始化全局配置管理器

    Args:
        user_config: 嵌套字典，或 YAML 配置文件路径

    Returns:
        配置管理器实例
    """
    global _config_manager
    if isinstance(user_config, (str, Path)):
        user_config = load_config_file(user_config)
    with _manager_lock:
        _config_manager = ConfigManager(user_config)
        return _config_manager


def reset_config_manager() -> None:
    """重置配置管理器（主要用于测试）"""
    global _config_manager
    with _manager_lock:
        _config_manager = None
