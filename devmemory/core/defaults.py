"""
默认配置文件 - 存放知识图谱引擎的全部可调参数

阈值、加分项、关系强度都按实体/关系类型组织，
用户配置（dict 或 YAML 文件）会覆盖这里的默认值。
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List


# ========== 实体提取配置 ==========

@dataclass
class ExtractionDefaults:
    """实体提取与置信度评分"""
    base_confidence: float = 0.5
    max_confidence: float = 0.95
    # 上下文触发词：匹配位置前后 trigger_window 个字符内每出现一个加分
    trigger_bonus: float = 0.1
    trigger_window: int = 100
    title_bonus: float = 0.2
    # 正文重复出现：每多出现一次加分，总加分有上限
    repeat_bonus: float = 0.05
    repeat_bonus_cap: float = 0.2
    record_kind_bonus: float = 0.15
    metadata_hint_bonus: float = 0.2
    tag_hint_bonus: float = 0.1
    capitalization_bonus: float = 0.1
    # 按实体类型的最低置信度，未列出的类型使用 default
    min_confidence: Dict[str, float] = field(default_factory=lambda: {
        "default": 0.5,
        "file": 0.6,
        "document": 0.6,
        "concept": 0.4,
        "person": 0.55,
    })
    max_text_length: int = 20000
    time_budget_seconds: float = 2.0
    # 用户自定义模式 {entity_type: [regex, ...]}
    custom_patterns: Dict[str, List[str]] = field(default_factory=dict)


# ========== 关系推断配置 ==========

@dataclass
class RelationshipDefaults:
    """关系推断"""
    pattern_confidence: float = 0.6
    # 共现原型的关系强度
    archetype_strength: Dict[str, float] = field(default_factory=lambda: {
        "created_by": 0.8,
        "depends_on": 0.7,
        "belongs_to": 0.9,
        "works_on": 0.8,
        "implements": 0.7,
        "uses": 0.6,
        "calls": 0.6,
        "collaborates_with": 0.7,
        "extends": 0.7,
        "manages": 0.8,
    })
    span_radius: int = 120
    enable_type_priors: bool = True
    # 类型先验 {"from_type->to_type": [关系, 强度, 置信度]}，值为 None 关闭该条
    type_priors: Dict[str, Any] = field(default_factory=lambda: {
        "project->technology": ["uses", 0.5, 0.4],
        "project->database": ["uses", 0.5, 0.4],
        "project->file": ["contains", 0.5, 0.4],
        "project->organization": ["belongs_to", 0.4, 0.3],
        "person->organization": ["belongs_to", 0.5, 0.4],
        "person->project": ["works_on", 0.4, 0.3],
        "api->database": ["uses", 0.5, 0.4],
        "service->database": ["uses", 0.5, 0.4],
        "service->technology": ["uses", 0.4, 0.3],
        "service->api": ["contains", 0.5, 0.4],
        "repository->file": ["contains", 0.6, 0.5],
        "repository->technology": ["uses", 0.4, 0.3],
        "concept->technology": ["related_to", 0.4, 0.3],
        "document->project": ["belongs_to", 0.4, 0.3],
        "site->document": ["contains", 0.5, 0.4],
    })
    max_entities_per_record: int = 30


# ========== 图遍历配置 ==========

@dataclass
class TraversalDefaults:
    """路径搜索"""
    max_depth: int = 3
    max_results: int = 10
    max_expansions: int = 5000
    timeout_seconds: float = 2.0
    direction: str = "outgoing"       # outgoing：只沿存储方向；both：双向


# ========== 存储配置 ==========

@dataclass
class StorageDefaults:
    """SQLite 存储"""
    db_name: str = "knowledge_graph.db"
    busy_timeout: float = 5.0         # 等待其它连接释放写锁的秒数
    search_limit: int = 20
    type_list_limit: int = 50


# ========== 日志配置 ==========

@dataclass
class LogDefaults:
    """日志"""
    level: str = "INFO"
    max_file_size: int = 10           # MB
    backup_count: int = 5
    console_output: bool = True
    file_output: bool = False


@dataclass
class Defaults:
    """所有默认配置的聚合"""
    extraction: ExtractionDefaults = field(default_factory=ExtractionDefaults)
    relationship: RelationshipDefaults = field(default_factory=RelationshipDefaults)
    traversal: TraversalDefaults = field(default_factory=TraversalDefaults)
    storage: StorageDefaults = field(default_factory=StorageDefaults)
    log: LogDefaults = field(default_factory=LogDefaults)


DEFAULTS = Defaults()


def get_default(section: str, key: str, fallback: Any = None) -> Any:
    """获取默认配置值

    Args:
        section: 配置区块（如 "extraction", "traversal"）
        key: 配置键，可以继续用点号访问字典项（如 "min_confidence.file"）
        fallback: 如果找不到时的回退值

    Returns:
        配置值
    """
    section_obj = getattr(DEFAULTS, section, None)
    if section_obj is None:
        return fallback
    attr, _, sub_key = key.partition(".")
    value = getattr(section_obj, attr, None)
    if value is None:
        return fallback
    if sub_key:
        if isinstance(value, dict):
            return value.get(sub_key, fallback)
        return fallback
    return value


def get_defaults_dict() -> Dict[str, Dict[str, Any]]:
    """获取所有默认配置为嵌套字典"""
    return asdict(DEFAULTS)
