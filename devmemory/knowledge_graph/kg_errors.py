"""
知识图谱错误类型

- ExtractionError：单个模式或候选实体处理失败，提取器记录后跳过
- PersistenceError：存储层失败，由 KnowledgeGraphManager 捕获并降级

找不到实体/路径不是错误，返回 None 或空列表；校验不通过的候选实体直接丢弃。
"""


class KnowledgeGraphError(Exception):
    """知识图谱错误基类"""


class ExtractionError(KnowledgeGraphError):
    """实体提取失败"""

    def __init__(self, pattern_label: str, message: str) -> None:
        super().__init__(f"[{pattern_label}] {message}")
        self.pattern_label = pattern_label


class PersistenceError(KnowledgeGraphError):
    """存储读写失败"""
