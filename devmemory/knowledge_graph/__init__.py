"""
知识图谱模块 — 基于 SQLite + FTS5 的开发者知识图谱

从开发者记录中提取实体、推断关系，并提供搜索和路径查询。
架构概述：
- kg_models.py:     Entity / Relationship / RelationshipPath 数据模型
- kg_patterns.py:   实体规则表、名称清洗与校验
- kg_extractor.py:  规则实体提取器（上下文置信度评分）
- kg_storage.py:    SQLite + FTS5 持久化层（实体解析、关系去重）
- kg_inference.py:  关系推断（共现原型 + 类型先验）
- kg_traversal.py:  受限 BFS 路径搜索
- kg_statistics.py: 图谱统计
- kg_manager.py:    对外查询接口
"""

from devmemory.knowledge_graph.kg_models import (
    Entity,
    EntitySearchResult,
    EntityType,
    RecordReference,
    RelationDirection,
    Relationship,
    RelationshipPath,
    RelationType,
)
from devmemory.knowledge_graph.kg_errors import (
    ExtractionError,
    KnowledgeGraphError,
    PersistenceError,
)
from devmemory.knowledge_graph.kg_storage import KGStorage
from devmemory.knowledge_graph.kg_extractor import EntityExtractor
from devmemory.knowledge_graph.kg_inference import RelationshipInferrer
from devmemory.knowledge_graph.kg_traversal import PathFinder
from devmemory.knowledge_graph.kg_statistics import GraphStatistics, KGStatisticsReporter
from devmemory.knowledge_graph.kg_manager import KnowledgeGraphManager

__all__ = [
    "Entity",
    "EntitySearchResult",
    "EntityType",
    "RecordReference",
    "RelationDirection",
    "Relationship",
    "RelationshipPath",
    "RelationType",
    "ExtractionError",
    "KnowledgeGraphError",
    "PersistenceError",
    "KGStorage",
    "EntityExtractor",
    "RelationshipInferrer",
    "PathFinder",
    "GraphStatistics",
    "KGStatisticsReporter",
    "KnowledgeGraphManager",
]
