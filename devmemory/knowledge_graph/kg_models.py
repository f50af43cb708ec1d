"""
知识图谱数据模型

定义实体、关系、搜索结果和路径数据结构。
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class EntityType(str, Enum):
    """实体类型"""
    PERSON = "person"
    PROJECT = "project"
    TECHNOLOGY = "technology"
    CONCEPT = "concept"
    ORGANIZATION = "organization"
    FILE = "file"
    REPOSITORY = "repository"
    API = "api"
    DATABASE = "database"
    SERVICE = "service"
    LOCATION = "location"
    SITE = "site"                # 知识站点（SharePoint / Wiki）
    DOCUMENT = "document"


class RelationType(str, Enum):
    """关系类型"""
    WORKS_ON = "works_on"
    CREATED_BY = "created_by"
    DEPENDS_ON = "depends_on"
    RELATED_TO = "related_to"
    BELONGS_TO = "belongs_to"
    IMPLEMENTS = "implements"
    USES = "uses"
    CALLS = "calls"
    EXTENDS = "extends"
    CONTAINS = "contains"
    MANAGES = "manages"
    COLLABORATES_WITH = "collaborates_with"


class RelationDirection(str, Enum):
    """查询实体关系时的方向"""
    INCOMING = "incoming"
    OUTGOING = "outgoing"
    BOTH = "both"


def _parse_time(value: Any) -> datetime:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    if isinstance(value, datetime):
        return value
    return datetime.now()


def _merge_ids(current: List[str], extra: List[str]) -> List[str]:
    """有序并集"""
    merged = list(current)
    seen = set(merged)
    for item in extra:
        if item not in seen:
            seen.add(item)
            merged.append(item)
    return merged


def entity_key(name: str, entity_type: EntityType) -> Tuple[str, str]:
    """实体去重键：(小写名称, 类型)"""
    return name.strip().lower(), EntityType(entity_type).value


@dataclass
class Entity:
    """知识图谱实体"""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""                           # 清洗后的显示名称
    entity_type: EntityType = EntityType.CONCEPT
    properties: Dict[str, Any] = field(default_factory=dict)
    observations: List[str] = field(default_factory=list)  # 只追加，不重复
    confidence: float = 0.5
    source_record_ids: List[str] = field(default_factory=list)
    created_time: datetime = field(default_factory=datetime.now)
    updated_time: datetime = field(default_factory=datetime.now)

    @property
    def dedup_key(self) -> Tuple[str, str]:
        return entity_key(self.name, self.entity_type)

    def add_observation(self, observation: str) -> bool:
        """追加观察记录，已存在时返回 False"""
        if not observation or observation in self.observations:
            return False
        self.observations.append(observation)
        return True

    def add_sources(self, record_ids: List[str]) -> None:
        self.source_record_ids = _merge_ids(self.source_record_ids, record_ids)

    def to_dict(self) -> Dict[str, Any]:
        """序列化为数据库行"""
        return {
            "id": self.id,
            "name": self.name,
            "name_key": self.dedup_key[0],
            "entity_type": self.entity_type.value,
            "properties": json.dumps(self.properties, ensure_ascii=False),
            "observations": json.dumps(self.observations, ensure_ascii=False),
            "confidence": self.confidence,
            "source_record_ids": json.dumps(self.source_record_ids, ensure_ascii=False),
            "created_time": self.created_time.isoformat(),
            "updated_time": self.updated_time.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Entity":
        """从数据库行恢复"""
        return cls(
            id=row["id"],
            name=row["name"],
            entity_type=EntityType(row.get("entity_type", "concept")),
            properties=json.loads(row.get("properties") or "{}"),
            observations=json.loads(row.get("observations") or "[]"),
            confidence=row.get("confidence", 0.5),
            source_record_ids=json.loads(row.get("source_record_ids") or "[]"),
            created_time=_parse_time(row.get("created_time")),
            updated_time=_parse_time(row.get("updated_time")),
        )

    def to_public_dict(self) -> Dict[str, Any]:
        """对外展示用字典（列表字段不做 JSON 编码）"""
        return {
            "id": self.id,
            "name": self.name,
            "entity_type": self.entity_type.value,
            "properties": dict(self.properties),
            "observations": list(self.observations),
            "confidence": self.confidence,
            "source_record_ids": list(self.source_record_ids),
            "created_time": self.created_time.isoformat(),
            "updated_time": self.updated_time.isoformat(),
        }


@dataclass
class Relationship:
    """知识图谱关系（有向边）"""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    from_entity_id: str = ""
    to_entity_id: str = ""
    relation_type: RelationType = RelationType.RELATED_TO
    properties: Dict[str, Any] = field(default_factory=dict)
    strength: float = 0.5
    confidence: float = 0.5
    source_record_ids: List[str] = field(default_factory=list)
    created_time: datetime = field(default_factory=datetime.now)
    updated_time: datetime = field(default_factory=datetime.now)

    @property
    def triple_key(self) -> Tuple[str, str, str]:
        return self.from_entity_id, self.to_entity_id, RelationType(self.relation_type).value

    def add_sources(self, record_ids: List[str]) -> None:
        self.source_record_ids = _merge_ids(self.source_record_ids, record_ids)

    def other_end(self, entity_id: str) -> str:
        """给定一端返回另一端"""
        return self.to_entity_id if entity_id == self.from_entity_id else self.from_entity_id

    def to_dict(self) -> Dict[str, Any]:
        """序列化为数据库行"""
        return {
            "id": self.id,
            "from_entity_id": self.from_entity_id,
            "to_entity_id": self.to_entity_id,
            "relation_type": self.relation_type.value,
            "properties": json.dumps(self.properties, ensure_ascii=False),
            "strength": self.strength,
            "confidence": self.confidence,
            "source_record_ids": json.dumps(self.source_record_ids, ensure_ascii=False),
            "created_time": self.created_time.isoformat(),
            "updated_time": self.updated_time.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Relationship":
        """从数据库行恢复"""
        return cls(
            id=row["id"],
            from_entity_id=row["from_entity_id"],
            to_entity_id=row["to_entity_id"],
            relation_type=RelationType(row.get("relation_type", "related_to")),
            properties=json.loads(row.get("properties") or "{}"),
            strength=row.get("strength", 0.5),
            confidence=row.get("confidence", 0.5),
            source_record_ids=json.loads(row.get("source_record_ids") or "[]"),
            created_time=_parse_time(row.get("created_time")),
            updated_time=_parse_time(row.get("updated_time")),
        )

    def __repr__(self) -> str:
        return f"({self.from_entity_id} --[{self.relation_type.value}]--> {self.to_entity_id})"


@dataclass
class EntitySearchResult:
    """实体搜索结果"""
    entity: Entity
    relevance_score: float = 0.0
    relationship_count: int = 0


@dataclass
class RelationshipPath:
    """两个实体之间的路径"""
    entities: List[Entity] = field(default_factory=list)
    relationships: List[Relationship] = field(default_factory=list)
    path_strength: float = 1.0               # 各边强度之积
    path_length: int = 0                     # 跳数

    def to_text(self) -> str:
        """将路径转为可读文本，保留每条边存储时的方向"""
        if not self.entities:
            return ""
        parts = [self.entities[0].name]
        for i, rel in enumerate(self.relationships):
            prev = self.entities[i]
            nxt = self.entities[i + 1]
            if rel.from_entity_id == prev.id:
                parts.append(f" --[{rel.relation_type.value}]--> ")
            else:
                parts.append(f" <--[{rel.relation_type.value}]-- ")
            parts.append(nxt.name)
        return "".join(parts)


@dataclass
class RecordReference:
    """图谱检索命中的记录引用（供混合检索使用）"""
    record_id: str
    score: float = 0.0
    connected_entities: List[str] = field(default_factory=list)
    explanations: List[str] = field(default_factory=list)

    def add_entity(self, entity: Entity, score: float) -> None:
        self.score = max(self.score, score)
        if entity.name not in self.connected_entities:
            self.connected_entities.append(entity.name)
        explanation = f"Found entity: {entity.name} ({entity.entity_type.value})"
        if explanation not in self.explanations:
            self.explanations.append(explanation)


def coerce_entity_type(value: Any) -> Optional[EntityType]:
    """宽松解析实体类型，非法值返回 None"""
    if value is None:
        return None
    if isinstance(value, EntityType):
        return value
    try:
        return EntityType(str(value).strip().lower())
    except ValueError:
        return None
