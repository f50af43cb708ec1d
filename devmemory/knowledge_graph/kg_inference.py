"""
关系推断器

对同一条记录中解析出的实体两两配对，提出候选关系：

- 策略 A（共现原型）：每种关系有一组触发词；触发词所在子句里同时出现两个实体名时
  提出该关系。方向由原型的 (from_type, to_type) 静态表决定，
  只有一个方向合法时不看词序，两个方向都合法时按文本先后。
- 策略 B（类型先验）：按配置中的实体类型对表（relationship.type_priors）直接提出弱关系。

同一次推断内按 (from, to, type) 去重，策略 A 先执行，文本证据优先。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from itertools import combinations
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Pattern, Tuple

from devmemory.core.config_manager import ConfigManager, get_config_manager
from devmemory.knowledge_graph.kg_errors import PersistenceError
from devmemory.knowledge_graph.kg_models import Entity, EntityType, Relationship, RelationType
from devmemory.knowledge_graph.kg_patterns import name_regex
from devmemory.knowledge_graph.kg_storage import KGStorage
from devmemory.models.record import Record
from devmemory.utils.logger import get_logger

logger = get_logger("kg_inference")

# 子句边界：句末标点（后跟空白或结尾）或换行
_BOUNDARY_RE = re.compile(r"[.!?](?=\s|$)|\n")
_EVIDENCE_MAX = 200

T = EntityType

# ── 原型方向表用到的类型组 ──
_ARTIFACTS = (T.PROJECT, T.FILE, T.REPOSITORY, T.API, T.SERVICE, T.DOCUMENT,
              T.TECHNOLOGY, T.CONCEPT, T.DATABASE, T.SITE)
_CREATORS = (T.PERSON, T.ORGANIZATION)
_CONSUMERS = (T.PROJECT, T.SERVICE, T.API, T.REPOSITORY, T.FILE, T.PERSON, T.ORGANIZATION)
_CONSUMED = (T.TECHNOLOGY, T.DATABASE, T.API, T.SERVICE)
_DEPENDENTS = (T.PROJECT, T.SERVICE, T.API, T.REPOSITORY, T.FILE, T.TECHNOLOGY)
_DEPENDENCIES = (T.TECHNOLOGY, T.DATABASE, T.SERVICE, T.API, T.PROJECT)


def _cross(sources: Iterable[EntityType], targets: Iterable[EntityType]) -> FrozenSet[Tuple[EntityType, EntityType]]:
    targets = tuple(targets)
    return frozenset((s, t) for s in sources for t in targets)


def _same(types: Iterable[EntityType]) -> FrozenSet[Tuple[EntityType, EntityType]]:
    return frozenset((t, t) for t in types)


def _triggers(*words: str) -> Pattern[str]:
    return re.compile(r"\b(?:" + "|".join(words) + r")\b", re.IGNORECASE)


@dataclass(frozen=True)
class RelationArchetype:
    """共现关系原型"""
    relation_type: RelationType
    triggers: Pattern[str]
    directions: FrozenSet[Tuple[EntityType, EntityType]]


ARCHETYPES: List[RelationArchetype] = [
    RelationArchetype(
        RelationType.CREATED_BY,
        _triggers(r"created", r"creates", r"authored", r"wrote", r"written by", r"developed",
                  r"designed", r"built by", r"built", r"introduced", r"set up"),
        _cross(_ARTIFACTS, _CREATORS),
    ),
    RelationArchetype(
        RelationType.WORKS_ON,
        _triggers(r"works on", r"working on", r"worked on", r"contributes to",
                  r"contributing to", r"assigned to", r"on the team"),
        _cross([T.PERSON], [T.PROJECT, T.REPOSITORY, T.SERVICE, T.API, T.DOCUMENT]),
    ),
    RelationArchetype(
        RelationType.DEPENDS_ON,
        _triggers(r"depends on", r"dependent on", r"dependency", r"dependencies", r"requires",
                  r"relies on", r"needs"),
        _cross(_DEPENDENTS, _DEPENDENCIES),
    ),
    RelationArchetype(
        RelationType.IMPLEMENTS,
        _triggers(r"implements", r"implemented", r"implementing", r"implementation of"),
        _cross([T.FILE, T.SERVICE, T.API, T.PROJECT, T.REPOSITORY, T.TECHNOLOGY],
               [T.CONCEPT, T.API]),
    ),
    RelationArchetype(
        RelationType.USES,
        _triggers(r"uses", r"use", r"using", r"used", r"built with", r"powered by",
                  r"leverages", r"on top of", r"backed by", r"stored in", r"runs on", r"via"),
        _cross(_CONSUMERS, _CONSUMED),
    ),
    RelationArchetype(
        RelationType.CALLS,
        _triggers(r"calls", r"calling", r"called", r"invokes", r"invoking", r"requests",
                  r"hits", r"sends requests to", r"queries"),
        _cross([T.SERVICE, T.API, T.FILE, T.PROJECT], [T.API, T.SERVICE, T.DATABASE]),
    ),
    RelationArchetype(
        RelationType.BELONGS_TO,
        _triggers(r"belongs to", r"belonging to", r"part of", r"owned by", r"member of",
                  r"inside", r"within", r"located in", r"under"),
        frozenset([
            (T.FILE, T.PROJECT), (T.FILE, T.REPOSITORY), (T.PERSON, T.ORGANIZATION),
            (T.PROJECT, T.ORGANIZATION), (T.REPOSITORY, T.ORGANIZATION),
            (T.SERVICE, T.PROJECT), (T.API, T.SERVICE), (T.DOCUMENT, T.SITE),
            (T.DOCUMENT, T.PROJECT), (T.SERVICE, T.ORGANIZATION), (T.ORGANIZATION, T.LOCATION),
            (T.PERSON, T.LOCATION),
        ]),
    ),
    RelationArchetype(
        RelationType.COLLABORATES_WITH,
        _triggers(r"collaborat\w*", r"together with", r"alongside", r"paired with",
                  r"worked with", r"teamed up with", r"and"),
        _same([T.PERSON, T.ORGANIZATION]),
    ),
    RelationArchetype(
        RelationType.EXTENDS,
        _triggers(r"extends", r"extending", r"inherits from", r"subclass of", r"based on",
                  r"fork of", r"forked from", r"wraps", r"plugin for"),
        _same([T.TECHNOLOGY, T.FILE, T.REPOSITORY, T.PROJECT, T.API, T.CONCEPT])
        | frozenset([(T.TECHNOLOGY, T.PROJECT), (T.PROJECT, T.TECHNOLOGY)]),
    ),
    RelationArchetype(
        RelationType.MANAGES,
        _triggers(r"manages", r"managed by", r"managing", r"leads", r"led by", r"owns",
                  r"oversees", r"in charge of", r"responsible for"),
        _cross([T.PERSON], [T.PROJECT, T.SERVICE, T.REPOSITORY, T.PERSON, T.DATABASE])
        | _cross([T.ORGANIZATION], [T.PROJECT, T.SERVICE, T.REPOSITORY]),
    ),
]


TypePriors = Dict[Tuple[EntityType, EntityType], Tuple[RelationType, float, float]]


def load_type_priors(raw: Optional[Dict[str, Any]]) -> TypePriors:
    """解析 relationship.type_priors 配置

    键为 "from_type->to_type"，值为 [关系, 强度, 置信度]；值为 null 表示关闭该先验。
    无法解析的条目记录警告后跳过。
    """
    priors: TypePriors = {}
    for key, value in (raw or {}).items():
        if value is None:
            continue
        try:
            src, sep, dst = str(key).partition("->")
            if not sep:
                raise ValueError("expected 'from_type->to_type'")
            relation, strength, confidence = value
            priors[(EntityType(src.strip()), EntityType(dst.strip()))] = (
                RelationType(relation), float(strength), float(confidence)
            )
        except (TypeError, ValueError) as e:
            logger.warning(f"Invalid type prior skipped: {key}={value!r}: {e}")
    return priors


def _clause_spans(text: str, triggers: Pattern[str], radius: int) -> List[Tuple[int, int]]:
    """触发词所在子句的 [start, end)，向两侧各不超过 radius 个字符"""
    spans: List[Tuple[int, int]] = []
    for m in triggers.finditer(text):
        lo = max(0, m.start() - radius)
        hi = min(len(text), m.end() + radius)
        for b in _BOUNDARY_RE.finditer(text, lo, m.start()):
            lo = b.end()
        b = _BOUNDARY_RE.search(text, m.end(), hi)
        if b:
            hi = b.start()
        if not spans or spans[-1] != (lo, hi):
            spans.append((lo, hi))
    return spans


class RelationshipInferrer:
    """关系推断器"""

    def __init__(self, storage: Optional[KGStorage] = None, config: Optional[ConfigManager] = None) -> None:
        self.storage = storage
        self._config = config

    @property
    def config(self) -> ConfigManager:
        return self._config or get_config_manager()

    def propose(self, record: Record, entities: List[Entity]) -> List[Relationship]:
        """为一条记录的实体提出候选关系（不写入存储）"""
        cfg = self.config
        max_entities = cfg.get("relationship.max_entities_per_record")
        unique: Dict[str, Entity] = {}
        for e in sorted(entities, key=lambda x: x.confidence, reverse=True):
            unique.setdefault(e.id, e)
        pool = list(unique.values())[:max_entities]
        if len(pool) < 2:
            return []

        proposals: Dict[Tuple[str, str, str], Relationship] = {}
        self._propose_from_archetypes(record, pool, proposals)
        if cfg.get("relationship.enable_type_priors"):
            priors = load_type_priors(cfg.get("relationship.type_priors"))
            self._propose_from_priors(record, pool, priors, proposals)

        logger.debug(
            f"Proposed {len(proposals)} relationships for record {record.id} "
            f"from {len(pool)} entities"
        )
        return list(proposals.values())

    async def infer_and_store(self, record: Record, entities: List[Entity]) -> List[Relationship]:
        """提出候选关系并写入存储，返回新建或合并后的关系

        单条关系写入失败只记录警告，不影响其它关系。
        """
        if self.storage is None:
            raise PersistenceError("RelationshipInferrer has no storage attached")
        stored: List[Relationship] = []
        for rel in self.propose(record, entities):
            try:
                saved, _created = await self.storage.upsert_relationship(rel)
            except PersistenceError as e:
                logger.warning(f"Failed to store relationship {rel!r}: {e}")
                continue
            stored.append(saved)
        return stored

    # ================================================================
    # 策略 A：共现原型
    # ================================================================

    def _propose_from_archetypes(
        self,
        record: Record,
        entities: List[Entity],
        proposals: Dict[Tuple[str, str, str], Relationship],
    ) -> None:
        cfg = self.config
        text = record.text
        radius = cfg.get("relationship.span_radius")
        confidence = cfg.get("relationship.pattern_confidence")
        strengths = cfg.get("relationship.archetype_strength")
        regexes = {e.id: name_regex(e.name) for e in entities}

        for archetype in ARCHETYPES:
            strength = strengths.get(archetype.relation_type.value, 0.5)
            for lo, hi in _clause_spans(text, archetype.triggers, radius):
                span = text[lo:hi]
                # 子句内出现的实体及其首次出现位置
                present: List[Tuple[int, Entity]] = []
                for e in entities:
                    m = regexes[e.id].search(span)
                    if m:
                        present.append((m.start(), e))
                if len(present) < 2:
                    continue
                present.sort(key=lambda x: x[0])
                for (_, first), (_, second) in combinations(present, 2):
                    oriented = self._orient(archetype, first, second)
                    if oriented is None:
                        continue
                    src, dst = oriented
                    self._add(proposals, Relationship(
                        from_entity_id=src.id,
                        to_entity_id=dst.id,
                        relation_type=archetype.relation_type,
                        properties={
                            "inference_method": "pattern",
                            "archetype": archetype.relation_type.value,
                            "source_record_id": record.id,
                            "evidence": span.strip()[:_EVIDENCE_MAX],
                        },
                        strength=strength,
                        confidence=confidence,
                        source_record_ids=[record.id],
                    ))

    @staticmethod
    def _orient(
        archetype: RelationArchetype, first: Entity, second: Entity
    ) -> Optional[Tuple[Entity, Entity]]:
        """按原型方向表确定 (from, to)；first 在文本中先出现"""
        if first.id == second.id:
            return None
        fwd = (first.entity_type, second.entity_type) in archetype.directions
        rev = (second.entity_type, first.entity_type) in archetype.directions
        if fwd:
            return first, second
        if rev:
            return second, first
        return None

    # ================================================================
    # 策略 B：类型先验
    # ================================================================

    @staticmethod
    def _propose_from_priors(
        record: Record,
        entities: List[Entity],
        priors: TypePriors,
        proposals: Dict[Tuple[str, str, str], Relationship],
    ) -> None:
        for a, b in combinations(entities, 2):
            if a.id == b.id:
                continue
            if (a.entity_type, b.entity_type) in priors:
                src, dst = a, b
            elif (b.entity_type, a.entity_type) in priors:
                src, dst = b, a
            else:
                continue
            relation, strength, confidence = priors[(src.entity_type, dst.entity_type)]
            RelationshipInferrer._add(proposals, Relationship(
                from_entity_id=src.id,
                to_entity_id=dst.id,
                relation_type=relation,
                properties={
                    "inference_method": "type_prior",
                    "archetype": "type_prior",
                    "source_record_id": record.id,
                },
                strength=strength,
                confidence=confidence,
                source_record_ids=[record.id],
            ))

    @staticmethod
    def _add(proposals: Dict[Tuple[str, str, str], Relationship], rel: Relationship) -> None:
        """同一三元组只保留先提出的那条"""
        proposals.setdefault(rel.triple_key, rel)
