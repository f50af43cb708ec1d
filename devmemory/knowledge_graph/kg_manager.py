"""
知识图谱管理器 — 封装 KGStorage / EntityExtractor / RelationshipInferrer / PathFinder

对外提供：
- 入库：extract_and_link_entities(record)，从记录中提取实体、解析去重、推断关系
- 查询：实体搜索、按类型/名称查找、实体关系、路径搜索、统计
- 手工维护：create_entity / create_relation
- 混合检索用的图谱检索：search_records(query)

存储层异常在这里转换为警告日志和降级结果，不会抛给调用方。
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from devmemory.core.config_manager import get_config_manager
from devmemory.knowledge_graph.kg_errors import KnowledgeGraphError, PersistenceError
from devmemory.knowledge_graph.kg_extractor import EntityExtractor
from devmemory.knowledge_graph.kg_inference import RelationshipInferrer
from devmemory.knowledge_graph.kg_models import (
    Entity,
    EntitySearchResult,
    EntityType,
    RecordReference,
    RelationDirection,
    Relationship,
    RelationshipPath,
    RelationType,
    coerce_entity_type,
)
from devmemory.knowledge_graph.kg_patterns import clean_common
from devmemory.knowledge_graph.kg_statistics import GraphStatistics, KGStatisticsReporter
from devmemory.knowledge_graph.kg_storage import MAX_ENTITY_CONFIDENCE, KGStorage
from devmemory.knowledge_graph.kg_traversal import PathFinder
from devmemory.models.record import Record
from devmemory.utils.logger import get_logger

logger = get_logger("kg_manager")


class KnowledgeGraphManager:
    """知识图谱管理器

    职责：
    1. 管理存储、提取器、推断器、路径搜索的生命周期
    2. 记录入库时驱动 提取 → 解析 → 关系推断
    3. 提供查询接口，存储失败时降级为空结果
    """

    def __init__(self, storage: Optional[KGStorage] = None) -> None:
        self._storage: Optional[KGStorage] = storage
        self._extractor = EntityExtractor()
        self._inferrer: Optional[RelationshipInferrer] = None
        self._path_finder: Optional[PathFinder] = None
        self._statistics: Optional[KGStatisticsReporter] = None

    # ── 属性 ──

    @property
    def storage(self) -> Optional[KGStorage]:
        return self._storage

    @property
    def extractor(self) -> EntityExtractor:
        return self._extractor

    @property
    def is_initialized(self) -> bool:
        return self._storage is not None and self._storage.is_open

    # ── 初始化 ──

    async def initialize(
        self,
        db_path: Optional[Path] = None,
        data_dir: Optional[Path] = None,
    ) -> None:
        """初始化存储及各组件

        Args:
            db_path: 数据库文件路径；为 None 时使用 data_dir / storage.db_name
            data_dir: 数据目录
        """
        if db_path is None:
            if data_dir is None:
                raise KnowledgeGraphError("Either db_path or data_dir is required")
            data_dir = Path(data_dir)
            data_dir.mkdir(parents=True, exist_ok=True)
            db_path = data_dir / get_config_manager().get("storage.db_name")

        if self._storage is None:
            self._storage = KGStorage(Path(db_path))
        await self._storage.initialize(Path(db_path))

        self._inferrer = RelationshipInferrer(self._storage)
        self._path_finder = PathFinder(self._storage)
        self._statistics = KGStatisticsReporter(self._storage)
        logger.info(f"KnowledgeGraphManager initialized: db={db_path}")

    async def close(self) -> None:
        """关闭资源"""
        if self._storage:
            await self._storage.close()

    async def health_check(self) -> bool:
        """存储可用时返回 True"""
        if not self.is_initialized:
            return False
        try:
            await self._storage.get_entity_count()
        except PersistenceError as e:
            logger.warning(f"Knowledge graph health check failed: {e}")
            return False
        return True

    # ── 入库 ──

    async def extract_and_link_entities(self, record: Union[Record, Dict[str, Any]]) -> List[Entity]:
        """从记录中提取实体并写入图谱，随后推断实体间关系

        不会抛出异常：任何失败都记录警告并返回已完成部分的结果。

        Returns:
            本次新建或更新的实体
        """
        if not self.is_initialized:
            logger.warning("Knowledge graph not initialized, skipping entity extraction")
            return []

        try:
            if isinstance(record, dict):
                record = Record.from_dict(record)
            candidates = self._extractor.extract(record)
        except Exception as e:
            logger.warning(f"Entity extraction failed: {e}")
            return []

        linked: List[Entity] = []
        for candidate in candidates:
            try:
                linked.append(await self._storage.upsert_entity(candidate))
            except PersistenceError as e:
                logger.warning(f"Failed to store entity '{candidate.name}' ({candidate.entity_type.value}): {e}")

        if len(linked) >= 2 and self._inferrer is not None:
            try:
                relationships = await self._inferrer.infer_and_store(record, linked)
                logger.debug(
                    f"Record {record.id}: {len(linked)} entities, "
                    f"{len(relationships)} relationships"
                )
            except Exception as e:
                logger.warning(f"Relationship inference failed for record {record.id}: {e}")

        return linked

    # ── 查询 ──

    async def search_entities(
        self,
        query: str,
        limit: Optional[int] = None,
        entity_type: Optional[Union[EntityType, str]] = None,
    ) -> List[EntitySearchResult]:
        """关键词搜索实体"""
        if not self.is_initialized:
            return []
        if limit is None:
            limit = get_config_manager().get("storage.search_limit")
        etype = coerce_entity_type(entity_type)
        if entity_type is not None and etype is None:
            return []
        try:
            return await self._storage.search_entities(query, limit, etype)
        except PersistenceError as e:
            logger.warning(f"Entity search failed: {e}")
            return []

    async def get_entity(self, entity_id: str) -> Optional[Entity]:
        if not self.is_initialized:
            return None
        try:
            return await self._storage.get_entity(entity_id)
        except PersistenceError as e:
            logger.warning(f"Failed to get entity {entity_id}: {e}")
            return None

    async def get_entities_by_type(
        self, entity_type: Union[EntityType, str], limit: Optional[int] = None
    ) -> List[Entity]:
        if not self.is_initialized:
            return []
        etype = coerce_entity_type(entity_type)
        if etype is None:
            return []
        if limit is None:
            limit = get_config_manager().get("storage.type_list_limit")
        try:
            return await self._storage.get_entities_by_type(etype, limit)
        except PersistenceError as e:
            logger.warning(f"Failed to list entities of type {etype.value}: {e}")
            return []

    async def find_entity_by_name(
        self, name: str, entity_type: Optional[Union[EntityType, str]] = None
    ) -> Optional[Entity]:
        if not self.is_initialized:
            return None
        etype = coerce_entity_type(entity_type)
        if entity_type is not None and etype is None:
            return None
        try:
            return await self._storage.find_entity_by_name(name, etype)
        except PersistenceError as e:
            logger.warning(f"Failed to find entity '{name}': {e}")
            return None

    async def get_entity_relationships(
        self,
        entity_id: str,
        direction: Union[RelationDirection, str] = RelationDirection.BOTH,
    ) -> List[Relationship]:
        if not self.is_initialized:
            return []
        try:
            return await self._storage.get_relationships(entity_id, RelationDirection(direction))
        except ValueError:
            logger.warning(f"Unknown relationship direction: {direction}")
            return []
        except PersistenceError as e:
            logger.warning(f"Failed to get relationships of {entity_id}: {e}")
            return []

    async def find_relationship_path(
        self,
        from_entity_id: str,
        to_entity_id: str,
        max_depth: Optional[int] = None,
        direction: Optional[Union[RelationDirection, str]] = None,
    ) -> List[RelationshipPath]:
        """查找两实体间的路径（默认最多 3 跳、10 条）

        默认只沿关系的存储方向从 from_entity_id 向外扩展；
        direction="both" 时反向的关系也可以走。
        """
        if not self.is_initialized or self._path_finder is None:
            return []
        try:
            return await self._path_finder.find_paths(
                from_entity_id, to_entity_id, max_depth, direction
            )
        except ValueError:
            logger.warning(f"Unknown path direction: {direction}")
            return []
        except PersistenceError as e:
            logger.warning(f"Path search failed: {e}")
            return []

    async def get_graph_statistics(self) -> GraphStatistics:
        if not self.is_initialized or self._statistics is None:
            return GraphStatistics()
        try:
            return await self._statistics.generate()
        except PersistenceError as e:
            logger.warning(f"Failed to compute graph statistics: {e}")
            return GraphStatistics()

    async def get_all_entities(self) -> List[Entity]:
        if not self.is_initialized:
            return []
        try:
            return await self._storage.get_all_entities()
        except PersistenceError as e:
            logger.warning(f"Failed to list entities: {e}")
            return []

    async def get_all_relationships(self) -> List[Relationship]:
        if not self.is_initialized:
            return []
        try:
            return await self._storage.get_all_relationships()
        except PersistenceError as e:
            logger.warning(f"Failed to list relationships: {e}")
            return []

    # ── 手工维护 ──

    async def create_entity(
        self,
        name: str,
        entity_type: Union[EntityType, str],
        observations: Optional[List[str]] = None,
        properties: Optional[Dict[str, Any]] = None,
        confidence: float = 0.5,
        source_record_ids: Optional[List[str]] = None,
    ) -> Optional[Entity]:
        """手工创建实体（与提取结果走同一套去重合并）"""
        if not self.is_initialized:
            return None
        etype = coerce_entity_type(entity_type)
        name = clean_common(name or "")
        if etype is None or not name:
            logger.warning(f"Rejected manual entity: name={name!r}, type={entity_type!r}")
            return None
        props = {"extraction_method": "manual"}
        props.update(properties or {})
        candidate = Entity(
            name=name,
            entity_type=etype,
            properties=props,
            observations=[o for o in (observations or []) if o],
            confidence=max(0.0, min(MAX_ENTITY_CONFIDENCE, confidence)),
            source_record_ids=list(source_record_ids or []),
        )
        try:
            return await self._storage.upsert_entity(candidate)
        except PersistenceError as e:
            logger.warning(f"Failed to create entity '{name}': {e}")
            return None

    async def create_relation(
        self,
        from_entity_id: str,
        to_entity_id: str,
        relation_type: Union[RelationType, str],
        strength: float = 0.5,
        confidence: float = 0.5,
        properties: Optional[Dict[str, Any]] = None,
        source_record_ids: Optional[List[str]] = None,
    ) -> Optional[Relationship]:
        """手工创建关系；任一端点不存在时返回 None"""
        if not self.is_initialized:
            return None
        try:
            rtype = RelationType(relation_type)
        except ValueError:
            logger.warning(f"Unknown relation type: {relation_type}")
            return None
        if from_entity_id == to_entity_id:
            return None
        if await self.get_entity(from_entity_id) is None or await self.get_entity(to_entity_id) is None:
            return None
        props = {"inference_method": "manual"}
        props.update(properties or {})
        rel = Relationship(
            from_entity_id=from_entity_id,
            to_entity_id=to_entity_id,
            relation_type=rtype,
            properties=props,
            strength=strength,
            confidence=confidence,
            source_record_ids=list(source_record_ids or []),
        )
        try:
            saved, _created = await self._storage.upsert_relationship(rel)
            return saved
        except PersistenceError as e:
            logger.warning(f"Failed to create relation {rel!r}: {e}")
            return None

    # ── 混合检索 ──

    async def search_records(self, query: str, limit: int = 10) -> List[RecordReference]:
        """图谱检索：把匹配到的实体映射回提到它们的记录"""
        results = await self.search_entities(query, limit=limit * 2)
        refs: Dict[str, RecordReference] = {}
        for result in results:
            for record_id in result.entity.source_record_ids:
                ref = refs.get(record_id)
                if ref is None:
                    ref = refs[record_id] = RecordReference(record_id=record_id)
                ref.add_entity(result.entity, result.relevance_score)
        ordered = sorted(refs.values(), key=lambda r: r.score, reverse=True)
        return ordered[:limit]
