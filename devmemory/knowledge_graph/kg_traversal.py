"""
图遍历 — 受限 BFS 路径搜索

在内存邻接表上做广度优先搜索，找出两个实体之间的路径：
- 深度上限（默认 3 跳）
- 默认只沿关系的存储方向向外扩展，direction=both 时双向
- 路径内不允许重复节点（包括 A→B→A 这种来回）
- 路径强度为各边强度之积
- 结果按 (跳数升序, 强度降序) 排序，最多返回 10 条
- 扩展次数和耗时都有上限

邻接表从存储快照构建，按数据库中的写入版本号缓存。
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Tuple

from devmemory.core.config_manager import ConfigManager, get_config_manager
from devmemory.knowledge_graph.kg_models import (
    Entity,
    RelationDirection,
    Relationship,
    RelationshipPath,
)
from devmemory.knowledge_graph.kg_storage import KGStorage
from devmemory.utils.logger import get_logger

logger = get_logger("kg_traversal")


@dataclass
class GraphIndex:
    """实体表 + 出/入邻接表"""
    entities: Dict[str, Entity] = field(default_factory=dict)
    outgoing: Dict[str, List[Relationship]] = field(default_factory=dict)
    incoming: Dict[str, List[Relationship]] = field(default_factory=dict)
    revision: int = -1

    @classmethod
    def build(
        cls,
        entities: List[Entity],
        relationships: List[Relationship],
        revision: int = 0,
    ) -> "GraphIndex":
        index = cls(entities={e.id: e for e in entities}, revision=revision)
        for rel in relationships:
            if rel.from_entity_id == rel.to_entity_id:
                continue
            if rel.from_entity_id not in index.entities or rel.to_entity_id not in index.entities:
                continue
            index.outgoing.setdefault(rel.from_entity_id, []).append(rel)
            index.incoming.setdefault(rel.to_entity_id, []).append(rel)
        return index

    def neighbors(
        self, entity_id: str, direction: RelationDirection
    ) -> List[Tuple[Relationship, str]]:
        """返回 (关系, 邻居 ID)；关系保持存储时的方向"""
        result: List[Tuple[Relationship, str]] = []
        if direction in (RelationDirection.OUTGOING, RelationDirection.BOTH):
            result.extend((rel, rel.to_entity_id) for rel in self.outgoing.get(entity_id, []))
        if direction in (RelationDirection.INCOMING, RelationDirection.BOTH):
            result.extend((rel, rel.from_entity_id) for rel in self.incoming.get(entity_id, []))
        return result

    @property
    def relationship_count(self) -> int:
        return sum(len(rels) for rels in self.outgoing.values())


# 队列元素：(当前节点, 路径节点, 路径关系, 路径强度)
_Frontier = Tuple[str, Tuple[str, ...], Tuple[Relationship, ...], float]


class PathFinder:
    """两实体间的路径搜索"""

    def __init__(self, storage: KGStorage, config: Optional[ConfigManager] = None) -> None:
        self.storage = storage
        self._config = config
        self._index: Optional[GraphIndex] = None

    @property
    def config(self) -> ConfigManager:
        return self._config or get_config_manager()

    async def get_index(self) -> GraphIndex:
        """获取邻接表；数据库有新写入（包括其它实例的写入）时重建"""
        revision = await self.storage.get_revision()
        if self._index is not None and self._index.revision == revision:
            return self._index
        entities, relationships, revision = await self.storage.load_graph_rows()
        self._index = GraphIndex.build(entities, relationships, revision)
        logger.debug(
            f"Graph index rebuilt: entities={len(entities)}, "
            f"relationships={len(relationships)}, revision={revision}"
        )
        return self._index

    async def find_paths(
        self,
        from_id: str,
        to_id: str,
        max_depth: Optional[int] = None,
        direction: Optional[RelationDirection] = None,
    ) -> List[RelationshipPath]:
        """查找 from_id 到 to_id 的路径（使用调用开始时的快照）"""
        index = await self.get_index()
        return self.search(index, from_id, to_id, max_depth, direction)

    def search(
        self,
        index: GraphIndex,
        from_id: str,
        to_id: str,
        max_depth: Optional[int] = None,
        direction: Optional[RelationDirection] = None,
    ) -> List[RelationshipPath]:
        """在给定邻接表上执行受限 BFS

        - 任一端点不存在 → []
        - from_id == to_id → 仅含该实体的一条零跳路径
        - max_depth <= 0 且端点不同 → []
        """
        cfg = self.config
        if max_depth is None:
            max_depth = cfg.get("traversal.max_depth")
        direction = RelationDirection(direction or cfg.get("traversal.direction"))
        max_results = cfg.get("traversal.max_results")
        max_expansions = cfg.get("traversal.max_expansions")
        timeout = cfg.get("traversal.timeout_seconds")

        start_entity = index.entities.get(from_id)
        if start_entity is None or to_id not in index.entities:
            return []
        if from_id == to_id:
            return [RelationshipPath(entities=[start_entity], relationships=[],
                                     path_strength=1.0, path_length=0)]
        if max_depth <= 0:
            return []

        found: List[RelationshipPath] = []
        queue: Deque[_Frontier] = deque([(from_id, (from_id,), (), 1.0)])
        expansions = 0
        started = time.monotonic()

        while queue:
            node_id, path_nodes, path_rels, strength = queue.popleft()
            depth = len(path_rels)
            if depth >= max_depth:
                continue
            # BFS 按层推进：更深的路径排序一定靠后
            if len(found) >= max_results and found[max_results - 1].path_length <= depth:
                break

            expansions += 1
            if expansions > max_expansions:
                logger.warning(f"Path search expansion limit reached: {from_id} -> {to_id}")
                break
            if time.monotonic() - started > timeout:
                logger.warning(f"Path search timed out after {timeout}s: {from_id} -> {to_id}")
                break

            for rel, next_id in index.neighbors(node_id, direction):
                if next_id in path_nodes:
                    continue
                next_strength = strength * rel.strength
                if next_id == to_id:
                    nodes = path_nodes + (next_id,)
                    found.append(RelationshipPath(
                        entities=[index.entities[n] for n in nodes],
                        relationships=list(path_rels + (rel,)),
                        path_strength=round(next_strength, 6),
                        path_length=depth + 1,
                    ))
                    continue
                queue.append((next_id, path_nodes + (next_id,), path_rels + (rel,), next_strength))

        found.sort(key=lambda p: (p.path_length, -p.path_strength))
        logger.debug(
            f"Path search {from_id} -> {to_id}: {len(found)} paths, "
            f"{expansions} expansions"
        )
        return found[:max_results]
