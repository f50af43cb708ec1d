"""
知识图谱统计报告

只读统计：实体/关系数量、类型分布、平均置信度、孤立实体。
全部通过 KGStorage 的 SQL 聚合接口获取，不全量加载到内存。
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, TYPE_CHECKING

from devmemory.utils.logger import get_logger

if TYPE_CHECKING:
    from devmemory.knowledge_graph.kg_storage import KGStorage

logger = get_logger("kg_statistics")


@dataclass
class GraphStatistics:
    """图谱统计"""
    entity_count: int = 0
    relation_count: int = 0
    counts_by_type: Dict[str, int] = field(default_factory=dict)
    relation_counts_by_type: Dict[str, int] = field(default_factory=dict)
    avg_relations_per_entity: float = 0.0
    avg_entity_confidence: float = 0.0
    avg_relation_confidence: float = 0.0
    orphan_entity_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def summary(self) -> str:
        """生成可读摘要"""
        lines = ["Knowledge graph statistics:"]
        lines.append(f"  entities: {self.entity_count}")
        lines.append(f"  relationships: {self.relation_count}")
        lines.append(f"  orphan entities: {self.orphan_entity_count}")
        lines.append(f"  avg relationships per entity: {self.avg_relations_per_entity:.2f}")
        lines.append(f"  avg entity confidence: {self.avg_entity_confidence:.3f}")
        lines.append(f"  avg relationship confidence: {self.avg_relation_confidence:.3f}")

        if self.counts_by_type:
            lines.append("  entity types:")
            for etype, count in sorted(self.counts_by_type.items(), key=lambda x: -x[1]):
                lines.append(f"    - {etype}: {count}")

        if self.relation_counts_by_type:
            lines.append("  relationship types:")
            for rtype, count in sorted(self.relation_counts_by_type.items(), key=lambda x: -x[1]):
                lines.append(f"    - {rtype}: {count}")

        return "\n".join(lines)


class KGStatisticsReporter:
    """统计报告生成器"""

    def __init__(self, storage: "KGStorage") -> None:
        self._storage = storage

    async def generate(self) -> GraphStatistics:
        entity_count = await self._storage.get_entity_count()
        relation_count = await self._storage.get_relationship_count()
        avg_conf = await self._storage.get_avg_confidence()
        orphan_ids = await self._storage.get_orphan_entity_ids()

        stats = GraphStatistics(
            entity_count=entity_count,
            relation_count=relation_count,
            counts_by_type=await self._storage.get_entity_type_distribution(),
            relation_counts_by_type=await self._storage.get_relation_type_distribution(),
            avg_relations_per_entity=relation_count / entity_count if entity_count > 0 else 0.0,
            avg_entity_confidence=avg_conf["entities"],
            avg_relation_confidence=avg_conf["relationships"],
            orphan_entity_count=len(orphan_ids),
        )
        logger.debug(
            f"Graph statistics: entities={entity_count}, relationships={relation_count}, "
            f"orphans={len(orphan_ids)}"
        )
        return stats
