"""
图谱统计测试
"""

import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from devmemory.knowledge_graph.kg_models import Entity, EntityType, Relationship, RelationType
from devmemory.knowledge_graph.kg_statistics import GraphStatistics, KGStatisticsReporter
from devmemory.knowledge_graph.kg_storage import KGStorage


@pytest_asyncio.fixture
async def storage():
    s = KGStorage()
    with tempfile.TemporaryDirectory() as tmpdir:
        await s.initialize(Path(tmpdir) / "kg.db")
        yield s
        await s.close()


class TestGraphStatistics:

    def test_defaults(self):
        stats = GraphStatistics()
        assert stats.entity_count == 0
        assert stats.to_dict()["counts_by_type"] == {}

    def test_summary(self):
        stats = GraphStatistics(
            entity_count=3,
            relation_count=2,
            counts_by_type={"technology": 2, "person": 1},
            relation_counts_by_type={"uses": 2},
        )
        text = stats.summary()
        assert "entities: 3" in text
        assert "relationships: 2" in text
        assert text.index("- technology: 2") < text.index("- person: 1")
        assert "- uses: 2" in text


class TestKGStatisticsReporter:

    @pytest.mark.asyncio
    async def test_empty(self, storage):
        stats = await KGStatisticsReporter(storage).generate()
        assert stats == GraphStatistics()

    @pytest.mark.asyncio
    async def test_generate(self, storage):
        svc = await storage.upsert_entity(
            Entity(name="payment-service", entity_type=EntityType.SERVICE, confidence=0.6))
        john = await storage.upsert_entity(
            Entity(name="John Doe", entity_type=EntityType.PERSON, confidence=0.8))
        await storage.upsert_entity(
            Entity(name="Berlin", entity_type=EntityType.LOCATION, confidence=0.7))
        await storage.upsert_relationship(Relationship(
            from_entity_id=svc.id, to_entity_id=john.id,
            relation_type=RelationType.CREATED_BY, confidence=0.6,
        ))

        stats = await KGStatisticsReporter(storage).generate()
        assert stats.entity_count == 3
        assert stats.relation_count == 1
        assert stats.counts_by_type == {"service": 1, "person": 1, "location": 1}
        assert stats.relation_counts_by_type == {"created_by": 1}
        assert stats.avg_relations_per_entity == pytest.approx(1 / 3)
        assert stats.avg_entity_confidence == pytest.approx(0.7)
        assert stats.avg_relation_confidence == pytest.approx(0.6)
        assert stats.orphan_entity_count == 1
