"""
知识图谱管理器集成测试
"""

import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from devmemory.knowledge_graph.kg_errors import KnowledgeGraphError, PersistenceError
from devmemory.knowledge_graph.kg_manager import KnowledgeGraphManager
from devmemory.knowledge_graph.kg_models import EntityType, RelationType
from devmemory.knowledge_graph.kg_statistics import GraphStatistics
from devmemory.models.record import Record


@pytest_asyncio.fixture
async def manager():
    """创建临时数据目录下的 KnowledgeGraphManager"""
    mgr = KnowledgeGraphManager()
    with tempfile.TemporaryDirectory() as tmpdir:
        await mgr.initialize(data_dir=Path(tmpdir) / "data")
        yield mgr
        await mgr.close()


def _find(entities, name, entity_type):
    return next(e for e in entities if e.name == name and e.entity_type == entity_type)


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_initialize_with_data_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            mgr = KnowledgeGraphManager()
            await mgr.initialize(data_dir=Path(tmpdir) / "nested")
            assert mgr.is_initialized
            assert (Path(tmpdir) / "nested" / "knowledge_graph.db").exists()
            assert await mgr.health_check()
            await mgr.close()
            assert not mgr.is_initialized
            assert not await mgr.health_check()

    @pytest.mark.asyncio
    async def test_initialize_requires_location(self):
        with pytest.raises(KnowledgeGraphError):
            await KnowledgeGraphManager().initialize()

    @pytest.mark.asyncio
    async def test_uninitialized_degrades(self, hooks_record):
        mgr = KnowledgeGraphManager()
        assert await mgr.extract_and_link_entities(hooks_record) == []
        assert await mgr.search_entities("React") == []
        assert await mgr.get_entity("x") is None
        assert await mgr.find_relationship_path("a", "b") == []
        assert await mgr.get_graph_statistics() == GraphStatistics()
        assert await mgr.create_entity("React", "technology") is None
        assert await mgr.search_records("React") == []


class TestScenarios:
    """端到端场景"""

    @pytest.mark.asyncio
    async def test_react_hooks_guide(self, manager, hooks_record):
        entities = await manager.extract_and_link_entities(hooks_record)
        react = _find(entities, "React", EntityType.TECHNOLOGY)
        assert react.confidence >= 0.5

        by_id = {e.id: e for e in await manager.get_all_entities()}
        rels = await manager.get_entity_relationships(react.id)
        linked = [
            r for r in rels
            if r.relation_type in (RelationType.USES, RelationType.RELATED_TO)
            and r.to_entity_id == react.id
            and by_id[r.from_entity_id].entity_type in (EntityType.PROJECT, EntityType.CONCEPT)
        ]
        assert linked

    @pytest.mark.asyncio
    async def test_payment_service_created_by(self, manager, payment_record):
        entities = await manager.extract_and_link_entities(payment_record)
        john = _find(entities, "John Doe", EntityType.PERSON)
        svc = _find(entities, "payment-service", EntityType.SERVICE)

        incoming = await manager.get_entity_relationships(john.id, "incoming")
        created = [r for r in incoming if r.relation_type == RelationType.CREATED_BY]
        assert svc.id in {r.from_entity_id for r in created}
        assert all(r.to_entity_id == john.id for r in created)

        paths = await manager.find_relationship_path(svc.id, john.id)
        assert paths[0].path_length == 1

    @pytest.mark.asyncio
    async def test_redis_resolved_across_records(self, manager):
        await manager.extract_and_link_entities(
            Record(id="r1", content="Sessions now live in the Redis database"))
        await manager.extract_and_link_entities(
            Record(id="r2", content="The session store uses Redis for caching"))

        redis = [e for e in await manager.get_all_entities() if e.name.lower() == "redis"]
        assert len(redis) == 1
        assert redis[0].entity_type == EntityType.DATABASE
        assert sorted(redis[0].source_record_ids) == ["r1", "r2"]
        assert redis[0].properties["mention_count"] >= 2

    @pytest.mark.asyncio
    async def test_two_managers_share_one_database(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            data_dir = Path(tmpdir)
            first, second = KnowledgeGraphManager(), KnowledgeGraphManager()
            await first.initialize(data_dir=data_dir)
            await second.initialize(data_dir=data_dir)
            for mgr, record_id in ((first, "r1"), (second, "r2"), (first, "r3")):
                await mgr.extract_and_link_entities(
                    Record(id=record_id, content="The session store uses Redis for caching"))
            await first.close()
            await second.close()

            reader = KnowledgeGraphManager()
            await reader.initialize(data_dir=data_dir)
            redis = await reader.find_entity_by_name("Redis", EntityType.DATABASE)
            assert sorted(redis.source_record_ids) == ["r1", "r2", "r3"]
            await reader.close()

    @pytest.mark.asyncio
    async def test_reingest_is_idempotent(self, manager, hooks_record):
        first = await manager.extract_and_link_entities(hooks_record)
        before = {e.id: e.confidence for e in first}
        rel_count = len(await manager.get_all_relationships())

        second = await manager.extract_and_link_entities(hooks_record)
        assert {e.id for e in second} == set(before)
        assert all(e.confidence >= before[e.id] for e in second)
        assert len(await manager.get_all_relationships()) == rel_count

    @pytest.mark.asyncio
    async def test_dict_record(self, manager):
        entities = await manager.extract_and_link_entities({
            "id": "r9",
            "title": "Deploy notes",
            "content": "We deploy with Docker and Kubernetes",
            "type": "command",
        })
        assert {"Docker", "Kubernetes"} <= {e.name for e in entities}


class TestQueries:

    @pytest.mark.asyncio
    async def test_search_and_lookup(self, manager, hooks_record, payment_record):
        await manager.extract_and_link_entities(hooks_record)
        await manager.extract_and_link_entities(payment_record)

        results = await manager.search_entities("react")
        assert results[0].entity.name == "React"
        assert results[0].relationship_count >= 1

        typed = await manager.search_entities("payment", entity_type="api")
        assert [r.entity.entity_type for r in typed] == [EntityType.API]
        assert await manager.search_entities("payment", entity_type="gadget") == []

        assert (await manager.find_entity_by_name("john doe")).name == "John Doe"
        assert await manager.find_entity_by_name("john doe", "technology") is None

        techs = await manager.get_entities_by_type("technology")
        assert "React" in [e.name for e in techs]
        assert await manager.get_entities_by_type("gadget") == []

    @pytest.mark.asyncio
    async def test_search_records(self, manager, hooks_record):
        await manager.extract_and_link_entities(hooks_record)
        refs = await manager.search_records("React")
        assert refs[0].record_id == "rec-hooks"
        assert "React" in refs[0].connected_entities
        assert "Found entity: React (technology)" in refs[0].explanations

    @pytest.mark.asyncio
    async def test_invalid_direction(self, manager):
        assert await manager.get_entity_relationships("x", "sideways") == []

    @pytest.mark.asyncio
    async def test_statistics(self, manager, payment_record):
        await manager.extract_and_link_entities(payment_record)
        stats = await manager.get_graph_statistics()
        assert stats.entity_count == 3
        assert stats.relation_counts_by_type.get("created_by", 0) >= 1
        assert stats.counts_by_type["person"] == 1


class TestManualMaintenance:

    @pytest.mark.asyncio
    async def test_create_entity_dedups(self, manager):
        a = await manager.create_entity("Terraform", "technology", observations=["IaC tool"])
        b = await manager.create_entity("terraform", EntityType.TECHNOLOGY, confidence=2.0)
        assert a.id == b.id
        assert b.properties["extraction_method"] == "manual"
        assert b.confidence == 0.95

    @pytest.mark.asyncio
    async def test_create_entity_rejects_invalid(self, manager):
        assert await manager.create_entity("", "technology") is None
        assert await manager.create_entity("Thing", "gadget") is None

    @pytest.mark.asyncio
    async def test_create_relation(self, manager):
        a = await manager.create_entity("billing", "service")
        b = await manager.create_entity("PostgreSQL", "database")
        rel = await manager.create_relation(a.id, b.id, "uses", strength=0.9)
        assert rel.relation_type == RelationType.USES
        assert rel.properties["inference_method"] == "manual"
        assert [r.id for r in await manager.get_entity_relationships(b.id, "incoming")] == [rel.id]

    @pytest.mark.asyncio
    async def test_path_follows_stored_direction(self, manager):
        alpha = await manager.create_entity("Alpha", "project")
        beta = await manager.create_entity("Beta", "project")
        await manager.create_relation(beta.id, alpha.id, "depends_on")

        assert await manager.find_relationship_path(alpha.id, beta.id, 1) == []
        [forward] = await manager.find_relationship_path(beta.id, alpha.id, 1)
        assert forward.to_text() == "Beta --[depends_on]--> Alpha"

        [both] = await manager.find_relationship_path(alpha.id, beta.id, 1, direction="both")
        assert both.to_text() == "Alpha <--[depends_on]-- Beta"
        assert await manager.find_relationship_path(alpha.id, beta.id, direction="sideways") == []

    @pytest.mark.asyncio
    async def test_create_relation_missing_entity(self, manager):
        a = await manager.create_entity("billing", "service")
        assert await manager.create_relation(a.id, "ghost", "uses") is None
        assert await manager.create_relation(a.id, a.id, "uses") is None
        assert await manager.create_relation(a.id, a.id, "befriends") is None


class TestNeverRaises:
    """入库失败时降级而不是抛出"""

    @pytest.mark.asyncio
    async def test_extractor_failure(self, manager, hooks_record, monkeypatch):
        def boom(record):
            raise RuntimeError("extractor crashed")

        monkeypatch.setattr(manager.extractor, "extract", boom)
        assert await manager.extract_and_link_entities(hooks_record) == []

    @pytest.mark.asyncio
    async def test_storage_failure(self, manager, hooks_record, monkeypatch):
        async def fail(candidate):
            raise PersistenceError("disk full")

        monkeypatch.setattr(manager.storage, "upsert_entity", fail)
        assert await manager.extract_and_link_entities(hooks_record) == []

    @pytest.mark.asyncio
    async def test_invalid_record(self, manager):
        assert await manager.extract_and_link_entities({"title": "no id"}) == []

    @pytest.mark.asyncio
    async def test_query_failure_degrades(self, manager, monkeypatch):
        async def fail(*args, **kwargs):
            raise PersistenceError("locked")

        monkeypatch.setattr(manager.storage, "search_entities", fail)
        monkeypatch.setattr(manager.storage, "get_entity_count", fail)
        assert await manager.search_entities("React") == []
        assert await manager.get_graph_statistics() == GraphStatistics()
        assert not await manager.health_check()
