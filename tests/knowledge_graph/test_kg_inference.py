"""
关系推断测试
"""

import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from devmemory.core.test_utils import setup_test_config
from devmemory.knowledge_graph.kg_errors import PersistenceError
from devmemory.knowledge_graph.kg_inference import RelationshipInferrer, load_type_priors
from devmemory.knowledge_graph.kg_models import Entity, EntityType, RelationType
from devmemory.knowledge_graph.kg_storage import KGStorage
from devmemory.models.record import Record


def person(name):
    return Entity(name=name, entity_type=EntityType.PERSON, confidence=0.7)


def service(name):
    return Entity(name=name, entity_type=EntityType.SERVICE, confidence=0.6)


def of_type(rels, relation_type):
    return [r for r in rels if r.relation_type == relation_type]


class TestArchetypes:
    """共现原型"""

    @pytest.mark.parametrize("content", [
        "John Doe created the payment-service API",
        "The payment-service API was created by John Doe.",
    ])
    def test_created_by_direction_independent_of_word_order(self, content):
        john, svc = person("John Doe"), service("payment-service")
        rels = RelationshipInferrer().propose(Record(id="r1", content=content), [john, svc])
        created = of_type(rels, RelationType.CREATED_BY)
        assert len(created) == 1
        assert created[0].from_entity_id == svc.id
        assert created[0].to_entity_id == john.id
        assert created[0].properties["inference_method"] == "pattern"
        assert created[0].strength == 0.8
        assert created[0].source_record_ids == ["r1"]
        assert "created" in created[0].properties["evidence"]

    def test_same_type_pair_follows_text_order(self):
        alice, bob = person("Alice Smith"), person("Bob Jones")
        record = Record(id="r1", content="Alice Smith collaborated with Bob Jones on the migration")
        rels = RelationshipInferrer().propose(record, [bob, alice])
        collab = of_type(rels, RelationType.COLLABORATES_WITH)
        assert len(collab) == 1
        assert (collab[0].from_entity_id, collab[0].to_entity_id) == (alice.id, bob.id)

    def test_trigger_in_other_sentence_ignored(self):
        john, svc = person("John Doe"), service("payment-service")
        record = Record(
            id="r1",
            content="payment-service is deployed nightly.\nJohn Doe created the docs.",
        )
        rels = RelationshipInferrer().propose(record, [john, svc])
        assert of_type(rels, RelationType.CREATED_BY) == []

    def test_uses_archetype_wins_over_prior(self):
        project = Entity(name="frontend", entity_type=EntityType.PROJECT)
        react = Entity(name="React", entity_type=EntityType.TECHNOLOGY)
        record = Record(id="r1", content="The frontend uses React")
        rels = RelationshipInferrer().propose(record, [project, react])
        assert len(rels) == 1
        assert rels[0].relation_type == RelationType.USES
        assert rels[0].from_entity_id == project.id
        assert rels[0].properties["inference_method"] == "pattern"
        assert rels[0].strength == 0.6


class TestTypePriors:
    """类型先验"""

    def test_prior_without_trigger(self):
        project = Entity(name="frontend", entity_type=EntityType.PROJECT)
        react = Entity(name="React", entity_type=EntityType.TECHNOLOGY)
        record = Record(id="r1", content="Notes: frontend, React.")
        rels = RelationshipInferrer().propose(record, [react, project])
        assert len(rels) == 1
        assert rels[0].relation_type == RelationType.USES
        assert rels[0].from_entity_id == project.id
        assert rels[0].properties["inference_method"] == "type_prior"
        assert rels[0].strength == 0.5

    def test_priors_can_be_disabled(self):
        setup_test_config({"relationship": {"enable_type_priors": False}})
        project = Entity(name="frontend", entity_type=EntityType.PROJECT)
        react = Entity(name="React", entity_type=EntityType.TECHNOLOGY)
        record = Record(id="r1", content="Notes: frontend, React.")
        assert RelationshipInferrer().propose(record, [project, react]) == []

    def test_concept_related_to_technology(self):
        hooks = Entity(name="Hooks", entity_type=EntityType.CONCEPT)
        react = Entity(name="React", entity_type=EntityType.TECHNOLOGY)
        rels = RelationshipInferrer().propose(Record(id="r1", content="Hooks in React"), [hooks, react])
        assert [(r.relation_type, r.from_entity_id) for r in rels] == [
            (RelationType.RELATED_TO, hooks.id)
        ]

    def test_prior_strength_from_config(self):
        setup_test_config({
            "relationship": {"type_priors": {"project->technology": ["depends_on", 0.9, 0.7]}},
        })
        project = Entity(name="frontend", entity_type=EntityType.PROJECT)
        react = Entity(name="React", entity_type=EntityType.TECHNOLOGY)
        record = Record(id="r1", content="Notes: frontend, React.")
        [rel] = RelationshipInferrer().propose(record, [project, react])
        assert rel.relation_type == RelationType.DEPENDS_ON
        assert (rel.strength, rel.confidence) == (0.9, 0.7)

    def test_prior_disabled_by_null(self):
        setup_test_config({"relationship": {"type_priors": {"concept->technology": None}}})
        hooks = Entity(name="Hooks", entity_type=EntityType.CONCEPT)
        react = Entity(name="React", entity_type=EntityType.TECHNOLOGY)
        record = Record(id="r1", content="Hooks in React")
        assert RelationshipInferrer().propose(record, [hooks, react]) == []

    def test_load_type_priors_skips_invalid(self):
        priors = load_type_priors({
            "project->technology": ["uses", 0.5, 0.4],
            "project->spaceship": ["uses", 0.5, 0.4],
            "project": ["uses", 0.5, 0.4],
            "person->project": ["likes", 0.5, 0.4],
            "person->organization": ["belongs_to", 0.5],
        })
        assert priors == {
            (EntityType.PROJECT, EntityType.TECHNOLOGY): (RelationType.USES, 0.5, 0.4),
        }


class TestProposeEdgeCases:

    def test_single_entity(self):
        assert RelationshipInferrer().propose(Record(id="r1", content="x"), [person("Ann Lee")]) == []

    def test_duplicate_input_entities(self):
        john = person("John Doe")
        rels = RelationshipInferrer().propose(Record(id="r1", content="John Doe"), [john, john])
        assert rels == []

    def test_unrelated_types(self):
        loc = Entity(name="Berlin", entity_type=EntityType.LOCATION)
        concept = Entity(name="caching", entity_type=EntityType.CONCEPT)
        record = Record(id="r1", content="Berlin and caching")
        assert RelationshipInferrer().propose(record, [loc, concept]) == []


class TestInferAndStore:
    """写入存储"""

    @pytest_asyncio.fixture
    async def storage(self):
        s = KGStorage()
        with tempfile.TemporaryDirectory() as tmpdir:
            await s.initialize(Path(tmpdir) / "kg.db")
            yield s
            await s.close()

    @pytest.mark.asyncio
    async def test_store_and_merge(self, storage):
        john = await storage.upsert_entity(person("John Doe"))
        svc = await storage.upsert_entity(service("payment-service"))
        inferrer = RelationshipInferrer(storage)

        r1 = Record(id="r1", content="John Doe created the payment-service API")
        r2 = Record(id="r2", content="payment-service was created by John Doe")
        await inferrer.infer_and_store(r1, [john, svc])
        stored = await inferrer.infer_and_store(r2, [john, svc])

        assert await storage.get_relationship_count() == 1
        assert stored[0].source_record_ids == ["r1", "r2"]

    @pytest.mark.asyncio
    async def test_missing_endpoint_skipped(self, storage):
        john = await storage.upsert_entity(person("John Doe"))
        svc = await storage.upsert_entity(service("payment-service"))
        ghost = Entity(name="checkout", entity_type=EntityType.PROJECT)
        record = Record(id="r1", content="John Doe created the payment-service API for checkout")
        stored = await RelationshipInferrer(storage).infer_and_store(record, [john, svc, ghost])
        assert len(stored) >= 1
        assert all(ghost.id not in (r.from_entity_id, r.to_entity_id) for r in stored)

    @pytest.mark.asyncio
    async def test_requires_storage(self):
        with pytest.raises(PersistenceError):
            await RelationshipInferrer().infer_and_store(Record(id="r1"), [])
