# File: tests/test_storage.py
"""Record store tests, run against the memory and Redis backends."""

import pytest

from sitegraph.nlp.analysis import SentimentResult
from sitegraph.nlp.tagger import EntityLabel, TaggedEntity, TaggedRelationship
from sitegraph.storage.database import (
    DatabaseError, DatabaseManager, MemoryStorageBackend, RedisStorageBackend
)
from sitegraph.storage.models import (
    Document, Entity, ExportFormat, ExportRecord, ExportStatus, NlpOptions, Project,
    ProjectStatus, Relationship
)
from sitegraph.utils.config import DatabaseConfig

pytestmark = pytest.mark.asyncio


def _project(**overrides) -> Project:
    values = dict(name="Scraping ex.test", base_url="http://ex.test/", domain="ex.test")
    values.update(overrides)
    return Project(**values)


async def test_project_round_trip(storage):
    project = await storage.create_project(_project(
        nlp_options=NlpOptions(sentiment_analysis=True)
    ))

    loaded = await storage.get_project(project.id)
    assert loaded == project
    assert loaded.status == ProjectStatus.PENDING
    assert loaded.nlp_options.sentiment_analysis is True


async def test_update_project_bumps_updated_at(storage):
    project = await storage.create_project(_project(updated_at=0.0))
    project.status = ProjectStatus.RUNNING
    project.processed_urls = 4
    await storage.update_project(project)

    loaded = await storage.get_project(project.id)
    assert loaded.status == ProjectStatus.RUNNING
    assert loaded.processed_urls == 4
    assert loaded.updated_at > 0.0


async def test_missing_records_are_none(storage):
    assert await storage.get_project("nope") is None
    assert await storage.get_document("nope") is None
    assert await storage.get_export("nope") is None


async def test_list_projects(storage):
    first = await storage.create_project(_project(created_at=1.0))
    second = await storage.create_project(_project(created_at=2.0))
    assert [p.id for p in await storage.list_projects()] == [first.id, second.id]


async def test_document_round_trip_with_tagging(storage):
    project = await storage.create_project(_project())
    document = Document(
        project_id=project.id,
        url="http://ex.test/a",
        title="A page",
        content="Alice Smith works for Acme",
        word_count=5,
        depth=1,
        category="people",
        links=["http://ex.test/b"],
        entities=[TaggedEntity("Alice Smith", EntityLabel.PERSON, 0, 11)],
        relationships=[TaggedRelationship("Alice Smith", "Acme", "WORKS_FOR")],
        sentiment=SentimentResult("neutral", 0.0),
    )
    await storage.create_document(document)

    loaded = await storage.get_document(document.id)
    assert loaded == document


async def test_documents_are_scoped_to_project_and_searchable(storage):
    project = await storage.create_project(_project())
    other = await storage.create_project(_project())
    await storage.create_document(Document(project.id, "http://ex.test/a", "Rivers", "Water flows"))
    await storage.create_document(Document(project.id, "http://ex.test/b", "Hills", "Green slopes"))
    await storage.create_document(Document(other.id, "http://ex.test/c", "Rivers", "Elsewhere"))

    assert len(await storage.get_documents(project.id)) == 2
    found = await storage.search_documents(project.id, "WATER")
    assert [d.url for d in found] == ["http://ex.test/a"]
    found = await storage.search_documents(project.id, "hills")
    assert [d.url for d in found] == ["http://ex.test/b"]


async def test_entities_and_relationships_queries(storage):
    project = await storage.create_project(_project())
    alice = await storage.create_entity(Entity(project.id, "Alice", "PERSON", document_ids=["d1"]))
    await storage.create_entity(Entity(project.id, "Acme", "ORG"))
    await storage.create_entity(Entity(project.id, "Bob", "PERSON"))
    await storage.create_relationship(Relationship(project.id, "Alice", "Acme", "WORKS_FOR", "d1"))
    await storage.create_relationship(Relationship(project.id, "Bob", "Carol", "COLLABORATED_WITH"))

    people = await storage.get_entities_by_type(project.id, "PERSON")
    assert sorted(e.name for e in people) == ["Alice", "Bob"]
    assert await storage.find_entity(project.id, "Alice", "PERSON") == alice
    assert await storage.find_entity(project.id, "Alice", "ORG") is None

    alice.frequency = 3
    await storage.update_entity(alice)
    assert (await storage.find_entity(project.id, "Alice", "PERSON")).frequency == 3

    acme_rels = await storage.get_relationships_by_entity(project.id, "Acme")
    assert [r.relationship_type for r in acme_rels] == ["WORKS_FOR"]


async def test_project_stats(storage):
    project = await storage.create_project(_project())
    await storage.create_document(Document(project.id, "http://ex.test/a", "A", "text"))
    await storage.create_entity(Entity(project.id, "Alice", "PERSON"))
    await storage.create_entity(Entity(project.id, "Bob", "PERSON"))
    await storage.create_entity(Entity(project.id, "Acme", "ORG"))
    await storage.create_relationship(Relationship(project.id, "Alice", "Acme", "WORKS_FOR"))

    stats = await storage.get_project_stats(project.id)
    assert stats.total_documents == 1
    assert stats.total_entities == 3
    assert stats.total_relationships == 1
    assert stats.entity_types == {"PERSON": 2, "ORG": 1}
    assert stats.relationship_types == {"WORKS_FOR": 1}


async def test_exports_round_trip(storage):
    project = await storage.create_project(_project())
    record = await storage.create_export(ExportRecord(project.id, ExportFormat.CSV, "export_1.csv"))
    record.status = ExportStatus.READY
    record.file_size = 12
    await storage.update_export(record)

    loaded = await storage.get_export(record.id)
    assert loaded.status == ExportStatus.READY
    assert loaded.file_size == 12
    assert [e.id for e in await storage.get_exports(project.id)] == [record.id]


async def test_delete_project_cascades(storage):
    project = await storage.create_project(_project())
    document = await storage.create_document(Document(project.id, "http://ex.test/a", "A", "x"))
    await storage.create_entity(Entity(project.id, "Alice", "PERSON"))

    assert await storage.delete_project(project.id) is True
    assert await storage.get_project(project.id) is None
    assert await storage.get_document(document.id) is None
    assert await storage.get_entities(project.id) == []
    assert await storage.delete_project(project.id) is False


async def test_memory_backend_does_not_share_state():
    backend = MemoryStorageBackend()
    project = await backend.create_project(_project())
    project.name = "changed locally"
    assert (await backend.get_project(project.id)).name == "Scraping ex.test"


async def test_redis_backend_key_layout(redis_client):
    backend = RedisStorageBackend(redis_client, key_prefix="sg")
    project = await backend.create_project(_project())
    await backend.create_document(Document(project.id, "http://ex.test/a", "A", "x"))

    assert await redis_client.hexists("sg:project", project.id)
    assert await redis_client.sismember("sg:projects", project.id)
    assert await redis_client.scard(f"sg:project:{project.id}:document") == 1


async def test_database_manager_selects_backend(redis_client):
    memory = DatabaseManager(DatabaseConfig(type="memory"))
    with pytest.raises(DatabaseError):
        memory.backend
    await memory.initialize()
    assert isinstance(memory.backend, MemoryStorageBackend)
    await memory.close()

    redis_manager = DatabaseManager(DatabaseConfig(type="redis"), redis_client=redis_client)
    await redis_manager.initialize()
    assert isinstance(redis_manager.backend, RedisStorageBackend)


async def test_database_manager_rejects_unknown_type():
    manager = DatabaseManager(DatabaseConfig(type="cassandra"))
    with pytest.raises(DatabaseError):
        await manager.initialize()
