# File: tests/test_pipeline.py
# Full scrape runs against a local aiohttp site and the memory backend
import asyncio
from typing import List

import pytest

from sitegraph.broadcast import ProgressBroadcaster
from sitegraph.crawler.orchestrator import CrawlRunError
from sitegraph.nlp.tagger import EntityTagger
from sitegraph.pipeline import ScrapePipeline
from sitegraph.storage.database import DatabaseError, MemoryStorageBackend
from sitegraph.storage.models import ProjectStatus
from sitegraph.utils.monitoring import CrawlerMonitor

from conftest import html_page, links

pytestmark = pytest.mark.asyncio


def build_site(fake_site):
    fake_site.add("/", html_page("home", links("/a", "/b")))
    fake_site.add("/a", html_page(
        "page a", "Alice Smith works for Acme Corporation. " + links("/c")
    ))
    fake_site.add("/b", "broken", status=500)
    fake_site.add("/c", html_page("page c", "Alice Smith visited London"))


async def drain(broadcaster: ProgressBroadcaster, subscription) -> List[dict]:
    """Close the broadcaster and return everything the subscription received."""
    broadcaster.close()
    return [message async for message in subscription]


async def test_scrape_stores_documents_and_merges_entities(fake_site, crawler_config):
    build_site(fake_site)
    database = MemoryStorageBackend()
    broadcaster = ProgressBroadcaster()
    subscription = broadcaster.subscribe()
    pipeline = ScrapePipeline(database, broadcaster=broadcaster)

    project = await asyncio.wait_for(pipeline.start(crawler_config(fake_site.url("/"))), timeout=15)

    stored = await database.get_project(project.id)
    assert stored.status == ProjectStatus.COMPLETED
    assert stored.name == f"Scraping {project.domain}"
    assert stored.processed_urls == 3
    assert stored.successful_urls == 2
    assert stored.failed_urls == 1
    assert stored.total_urls == 3

    documents = await database.get_documents(project.id)
    assert sorted(d.url for d in documents) == [fake_site.url("/a"), fake_site.url("/c")]
    by_url = {d.url: d for d in documents}
    assert by_url[fake_site.url("/c")].depth == 2
    assert by_url[fake_site.url("/c")].category == "a"

    alice = await database.find_entity(project.id, "Alice Smith", "PERSON")
    assert alice.frequency == 2
    assert sorted(alice.document_ids) == sorted(d.id for d in documents)
    assert await database.find_entity(project.id, "Acme Corporation", "ORG") is not None

    relationships = await database.get_relationships(project.id)
    assert [(r.source_entity, r.target_entity, r.relationship_type) for r in relationships] == [
        ("Alice Smith", "Acme Corporation", "WORKS_FOR")
    ]
    assert relationships[0].document_id == by_url[fake_site.url("/a")].id

    messages = await drain(broadcaster, subscription)
    types = [m["type"] for m in messages]
    assert types.count("scraping_progress") == 3
    assert types.count("document_processed") == 2
    assert types[-1] == "scraping_completed"

    progress = [m for m in messages if m["type"] == "scraping_progress"]
    assert [m["totalProcessed"] for m in progress] == [1, 2, 3]
    assert progress[-1]["successCount"] == 2
    assert progress[-1]["errorCount"] == 1
    assert all(m["projectId"] == project.id for m in messages)


async def test_tagging_disabled_stores_plain_documents(fake_site, crawler_config):
    build_site(fake_site)
    database = MemoryStorageBackend()
    pipeline = ScrapePipeline(database)
    config = crawler_config(fake_site.url("/"), extract_entities=False, build_relationships=False)

    project = await asyncio.wait_for(pipeline.start(config), timeout=15)

    documents = await database.get_documents(project.id)
    assert len(documents) == 2
    assert all(d.entities == [] and d.relationships == [] for d in documents)
    assert await database.get_entities(project.id) == []


async def test_sentiment_and_topics(fake_site, crawler_config):
    fake_site.add("/", html_page("home", links("/a", "/b")))
    fake_site.add("/a", html_page("page a", "great software is excellent"))
    fake_site.add("/b", html_page("page b", "terrible research"))
    database = MemoryStorageBackend()
    pipeline = ScrapePipeline(database)
    config = crawler_config(fake_site.url("/"), sentiment_analysis=True, topic_modeling=True)

    project = await asyncio.wait_for(pipeline.start(config), timeout=15)

    documents = {d.url: d for d in await database.get_documents(project.id)}
    assert documents[fake_site.url("/a")].sentiment.sentiment == "positive"
    assert documents[fake_site.url("/b")].sentiment.sentiment == "negative"

    topics = await database.get_entities_by_type(project.id, "TOPIC")
    assert sorted(t.name for t in topics) == ["Science", "Technology"]
    assert all(len(t.document_ids) == 2 for t in topics)


async def test_storage_failure_fails_the_project(fake_site, crawler_config):
    build_site(fake_site)

    class FlakyBackend(MemoryStorageBackend):
        async def update_project(self, project):
            if project.status == ProjectStatus.RUNNING and project.processed_urls:
                raise DatabaseError("connection lost")
            return await super().update_project(project)

    database = FlakyBackend()
    broadcaster = ProgressBroadcaster()
    subscription = broadcaster.subscribe()
    monitor = CrawlerMonitor()
    pipeline = ScrapePipeline(database, broadcaster=broadcaster, monitor=monitor)
    config = crawler_config(fake_site.url("/"))
    project = await pipeline.create_project(config)

    with pytest.raises(CrawlRunError, match="connection lost"):
        await asyncio.wait_for(pipeline.run(project, config), timeout=15)

    assert (await database.get_project(project.id)).status == ProjectStatus.FAILED
    assert monitor.metrics.get_current_values()["errors_total{error_type=CrawlRunError}"] == 1

    messages = await drain(broadcaster, subscription)
    assert messages[-1] == {
        "type": "scraping_error", "projectId": project.id, "error": "connection lost"
    }
    assert not any(m["type"] == "scraping_completed" for m in messages)


async def test_cancel_stops_before_next_batch(fake_site, crawler_config):
    build_site(fake_site)
    database = MemoryStorageBackend()
    broadcaster = ProgressBroadcaster()
    subscription = broadcaster.subscribe()

    class CancellingMonitor(CrawlerMonitor):
        def record_fetch(self, url, success, duration):
            super().record_fetch(url, success, duration)
            pipeline.cancel()

    pipeline = ScrapePipeline(database, broadcaster=broadcaster, monitor=CancellingMonitor())
    config = crawler_config(fake_site.url("/"), max_workers=1)

    project = await asyncio.wait_for(pipeline.start(config), timeout=15)

    assert project.processed_urls == 1
    assert (await database.get_project(project.id)).status == ProjectStatus.COMPLETED
    messages = await drain(broadcaster, subscription)
    assert messages[-1]["type"] == "scraping_cancelled"


async def test_invalid_config_creates_no_project(crawler_config):
    database = MemoryStorageBackend()
    pipeline = ScrapePipeline(database)

    with pytest.raises(ValueError):
        await pipeline.start(crawler_config("http://ex.test/", max_workers=0))
    assert await database.list_projects() == []


async def test_tagger_error_fails_the_project(fake_site, crawler_config):
    build_site(fake_site)

    class BrokenTagger(EntityTagger):
        def extract(self, text, title_hint=""):
            raise ValueError("tagger blew up")

    database = MemoryStorageBackend()
    broadcaster = ProgressBroadcaster()
    subscription = broadcaster.subscribe()
    pipeline = ScrapePipeline(database, broadcaster=broadcaster, tagger=BrokenTagger())
    config = crawler_config(fake_site.url("/"))
    project = await pipeline.create_project(config)

    with pytest.raises(ValueError, match="tagger blew up"):
        await asyncio.wait_for(pipeline.run(project, config), timeout=15)

    assert (await database.get_project(project.id)).status == ProjectStatus.FAILED
    messages = await drain(broadcaster, subscription)
    assert messages[-1] == {
        "type": "scraping_error", "projectId": project.id, "error": "tagger blew up"
    }
    assert not any(m["type"] == "scraping_completed" for m in messages)
