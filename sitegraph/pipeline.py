"""
Scrape pipeline: runs a crawl for a project and persists what it yields.

Each parsed page becomes a Document; tagged entities are merged per project
by (name, type) and relationships are stored as found. Progress, documents
and the final outcome are published on the broadcaster.
"""

import logging
from contextlib import aclosing
from typing import Optional

from .broadcast import ProgressBroadcaster
from .crawler.fetcher import WebFetcher
from .crawler.orchestrator import (
    CrawlOrchestrator, CrawlState, ProgressSnapshot, ProgressStatus
)
from .crawler.parser import ContentParser, PageRecord, get_domain
from .nlp.analysis import analyze_sentiment, extract_topics
from .nlp.tagger import EntityLabel, EntityTagger
from .storage.database import DatabaseError, StorageBackend
from .storage.models import Document, Entity, NlpOptions, Project, ProjectStatus, Relationship
from .utils.config import CrawlerConfig, validate_crawler_config
from .utils.logger import get_crawler_logger
from .utils.monitoring import CrawlerMonitor


class ScrapePipeline:
    """Creates a project, drives one crawl for it and stores the results."""

    def __init__(self, database: StorageBackend,
                 broadcaster: Optional[ProgressBroadcaster] = None,
                 tagger: Optional[EntityTagger] = None,
                 monitor: Optional[CrawlerMonitor] = None,
                 fetcher: Optional[WebFetcher] = None,
                 parser: Optional[ContentParser] = None):
        self.database = database
        self.broadcaster = broadcaster or ProgressBroadcaster()
        self.tagger = tagger or EntityTagger()
        self.monitor = monitor
        self.fetcher = fetcher
        self.parser = parser
        self.orchestrator: Optional[CrawlOrchestrator] = None
        self.logger = logging.getLogger(__name__)

    def cancel(self):
        """Stop the running crawl before its next batch."""
        if self.orchestrator:
            self.orchestrator.cancel()

    async def create_project(self, config: CrawlerConfig) -> Project:
        validate_crawler_config(config)
        domain = get_domain(config.target_url)
        project = Project(
            name=f"Scraping {domain}",
            base_url=config.target_url,
            domain=domain,
            max_depth=config.max_depth,
            max_workers=config.max_workers,
            delay=config.delay_ms,
            status=ProjectStatus.RUNNING,
            nlp_options=NlpOptions(
                extract_entities=config.extract_entities,
                build_relationships=config.build_relationships,
                sentiment_analysis=config.sentiment_analysis,
                topic_modeling=config.topic_modeling,
            ),
        )
        return await self.database.create_project(project)

    async def start(self, config: CrawlerConfig) -> Project:
        """
        Crawl config.target_url into a new project.

        Returns the project once the crawl completes or is cancelled. A failed
        run leaves the project in the failed state and re-raises the error.
        """
        project = await self.create_project(config)
        return await self.run(project, config)

    async def run(self, project: Project, config: CrawlerConfig) -> Project:
        logger = get_crawler_logger(__name__, project_id=project.id)
        run = _ProjectRun(self, project, logger)

        self.orchestrator = CrawlOrchestrator(
            config,
            fetcher=self.fetcher,
            parser=self.parser,
            on_progress=run.on_progress,
            monitor=self.monitor,
        )
        logger.info(f"Project {project.id} started for {project.base_url}")

        try:
            async with aclosing(self.orchestrator.crawl()) as pages:
                async for page in pages:
                    await run.store_page(page)

            if project.nlp_options.topic_modeling:
                await run.store_topics()

        except Exception as e:
            await run.fail(e)
            raise

        project.total_urls = self.orchestrator.stats.discovered
        project.status = ProjectStatus.COMPLETED
        await self.database.update_project(project)

        if self.orchestrator.state == CrawlState.CANCELLED:
            self.broadcaster.publish('scraping_cancelled', {'projectId': project.id})
            logger.info(f"Project {project.id} cancelled after {project.processed_urls} URLs")
        else:
            self.broadcaster.publish('scraping_completed', {'projectId': project.id})
            logger.info(f"Project {project.id} completed: {project.successful_urls} documents, "
                        f"{project.failed_urls} failures")
        return project


class _ProjectRun:
    """Per-run state shared between the progress callback and page storage."""

    def __init__(self, pipeline: ScrapePipeline, project: Project, logger):
        self.pipeline = pipeline
        self.database = pipeline.database
        self.broadcaster = pipeline.broadcaster
        self.project = project
        self.logger = logger
        self.failed = False

    async def on_progress(self, snapshot: ProgressSnapshot):
        if self.failed:
            return

        project = self.project
        project.processed_urls = snapshot.total_processed
        if snapshot.status == ProgressStatus.SUCCESS:
            project.successful_urls += 1
        else:
            project.failed_urls += 1
        if self.pipeline.orchestrator:
            project.total_urls = self.pipeline.orchestrator.stats.discovered
        await self.database.update_project(project)

        self.broadcaster.publish('scraping_progress', {
            'projectId': project.id,
            **snapshot.to_dict(),
            'successCount': project.successful_urls,
            'errorCount': project.failed_urls,
        })

    async def store_page(self, page: PageRecord) -> Document:
        options = self.project.nlp_options
        document = await self.database.create_document(Document(
            project_id=self.project.id,
            url=page.url,
            title=page.title,
            content=page.content,
            word_count=page.word_count,
            depth=page.depth,
            category=page.category,
            links=list(page.links),
            images=list(page.images),
        ))

        if options.tagging_enabled:
            result = self.pipeline.tagger.extract(document.content, document.title)
            if options.extract_entities:
                document.entities = result.entities
                for tagged in result.entities:
                    await self._merge_entity(tagged.text, tagged.label.value, [document.id])
            if options.build_relationships:
                document.relationships = result.relationships
                for tagged in result.relationships:
                    await self.database.create_relationship(Relationship(
                        project_id=self.project.id,
                        source_entity=tagged.source,
                        target_entity=tagged.target,
                        relationship_type=tagged.relationship_type,
                        document_id=document.id,
                    ))

        if options.sentiment_analysis:
            document.sentiment = analyze_sentiment(document.content)

        if options.tagging_enabled or options.sentiment_analysis:
            await self.database.update_document(document)

        if self.pipeline.monitor:
            self.pipeline.monitor.record_document_stored(document.url, len(document.entities))

        self.broadcaster.publish('document_processed', {
            'projectId': self.project.id,
            'document': {
                'id': document.id,
                'title': document.title,
                'url': document.url,
                'entityCount': len(document.entities),
            },
        })
        return document

    async def _merge_entity(self, name: str, entity_type: str, document_ids) -> Entity:
        existing = await self.database.find_entity(self.project.id, name, entity_type)
        if existing:
            existing.frequency += 1
            existing.document_ids.extend(d for d in document_ids if d not in existing.document_ids)
            return await self.database.update_entity(existing)
        return await self.database.create_entity(Entity(
            project_id=self.project.id,
            name=name,
            type=entity_type,
            frequency=1,
            document_ids=list(document_ids),
        ))

    async def store_topics(self):
        """Store keyword topics across every document as TOPIC entities."""
        documents = await self.database.get_documents(self.project.id)
        topics = extract_topics(doc.content for doc in documents)
        for topic in topics:
            await self._merge_entity(topic.topic, EntityLabel.TOPIC.value, [d.id for d in documents])
        self.logger.info(f"Stored {len(topics)} topics for project {self.project.id}")

    async def fail(self, error: Exception):
        self.failed = True
        self.project.status = ProjectStatus.FAILED
        self.logger.error(f"Project {self.project.id} failed: {error}")
        if self.pipeline.monitor:
            self.pipeline.monitor.record_error(type(error).__name__)
        try:
            await self.database.update_project(self.project)
        except DatabaseError as e:
            self.logger.error(f"Could not record failure of project {self.project.id}: {e}")

        self.broadcaster.publish('scraping_error', {
            'projectId': self.project.id,
            'error': str(error) or 'Unknown error',
        })
