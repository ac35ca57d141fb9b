"""
Export generation and storage of the generated files.
"""

import csv
import io
import json
import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import redis.asyncio as redis

from .database import DatabaseError, StorageBackend
from .models import Document, ExportFormat, ExportRecord, ExportRequest, ExportStatus
from ..graph.builder import GraphBuilder

CONTENT_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.JSON: "application/json",
    ExportFormat.CYPHER: "text/plain",
}


class ExportNotReadyError(Exception):
    """Raised when an export is missing, still generating or failed."""
    pass


class ExportStore:
    """Abstract store for generated export content, keyed by export id."""

    async def put(self, export_id: str, content: str):
        raise NotImplementedError

    async def get(self, export_id: str) -> Optional[str]:
        raise NotImplementedError

    async def delete(self, export_id: str):
        raise NotImplementedError


class MemoryExportStore(ExportStore):

    def __init__(self):
        self._files: Dict[str, str] = {}

    async def put(self, export_id: str, content: str):
        self._files[export_id] = content

    async def get(self, export_id: str) -> Optional[str]:
        return self._files.get(export_id)

    async def delete(self, export_id: str):
        self._files.pop(export_id, None)


class RedisExportStore(ExportStore):
    """Export content in Redis strings that expire after ttl seconds."""

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "sitegraph", ttl: int = 3600):
        self.redis_client = redis_client
        self.key_prefix = key_prefix
        self.ttl = ttl
        self.logger = logging.getLogger(__name__)

    def _key(self, export_id: str) -> str:
        return f"{self.key_prefix}:export_file:{export_id}"

    async def put(self, export_id: str, content: str):
        try:
            await self.redis_client.set(self._key(export_id), content, ex=self.ttl)
        except redis.RedisError as e:
            raise DatabaseError(f"Error storing export {export_id}: {e}") from e

    async def get(self, export_id: str) -> Optional[str]:
        try:
            return await self.redis_client.get(self._key(export_id))
        except redis.RedisError as e:
            raise DatabaseError(f"Error loading export {export_id}: {e}") from e

    async def delete(self, export_id: str):
        await self.redis_client.delete(self._key(export_id))


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class ExportGenerator:
    """Renders project data as csv, json or cypher and stores the result."""

    def __init__(self, database: StorageBackend, store: ExportStore,
                 graph_builder: Optional[GraphBuilder] = None):
        self.database = database
        self.store = store
        self.graph_builder = graph_builder or GraphBuilder()
        self.logger = logging.getLogger(__name__)

    async def generate(self, project_id: str, request: ExportRequest) -> ExportRecord:
        """
        Generate an export for a project.

        The record is stored as generating first, then updated to ready (with
        file_size and download_url) or to failed when rendering or storing
        the content raises.
        """
        fmt = ExportFormat(request.format)
        record = await self.database.create_export(ExportRecord(
            project_id=project_id,
            format=fmt,
            file_name=f"export_{int(time.time() * 1000)}.{fmt.value}",
        ))

        try:
            content = await self.render(project_id, request)
            await self.store.put(record.id, content)
        except (DatabaseError, ValueError) as e:
            self.logger.error(f"Export {record.id} for project {project_id} failed: {e}")
            record.status = ExportStatus.FAILED
            return await self.database.update_export(record)

        record.status = ExportStatus.READY
        record.file_size = len(content.encode('utf-8'))
        record.download_url = f"/api/exports/{record.id}/download"
        self.logger.info(f"Export {record.id} ready ({record.file_size} bytes)")
        return await self.database.update_export(record)

    async def render(self, project_id: str, request: ExportRequest) -> str:
        fmt = ExportFormat(request.format)
        documents = await self.database.get_documents(project_id)

        if fmt == ExportFormat.CSV:
            return self._render_csv(documents, request)

        entities = await self.database.get_entities(project_id)
        relationships = await self.database.get_relationships(project_id)

        if fmt == ExportFormat.JSON:
            include_graph = request.include_relationships and not request.metadata_only
            return json.dumps({
                'documents': [self._document_payload(doc, request) for doc in documents],
                'entities': [e.to_dict() for e in entities] if include_graph else [],
                'relationships': [r.to_dict() for r in relationships] if include_graph else [],
            }, indent=2, ensure_ascii=False)

        graph = self.graph_builder.build(entities, relationships)
        return self.graph_builder.to_cypher(graph, "all")

    def _document_payload(self, document: Document, request: ExportRequest) -> dict:
        data = document.to_dict()
        if request.metadata_only or not request.include_content:
            data.pop('content')
        if request.metadata_only:
            data.pop('entities')
            data.pop('relationships')
        if not request.include_images:
            data.pop('images')
        return data

    def _render_csv(self, documents: List[Document], request: ExportRequest) -> str:
        include_content = request.include_content and not request.metadata_only
        headers = ['URL', 'Title', 'Category', 'Word Count', 'Created At']
        if include_content:
            headers.append('Content')
        if request.include_images:
            headers.append('Images')

        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator='\n')
        writer.writerow(headers)
        for doc in documents:
            row = [doc.url, doc.title, doc.category or '', doc.word_count, _iso(doc.created_at)]
            if include_content:
                row.append(doc.content)
            if request.include_images:
                row.append(' '.join(doc.images))
            writer.writerow(row)
        return buffer.getvalue()

    async def download(self, export_id: str) -> Tuple[str, str]:
        """Return (file_name, content) for a ready export."""
        record = await self.database.get_export(export_id)
        if record is None or record.status != ExportStatus.READY:
            raise ExportNotReadyError(f"Export {export_id} not found or not ready")

        content = await self.store.get(export_id)
        if content is None:
            raise ExportNotReadyError(f"Export {export_id} content has expired")
        return record.file_name, content
