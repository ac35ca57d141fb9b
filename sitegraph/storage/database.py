"""
Record storage for projects, documents, entities, relationships and exports.
Supports both in-memory and Redis storage.
"""

import json
import logging
import time
from collections import Counter
from typing import Dict, List, Optional, Type

import redis.asyncio as redis

from .models import (
    Document, Entity, ExportRecord, Project, ProjectStats, Relationship
)
from ..utils.config import DatabaseConfig, RedisConfig


class DatabaseError(Exception):
    """Custom exception for database operations."""
    pass


RECORD_TYPES: Dict[str, Type] = {
    'project': Project,
    'document': Document,
    'entity': Entity,
    'relationship': Relationship,
    'export': ExportRecord,
}


class StorageBackend:
    """
    Abstract base class for storage backends.

    Backends only implement the raw record primitives (_save, _load,
    _load_project_records, _remove); the typed API is shared.
    """

    async def initialize(self):
        """Initialize the storage backend."""
        raise NotImplementedError

    async def close(self):
        """Close storage connections."""
        raise NotImplementedError

    async def _save(self, kind: str, record_id: str, project_id: str, data: dict):
        raise NotImplementedError

    async def _load(self, kind: str, record_id: str) -> Optional[dict]:
        raise NotImplementedError

    async def _load_project_records(self, kind: str, project_id: Optional[str]) -> List[dict]:
        """All records of a kind for a project, or every record when project_id is None."""
        raise NotImplementedError

    async def _remove(self, kind: str, record_id: str, project_id: str):
        raise NotImplementedError

    async def _get(self, kind: str, record_id: str):
        data = await self._load(kind, record_id)
        if data is None:
            return None
        return RECORD_TYPES[kind].from_dict(data)

    async def _list(self, kind: str, project_id: Optional[str]) -> list:
        records = [
            RECORD_TYPES[kind].from_dict(data)
            for data in await self._load_project_records(kind, project_id)
        ]
        records.sort(key=lambda r: r.created_at)
        return records

    # Projects

    async def create_project(self, project: Project) -> Project:
        await self._save('project', project.id, project.id, project.to_dict())
        return project

    async def get_project(self, project_id: str) -> Optional[Project]:
        return await self._get('project', project_id)

    async def update_project(self, project: Project) -> Project:
        project.updated_at = time.time()
        await self._save('project', project.id, project.id, project.to_dict())
        return project

    async def list_projects(self) -> List[Project]:
        return await self._list('project', None)

    async def delete_project(self, project_id: str) -> bool:
        """Delete a project together with every record that belongs to it."""
        if await self._load('project', project_id) is None:
            return False
        for kind in ('document', 'entity', 'relationship', 'export'):
            for data in await self._load_project_records(kind, project_id):
                await self._remove(kind, data['id'], project_id)
        await self._remove('project', project_id, project_id)
        return True

    # Documents

    async def create_document(self, document: Document) -> Document:
        await self._save('document', document.id, document.project_id, document.to_dict())
        return document

    async def update_document(self, document: Document) -> Document:
        return await self.create_document(document)

    async def get_document(self, document_id: str) -> Optional[Document]:
        return await self._get('document', document_id)

    async def get_documents(self, project_id: str) -> List[Document]:
        return await self._list('document', project_id)

    async def search_documents(self, project_id: str, query: str) -> List[Document]:
        """Case-insensitive substring search over title and content."""
        needle = query.lower()
        return [
            doc for doc in await self.get_documents(project_id)
            if needle in doc.title.lower() or needle in doc.content.lower()
        ]

    # Entities

    async def create_entity(self, entity: Entity) -> Entity:
        await self._save('entity', entity.id, entity.project_id, entity.to_dict())
        return entity

    async def update_entity(self, entity: Entity) -> Entity:
        return await self.create_entity(entity)

    async def get_entities(self, project_id: str) -> List[Entity]:
        return await self._list('entity', project_id)

    async def get_entities_by_type(self, project_id: str, entity_type: str) -> List[Entity]:
        return [e for e in await self.get_entities(project_id) if e.type == entity_type]

    async def find_entity(self, project_id: str, name: str, entity_type: str) -> Optional[Entity]:
        for entity in await self.get_entities(project_id):
            if entity.name == name and entity.type == entity_type:
                return entity
        return None

    # Relationships

    async def create_relationship(self, relationship: Relationship) -> Relationship:
        await self._save(
            'relationship', relationship.id, relationship.project_id, relationship.to_dict()
        )
        return relationship

    async def get_relationships(self, project_id: str) -> List[Relationship]:
        return await self._list('relationship', project_id)

    async def get_relationships_by_entity(self, project_id: str, entity_name: str) -> List[Relationship]:
        return [
            r for r in await self.get_relationships(project_id)
            if entity_name in (r.source_entity, r.target_entity)
        ]

    # Exports

    async def create_export(self, export: ExportRecord) -> ExportRecord:
        await self._save('export', export.id, export.project_id, export.to_dict())
        return export

    async def update_export(self, export: ExportRecord) -> ExportRecord:
        return await self.create_export(export)

    async def get_export(self, export_id: str) -> Optional[ExportRecord]:
        return await self._get('export', export_id)

    async def get_exports(self, project_id: str) -> List[ExportRecord]:
        return await self._list('export', project_id)

    # Statistics

    async def get_project_stats(self, project_id: str) -> ProjectStats:
        documents = await self._load_project_records('document', project_id)
        entities = await self.get_entities(project_id)
        relationships = await self.get_relationships(project_id)

        return ProjectStats(
            total_documents=len(documents),
            total_entities=len(entities),
            total_relationships=len(relationships),
            entity_types=dict(Counter(e.type for e in entities)),
            relationship_types=dict(Counter(r.relationship_type for r in relationships)),
        )


class MemoryStorageBackend(StorageBackend):
    """In-process storage backend for development, tests and single runs."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._records: Dict[str, Dict[str, dict]] = {kind: {} for kind in RECORD_TYPES}

    async def initialize(self):
        self.logger.info("Memory storage initialized")

    async def close(self):
        pass

    async def _save(self, kind: str, record_id: str, project_id: str, data: dict):
        # Round-trip through JSON so callers never share mutable state with the store
        self._records[kind][record_id] = json.loads(json.dumps(data))

    async def _load(self, kind: str, record_id: str) -> Optional[dict]:
        data = self._records[kind].get(record_id)
        return json.loads(json.dumps(data)) if data is not None else None

    async def _load_project_records(self, kind: str, project_id: Optional[str]) -> List[dict]:
        return [
            json.loads(json.dumps(data))
            for data in self._records[kind].values()
            if project_id is None or self._project_of(kind, data) == project_id
        ]

    async def _remove(self, kind: str, record_id: str, project_id: str):
        self._records[kind].pop(record_id, None)

    @staticmethod
    def _project_of(kind: str, data: dict) -> str:
        return data['id'] if kind == 'project' else data['project_id']


class RedisStorageBackend(StorageBackend):
    """
    Redis storage backend.

    Each record kind lives in one hash ({prefix}:{kind}) mapping id to JSON.
    Per-project index sets ({prefix}:project:{project_id}:{kind}) hold the
    ids of the records that belong to a project; {prefix}:projects holds
    every project id.
    """

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "sitegraph"):
        self.redis_client = redis_client
        self.key_prefix = key_prefix
        self.logger = logging.getLogger(__name__)

    def _hash_key(self, kind: str) -> str:
        return f"{self.key_prefix}:{kind}"

    def _index_key(self, kind: str, project_id: str) -> str:
        if kind == 'project':
            return f"{self.key_prefix}:projects"
        return f"{self.key_prefix}:project:{project_id}:{kind}"

    async def initialize(self):
        try:
            await self.redis_client.ping()
        except redis.RedisError as e:
            raise DatabaseError(f"Failed to connect to Redis: {e}") from e
        self.logger.info(f"Redis storage initialized with prefix: {self.key_prefix}")

    async def close(self):
        await self.redis_client.aclose()
        self.logger.info("Redis connections closed")

    async def _save(self, kind: str, record_id: str, project_id: str, data: dict):
        try:
            async with self.redis_client.pipeline(transaction=True) as pipe:
                pipe.hset(self._hash_key(kind), record_id, json.dumps(data))
                pipe.sadd(self._index_key(kind, project_id), record_id)
                await pipe.execute()
        except redis.RedisError as e:
            raise DatabaseError(f"Error storing {kind} {record_id}: {e}") from e

    async def _load(self, kind: str, record_id: str) -> Optional[dict]:
        try:
            raw = await self.redis_client.hget(self._hash_key(kind), record_id)
        except redis.RedisError as e:
            raise DatabaseError(f"Error loading {kind} {record_id}: {e}") from e
        return json.loads(raw) if raw is not None else None

    async def _load_project_records(self, kind: str, project_id: Optional[str]) -> List[dict]:
        try:
            if project_id is None and kind != 'project':
                values = await self.redis_client.hvals(self._hash_key(kind))
            else:
                ids = await self.redis_client.smembers(self._index_key(kind, project_id))
                if not ids:
                    return []
                values = await self.redis_client.hmget(self._hash_key(kind), sorted(ids))
        except redis.RedisError as e:
            raise DatabaseError(f"Error listing {kind} records: {e}") from e
        return [json.loads(raw) for raw in values if raw is not None]

    async def _remove(self, kind: str, record_id: str, project_id: str):
        try:
            async with self.redis_client.pipeline(transaction=True) as pipe:
                pipe.hdel(self._hash_key(kind), record_id)
                pipe.srem(self._index_key(kind, project_id), record_id)
                await pipe.execute()
        except redis.RedisError as e:
            raise DatabaseError(f"Error deleting {kind} {record_id}: {e}") from e


def create_redis_client(config: RedisConfig) -> redis.Redis:
    return redis.Redis(
        host=config.host,
        port=config.port,
        db=config.db,
        password=config.password,
        decode_responses=True,
    )


class DatabaseManager:
    """Main database manager that selects and owns the storage backend."""

    def __init__(self, config: DatabaseConfig, redis_config: Optional[RedisConfig] = None,
                 redis_client: Optional[redis.Redis] = None):
        self.config = config
        self.redis_config = redis_config or RedisConfig()
        self.redis_client = redis_client
        self._backend: Optional[StorageBackend] = None
        self.logger = logging.getLogger(__name__)

    async def initialize(self):
        """Initialize the appropriate storage backend."""
        backend_type = self.config.type.lower()

        if backend_type == 'redis':
            if self.redis_client is None:
                self.redis_client = create_redis_client(self.redis_config)
            self._backend = RedisStorageBackend(self.redis_client, self.redis_config.key_prefix)
        elif backend_type == 'memory':
            self._backend = MemoryStorageBackend()
        else:
            raise DatabaseError(f"Unknown database type: {backend_type}")

        await self._backend.initialize()
        self.logger.info(f"Database manager initialized with {backend_type} backend")

    @property
    def backend(self) -> StorageBackend:
        if not self._backend:
            raise DatabaseError("Database not initialized")
        return self._backend

    async def close(self):
        """Close database connections."""
        if self._backend:
            await self._backend.close()
            self._backend = None
            self.logger.info("Database connections closed")
