"""
Storage layer for crawl projects and their exports.
"""

from .database import (
    DatabaseManager, DatabaseError, StorageBackend, MemoryStorageBackend, RedisStorageBackend
)
from .exports import (
    ExportGenerator, ExportNotReadyError, ExportStore, MemoryExportStore, RedisExportStore
)
from .models import (
    Project, ProjectStatus, Document, Entity, Relationship, ExportRecord, ExportRequest,
    ExportFormat, ExportStatus, NlpOptions, ProjectStats
)

__all__ = [
    'DatabaseManager', 'DatabaseError', 'StorageBackend', 'MemoryStorageBackend',
    'RedisStorageBackend',
    'ExportGenerator', 'ExportNotReadyError', 'ExportStore', 'MemoryExportStore',
    'RedisExportStore',
    'Project', 'ProjectStatus', 'Document', 'Entity', 'Relationship', 'ExportRecord',
    'ExportRequest', 'ExportFormat', 'ExportStatus', 'NlpOptions', 'ProjectStats'
]
