"""
Records kept by the storage layer.
"""

import time
import uuid
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Optional

from ..nlp.tagger import EntityLabel, TaggedEntity, TaggedRelationship
from ..nlp.analysis import SentimentResult


def new_id() -> str:
    return str(uuid.uuid4())


class ProjectStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"
    CYPHER = "cypher"


class ExportStatus(str, Enum):
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"


@dataclass
class NlpOptions:
    """Which analysis steps run on each stored document."""
    extract_entities: bool = True
    build_relationships: bool = True
    sentiment_analysis: bool = False
    topic_modeling: bool = False

    @property
    def tagging_enabled(self) -> bool:
        return self.extract_entities or self.build_relationships


@dataclass
class Project:
    """A crawl project and its aggregate counters."""
    name: str
    base_url: str
    domain: str
    max_depth: int = 3
    max_workers: int = 20
    delay: int = 1000
    status: ProjectStatus = ProjectStatus.PENDING
    total_urls: int = 0
    processed_urls: int = 0
    successful_urls: int = 0
    failed_urls: int = 0
    nlp_options: NlpOptions = field(default_factory=NlpOptions)
    id: str = field(default_factory=new_id)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        data = asdict(self)
        data['status'] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Project':
        data = dict(data)
        data['status'] = ProjectStatus(data.get('status', ProjectStatus.PENDING.value))
        data['nlp_options'] = NlpOptions(**data.get('nlp_options', {}))
        return cls(**data)


@dataclass
class Document:
    """A stored page plus the entities and relationships tagged in it."""
    project_id: str
    url: str
    title: str
    content: str
    word_count: int = 0
    depth: int = 0
    category: Optional[str] = None
    links: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    entities: List[TaggedEntity] = field(default_factory=list)
    relationships: List[TaggedRelationship] = field(default_factory=list)
    sentiment: Optional[SentimentResult] = None
    id: str = field(default_factory=new_id)
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'url': self.url,
            'title': self.title,
            'content': self.content,
            'word_count': self.word_count,
            'depth': self.depth,
            'category': self.category,
            'links': list(self.links),
            'images': list(self.images),
            'entities': [e.to_dict() for e in self.entities],
            'relationships': [r.to_dict() for r in self.relationships],
            'sentiment': asdict(self.sentiment) if self.sentiment else None,
            'created_at': self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Document':
        data = dict(data)
        data['entities'] = [
            TaggedEntity(
                text=e['text'], label=EntityLabel(e['label']),
                start=e['start'], end=e['end'], confidence=e['confidence']
            )
            for e in data.get('entities', [])
        ]
        data['relationships'] = [
            TaggedRelationship(
                source=r['source'], target=r['target'],
                relationship_type=r['relationshipType'], confidence=r['confidence']
            )
            for r in data.get('relationships', [])
        ]
        if data.get('sentiment'):
            data['sentiment'] = SentimentResult(**data['sentiment'])
        return cls(**data)


@dataclass
class Entity:
    """An entity merged across all documents of a project."""
    project_id: str
    name: str
    type: str
    frequency: int = 1
    document_ids: List[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'Entity':
        return cls(**data)


@dataclass
class Relationship:
    project_id: str
    source_entity: str
    target_entity: str
    relationship_type: str
    document_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'Relationship':
        return cls(**data)


@dataclass
class ExportRequest:
    """Options for one export."""
    format: ExportFormat
    include_content: bool = True
    include_relationships: bool = True
    include_images: bool = False
    metadata_only: bool = False


@dataclass
class ExportRecord:
    project_id: str
    format: ExportFormat
    file_name: str
    status: ExportStatus = ExportStatus.GENERATING
    file_size: Optional[int] = None
    download_url: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        data = asdict(self)
        data['format'] = self.format.value
        data['status'] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'ExportRecord':
        data = dict(data)
        data['format'] = ExportFormat(data['format'])
        data['status'] = ExportStatus(data['status'])
        return cls(**data)


@dataclass
class ProjectStats:
    total_documents: int = 0
    total_entities: int = 0
    total_relationships: int = 0
    entity_types: Dict[str, int] = field(default_factory=dict)
    relationship_types: Dict[str, int] = field(default_factory=dict)
