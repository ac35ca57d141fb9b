"""
Pattern-based entity and relationship tagging.

This is deliberately simple fixed-regex matching, not a language model: it
recognises capitalised name shapes, organisation suffixes, a short list of
places and dates, plus a handful of verb phrases linking two noun phrases.
"""

import re
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Pattern, Tuple


class EntityLabel(str, Enum):
    PERSON = "PERSON"
    ORG = "ORG"
    GPE = "GPE"
    NORP = "NORP"
    DATE = "DATE"
    TOPIC = "TOPIC"


@dataclass(frozen=True)
class TaggedEntity:
    text: str
    label: EntityLabel
    start: int
    end: int
    confidence: float = 0.8

    def to_dict(self) -> dict:
        return {
            'text': self.text,
            'label': self.label.value,
            'start': self.start,
            'end': self.end,
            'confidence': self.confidence,
        }


@dataclass(frozen=True)
class TaggedRelationship:
    source: str
    target: str
    relationship_type: str
    confidence: float = 0.7

    def to_dict(self) -> dict:
        return {
            'source': self.source,
            'target': self.target,
            'relationshipType': self.relationship_type,
            'confidence': self.confidence,
        }


@dataclass
class TaggingResult:
    entities: List[TaggedEntity] = field(default_factory=list)
    relationships: List[TaggedRelationship] = field(default_factory=list)


ENTITY_PATTERNS: Dict[EntityLabel, List[Pattern]] = {
    EntityLabel.PERSON: [
        re.compile(r'\b(?:Dr\.|Prof\.|Mr\.|Mrs\.|Ms\.) ([A-Z][a-z]+ [A-Z][a-z]+)\b'),
        re.compile(r'\b([A-Z][a-z]+ [A-Z][a-z]+)\b'),
    ],
    EntityLabel.ORG: [
        re.compile(r'\b([A-Z][a-z]+ (?:University|College|Institute|Corporation|Company|Inc\.|LLC|Ltd\.))'),
        re.compile(r'\b([A-Z][A-Z]+ [A-Z][a-z]+)\b'),
    ],
    EntityLabel.GPE: [
        re.compile(r'\b([A-Z][a-z]+ (?:City|State|Country|Province|County))\b'),
        re.compile(r'\b(United States|United Kingdom|New York|California|London|Paris|Tokyo)\b'),
    ],
    EntityLabel.NORP: [
        re.compile(r'\b(American|British|French|German|Italian|Spanish|Chinese|Japanese|'
                   r'Russian|Indian|Canadian|Mexican|Brazilian|Christian|Muslim|Jewish|'
                   r'Buddhist|Hindu|Republican|Democrat(?:ic)?)\b'),
    ],
    EntityLabel.DATE: [
        re.compile(r'\b(\d{1,2}/\d{1,2}/\d{4})\b'),
        re.compile(r'\b((?:January|February|March|April|May|June|July|August|September|'
                   r'October|November|December) \d{1,2}, \d{4})\b'),
    ],
}

RELATIONSHIP_PATTERNS: List[Tuple[Pattern, str]] = [
    (re.compile(r'(.+?) (?:works for|employed by|works at) (.+?)(?:,|$)', re.IGNORECASE), 'WORKS_FOR'),
    (re.compile(r'(.+?) (?:founded|established|created) (.+?)(?:,|$)', re.IGNORECASE), 'FOUNDED'),
    (re.compile(r'(.+?) (?:located in|based in|situated in) (.+?)(?:,|$)', re.IGNORECASE), 'LOCATED_IN'),
    (re.compile(r'(.+?) (?:collaborated with|worked with|partnered with) (.+?)(?:,|$)', re.IGNORECASE),
     'COLLABORATED_WITH'),
    (re.compile(r'(.+?) (?:graduated from|studied at|attended) (.+?)(?:,|$)', re.IGNORECASE), 'EDUCATED_AT'),
]

BIRTHPLACE_PATTERN = re.compile(r'(?:born in|from) ([A-Z][a-z]+(?: [A-Z][a-z]+)*)')
SENTENCE_SPLIT = re.compile(r'[.!?;]+')


class EntityTagger:
    """Tags entities and relationships in page text."""

    ENTITY_TEXT_LIMIT = 10000
    RELATIONSHIP_TEXT_LIMIT = 5000
    ENTITY_CONFIDENCE = 0.8
    TOPIC_CONFIDENCE = 0.9
    RELATIONSHIP_CONFIDENCE = 0.7
    BIRTHPLACE_CONFIDENCE = 0.8

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def extract(self, text: str, title_hint: str = "") -> TaggingResult:
        """Tag entities and relationships in text."""
        return TaggingResult(
            entities=self.extract_entities(text, title_hint),
            relationships=self.extract_relationships(text, title_hint),
        )

    def extract_entities(self, text: str, title_hint: str = "") -> List[TaggedEntity]:
        """
        Match every entity pattern against the first ENTITY_TEXT_LIMIT chars.

        Entities are deduplicated case-insensitively (a later match keeps the
        earlier position in the list but replaces its span) and sorted by
        confidence, highest first.
        """
        text = (text or "")[:self.ENTITY_TEXT_LIMIT]
        found: List[TaggedEntity] = []

        for label, patterns in ENTITY_PATTERNS.items():
            for pattern in patterns:
                for match in pattern.finditer(text):
                    group = match.lastindex or 0
                    entity_text = match.group(group).strip()
                    if 2 < len(entity_text) < 100:
                        found.append(TaggedEntity(
                            text=entity_text,
                            label=label,
                            start=match.start(group),
                            end=match.end(group),
                            confidence=self.ENTITY_CONFIDENCE,
                        ))

        if title_hint and title_hint[0].isupper():
            found.append(TaggedEntity(
                text=title_hint,
                label=EntityLabel.TOPIC,
                start=0,
                end=len(title_hint),
                confidence=self.TOPIC_CONFIDENCE,
            ))

        unique: Dict[str, TaggedEntity] = {}
        for entity in found:
            unique[entity.text.lower()] = entity

        return sorted(unique.values(), key=lambda e: e.confidence, reverse=True)

    def extract_relationships(self, text: str, title_hint: str = "") -> List[TaggedRelationship]:
        """Match relationship phrases sentence by sentence."""
        text = (text or "")[:self.RELATIONSHIP_TEXT_LIMIT]
        sentences = [s.strip() for s in SENTENCE_SPLIT.split(text) if s.strip()]
        relationships: List[TaggedRelationship] = []

        for sentence in sentences:
            for pattern, relationship_type in RELATIONSHIP_PATTERNS:
                match = pattern.search(sentence)
                if not match:
                    continue
                source, target = match.group(1).strip(), match.group(2).strip()
                if 2 < len(source) < 100 and 2 < len(target) < 100:
                    relationships.append(TaggedRelationship(
                        source=source,
                        target=target,
                        relationship_type=relationship_type,
                        confidence=self.RELATIONSHIP_CONFIDENCE,
                    ))

        if title_hint:
            lower_title = title_hint.lower()
            for sentence in sentences:
                if lower_title not in sentence.lower():
                    continue
                location = BIRTHPLACE_PATTERN.search(sentence)
                if location:
                    relationships.append(TaggedRelationship(
                        source=title_hint,
                        target=location.group(1),
                        relationship_type='BORN_IN',
                        confidence=self.BIRTHPLACE_CONFIDENCE,
                    ))

        unique: Dict[Tuple[str, str, str], TaggedRelationship] = {}
        for rel in relationships:
            unique.setdefault((rel.source, rel.target, rel.relationship_type), rel)
        return list(unique.values())
