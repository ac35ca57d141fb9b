"""
Text analysis for crawled pages.
"""

from .tagger import EntityTagger, EntityLabel, TaggedEntity, TaggedRelationship, TaggingResult
from .analysis import analyze_sentiment, extract_topics, SentimentResult, Topic

__all__ = [
    'EntityTagger', 'EntityLabel', 'TaggedEntity', 'TaggedRelationship', 'TaggingResult',
    'analyze_sentiment', 'extract_topics', 'SentimentResult', 'Topic'
]
