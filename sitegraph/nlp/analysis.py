"""
Word-list sentiment scoring and keyword topic grouping.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, List

POSITIVE_WORDS = frozenset([
    'good', 'great', 'excellent', 'amazing', 'wonderful', 'fantastic', 'outstanding', 'brilliant'
])
NEGATIVE_WORDS = frozenset([
    'bad', 'terrible', 'awful', 'horrible', 'disgusting', 'hate', 'worst', 'disappointing'
])

TOPIC_SEEDS = {
    'Technology': ['technology', 'computer', 'software', 'digital', 'internet', 'data'],
    'Science': ['research', 'study', 'analysis', 'theory', 'experiment', 'discovery'],
}

NEUTRAL_BAND = 0.1
TOP_KEYWORDS = 20


@dataclass(frozen=True)
class SentimentResult:
    sentiment: str  # positive, negative, neutral
    score: float


@dataclass
class Topic:
    topic: str
    keywords: List[str] = field(default_factory=list)
    document_count: int = 0


def analyze_sentiment(text: str) -> SentimentResult:
    """Score text by counting positive and negative words."""
    words = (text or "").lower().split()
    positive = sum(1 for word in words if word in POSITIVE_WORDS)
    negative = sum(1 for word in words if word in NEGATIVE_WORDS)

    total = positive + negative
    if total == 0:
        return SentimentResult('neutral', 0.0)

    score = (positive - negative) / total
    if score > NEUTRAL_BAND:
        return SentimentResult('positive', score)
    if score < -NEUTRAL_BAND:
        return SentimentResult('negative', score)
    return SentimentResult('neutral', score)


def extract_topics(contents: Iterable[str]) -> List[Topic]:
    """Group the most frequent keywords across documents under fixed topics."""
    contents = list(contents)
    words = re.sub(r'[^\w\s]', ' ', ' '.join(contents).lower()).split()
    frequency = Counter(word for word in words if len(word) > 3)
    top_words = [word for word, _ in frequency.most_common(TOP_KEYWORDS)]

    topics = []
    for name, seeds in TOPIC_SEEDS.items():
        keywords = [word for word in top_words if any(seed in word for seed in seeds)]
        if keywords:
            topics.append(Topic(topic=name, keywords=keywords, document_count=len(contents)))
    return topics
