"""
sitegraph

Crawls a single site breadth-first, stores its pages and builds an entity
graph from them.
"""

__version__ = "1.0.0"
__description__ = "Single-site crawler that turns pages into documents, entities and relationships"
