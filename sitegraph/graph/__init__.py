"""
Entity graph construction and serialization.
"""

from .builder import GraphBuilder, GraphData, GraphEdge, GraphFilter, GraphNode, GraphStatistics

__all__ = ['GraphBuilder', 'GraphData', 'GraphEdge', 'GraphFilter', 'GraphNode', 'GraphStatistics']
