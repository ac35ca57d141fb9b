"""
Knowledge graph assembly from stored entities and relationships.
"""

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from lxml import etree


COLOR_MAP = {
    'PERSON': '#3498db',
    'ORG': '#2ecc71',
    'GPE': '#f39c12',
    'NORP': '#9b59b6',
    'DATE': '#e74c3c',
    'TOPIC': '#1abc9c',
}
DEFAULT_COLOR = '#95a5a6'

MIN_NODE_SIZE = 10
MAX_NODE_SIZE = 50

GEXF_NAMESPACE = "http://www.gexf.net/1.2draft"

PATHS_CYPHER = """// Find all paths between entities
MATCH path = (a:Entity)-[*1..3]-(b:Entity)
WHERE a.name <> b.name
RETURN path
LIMIT 100;

// Find most connected entities
MATCH (n:Entity)
RETURN n.name, n.type, size((n)--()) as connections
ORDER BY connections DESC
LIMIT 20;

// Find entities by type
MATCH (n:Entity)
WHERE n.type = 'PERSON'
RETURN n.name, n.frequency
ORDER BY n.frequency DESC;
"""


@dataclass
class GraphNode:
    id: str
    label: str
    type: str
    frequency: int = 1
    document_count: int = 0
    entity_id: Optional[str] = None
    size: int = MIN_NODE_SIZE
    color: str = DEFAULT_COLOR

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'label': self.label,
            'type': self.type,
            'properties': {
                'frequency': self.frequency,
                'documentCount': self.document_count,
                'entityId': self.entity_id,
            },
            'size': self.size,
            'color': self.color,
        }


@dataclass
class GraphEdge:
    id: str
    source: str
    target: str
    type: str
    relationship_id: Optional[str] = None
    document_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'from': self.source,
            'to': self.target,
            'label': self.type,
            'type': self.type,
            'properties': {
                'relationshipId': self.relationship_id,
                'documentId': self.document_id,
            },
        }


@dataclass
class GraphStatistics:
    node_count: int = 0
    edge_count: int = 0
    connected_components: int = 0
    average_degree: float = 0.0
    density: float = 0.0

    def to_dict(self) -> dict:
        return {
            'nodeCount': self.node_count,
            'edgeCount': self.edge_count,
            'connectedComponents': self.connected_components,
            'averageDegree': self.average_degree,
            'density': self.density,
        }


@dataclass
class GraphData:
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)
    statistics: GraphStatistics = field(default_factory=GraphStatistics)

    def to_dict(self) -> dict:
        return {
            'nodes': [n.to_dict() for n in self.nodes],
            'edges': [e.to_dict() for e in self.edges],
            'statistics': self.statistics.to_dict(),
        }


@dataclass
class GraphFilter:
    node_types: List[str] = field(default_factory=list)
    relationship_types: List[str] = field(default_factory=list)
    min_frequency: int = 0
    search_query: str = ""


def _sanitize_identifier(label: str) -> str:
    return re.sub(r'[^a-zA-Z0-9_]', '_', label)


def _cypher_string(value: str) -> str:
    return '"' + value.replace('\\', '\\\\').replace('"', '\\"') + '"'


class GraphBuilder:
    """Builds, filters and serializes entity graphs."""

    def build(self, entities: Iterable, relationships: Iterable) -> GraphData:
        """Nodes from stored entities, edges from stored relationships."""
        nodes = [
            GraphNode(
                id=entity.name,
                label=entity.name,
                type=entity.type,
                frequency=entity.frequency or 1,
                document_count=len(entity.document_ids),
                entity_id=entity.id,
                size=max(MIN_NODE_SIZE, min(MAX_NODE_SIZE, (entity.frequency or 1) * 2)),
                color=COLOR_MAP.get(entity.type, DEFAULT_COLOR),
            )
            for entity in entities
        ]
        edges = [
            GraphEdge(
                id=f"edge_{index}",
                source=rel.source_entity,
                target=rel.target_entity,
                type=rel.relationship_type,
                relationship_id=rel.id,
                document_id=rel.document_id,
            )
            for index, rel in enumerate(relationships)
        ]
        return GraphData(nodes=nodes, edges=edges, statistics=self.statistics(nodes, edges))

    def statistics(self, nodes: List[GraphNode], edges: List[GraphEdge]) -> GraphStatistics:
        """
        Compute graph statistics.

        Degrees count edge endpoints, including endpoints that do not name a
        node, so the average degree can exceed what the node list alone
        suggests. Density treats the graph as undirected.
        """
        node_count = len(nodes)
        edge_count = len(edges)

        degrees: Dict[str, int] = {node.id: 0 for node in nodes}
        for edge in edges:
            degrees[edge.source] = degrees.get(edge.source, 0) + 1
            degrees[edge.target] = degrees.get(edge.target, 0) + 1

        average_degree = sum(degrees.values()) / node_count if node_count else 0.0
        max_edges = node_count * (node_count - 1) / 2
        density = edge_count / max_edges if max_edges else 0.0

        return GraphStatistics(
            node_count=node_count,
            edge_count=edge_count,
            connected_components=self._count_components(nodes, edges),
            average_degree=round(average_degree, 2),
            density=round(density, 2),
        )

    def _count_components(self, nodes: List[GraphNode], edges: List[GraphEdge]) -> int:
        adjacency: Dict[str, Set[str]] = {node.id: set() for node in nodes}
        for edge in edges:
            if edge.source in adjacency and edge.target in adjacency:
                adjacency[edge.source].add(edge.target)
                adjacency[edge.target].add(edge.source)

        visited: Set[str] = set()
        components = 0
        for node in nodes:
            if node.id in visited:
                continue
            components += 1
            stack = [node.id]
            while stack:
                current = stack.pop()
                if current in visited:
                    continue
                visited.add(current)
                stack.extend(adjacency[current] - visited)
        return components

    def filter(self, graph: GraphData, graph_filter: GraphFilter) -> GraphData:
        """Keep matching nodes, then only the edges between kept nodes."""
        nodes = graph.nodes
        if graph_filter.node_types:
            nodes = [n for n in nodes if n.type in graph_filter.node_types]
        if graph_filter.min_frequency:
            nodes = [n for n in nodes if n.frequency >= graph_filter.min_frequency]
        if graph_filter.search_query:
            query = graph_filter.search_query.lower()
            nodes = [n for n in nodes if query in n.label.lower()]

        node_ids = {n.id for n in nodes}
        edges = [e for e in graph.edges if e.source in node_ids and e.target in node_ids]
        if graph_filter.relationship_types:
            edges = [e for e in edges if e.type in graph_filter.relationship_types]

        return GraphData(nodes=nodes, edges=edges, statistics=self.statistics(nodes, edges))

    def neighbors(self, node_id: str, graph: GraphData, depth: int = 1) -> GraphData:
        """Nodes and edges reachable from node_id within depth hops."""
        nodes_by_id = {n.id: n for n in graph.nodes}
        adjacency = defaultdict(list)
        for edge in graph.edges:
            adjacency[edge.source].append(edge)
            adjacency[edge.target].append(edge)

        result_nodes: Dict[str, GraphNode] = {}
        result_edges: Dict[str, GraphEdge] = {}
        if node_id in nodes_by_id:
            result_nodes[node_id] = nodes_by_id[node_id]

        frontier = [node_id]
        seen = {node_id}
        for _ in range(depth):
            next_frontier = []
            for current in frontier:
                for edge in adjacency[current]:
                    result_edges.setdefault(edge.id, edge)
                    neighbor = edge.target if edge.source == current else edge.source
                    if neighbor not in nodes_by_id:
                        continue
                    result_nodes.setdefault(neighbor, nodes_by_id[neighbor])
                    if neighbor not in seen:
                        seen.add(neighbor)
                        next_frontier.append(neighbor)
            frontier = next_frontier

        nodes = list(result_nodes.values())
        edges = list(result_edges.values())
        return GraphData(nodes=nodes, edges=edges, statistics=self.statistics(nodes, edges))

    def to_cypher(self, graph: GraphData, query_type: str = "all") -> str:
        """Render the graph as Cypher statements: all, entities, relationships or paths."""
        if query_type == "entities":
            return self._entities_cypher(graph.nodes)
        if query_type == "relationships":
            return self._relationships_cypher(graph.edges)
        if query_type == "paths":
            return PATHS_CYPHER
        if query_type != "all":
            raise ValueError(f"Unknown Cypher query type: {query_type}")
        return (
            f"// Create entities\n{self._entities_cypher(graph.nodes)}\n\n"
            f"// Create relationships\n{self._relationships_cypher(graph.edges)}"
        )

    def _entities_cypher(self, nodes: List[GraphNode]) -> str:
        if not nodes:
            return ""
        statements = [
            f"MERGE ({_sanitize_identifier(node.id)}:Entity {{"
            f"name: {_cypher_string(node.label)}, "
            f"type: {_cypher_string(node.type)}, "
            f"frequency: {node.frequency}}})"
            for node in nodes
        ]
        return ";\n".join(statements) + ";"

    def _relationships_cypher(self, edges: List[GraphEdge]) -> str:
        if not edges:
            return ""
        statements = [
            f"MATCH (a:Entity {{name: {_cypher_string(edge.source)}}}), "
            f"(b:Entity {{name: {_cypher_string(edge.target)}}}) "
            f"MERGE (a)-[:{_sanitize_identifier(edge.type)}]->(b)"
            for edge in edges
        ]
        return ";\n".join(statements) + ";"

    def to_gexf(self, graph: GraphData) -> str:
        """Serialize the graph as a GEXF 1.2 document."""
        root = etree.Element("gexf", nsmap={None: GEXF_NAMESPACE}, version="1.2")
        graph_el = etree.SubElement(root, "graph", mode="static", defaultedgetype="directed")

        attributes = etree.SubElement(graph_el, "attributes", {"class": "node"})
        etree.SubElement(attributes, "attribute", id="type", title="Type", type="string")
        etree.SubElement(attributes, "attribute", id="frequency", title="Frequency", type="integer")

        nodes_el = etree.SubElement(graph_el, "nodes")
        for node in graph.nodes:
            node_el = etree.SubElement(nodes_el, "node", id=node.id, label=node.label)
            values = etree.SubElement(node_el, "attvalues")
            etree.SubElement(values, "attvalue", {"for": "type", "value": node.type})
            etree.SubElement(values, "attvalue", {"for": "frequency", "value": str(node.frequency)})

        edges_el = etree.SubElement(graph_el, "edges")
        for edge in graph.edges:
            etree.SubElement(
                edges_el, "edge", id=edge.id, source=edge.source, target=edge.target, label=edge.type
            )

        return etree.tostring(
            root, pretty_print=True, xml_declaration=True, encoding="UTF-8"
        ).decode("utf-8")
