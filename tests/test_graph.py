# File: tests/test_graph.py
import pytest
from lxml import etree

from sitegraph.graph.builder import GraphBuilder, GraphFilter
from sitegraph.storage.models import Entity, Relationship


@pytest.fixture()
def graph():
    entities = [
        Entity("p1", "Alice", "PERSON", frequency=30, document_ids=["d1", "d2"]),
        Entity("p1", "Acme", "ORG", frequency=3),
        Entity("p1", "Bob", "PERSON"),
        Entity("p1", "Paris", "GPE"),
        Entity("p1", "Thing", "WIDGET"),
    ]
    relationships = [
        Relationship("p1", "Alice", "Acme", "WORKS_FOR", "d1"),
        Relationship("p1", "Bob", "Acme", "WORKS_FOR"),
        Relationship("p1", "Acme", "Paris", "LOCATED_IN"),
    ]
    return GraphBuilder().build(entities, relationships)


def test_nodes_sizes_and_colours(graph):
    nodes = {n.id: n for n in graph.nodes}

    assert nodes["Alice"].size == 50
    assert nodes["Acme"].size == 10
    assert nodes["Alice"].color == "#3498db"
    assert nodes["Thing"].color == "#95a5a6"
    assert nodes["Alice"].to_dict()["properties"]["documentCount"] == 2


def test_edges_and_statistics(graph):
    assert [e.id for e in graph.edges] == ["edge_0", "edge_1", "edge_2"]
    assert graph.edges[0].to_dict()["from"] == "Alice"

    stats = graph.statistics.to_dict()
    assert stats == {
        "nodeCount": 5,
        "edgeCount": 3,
        "connectedComponents": 2,
        "averageDegree": 1.2,
        "density": 0.3,
    }


def test_empty_graph_statistics():
    stats = GraphBuilder().build([], []).statistics
    assert stats.node_count == 0
    assert stats.average_degree == 0.0
    assert stats.density == 0.0
    assert stats.connected_components == 0


def test_filter_by_type_keeps_edges_between_kept_nodes(graph):
    filtered = GraphBuilder().filter(graph, GraphFilter(node_types=["PERSON", "ORG"]))

    assert sorted(n.id for n in filtered.nodes) == ["Acme", "Alice", "Bob"]
    assert [e.type for e in filtered.edges] == ["WORKS_FOR", "WORKS_FOR"]
    assert filtered.statistics.node_count == 3


def test_filter_by_frequency_search_and_relationship(graph):
    builder = GraphBuilder()
    assert [n.id for n in builder.filter(graph, GraphFilter(min_frequency=3)).nodes] == ["Alice", "Acme"]
    assert [n.id for n in builder.filter(graph, GraphFilter(search_query="AC")).nodes] == ["Acme"]

    located = builder.filter(graph, GraphFilter(relationship_types=["LOCATED_IN"]))
    assert len(located.nodes) == 5
    assert [e.id for e in located.edges] == ["edge_2"]


def test_neighbors(graph):
    builder = GraphBuilder()
    one_hop = builder.neighbors("Alice", graph, depth=1)
    assert sorted(n.id for n in one_hop.nodes) == ["Acme", "Alice"]

    two_hops = builder.neighbors("Alice", graph, depth=2)
    assert sorted(n.id for n in two_hops.nodes) == ["Acme", "Alice", "Bob", "Paris"]
    assert len(two_hops.edges) == 3


def test_cypher_variants(graph):
    builder = GraphBuilder()
    entities = builder.to_cypher(graph, "entities")
    assert entities.count("MERGE (") == 5
    assert entities.endswith(";")

    relationships = builder.to_cypher(graph, "relationships")
    assert 'MATCH (a:Entity {name: "Alice"}), (b:Entity {name: "Acme"}) MERGE (a)-[:WORKS_FOR]->(b)' in relationships

    assert "MATCH path" in builder.to_cypher(graph, "paths")
    with pytest.raises(ValueError):
        builder.to_cypher(graph, "bogus")


def test_cypher_escapes_quotes():
    graph = GraphBuilder().build([Entity("p1", 'The "Big" One', "ORG")], [])
    assert 'name: "The \\"Big\\" One"' in GraphBuilder().to_cypher(graph, "entities")


def test_gexf_is_well_formed(graph):
    xml = GraphBuilder().to_gexf(graph)
    root = etree.fromstring(xml.encode("utf-8"))
    ns = {"g": "http://www.gexf.net/1.2draft"}

    assert len(root.findall(".//g:node", ns)) == 5
    assert len(root.findall(".//g:edge", ns)) == 3
    alice = root.find(".//g:node[@id='Alice']", ns)
    assert alice.find(".//g:attvalue[@for='frequency']", ns).get("value") == "30"


def test_cypher_of_empty_graph_has_no_statements():
    builder = GraphBuilder()
    empty = builder.build([], [])

    assert builder.to_cypher(empty, "entities") == ""
    assert builder.to_cypher(empty, "relationships") == ""
    assert ";" not in builder.to_cypher(empty, "all")
