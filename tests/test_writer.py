"""Tests for regenerating canonical diagram text from a graph store."""

from diagram_sync.graph_store import GraphStore
from diagram_sync.parser import parse_diagram
from diagram_sync.writer import detect_direction, write_document, write_topology


def store_from(text: str, marker: str = "%%") -> GraphStore:
    result = parse_diagram(text, marker)
    store = GraphStore()
    for node in result.nodes:
        store.upsert_node_from_parse_result(node)
    for edge in result.edges:
        store.upsert_edge_from_parse_result(edge)
    return store


def node_view(store):
    return {
        n.text_id: (n.stable_id, n.label, n.x, n.y, n.kind)
        for n in store.active_nodes()
    }


def edge_view(store):
    return {
        e.stable_id: (
            store.get_node(e.source_id).text_id,
            store.get_node(e.target_id).text_id,
            e.label,
        )
        for e in store.active_edges()
    }


class TestWriteDocument:
    def test_round_trip_keeps_identities_and_metadata(self, sample_store):
        reparsed = store_from(write_document(sample_store))

        assert node_view(reparsed) == node_view(sample_store)
        assert edge_view(reparsed) == edge_view(sample_store)

    def test_rewriting_is_stable(self, sample_store):
        text = write_document(sample_store)
        assert write_document(store_from(text)) == text

    def test_layout(self, sample_store):
        text = write_document(sample_store)
        a = sample_store.node_for_text_id("A")

        assert text.startswith("graph TD\nA[Start] --> B[Processing]\nB --> C[End]\n\n")
        assert f'%% @node: A {{"uid":"{a.stable_id}","x":100,"y":100}}' in text
        assert '"x":300,"y":100,"kind":"note"}' in text
        assert "%% @edge: e1 " in text
        assert "%% @edge: e2 " in text
        assert text.endswith("\n")

    def test_edge_labels_and_unconnected_nodes(self):
        store = store_from("graph LR\nA -->|yes| B\nC\n")
        text = write_document(store, "LR")

        assert text.startswith("graph LR\nA -->|yes| B\nC\n\n")
        reparsed = store_from(text)
        assert edge_view(reparsed) == edge_view(store)
        assert list(edge_view(reparsed).values()) == [("A", "B", "yes")]

    def test_extra_metadata_is_kept(self):
        store = store_from('graph TD\nA\n%% @node: A {"kind":"code","language":"python","x":1,"y":2}\n')
        text = write_document(store)

        assert '"x":1,"y":2,"kind":"code","language":"python"}' in text
        assert store_from(text).node_for_text_id("A").metadata["language"] == "python"

    def test_edges_to_missing_nodes_are_skipped(self):
        store = GraphStore()
        store.ensure_node("A")
        store.upsert_edge("n_gone", "n_missing")
        text = write_document(store)

        assert "@edge" not in text
        assert text.startswith("graph TD\nA\n\n")

    def test_custom_marker(self, sample_store):
        text = write_document(sample_store, marker="#")

        assert "%%" not in text
        assert node_view(store_from(text, "#")) == node_view(sample_store)


class TestTopology:
    def test_topology_has_no_directives(self, sample_store):
        assert write_topology(sample_store) == "graph TD\nA[Start] --> B[Processing]\nB --> C[End]\n"

    def test_detect_direction(self):
        assert detect_direction("%% title\nflowchart LR\nA --> B\n") == "LR"
        assert detect_direction("graph BT\n") == "BT"
        assert detect_direction("A --> B\n") == "TD"
