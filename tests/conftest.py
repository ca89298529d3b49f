"""Pytest configuration and fixtures for diagram sync tests."""

import logging
from pathlib import Path

import pytest

from diagram_sync.config import get_config
from diagram_sync.graph_store import GraphStore
from diagram_sync.parser import parse_diagram


SAMPLE_TEXT = """graph TD
A[Start] --> B[Processing]
B --> C[End]
%% @node: A {"x":100,"y":100}
%% @node: B {"x":300,"y":100,"kind":"note"}
"""


@pytest.fixture(autouse=True)
def _clean_config(monkeypatch):
    """Isolate tests from DIAGRAM_SYNC_* variables and the cached config."""
    for key in (
        "DIAGRAM_SYNC_DEBOUNCE_MS",
        "DIAGRAM_SYNC_COMMENT_MARKER",
        "DIAGRAM_SYNC_LAYOUT",
        "DIAGRAM_SYNC_ROOT_TITLE",
        "DIAGRAM_SYNC_LOG_LEVEL",
        "DIAGRAM_SYNC_HOST",
        "DIAGRAM_SYNC_PORT",
    ):
        monkeypatch.delenv(key, raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Undo setup_logging so caplog sees package records in every test."""
    yield
    package_logger = logging.getLogger("diagram_sync")
    package_logger.handlers.clear()
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


@pytest.fixture
def sample_text() -> str:
    return SAMPLE_TEXT


@pytest.fixture
def sample_store(sample_text: str) -> GraphStore:
    """A GraphStore built from the sample diagram."""
    result = parse_diagram(sample_text)
    store = GraphStore()
    for node in result.nodes:
        store.upsert_node_from_parse_result(node)
    for edge in result.edges:
        store.upsert_edge_from_parse_result(edge)
    return store


@pytest.fixture
def diagram_file(tmp_path: Path, sample_text: str) -> Path:
    """The sample diagram written to a temporary file."""
    path = tmp_path / "diagram.mmd"
    path.write_text(sample_text, encoding="utf-8")
    return path
