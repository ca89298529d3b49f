"""Tests for reading and rewriting node directives."""

import pytest

from diagram_sync.directives import (
    DirectiveCodec,
    DirectiveStatus,
    format_directive,
    merge_patch,
    parse_directive_body,
    parse_loose_position,
    upsert_node_directive,
)


@pytest.fixture
def codec() -> DirectiveCodec:
    return DirectiveCodec()


class TestFind:
    def test_found(self, codec):
        text = 'graph TD\nA-->B\n%% @node: A {"x":10,"y":20,"kind":"note"}\n'
        lookup = codec.find(text, "A")

        assert lookup.status == DirectiveStatus.FOUND
        assert lookup.exists
        assert lookup.body == {"x": 10, "y": 20, "kind": "note"}

    def test_missing(self, codec):
        lookup = codec.find("graph TD\nA-->B\n", "A")
        assert lookup.status == DirectiveStatus.MISSING
        assert codec.read("graph TD\nA-->B\n", "A") == {}

    def test_malformed_body_recovers_position(self, codec):
        text = "%% @node: A {x: 10, y: -20.5,}\n"
        lookup = codec.find(text, "A")

        assert lookup.status == DirectiveStatus.MALFORMED
        assert lookup.body == {"x": 10, "y": -20.5}

    def test_id_must_match_exactly(self, codec):
        text = '%% @node: AB {"x":1}\n%% @node: aXb {"x":2}\n'
        assert codec.find(text, "A").status == DirectiveStatus.MISSING
        assert codec.find(text, "a.b").status == DirectiveStatus.MISSING
        assert codec.read(text, "AB") == {"x": 1}

    def test_whitespace_is_flexible(self, codec):
        text = '  %%@node:A   {"x":3}   \n'
        assert codec.read(text, "A") == {"x": 3}

    def test_last_duplicate_wins(self, codec):
        text = '%% @node: A {"x":1}\n%% @node: A {"x":2}\n'
        assert codec.read(text, "A") == {"x": 2}


class TestUpsert:
    def test_appends_when_missing(self, codec):
        result = codec.upsert("graph TD\nA-->B", "A", {"x": 10, "y": 20})
        assert result == 'graph TD\nA-->B\n%% @node: A {"x":10,"y":20}\n'

    def test_append_strips_trailing_whitespace(self, codec):
        result = codec.upsert("graph TD\nA-->B\n\n\n", "A", {"x": 1})
        assert result == 'graph TD\nA-->B\n%% @node: A {"x":1}\n'

    def test_append_to_empty_text(self, codec):
        assert codec.upsert("", "A", {"x": 1}) == '%% @node: A {"x":1}\n'

    def test_second_upsert_rewrites_single_line(self, codec):
        text = codec.upsert("graph TD\nA-->B\n", "A", {"x": 10, "y": 20})
        text = codec.upsert(text, "A", {"x": 10, "y": 99})

        assert text.count("@node: A") == 1
        assert '%% @node: A {"x":10,"y":99}' in text

    def test_merge_keeps_unpatched_keys(self, codec):
        text = 'graph TD\nA\n%% @node: A {"x":1,"y":2,"kind":"note"}\n'
        result = codec.upsert(text, "A", {"x": 5})
        assert codec.read(result, "A") == {"x": 5, "y": 2, "kind": "note"}

    def test_nested_objects_merge_one_level(self, codec):
        text = '%% @node: A {"diagram":{"title":"Sub","mermaidman":"graph TD\\nZ\\n"}}\n'
        result = codec.upsert(text, "A", {"diagram": {"title": "Renamed"}})

        assert codec.read(result, "A")["diagram"] == {
            "title": "Renamed",
            "mermaidman": "graph TD\nZ\n",
        }

    def test_rewrite_in_place_preserves_other_lines(self, codec):
        text = 'graph TD\n%% @node: A {"x":1}\nA-->B\n%% keep me\n'
        result = codec.upsert(text, "A", {"y": 2})
        assert result == 'graph TD\n%% @node: A {"x":1,"y":2}\nA-->B\n%% keep me\n'

    def test_malformed_line_is_replaced_with_valid_json(self, codec):
        text = "%% @node: A {x: 10, y: 20\n"
        result = codec.upsert(text, "A", {"kind": "note"})

        assert result == '%% @node: A {"x":10,"y":20,"kind":"note"}\n'
        assert codec.find(result, "A").status == DirectiveStatus.FOUND

    def test_rewrites_last_duplicate(self, codec):
        text = '%% @node: A {"x":1}\n%% @node: A {"x":2}\n'
        result = codec.upsert(text, "A", {"y": 3})
        assert result == '%% @node: A {"x":1}\n%% @node: A {"x":2,"y":3}\n'

    def test_non_ascii_is_kept_readable(self, codec):
        result = codec.upsert("", "A", {"title": "Überblick"})
        assert "Überblick" in result

    def test_custom_marker(self):
        codec = DirectiveCodec("#")
        result = codec.upsert("graph TD\nA", "A", {"x": 1})

        assert result.endswith('# @node: A {"x":1}\n')
        assert codec.read(result, "A") == {"x": 1}
        assert DirectiveCodec().read(result, "A") == {}

    def test_empty_marker_rejected(self):
        with pytest.raises(ValueError):
            DirectiveCodec("")

    def test_module_level_upsert(self):
        assert upsert_node_directive("", "A", {"x": 1}) == '%% @node: A {"x":1}\n'


class TestOtherOperations:
    def test_remove(self, codec):
        text = 'graph TD\n%% @node: A {"x":1}\nA-->B\n%% @node: B {"x":2}\n'
        assert codec.remove(text, "A") == 'graph TD\nA-->B\n%% @node: B {"x":2}\n'

    def test_iter_directives(self, codec):
        text = (
            "graph TD\n"
            'A-->B\n'
            '%% @node: A {"x":1}\n'
            '%% @edge: e1 {"source":"A","target":"B"}\n'
            "%% plain comment\n"
            "%% @node: B {broken\n"
        )
        directives = list(codec.iter_directives(text))

        assert [(d.tag, d.text_id, d.line_number) for d in directives] == [
            ("node", "A", 3),
            ("edge", "e1", 4),
            ("node", "B", 6),
        ]
        assert directives[2].status == DirectiveStatus.MALFORMED

    def test_is_comment(self, codec):
        assert codec.is_comment("  %% hello")
        assert not codec.is_comment("A --> B")


class TestHelpers:
    def test_parse_directive_body_rejects_non_objects(self):
        status, body = parse_directive_body('[1, 2]')
        assert status == DirectiveStatus.MALFORMED
        assert body == {}

    def test_loose_position_accepts_quoted_keys(self):
        assert parse_loose_position("{'x': 1.5, \"y\": 2") == {"x": 1.5, "y": 2}

    def test_loose_position_never_raises(self):
        assert parse_loose_position("nonsense") == {}

    def test_merge_patch_does_not_mutate(self):
        base = {"a": {"b": 1}, "c": 2}
        patch = {"a": {"d": 3}, "c": None}
        merged = merge_patch(base, patch)

        assert merged == {"a": {"b": 1, "d": 3}, "c": None}
        assert base == {"a": {"b": 1}, "c": 2}

    def test_merge_patch_replaces_non_dict_values(self):
        assert merge_patch({"a": {"b": 1}}, {"a": 5}) == {"a": 5}
        assert merge_patch({"a": 5}, {"a": {"b": 1}}) == {"a": {"b": 1}}

    def test_format_directive(self):
        assert format_directive("A", {"x": 1, "y": 2}) == '%% @node: A {"x":1,"y":2}'
