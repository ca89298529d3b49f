#!/usr/bin/env python3
"""Diagram sync CLI - inspect and edit diagram files from the shell."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from .config import get_config
from .directives import DirectiveCodec
from .layout import get_layout
from .logging import setup_logging
from .parser import DiagramParseError, parse_diagram
from .sync import SyncController
from .validation import validate_graph, validation_summary
from .writer import detect_direction, write_document


def _json_out(data, code=0):
    print(json.dumps(data))
    sys.exit(code)


def _read_file(path):
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        _json_out({"success": False, "error": f"Cannot read {path}: {e.strerror}"}, 1)


def _load(path):
    """Parse a diagram file into a synced controller."""
    config = get_config()
    text = _read_file(path)

    try:
        result = parse_diagram(text, config.comment_marker)
    except DiagramParseError as e:
        _json_out({"success": False, "error": str(e), "line": e.line_number}, 1)

    controller = SyncController(
        lambda _text: result,
        get_layout(config.layout_strategy),
        text=text,
        codec=DirectiveCodec(config.comment_marker),
    )
    asyncio.run(controller.sync_now())
    return controller


def _finish_edit(args, new_text):
    if args.write:
        Path(args.file).write_text(new_text, encoding="utf-8")
    _json_out({"success": True, "written": bool(args.write), "text": new_text})


# ── Commands ─────────────────────────────────────────────────────────────────

def cmd_parse(args):
    controller = _load(args.file)
    _json_out({"success": True, "graph": controller.snapshot.model_dump()})


def cmd_move(args):
    controller = _load(args.file)
    if controller.store.node_for_text_id(args.text_id) is None:
        _json_out({"success": False, "error": f"Node not found: {args.text_id}"}, 1)

    new_text = controller.move_text_node(args.text_id, args.x, args.y)
    _finish_edit(args, new_text)


def cmd_patch(args):
    try:
        patch = json.loads(args.patch)
    except json.JSONDecodeError as e:
        _json_out({"success": False, "error": f"Invalid JSON patch: {e.msg}"}, 1)
    if not isinstance(patch, dict):
        _json_out({"success": False, "error": "Patch must be a JSON object"}, 1)

    controller = _load(args.file)
    new_text = controller.patch_node(args.text_id, patch)
    _finish_edit(args, new_text)


def cmd_validate(args):
    controller = _load(args.file)
    issues = validate_graph(controller.store, controller.text, controller.codec)
    _json_out({
        "success": True,
        "issues": [issue.to_dict() for issue in issues],
        "summary": validation_summary(issues)
    })


def cmd_format(args):
    controller = _load(args.file)
    direction = args.direction or detect_direction(controller.text)
    new_text = write_document(controller.store, direction, controller.codec.marker)
    _finish_edit(args, new_text)


def cmd_serve(args):
    from .server.main import run
    run(host=args.host, port=args.port)


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(description="Diagram sync CLI")
    parser.add_argument("--log-level", default=None, help="Override DIAGRAM_SYNC_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("parse", help="Print the synced graph of a diagram file")
    p.add_argument("file")

    p = sub.add_parser("move", help="Move a node and rewrite its directive")
    p.add_argument("file")
    p.add_argument("text_id")
    p.add_argument("x", type=float)
    p.add_argument("y", type=float)
    p.add_argument("--write", action="store_true", help="Save the result back to FILE")

    p = sub.add_parser("patch", help="Merge a JSON patch into a node's directive")
    p.add_argument("file")
    p.add_argument("text_id")
    p.add_argument("patch", help='JSON object, e.g. \'{"kind": "note"}\'')
    p.add_argument("--write", action="store_true", help="Save the result back to FILE")

    p = sub.add_parser("validate", help="Report structural and directive issues")
    p.add_argument("file")

    p = sub.add_parser("format", help="Rewrite a diagram file in canonical form")
    p.add_argument("file")
    p.add_argument("--direction", default=None, help="Header direction (default: keep the file's)")
    p.add_argument("--write", action="store_true", help="Save the result back to FILE")

    p = sub.add_parser("serve", help="Run the API server")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)

    args = parser.parse_args(argv)

    # Logs go to stderr so stdout stays valid JSON
    setup_logging(args.log_level or get_config().log_level, stream=sys.stderr)

    cmd_map = {
        "parse": cmd_parse,
        "move": cmd_move,
        "patch": cmd_patch,
        "validate": cmd_validate,
        "format": cmd_format,
        "serve": cmd_serve,
    }
    cmd_map[args.command](args)


if __name__ == "__main__":
    main()
