import argparse
import json
import sys
from pathlib import Path
from typing import List

from delta_simplify import __version__
from delta_simplify.config import DiffOptions, configure_logging
from delta_simplify.diff import DiffType, compare_deltas
from delta_simplify.errors import DeltaSimplifyError
from delta_simplify.models import Delta
from delta_simplify.query.conditions import Condition, conditions_from_json
from delta_simplify.query.engine import QueryDelta


def _read_json(path: Path):
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        print(f"Error parsing JSON in {path}: {e}", file=sys.stderr)
        sys.exit(1)


def _load_delta(path: Path) -> Delta:
    data = _read_json(path)
    try:
        return Delta.from_json(data)
    except ValueError as e:
        print(f"Error: {path} is not a valid delta: {e}", file=sys.stderr)
        sys.exit(1)


def _load_conditions(path: Path) -> List[Condition]:
    data = _read_json(path)
    try:
        return conditions_from_json(data)
    except ValueError as e:
        print(f"Error parsing conditions: {e}", file=sys.stderr)
        sys.exit(1)


def _write_or_print(text: str, output: Path = None):
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text)
        print(f"✅ Saved to {output}", file=sys.stderr)
    else:
        print(text)


def handle_plain(args):
    delta = _load_delta(args.input)
    _write_or_print(delta.to_plain(), args.output)


def handle_diff(args):
    old = _load_delta(args.original)
    new = _load_delta(args.modified)
    options = DiffOptions(cleanup_semantic=not args.no_cleanup, word_level=args.words)
    try:
        result = compare_deltas(old, new, options=options)
    except DeltaSimplifyError as e:
        print(f"Error computing diff: {e}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps(result.to_json(), indent=2, ensure_ascii=False))
    elif args.markup:
        print(result.to_critic_markup())
    else:
        changes = result.changes
        print(f"Found {len(changes)} changes:", file=sys.stderr)
        for part in changes:
            if part.type == DiffType.INSERT:
                print(f"[+] {part.start}: {part.after!r}")
            elif part.type == DiffType.DELETE:
                print(f"[-] {part.start}: {part.before!r}")
            elif part.type == DiffType.FORMAT:
                print(f"[*] {part.start}-{part.end}: {part.after!r} {part.attributes}")
            else:
                print(f"[~] {part.start}-{part.end}: {part.before!r} -> {part.after!r}")


def handle_apply(args):
    delta = _load_delta(args.input)
    conditions = _load_conditions(args.conditions)
    if not conditions:
        print("Warning: No conditions found in JSON file.", file=sys.stderr)
        _write_or_print(json.dumps(delta.to_json(), ensure_ascii=False), args.output)
        return

    print(f"Applying {len(conditions)} conditions...", file=sys.stderr)
    try:
        query = QueryDelta(delta, conditions)
        if args.keep_going:
            query.catch_err(lambda err: print(f"⚠️  {err}", file=sys.stderr))
        result = query.build()
    except (DeltaSimplifyError, ValueError) as e:
        print(f"Error applying conditions: {e}", file=sys.stderr)
        sys.exit(1)

    _write_or_print(json.dumps(result.delta.to_json(), indent=2, ensure_ascii=False), args.output)
    print(f"Stats: {result.applied} applied, {result.skipped} skipped.", file=sys.stderr)
    if result.errors:
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="delta-simplify", description="Query, transform and diff Quill-style deltas"
    )
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", action="store_true", help="Log debug output to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Subcommands")

    p_plain = subparsers.add_parser("plain", help="Print the plain text of a delta")
    p_plain.add_argument("input", type=Path, help="Delta JSON file")
    p_plain.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")
    p_plain.set_defaults(func=handle_plain)

    p_diff = subparsers.add_parser("diff", help="Compare two deltas")
    p_diff.add_argument("original", type=Path, help="Original delta JSON")
    p_diff.add_argument("modified", type=Path, help="Modified delta JSON")
    p_diff.add_argument("--json", action="store_true", help="Output diff parts as JSON")
    p_diff.add_argument("--markup", action="store_true", help="Output the diff as CriticMarkup")
    p_diff.add_argument("--words", action="store_true", help="Diff whole words instead of characters")
    p_diff.add_argument("--no-cleanup", action="store_true", help="Skip semantic cleanup of the diff")
    p_diff.set_defaults(func=handle_diff)

    p_apply = subparsers.add_parser("apply", help="Apply a list of conditions to a delta")
    p_apply.add_argument("input", type=Path, help="Delta JSON file")
    p_apply.add_argument("conditions", type=Path, help="JSON file containing conditions")
    p_apply.add_argument("-o", "--output", type=Path, help="Output delta JSON path (default: stdout)")
    p_apply.add_argument(
        "--keep-going",
        action="store_true",
        help="Report failing conditions and continue with the rest",
    )
    p_apply.set_defaults(func=handle_apply)
    return parser


def main(argv: List[str] = None):
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging("DEBUG" if args.verbose else None)
    args.func(args)


if __name__ == "__main__":
    main()
