import json
from typing import Optional

import structlog
from mcp.server.fastmcp import FastMCP

from delta_simplify.config import DiffOptions, configure_logging
from delta_simplify.diff import compare_deltas
from delta_simplify.errors import DeltaSimplifyError
from delta_simplify.models import Delta
from delta_simplify.query.conditions import conditions_from_json
from delta_simplify.query.engine import QueryDelta

logger = structlog.get_logger(__name__)

mcp = FastMCP("Delta Simplify Service")


@mcp.tool()
def read_plain_text(delta_json: str) -> str:
    """
    Returns the plain text of a delta.

    Args:
        delta_json: The delta as JSON, either a list of operations or {"ops": [...]}.
                    Embeds are shown as U+FFFC.
    """
    try:
        return Delta.from_json(delta_json).to_plain()
    except (ValueError, DeltaSimplifyError) as e:
        return f"Error reading delta: {str(e)}"


@mcp.tool()
def diff_deltas(
    original_json: str,
    modified_json: str,
    markup: bool = True,
    word_level: bool = False,
    cleanup_semantic: bool = True,
) -> str:
    """
    Compares two deltas.

    Args:
        original_json: The base delta as JSON.
        modified_json: The new delta as JSON.
        markup: If True (default), returns the modified text with CriticMarkup:
                - Insertions: {++inserted++}
                - Deletions: {--deleted--}
                - Changed embeds: {~~old~>new~~}
                - Format changes: {==text==}{>>bold, -italic<<}
                If False, returns the diff parts as JSON with offsets in the modified delta.
        word_level: Diff whole words instead of single characters.
        cleanup_semantic: Merge small noisy fragments into readable spans.
    """
    try:
        old = Delta.from_json(original_json)
        new = Delta.from_json(modified_json)
        result = compare_deltas(old, new, options=DiffOptions(cleanup_semantic=cleanup_semantic, word_level=word_level))
        if not result.has_changes:
            return "No differences found between the deltas."
        if markup:
            return result.to_critic_markup()
        return json.dumps(result.to_json(), ensure_ascii=False)
    except (ValueError, DeltaSimplifyError) as e:
        return f"Error computing diff: {str(e)}"


@mcp.tool()
def apply_conditions(delta_json: str, conditions_json: str, keep_going: bool = True) -> str:
    """
    Applies a list of edit conditions to a delta and returns the new delta as JSON.

    Each condition is an object with a "kind":
    - {"kind": "format", "attribute": {"key": "bold", "value": true}, "target": "world"}
    - {"kind": "insert", "insertion": "text", "range": {"start_offset": 6}}
    - {"kind": "delete", "offset": 0, "length_of_deletion": 6}
    - {"kind": "replace", "replace": "new", "target": "old"}
    - {"kind": "ignore", "offset": 5, "length": 5}
    Conditions run in order; each one sees the result of the previous ones.
    String targets are regular expressions.

    Args:
        delta_json: The delta as JSON.
        conditions_json: JSON list of conditions.
        keep_going: If True (default), a failing condition is reported and skipped.
                    If False, the first failure aborts and nothing is applied.
    """
    try:
        query = QueryDelta(Delta.from_json(delta_json), conditions_from_json(conditions_json))
        failures = []
        if keep_going:
            query.catch_err(lambda err: failures.append(str(err)))
        result = query.build()
        response = {
            "delta": result.delta.to_json(),
            "applied": result.applied,
            "skipped": result.skipped,
        }
        if failures:
            response["errors"] = failures
        return json.dumps(response, ensure_ascii=False)
    except (ValueError, DeltaSimplifyError) as e:
        return f"Error applying conditions: {str(e)}"


@mcp.tool()
def find_matches(
    delta_json: str,
    pattern: str,
    first_only: bool = False,
    case_sensitive: bool = True,
    operation_index: Optional[int] = None,
) -> str:
    """
    Finds a regular expression in the text of a delta.

    Returns a JSON list of {"start", "end", "text", "attributes"} with offsets
    in the delta. Patterns cannot span line breaks.

    Args:
        delta_json: The delta as JSON.
        pattern: Regular expression to search for.
        first_only: Stop at the first match.
        case_sensitive: Match case exactly (default True).
        operation_index: Optional run index to start searching from.
    """
    try:
        query = QueryDelta(Delta.from_json(delta_json))
        search = query.first_match if first_only else query.all_matches
        matches = search(pattern=pattern, operation_index=operation_index, case_sensitive=case_sensitive)
        return json.dumps(
            [
                {
                    "start": m.start_offset,
                    "end": m.end_offset,
                    "text": m.to_plain(),
                    "attributes": m.delta[0].attributes,
                }
                for m in matches
            ],
            ensure_ascii=False,
        )
    except (ValueError, DeltaSimplifyError) as e:
        return f"Error searching delta: {str(e)}"


def main():
    # MCP talks JSON-RPC over stdio, so logs must stay on stderr.
    configure_logging("INFO", json_output=True)
    logger.info("Starting Delta Simplify MCP server")
    mcp.run()


if __name__ == "__main__":
    main()
