"""Readiness CLI - deterministic command-line access to scoring and rule sets.

Usage:
    python -m readiness score --input PATH [--ruleset-version V]
    python -m readiness rulesets list
    python -m readiness rulesets show V
    python -m readiness rulesets publish PATH [--no-activate]
    python -m readiness rulesets revert V --new-version N --reason R
    python -m readiness rescore --target V --reason R [--assessment-id ID ...]
        [--user-id U] [--scored-under V] [--scored-below V]
    python -m readiness migrate [--revision REV]
    python -m readiness serve [--host HOST] [--port PORT]

All output is JSON on stdout with sorted keys.

Exit codes:
    0: Success
    1: Failure (invalid input, missing configuration, storage error)
    2: Rescore job finished with item failures
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from readiness.api.errors import scoring_error_envelope
from readiness.api.routes.rulesets import rule_set_payload
from readiness.errors import ScoringError
from readiness.models.rescore import AssessmentSelector
from readiness.rulesets.document import load_rule_set_file
from readiness.rulesets.store import get_rule_set_store
from readiness.services import factory

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8000


def _output_json(data: Any) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2))


def _make_error_result(code: str, message: str, details: Any = None) -> dict[str, Any]:
    return {"error": {"code": code, "details": details, "message": message}}


def _load_json_input(input_path: str | None) -> tuple[Any, str | None]:
    """Load JSON from file or stdin.

    Returns:
        Tuple of (parsed_data, error_message). If error_message is not None,
        parsed_data should be ignored.
    """
    try:
        if input_path and input_path != "-":
            with open(input_path, encoding="utf-8") as f:
                content = f.read()
        else:
            content = sys.stdin.read()

        if not content.strip():
            return None, "Empty input"

        return json.loads(content), None
    except FileNotFoundError:
        return None, f"File not found: {input_path}"
    except json.JSONDecodeError as e:
        return None, f"Invalid JSON: {e}"
    except OSError as e:
        return None, f"Cannot read input: {e}"


def cmd_score(args: argparse.Namespace) -> int:
    """Score an answers file without storing it."""
    data, error_msg = _load_json_input(args.input)
    if error_msg is not None:
        _output_json(_make_error_result("INVALID_JSON", error_msg))
        return 1

    result = factory.get_scoring_service().score_answers(data, args.ruleset_version)
    _output_json(result.to_public_payload())
    return 0


def cmd_rulesets(args: argparse.Namespace) -> int:
    """List, show, publish or revert rule sets."""
    store = get_rule_set_store()
    action = args.rulesets_command

    if action == "list":
        active = store.active_version()
        _output_json(
            {
                "activeVersion": active,
                "items": [rule_set_payload(rs, active) for rs in store.list_versions()],
            }
        )
        return 0

    if action == "show":
        _output_json(rule_set_payload(store.get_or_raise(args.version), store.active_version()))
        return 0

    if action == "publish":
        rule_set = load_rule_set_file(args.path)
        published = store.publish(rule_set, activate=args.activate)
        _output_json(rule_set_payload(published, store.active_version()))
        return 0

    # revert
    reverted = store.revert_to(
        args.version, args.new_version, args.reason, created_by=args.created_by
    )
    _output_json(rule_set_payload(reverted, store.active_version()))
    return 0


def cmd_rescore(args: argparse.Namespace) -> int:
    """Run a re-score job in the foreground.

    Exit codes:
        0: every selected item migrated or was already current
        2: at least one item failed (details in the summary)
    """
    selector = AssessmentSelector(
        assessment_ids=args.assessment_ids,
        user_id=args.user_id,
        rule_set_version=args.scored_under,
        rule_set_version_below=args.scored_below,
    )
    result = factory.get_rescore_manager().rescore(
        selector, args.target, args.reason, args.triggered_by
    )
    _output_json(result.model_dump(mode="json"))
    return 2 if result.has_failures else 0


def cmd_migrate(args: argparse.Namespace) -> int:
    """Apply database migrations (requires READINESS_DATABASE_ADMIN_URL)."""
    from readiness.persistence.migrate import get_head_revision, run_upgrade

    run_upgrade(revision=args.revision)
    _output_json({"head": get_head_revision(), "revision": args.revision})
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    from readiness.api.main import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port, log_level="info")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="readiness",
        description="Investment readiness scoring CLI",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    score_parser = subparsers.add_parser("score", help="Score an answers JSON file")
    score_parser.add_argument(
        "--input",
        required=False,
        default=None,
        metavar="PATH",
        help="Path to answers JSON (reads from stdin if omitted)",
    )
    score_parser.add_argument(
        "--ruleset-version",
        default=None,
        metavar="VERSION",
        help="Explicit rule set version (default: the active version)",
    )

    rulesets_parser = subparsers.add_parser("rulesets", help="Rule set operations")
    rulesets_subparsers = rulesets_parser.add_subparsers(
        dest="rulesets_command",
        help="Rule set subcommands",
    )
    rulesets_subparsers.add_parser("list", help="List published versions")
    show_parser = rulesets_subparsers.add_parser("show", help="Show one version")
    show_parser.add_argument("version")
    publish_parser = rulesets_subparsers.add_parser(
        "publish", help="Publish a rule set document"
    )
    publish_parser.add_argument("path", metavar="PATH")
    publish_parser.add_argument(
        "--no-activate",
        dest="activate",
        action="store_false",
        default=True,
        help="Publish without making it the active version",
    )
    revert_parser = rulesets_subparsers.add_parser(
        "revert", help="Republish an older version under a new version"
    )
    revert_parser.add_argument("version")
    revert_parser.add_argument("--new-version", required=True)
    revert_parser.add_argument("--reason", required=True)
    revert_parser.add_argument("--created-by", default=None)

    rescore_parser = subparsers.add_parser(
        "rescore", help="Re-score stored assessments under a rule set version"
    )
    rescore_parser.add_argument("--target", required=True, metavar="VERSION")
    rescore_parser.add_argument("--reason", required=True)
    rescore_parser.add_argument(
        "--assessment-id",
        dest="assessment_ids",
        action="append",
        default=None,
        metavar="ID",
        help="Restrict to this assessment (repeatable)",
    )
    rescore_parser.add_argument("--user-id", default=None)
    rescore_parser.add_argument(
        "--scored-under", default=None, metavar="VERSION", help="Current score uses VERSION"
    )
    rescore_parser.add_argument(
        "--scored-below",
        default=None,
        metavar="VERSION",
        help="Current score uses a version lower than VERSION",
    )
    rescore_parser.add_argument("--triggered-by", default="cli")

    migrate_parser = subparsers.add_parser("migrate", help="Apply database migrations")
    migrate_parser.add_argument("--revision", default="head")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=DEFAULT_PORT)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Exit codes:
        0: Success
        1: Failure / internal error
        2: Rescore item failures
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "score":
            return cmd_score(args)
        if args.command == "rulesets":
            if args.rulesets_command is None:
                parser.parse_args(["rulesets", "--help"])
                return 0
            return cmd_rulesets(args)
        if args.command == "rescore":
            return cmd_rescore(args)
        if args.command == "migrate":
            return cmd_migrate(args)
        if args.command == "serve":
            return cmd_serve(args)
        return 0

    except ScoringError as e:
        _status, code, message, details = scoring_error_envelope(e)
        _output_json(_make_error_result(code, message, details))
        return 1
    except Exception as e:
        # Fail-closed: unexpected errors return exit code 1
        logger.exception("Command %s failed", args.command)
        _output_json(_make_error_result("INTERNAL_ERROR", str(e)))
        return 1


if __name__ == "__main__":
    sys.exit(main())
