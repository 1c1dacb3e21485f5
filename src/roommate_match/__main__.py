"""CLI entry point for roommate-match."""

from __future__ import annotations

import sys

from roommate_match.cli import build_parser, handle_check, handle_compare, handle_recommend
from roommate_match.errors import ActionableError
from roommate_match.logging import configure_file_logging, logger

_HANDLERS = {
    "recommend": handle_recommend,
    "compare": handle_compare,
    "check": handle_check,
}


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.log_dir:
        configure_file_logging(args.log_dir)

    try:
        _HANDLERS[args.command](args)
    except ActionableError as exc:
        logger.debug("Command %s failed: %s", args.command, exc.to_dict())
        print(f"Error: {exc.error}", file=sys.stderr)
        if exc.suggestion:
            print(f"Suggestion: {exc.suggestion}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
