"""CLI app entrypoint and error mapping."""

from __future__ import annotations

import sys

from novelpilot import ChangeSetError, ConfigError, ModelError, PlannerError, StreamError, WorkspaceError


def main(argv: list[str] | None = None) -> int:
    import novelpilot.cli as cli

    parser = cli.build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        cli.logging.basicConfig(level=cli.logging.DEBUG, format="%(name)s %(message)s", stream=sys.stderr)

    commands = {
        "plan": cli._run_plan,
        "run": cli._run_queue,
        "auto": cli._run_auto,
        "chat": cli._run_chat,
        "status": cli._run_status,
    }
    try:
        cli.asyncio.run(commands[args.command](args))
        return 0
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 3
    except ModelError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 4
    except (PlannerError, StreamError, ChangeSetError, WorkspaceError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 5
    except Exception as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


__all__ = ["main"]
