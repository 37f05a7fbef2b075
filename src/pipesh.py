#!/usr/bin/env python3

# Entry of pipesh

from __future__ import annotations

import argparse
import os
import sys
from typing import Optional

from ops import ShellSession
from result import ExecutionResult

DEFAULT_PROMPT = "pipesh> "


def get_prompt() -> str:
    return os.environ.get("PIPESH_PROMPT", DEFAULT_PROMPT)


def trace_from_env() -> bool:
    value = os.environ.get("PIPESH_TRACE", "")
    return bool(value) and value != "0"


def render(result: ExecutionResult) -> None:
    """Write a result the way a shell would: output to stdout, errors to stderr."""
    if result.terminated:
        return
    if result.interrupted:
        if result.text:
            sys.stderr.write(f"pipesh: {result.text}\n")
            sys.stderr.flush()
        return
    if result.text:
        sys.stdout.write(result.text if result.text.endswith("\n") else result.text + "\n")
        sys.stdout.flush()


def run_line(line: str, session: ShellSession) -> ExecutionResult:
    try:
        return session.execute(line)
    except Exception as e:
        return ExecutionResult.failure(f"internal error: {e}")


def repl(session: ShellSession, prompt: Optional[str] = None) -> int:
    prompt = get_prompt() if prompt is None else prompt
    last_status = 0
    while True:
        try:
            line = input(prompt)
        except EOFError:
            # Ctrl-D on empty line -> exit
            print()
            break
        except KeyboardInterrupt:
            # Ctrl-C at prompt -> new line and continue
            print()
            continue

        if line.strip() == "":
            continue

        result = run_line(line, session)
        render(result)
        if result.terminated:
            return 0
        last_status = 1 if result.interrupted else 0

    return last_status


def parse_args(args=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="pipesh - a tiny pipeline interpreter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pipesh                          # interactive prompt
  pipesh -c 'echo a a a a | wc'   # run one line and exit
  pipesh -C /tmp --trace          # start in /tmp, trace every stage

Built-ins: wc echo pwd cat cd ls exit NAME=value
Environment: PIPESH_PROMPT, PIPESH_TRACE
"""
    )

    parser.add_argument(
        "--command", "-c",
        metavar="LINE",
        help="Execute LINE and exit"
    )
    parser.add_argument(
        "--directory", "-C",
        metavar="DIR",
        help="Start in DIR instead of the current directory"
    )
    parser.add_argument(
        "--trace",
        action="store_true",
        default=None,
        help="Print each stage to stderr before it runs (also PIPESH_TRACE=1)"
    )

    return parser.parse_args(args)


def main(argv=None) -> None:
    args = parse_args(argv)
    trace = trace_from_env() if args.trace is None else args.trace
    try:
        session = ShellSession(cwd=args.directory, trace=trace)
    except NotADirectoryError as e:
        print(f"pipesh: {e}", file=sys.stderr)
        sys.exit(2)

    if args.command is not None:
        result = run_line(args.command, session)
        render(result)
        sys.exit(1 if result.interrupted and not result.terminated else 0)

    sys.exit(repl(session))


if __name__ == "__main__":
    main()
