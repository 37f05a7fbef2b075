# module for command resolution and execution

from __future__ import annotations

import functools
import re
import subprocess
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence

from result import ExecutionResult

if TYPE_CHECKING:
    from ops import ShellSession

# handler(session, args, piped_input) -> ExecutionResult
Handler = Callable[["ShellSession", Sequence[str], Optional[str]], ExecutionResult]

ASSIGN = "="

_LINE_BREAK = re.compile(r"\r\n|\r|\n")
_WHITESPACE = re.compile(r"\s")


@dataclass(frozen=True)
class Command:
    """A resolved stage: either a built-in handler or an external program."""
    name: str
    handler: Handler

    def run(self, session: "ShellSession", args: Sequence[str] = (), piped_input: Optional[str] = None) -> ExecutionResult:
        return self.handler(session, list(args), piped_input)


class CommandRunner:
    """Run one external program and collect its output.

    Lifecycle:
    - Initialize with the argv, working directory and environment.
    - Call run() with the piped input (or None).
    - After running, access exit_code, stdout, stderr.

    Notes:
    - subprocess.run drains stdout and stderr together while waiting, so a
      chatty program cannot stall on a full pipe buffer.
    - There is no timeout: a program that never exits blocks the caller.
    """

    def __init__(self, argv: List[str], cwd: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> None:
        self.argv: List[str] = list(argv)
        self.cwd: Optional[str] = cwd
        self.env: Optional[Dict[str, str]] = dict(env) if env is not None else None
        self.exit_code: Optional[int] = None
        self.stdout: Optional[str] = None
        self.stderr: Optional[str] = None

    @property
    def name(self) -> str:
        return self.argv[0] if self.argv else ""

    def run(self, input_text: Optional[str] = None) -> ExecutionResult:
        if not self.name:
            return ExecutionResult.failure("command not found")
        try:
            completed = subprocess.run(
                self.argv,
                input=input_text,
                stdin=subprocess.DEVNULL if input_text is None else None,
                capture_output=True,
                text=True,
                errors="replace",
                cwd=self.cwd,
                env=self.env,
            )
        except KeyboardInterrupt:
            # SIGINT during command
            self.exit_code = 130
            return ExecutionResult.failure(f"{self.name}: interrupted")
        except FileNotFoundError:
            self.exit_code = 127
            return ExecutionResult.failure(f"{self.name}: command not found")
        except OSError as e:
            self.exit_code = 126
            return ExecutionResult.failure(f"{self.name}: {e.strerror or e}")

        self.exit_code = completed.returncode
        self.stdout = completed.stdout
        self.stderr = completed.stderr

        error_text = self.stderr.strip()
        if error_text:
            return ExecutionResult.failure(error_text)
        return ExecutionResult.success(self.stdout.rstrip())


def _read_file(session: "ShellSession", cmd: str, filename: str) -> ExecutionResult:
    try:
        text = session.resolve_file(filename)
    except OSError as e:
        return ExecutionResult.failure(f"{cmd}: {filename}: {e.strerror or e}")
    if text is None:
        return ExecutionResult.failure(f"No file named {filename} found")
    return ExecutionResult.success(text)


# --- Built-in commands ---

def cmd_wc(session: "ShellSession", args: Sequence[str], piped_input: Optional[str]) -> ExecutionResult:
    """Count lines, words and bytes of a file or of the piped input.

    Lines are the pieces between line breaks, so a trailing newline opens
    one more (empty) line: ``"a a a a\\n"`` counts 2. Words are the pieces
    of the stripped text between single whitespace characters, so empty
    text is one word and each extra space adds one.
    """
    if args:
        try:
            text = session.resolve_file(args[0])
        except OSError as e:
            return ExecutionResult.failure(f"wc: {args[0]}: {e.strerror or e}")
    else:
        text = piped_input
    if text is None:
        return ExecutionResult.failure("Error: invalid wc args")
    lines = len(_LINE_BREAK.split(text))
    words = len(_WHITESPACE.split(text.strip()))
    size = len(text.encode("utf-8"))
    return ExecutionResult.success(f"{lines} {words} {size}")


def cmd_echo(session: "ShellSession", args: Sequence[str], piped_input: Optional[str]) -> ExecutionResult:
    return ExecutionResult.success(" ".join(args) + "\n")


def cmd_pwd(session: "ShellSession", args: Sequence[str], piped_input: Optional[str]) -> ExecutionResult:
    return ExecutionResult.success(session.full_path("."))


def cmd_cat(session: "ShellSession", args: Sequence[str], piped_input: Optional[str]) -> ExecutionResult:
    """Print the first named file, or pass the piped input through."""
    if args:
        return _read_file(session, "cat", args[0])
    if piped_input is not None:
        return ExecutionResult.success(piped_input)
    return ExecutionResult.failure("too few arguments for cat")


def cmd_cd(session: "ShellSession", args: Sequence[str], piped_input: Optional[str]) -> ExecutionResult:
    if not args:
        return ExecutionResult.success("")
    target = args[0]
    try:
        session.cwd = target
    except OSError:
        # missing, not a directory, or behind an unsearchable parent
        return ExecutionResult.failure(f"No directory named {target} found")
    return ExecutionResult.success("")


def cmd_ls(session: "ShellSession", args: Sequence[str], piped_input: Optional[str]) -> ExecutionResult:
    path = args[0] if args else "."
    target = session.resolve_path(path)
    try:
        names = sorted(entry.name for entry in target.iterdir())
    except (FileNotFoundError, NotADirectoryError):
        return ExecutionResult.failure(f"No directory named {path} found")
    except OSError:
        return ExecutionResult.failure(f"Can not read from {path}")
    return ExecutionResult.success("\n".join(names))


def cmd_assign(session: "ShellSession", args: Sequence[str], piped_input: Optional[str]) -> ExecutionResult:
    if len(args) != 2:
        return ExecutionResult.failure("Error: invalid assignment")
    name, value = args
    session.set_var(name, value)
    return ExecutionResult.success("")


def cmd_exit(session: "ShellSession", args: Sequence[str], piped_input: Optional[str]) -> ExecutionResult:
    return ExecutionResult.termination()


def run_external(name: str, session: "ShellSession", args: Sequence[str], piped_input: Optional[str]) -> ExecutionResult:
    runner = CommandRunner([name, *args], cwd=str(session.cwd), env=session.env)
    return runner.run(piped_input)


BUILTIN_COMMANDS: Dict[str, Handler] = {
    "wc": cmd_wc,
    "echo": cmd_echo,
    "pwd": cmd_pwd,
    "cat": cmd_cat,
    "cd": cmd_cd,
    "ls": cmd_ls,
    ASSIGN: cmd_assign,
    "exit": cmd_exit,
}


def resolve(name: str) -> Command:
    """Map a command name to a runnable Command. Never fails.

    Unknown names become external programs; whether the program exists is
    only discovered when the command runs.
    """
    handler = BUILTIN_COMMANDS.get(name)
    if handler is not None:
        return Command(name, handler)
    return Command(name, functools.partial(run_external, name))
