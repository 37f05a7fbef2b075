from __future__ import annotations

import os
import re
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from command import ASSIGN, resolve
from groups import (
    DOUBLE,
    SINGLE,
    UNQUOTED,
    ParsedPipeline,
    ParseFailure,
    SimpleCommand,
    StageDescriptor,
    Word,
    WordPart,
    format_stages,
)
from result import PARSE_ERROR, ExecutionResult


class ParseError(ValueError):
    """Raised by the tokenizer on malformed input; never leaves parse_pipeline."""


class ShellSession:
    """Holds session-wide shell context: variables and the working directory."""

    def __init__(self, cwd: Optional[Union[str, Path]] = None, inherit_env: bool = True, trace: bool = False) -> None:
        # Shell variables, set by NAME=value and read by $NAME
        self.variables: Dict[str, str] = {}
        # Environment handed to external programs
        self.env: Dict[str, str] = dict(os.environ) if inherit_env else {}
        self.trace: bool = trace
        self._cwd: Path = Path(os.getcwd()).resolve()
        if cwd is not None:
            self.cwd = cwd

    # --- variable helpers ---
    def get_var(self, name: str) -> str:
        return self.variables.get(name, "")

    def set_var(self, name: str, value: str) -> None:
        self.variables[name] = value

    # --- working directory and files ---
    @property
    def cwd(self) -> Path:
        return self._cwd

    @cwd.setter
    def cwd(self, new_dir: Union[str, Path]) -> None:
        path = self.resolve_path(new_dir)
        try:
            is_dir = path.is_dir()
        except OSError:
            # an unsearchable parent hides the target
            is_dir = False
        if not is_dir:
            raise NotADirectoryError(f"{new_dir} not a directory")
        self._cwd = path.resolve()
        if "PWD" in self.env:
            self.env["PWD"] = str(self._cwd)

    def resolve_path(self, name: Union[str, Path]) -> Path:
        """Resolve a path against the working directory (absolute paths pass through)."""
        return self._cwd / name

    def full_path(self, name: Union[str, Path]) -> str:
        return str(self.resolve_path(name).resolve())

    def resolve_file(self, name: Union[str, Path]) -> Optional[str]:
        """Return the text of a file, or None when there is no such file.

        Content is decoded as UTF-8 (undecodable bytes replaced) and line
        endings are kept as they are on disk.
        """
        path = self.resolve_path(name)
        if not path.is_file():
            return None
        with open(path, "r", encoding="utf-8", errors="replace", newline="") as f:
            return f.read()

    def execute(self, line: str) -> ExecutionResult:
        return execute_line(line, self)


# ---- Tokenizer ----

_NAME_CHARS = re.compile(r"[A-Za-z0-9_]+")
_ASSIGNMENT = re.compile(r"([A-Za-z_][A-Za-z0-9_]*)=")
# Characters a backslash may escape inside double quotes
_DOUBLE_ESCAPES = ('"', "\\", "$")


def _scan_variable(line: str, i: int) -> Tuple[Optional[str], int]:
    """Read a variable reference starting at the ``$`` at line[i].

    Returns (name, next_index), or (None, i + 1) when the ``$`` is literal.
    """
    n = len(line)
    j = i + 1
    if j < n and line[j] == "{":
        close = line.find("}", j + 1)
        if close == -1:
            raise ParseError("unterminated ${")
        name = line[j + 1:close]
        if not _NAME_CHARS.fullmatch(name):
            raise ParseError(f"bad substitution: ${{{name}}}")
        return name, close + 1
    m = _NAME_CHARS.match(line, j)
    if m is None:
        return None, j
    return m.group(0), m.end()


def _tokenize(line: str) -> List[List[Word]]:
    """Split a line into pipeline segments of words.

    Quote characters are consumed; what they enclosed is kept as parts with
    the matching quoting so expansion can honour it later.
    """
    segments: List[List[Word]] = []
    words: List[Word] = []
    parts: List[WordPart] = []
    buf: List[str] = []
    quoting = UNQUOTED
    # parts recorded before the current quote opened
    quote_start = 0
    # a quoted empty string ('' or "") still makes a word
    word_started = False
    i = 0
    n = len(line)

    def flush_text() -> None:
        if buf:
            parts.append(WordPart("".join(buf), quoting))
            buf.clear()

    def close_quote() -> None:
        nonlocal quoting
        # keep an empty part only when the quotes enclosed nothing at all
        if buf or len(parts) == quote_start:
            parts.append(WordPart("".join(buf), quoting))
        buf.clear()
        quoting = UNQUOTED

    def flush_word() -> None:
        nonlocal word_started
        flush_text()
        if parts or word_started:
            words.append(Word(tuple(parts)))
            parts.clear()
        word_started = False

    while i < n:
        ch = line[i]
        if quoting == SINGLE:
            if ch == "'":
                close_quote()
            else:
                buf.append(ch)
            i += 1
            continue

        if ch == "\\":
            if quoting == DOUBLE:
                if i + 1 < n and line[i + 1] in _DOUBLE_ESCAPES:
                    buf.append(line[i + 1])
                    i += 2
                else:
                    buf.append(ch)
                    i += 1
                continue
            if i + 1 >= n:
                raise ParseError("trailing backslash")
            buf.append(line[i + 1])
            i += 2
            continue

        if ch == "$":
            name, j = _scan_variable(line, i)
            if name is None:
                buf.append(ch)
            else:
                flush_text()
                parts.append(WordPart(name, quoting, is_var=True))
            i = j
            continue

        if quoting == DOUBLE:
            if ch == '"':
                close_quote()
            else:
                buf.append(ch)
            i += 1
            continue

        # Unquoted context
        if ch == "'" or ch == '"':
            flush_text()
            quoting = SINGLE if ch == "'" else DOUBLE
            quote_start = len(parts)
            word_started = True
        elif ch.isspace():
            flush_word()
        elif ch == "|":
            flush_word()
            segments.append(words)
            words = []
        else:
            buf.append(ch)
        i += 1

    if quoting != UNQUOTED:
        raise ParseError(f"unmatched {quoting} quote")
    flush_word()
    segments.append(words)

    if len(segments) > 1 and any(not seg for seg in segments):
        raise ParseError("missing command around '|'")
    return segments


def parse_pipeline(line: str) -> Union[ParsedPipeline, ParseFailure]:
    """Parse the syntax of a line. Returns ParseFailure instead of raising."""
    try:
        segments = _tokenize(line)
    except ParseError as e:
        return ParseFailure(str(e))
    return ParsedPipeline(tuple(SimpleCommand(tuple(seg)) for seg in segments))


# ---- Expansion ----

def _expand_word(word: Word, session: ShellSession, *, split: bool = True) -> List[str]:
    """Substitute variables in a word and return the resulting fields.

    Unquoted substitutions are split on whitespace; quoted text never is.
    A word made only of unquoted references to empty values disappears.
    """
    fields: List[str] = []
    current: Optional[str] = None
    for part in word.parts:
        if not part.is_var:
            current = (current or "") + part.value
            continue
        value = session.get_var(part.value)
        if part.quoting != UNQUOTED or not split:
            current = (current or "") + value
            continue
        pieces = value.split()
        if not pieces:
            if value and current is not None:
                fields.append(current)
                current = None
            continue
        if value[0].isspace() and current is not None:
            fields.append(current)
            current = None
        head, *tail = pieces
        current = (current or "") + head
        for piece in tail:
            fields.append(current)
            current = piece
        if value[-1].isspace():
            fields.append(current)
            current = None
    if current is not None:
        fields.append(current)
    if not split:
        return ["".join(fields)]
    return fields


def _split_assignment(word: Word) -> Optional[Tuple[str, Word]]:
    """Detect ``NAME=value`` in a leading word; return (NAME, value word)."""
    if not word.parts:
        return None
    head = word.parts[0]
    if head.is_var or head.quoting != UNQUOTED:
        return None
    m = _ASSIGNMENT.match(head.value)
    if m is None:
        return None
    rest = head.value[m.end():]
    value_parts = ((WordPart(rest),) if rest else ()) + word.parts[1:]
    return m.group(1), Word(value_parts)


def expand_command(cmd: SimpleCommand, session: ShellSession) -> StageDescriptor:
    """Turn a parsed segment into a StageDescriptor using the current variables."""
    if not cmd.words:
        return StageDescriptor("")
    assignment = _split_assignment(cmd.words[0])
    if assignment is not None:
        name, value_word = assignment
        args = [name] + _expand_word(value_word, session, split=False)
        for w in cmd.words[1:]:
            args.extend(_expand_word(w, session))
        return StageDescriptor(ASSIGN, tuple(args))
    fields: List[str] = []
    for w in cmd.words:
        fields.extend(_expand_word(w, session))
    if not fields:
        return StageDescriptor("")
    return StageDescriptor(fields[0], tuple(fields[1:]))


def parse_line(line: str, session: ShellSession) -> Union[Tuple[StageDescriptor, ...], ParseFailure]:
    """Parse and substitute a whole line against the session's current variables."""
    pipeline = parse_pipeline(line)
    if isinstance(pipeline, ParseFailure):
        return pipeline
    return tuple(expand_command(cmd, session) for cmd in pipeline.commands)


# ---- Execution ----

def _trace(session: ShellSession, message: str) -> None:
    if session.trace:
        sys.stderr.write(message + "\n")
        sys.stderr.flush()


def execute_pipeline(pipeline: Union[ParsedPipeline, ParseFailure], session: ShellSession) -> ExecutionResult:
    """Run the stages left to right, feeding each one the previous stage's text.

    A stage is expanded only when its turn comes, so an assignment earlier in
    the pipeline is already visible. The first interrupted result is returned
    as is and nothing after it is resolved or run.
    """
    if isinstance(pipeline, ParseFailure):
        _trace(session, f"pipesh: parse error: {pipeline.reason}")
        return PARSE_ERROR

    carried = ""
    for cmd in pipeline.commands:
        stage = expand_command(cmd, session)
        _trace(session, "+ " + format_stages((stage,)))
        result = resolve(stage.name).run(session, stage.args, carried)
        if result.interrupted:
            return result
        carried = result.text
    return ExecutionResult.success(carried)


def execute_line(line: str, session: ShellSession) -> ExecutionResult:
    return execute_pipeline(parse_pipeline(line), session)
