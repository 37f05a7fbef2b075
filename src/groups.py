"""Parsed-line data structures for pipesh.

A raw line is tokenized into a ParsedPipeline: one SimpleCommand per
``|``-separated segment, each made of Words. A Word keeps its quoted and
unquoted pieces apart (WordParts) so variable substitution and word
splitting can be applied later, right before the stage runs. Expanding a
SimpleCommand yields a StageDescriptor: the command name and its final
argument strings.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

# quoting in { 'unquoted', 'single', 'double' }
UNQUOTED = "unquoted"
SINGLE = "single"
DOUBLE = "double"


@dataclass(frozen=True)
class WordPart:
    """A literal run of text, or a variable reference when ``is_var`` is set."""
    value: str
    quoting: str = UNQUOTED
    is_var: bool = False


@dataclass(frozen=True)
class Word:
    parts: tuple[WordPart, ...]


@dataclass(frozen=True)
class SimpleCommand:
    """One pipeline segment before substitution."""
    words: tuple[Word, ...]


@dataclass(frozen=True)
class StageDescriptor:
    """A command name plus its argument list, ready to be resolved."""
    name: str
    args: tuple[str, ...] = ()


@dataclass(frozen=True)
class ParsedPipeline:
    commands: tuple[SimpleCommand, ...]

    def __len__(self) -> int:
        return len(self.commands)


@dataclass(frozen=True)
class ParseFailure:
    """Marker returned instead of a pipeline when the line is malformed."""
    reason: str


# --- Formatting (trace output) ---

def format_stages(stages: Iterable[StageDescriptor]) -> str:
    return " | ".join(" ".join((s.name,) + s.args) for s in stages)
