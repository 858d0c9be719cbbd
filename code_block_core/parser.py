"""
Parser interface consumed by code blocks.

The expression-language grammar lives outside this package; a concrete
parser only has to turn normalized code text into top-level AST nodes and
the list of identifiers the code references without defining.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from .ast_nodes import Node


@dataclass
class Diagnostic:
    """A single parser error."""
    message: str
    line: int = -1
    column: int = -1


@dataclass
class ParseResult:
    """Outcome of parsing one code block.

    ``code`` is the text the parser actually compiled, when it rewrote the
    input (for instance to insert temporary assignment targets).
    """
    nodes: List[Node] = field(default_factory=list)
    free_identifiers: List[str] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    code: Optional[str] = None

    @property
    def success(self) -> bool:
        return not self.diagnostics

    def error_message(self) -> str:
        """All diagnostic messages, one per line."""
        return "\n".join(d.message for d in self.diagnostics)


class CodeParser(ABC):
    """Base class for expression-language parsers."""

    @abstractmethod
    def parse(self, code: str) -> ParseResult:
        """Parse normalized code.

        Statements without an explicit assignment target are expected to come
        back as assignments to a parser-generated temporary name.
        """
        pass
