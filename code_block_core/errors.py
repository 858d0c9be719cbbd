"""
Exceptions raised while analyzing code blocks.
"""

from typing import Any, Dict, List, Optional


class CodeBlockError(Exception):
    """Base exception for all code block errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class CodeSyntaxError(CodeBlockError):
    """Raised when the parser reports one or more diagnostics."""

    def __init__(self, messages: List[str]):
        super().__init__("\n".join(messages), {'diagnostics': list(messages)})
        self.messages = list(messages)


class RedefinitionError(CodeBlockError):
    """Raised when a block defines a name already defined by another block."""

    def __init__(self, name: str):
        super().__init__(f"{name} is already defined", {'name': name})
        self.name = name


class StructuralError(CodeBlockError):
    """Raised when a top-level AST node has a shape the analyzer does not handle."""
    pass


class MissingInputsError(CodeBlockError):
    """Raised when the bound input values do not match the block's free identifiers."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Invalid input AST nodes: expected {expected}, got {actual}",
            {'expected': expected, 'actual': actual}
        )
        self.expected = expected
        self.actual = actual
