"""
AST node shapes produced by the expression-language parser.

The node set is closed: every shape the parser can emit is listed in
``NODE_TYPES``. Visitors derived from ``NodeVisitor`` must provide a
``visit_<ClassName>`` method for each of them, otherwise the visitor class
itself fails to be defined.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple


class Operator(Enum):
    """Binary and unary operators of the expression language."""
    ASSIGN = "="
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "%"
    EQ = "=="
    NE = "!="
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="
    AND = "&&"
    OR = "||"
    NOT = "!"
    NEG = "neg"


@dataclass(frozen=True)
class Span:
    """Source location of a node. Lines and columns are 1-based, -1 when unknown."""
    line: int = -1
    col: int = -1
    end_line: int = -1
    end_col: int = -1


NO_SPAN = Span()


class Node:
    """Base class of all AST nodes."""
    span: Span

    @property
    def line(self) -> int:
        return self.span.line

    @property
    def col(self) -> int:
        return self.span.col

    @property
    def end_line(self) -> int:
        return self.span.end_line


@dataclass(frozen=True)
class ArrayIndex(Node):
    """One indexing dimension; ``next`` holds the following dimension, if any."""
    expr: Node
    next: Optional['ArrayIndex'] = None
    span: Span = NO_SPAN


@dataclass(frozen=True)
class Identifier(Node):
    name: str
    array_index: Optional[ArrayIndex] = None
    span: Span = NO_SPAN


@dataclass(frozen=True)
class IntLiteral(Node):
    value: int
    span: Span = NO_SPAN


@dataclass(frozen=True)
class DoubleLiteral(Node):
    value: float
    span: Span = NO_SPAN


@dataclass(frozen=True)
class StringLiteral(Node):
    value: str
    span: Span = NO_SPAN


@dataclass(frozen=True)
class BoolLiteral(Node):
    value: bool
    span: Span = NO_SPAN


@dataclass(frozen=True)
class NullLiteral(Node):
    span: Span = NO_SPAN


@dataclass(frozen=True)
class ExprList(Node):
    """List literal, ``{a, b, c}``."""
    elements: Tuple[Node, ...] = ()
    span: Span = NO_SPAN


@dataclass(frozen=True)
class FunctionCall(Node):
    function: str
    arguments: Tuple[Node, ...] = ()
    span: Span = NO_SPAN


@dataclass(frozen=True)
class FunctionDotCall(Node):
    """Member call, ``target.call(...)``."""
    target: Node
    call: FunctionCall
    span: Span = NO_SPAN


@dataclass(frozen=True)
class InlineConditional(Node):
    condition: Node
    true_expr: Node
    false_expr: Node
    span: Span = NO_SPAN


@dataclass(frozen=True)
class RangeExpr(Node):
    """Range, ``start..end..step``; ``step`` is optional."""
    start: Node
    end: Node
    step: Optional[Node] = None
    span: Span = NO_SPAN


@dataclass(frozen=True)
class BinaryExpression(Node):
    left: Node
    operator: Operator
    right: Node
    span: Span = NO_SPAN

    @property
    def is_assignment(self) -> bool:
        return self.operator is Operator.ASSIGN


@dataclass(frozen=True)
class UnaryExpression(Node):
    operator: Operator
    operand: Node
    span: Span = NO_SPAN


@dataclass(frozen=True)
class CodeBlockBody(Node):
    """Statement list of a function body. ``span.end_line`` is -1 when unknown."""
    statements: Tuple[Node, ...] = ()
    span: Span = NO_SPAN


@dataclass(frozen=True)
class FunctionDefinition(Node):
    name: str
    parameters: Tuple[str, ...] = ()
    body: CodeBlockBody = CodeBlockBody()
    span: Span = NO_SPAN


NODE_TYPES = (
    ArrayIndex,
    Identifier,
    IntLiteral,
    DoubleLiteral,
    StringLiteral,
    BoolLiteral,
    NullLiteral,
    ExprList,
    FunctionCall,
    FunctionDotCall,
    InlineConditional,
    RangeExpr,
    BinaryExpression,
    UnaryExpression,
    CodeBlockBody,
    FunctionDefinition,
)


def assignment(target: str, value: Node, line: int = -1, col: int = -1) -> BinaryExpression:
    """Build ``target = value`` with the target identifier at ``line``/``col``."""
    span = Span(line=line, col=col)
    return BinaryExpression(Identifier(target, span=span), Operator.ASSIGN, value, span=span)


class NodeVisitor:
    """Exhaustive visitor over ``NODE_TYPES``.

    Subclasses must implement ``visit_<ClassName>`` for every node type;
    a missing handler raises ``TypeError`` when the subclass is created.
    """

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        missing = [t.__name__ for t in NODE_TYPES if not hasattr(cls, f'visit_{t.__name__}')]
        if missing:
            raise TypeError(f"{cls.__name__} does not handle node types: {', '.join(missing)}")

    def visit(self, node: Node) -> Any:
        """Dispatch ``node`` to its handler."""
        return getattr(self, f'visit_{type(node).__name__}')(node)
