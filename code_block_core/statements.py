"""
Statement analysis for code blocks.

Each top-level AST node of a code block becomes a ``Statement`` recording
its kind, the variables it defines and the variables it references.
Function definitions keep their body as nested statements.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from .ast_nodes import (
    ArrayIndex, BinaryExpression, BoolLiteral, CodeBlockBody, DoubleLiteral,
    ExprList, FunctionCall, FunctionDefinition, FunctionDotCall, Identifier,
    InlineConditional, IntLiteral, Node, NodeVisitor, NullLiteral, RangeExpr,
    StringLiteral, UnaryExpression
)
from .config import CodeBlockConfig, DEFAULT_CONFIG
from .errors import StructuralError


class StatementKind(Enum):
    """Classification of a top-level statement."""
    NONE = "none"
    EXPRESSION = "expression"
    LITERAL = "literal"
    COLLECTION = "collection"
    ASSIGNMENT_VAR = "assignment_var"
    FUNC_DECLARATION = "func_declaration"


@dataclass(frozen=True)
class VariableRef:
    """A variable occurrence in the source text."""
    name: str
    row: int
    start_column: int = -1

    @property
    def end_column(self) -> int:
        return self.start_column + len(self.name)

    @classmethod
    def from_identifier(cls, node: Identifier) -> 'VariableRef':
        return cls(name=node.name, row=node.line, start_column=node.col)

    @classmethod
    def synthetic(cls, name: str, line: int) -> 'VariableRef':
        """A variable known only by name and line, with no column."""
        return cls(name=name, row=line)

    def moved_back(self, line: int, width: int) -> 'VariableRef':
        """Shift the column back by ``width`` if this occurrence is on ``line``."""
        if self.row != line:
            return self
        return VariableRef(self.name, self.row, self.start_column - width)


@dataclass
class Statement:
    """Analysis result for one top-level AST node."""
    kind: StatementKind
    start_line: int
    end_line: int
    defined_variables: List[VariableRef] = field(default_factory=list)
    referenced_variables: List[VariableRef] = field(default_factory=list)
    sub_statements: List['Statement'] = field(default_factory=list)

    @property
    def first_defined_variable(self) -> Optional[VariableRef]:
        return self.defined_variables[0] if self.defined_variables else None

    def defined_names(self, top_level_only: bool = True) -> List[str]:
        """Names defined by this statement, optionally including nested statements."""
        names = [var.name for var in self.defined_variables]
        if not top_level_only:
            for sub in self.sub_statements:
                names.extend(sub.defined_names(top_level_only))
        return names

    def referenced_names(self, top_level_only: bool = True) -> List[str]:
        """Names referenced by this statement, optionally including nested statements."""
        names = [var.name for var in self.referenced_variables]
        if not top_level_only:
            for sub in self.sub_statements:
                names.extend(sub.referenced_names(top_level_only))
        return names


class ReferenceCollector(NodeVisitor):
    """Collects identifier occurrences from an expression, depth first."""

    def __init__(self, max_depth: int = DEFAULT_CONFIG.max_expression_depth):
        self.references: List[VariableRef] = []
        self.max_depth = max_depth
        self._depth = 0

    def collect(self, node: Optional[Node]) -> List[VariableRef]:
        self._walk(node)
        return self.references

    def _walk(self, node: Optional[Node]):
        if node is None:
            return
        if self._depth >= self.max_depth:
            raise StructuralError(
                f"Expression nested deeper than {self.max_depth} levels",
                {'node_type': type(node).__name__, 'line': node.line}
            )
        self._depth += 1
        try:
            self.visit(node)
        finally:
            self._depth -= 1

    def visit_Identifier(self, node: Identifier):
        self.references.append(VariableRef.from_identifier(node))
        self._walk(node.array_index)

    def visit_ArrayIndex(self, node: ArrayIndex):
        self._walk(node.expr)
        self._walk(node.next)

    def visit_FunctionCall(self, node: FunctionCall):
        for arg in node.arguments:
            self._walk(arg)

    def visit_FunctionDotCall(self, node: FunctionDotCall):
        self._walk(node.call)

    def visit_ExprList(self, node: ExprList):
        for element in node.elements:
            self._walk(element)

    def visit_InlineConditional(self, node: InlineConditional):
        self._walk(node.condition)
        self._walk(node.true_expr)
        self._walk(node.false_expr)

    def visit_RangeExpr(self, node: RangeExpr):
        self._walk(node.start)
        self._walk(node.end)
        self._walk(node.step)

    def visit_BinaryExpression(self, node: BinaryExpression):
        # The target of a nested assignment is a definition, not a reference
        if not node.is_assignment:
            self._walk(node.left)
        self._walk(node.right)

    def visit_UnaryExpression(self, node: UnaryExpression):
        self._walk(node.operand)

    def visit_IntLiteral(self, node: IntLiteral):
        pass

    def visit_DoubleLiteral(self, node: DoubleLiteral):
        pass

    def visit_StringLiteral(self, node: StringLiteral):
        pass

    def visit_BoolLiteral(self, node: BoolLiteral):
        pass

    def visit_NullLiteral(self, node: NullLiteral):
        pass

    def visit_CodeBlockBody(self, node: CodeBlockBody):
        pass

    def visit_FunctionDefinition(self, node: FunctionDefinition):
        pass


class StatementAnalyzer:
    """Builds ``Statement`` trees from top-level AST nodes."""

    def __init__(self, config: CodeBlockConfig = DEFAULT_CONFIG):
        self.config = config

    def analyze(self, node: Node) -> Statement:
        """Analyze one top-level node; raises ``StructuralError`` for unsupported shapes."""
        if node is None:
            raise StructuralError("Cannot analyze a missing AST node")
        return self._analyze(node, depth=0)

    def analyze_all(self, nodes: List[Node]) -> List[Statement]:
        return [self.analyze(node) for node in nodes]

    def classify(self, defined: List[VariableRef], rhs: Node) -> StatementKind:
        """Determine the kind of an assignment from its first target and right-hand side."""
        if not self.config.is_synthetic_temporary(defined[0].name):
            return StatementKind.EXPRESSION
        if isinstance(rhs, Identifier):
            return StatementKind.ASSIGNMENT_VAR
        if isinstance(rhs, ExprList):
            return StatementKind.COLLECTION
        if isinstance(rhs, (IntLiteral, DoubleLiteral, StringLiteral)):
            return StatementKind.LITERAL
        return StatementKind.NONE

    def _analyze(self, node: Node, depth: int) -> Statement:
        if depth > self.config.max_nesting_depth:
            raise StructuralError(
                f"Function definitions nested deeper than {self.config.max_nesting_depth} levels",
                {'line': node.line}
            )
        if isinstance(node, BinaryExpression) and node.is_assignment:
            return self._analyze_assignment(node)
        if isinstance(node, FunctionDefinition):
            return self._analyze_function(node, depth)
        raise StructuralError(
            "Must be func def or assignment",
            {'node_type': type(node).__name__, 'line': node.line}
        )

    def _analyze_assignment(self, node: BinaryExpression) -> Statement:
        defined, rhs = self._split_assignment_chain(node)
        kind = self.classify(defined, rhs)
        references = ReferenceCollector(self.config.max_expression_depth).collect(rhs)
        references = self._correct_columns(references, kind, node.line)

        unique: List[VariableRef] = []
        seen = set()
        for var in defined:
            if var.name not in seen:
                seen.add(var.name)
                unique.append(var)

        return Statement(
            kind=kind,
            start_line=node.line,
            end_line=node.end_line,
            defined_variables=unique,
            referenced_variables=references,
        )

    def _split_assignment_chain(self, node: Node) -> Tuple[List[VariableRef], Node]:
        """Walk ``a = b = rhs`` returning the targets in order and the final ``rhs``."""
        defined = []
        while isinstance(node, BinaryExpression) and node.is_assignment:
            if not isinstance(node.left, Identifier):
                raise StructuralError(
                    "Assignment target must be an identifier",
                    {'node_type': type(node.left).__name__, 'line': node.line}
                )
            defined.append(VariableRef.from_identifier(node.left))
            node = node.right
        return defined, node

    def _correct_columns(self, references: List[VariableRef], kind: StatementKind,
                         line: int) -> List[VariableRef]:
        """Undo the column offset introduced by the parser's temporary assignment prefix."""
        if kind == StatementKind.EXPRESSION:
            return references
        width = self.config.synthetic_prefix_width
        return [ref.moved_back(line, width) for ref in references]

    def _analyze_function(self, node: FunctionDefinition, depth: int) -> Statement:
        end_line = node.end_line
        if node.body.end_line >= 0:
            end_line = node.body.end_line
        return Statement(
            kind=StatementKind.FUNC_DECLARATION,
            start_line=node.line,
            end_line=end_line,
            sub_statements=[self._analyze(sub, depth + 1) for sub in node.body.statements],
        )
