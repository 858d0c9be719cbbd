"""
Code Block Core - analysis and port management for textual code nodes.

This package turns the statements typed into a code block node into input
and output ports of a dataflow graph, and keeps existing wires attached
across edits.
"""

__version__ = "0.1.0"
__author__ = "VPyD Development Team"

from .config import CodeBlockConfig, DEFAULT_CONFIG
from .errors import (
    CodeBlockError, CodeSyntaxError, RedefinitionError, StructuralError, MissingInputsError
)
from .normalizer import normalize
from .parser import CodeParser, ParseResult, Diagnostic
from .statements import Statement, StatementKind, StatementAnalyzer, VariableRef
from .port_planner import PortPlanner, PortPlan, InputPortSpec, OutputPortSpec
from .reconciler import ConnectorReconciler, ConnectionSnapshot, ReconcileReport
from .undo import UndoRecorder, UndoGroupError
from .models import NodeModel, PortModel, Connector, Workspace, ElementState, PortType
from .code_block import CodeBlockNode

__all__ = [
    "CodeBlockConfig",
    "DEFAULT_CONFIG",
    "CodeBlockError",
    "CodeSyntaxError",
    "RedefinitionError",
    "StructuralError",
    "MissingInputsError",
    "normalize",
    "CodeParser",
    "ParseResult",
    "Diagnostic",
    "Statement",
    "StatementKind",
    "StatementAnalyzer",
    "VariableRef",
    "PortPlanner",
    "PortPlan",
    "InputPortSpec",
    "OutputPortSpec",
    "ConnectorReconciler",
    "ConnectionSnapshot",
    "ReconcileReport",
    "UndoRecorder",
    "UndoGroupError",
    "NodeModel",
    "PortModel",
    "Connector",
    "Workspace",
    "ElementState",
    "PortType",
    "CodeBlockNode",
]
