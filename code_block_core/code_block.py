"""
Code block node.

A code block holds user-written statements of the expression language.
Each edit is normalized, parsed and analyzed; the node then exposes one
input port per free identifier and one output port per visible definition,
and reconnects the wires of the previous output ports where it can. The
whole edit is recorded as a single undo step.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from .ast_nodes import BinaryExpression, Identifier, Node, Span
from .config import CodeBlockConfig, DEFAULT_CONFIG
from .errors import (
    CodeBlockError, CodeSyntaxError, MissingInputsError, RedefinitionError, StructuralError
)
from .models import ElementState, NodeModel, PortModel
from .normalizer import normalize
from .parser import CodeParser
from .port_planner import PortPlan, PortPlanner
from .reconciler import ConnectionSnapshot, ConnectorReconciler, ReconcileReport
from .statements import Statement, StatementAnalyzer
from .undo import UndoRecorder


class CodeBlockNode(NodeModel):
    """Graph node whose ports are derived from the code typed into it."""

    def __init__(self, parser: CodeParser, config: CodeBlockConfig = DEFAULT_CONFIG,
                 logger: Optional[logging.Logger] = None, name: str = "Code Block",
                 node_id: Optional[str] = None):
        super().__init__(name=name, node_id=node_id)
        self.parser = parser
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.analyzer = StatementAnalyzer(config)
        self.planner = PortPlanner(config)
        self.reconciler = ConnectorReconciler(config, self.logger)
        self.should_focus = True
        self.last_reconcile: Optional[ReconcileReport] = None

        self._raw_code = ""
        self._code = ""
        self._code_to_parse = ""
        self._statements: List[Statement] = []
        self._input_identifiers: List[str] = []
        self._preview_variable: Optional[str] = None
        self._local_recorder = UndoRecorder()
        self._editing = False
        self._processed = True

    # Properties

    @property
    def raw_code(self) -> str:
        """Code exactly as the user entered it."""
        return self._raw_code

    @property
    def code(self) -> str:
        """Normalized code."""
        return self._code

    @property
    def code_to_parse(self) -> str:
        return self._code_to_parse

    @property
    def statements(self) -> List[Statement]:
        return list(self._statements)

    @property
    def input_identifiers(self) -> List[str]:
        return list(self._input_identifiers)

    @property
    def preview_variable(self) -> Optional[str]:
        """Variable shown in the node preview; None while the node is in error."""
        if self.state == ElementState.ERROR:
            return None
        return self._preview_variable

    @property
    def undo_recorder(self) -> UndoRecorder:
        if self.workspace is not None:
            return self.workspace.undo_recorder
        return self._local_recorder

    # Editing

    def set_code(self, code: str) -> bool:
        """Replace the block's code. Returns False when the code is unchanged.

        Text whose last processing failed unexpectedly is processed again.
        """
        if code is None or (code == self._raw_code and self._processed):
            return False
        self._apply_code(code)
        return True

    def _apply_code(self, code: str):
        if self._editing:
            raise RuntimeError("Code block is already processing an edit")
        self._editing = True
        try:
            recorder = self.undo_recorder
            with recorder.action_group():
                snapshot = self._save_and_delete_connectors()
                recorder.record_modification(self)
                self._raw_code = code
                self._process_code()
                self.last_reconcile = self._load_and_create_connectors(snapshot)
        finally:
            self._editing = False

        if self.workspace is not None:
            self.workspace.modified()

    def _process_code(self):
        self._processed = True
        self._code = normalize(self._raw_code)
        self._code_to_parse = self._code
        self._statements = []
        self._input_identifiers = []
        self._preview_variable = None
        self.clear_error()

        if not self._code:
            self._set_ports(PortPlan())
            return

        try:
            result = self.parser.parse(self._code)
            if not result.success:
                raise CodeSyntaxError([d.message for d in result.diagnostics])
            if result.code is not None:
                self._code_to_parse = result.code

            statements = self.analyzer.analyze_all(result.nodes)
            defined = [name for s in statements for name in s.defined_names()]
            if self.workspace is not None:
                redefined = self.workspace.find_redefinition_across_blocks(self, defined)
                if redefined is not None:
                    raise RedefinitionError(redefined)
        except StructuralError as e:
            self.logger.error(f"Unsupported statement in code block {self.id}: {e} {e.details}")
            self.display_error(e.message)
            return
        except CodeBlockError as e:
            self.display_error(e.message)
            return
        except Exception as e:
            # Leave no partial port set behind; the same text may be retried
            self._processed = False
            self.display_error(f"Failed to process code: {e}")
            raise

        self._statements = statements
        self._preview_variable = self._find_preview_variable(result.nodes)
        plan = self.planner.plan(statements, result.free_identifiers)
        self._input_identifiers = [spec.tooltip for spec in plan.inputs]
        self._set_ports(plan)
        self.logger.debug(
            f"Code block {self.id}: {len(statements)} statement(s), "
            f"{len(plan.inputs)} input(s), {len(plan.outputs)} output(s)"
        )

    def _set_ports(self, plan: PortPlan):
        self.set_input_ports(plan.inputs)
        self.set_output_ports(plan.outputs)
        self.commit_ports()

    def display_error(self, message: str):
        """Put the node in the error state and remove all of its ports."""
        self.logger.error(f"Error in code block {self.id}: {message}")
        self._statements = []
        self._input_identifiers = []
        self.set_input_ports([])
        self.set_output_ports([])
        self.commit_ports()
        self.error(message)

    def _find_preview_variable(self, nodes: Sequence[Node]) -> Optional[str]:
        preview = None
        for node in nodes:
            if isinstance(node, BinaryExpression) and node.is_assignment \
                    and isinstance(node.left, Identifier):
                preview = node.left.name
        return preview

    # Connectors

    def _save_and_delete_connectors(self) -> ConnectionSnapshot:
        """Capture the wires of every output port, then delete them."""
        snapshot = self.reconciler.capture(self.outputs, PortModel.remote_endpoints)
        if self.workspace is not None:
            for port in self.outputs:
                for connector in list(port.connectors):
                    self.undo_recorder.record_deletion(connector)
                    self.workspace.remove_connector(connector)
        self.outputs = []
        return snapshot

    def _load_and_create_connectors(self, snapshot: ConnectionSnapshot) -> ReconcileReport:
        """Recreate captured wires on the new output ports."""
        def link(port_index: int, endpoint: PortModel):
            end_node = endpoint.owner
            if end_node.workspace is not self.workspace or endpoint not in end_node.inputs:
                self.logger.warning(f"Skipping wire to removed port '{endpoint.tooltip}'")
                return
            connector = self.workspace.connect(self, port_index, end_node, endpoint.index)
            self.undo_recorder.record_creation(connector)

        return self.reconciler.restore(snapshot, self.outputs, link)

    # Queries

    def defined_variable_names(self) -> List[str]:
        """Top-level names defined by this block, in statement order."""
        return [name for s in self._statements for name in s.defined_names()]

    def output_identifier(self, port_index: int) -> Optional[Identifier]:
        """Identifier whose value output port ``port_index`` exposes."""
        if self.state == ElementState.ERROR:
            return None
        statement = self._statements[self.planner.output_statement_index(self._statements,
                                                                         port_index)]
        var = statement.first_defined_variable
        return Identifier(var.name, span=Span(line=var.row, col=var.start_column))

    def build_ast(self, input_nodes: Optional[Sequence[Node]]) -> List[Node]:
        """Compile the block with its free identifiers bound to ``input_nodes``."""
        final_code = self._code_to_parse
        if self._input_identifiers:
            supplied = len(input_nodes) if input_nodes is not None else 0
            if supplied != len(self._input_identifiers):
                raise MissingInputsError(len(self._input_identifiers), supplied)

            bindings = []
            for name, node in zip(self._input_identifiers, input_nodes):
                if isinstance(node, Identifier) and node.name != name:
                    bindings.append(f"{name} = {node.name};")
            final_code = "".join(bindings) + self._code_to_parse

        if not final_code:
            return []
        result = self.parser.parse(final_code)
        if not result.success:
            self.logger.error(
                f"Failed to build AST for code block node. Error: {result.error_message()}"
            )
            return []
        return list(result.nodes)

    # Persistence

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['code'] = self._raw_code
        data['should_focus'] = self.should_focus
        return data

    def load_dict(self, data: Dict[str, Any]):
        """Restore persisted state, re-running the analysis without an undo entry."""
        self.should_focus = bool(data.get('should_focus', True))
        with self.undo_recorder.suspended():
            self._apply_code(data.get('code') or "")

    def save_state(self) -> str:
        return json.dumps({'code': self._raw_code, 'should_focus': self.should_focus})

    def load_state(self, state: str):
        self.load_dict(json.loads(state))

    def restore_from_undo(self, data: Dict[str, Any]):
        """Re-apply a recorded snapshot; connectors are restored by the undo host."""
        if self._editing:
            raise RuntimeError("Code block is already processing an edit")
        self.should_focus = bool(data.get('should_focus', True))
        self._raw_code = data.get('code') or ""
        self._process_code()
        if self.workspace is not None:
            self.workspace.modified()
