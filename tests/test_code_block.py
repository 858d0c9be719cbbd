"""
Integration tests for the code block node.
"""

import json
import logging

import pytest

from code_block_core.ast_nodes import (
    BinaryExpression, CodeBlockBody, FunctionDefinition, Identifier, IntLiteral,
    Operator, Span, assignment
)
from code_block_core.code_block import CodeBlockNode
from code_block_core.errors import MissingInputsError
from code_block_core.models import ElementState, NodeModel
from code_block_core.port_planner import InputPortSpec, OutputPortSpec
from code_block_core.statements import StatementKind
from code_block_core.undo import ActionType

TEMP_A = "temp1a2b3c4d5"
TEMP_B = "temp9f8e7d6c5"


def ident(name, line=1, col=1):
    return Identifier(name, span=Span(line=line, col=col))


def plus_one(name, line=1, col=5):
    return BinaryExpression(ident(name, line, col), Operator.ADD, IntLiteral(1))


def sink(workspace, count=1):
    """Node with ``count`` input ports to wire code block outputs into."""
    node = NodeModel(name="sink")
    workspace.add_node(node)
    node.set_input_ports([InputPortSpec(f"in{i}", f"in{i}") for i in range(count)])
    node.commit_ports()
    return node


@pytest.fixture
def block(parser, workspace):
    node = CodeBlockNode(parser)
    workspace.add_node(node)
    return node


def wired_names(block):
    """Output tooltip -> list of (sink node name, input index)."""
    return {
        port.tooltip: [(c.end.owner.name, c.end.index) for c in port.connectors]
        for port in block.outputs
    }


class TestCodeProcessing:
    """Test cases for turning code into ports."""

    def test_empty_code(self, parser):
        """Test that blank code gives no ports and no error."""
        node = CodeBlockNode(parser)
        assert node.set_code("") is False
        assert node.set_code(" ; \n ;") is True

        assert node.inputs == []
        assert node.outputs == []
        assert node.state == ElementState.ACTIVE
        assert node.code == ""
        assert parser.calls == []

    def test_free_identifier_becomes_input(self, parser, block):
        """Test y = x + 1 with free identifier x."""
        parser.script("y = x + 1;", [assignment("y", plus_one("x"), line=1, col=1)], ["x"])
        block.set_code("y = x + 1")

        assert [p.tooltip for p in block.inputs] == ["x"]
        assert [p.tooltip for p in block.outputs] == ["y"]
        assert block.input_identifiers == ["x"]
        assert block.state == ElementState.ACTIVE
        assert block.statements[0].kind == StatementKind.EXPRESSION

    def test_shadowed_definition(self, parser, block):
        """Test a=1;b=2;a=3; exposes only b and the last a."""
        parser.script("a=1;b=2;a=3;", [
            assignment("a", IntLiteral(1)),
            assignment("b", IntLiteral(2)),
            assignment("a", IntLiteral(3)),
        ])
        block.set_code("a=1;b=2;a=3;")

        assert [p.name for p in block.outputs] == ["b", "a"]
        assert block.defined_variable_names() == ["a", "b", "a"]

    def test_output_alignment(self, parser, block):
        """Test that output ports carry their vertical offsets."""
        parser.script("a = 1;\n\nb = 2;", [
            assignment("a", IntLiteral(1), line=1),
            assignment("b", IntLiteral(2), line=3),
        ])
        block.set_code("a = 1;\n\nb = 2;")
        assert [p.vertical_margin for p in block.outputs] == [4.0, 20.0]

    def test_placeholder_output(self, parser, block):
        """Test that temporaries are shown with the generic label."""
        parser.script("x;", [assignment(TEMP_A, ident("x", col=14), line=1)], ["x"])
        block.set_code("x;")

        port = block.outputs[0]
        assert port.name == "Statement Output"
        assert port.variable_name == TEMP_A
        assert block.statements[0].kind == StatementKind.ASSIGNMENT_VAR
        assert block.statements[0].referenced_variables[0].start_column == 1

    def test_function_declaration(self, parser, block):
        """Test that function definitions add no ports of their own."""
        body = CodeBlockBody((assignment("t", IntLiteral(1), line=2),), span=Span(end_line=3))
        parser.script("def f() { t = 1; };r = 2;", [
            FunctionDefinition("f", (), body, span=Span(line=1)),
            assignment("r", IntLiteral(2), line=4),
        ])
        block.set_code("def f() { t = 1; };r = 2;")

        assert [p.tooltip for p in block.outputs] == ["r"]
        assert block.statements[0].kind == StatementKind.FUNC_DECLARATION
        assert block.statements[0].sub_statements[0].defined_names() == ["t"]

    def test_parser_rewritten_code_kept(self, parser, block):
        parser.script("5;", [assignment(TEMP_A, IntLiteral(5))], rewritten=f"{TEMP_A} = 5;")
        block.set_code("5;")
        assert block.code == "5;"
        assert block.code_to_parse == f"{TEMP_A} = 5;"

    def test_preview_variable(self, parser, block):
        parser.script("a = 1;b = 2;", [assignment("a", IntLiteral(1)), assignment("b", IntLiteral(2))])
        block.set_code("a = 1;b = 2;")
        assert block.preview_variable == "b"

    def test_unchanged_code_is_ignored(self, parser, block):
        parser.script("a = 1;", [assignment("a", IntLiteral(1))])
        assert block.set_code("a = 1;") is True
        assert block.set_code("a = 1;") is False
        assert parser.calls == ["a = 1;"]


class TestErrors:
    """Test cases for error states."""

    def test_syntax_error(self, parser, block):
        """Test that diagnostics are aggregated and ports cleared."""
        parser.script("y = x;", [assignment("y", ident("x", col=5))], ["x"])
        block.set_code("y = x;")
        parser.script_error("y = ;", "unexpected ';'", "expression expected")
        block.set_code("y = ;")

        assert block.state == ElementState.ERROR
        assert block.error_message == "unexpected ';'\nexpression expected"
        assert block.inputs == []
        assert block.outputs == []
        assert block.preview_variable is None

    def test_recovers_after_fix(self, parser, block):
        parser.script_error("y = ;", "bad")
        block.set_code("y = ;")
        parser.script("y = 1;", [assignment("y", IntLiteral(1))])
        block.set_code("y = 1;")

        assert block.state == ElementState.ACTIVE
        assert block.error_message is None
        assert len(block.outputs) == 1

    def test_structural_error(self, parser, block, caplog):
        """Test that an unsupported top-level node puts the block in error."""
        parser.script("1;", [IntLiteral(1)])
        with caplog.at_level(logging.ERROR):
            block.set_code("1;")

        assert block.state == ElementState.ERROR
        assert block.outputs == []
        assert "Must be func def or assignment" in caplog.text

    def test_redefinition_error(self, parser, workspace, block):
        """Test that names defined by another block are rejected."""
        parser.script("a = 1;", [assignment("a", IntLiteral(1))])
        parser.script("b = 1;a = 2;", [assignment("b", IntLiteral(1)), assignment("a", IntLiteral(2))])
        other = CodeBlockNode(parser)
        workspace.add_node(other)
        other.set_code("a = 1;")

        block.set_code("b = 1;a = 2;")
        assert block.state == ElementState.ERROR
        assert block.error_message == "a is already defined"
        assert block.outputs == []
        assert other.state == ElementState.ACTIVE

    def test_error_ports_invariant(self, parser, block):
        """Test that a block with ports is never in the error state."""
        parser.script_error("?;", "bad")
        parser.script("a = 1;", [assignment("a", IntLiteral(1))])
        for code in ["a = 1;", "?;", "a = 1;", "?;"]:
            block.set_code(code)
            if block.inputs or block.outputs:
                assert block.state != ElementState.ERROR

    def test_injected_logger(self, parser):
        """Test that errors go to the logger passed to the block."""
        records = []

        class ListHandler(logging.Handler):
            def emit(self, record):
                records.append(record.getMessage())

        logger = logging.getLogger("test.code_block.injected")
        logger.addHandler(ListHandler())
        logger.setLevel(logging.DEBUG)
        parser.script_error("?;", "bad token")

        CodeBlockNode(parser, logger=logger).set_code("?;")
        assert any("bad token" in message for message in records)


class TestUndo:
    """Test cases for undo grouping."""

    def test_edit_is_one_group(self, parser, workspace, block):
        """Test that an edit with rewiring is recorded as a single undo step."""
        target = sink(workspace)
        parser.script("a = 1;", [assignment("a", IntLiteral(1))])
        parser.script("a = 2;", [assignment("a", IntLiteral(2))])
        block.set_code("a = 1;")
        workspace.connect(block, 0, target, 0)
        workspace.undo_recorder.clear()

        block.set_code("a = 2;")

        history = workspace.undo_recorder.history
        assert len(history) == 1
        assert [a.action_type for a in history[0].actions] == [
            ActionType.DELETION, ActionType.MODIFICATION, ActionType.CREATION
        ]
        assert history[0].actions[1].snapshot['code'] == "a = 1;"

    def test_failed_edit_closes_group(self, parser, workspace, block):
        """Test that an error edit still commits one closed group."""
        parser.script_error("?;", "bad")
        block.set_code("?;")

        assert not workspace.undo_recorder.is_recording
        assert len(workspace.undo_recorder.history) == 1

    def test_parser_crash_closes_group(self, workspace, block):
        """Test that an unexpected exception leaves no open group."""
        def explode(code):
            raise RuntimeError("parser crashed")
        block.parser.parse = explode

        with pytest.raises(RuntimeError, match="parser crashed"):
            block.set_code("a = 1;")
        assert not workspace.undo_recorder.is_recording

    def test_parser_crash_leaves_no_partial_ports(self, parser, workspace, block):
        """Test that a crashed edit ends in the error state with no ports, and can be retried."""
        target = sink(workspace)
        parser.script("y = x + 1;", [assignment("y", plus_one("x"))], ["x"])
        parser.script("b = x;", [assignment("b", ident("x", col=5))], ["x"])
        block.set_code("y = x + 1;")
        workspace.connect(block, 0, target, 0)

        def explode(code):
            raise RuntimeError("parser crashed")
        block.parser.parse = explode

        with pytest.raises(RuntimeError):
            block.set_code("b = x;")
        assert block.state == ElementState.ERROR
        assert "parser crashed" in block.error_message
        assert block.inputs == []
        assert block.outputs == []
        assert workspace.connectors == []

        del block.parser.parse
        assert block.set_code("b = x;") is True
        assert block.state == ElementState.ACTIVE
        assert [p.tooltip for p in block.inputs] == ["x"]
        assert [p.tooltip for p in block.outputs] == ["b"]
        assert block.set_code("b = x;") is False

    def test_deep_expression_is_an_error_state(self, parser, workspace, block):
        """Test that an over-nested right-hand side is reported, not raised."""
        rhs = ident("x")
        for _ in range(5000):
            rhs = BinaryExpression(rhs, Operator.ADD, IntLiteral(1))
        parser.script("y = x + 1;", [assignment("y", plus_one("x"))], ["x"])
        parser.script("deep;", [assignment("y", rhs)], ["x"])
        block.set_code("y = x + 1;")

        block.set_code("deep;")
        assert block.state == ElementState.ERROR
        assert block.inputs == []
        assert block.outputs == []
        assert not workspace.undo_recorder.is_recording

    def test_reentrant_edit_rejected(self, parser, workspace, block):
        """Test that the block does not re-enter itself."""
        def reenter(code):
            block.set_code("b = 2;")
        block.parser.parse = reenter

        with pytest.raises(RuntimeError, match="already processing"):
            block.set_code("a = 1;")
        assert not workspace.undo_recorder.is_recording


class TestReconnection:
    """Test cases for restoring wires across edits."""

    def test_exact_match_keeps_wires(self, parser, workspace, block):
        """Test that an output whose name survives keeps all of its wires."""
        t1, t2 = sink(workspace), sink(workspace)
        t1.name, t2.name = "t1", "t2"
        parser.script("a = 1;b = 2;", [assignment("a", IntLiteral(1)), assignment("b", IntLiteral(2))])
        parser.script("b = 2;c = 3;", [assignment("b", IntLiteral(2)), assignment("c", IntLiteral(3))])
        block.set_code("a = 1;b = 2;")
        workspace.connect(block, 1, t1, 0)
        workspace.connect(block, 1, t2, 0)

        block.set_code("b = 2;c = 3;")

        assert wired_names(block) == {"b": [("t1", 0), ("t2", 0)], "c": []}
        assert len(workspace.connectors) == 2
        assert len(block.last_reconcile.exact) == 2
        assert block.last_reconcile.leftover == []

    def test_reversed_statements_keep_wire_count(self, parser, workspace, block):
        """Test that renamed, reordered outputs neither duplicate nor lose wires."""
        t1, t2 = sink(workspace), sink(workspace)
        t1.name, t2.name = "t1", "t2"
        parser.script("p = 1;q = 2;", [assignment("p", IntLiteral(1)), assignment("q", IntLiteral(2))])
        parser.script("r = 2;s = 1;", [assignment("r", IntLiteral(2)), assignment("s", IntLiteral(1))])
        block.set_code("p = 1;q = 2;")
        workspace.connect(block, 0, t1, 0)
        workspace.connect(block, 1, t2, 0)

        block.set_code("r = 2;s = 1;")

        assert wired_names(block) == {"r": [("t1", 0)], "s": [("t2", 0)]}
        assert len(workspace.connectors) == 2

    def test_error_drops_wires(self, parser, workspace, block):
        target = sink(workspace)
        parser.script("a = 1;", [assignment("a", IntLiteral(1))])
        parser.script_error("?;", "bad")
        block.set_code("a = 1;")
        workspace.connect(block, 0, target, 0)

        block.set_code("?;")
        assert workspace.connectors == []
        assert len(block.last_reconcile.dropped) == 1

    def test_placeholder_outputs_reconnect(self, parser, workspace, block):
        """Test that temporaries, renamed on every parse, keep their wires."""
        t1, t2 = sink(workspace), sink(workspace)
        t1.name, t2.name = "t1", "t2"
        parser.script("1;2;", [assignment(TEMP_A, IntLiteral(1)), assignment(TEMP_B, IntLiteral(2))])
        parser.script("1;\n2;", [
            assignment(TEMP_B, IntLiteral(1), line=1),
            assignment(TEMP_A, IntLiteral(2), line=2),
        ])
        block.set_code("1;2;")
        workspace.connect(block, 0, t1, 0)
        workspace.connect(block, 1, t2, 0)

        block.set_code("1;\n2;")

        assert [[(c.end.owner.name) for c in p.connectors] for p in block.outputs] == [["t1"], ["t2"]]
        assert len(block.last_reconcile.exact) == 2

    def test_input_wires_survive_edit(self, parser, workspace, block):
        """Test that wires into the block's inputs stay on ports that still exist."""
        source = NodeModel(name="source")
        workspace.add_node(source)
        parser.script("y = x + 1;", [assignment("y", plus_one("x"))], ["x"])
        parser.script("y = x + 2;", [assignment("y", plus_one("x"))], ["x"])
        block.set_code("y = x + 1;")
        source.set_output_ports([OutputPortSpec("out", "out")])
        source.commit_ports()
        connector = workspace.connect(source, 0, block, 0)

        block.set_code("y = x + 2;")
        assert block.inputs[0].connectors == [connector]


class TestCodeGeneration:
    """Test cases for building the block's AST with bound inputs."""

    def test_missing_inputs(self, parser, block):
        parser.script("y = x + 1;", [assignment("y", plus_one("x"))], ["x"])
        block.set_code("y = x + 1;")

        with pytest.raises(MissingInputsError) as exc_info:
            block.build_ast([])
        assert exc_info.value.expected == 1
        assert block.state == ElementState.ACTIVE
        assert len(block.outputs) == 1

    def test_inputs_bound_by_assignment(self, parser, block):
        """Test that differently named inputs are bound before the block code."""
        nodes = [assignment("y", plus_one("x"))]
        parser.script("y = x + 1;", nodes, ["x"])
        parser.script("x = upstream;y = x + 1;", [assignment("x", ident("upstream"))] + nodes)
        block.set_code("y = x + 1;")

        result = block.build_ast([Identifier("upstream")])
        assert len(result) == 2
        assert parser.calls[-1] == "x = upstream;y = x + 1;"

    def test_same_name_input_not_rebound(self, parser, block):
        nodes = [assignment("y", plus_one("x"))]
        parser.script("y = x + 1;", nodes, ["x"])
        block.set_code("y = x + 1;")

        assert block.build_ast([Identifier("x")]) == nodes

    def test_parse_failure_returns_nothing(self, parser, block):
        parser.script("y = x + 1;", [assignment("y", plus_one("x"))], ["x"])
        block.set_code("y = x + 1;")

        assert block.build_ast([Identifier("other")]) == []
        assert block.state == ElementState.ACTIVE

    def test_output_identifier(self, parser, block):
        parser.script("a = 1;b = 2;a = 3;", [
            assignment("a", IntLiteral(1), line=1),
            assignment("b", IntLiteral(2), line=2, col=1),
            assignment("a", IntLiteral(3), line=3, col=1),
        ])
        block.set_code("a = 1;b = 2;a = 3;")

        assert block.output_identifier(0).name == "b"
        assert block.output_identifier(1).name == "a"
        assert block.output_identifier(1).line == 3
        with pytest.raises(IndexError):
            block.output_identifier(2)

    def test_output_identifier_in_error(self, parser, block):
        parser.script_error("?;", "bad")
        block.set_code("?;")
        assert block.output_identifier(0) is None


class TestPersistence:
    """Test cases for saving and restoring block state."""

    def test_save_state(self, parser, block):
        parser.script("a = 1;", [assignment("a", IntLiteral(1))])
        block.set_code("a = 1")
        block.should_focus = False

        assert json.loads(block.save_state()) == {'code': "a = 1", 'should_focus': False}

    def test_load_state_reruns_analysis(self, parser, workspace):
        """Test that loading rebuilds ports without an undo entry."""
        parser.script("y = x + 1;", [assignment("y", plus_one("x"))], ["x"])
        node = CodeBlockNode(parser)
        workspace.add_node(node)

        node.load_state(json.dumps({'code': "y = x + 1", 'should_focus': False}))

        assert node.raw_code == "y = x + 1"
        assert node.code == "y = x + 1;"
        assert node.should_focus is False
        assert [p.tooltip for p in node.inputs] == ["x"]
        assert [p.tooltip for p in node.outputs] == ["y"]
        assert workspace.undo_recorder.history == []

    def test_restore_from_undo(self, parser, workspace, block):
        """Test that restoring a snapshot reprocesses code without recording."""
        parser.script("a = 1;", [assignment("a", IntLiteral(1))])
        parser.script("b = 1;", [assignment("b", IntLiteral(1))])
        block.set_code("a = 1;")
        block.set_code("b = 1;")
        snapshot = workspace.undo_recorder.history[-1].actions[0].snapshot
        history_size = len(workspace.undo_recorder.history)

        block.restore_from_undo(snapshot)

        assert block.raw_code == "a = 1;"
        assert [p.tooltip for p in block.outputs] == ["a"]
        assert len(workspace.undo_recorder.history) == history_size
