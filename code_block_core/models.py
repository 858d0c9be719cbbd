"""
Graph data models used by code blocks.

This module defines the nodes, ports and connectors of the dataflow graph
and the workspace that owns them.
"""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from .undo import UndoRecorder


class PortType(Enum):
    INPUT = "input"
    OUTPUT = "output"


class ElementState(Enum):
    """State of a node as shown to the user."""
    ACTIVE = "active"
    WARNING = "warning"
    ERROR = "error"


@dataclass(eq=False)
class PortModel:
    """A connection point on a node."""
    owner: 'NodeModel'
    port_type: PortType
    index: int
    name: str
    tooltip: str
    vertical_margin: float = 0.0
    variable_name: str = ""
    connectors: List['Connector'] = field(default_factory=list)

    def remote_endpoints(self) -> List['PortModel']:
        """Ports at the far end of this port's connectors, in connection order."""
        if self.port_type == PortType.OUTPUT:
            return [connector.end for connector in self.connectors]
        return [connector.start for connector in self.connectors]


@dataclass(eq=False)
class Connector:
    """A wire from an output port to an input port."""
    start: PortModel
    end: PortModel
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'start_node': self.start.owner.id,
            'start_index': self.start.index,
            'end_node': self.end.owner.id,
            'end_index': self.end.index,
        }


class NodeModel:
    """Base class for graph nodes with registered input and output ports."""

    def __init__(self, name: str = "", node_id: Optional[str] = None):
        self.id = node_id or str(uuid.uuid4())
        self.name = name
        self.workspace: Optional['Workspace'] = None
        self.inputs: List[PortModel] = []
        self.outputs: List[PortModel] = []
        self.state = ElementState.ACTIVE
        self.error_message: Optional[str] = None
        self._pending_inputs: List[Any] = []
        self._pending_outputs: List[Any] = []

    def set_input_ports(self, specs: Sequence[Any]):
        """Stage input port specs; they take effect on ``commit_ports``."""
        self._pending_inputs = list(specs)

    def set_output_ports(self, specs: Sequence[Any]):
        """Stage output port specs; they take effect on ``commit_ports``."""
        self._pending_outputs = list(specs)

    def commit_ports(self):
        """Replace the visible ports with the staged specs."""
        self.inputs = self._register_ports(PortType.INPUT, self.inputs, self._pending_inputs)
        self.outputs = self._register_ports(PortType.OUTPUT, self.outputs, self._pending_outputs)

    def _register_ports(self, port_type: PortType, current: List[PortModel],
                        specs: List[Any]) -> List[PortModel]:
        # Reuse ports by index; connectors on reused ports are kept
        ports = []
        for i, spec in enumerate(specs):
            if i < len(current):
                port = current[i]
                port.name = spec.display_name
                port.tooltip = spec.tooltip
            else:
                port = PortModel(owner=self, port_type=port_type, index=i,
                                 name=spec.display_name, tooltip=spec.tooltip)
            port.vertical_margin = getattr(spec, 'vertical_offset', 0.0)
            port.variable_name = getattr(spec, 'variable_name', "")
            ports.append(port)

        for port in current[len(specs):]:
            self._destroy_connectors(port)
        return ports

    def _destroy_connectors(self, port: PortModel):
        for connector in list(port.connectors):
            if self.workspace is not None:
                if self.workspace.undo_recorder.is_recording:
                    self.workspace.undo_recorder.record_deletion(connector)
                self.workspace.remove_connector(connector)

    def error(self, message: str):
        """Put the node in the error state with a user-visible message."""
        self.state = ElementState.ERROR
        self.error_message = message

    def clear_error(self):
        self.state = ElementState.ACTIVE
        self.error_message = None

    def defined_variable_names(self) -> List[str]:
        """Names this node defines in the graph's shared namespace."""
        return []

    def get_input_port(self, index: int) -> Optional[PortModel]:
        if 0 <= index < len(self.inputs):
            return self.inputs[index]
        return None

    def get_output_port(self, index: int) -> Optional[PortModel]:
        if 0 <= index < len(self.outputs):
            return self.outputs[index]
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'state': self.state.value,
        }


class Workspace:
    """Owns the nodes and connectors of one graph, plus its undo recorder."""

    def __init__(self, undo_recorder: Optional[UndoRecorder] = None):
        self.nodes: Dict[str, NodeModel] = {}
        self.connectors: List[Connector] = []
        self.undo_recorder = undo_recorder or UndoRecorder()
        self.is_modified = False
        self.on_modified: Optional[Callable[[], None]] = None
        self.logger = logging.getLogger(__name__)

    def add_node(self, node: NodeModel) -> str:
        """Add a node to the workspace and return its ID."""
        self.nodes[node.id] = node
        node.workspace = self
        return node.id

    def remove_node(self, node_id: str) -> bool:
        """Remove a node and all its connectors."""
        node = self.nodes.pop(node_id, None)
        if node is None:
            return False
        for connector in [c for c in self.connectors
                          if c.start.owner is node or c.end.owner is node]:
            self.remove_connector(connector)
        node.workspace = None
        return True

    def connect(self, start_node: NodeModel, start_index: int,
                end_node: NodeModel, end_index: int) -> Connector:
        """Wire an output port to an input port, replacing the input's existing wire."""
        start = start_node.get_output_port(start_index)
        end = end_node.get_input_port(end_index)
        if start is None or end is None:
            raise ValueError(
                f"Invalid connection {start_node.id}[{start_index}] -> {end_node.id}[{end_index}]"
            )

        for existing in list(end.connectors):
            self.remove_connector(existing)

        connector = Connector(start=start, end=end)
        start.connectors.append(connector)
        end.connectors.append(connector)
        self.connectors.append(connector)
        return connector

    def remove_connector(self, connector: Connector):
        if connector in connector.start.connectors:
            connector.start.connectors.remove(connector)
        if connector in connector.end.connectors:
            connector.end.connectors.remove(connector)
        if connector in self.connectors:
            self.connectors.remove(connector)

    def find_redefinition_across_blocks(self, node: NodeModel,
                                        names: Sequence[str]) -> Optional[str]:
        """Return the first of ``names`` already defined by another node, if any."""
        for name in names:
            for other in self.nodes.values():
                if other is node:
                    continue
                if name in other.defined_variable_names():
                    return name
        return None

    def modified(self):
        self.is_modified = True
        if self.on_modified:
            self.on_modified()
