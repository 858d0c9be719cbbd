"""
Port planning for code blocks.

Turns the analyzed statements of a block into the input ports (one per
free identifier) and output ports (one per externally visible definition)
shown on the node, with output ports aligned to their source lines.
"""

from dataclasses import dataclass, field
from typing import List, Sequence

from .config import CodeBlockConfig, DEFAULT_CONFIG
from .statements import Statement


@dataclass(frozen=True)
class InputPortSpec:
    """Input port description; ``tooltip`` is the full identifier name."""
    display_name: str
    tooltip: str


@dataclass(frozen=True)
class OutputPortSpec:
    """Output port description.

    ``tooltip`` identifies the port across rebuilds. ``variable_name`` is the
    variable the port exposes, which differs from the tooltip for ports of
    parser-generated temporaries.
    """
    display_name: str
    tooltip: str
    vertical_offset: float = 0.0
    variable_name: str = ""


@dataclass
class PortPlan:
    inputs: List[InputPortSpec] = field(default_factory=list)
    outputs: List[OutputPortSpec] = field(default_factory=list)


class PortPlanner:
    """Computes port specifications from a block's statements."""

    def __init__(self, config: CodeBlockConfig = DEFAULT_CONFIG):
        self.config = config

    def plan(self, statements: Sequence[Statement], free_identifiers: Sequence[str]) -> PortPlan:
        """Plan input and output ports for an ordered statement sequence."""
        if not statements:
            return PortPlan()
        return PortPlan(
            inputs=self.input_ports(free_identifiers),
            outputs=self.output_ports(statements),
        )

    def input_ports(self, free_identifiers: Sequence[str]) -> List[InputPortSpec]:
        """One port per distinct free identifier, in first-seen order."""
        ports = []
        seen = set()
        for name in free_identifiers:
            if name in seen:
                continue
            seen.add(name)
            ports.append(InputPortSpec(display_name=self.display_name(name), tooltip=name))
        return ports

    def display_name(self, name: str) -> str:
        """Shorten long identifiers for display."""
        if len(name) > self.config.max_port_name_length:
            return name[:self.config.truncated_port_name_length] + self.config.ellipsis
        return name

    def requires_output_port(self, statements: Sequence[Statement], position: int) -> bool:
        """
        Check whether a statement needs an output port. A port is not needed
        if the statement defines nothing or if any of its variables is defined
        again by a later statement of the block.
        """
        defined = statements[position].defined_names()
        if not defined:
            return False

        later = set()
        for statement in statements[position + 1:]:
            later.update(statement.defined_names())
        return not any(name in later for name in defined)

    def output_ports(self, statements: Sequence[Statement]) -> List[OutputPortSpec]:
        ports = []
        margins = iter(self.vertical_margins(statements))
        for i, statement in enumerate(statements):
            if not self.requires_output_port(statements, i):
                continue

            name = statement.first_defined_variable.name
            label = name
            if self.config.is_synthetic_temporary(name):
                label = self.config.placeholder_label

            ports.append(OutputPortSpec(
                display_name=label,
                tooltip=label,
                vertical_offset=next(margins),
                variable_name=name,
            ))
        return ports

    def vertical_margins(self, statements: Sequence[Statement]) -> List[float]:
        """Top margin of each output port, derived from the start lines of the statements."""
        result = []
        cursor = 1  # line right after the last port's line
        initial_margin = self.config.initial_margin
        for i, statement in enumerate(statements):
            if not self.requires_output_port(statements, i):
                continue

            if statement.start_line - cursor >= 0:
                margin = (statement.start_line - cursor) * self.config.line_height
                cursor = statement.start_line + 1
            else:
                margin = 0.0
                cursor += 1
            result.append(margin + initial_margin)
            initial_margin = 0.0
        return result

    def output_statement_index(self, statements: Sequence[Statement], port_index: int) -> int:
        """Index of the statement that produced output port ``port_index``."""
        if port_index < 0:
            raise IndexError(f"Output port index out of range: {port_index}")
        remaining = port_index
        for i in range(len(statements)):
            if self.requires_output_port(statements, i):
                if remaining == 0:
                    return i
                remaining -= 1
        raise IndexError(f"Output port index out of range: {port_index}")
