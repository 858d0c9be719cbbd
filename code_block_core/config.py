"""
Configuration for code block analysis and port layout.
"""

import os
from dataclasses import dataclass, replace


def _resolve_number(env_var: str, default: float) -> float:
    """Two-tier resolution: env -> default."""
    env_val = os.environ.get(env_var, '').strip()
    if env_val:
        return float(env_val)
    return default


@dataclass(frozen=True)
class CodeBlockConfig:
    """Constants shared by the analyzer, the port planner and the reconciler."""
    # Names generated by the parser for statements without an explicit target
    temp_prefix: str = "temp"
    temp_min_length: int = 11
    # Width of the "tempXXXXXXX = " text the parser inserts ahead of such statements
    synthetic_prefix_width: int = 13
    line_height: float = 20.0
    initial_margin: float = 4.0
    max_port_name_length: int = 24
    truncated_port_name_length: int = 21
    ellipsis: str = "..."
    placeholder_label: str = "Statement Output"
    max_nesting_depth: int = 64
    # Nesting limit for a single expression tree
    max_expression_depth: int = 200

    def is_synthetic_temporary(self, name: str) -> bool:
        """Check whether a variable name was generated by the parser."""
        return name.startswith(self.temp_prefix) and len(name) >= self.temp_min_length

    @classmethod
    def from_env(cls) -> 'CodeBlockConfig':
        """Build a configuration with layout values overridden from the environment."""
        defaults = cls()
        return replace(
            defaults,
            line_height=_resolve_number('CODE_BLOCK_LINE_HEIGHT', defaults.line_height),
            initial_margin=_resolve_number('CODE_BLOCK_INITIAL_MARGIN', defaults.initial_margin),
            max_nesting_depth=int(_resolve_number('CODE_BLOCK_MAX_NESTING_DEPTH',
                                                  defaults.max_nesting_depth)),
            max_expression_depth=int(_resolve_number('CODE_BLOCK_MAX_EXPRESSION_DEPTH',
                                                     defaults.max_expression_depth)),
        )


DEFAULT_CONFIG = CodeBlockConfig()
