"""
Shared fixtures for code block tests.
"""

import pytest

from code_block_core.parser import CodeParser, Diagnostic, ParseResult
from code_block_core.models import Workspace


class ScriptedParser(CodeParser):
    """Parser stand-in returning prepared results for known code strings."""

    def __init__(self):
        self.scripts = {}
        self.calls = []

    def script(self, code, nodes=(), free_identifiers=(), rewritten=None):
        self.scripts[code] = ParseResult(
            nodes=list(nodes),
            free_identifiers=list(free_identifiers),
            code=rewritten,
        )

    def script_error(self, code, *messages):
        self.scripts[code] = ParseResult(diagnostics=[Diagnostic(m) for m in messages])

    def parse(self, code):
        self.calls.append(code)
        if code in self.scripts:
            return self.scripts[code]
        return ParseResult(diagnostics=[Diagnostic(f"Unexpected code: {code}")])


@pytest.fixture
def parser():
    """Create an empty scripted parser."""
    return ScriptedParser()


@pytest.fixture
def workspace():
    """Create an empty workspace."""
    return Workspace()
