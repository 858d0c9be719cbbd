"""
Canonical formatting of user-entered code block text.
"""

from typing import Optional


def normalize(code: Optional[str]) -> str:
    """
    Format user text by:
    1. Removing carriage returns and surrounding whitespace
    2. Removing empty statements (stray semicolons)
    3. Terminating every statement with exactly one semicolon
    """
    if code is None:
        return ""

    code = code.replace("\r", "").strip()
    statements = [stmt for stmt in code.split(";") if stmt.strip()]
    # A dropped leading fragment can leave whitespace ahead of the first statement
    return "".join(stmt + ";" for stmt in statements).lstrip()
