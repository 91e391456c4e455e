"""Diagnostic tree walker."""

from typing import Iterator

from diag_analyzer.models import DiagnosticNode


def flatten(node: DiagnosticNode) -> Iterator[DiagnosticNode]:
    """Yield node and every descendant, depth-first pre-order.

    Uses an explicit stack so deep call trees cannot exhaust the
    interpreter's recursion limit.
    """
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))
