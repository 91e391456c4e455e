"""Tests for diag_analyzer/tree.py."""

from diag_analyzer.models import DiagnosticNode, DiagnosticRecord
from diag_analyzer.tree import flatten


def node(name, *children):
    return DiagnosticNode(name=name, children=tuple(children))


class TestFlatten:
    def test_single_node(self):
        root = DiagnosticRecord(name="root")
        assert [n.name for n in flatten(root)] == ["root"]

    def test_pre_order(self):
        root = node("a", node("b", node("d"), node("e")), node("c", node("f")))
        assert [n.name for n in flatten(root)] == ["a", "b", "d", "e", "c", "f"]

    def test_deep_tree_does_not_recurse(self):
        root = node("leaf")
        for i in range(5000):
            root = node(f"n{i}", root)
        names = [n.name for n in flatten(root)]
        assert len(names) == 5001
        assert names[-1] == "leaf"

    def test_lazy(self):
        walker = flatten(node("a", node("b")))
        assert next(walker).name == "a"
