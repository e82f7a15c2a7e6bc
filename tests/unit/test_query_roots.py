"""
Unit tests for query-root hoisting.
"""

from appstate.graphsync.query.expr import mark_query_root
from appstate.graphsync.query.roots import process_roots, rewrite


class TestProcessRoots:
    """Tests for process_roots and rewrite."""

    def test_hoists_marked_join(self):
        q = [{"app": [mark_query_root({"items": ["id"]})]}]

        roots = process_roots(q)

        assert roots.query == [{"items": ["id"]}]
        assert roots.rewrite({"items": [1]}) == {"app": {"items": [1]}}

    def test_unmarked_query_unchanged(self):
        """Without marks the query and response pass through."""
        q = [{"app": [{"items": ["id"]}]}, "title"]

        roots = process_roots(q)

        assert roots.query == q
        assert roots.rewrite({"title": "x"}) == {"title": "x"}

    def test_hoists_every_marked_join(self):
        """Siblings after a hoisted join are still searched."""
        q = [
            {"left": [mark_query_root({"a": ["id"]})]},
            {"right": [{"deep": [mark_query_root({"b": ["id"]})]}]},
        ]

        roots = process_roots(q)

        assert roots.query == [{"a": ["id"]}, {"b": ["id"]}]
        assert roots.rewrite({"a": 1, "b": 2}) == {"left": {"a": 1}, "right": {"deep": {"b": 2}}}

    def test_rewrite_keeps_other_keys(self):
        step = rewrite({"items": ["app", "items"]})

        assert step({"items": [1], "title": "t"}) == {"title": "t", "app": {"items": [1]}}

    def test_rewrite_ignores_missing_keys(self):
        assert rewrite({"items": ["app", "items"]})({"title": "t"}) == {"title": "t"}
