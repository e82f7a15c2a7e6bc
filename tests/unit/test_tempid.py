"""
Unit tests for temporary ids.
"""

from appstate.graphsync.tempid import TempId, is_tempid, tempid


class TestTempId:
    """Tests for TempId."""

    def test_fresh_ids_differ(self):
        assert tempid() != tempid()

    def test_equal_by_id(self):
        assert tempid("a") == TempId("a")
        assert hash(tempid("a")) == hash(TempId("a"))

    def test_not_equal_to_string(self):
        assert tempid("a") != "a"

    def test_usable_as_key(self):
        t = tempid()

        assert {("person", t): 1}[("person", TempId(t.id))] == 1

    def test_ordering(self):
        assert sorted([tempid("b"), tempid("a")]) == [tempid("a"), tempid("b")]

    def test_is_tempid(self):
        assert is_tempid(tempid())
        assert not is_tempid("tempid")

    def test_repr(self):
        assert repr(tempid("x")) == "#tempid['x']"
