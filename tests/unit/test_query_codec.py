"""
Unit tests for the JSON query codec.

Tests cover:
- Round trips of the expression kinds, refs and tempids
- Text form of joins
- Error handling
"""

import pytest

from appstate.graphsync.query.codec import CodecError, dumps, loads
from appstate.graphsync.query.expr import Call, Symbol, Var
from appstate.graphsync.tempid import TempId


class TestCodec:
    """Tests for dumps/loads."""

    @pytest.mark.parametrize(
        "value",
        [
            ["name", "age"],
            [{"friends": ["name"]}],
            [{"item": {"photo": ["url"], "video": ["src"]}}],
            [Call("photo", {"size": Var("size")})],
            [Call({"friends": ["name"]}, {"limit": 10})],
            [{"tree": ["id", {"children": "..."}]}],
            [{("person", 1): ["name"]}],
        ],
    )
    def test_query_round_trip(self, value):
        """Queries survive dumps/loads."""
        assert loads(dumps(value)) == value

    def test_join_text_form(self):
        assert dumps(["name", {"friends": ["name"]}]) == '["name", {"$join": ["friends", ["name"]]}]'

    def test_mutation_round_trip(self):
        """Mutation symbols come back as Symbols."""
        tx = [Call(Symbol("person/add"), {"name": "Ann"})]

        back = loads(dumps(tx))

        assert back == tx
        assert isinstance(back[0].expr, Symbol)

    def test_ref_round_trip(self):
        """Refs come back as tuples."""
        assert loads(dumps(("person", 1))) == ("person", 1)

    def test_tempid_round_trip(self):
        """Tempids keep their id, also inside refs."""
        tid = TempId()

        back = loads(dumps([Call(Symbol("person/add"), {"id": ("person", tid)})]))

        assert back[0].params["id"] == ("person", tid)
        assert isinstance(back[0].params["id"][1], TempId)

    def test_plain_data_round_trip(self):
        data = {"person": {1: {"name": "Ann", "tags": ["a", "b"]}}}

        assert loads(dumps(data)) == data

    def test_invalid_json(self):
        with pytest.raises(CodecError):
            loads("[not json")

    def test_unknown_tag(self):
        with pytest.raises(CodecError):
            loads('{"$nope": 1}')

    def test_unencodable_value(self):
        with pytest.raises(CodecError):
            dumps([object()])
