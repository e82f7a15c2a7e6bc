"""
Unit tests for the read/mutate parser.

Tests cover:
- Local reads and joins
- Mutation actions and failures
- Remote target extraction
- Dispatcher
"""

import logging
from dataclasses import replace

import pytest

from appstate.graphsync.parser import Dispatcher, Env, Parser
from appstate.graphsync.query.ast import expr_to_ast
from appstate.graphsync.query.expr import Call, Symbol
from appstate.graphsync.reconcile.state import AppState


def read(env, key, params):
    st = env.state.value
    if key == "remote-only":
        return {"remote": True}
    if key == "people" and env.target == "remote":
        return {"remote": replace(env.ast, query=["id"], children=[expr_to_ast("id")])}
    if key == "people":
        return {"value": [{k: p[k] for k in env.query if k in p} for p in st["people"]]}
    return {"value": st.get(key)}


def mutate(env, key, params):
    if key == "count/inc":

        def action():
            env.state.swap(lambda s: {**s, "count": s["count"] + params.get("by", 1)})

        return {"action": action, "value": {"keys": ["count"]}, "remote": params.get("remote", False)}
    if key == "count/fail":

        def action():
            raise RuntimeError("boom")

        return {"action": action}
    if key == "count/bad":
        return {"value": 42}
    return None


@pytest.fixture
def state():
    return AppState({"count": 1, "title": "T", "people": [{"id": 1, "name": "Ann", "age": 30}]})


@pytest.fixture
def parser():
    return Parser(read=read, mutate=mutate)


class TestLocalParse:
    """Tests for local evaluation."""

    def test_reads_properties(self, parser, state):
        assert parser(Env(state=state), ["count", "title"]) == {"count": 1, "title": "T"}

    def test_drops_none_values(self, parser, state):
        assert parser(Env(state=state), ["count", "missing"]) == {"count": 1}

    def test_join_gets_subquery(self, parser, state):
        """Join reads see their subquery in env.query."""
        result = parser(Env(state=state), [{"people": ["id", "name"]}])

        assert result == {"people": [{"id": 1, "name": "Ann"}]}

    def test_join_path(self, state):
        """Join reads see the enclosing join keys in env.path."""
        seen = []

        def read_path(env, key, params):
            seen.append((key, list(env.path)))
            return None

        Parser(read=read_path)(Env(state=state), ["a", {"b": ["c"]}])

        assert seen == [("a", []), ("b", ["b"])]

    def test_recursive_join_gets_whole_query(self, state):
        seen = []

        def read_query(env, key, params):
            seen.append(env.query)
            return None

        q = ["id", {"children": "..."}]
        Parser(read=read_query)(Env(state=state), q)

        assert seen[1] == q

    def test_params_passed(self, state):
        seen = []

        def read_params(env, key, params):
            seen.append(params)
            return {"value": 1}

        Parser(read=read_params)(Env(state=state), [Call("photo", {"size": 8}), "name"])

        assert seen == [{"size": 8}, {}]

    def test_runs_mutation(self, parser, state):
        """Mutation actions run and their value is keyed by the symbol."""
        result = parser(Env(state=state), [Call(Symbol("count/inc"), {"by": 2}), "count"])

        assert state.value["count"] == 3
        assert result[Symbol("count/inc")] == {"keys": ["count"]}
        assert result["count"] == 3

    def test_failed_mutation_is_reported(self, parser, state, caplog):
        """A failing action is logged and reported, later expressions still run."""
        with caplog.at_level(logging.ERROR):
            result = parser(Env(state=state), [Call(Symbol("count/fail"), {}), "count"])

        assert isinstance(result[Symbol("count/fail")]["error"], RuntimeError)
        assert result["count"] == 1
        assert "count/fail" in caplog.text

    def test_non_dict_mutation_value(self, parser, state):
        with pytest.raises(ValueError):
            parser(Env(state=state), [Call(Symbol("count/bad"), {})])

    def test_mutation_without_mutate_fn(self, state):
        with pytest.raises(ValueError):
            Parser(read=read)(Env(state=state), [Symbol("count/inc")])


class TestRemoteParse:
    """Tests for remote target extraction."""

    def test_collects_remote_expressions(self, parser, state):
        q = ["count", "remote-only"]

        assert parser(Env(state=state), q, "remote") == ["remote-only"]

    def test_rewritten_remote_expression(self, parser, state):
        """A returned AST replaces the expression sent to the remote."""
        assert parser(Env(state=state), [{"people": ["id", "name"]}], "remote") == [{"people": ["id"]}]

    def test_remote_mode_does_not_run_actions(self, parser, state):
        tx = [Call(Symbol("count/inc"), {"remote": True})]

        sends = parser(Env(state=state), tx, "remote")

        assert sends == tx
        assert state.value["count"] == 1

    def test_nothing_for_remote(self, parser, state):
        assert parser(Env(state=state), ["count"], "remote") == []


class TestDispatcher:
    """Tests for Dispatcher."""

    def test_dispatch_by_key(self):
        read = Dispatcher()

        @read.register("count")
        def read_count(env, key, params):
            return {"value": 1}

        assert read(Env(), "count", {}) == {"value": 1}

    def test_default(self):
        read = Dispatcher(default=lambda env, key, params: {"value": key})

        assert read(Env(), "anything", {}) == {"value": "anything"}

    def test_missing_method(self):
        with pytest.raises(KeyError):
            Dispatcher()(Env(), "nope", {})
