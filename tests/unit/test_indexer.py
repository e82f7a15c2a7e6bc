"""
Unit tests for the Indexer.

Tests cover:
- Root query indexing (prop and class-path tables)
- Component indexing and dropping
- Key resolution
- Full query reconstruction, including recursive positions
"""

from types import SimpleNamespace

import pytest

from appstate.graphsync.component import get_query
from appstate.graphsync.errors import InvalidKey, NoQueriesForPath
from appstate.graphsync.index import Indexer
from appstate.graphsync.runtime import InMemoryHost, RenderContext


class Person:
    @classmethod
    def ident(cls, props):
        return ("person", props["id"])

    @classmethod
    def query(cls):
        return ["id", "name"]


class PeopleList:
    @classmethod
    def query(cls):
        return ["title", {"people": get_query(Person)}]


class Friend:
    @classmethod
    def ident(cls, props):
        return ("person", props["id"])

    @classmethod
    def query(cls):
        return ["id", {"friends": "..."}]


class Profile:
    @classmethod
    def query(cls):
        return [{"me": get_query(Friend)}]


class Label:
    pass


@pytest.fixture
def host():
    return InMemoryHost()


@pytest.fixture
def indexer(host):
    indexer = Indexer(host)
    indexer.index_root(PeopleList)
    return indexer


@pytest.fixture
def context(indexer):
    return RenderContext(reconciler=SimpleNamespace(indexer=indexer))


@pytest.fixture
def root(host, context):
    return host.mount(
        PeopleList,
        {"title": "All", "people": [{"id": 1, "name": "Ann"}, {"id": 2, "name": "Bob"}]},
        context=context,
    )


@pytest.fixture
def ann(host, root):
    return host.mount(Person, {"id": 1, "name": "Ann"}, parent=root, path=["people", 0])


@pytest.fixture
def bob(host, root):
    return host.mount(Person, {"id": 2, "name": "Bob"}, parent=root, path=["people", 1])


class TestIndexRoot:
    """Tests for index_root."""

    def test_prop_to_classes(self, indexer):
        props = indexer.indexes["prop_to_classes"]

        assert props["title"] == {PeopleList}
        assert props["people"] == {PeopleList}
        assert props["name"] == {Person}

    def test_class_paths(self, indexer):
        assert set(indexer.indexes["class_path_to_query"]) == {(PeopleList,), (PeopleList, Person)}

    def test_class_path_to_query(self, indexer):
        """Templates are returned as focused absolute queries."""
        assert indexer.class_path_to_query((PeopleList, Person)) == [[{"people": ["id", "name"]}]]

    def test_recursive_class_path_not_expanded(self, host):
        indexer = Indexer(host)
        indexer.index_root(Profile)

        templates = indexer.indexes["class_path_to_query"]

        assert set(templates) == {(Profile,), (Profile, Friend)}
        assert len(templates[(Profile, Friend)]) == 2

    def test_reindex_replaces_tables(self, indexer):
        indexer.index_root(Profile)

        assert "people" not in indexer.indexes["prop_to_classes"]


class TestComponents:
    """Tests for index_component and drop_component."""

    def test_mount_indexes_component(self, indexer, root, ann):
        assert indexer.indexes["ref_to_components"][("person", 1)] == {ann}
        assert indexer.indexes["class_to_components"][Person] == {ann}
        assert indexer.indexes["class_to_components"][PeopleList] == {root}

    def test_component_without_ident(self, host, indexer, root):
        label = host.mount(Label, {}, parent=root)

        assert indexer.class_to_any(Label) is label
        assert indexer.indexes["ref_to_components"] == {}

    def test_drop_removes_empty_buckets(self, host, indexer, ann):
        host.unmount(ann)

        assert ("person", 1) not in indexer.indexes["ref_to_components"]
        assert Person not in indexer.indexes["class_to_components"]

    def test_drop_after_props_change(self, host, indexer, ann):
        """The ref recorded at index time is dropped, not the current one."""
        host.set_props(ann, {"id": 7, "name": "Ann"})
        host.unmount(ann)

        assert indexer.indexes["ref_to_components"] == {}

    def test_reindex_moves_ref(self, host, indexer, ann):
        host.set_props(ann, {"id": 7, "name": "Ann"})
        indexer.index_component(ann)

        assert indexer.indexes["ref_to_components"] == {("person", 7): {ann}}

    def test_unmount_parent_drops_children(self, host, indexer, root, ann, bob):
        host.unmount(root)

        assert indexer.indexes["class_to_components"] == {}
        assert indexer.indexes["ref_to_components"] == {}

    def test_unmount_forgets_records(self, host, root, ann, bob):
        """The host keeps no record of unmounted components."""
        host.unmount(ann)

        assert host.children(root) == [bob]
        assert not host.is_mounted(ann)
        with pytest.raises(ValueError):
            host.props(ann)

        host.unmount(root)
        host.unmount(root)

        assert host._components == {}

    def test_unmounted_instance_resolves_to_itself(self, host, indexer, ann):
        host.unmount(ann)

        assert host.is_component(ann)
        assert indexer.key_to_components(ann) == {ann}


class TestKeyToComponents:
    """Tests for key resolution."""

    def test_component(self, indexer, ann):
        assert indexer.key_to_components(ann) == {ann}

    def test_ref(self, indexer, ann, bob):
        assert indexer.key_to_components(("person", 2)) == {bob}

    def test_property_key(self, indexer, root, ann, bob):
        assert indexer.key_to_components("name") == {ann, bob}
        assert indexer.key_to_components("title") == {root}

    def test_property_without_live_components(self, indexer):
        assert indexer.key_to_components("name") == set()

    def test_unknown_key(self, indexer, ann):
        with pytest.raises(InvalidKey):
            indexer.key_to_components("unknown")

    def test_unbound_ref(self, indexer, ann):
        with pytest.raises(InvalidKey):
            indexer.key_to_components(("person", 99))

    def test_unhashable_key(self, indexer):
        with pytest.raises(InvalidKey):
            indexer.key_to_components(["name"])

    def test_ref_to_any(self, indexer, ann):
        assert indexer.ref_to_any(("person", 1)) is ann
        assert indexer.ref_to_any(("person", 99)) is None


class TestFullQuery:
    """Tests for class_path and full_query."""

    def test_class_path(self, indexer, root, ann):
        assert indexer.class_path(ann) == (PeopleList, Person)
        assert indexer.class_path(root) == (PeopleList,)

    def test_class_path_skips_queryless_ancestors(self, host, indexer, root):
        label = host.mount(Label, {}, parent=root)
        person = host.mount(Person, {"id": 3}, parent=label, path=["people", 2])

        assert indexer.class_path(person) == (PeopleList, Person)

    def test_root(self, indexer, root):
        assert indexer.full_query(root) == ["title", {"people": ["id", "name"]}]

    def test_child(self, indexer, ann):
        assert indexer.full_query(ann) == [{"people": ["id", "name"]}]

    def test_child_with_query(self, indexer, ann):
        assert indexer.full_query(ann, ["id"]) == [{"people": ["id"]}]

    def test_no_query(self, host, indexer, root):
        assert indexer.full_query(host.mount(Label, {}, parent=root)) is None

    def test_no_templates(self, host, context, indexer):
        stray = host.mount(Person, {"id": 5}, context=context)

        with pytest.raises(NoQueriesForPath):
            indexer.full_query(stray)

    def test_no_matching_data_path(self, host, indexer, root):
        person = host.mount(Person, {"id": 5}, parent=root, path=["others", 0])

        with pytest.raises(NoQueriesForPath):
            indexer.full_query(person)

    def test_recursive_position(self, host):
        """Nested recursive components resolve through the recursion template."""
        indexer = Indexer(host)
        indexer.index_root(Profile)
        ctx = RenderContext(reconciler=SimpleNamespace(indexer=indexer))
        root = host.mount(Profile, {"me": {"id": 1}}, context=ctx)
        me = host.mount(Friend, {"id": 1}, parent=root, path=["me"])
        friend = host.mount(Friend, {"id": 2}, parent=me, path=["me", "friends", 0])
        nested = host.mount(Friend, {"id": 3}, parent=friend, path=["me", "friends", 0, "friends", 1])

        assert indexer.class_path(nested) == (Profile, Friend)
        assert indexer.full_query(me) == [{"me": ["id", {"friends": "..."}]}]
        assert indexer.full_query(friend) == [{"me": [{"friends": ["id", {"friends": "..."}]}]}]
        assert indexer.full_query(nested) == [{"me": [{"friends": ["id", {"friends": "..."}]}]}]
