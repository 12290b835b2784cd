"""Tests for dependency graph."""

import pytest
from converge.graph.dependency_graph import DependencyGraph, build_graph
from converge.ingest.models import Reference, ResourceDeclaration
from converge.utils.errors import ConfigurationError, CycleError


def declare(address, refs=(), depends_on=()):
    kind, name = address.split(".")
    attributes = {f"r{i}": Reference.parse(f"{ref}.id") for i, ref in enumerate(refs)}
    return ResourceDeclaration(kind=kind, name=name, attributes=attributes, depends_on=frozenset(depends_on))


@pytest.fixture
def sample_declarations():
    """network <- subnet <- instance, network <- gateway, plus unrelated bucket."""
    return [
        declare("network.main"),
        declare("subnet.public", refs=["network.main"]),
        declare("gateway.main", refs=["network.main"]),
        declare("instance.web", refs=["subnet.public"], depends_on=["gateway.main"]),
        declare("bucket.logs"),
    ]


class TestDependencyGraph:
    """Test dependency graph construction."""

    def test_build_graph_from_declarations(self, sample_declarations):
        """Test building graph from declarations."""
        graph = build_graph(sample_declarations)

        assert graph.graph.number_of_nodes() == 5
        assert graph.graph.number_of_edges() == 4
        assert graph.dependencies("instance.web") == {"subnet.public", "gateway.main"}
        assert graph.dependents("network.main") == {"subnet.public", "gateway.main"}

    def test_topological_order_puts_dependencies_first(self, sample_declarations):
        """Every edge's target comes before its source."""
        graph = build_graph(sample_declarations)
        order = graph.topological_order()

        assert sorted(order) == graph.addresses()
        for source, target in graph.graph.edges():
            assert order.index(target) < order.index(source)

    def test_reverse_order_puts_dependents_first(self, sample_declarations):
        graph = build_graph(sample_declarations)
        order = graph.reverse_order()

        for source, target in graph.graph.edges():
            assert order.index(source) < order.index(target)

    def test_order_is_deterministic(self, sample_declarations):
        first = build_graph(sample_declarations).topological_order()
        second = build_graph(list(reversed(sample_declarations))).topological_order()
        assert first == second

    def test_get_downstream_resources(self, sample_declarations):
        """Downstream resources are transitive dependents."""
        graph = build_graph(sample_declarations)

        assert graph.get_downstream_resources("network.main") == {
            "subnet.public", "gateway.main", "instance.web"
        }
        assert graph.get_downstream_resources("bucket.logs") == set()
        assert graph.get_downstream_resources("missing.node") == set()

    def test_get_upstream_resources(self, sample_declarations):
        """Upstream resources are transitive dependencies."""
        graph = build_graph(sample_declarations)

        assert graph.get_upstream_resources("instance.web") == {
            "subnet.public", "gateway.main", "network.main"
        }

    def test_get_declaration(self, sample_declarations):
        graph = build_graph(sample_declarations)

        declaration = graph.get_declaration("subnet.public")
        assert declaration is not None
        assert declaration.kind == "subnet"

    def test_unresolved_reference_fails(self):
        with pytest.raises(ConfigurationError, match="network.missing"):
            build_graph([declare("subnet.a", refs=["network.missing"])])

    def test_to_dot(self, sample_declarations):
        dot = build_graph(sample_declarations).to_dot()

        assert dot.startswith("digraph converge {")
        assert '"subnet.public" -> "network.main";' in dot


class TestCycleDetection:
    """Cycles fail fast naming every address in the cycle."""

    def test_three_node_cycle(self):
        declarations = [
            declare("thing.a", refs=["thing.b"]),
            declare("thing.b", refs=["thing.c"]),
            declare("thing.c", refs=["thing.a"]),
            declare("thing.d", refs=["thing.a"]),
        ]

        with pytest.raises(CycleError) as excinfo:
            build_graph(declarations)

        assert excinfo.value.cycle == ["thing.a", "thing.b", "thing.c"]
        for address in ("thing.a", "thing.b", "thing.c"):
            assert address in str(excinfo.value)
        assert "thing.d" not in excinfo.value.cycle

    def test_shortest_cycle_is_reported(self):
        declarations = [
            declare("thing.a", refs=["thing.b"]),
            declare("thing.b", refs=["thing.a", "thing.c"]),
            declare("thing.c", refs=["thing.d"]),
            declare("thing.d", refs=["thing.a"]),
        ]

        with pytest.raises(CycleError) as excinfo:
            build_graph(declarations)

        assert excinfo.value.cycle == ["thing.a", "thing.b"]

    def test_depends_on_cycle(self):
        declarations = [
            declare("thing.a", depends_on=["thing.b"]),
            declare("thing.b", depends_on=["thing.a"]),
        ]

        with pytest.raises(CycleError):
            build_graph(declarations)

    def test_build_from_dependencies_ignores_missing(self):
        graph = DependencyGraph().build_from_dependencies({
            "thing.a": ["thing.b", "thing.gone"],
            "thing.b": [],
        })

        assert graph.reverse_order() == ["thing.a", "thing.b"]
