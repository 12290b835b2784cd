"""Build directed dependency graph from resource declarations."""

import networkx as nx
from typing import Dict, Iterable, List, Optional, Set
from ..ingest.models import ResourceDeclaration
from ..utils.errors import ConfigurationError, CycleError
from ..utils.logging import get_logger

logger = get_logger("graph.dependency_graph")


class DependencyGraph:
    """
    Directed dependency graph: nodes=resource addresses, edges=dependencies.

    An edge A -> B means A references B, so B must be created or updated
    before A, and A must be destroyed before B.
    """

    def __init__(self):
        self.graph = nx.DiGraph()
        self._declarations: Dict[str, ResourceDeclaration] = {}

    def add_node(self, address: str, dependencies: Iterable[str] = (), declaration: Optional[ResourceDeclaration] = None) -> None:
        """Add an address and edges to each of its dependencies."""
        self.graph.add_node(address)
        if declaration is not None:
            self._declarations[address] = declaration
        for dependency in dependencies:
            self.graph.add_edge(address, dependency)
            logger.debug(f"Added dependency edge: {address} -> {dependency}")

    def build_from_declarations(self, declarations: Iterable[ResourceDeclaration]) -> "DependencyGraph":
        """
        Build the graph from declarations, deriving edges from references.

        Raises:
            ConfigurationError: If a reference targets an undeclared address
            CycleError: If references form a cycle
        """
        declarations = list(declarations)
        known = {d.address for d in declarations}

        for declaration in declarations:
            dependencies = set(declaration.depends_on)
            dependencies.update(ref.address for ref in declaration.references())
            unresolved = sorted(dep for dep in dependencies if dep not in known)
            if unresolved:
                raise ConfigurationError(
                    f"{declaration.address} references undeclared resources: {', '.join(unresolved)}"
                )
            self.add_node(declaration.address, sorted(dependencies), declaration)

        self.check_acyclic()
        logger.info(
            f"Built dependency graph with {self.graph.number_of_nodes()} nodes "
            f"and {self.graph.number_of_edges()} edges"
        )
        return self

    def build_from_dependencies(self, dependencies: Dict[str, Iterable[str]]) -> "DependencyGraph":
        """
        Build the graph from recorded address -> dependencies pairs.

        Dependencies on addresses that are not part of the mapping are ignored;
        they no longer exist and impose no ordering.
        """
        for address in dependencies:
            self.graph.add_node(address)
        for address, deps in dependencies.items():
            for dependency in deps:
                if dependency in dependencies:
                    self.graph.add_edge(address, dependency)
        self.check_acyclic()
        return self

    def check_acyclic(self) -> None:
        """Raise CycleError naming the shortest cycle if the graph has one."""
        if nx.is_directed_acyclic_graph(self.graph):
            return
        cycle = self._shortest_cycle()
        logger.error(f"Dependency cycle detected: {' -> '.join(cycle)}")
        raise CycleError(cycle)

    def _shortest_cycle(self) -> List[str]:
        best: Optional[List[str]] = None
        for component in sorted(nx.strongly_connected_components(self.graph), key=lambda c: sorted(c)):
            nodes = sorted(component)
            if len(nodes) == 1 and not self.graph.has_edge(nodes[0], nodes[0]):
                continue
            subgraph = self.graph.subgraph(component)
            for source, target in sorted(subgraph.edges()):
                path = nx.shortest_path(subgraph, target, source)
                candidate = [source] + path[:-1]
                if best is None or len(candidate) < len(best):
                    best = candidate
        start = best.index(min(best))
        return best[start:] + best[:start]

    def topological_order(self) -> List[str]:
        """Addresses with every dependency before its dependents (deterministic)."""
        return list(nx.lexicographical_topological_sort(self.graph.reverse(copy=False)))

    def reverse_order(self) -> List[str]:
        """Addresses with every dependent before its dependencies."""
        return list(nx.lexicographical_topological_sort(self.graph))

    def dependencies(self, address: str) -> Set[str]:
        """Direct dependencies of an address."""
        if address not in self.graph:
            return set()
        return set(self.graph.successors(address))

    def dependents(self, address: str) -> Set[str]:
        """Direct dependents of an address."""
        if address not in self.graph:
            return set()
        return set(self.graph.predecessors(address))

    def get_downstream_resources(self, address: str) -> Set[str]:
        """Get all resources that depend on the given resource, transitively."""
        if address not in self.graph:
            return set()
        return set(nx.ancestors(self.graph, address))

    def get_upstream_resources(self, address: str) -> Set[str]:
        """Get all resources the given resource depends on, transitively."""
        if address not in self.graph:
            return set()
        return set(nx.descendants(self.graph, address))

    def get_declaration(self, address: str) -> Optional[ResourceDeclaration]:
        return self._declarations.get(address)

    def addresses(self) -> List[str]:
        return sorted(self.graph.nodes)

    def __contains__(self, address: str) -> bool:
        return address in self.graph

    def to_dot(self) -> str:
        """Render the graph in Graphviz DOT format."""
        lines = ["digraph converge {", "  rankdir = \"RL\";"]
        for address in self.addresses():
            lines.append(f"  \"{address}\";")
        for source, target in sorted(self.graph.edges()):
            lines.append(f"  \"{source}\" -> \"{target}\";")
        lines.append("}")
        return "\n".join(lines) + "\n"


def build_graph(declarations: Iterable[ResourceDeclaration]) -> DependencyGraph:
    """Build and validate a DependencyGraph from declarations."""
    return DependencyGraph().build_from_declarations(declarations)
