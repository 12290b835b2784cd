"""Compare declared configuration against state and compute an ordered Plan."""

from typing import Any, Dict, List, Optional, Set
import networkx as nx
from ..graph.dependency_graph import DependencyGraph
from ..ingest.models import Configuration, Reference, ResourceDeclaration
from ..registry.registry import ProviderRegistry, RegisteredKind
from ..registry.schema import Mutability
from ..state.models import Freshness, ResourceState
from ..utils.errors import ConfigurationError
from ..utils.logging import get_logger
from .models import Action, Plan, PlanMetadata, PlannedChange, ReplaceOrder
from .references import UNKNOWN, encode_value, resolve_value, values_equal

logger = get_logger("plan.differ")


class _Decision:
    """Action chosen for one declared resource during diffing."""

    def __init__(
        self,
        action: Action,
        reason: str,
        changed: List[str],
        desired: Dict[str, Any],
        resolved: Optional[Dict[str, Any]] = None
    ):
        self.action = action
        self.reason = reason
        self.changed = changed
        self.desired = desired
        self.resolved = resolved or {}


def compute_plan(
    configuration: Optional[Configuration],
    states: Dict[str, ResourceState],
    registry: ProviderRegistry,
    state_lineage: str,
    state_serial: int,
    destroy: bool = False,
    replace_order: ReplaceOrder = ReplaceOrder.DESTROY_BEFORE_CREATE,
    default_timeout: Optional[float] = None
) -> Plan:
    """
    Compute the ordered Plan reconciling states with configuration.

    Args:
        configuration: Declared resources (ignored when destroy is True)
        states: Current ResourceState by address
        registry: Kind registry
        state_lineage: Lineage of the state the plan is computed against
        state_serial: Serial of the state the plan is computed against
        destroy: Plan deletion of every managed resource
        replace_order: Default ordering for replacements
        default_timeout: Provider operation timeout when a resource sets none

    Returns:
        Immutable Plan

    Raises:
        ConfigurationError: If a resource kind is not registered
        CycleError: If references form a cycle
    """
    declarations = [] if destroy or configuration is None else list(configuration.resources)
    graph = DependencyGraph().build_from_declarations(declarations)
    declared = {d.address: d for d in declarations}

    changes: Dict[str, PlannedChange] = {}
    decisions: Dict[str, _Decision] = {}

    for address in graph.topological_order():
        declaration = declared[address]
        registered = registry.get(declaration.kind)
        decision = _diff_resource(declaration, states.get(address), registered, decisions, states)
        decisions[address] = decision
        prior = states.get(address)
        changes[address] = PlannedChange(
            address=address,
            kind=declaration.kind,
            action=decision.action,
            reason=decision.reason,
            changed_fields=tuple(decision.changed),
            desired=decision.desired,
            resolved=decision.resolved,
            prior=prior,
            deposed=tuple(prior.deposed) if prior is not None else (),
            dependencies=tuple(sorted(graph.dependencies(address))),
            replace_order=_replace_order(declaration, registered, replace_order) if decision.action == Action.REPLACE else None,
            timeout=declaration.lifecycle.timeout or default_timeout,
        )

    orphans = sorted(address for address in states if address not in declared)
    for address in orphans:
        prior = states[address]
        registry.get(prior.kind)
        changes[address] = PlannedChange(
            address=address,
            kind=prior.kind,
            action=Action.DELETE,
            reason="destroy requested" if destroy else "not in configuration",
            prior=prior,
            dependencies=tuple(prior.dependencies),
            deposed=tuple(prior.deposed),
            timeout=default_timeout,
        )

    requires = _compute_requires(changes, graph, states, orphans)
    ordered = _order(changes, requires)
    plan = Plan(
        metadata=PlanMetadata(
            state_lineage=state_lineage,
            state_serial=state_serial,
            destroy=destroy,
            config_source=configuration.source if configuration is not None else None,
        ),
        changes=tuple(
            change.model_copy(update={"requires": tuple(sorted(requires[change.address]))})
            for change in ordered
        ),
    )
    logger.info(f"Computed plan: {plan.summary()}")
    return plan


def _diff_resource(
    declaration: ResourceDeclaration,
    prior: Optional[ResourceState],
    registered: RegisteredKind,
    decisions: Dict[str, _Decision],
    states: Dict[str, ResourceState]
) -> _Decision:
    schema = registered.schema
    declared_attributes = schema.apply_defaults(declaration.attributes)
    encoded = {name: encode_value(value) for name, value in declared_attributes.items()}

    def lookup(reference: Reference) -> Any:
        return _planned_value(reference, decisions, states)

    # dependencies are decided first, so their planned values are available
    resolved: Dict[str, Any] = {}
    for name, value in declared_attributes.items():
        value, known = resolve_value(value, lookup)
        if known:
            resolved[name] = value

    def decide(action: Action, reason: str, changed: List[str]) -> _Decision:
        return _Decision(action, reason, changed, encoded, resolved)

    if prior is None:
        return decide(Action.CREATE, "not in state", sorted(declared_attributes))

    if prior.freshness == Freshness.TAINTED:
        return decide(Action.REPLACE, "resource is tainted", sorted(declared_attributes))

    changed = [
        name for name in sorted(declared_attributes)
        if name not in resolved or not values_equal(resolved[name], prior.attributes.get(name))
    ]

    force_new = [name for name in changed if schema.is_force_new(name)]
    if force_new:
        return decide(Action.REPLACE, f"forces replacement: {', '.join(force_new)}", changed)

    if changed:
        if not registered.supports_update:
            return decide(
                Action.REPLACE,
                f"kind {declaration.kind} cannot be updated in place: {', '.join(changed)}",
                changed,
            )
        return decide(Action.UPDATE, f"changed: {', '.join(changed)}", changed)

    if prior.freshness == Freshness.STALE:
        updatable = sorted(
            name for name in declared_attributes
            if schema.attributes[name].mutability == Mutability.UPDATABLE
        )
        if not registered.supports_update:
            return decide(Action.REPLACE, "state is stale", updatable)
        return decide(Action.UPDATE, "state is stale", updatable)

    if prior.deposed:
        return decide(Action.NO_OP, f"deposed objects pending deletion: {', '.join(prior.deposed)}", [])
    return decide(Action.NO_OP, "", [])


def _planned_value(reference: Reference, decisions: Dict[str, _Decision], states: Dict[str, ResourceState]) -> Any:
    """Value a reference will have after apply, or UNKNOWN."""
    decision = decisions.get(reference.address)
    prior = states.get(reference.address)
    if decision is None:
        return UNKNOWN

    if reference.attribute in decision.resolved:
        return decision.resolved[reference.attribute]

    if decision.action in (Action.CREATE, Action.REPLACE):
        return UNKNOWN
    if prior is not None and prior.has_attribute(reference.attribute):
        return prior.attribute(reference.attribute)
    return UNKNOWN


def _replace_order(declaration: ResourceDeclaration, registered: RegisteredKind, default: ReplaceOrder) -> ReplaceOrder:
    requested = declaration.lifecycle.create_before_destroy
    if requested is None:
        wants_cbd = default == ReplaceOrder.CREATE_BEFORE_DESTROY
    else:
        wants_cbd = requested
    if wants_cbd and not registered.supports_create_before_destroy:
        logger.warning(
            f"{declaration.address}: create_before_destroy requested but kind "
            f"{declaration.kind} does not support it; destroying first"
        )
        return ReplaceOrder.DESTROY_BEFORE_CREATE
    return ReplaceOrder.CREATE_BEFORE_DESTROY if wants_cbd else ReplaceOrder.DESTROY_BEFORE_CREATE


def _compute_requires(
    changes: Dict[str, PlannedChange],
    graph: DependencyGraph,
    states: Dict[str, ResourceState],
    orphans: List[str]
) -> Dict[str, Set[str]]:
    """
    Which changes must succeed before each change may start.

    Forward actions wait for the resources they reference. Deletes wait for
    every resource whose previous state still points at the deleted one.
    """
    requires: Dict[str, Set[str]] = {address: set() for address in changes}
    orphan_set = set(orphans)

    for address, change in changes.items():
        if change.action != Action.DELETE:
            requires[address].update(graph.dependencies(address))

    for address, state in states.items():
        for dependency in state.dependencies:
            if dependency not in orphan_set or dependency == address:
                continue
            # address used to depend on an orphan: finish with address first
            requires[dependency].add(address)

    # a replacement destroys the old object, so orphaned dependents go first
    for address, change in changes.items():
        if change.action != Action.REPLACE:
            continue
        for orphan in orphans:
            if address in states[orphan].dependencies and address not in requires[orphan]:
                requires[address].add(orphan)
    return requires


def _order(changes: Dict[str, PlannedChange], requires: Dict[str, Set[str]]) -> List[PlannedChange]:
    ordering = nx.DiGraph()
    ordering.add_nodes_from(changes)
    for address, needed in requires.items():
        for required in needed:
            if required in changes:
                ordering.add_edge(required, address)
    if not nx.is_directed_acyclic_graph(ordering):
        cycle = [edge[0] for edge in nx.find_cycle(ordering)]
        raise ConfigurationError(f"Planned changes cannot be ordered: {' -> '.join(cycle)}")
    return [changes[address] for address in nx.lexicographical_topological_sort(ordering)]
