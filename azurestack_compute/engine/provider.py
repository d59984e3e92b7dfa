"""
Plan/apply engine.

The Provider ties a configuration document, the state file and the handler
registry together:

- ``validate`` checks every block against its handler's schema
- ``plan`` diffs configuration against (refreshed) state, producing create,
  update, replace, delete, read and no-op changes
- ``apply`` executes a plan in dependency order, one generation at a time,
  with up to ``parallelism`` concurrent handler calls per generation
- ``import_resource``, ``refresh`` and ``destroy`` mirror the Terraform
  commands of the same names

State is written after every resource operation.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import networkx as nx

from ..config.models import ConfigurationDocument
from ..exceptions import (
    EngineError,
    PlanError,
    SchemaValidationError,
    StateError,
)
from ..handlers import KIND_DATA, KIND_RESOURCE, HandlerRegistry
from ..handlers.base_handler import BaseHandler
from ..handlers.context import ProviderContext
from ..logging_config import get_event_logger
from ..resource_data import ResourceData
from ..schema import (
    UNKNOWN,
    Schema,
    Timeouts,
    contains_unknown,
    force_new_changed,
    sensitive_paths,
    validate_config,
)
from .graph import BlockNode, DependencyGraph, interpolate, lookup_path
from .state import MODE_DATA, MODE_MANAGED, ResourceState, StateFile, StateStore, split_address

logger = logging.getLogger(__name__)
events = get_event_logger(__name__)

ACTION_CREATE = "create"
ACTION_UPDATE = "update"
ACTION_REPLACE = "replace"
ACTION_DELETE = "delete"
ACTION_READ = "read"
ACTION_NO_OP = "no-op"

SENSITIVE_VALUE = "(sensitive value)"


@dataclass
class PlannedChange:
    """The planned action for a single resource or data source."""

    address: str
    action: str
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    changed: List[str] = field(default_factory=list)
    replaced_by: List[str] = field(default_factory=list)
    sensitive: List[str] = field(default_factory=list)

    @property
    def mode(self) -> str:
        return split_address(self.address)[0]


@dataclass
class Plan:
    """An ordered set of planned changes."""

    changes: List[PlannedChange] = field(default_factory=list)

    def get(self, address: str) -> Optional[PlannedChange]:
        for change in self.changes:
            if change.address == address:
                return change
        return None

    def summary(self) -> Dict[str, int]:
        """Counts in Terraform's ``N to add, N to change, N to destroy`` form."""
        counts = {"add": 0, "change": 0, "destroy": 0}
        for change in self.changes:
            if change.action == ACTION_CREATE:
                counts["add"] += 1
            elif change.action == ACTION_UPDATE:
                counts["change"] += 1
            elif change.action == ACTION_DELETE:
                counts["destroy"] += 1
            elif change.action == ACTION_REPLACE:
                counts["add"] += 1
                counts["destroy"] += 1
        return counts

    @property
    def has_changes(self) -> bool:
        return any(
            c.action not in (ACTION_NO_OP, ACTION_READ) for c in self.changes
        )


def mask_sensitive(values: Optional[Dict[str, Any]], sensitive: List[str]) -> Optional[Dict[str, Any]]:
    """Copy ``values`` with sensitive attributes replaced for display."""
    if values is None:
        return None
    return {
        key: SENSITIVE_VALUE if key in sensitive and value not in (None, "") else value
        for key, value in values.items()
    }


def get_handler(resource_type: str, mode: str) -> BaseHandler:
    """The handler for a block; unsupported types are a plan error."""
    kind = KIND_DATA if mode == MODE_DATA else KIND_RESOURCE
    found = HandlerRegistry.get_handler(resource_type, kind)
    if found is None:
        what = "data source" if kind == KIND_DATA else "resource type"
        raise PlanError(f"The provider does not support {what} {resource_type!r}")
    return found


def block_timeouts(handler: BaseHandler, node: Optional[BlockNode]) -> Timeouts:
    """The handler's timeouts with the block's ``timeouts`` overrides applied."""
    overrides = node.timeouts if node is not None else None
    try:
        return handler.TIMEOUTS.merged(overrides)
    except ValueError as e:
        address = node.address if node is not None else None
        raise SchemaValidationError(
            "Invalid timeouts block", address=address, diagnostics=[str(e)]
        ) from e


def validate_graph(graph: DependencyGraph) -> List[str]:
    """Validate every block of ``graph`` against its handler.

    References are treated as unknown values, so only checks which hold for
    any referenced value are made.

    Returns:
        Diagnostics prefixed with the block address; empty when valid
    """
    diagnostics: List[str] = []
    for address in sorted(graph.nodes):
        node = graph[address]
        try:
            handler = get_handler(node.type, node.mode)
            block_timeouts(handler, node)
        except (PlanError, SchemaValidationError) as e:
            diagnostics.append(f"{address}: {e.message}")
            continue

        schema = handler.schema()
        config = _unknown_references(node.config)
        errors = validate_config(schema, config)
        if not errors:
            errors = handler.validate(ResourceData(schema, config=config))
        diagnostics.extend(f"{address}: {error}" for error in errors)

    logger.debug(f"Validated {len(graph.nodes)} block(s): {len(diagnostics)} error(s)")
    return diagnostics


class Provider:
    """Plans and applies a configuration document against Azure Stack."""

    def __init__(
        self,
        context: ProviderContext,
        document: ConfigurationDocument,
        state_store: StateStore,
        parallelism: int = 10,
    ) -> None:
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        self.context = context
        self.document = document
        self.state_store = state_store
        self.parallelism = parallelism
        self.graph = DependencyGraph(document)
        self.state: StateFile = state_store.load()
        self._state_lock = threading.Lock()
        # data source results and planned values, keyed by address
        self._data: Dict[str, Dict[str, Any]] = {}
        self._planned: Dict[str, Dict[str, Any]] = {}

    # State

    def _prior(self, address: str) -> Optional[Dict[str, Any]]:
        existing = self.state.get(address)
        return dict(existing.attributes) if existing is not None else None

    def _record(self, address: str, attributes: Optional[Dict[str, Any]]) -> None:
        """Write the result of one operation into state and persist it."""
        mode, resource_type, name = split_address(address)
        with self._state_lock:
            if attributes is None:
                self.state.remove(address)
            else:
                dependencies = (
                    self.graph.dependencies(address) if address in self.graph else []
                )
                self.state.put(
                    ResourceState(
                        mode=mode,
                        type=resource_type,
                        name=name,
                        attributes=attributes,
                        dependencies=dependencies,
                    )
                )
            self.state_store.save(self.state)

    # Reference resolution

    def _lookup_planned(self, address: str, path: str) -> Any:
        values = self._planned.get(address)
        if values is None:
            values = self._data.get(address)
        if values is None:
            return UNKNOWN
        try:
            return lookup_path(values, path)
        except KeyError as e:
            raise PlanError(f"Unsupported attribute {path!r} of {address}") from e

    def _lookup_applied(self, address: str, path: str) -> Any:
        values = self._data.get(address)
        if values is None:
            existing = self.state.get(address)
            if existing is None:
                raise EngineError(f"{address} has not been applied")
            values = existing.attributes
        try:
            return lookup_path(values, path)
        except KeyError as e:
            raise EngineError(f"Unsupported attribute {path!r} of {address}") from e

    # Validate

    def validate(self) -> List[str]:
        """Validate every block; returns diagnostics prefixed with their address."""
        return validate_graph(self.graph)

    # Refresh

    def _refresh_one(self, resource: ResourceState) -> Tuple[str, Optional[Dict[str, Any]]]:
        handler = get_handler(resource.type, MODE_MANAGED)
        node = self.graph.nodes.get(resource.address)
        d = ResourceData(
            handler.schema(), state=resource.attributes, timeouts=block_timeouts(handler, node)
        )
        handler.read(d, self.context)
        return resource.address, d.state()

    def _refresh_state(self) -> List[str]:
        managed = [r for r in self.state.resources if r.mode == MODE_MANAGED]
        if not managed:
            return []

        with ThreadPoolExecutor(max_workers=self.parallelism) as executor:
            futures = [executor.submit(self._refresh_one, r) for r in managed]
            results = [future.result() for future in futures]

        removed = []
        for address, attributes in results:
            if attributes is None:
                logger.info(f"{address} no longer exists - removing it from state")
                self.state.remove(address)
                removed.append(address)
            else:
                existing = self.state.get(address)
                if existing is not None:
                    existing.attributes = attributes
        return removed

    def refresh(self) -> List[str]:
        """Re-read every managed resource and save the state.

        Returns:
            Addresses removed because the remote object no longer exists
        """
        removed = self._refresh_state()
        self.state_store.save(self.state)
        return removed

    # Plan

    def plan(self, refresh: bool = True) -> Plan:
        """Diff configuration against state.

        Raises:
            SchemaValidationError: If any block is invalid
            PlanError: If the configuration cannot be ordered or resolved
        """
        diagnostics = self.validate()
        if diagnostics:
            raise SchemaValidationError("Invalid configuration", diagnostics=diagnostics)
        if refresh:
            self._refresh_state()

        self._planned = {}
        self._data = {}
        plan = Plan()

        for generation in self.graph.generations():
            for address in generation:
                node = self.graph[address]
                if node.mode == MODE_DATA:
                    plan.changes.append(self._plan_data(node))
                else:
                    plan.changes.append(self._plan_resource(node))

        for address in self._orphans():
            _, resource_type, _ = split_address(address)
            handler = get_handler(resource_type, MODE_MANAGED)
            plan.changes.append(
                PlannedChange(
                    address=address,
                    action=ACTION_DELETE,
                    before=self._prior(address),
                    sensitive=sensitive_paths(handler.schema()),
                )
            )

        counts = plan.summary()
        logger.info(
            f"Plan: {counts['add']} to add, {counts['change']} to change, "
            f"{counts['destroy']} to destroy"
        )
        return plan

    def _orphans(self) -> List[str]:
        """Managed resources in state with no block in configuration, dependents first."""
        orphans = [
            r for r in self.state.resources if r.mode == MODE_MANAGED and r.address not in self.graph
        ]
        return _delete_order(orphans)

    def _plan_data(self, node: BlockNode) -> PlannedChange:
        handler = get_handler(node.type, node.mode)
        config = interpolate(node.config, self._lookup_planned)
        change = PlannedChange(
            address=node.address,
            action=ACTION_READ,
            sensitive=sensitive_paths(handler.schema()),
        )
        if contains_unknown(config):
            logger.debug(f"{node.address} depends on values known after apply - deferring read")
            return change

        d = ResourceData(handler.schema(), config=config, timeouts=block_timeouts(handler, node))
        handler.read(d, self.context)
        self._data[node.address] = d.state() or {}
        change.after = self._data[node.address]
        return change

    def _plan_resource(self, node: BlockNode) -> PlannedChange:
        handler = get_handler(node.type, node.mode)
        schema = handler.schema()
        config = interpolate(node.config, self._lookup_planned)
        prior = self._prior(node.address)
        d = ResourceData(schema, config=config, state=prior)

        change = PlannedChange(
            address=node.address,
            action=ACTION_CREATE,
            before=prior,
            sensitive=sensitive_paths(schema),
        )

        if prior is not None:
            change.changed = [key for key in schema if d.has_change(key)]
            change.replaced_by = [
                key
                for key in change.changed
                if force_new_changed(schema[key], *d.get_change(key))
            ]
            if change.replaced_by:
                change.action = ACTION_REPLACE
            elif change.changed:
                change.action = ACTION_UPDATE
            else:
                change.action = ACTION_NO_OP

        change.after = _planned_values(schema, d, config, change.action, prior)
        self._planned[node.address] = change.after
        return change

    # Apply

    def apply(self, plan: Plan) -> Dict[str, int]:
        """Execute ``plan``.

        Deletes of resources removed from configuration run first, in reverse
        dependency order. Every other change runs generation by generation.

        Returns:
            Counts of completed operations

        Raises:
            EngineError: If any operation fails; state holds everything which
                completed before the failure
        """
        applied = {"add": 0, "change": 0, "destroy": 0, "read": 0}
        events.info("apply_started", changes=len(plan.changes), parallelism=self.parallelism)

        self._run_deletes([c for c in plan.changes if c.action == ACTION_DELETE], applied)

        for generation in self.graph.generations():
            batch = []
            for address in generation:
                change = plan.get(address)
                if change is not None and change.action != ACTION_NO_OP:
                    batch.append(change)
            if batch:
                self._run_batch(batch, applied)

        events.info("apply_complete", **applied)
        return applied

    def _run_deletes(self, changes: List[PlannedChange], applied: Dict[str, int]) -> None:
        by_address = {c.address: c for c in changes}
        resources = [r for r in self.state.resources if r.address in by_address]
        for batch in _delete_batches(resources):
            self._run_batch([by_address[address] for address in batch], applied)

    def _run_batch(self, batch: List[PlannedChange], applied: Dict[str, int]) -> None:
        failures: List[Tuple[str, Exception]] = []
        with ThreadPoolExecutor(max_workers=self.parallelism) as executor:
            futures: List[Tuple[PlannedChange, Future[Any]]] = [
                (change, executor.submit(self._apply_change, change)) for change in batch
            ]
            for change, future in futures:
                exc = future.exception()
                if exc is None:
                    _count(applied, change.action)
                    continue
                if not isinstance(exc, Exception):
                    raise exc
                events.error(
                    "apply_failed",
                    address=change.address,
                    action=change.action,
                    error=str(exc),
                )
                failures.append((change.address, exc))

        if failures:
            address, exc = failures[0]
            others = f" (and {len(failures) - 1} other failure(s))" if len(failures) > 1 else ""
            raise EngineError(
                f"Error applying {address}{others}",
                context={"address": address},
                cause=exc,
            ) from exc

    def _apply_change(self, change: PlannedChange) -> None:
        address = change.address
        mode, resource_type, _ = split_address(address)
        handler = get_handler(resource_type, mode)
        node = self.graph.nodes.get(address)
        timeouts = block_timeouts(handler, node)
        events.info("apply_resource", address=address, action=change.action)

        if change.action == ACTION_DELETE:
            self._delete(handler, address, timeouts)
            return

        if node is None:
            raise EngineError(f"{address} has no block in configuration")
        config = interpolate(node.config, self._lookup_applied)
        if contains_unknown(config):
            raise EngineError(f"{address} still has unknown values at apply time")

        if change.action == ACTION_READ:
            d = ResourceData(handler.schema(), config=config, timeouts=timeouts)
            handler.read(d, self.context)
            self._data[address] = d.state() or {}
            self._record(address, self._data[address])
            return

        if change.action == ACTION_REPLACE:
            self._delete(handler, address, timeouts)

        if change.action in (ACTION_CREATE, ACTION_REPLACE):
            d = ResourceData(handler.schema(), config=config, timeouts=timeouts)
            try:
                handler.create(d, self.context)
            finally:
                # keep track of anything created before a failure
                if d.id:
                    self._record(address, d.state())
            if not d.id:
                raise EngineError(f"Provider returned no ID after creating {address}")
            logger.info(f"{address}: creation complete [id={d.id}]")
            return

        d = ResourceData(
            handler.schema(), config=config, state=self._prior(address), timeouts=timeouts
        )
        handler.update(d, self.context)
        self._record(address, d.state())
        logger.info(f"{address}: modifications complete [id={d.id}]")

    def _delete(self, handler: BaseHandler, address: str, timeouts: Timeouts) -> None:
        prior = self._prior(address)
        if prior is None:
            return
        d = ResourceData(handler.schema(), state=prior, timeouts=timeouts)
        handler.delete(d, self.context)
        self._record(address, None)
        logger.info(f"{address}: destruction complete")

    # Import

    def import_resource(self, address: str, resource_id: str) -> ResourceState:
        """Bring an existing remote object under management at ``address``.

        Raises:
            PlanError: If ``address`` has no resource block in configuration
            StateError: If ``address`` is already managed or the object does not exist
        """
        mode, resource_type, _ = split_address(address)
        if mode != MODE_MANAGED:
            raise PlanError("Only managed resources can be imported", address=address)
        if address not in self.graph:
            raise PlanError(
                f"Before importing this resource, please create its configuration "
                f"in the root module (no block for {address})",
                address=address,
            )
        if self.state.get(address) is not None:
            raise StateError(
                f"Resource already managed: {address} (remove it from state to import it again)"
            )

        handler = get_handler(resource_type, mode)
        node = self.graph[address]
        d = ResourceData(
            handler.schema(), state={"id": resource_id}, timeouts=block_timeouts(handler, node)
        )
        logger.info(f"{address}: importing from ID {resource_id!r}")
        handler.import_state(d, self.context)
        handler.read(d, self.context)

        attributes = d.state()
        if attributes is None:
            raise StateError(
                f"Cannot import non-existent remote object {resource_id!r} as {address}"
            )
        self._record(address, attributes)
        events.info("import_complete", address=address, id=resource_id)
        return self.state.get(address)

    # Destroy

    def plan_destroy(self, refresh: bool = True) -> Plan:
        """A plan deleting every managed resource in state, dependents first."""
        if refresh:
            self._refresh_state()
        managed = [r for r in self.state.resources if r.mode == MODE_MANAGED]
        plan = Plan()
        for address in _delete_order(managed):
            _, resource_type, _ = split_address(address)
            handler = get_handler(resource_type, MODE_MANAGED)
            plan.changes.append(
                PlannedChange(
                    address=address,
                    action=ACTION_DELETE,
                    before=self._prior(address),
                    sensitive=sensitive_paths(handler.schema()),
                )
            )
        return plan

    def destroy(self, plan: Optional[Plan] = None) -> Dict[str, int]:
        if plan is None:
            plan = self.plan_destroy()
        destroyed = {"destroy": 0}
        events.info("destroy_started", resources=len(plan.changes))
        self._run_deletes(plan.changes, destroyed)

        with self._state_lock:
            for address in self.state.addresses(MODE_DATA):
                self.state.remove(address)
            self.state_store.save(self.state)
        events.info("destroy_complete", **destroyed)
        return destroyed


def _count(applied: Dict[str, int], action: str) -> None:
    if action == ACTION_CREATE:
        applied["add"] = applied.get("add", 0) + 1
    elif action == ACTION_UPDATE:
        applied["change"] = applied.get("change", 0) + 1
    elif action == ACTION_DELETE:
        applied["destroy"] = applied.get("destroy", 0) + 1
    elif action == ACTION_REPLACE:
        applied["add"] = applied.get("add", 0) + 1
        applied["destroy"] = applied.get("destroy", 0) + 1
    elif action == ACTION_READ:
        applied["read"] = applied.get("read", 0) + 1


def _delete_batches(resources: List[ResourceState]) -> List[List[str]]:
    """Batches of addresses where dependents come before their dependencies."""
    graph = nx.DiGraph()
    addresses = {r.address for r in resources}
    for resource in resources:
        graph.add_node(resource.address)
        for dependency in resource.dependencies:
            if dependency in addresses:
                graph.add_edge(dependency, resource.address)
    return [sorted(g) for g in reversed(list(nx.topological_generations(graph)))]


def _delete_order(resources: List[ResourceState]) -> List[str]:
    return [address for batch in _delete_batches(resources) for address in batch]


def _unknown_references(value: Any) -> Any:
    """Replace every reference with UNKNOWN, for validation before anything is resolved."""
    return interpolate(value, lambda address, path: UNKNOWN)


def _planned_values(
    schema: Schema,
    d: ResourceData,
    config: Dict[str, Any],
    action: str,
    prior: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    """The values other blocks see for this resource while planning.

    Computed attributes which configuration does not set are unknown until
    a new object has been created.
    """
    new_object = action in (ACTION_CREATE, ACTION_REPLACE)
    after: Dict[str, Any] = {"id": UNKNOWN if new_object else (prior or {}).get("id", "")}
    for key, attr in schema.items():
        if new_object and attr.computed and config.get(key) is None and attr.default is None:
            after[key] = UNKNOWN
        else:
            after[key] = d.get(key)
    return after


__all__ = [
    "ACTION_CREATE",
    "ACTION_DELETE",
    "ACTION_NO_OP",
    "ACTION_READ",
    "ACTION_REPLACE",
    "ACTION_UPDATE",
    "Plan",
    "PlannedChange",
    "Provider",
    "SENSITIVE_VALUE",
    "get_handler",
    "mask_sensitive",
    "validate_graph",
]
