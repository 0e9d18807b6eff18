"""Plan/apply engine for awsprov.

Drives the resource handlers in-process:

    plan      refresh prior state, resolve configuration, diff
    apply     execute a plan in dependency order, saving state after each step
    refresh   re-read everything in state, dropping objects that are gone
    import    adopt an existing remote object into state
    destroy   delete everything in state, dependents first

Replacements delete the old object before creating the new one.
"""

import copy
import logging
from dataclasses import dataclass, field
from graphlib import CycleError, TopologicalSorter
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import click
import boto3

import provider.config as config
from provider.config_loader import load_provider_config
from provider.exceptions import (
    ConfigurationError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from provider.fileparser import MODE_DATA, MODE_MANAGED, BlockConfig, Configuration
from provider.interpreter import (
    BlockMeta,
    Scope,
    references,
    split_meta_args,
    variable_values,
)
from provider.registry import Provider
from provider.schema import (
    UNKNOWN,
    Resource,
    ResourceData,
    contains_unknown,
    diff,
    normalize_config,
    validate_config,
)
from provider.state import ResourceState, State, StateFile

logger = logging.getLogger(__name__)

CREATE = "create"
UPDATE = "update"
REPLACE = "replace"
DELETE = "delete"
READ = "read"
NOOP = "no-op"

ACTION_SYMBOLS = {
    CREATE: ("+", "green"),
    UPDATE: ("~", "yellow"),
    REPLACE: ("-/+", "red"),
    DELETE: ("-", "red"),
    READ: ("<=", "cyan"),
    NOOP: (" ", "white"),
}


@dataclass
class Change:
    """
    One planned action on one resource or data source.

    Args:
        address: Block address (e.g., "aws_codepipeline.main")
        action: One of CREATE, UPDATE, REPLACE, DELETE, READ, NOOP
        before: Prior state attributes (empty for create and read)
        after: Planned attributes; values known only after apply are UNKNOWN
        changed: Attribute names or paths that differ
        replace_reasons: Attributes forcing replacement
        dependencies: Addresses this block depends on
    """

    address: str
    action: str
    mode: str = MODE_MANAGED
    type: str = ""
    name: str = ""
    provider_alias: str = ""
    before: Dict[str, Any] = field(default_factory=dict)
    after: Dict[str, Any] = field(default_factory=dict)
    changed: List[str] = field(default_factory=list)
    replace_reasons: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)

    @property
    def provider_key(self) -> str:
        if self.provider_alias:
            return f"{config.PROVIDER_NAME}.{self.provider_alias}"
        return config.PROVIDER_NAME


@dataclass
class Plan:
    changes: List[Change]
    state: State

    @property
    def has_changes(self) -> bool:
        return any(c.action not in (NOOP, READ) for c in self.changes)

    def summary(self) -> Dict[str, int]:
        counts = {CREATE: 0, UPDATE: 0, DELETE: 0}
        for c in self.changes:
            if c.action == CREATE:
                counts[CREATE] += 1
            elif c.action == UPDATE:
                counts[UPDATE] += 1
            elif c.action == DELETE:
                counts[DELETE] += 1
            elif c.action == REPLACE:
                counts[CREATE] += 1
                counts[DELETE] += 1
        return counts


def load_provider(
    configuration: Configuration,
    variables: Mapping[str, Any],
    settings: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
    session: Optional[Any] = None,
    session_factory: Callable[..., Any] = boto3.Session,
) -> Provider:
    """Build the Provider from the (variable-resolved) provider blocks."""
    blocks = Scope(dict(variables)).resolve(configuration.providers)
    provider_config = load_provider_config(blocks, settings, environ)
    logger.debug(f"Provider region {provider_config.region}, aliases {provider_config.aliases}")
    return Provider(provider_config, session=session, session_factory=session_factory)


def topological_order(graph: Mapping[str, Iterable[str]]) -> List[str]:
    """Order addresses so that dependencies come first.

    Raises:
        ConfigurationError: If the graph contains a cycle
    """
    sorter: TopologicalSorter = TopologicalSorter()
    for node in sorted(graph):
        sorter.add(node, *sorted(graph[node]))
    try:
        return list(sorter.static_order())
    except CycleError as e:
        cycle = " -> ".join(e.args[1]) if len(e.args) > 1 else ""
        raise ConfigurationError("Dependency cycle between resources", {"cycle": cycle}) from e


class Engine:
    """
    In-process plan/apply engine.

    Args:
        configuration: Parsed configuration
        provider: Provider handing out resources and connections
        state_file: Where state is persisted
        variables: Input variable overrides (e.g., from --var)
    """

    def __init__(
        self,
        configuration: Configuration,
        provider: Provider,
        state_file: StateFile,
        variables: Optional[Mapping[str, Any]] = None,
    ):
        self.configuration = configuration
        self.provider = provider
        self.state_file = state_file
        self.variables = variable_values(configuration.variables, variables)
        self._blocks: Dict[str, Tuple[Dict[str, Any], BlockMeta]] = {}
        for address, block in configuration.blocks.items():
            self._blocks[address] = split_meta_args(address, block.body)

    # Helpers

    def _resource(self, mode: str, type_name: str) -> Resource:
        if mode == MODE_DATA:
            return self.provider.data_source(type_name)
        return self.provider.resource(type_name)

    def dependencies(self, address: str) -> List[str]:
        attrs, meta = self._blocks[address]
        deps = references(attrs) | set(meta.depends_on)
        missing = sorted(d for d in deps if d not in self.configuration.blocks)
        if missing:
            raise ConfigurationError(
                "Reference to undeclared resource",
                {"address": address, "missing": ", ".join(missing)},
            )
        return sorted(deps)

    def order(self) -> List[str]:
        """Configuration addresses in dependency order."""
        return topological_order({a: self.dependencies(a) for a in self.configuration.blocks})

    def _desired(self, block: BlockConfig, resource: Resource, scope: Scope) -> Dict[str, Any]:
        attrs, _ = self._blocks[block.address]
        desired = normalize_config(resource.schema, scope.resolve(attrs))
        problems = validate_config(resource.schema, desired)
        if resource.config_validator and not problems:
            problems.extend(resource.config_validator(desired))
        if problems:
            raise ValidationError(
                f"Invalid configuration for {block.address}", problems, {"file": block.filename}
            )
        return desired

    def _read_data(self, resource: Resource, desired: Dict[str, Any], alias: str) -> Dict[str, Any]:
        d = ResourceData(resource.schema, config=desired)
        resource.read(d, self.provider.meta(alias))
        return d.state()

    @staticmethod
    def _planned_new(resource: Resource, desired: Dict[str, Any]) -> Dict[str, Any]:
        planned = copy.deepcopy(desired)
        for key, s in resource.schema.items():
            if planned.get(key) is None:
                planned[key] = UNKNOWN if s.computed else s.zero()
        planned["id"] = UNKNOWN
        return planned

    def _plan_changes(
        self, resource: Resource, old: Dict[str, Any], desired: Dict[str, Any], alias: str
    ) -> Tuple[List[str], List[str]]:
        if resource.plan_changes:
            return resource.plan_changes(old, desired, self.provider.meta(alias))
        return diff(resource.schema, old, desired)

    def _orphans(self, state: State) -> List[str]:
        """Addresses in state that the configuration no longer declares, dependents first."""
        orphans = {a: r for a, r in state.resources.items() if a not in self.configuration.blocks}
        graph = {a: [d for d in r.dependencies if d in orphans] for a, r in orphans.items()}
        return list(reversed(topological_order(graph)))

    # Operations

    def refresh(self, state: Optional[State] = None, save: bool = True) -> State:
        """Re-read every object in state; objects that no longer exist are dropped."""
        state = state if state is not None else self.state_file.load()
        for address in state.addresses():
            entry = state.resources[address]
            if entry.mode == MODE_DATA:
                # data sources are read from configuration during plan
                continue
            resource = self._resource(entry.mode, entry.type)
            d = ResourceData(resource.schema, state=entry.attributes, id=entry.id)
            resource.read(d, self.provider.meta(entry.provider_alias))
            if not d.id:
                logger.warning(f"{address} no longer exists, removing from state")
                click.echo(click.style(f"  {address}: removed outside awsprov", fg="yellow"))
                state.remove(address)
                continue
            entry.id = d.id
            entry.attributes = d.state()
        if save:
            self.state_file.save(state)
        return state

    def plan(self, refresh: bool = True, destroy: bool = False) -> Plan:
        """Compute the changes needed to reach the configuration.

        Args:
            refresh: Re-read prior state from AWS before diffing
            destroy: Plan the deletion of everything in state instead

        Returns:
            Plan holding the ordered changes and the (refreshed) prior state
        """
        state = self.state_file.load()
        if refresh:
            state = self.refresh(state, save=False)
        if destroy:
            return self._plan_destroy(state)

        changes: List[Change] = []
        scope = Scope(self.variables)
        for address in self.order():
            block = self.configuration.blocks[address]
            _, meta = self._blocks[address]
            resource = self._resource(block.mode, block.type)
            desired = self._desired(block, resource, scope)
            change = Change(
                address=address,
                action=NOOP,
                mode=block.mode,
                type=block.type,
                name=block.name,
                provider_alias=meta.provider_alias,
                dependencies=self.dependencies(address),
            )

            if block.mode == MODE_DATA:
                change.action = READ
                if contains_unknown(desired):
                    change.after = self._planned_new(resource, desired)
                else:
                    change.after = self._read_data(resource, desired, meta.provider_alias)
                scope.blocks[address] = change.after
                changes.append(change)
                continue

            prior = state.get(address)
            if prior is None:
                change.action = CREATE
                change.after = self._planned_new(resource, desired)
            else:
                change.before = prior.attributes
                changed, replace = self._plan_changes(
                    resource, prior.attributes, desired, meta.provider_alias
                )
                change.changed = list(changed)
                change.replace_reasons = list(replace)
                if replace:
                    change.action = REPLACE
                    change.after = self._planned_new(resource, desired)
                else:
                    change.after = copy.deepcopy(prior.attributes)
                    if changed:
                        change.action = UPDATE
                        change.after.update(desired)
            scope.blocks[address] = change.after
            changes.append(change)

        for address in self._orphans(state):
            entry = state.resources[address]
            if entry.mode == MODE_DATA:
                continue
            changes.append(
                Change(
                    address=address,
                    action=DELETE,
                    type=entry.type,
                    name=entry.name,
                    provider_alias=entry.provider_alias,
                    before=entry.attributes,
                )
            )
        return Plan(changes, state)

    def _plan_destroy(self, state: State) -> Plan:
        graph = {
            a: [d for d in r.dependencies if d in state.resources]
            for a, r in state.resources.items()
        }
        changes = []
        for address in reversed(topological_order(graph)):
            entry = state.resources[address]
            if entry.mode == MODE_DATA:
                continue
            changes.append(
                Change(
                    address=address,
                    action=DELETE,
                    type=entry.type,
                    name=entry.name,
                    provider_alias=entry.provider_alias,
                    before=entry.attributes,
                )
            )
        return Plan(changes, state)

    def _delete(self, state: State, entry: ResourceState) -> None:
        resource = self._resource(entry.mode, entry.type)
        d = ResourceData(resource.schema, state=entry.attributes, id=entry.id)
        resource.delete(d, self.provider.meta(entry.provider_alias))
        state.remove(entry.address)

    def apply(self, plan: Plan) -> Dict[str, int]:
        """Execute a plan.

        Deletes of removed resources run first (dependents first); the
        remaining changes run in dependency order with configuration
        re-resolved against the values produced so far. State is saved after
        every resource.

        Returns:
            Counts of created, updated and deleted resources
        """
        state = plan.state
        counts = {CREATE: 0, UPDATE: 0, DELETE: 0}
        scope = Scope(self.variables)

        for change in plan.changes:
            if change.action != DELETE:
                continue
            entry = state.get(change.address)
            if entry is None:
                continue
            click.echo(f"  {change.address}: Destroying... [id={entry.id}]")
            self._delete(state, entry)
            counts[DELETE] += 1
            self.state_file.save(state)
        for address in list(state.resources):
            entry = state.resources[address]
            if entry.mode == MODE_DATA and address not in self.configuration.blocks:
                state.remove(address)

        for change in plan.changes:
            if change.action == DELETE:
                continue
            block = self.configuration.blocks[change.address]
            resource = self._resource(block.mode, block.type)
            meta = self.provider.meta(change.provider_alias)
            desired = self._desired(block, resource, scope)
            prior = state.get(change.address)

            if change.action == READ:
                attributes = self._read_data(resource, desired, change.provider_alias)
                entry = ResourceState(
                    MODE_DATA, block.type, block.name, attributes.get("id", ""), attributes,
                    provider=change.provider_key, dependencies=change.dependencies,
                )
                state.set(entry)
                scope.blocks[change.address] = attributes
                continue

            if change.action == NOOP:
                scope.blocks[change.address] = prior.attributes if prior else change.after
                continue

            if change.action == REPLACE and prior is not None:
                click.echo(f"  {change.address}: Destroying... [id={prior.id}]")
                self._delete(state, prior)
                counts[DELETE] += 1
                self.state_file.save(state)
                prior = None

            if prior is None:
                click.echo(f"  {change.address}: Creating...")
                d = ResourceData(resource.schema, config=desired)
                resource.create(d, meta)
                if not d.id:
                    raise ProviderError(
                        "Resource create returned no ID", {"address": change.address}
                    )
                counts[CREATE] += 1
            else:
                click.echo(f"  {change.address}: Modifying... [id={prior.id}]")
                d = ResourceData(
                    resource.schema, config=desired, state=prior.attributes, id=prior.id
                )
                resource.update(d, meta)
                counts[UPDATE] += 1
                if not d.id:
                    logger.warning(f"{change.address} disappeared, removing from state")
                    state.remove(change.address)
                    self.state_file.save(state)
                    continue

            entry = ResourceState(
                MODE_MANAGED, block.type, block.name, d.id, d.state(),
                provider=change.provider_key, dependencies=change.dependencies,
            )
            state.set(entry)
            scope.blocks[change.address] = entry.attributes
            self.state_file.save(state)
            click.echo(click.style(f"  {change.address}: Complete [id={d.id}]", fg="green"))

        self.state_file.save(state)
        logger.info(
            f"Apply complete: {counts[CREATE]} added, {counts[UPDATE]} changed, "
            f"{counts[DELETE]} destroyed"
        )
        return counts

    def import_resource(self, address: str, id: str) -> ResourceState:
        """Adopt an existing remote object into state.

        Raises:
            ConfigurationError: If the address is not declared, already in
                                state, or its type does not support import
            NotFoundError: If the remote object does not exist
        """
        block = self.configuration.blocks.get(address)
        if block is None or block.mode != MODE_MANAGED:
            raise ConfigurationError(
                "Import target must be a resource declared in the configuration",
                {"address": address},
            )
        state = self.state_file.load()
        if state.get(address) is not None:
            raise ConfigurationError("Resource already managed by awsprov", {"address": address})
        resource = self.provider.resource(block.type)
        if not resource.importable:
            raise ConfigurationError(f"Resource type {block.type} does not support import")

        _, meta = self._blocks[address]
        d = ResourceData(resource.schema, id=id)
        resource.read(d, self.provider.meta(meta.provider_alias))
        if not d.id:
            raise NotFoundError(
                "Cannot import non-existent remote object", {"address": address, "id": id}
            )
        alias = meta.provider_alias
        entry = ResourceState(
            MODE_MANAGED, block.type, block.name, d.id, d.state(),
            provider=f"{config.PROVIDER_NAME}.{alias}" if alias else config.PROVIDER_NAME,
            dependencies=self.dependencies(address),
        )
        state.set(entry)
        self.state_file.save(state)
        logger.info(f"Imported {address} [id={d.id}]")
        return entry

    def destroy(self, plan: Optional[Plan] = None) -> Dict[str, int]:
        """Delete everything in state, dependents first.

        ``plan`` is a destroy plan from ``plan(destroy=True)``; when omitted
        one is computed with a fresh refresh.
        """
        if plan is None:
            plan = self.plan(refresh=True, destroy=True)
        counts = {CREATE: 0, UPDATE: 0, DELETE: 0}
        state = plan.state
        for change in plan.changes:
            entry = state.get(change.address)
            click.echo(f"  {change.address}: Destroying... [id={entry.id}]")
            self._delete(state, entry)
            counts[DELETE] += 1
            self.state_file.save(state)
        for address in list(state.resources):
            state.remove(address)
        self.state_file.save(state)
        return counts
