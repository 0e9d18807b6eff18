"""Drift detection and state assertions.

``check_exists`` and ``check_destroy`` go to AWS; the ``*_attr`` helpers only
look at state, using flat attribute keys (see provider.flatmap):

    check_resource_attr(state, "aws_codepipeline.main", "stage.#", "2")
    check_resource_attr(state, "aws_codepipeline.main", "stage.0.action.0.run_order", "1")
    match_resource_attr(state, "aws_codepipeline.main", "arn", r"^arn:aws:codepipeline:")
"""

import logging
import re
from typing import Callable, Dict, Iterable, List, Optional

import provider.flatmap as flatmap
from provider.exceptions import (
    AttributeCheckError,
    NotFoundError,
    ProviderError,
    ResourceStillExistsError,
)
from provider.registry import Provider
from provider.schema import ResourceData
from provider.state import ResourceState, State

logger = logging.getLogger(__name__)

StateCheck = Callable[[State], None]


def _entry(state: State, address: str) -> ResourceState:
    entry = state.get(address)
    if entry is None:
        raise AttributeCheckError("Resource not found in state", {"address": address})
    return entry


def _flat(state: State, address: str) -> Dict[str, str]:
    entry = _entry(state, address)
    attrs = dict(entry.attributes)
    attrs["id"] = entry.id
    return flatmap.flatten(attrs)


def _is_empty_collection_key(key: str, value: str) -> bool:
    # an absent list or map is the same as an empty one
    return value == "0" and (key.endswith(".#") or key.endswith(".%"))


def read_remote(provider: Provider, entry: ResourceState) -> ResourceData:
    """Read one state entry from AWS; ``d.id`` is empty if it is gone."""
    resource = (
        provider.data_source(entry.type) if entry.mode == "data" else provider.resource(entry.type)
    )
    d = ResourceData(resource.schema, state=entry.attributes, id=entry.id)
    resource.read(d, provider.meta(entry.provider_alias))
    return d


def check_exists(provider: Provider, state: State, address: str) -> ResourceData:
    """Verify that a resource in state still exists in AWS.

    Returns:
        The freshly read ResourceData

    Raises:
        AttributeCheckError: If the address is not in state or has no ID
        NotFoundError: If the remote object is gone
    """
    entry = _entry(state, address)
    if not entry.id:
        raise AttributeCheckError("No ID is set", {"address": address})
    d = read_remote(provider, entry)
    if not d.id:
        raise NotFoundError("Resource no longer exists", {"address": address, "id": entry.id})
    return d


def check_destroy(provider: Provider, state: State, types: Optional[Iterable[str]] = None) -> None:
    """Verify that managed resources in state are gone from AWS.

    Args:
        provider: Provider used to read the resources
        state: State captured before the destroy
        types: Restrict the check to these resource types

    Raises:
        ResourceStillExistsError: For the first resource still present
    """
    wanted = set(types) if types else None
    for address in state.addresses():
        entry = state.resources[address]
        if entry.mode == "data" or (wanted is not None and entry.type not in wanted):
            continue
        d = read_remote(provider, entry)
        if d.id:
            raise ResourceStillExistsError(
                f"{entry.type} still exists", {"address": address, "id": entry.id}
            )
        logger.debug(f"{address} confirmed destroyed")


def check_resource_attr(state: State, address: str, key: str, value: str) -> None:
    flat = _flat(state, address)
    if key not in flat:
        if value == "" or _is_empty_collection_key(key, value):
            return
        raise AttributeCheckError(
            f"Attribute '{key}' not found", {"address": address, "expected": value}
        )
    if flat[key] != value:
        raise AttributeCheckError(
            f"Attribute '{key}' expected {value!r}, got {flat[key]!r}", {"address": address}
        )


def check_resource_attr_set(state: State, address: str, key: str) -> None:
    flat = _flat(state, address)
    if not flat.get(key):
        raise AttributeCheckError(f"Attribute '{key}' expected to be set", {"address": address})


def check_no_resource_attr(state: State, address: str, key: str) -> None:
    flat = _flat(state, address)
    if key in flat and flat[key] != "" and not _is_empty_collection_key(key, flat[key]):
        raise AttributeCheckError(
            f"Attribute '{key}' found when not expected: {flat[key]!r}", {"address": address}
        )


def match_resource_attr(state: State, address: str, key: str, pattern: str) -> None:
    flat = _flat(state, address)
    if key not in flat:
        raise AttributeCheckError(f"Attribute '{key}' not found", {"address": address})
    if not re.search(pattern, flat[key]):
        raise AttributeCheckError(
            f"Attribute '{key}' did not match {pattern!r}, got {flat[key]!r}",
            {"address": address},
        )


def check_resource_attr_pair(
    state: State, address: str, key: str, other_address: str, other_key: str
) -> None:
    """Assert that two attributes (possibly of two resources) are equal."""
    first = _flat(state, address).get(key, "")
    second = _flat(state, other_address).get(other_key, "")
    if first != second:
        raise AttributeCheckError(
            f"{address}.{key} ({first!r}) does not equal {other_address}.{other_key} ({second!r})"
        )


def import_state_verify(
    state: State, imported: ResourceState, ignore: Iterable[str] = ()
) -> None:
    """Compare an imported resource with the one created through apply.

    Args:
        state: State after apply
        imported: State entry produced by import
        ignore: Attribute prefixes not expected to survive import
                (e.g., write-only arguments)

    Raises:
        AttributeCheckError: Listing every differing key
    """
    prefixes = tuple(ignore)

    def keep(key: str) -> bool:
        return not any(key == p or key.startswith(p + ".") for p in prefixes)

    expected = {k: v for k, v in _flat(state, imported.address).items() if keep(k)}
    actual_attrs = dict(imported.attributes)
    actual_attrs["id"] = imported.id
    actual = {k: v for k, v in flatmap.flatten(actual_attrs).items() if keep(k)}

    problems: List[str] = []
    for key in sorted(set(expected) | set(actual)):
        want, got = expected.get(key, ""), actual.get(key, "")
        if want == got or (
            _is_empty_collection_key(key, want or "0") and _is_empty_collection_key(key, got or "0")
        ):
            continue
        problems.append(f"{key}: state {want!r}, imported {got!r}")
    if problems:
        raise AttributeCheckError(
            "ImportStateVerify attributes not equivalent:\n  " + "\n  ".join(problems),
            {"address": imported.address},
        )


def compose_aggregate(*checks: StateCheck) -> StateCheck:
    """Combine checks; every check runs and all failures are reported together."""

    def run(state: State) -> None:
        failures: List[str] = []
        for check in checks:
            try:
                check(state)
            except ProviderError as e:
                failures.append(str(e))
        if failures:
            raise AttributeCheckError(
                f"{len(failures)} check(s) failed:\n  " + "\n  ".join(failures)
            )

    return run
