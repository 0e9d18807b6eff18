"""Reference interpreter for awsprov.

Resolves ``${...}`` expressions in parsed HCL bodies. Supported references:

    ${var.name}                      input variable
    ${aws_s3_bucket.main.bucket}     attribute of a managed resource
    ${data.aws_efs_mount_target.x.ip_address}
    ${aws.west}                      provider alias (only in ``provider = ...``)

Indexes are accepted in either form: ``stage[0].name`` or ``stage.0.name``.
A string that is exactly one reference is replaced by the referenced value
(keeping its type); references embedded in a longer string are interpolated.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

import provider.config as config
import provider.flatmap as flatmap
from provider.exceptions import ConfigurationError, ReferenceResolutionError
from provider.schema import UNKNOWN

logger = logging.getLogger(__name__)

REFERENCE = re.compile(r"\$\{([^}]+)\}")
INDEX = re.compile(r"\[\s*\"?([^\]\"]+)\"?\s*\]")
UNSUPPORTED_META_ARGS = ("count", "for_each")


@dataclass
class BlockMeta:
    """Meta-arguments split off a resource or data block body."""

    depends_on: List[str] = field(default_factory=list)
    provider_alias: str = ""


def normalize_expression(expr: str) -> str:
    """Turn ``a.b[0]["k"]`` into ``a.b.0.k``."""
    return INDEX.sub(lambda m: "." + m.group(1), expr.strip())


def reference_address(expr: str) -> Optional[str]:
    """Return the block address an expression refers to, if any.

    ``var.*`` and provider aliases refer to no block.
    """
    parts = flatmap.split_path(normalize_expression(expr))
    if not parts or parts[0] in ("var", config.PROVIDER_NAME):
        return None
    if parts[0] == "data":
        return ".".join(parts[:3]) if len(parts) >= 3 else None
    return ".".join(parts[:2]) if len(parts) >= 2 else None


def references(value: Any) -> Set[str]:
    """Collect every block address referenced anywhere in a value."""
    found: Set[str] = set()
    if isinstance(value, str):
        for expr in REFERENCE.findall(value):
            address = reference_address(expr)
            if address:
                found.add(address)
    elif isinstance(value, list):
        for item in value:
            found |= references(item)
    elif isinstance(value, dict):
        for item in value.values():
            found |= references(item)
    return found


def split_meta_args(address: str, body: Dict[str, Any]) -> Tuple[Dict[str, Any], BlockMeta]:
    """Separate meta-arguments from the attributes of a block.

    Raises:
        ConfigurationError: For count / for_each, or a malformed provider
                            or depends_on reference
    """
    attrs = dict(body)
    meta = BlockMeta()
    for arg in UNSUPPORTED_META_ARGS:
        if arg in attrs:
            raise ConfigurationError(
                f"The '{arg}' meta-argument is not supported", {"address": address}
            )
    attrs.pop("lifecycle", None)

    for item in attrs.pop("depends_on", None) or []:
        match = REFERENCE.fullmatch(str(item))
        target = reference_address(match.group(1) if match else str(item))
        if not target:
            raise ConfigurationError(
                f"Invalid depends_on entry {item!r}", {"address": address}
            )
        meta.depends_on.append(target)

    provider_ref = attrs.pop("provider", None)
    if provider_ref:
        match = REFERENCE.fullmatch(str(provider_ref))
        parts = (match.group(1) if match else str(provider_ref)).split(".")
        if parts[0] != config.PROVIDER_NAME or len(parts) > 2:
            raise ConfigurationError(
                f"Invalid provider reference {provider_ref!r}", {"address": address}
            )
        meta.provider_alias = parts[1] if len(parts) == 2 else ""
    return attrs, meta


def variable_values(
    declared: Mapping[str, Dict[str, Any]], overrides: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    """Combine variable defaults with values given on the command line.

    Raises:
        ConfigurationError: If a variable has neither a default nor a value,
                            or a value is given for an undeclared variable
    """
    overrides = overrides or {}
    unknown = sorted(set(overrides) - set(declared))
    if unknown:
        raise ConfigurationError(
            "Values given for undeclared variables", {"variables": ", ".join(unknown)}
        )
    values: Dict[str, Any] = {}
    for name, body in declared.items():
        if name in overrides:
            values[name] = overrides[name]
        elif "default" in body:
            values[name] = body["default"]
        else:
            raise ConfigurationError(f"No value for required variable '{name}'")
    return values


class Scope:
    """
    Values visible to expressions while planning or applying.

    Args:
        variables: Resolved input variable values
        blocks: Block address -> attribute dictionary (state or planned)
    """

    def __init__(
        self, variables: Dict[str, Any], blocks: Optional[Dict[str, Dict[str, Any]]] = None
    ):
        self.variables = variables
        self.blocks: Dict[str, Dict[str, Any]] = blocks if blocks is not None else {}

    def lookup(self, expr: str) -> Any:
        expr = normalize_expression(expr)
        parts = flatmap.split_path(expr)
        if parts[0] == "var":
            if len(parts) < 2 or parts[1] not in self.variables:
                raise ReferenceResolutionError(f"Reference to undeclared variable: {expr}")
            value = self.variables[parts[1]]
            rest = parts[2:]
        else:
            address = reference_address(expr)
            if address is None:
                raise ReferenceResolutionError(f"Unsupported expression: {expr}")
            if address not in self.blocks:
                raise ReferenceResolutionError(f"Reference to undeclared resource: {address}")
            value = self.blocks[address]
            rest = parts[len(address.split(".")):]
            if not rest:
                raise ReferenceResolutionError(
                    f"Reference to a whole resource is not supported: {expr}"
                )
        for i, part in enumerate(rest):
            if value is UNKNOWN:
                return UNKNOWN
            try:
                value = flatmap.get_path(value, [part])
            except KeyError:
                raise ReferenceResolutionError(
                    f"Unsupported attribute in reference: {expr}",
                    {"attribute": ".".join(rest[: i + 1])},
                )
        return value

    def resolve(self, value: Any) -> Any:
        """Resolve every reference in a (nested) value.

        Values that are unknown until apply come back as schema.UNKNOWN.
        """
        if isinstance(value, str):
            return self._resolve_string(value)
        if isinstance(value, list):
            return [self.resolve(v) for v in value]
        if isinstance(value, dict):
            return {k: self.resolve(v) for k, v in value.items()}
        return value

    def _resolve_string(self, text: str) -> Any:
        whole = REFERENCE.fullmatch(text)
        if whole:
            return self.lookup(whole.group(1))
        pieces: List[str] = []
        pos = 0
        for match in REFERENCE.finditer(text):
            found = self.lookup(match.group(1))
            if found is UNKNOWN:
                return UNKNOWN
            if isinstance(found, (dict, list)):
                raise ReferenceResolutionError(
                    f"Cannot interpolate a collection into a string: {match.group(1)}"
                )
            if isinstance(found, bool):
                found = "true" if found else "false"
            pieces.append(text[pos:match.start()])
            pieces.append(str(found))
            pos = match.end()
        pieces.append(text[pos:])
        return "".join(pieces)
