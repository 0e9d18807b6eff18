"""Declarative schema layer for awsprov resources.

Every resource and data source describes its attributes with Schema entries.
The schema drives four things:

    - config normalization (type coercion, defaults)
    - config validation (required/unsupported arguments, types, validators)
    - diffing desired configuration against prior state
    - the ResourceData view handlers read from and write to

Nested blocks are expressed as list/set schemas whose ``elem`` is a dict of
Schema entries; primitive collections use a Schema as ``elem``.
"""

import copy
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

import provider.config as config
import provider.flatmap as flatmap
from provider.arn import is_arn

TYPE_STRING = "string"
TYPE_INT = "int"
TYPE_BOOL = "bool"
TYPE_LIST = "list"
TYPE_SET = "set"
TYPE_MAP = "map"

Validator = Callable[[Any, str], List[str]]


class _Unknown:
    """Sentinel for values that are only known after apply."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return config.UNKNOWN_DISPLAY

    def __deepcopy__(self, memo):
        return self


UNKNOWN = _Unknown()


def contains_unknown(value: Any) -> bool:
    if value is UNKNOWN:
        return True
    if isinstance(value, list):
        return any(contains_unknown(v) for v in value)
    if isinstance(value, dict):
        return any(contains_unknown(v) for v in value.values())
    return False


# Validators


def string_in_slice(valid: List[str]) -> Validator:
    def _validate(value: Any, key: str) -> List[str]:
        if value not in valid:
            return [f"{key}: expected one of [{', '.join(valid)}], got {value!r}"]
        return []

    return _validate


def string_matches(pattern: str, message: str = "") -> Validator:
    regex = re.compile(pattern)

    def _validate(value: Any, key: str) -> List[str]:
        if not regex.match(str(value)):
            return [f"{key}: {message or 'must match ' + pattern}, got {value!r}"]
        return []

    return _validate


def string_len_between(min_len: int, max_len: int) -> Validator:
    def _validate(value: Any, key: str) -> List[str]:
        if not min_len <= len(str(value)) <= max_len:
            return [
                f"{key}: expected length between {min_len} and {max_len}, got {len(str(value))}"
            ]
        return []

    return _validate


def int_between(low: int, high: int) -> Validator:
    def _validate(value: Any, key: str) -> List[str]:
        if not low <= value <= high:
            return [f"{key}: expected to be in the range ({low} - {high}), got {value}"]
        return []

    return _validate


def valid_arn(value: Any, key: str) -> List[str]:
    if not is_arn(value):
        return [f"{key}: {value!r} is an invalid ARN"]
    return []


def valid_json(value: Any, key: str) -> List[str]:
    try:
        json.loads(value)
    except (TypeError, ValueError) as e:
        return [f"{key}: contains an invalid JSON: {e}"]
    return []


def all_of(*validators: Validator) -> Validator:
    def _validate(value: Any, key: str) -> List[str]:
        problems: List[str] = []
        for v in validators:
            problems.extend(v(value, key))
        return problems

    return _validate


@dataclass
class Schema:
    """Definition of a single attribute or nested block."""

    type: str
    required: bool = False
    optional: bool = False
    computed: bool = False
    force_new: bool = False
    sensitive: bool = False
    default: Any = None
    elem: Any = None
    min_items: int = 0
    max_items: int = 0
    validate: Optional[Validator] = None
    diff_suppress: Optional[Callable[[str, Any, Any], bool]] = None
    conflicts_with: List[str] = field(default_factory=list)

    @property
    def is_block(self) -> bool:
        return self.type in (TYPE_LIST, TYPE_SET) and isinstance(self.elem, dict)

    @property
    def computed_only(self) -> bool:
        return self.computed and not (self.optional or self.required)

    def zero(self) -> Any:
        if self.type == TYPE_STRING:
            return ""
        if self.type == TYPE_INT:
            return 0
        if self.type == TYPE_BOOL:
            return False
        if self.type == TYPE_MAP:
            return {}
        return []


SchemaMap = Dict[str, Schema]


@dataclass
class Resource:
    """
    A resource type or data source: its schema plus handler callables.

    Handlers take ``(d: ResourceData, meta: AWSClient)``. Read handlers signal
    "gone" by clearing the ID with ``d.set_id("")``.

    Args:
        type_name: Terraform type name, e.g. "aws_codepipeline"
        schema: Attribute schema
        read: Read handler (required for both resources and data sources)
        create/update/delete: Lifecycle handlers (managed resources only)
        importable: Whether ``import`` is supported (passthrough: ID then read)
        data_source: True for data sources
        plan_changes: Optional hook ``(old, new, meta) -> (changed, replace)``
                      overriding the generic schema diff
        config_validator: Optional hook ``(config) -> problems`` for rules
                          spanning several attributes
    """

    type_name: str
    schema: SchemaMap
    read: Callable[..., None]
    create: Optional[Callable[..., None]] = None
    update: Optional[Callable[..., None]] = None
    delete: Optional[Callable[..., None]] = None
    importable: bool = False
    data_source: bool = False
    plan_changes: Optional[Callable[..., Tuple[List[str], List[str]]]] = None
    config_validator: Optional[Callable[[Dict[str, Any]], List[str]]] = None


class ResourceData:
    """
    Handler-facing view of one resource instance.

    Values are resolved in this order: values set by the handler, then the
    desired configuration, then prior state for computed attributes. When no
    configuration is supplied (refresh, import) prior state is used directly.
    """

    def __init__(
        self,
        schema: SchemaMap,
        config: Optional[Dict[str, Any]] = None,
        state: Optional[Dict[str, Any]] = None,
        id: str = "",
    ):
        self.schema = schema
        self._config = config
        self._state = dict(state or {})
        self._new: Dict[str, Any] = {}
        self._id = id or self._state.get("id", "")

    def _value(self, key: str) -> Any:
        s = self.schema[key]
        if key in self._new:
            value = self._new[key]
        elif self._config is not None:
            value = self._config.get(key)
            if value is None and s.computed:
                value = self._state.get(key)
        else:
            value = self._state.get(key)
        return s.zero() if value is None else value

    def get(self, key: str) -> Any:
        """Return the resolved value at a (possibly dotted) attribute path."""
        parts = flatmap.split_path(key)
        value = self._value(parts[0])
        if len(parts) == 1:
            return value
        try:
            return flatmap.get_path(value, parts[1:])
        except KeyError:
            return None

    def get_ok(self, key: str) -> Tuple[Any, bool]:
        """Return the value and whether it is set to a non-zero value."""
        value = self.get(key)
        return value, value not in (None, "", 0, False, [], {})

    def set(self, key: str, value: Any) -> None:
        if key not in self.schema:
            raise KeyError(f"Invalid attribute {key!r}")
        self._new[key] = copy.deepcopy(value)

    @property
    def id(self) -> str:
        return self._id

    def set_id(self, value: str) -> None:
        self._id = value or ""

    def get_change(self, key: str) -> Tuple[Any, Any]:
        s = self.schema[key]
        old = self._state.get(key)
        return (s.zero() if old is None else old), self._value(key)

    def has_change(self, key: str) -> bool:
        old, new = self.get_change(key)
        return not values_equal(self.schema[key], old, new)

    def has_changes(self, *keys: str) -> bool:
        return any(self.has_change(k) for k in keys)

    def state(self) -> Dict[str, Any]:
        """Return the full attribute dictionary to persist, including ``id``."""
        attrs = {key: copy.deepcopy(self._value(key)) for key in self.schema}
        attrs["id"] = self._id
        return attrs


# Normalization and validation


def _coerce(s: Schema, value: Any) -> Any:
    if value is None or value is UNKNOWN:
        return value
    if s.type == TYPE_STRING:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
    elif s.type == TYPE_INT:
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value)
    elif s.type == TYPE_BOOL:
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
    elif s.type == TYPE_MAP and isinstance(value, dict):
        return {
            k: (v if v is UNKNOWN else _coerce(Schema(TYPE_STRING), v))
            for k, v in value.items()
        }
    elif s.type in (TYPE_LIST, TYPE_SET):
        if isinstance(value, dict) and s.is_block:
            value = [value]
        if isinstance(value, list):
            if s.is_block:
                return [
                    normalize_config(s.elem, item) if isinstance(item, dict) else item
                    for item in value
                ]
            if isinstance(s.elem, Schema):
                return [_coerce(s.elem, item) for item in value]
    return value


def normalize_config(schema: SchemaMap, raw: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce HCL values to schema types and apply defaults.

    Args:
        schema: Resource schema
        raw: Attribute dictionary as parsed from HCL (references resolved)

    Returns:
        New dictionary with coerced values; unset attributes with a default
        are filled in, everything else unset is left out
    """
    result: Dict[str, Any] = {}
    for key, value in raw.items():
        s = schema.get(key)
        result[key] = _coerce(s, value) if s else value
    for key, s in schema.items():
        if result.get(key) is None and s.default is not None:
            result[key] = copy.deepcopy(s.default)
    return {k: v for k, v in result.items() if v is not None}


def _type_ok(s: Schema, value: Any) -> bool:
    if s.type == TYPE_STRING:
        return isinstance(value, str)
    if s.type == TYPE_INT:
        return isinstance(value, int) and not isinstance(value, bool)
    if s.type == TYPE_BOOL:
        return isinstance(value, bool)
    if s.type == TYPE_MAP:
        return isinstance(value, dict)
    return isinstance(value, list)


def validate_config(schema: SchemaMap, cfg: Dict[str, Any], path: str = "") -> List[str]:
    """Collect every schema violation in a (normalized) configuration.

    Args:
        schema: Resource schema
        cfg: Normalized configuration
        path: Prefix for problem messages when validating nested blocks

    Returns:
        List of human-readable problems (empty when valid)
    """
    problems: List[str] = []
    for key in cfg:
        if key not in schema:
            problems.append(f"{path}{key}: unsupported argument")

    for key, s in schema.items():
        full_key = f"{path}{key}"
        value = cfg.get(key)
        if value is None:
            if s.required:
                problems.append(f"{full_key}: required argument is missing")
            continue
        if value is UNKNOWN:
            continue
        if s.computed_only:
            problems.append(
                f"{full_key}: can't configure a value, its value is decided automatically"
            )
            continue
        for other in s.conflicts_with:
            if cfg.get(other) is not None:
                problems.append(f"{full_key}: conflicts with {path}{other}")
        if not _type_ok(s, value):
            problems.append(f"{full_key}: expected {s.type}, got {type(value).__name__}")
            continue

        if s.type in (TYPE_LIST, TYPE_SET):
            if s.min_items and len(value) < s.min_items:
                problems.append(
                    f"{full_key}: at least {s.min_items} item(s) required, got {len(value)}"
                )
            if s.max_items and len(value) > s.max_items:
                problems.append(
                    f"{full_key}: no more than {s.max_items} item(s) allowed, got {len(value)}"
                )
            for i, item in enumerate(value):
                if item is UNKNOWN:
                    continue
                if s.is_block:
                    if not isinstance(item, dict):
                        problems.append(f"{full_key}.{i}: expected a block")
                        continue
                    problems.extend(validate_config(s.elem, item, f"{full_key}.{i}."))
                elif isinstance(s.elem, Schema):
                    if not _type_ok(s.elem, item):
                        problems.append(
                            f"{full_key}.{i}: expected {s.elem.type}, got {type(item).__name__}"
                        )
                    elif s.elem.validate:
                        problems.extend(s.elem.validate(item, f"{full_key}.{i}"))
        elif s.type == TYPE_MAP:
            for k, v in value.items():
                if v is not UNKNOWN and not isinstance(v, str):
                    problems.append(f"{full_key}.{k}: expected string, got {type(v).__name__}")

        if s.validate and not contains_unknown(value):
            problems.extend(s.validate(value, full_key))
    return problems


# Diffing


def _complete(schema: SchemaMap, item: Dict[str, Any]) -> Dict[str, Any]:
    """Fill missing attributes of a block with their zero values."""
    out: Dict[str, Any] = {}
    for key, s in schema.items():
        value = item.get(key)
        if value is None:
            value = s.zero()
        elif s.is_block and isinstance(value, list):
            value = [_complete(s.elem, v) if isinstance(v, dict) else v for v in value]
        out[key] = value
    return out


def _canonical_set(items: List[Any]) -> List[str]:
    return sorted(json.dumps(i, sort_keys=True, default=repr) for i in items)


def values_equal(s: Schema, old: Any, new: Any) -> bool:
    old = s.zero() if old is None else old
    new = s.zero() if new is None else new
    if s.is_block:
        old = [_complete(s.elem, i) if isinstance(i, dict) else i for i in old]
        new = [_complete(s.elem, i) if isinstance(i, dict) else i for i in new]
    if s.type == TYPE_SET:
        return _canonical_set(old) == _canonical_set(new)
    return old == new


def _fill_computed(s: Schema, old: Any, new: Any) -> Any:
    """Carry computed nested values from prior state into unset config values."""
    if not (s.type == TYPE_LIST and s.is_block and isinstance(old, list) and isinstance(new, list)):
        return new
    filled = []
    for i, item in enumerate(new):
        if not isinstance(item, dict) or i >= len(old) or not isinstance(old[i], dict):
            filled.append(item)
            continue
        item = dict(item)
        for key, sub in s.elem.items():
            if item.get(key) is None and sub.computed:
                item[key] = old[i].get(key)
            elif sub.is_block:
                item[key] = _fill_computed(sub, old[i].get(key), item.get(key))
        filled.append(item)
    return filled


def diff(
    schema: SchemaMap, old: Dict[str, Any], new: Dict[str, Any]
) -> Tuple[List[str], List[str]]:
    """Compare prior state with desired configuration.

    Args:
        schema: Resource schema
        old: Prior state attributes
        new: Normalized desired configuration

    Returns:
        Tuple of (changed attribute names, attribute names forcing replacement)
    """
    changed: List[str] = []
    force_new: List[str] = []
    for key, s in schema.items():
        if s.computed_only:
            continue
        new_value = new.get(key)
        old_value = old.get(key)
        if new_value is None and s.computed:
            continue
        if contains_unknown(new_value):
            differs = True
        else:
            new_value = _fill_computed(s, old_value, new_value)
            if s.diff_suppress and s.diff_suppress(key, old_value, new_value):
                continue
            differs = not values_equal(s, old_value, new_value)
        if differs:
            changed.append(key)
            if s.force_new:
                force_new.append(key)
    return changed, force_new
