"""Flat attribute addressing for nested resource state.

State attributes are nested Python structures. Assertions, plan rendering and
import verification work on a flattened view instead, using the familiar
Terraform addressing:

    stage.#                          -> number of stages
    stage.0.action.0.name            -> a nested block attribute
    stage.0.action.0.configuration.% -> number of map entries
    tags.Environment                 -> a map entry
"""

from typing import Any, Dict, List, Union

Path = Union[str, List[str]]


def _scalar(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _flatten_into(out: Dict[str, str], key: str, value: Any) -> None:
    if isinstance(value, list):
        out[f"{key}.#"] = str(len(value))
        for i, item in enumerate(value):
            if isinstance(item, dict):
                # nested block: its attributes are addressed, not counted
                for k, v in item.items():
                    _flatten_into(out, f"{key}.{i}.{k}", v)
            else:
                _flatten_into(out, f"{key}.{i}", item)
    elif isinstance(value, dict):
        out[f"{key}.%"] = str(len(value))
        for k, v in value.items():
            _flatten_into(out, f"{key}.{k}", v)
    else:
        out[key] = _scalar(value)


def flatten(attributes: Dict[str, Any]) -> Dict[str, str]:
    """Flatten nested state attributes into dotted keys with string values.

    Args:
        attributes: Nested attribute dictionary of one resource

    Returns:
        Dictionary of flat key -> string value
    """
    out: Dict[str, str] = {}
    for key, value in attributes.items():
        _flatten_into(out, key, value)
    return out


def split_path(path: Path) -> List[str]:
    if isinstance(path, list):
        return list(path)
    return [p for p in path.split(".") if p != ""]


def get_path(data: Any, path: Path) -> Any:
    """Look up a dotted path inside nested attributes.

    Args:
        data: Nested dict/list structure
        path: Dotted path ("stage.0.name") or list of path parts

    Returns:
        Value at the path

    Raises:
        KeyError: If any part of the path does not exist
    """
    current = data
    for part in split_path(path):
        if isinstance(current, list):
            if not part.isdigit() or int(part) >= len(current):
                raise KeyError(part)
            current = current[int(part)]
        elif isinstance(current, dict):
            if part not in current:
                raise KeyError(part)
            current = current[part]
        else:
            raise KeyError(part)
    return current
