"""Resource tag helpers.

Tags are stored in state as plain ``{key: value}`` maps. Each AWS service
spells its wire format differently, so converters live here next to the
diff logic used by every taggable resource.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

from provider.schema import SchemaMap, contains_unknown, diff

Tags = Dict[str, str]


def merge_default_tags(default_tags: Optional[Tags], tags: Optional[Tags]) -> Tags:
    """Merge provider default tags with resource tags (resource tags win)."""
    merged = dict(default_tags or {})
    merged.update(tags or {})
    return merged


def diff_tags(old: Optional[Tags], new: Optional[Tags]) -> Tuple[Tags, List[str]]:
    """Compute tag changes.

    Args:
        old: Tags currently applied
        new: Tags that should be applied

    Returns:
        Tuple of (tags to set, sorted keys to remove)
    """
    old = old or {}
    new = new or {}
    to_set = {k: v for k, v in new.items() if old.get(k) != v}
    to_remove = sorted(k for k in old if k not in new)
    return to_set, to_remove


def to_key_value_list(tags: Tags, key: str = "Key", value: str = "Value") -> List[Dict[str, str]]:
    """Convert a tag map into the list shape used by most AWS APIs.

    CodePipeline uses lowercase ``key``/``value``; IAM, S3 and CodeStar
    connections use ``Key``/``Value``.
    """
    return [{key: k, value: v} for k, v in sorted(tags.items())]


def from_key_value_list(
    items: Optional[List[Dict[str, str]]], key: str = "Key", value: str = "Value"
) -> Tags:
    """Convert an AWS tag list back into a map."""
    return {item[key]: item.get(value, "") for item in items or []}


def ignore_default_tags(all_tags: Optional[Tags], default_tags: Optional[Tags]) -> Tags:
    """Strip provider default tags from a resource's full tag set.

    A tag whose value differs from the provider default was set on the
    resource itself and is kept.
    """
    default_tags = default_tags or {}
    return {
        k: v
        for k, v in (all_tags or {}).items()
        if k not in default_tags or default_tags[k] != v
    }


def tags_all_changed(
    old_tags_all: Optional[Tags], tags: Optional[Tags], default_tags: Optional[Tags]
) -> bool:
    """Whether the full tag set in state differs from default tags merged with ``tags``."""
    to_set, to_remove = diff_tags(old_tags_all, merge_default_tags(default_tags, tags))
    return bool(to_set or to_remove)


def plan_tagged_changes(schema: SchemaMap) -> Callable[..., Tuple[List[str], List[str]]]:
    """Plan-time diff hook for taggable resources.

    The schema diff only compares ``tags``. Provider default tags are folded
    in here, so a default tag change plans as a ``tags_all`` change.
    """

    def plan_changes(
        old: Dict[str, Any], new: Dict[str, Any], meta: Any
    ) -> Tuple[List[str], List[str]]:
        changed, replace = diff(schema, old, new)
        tags = new.get("tags")
        if (
            "tags" not in changed
            and not contains_unknown(tags)
            and tags_all_changed(old.get("tags_all"), tags, meta.default_tags)
        ):
            changed.append("tags_all")
        return changed, replace

    return plan_changes
