"""aws_codepipeline resource.

Maps the ``aws_codepipeline`` schema onto CreatePipeline, GetPipeline,
UpdatePipeline and DeletePipeline. Updates go through the reconciler, which
decides between a declaration update and a forced replacement; tags are
managed separately on the pipeline ARN.
"""

import logging
from typing import Any, Dict, List, Tuple

from botocore.exceptions import ClientError

import provider.config as config
from provider.conns import AWSClient
from provider.exceptions import (
    NotFoundError,
    ProviderError,
    error_code,
    not_found_from,
)
from provider.schema import (
    TYPE_INT,
    TYPE_LIST,
    TYPE_MAP,
    TYPE_SET,
    TYPE_STRING,
    Resource,
    ResourceData,
    Schema,
    all_of,
    contains_unknown,
    int_between,
    string_in_slice,
    string_len_between,
    string_matches,
    valid_arn,
)
from provider.service.codepipeline.model import PipelineDeclaration
from provider.service.codepipeline.reconciler import reconcile
from provider.tags import (
    diff_tags,
    from_key_value_list,
    ignore_default_tags,
    merge_default_tags,
    plan_tagged_changes,
    to_key_value_list,
)

logger = logging.getLogger(__name__)

SERVICE = "codepipeline"
NOT_FOUND_CODE = "PipelineNotFoundException"

_name_validator = all_of(
    string_len_between(1, 100),
    string_matches(config.CODEPIPELINE_NAME_PATTERN, "must contain only A-Za-z0-9.@-_"),
)

ACTION_SCHEMA = {
    "category": Schema(
        TYPE_STRING, required=True, validate=string_in_slice(config.CODEPIPELINE_ACTION_CATEGORIES)
    ),
    "configuration": Schema(TYPE_MAP, optional=True, elem=Schema(TYPE_STRING)),
    "input_artifacts": Schema(TYPE_LIST, optional=True, elem=Schema(TYPE_STRING)),
    "name": Schema(TYPE_STRING, required=True, validate=_name_validator),
    "namespace": Schema(
        TYPE_STRING,
        optional=True,
        validate=all_of(
            string_len_between(1, 100),
            string_matches(config.CODEPIPELINE_NAMESPACE_PATTERN, "must contain only A-Za-z0-9@-_"),
        ),
    ),
    "output_artifacts": Schema(TYPE_LIST, optional=True, elem=Schema(TYPE_STRING)),
    "owner": Schema(
        TYPE_STRING, required=True, validate=string_in_slice(config.CODEPIPELINE_ACTION_OWNERS)
    ),
    "provider": Schema(TYPE_STRING, required=True),
    "region": Schema(TYPE_STRING, optional=True, computed=True),
    "role_arn": Schema(TYPE_STRING, optional=True, validate=valid_arn),
    "run_order": Schema(TYPE_INT, optional=True, computed=True, validate=int_between(1, 999)),
    "version": Schema(
        TYPE_STRING,
        required=True,
        validate=all_of(
            string_len_between(1, 9),
            string_matches(config.CODEPIPELINE_VERSION_PATTERN, "must contain only 0-9A-Za-z_-"),
        ),
    ),
}

PIPELINE_SCHEMA = {
    "arn": Schema(TYPE_STRING, computed=True),
    "artifact_store": Schema(
        TYPE_SET,
        required=True,
        min_items=1,
        elem={
            "encryption_key": Schema(
                TYPE_LIST,
                optional=True,
                max_items=1,
                elem={
                    "id": Schema(TYPE_STRING, required=True),
                    "type": Schema(
                        TYPE_STRING,
                        required=True,
                        validate=string_in_slice(config.CODEPIPELINE_ENCRYPTION_KEY_TYPES),
                    ),
                },
            ),
            "location": Schema(TYPE_STRING, required=True),
            "region": Schema(TYPE_STRING, optional=True),
            "type": Schema(
                TYPE_STRING,
                required=True,
                validate=string_in_slice(config.CODEPIPELINE_ARTIFACT_STORE_TYPES),
            ),
        },
    ),
    "execution_mode": Schema(
        TYPE_STRING,
        optional=True,
        default=config.CODEPIPELINE_DEFAULT_EXECUTION_MODE,
        validate=string_in_slice(config.CODEPIPELINE_EXECUTION_MODES),
    ),
    "name": Schema(TYPE_STRING, required=True, force_new=True, validate=_name_validator),
    "pipeline_type": Schema(
        TYPE_STRING,
        optional=True,
        default=config.CODEPIPELINE_DEFAULT_PIPELINE_TYPE,
        validate=string_in_slice(config.CODEPIPELINE_PIPELINE_TYPES),
    ),
    "role_arn": Schema(TYPE_STRING, required=True, validate=valid_arn),
    "stage": Schema(
        TYPE_LIST,
        required=True,
        min_items=2,
        elem={
            "action": Schema(TYPE_LIST, required=True, min_items=1, elem=ACTION_SCHEMA),
            "name": Schema(TYPE_STRING, required=True, validate=_name_validator),
        },
    ),
    "tags": Schema(TYPE_MAP, optional=True, elem=Schema(TYPE_STRING)),
    "tags_all": Schema(TYPE_MAP, computed=True, elem=Schema(TYPE_STRING)),
    "variable": Schema(
        TYPE_LIST,
        optional=True,
        elem={
            "default_value": Schema(TYPE_STRING, optional=True),
            "description": Schema(TYPE_STRING, optional=True, validate=string_len_between(1, 200)),
            "name": Schema(
                TYPE_STRING,
                required=True,
                validate=all_of(
                    string_len_between(1, 128),
                    string_matches(
                        config.CODEPIPELINE_VARIABLE_NAME_PATTERN, "must contain only A-Za-z0-9@-_"
                    ),
                ),
            ),
        },
    ),
}


def expand_pipeline_declaration(d: ResourceData) -> Dict[str, Any]:
    """Build the CreatePipeline/UpdatePipeline ``pipeline`` argument from resource data."""
    return PipelineDeclaration.from_state(d.state()).to_api()


def flatten_pipeline_declaration(d: ResourceData, pipeline: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a GetPipeline ``pipeline`` structure into state attributes.

    GitHub (version 1) OAuthTokens come back masked, so the value already
    held in state is carried over instead.
    """
    declaration = PipelineDeclaration.from_api(pipeline)
    for i, stage in enumerate(declaration.stages):
        for j, action in enumerate(stage.actions):
            if action.masks_oauth_token:
                prior = d.get(
                    f"stage.{i}.action.{j}.configuration.{config.GITHUB_OAUTH_TOKEN_KEY}"
                )
                action.configuration[config.GITHUB_OAUTH_TOKEN_KEY] = prior or ""
    return declaration.to_state()


def find_pipeline_by_name(conn: Any, name: str) -> Dict[str, Any]:
    """Fetch a pipeline with GetPipeline.

    Args:
        conn: boto3 codepipeline client
        name: Pipeline name

    Returns:
        Full GetPipeline response (``pipeline`` and ``metadata``)

    Raises:
        NotFoundError: If the pipeline does not exist
    """
    try:
        output = conn.get_pipeline(name=name)
    except ClientError as e:
        if error_code(e) == NOT_FOUND_CODE:
            raise not_found_from(e, "CodePipeline Pipeline not found", name=name)
        raise
    if not output or not output.get("pipeline"):
        raise NotFoundError("CodePipeline Pipeline returned an empty result", {"name": name})
    return output


def list_pipeline_names(conn: Any) -> List[str]:
    """Return the names of every pipeline in the client's region."""
    names: List[str] = []
    paginator = conn.get_paginator("list_pipelines")
    for page in paginator.paginate():
        names.extend(p["name"] for p in page.get("pipelines", []))
    return names


def list_tags(conn: Any, arn: str) -> Dict[str, str]:
    tags: Dict[str, str] = {}
    params = {"resourceArn": arn}
    while True:
        output = conn.list_tags_for_resource(**params)
        tags.update(from_key_value_list(output.get("tags"), "key", "value"))
        if not output.get("nextToken"):
            return tags
        params["nextToken"] = output["nextToken"]


def update_tags(conn: Any, arn: str, to_set: Dict[str, str], to_remove: List[str]) -> None:
    if to_remove:
        logger.debug(f"Untagging {arn}: {', '.join(to_remove)}")
        conn.untag_resource(resourceArn=arn, tagKeys=to_remove)
    if to_set:
        logger.debug(f"Tagging {arn}: {', '.join(sorted(to_set))}")
        conn.tag_resource(resourceArn=arn, tags=to_key_value_list(to_set, "key", "value"))


def resource_pipeline_create(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    pipeline = expand_pipeline_declaration(d)
    params: Dict[str, Any] = {"pipeline": pipeline}
    tags = merge_default_tags(meta.default_tags, d.get("tags"))
    if tags:
        params["tags"] = to_key_value_list(tags, "key", "value")

    output = conn.create_pipeline(**params)
    d.set_id(output["pipeline"]["name"])
    logger.info(f"Created CodePipeline Pipeline {d.id}")

    resource_pipeline_read(d, meta)


def resource_pipeline_read(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    try:
        output = find_pipeline_by_name(conn, d.id)
    except NotFoundError:
        logger.warning(f"CodePipeline Pipeline ({d.id}) not found, removing from state")
        d.set_id("")
        return

    for key, value in flatten_pipeline_declaration(d, output["pipeline"]).items():
        d.set(key, value)
    arn = output["metadata"]["pipelineArn"]
    d.set("arn", arn)

    tags = list_tags(conn, arn)
    d.set("tags_all", tags)
    d.set("tags", ignore_default_tags(tags, meta.default_tags))


def resource_pipeline_update(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    output = find_pipeline_by_name(conn, d.id)
    observed = PipelineDeclaration.from_api(output["pipeline"])
    desired = PipelineDeclaration.from_state(d.state())
    old_tags, _ = d.get_change("tags_all")
    new_tags = merge_default_tags(meta.default_tags, d.get("tags"))

    plan = reconcile(desired, observed, meta.region, old_tags=old_tags, new_tags=new_tags)
    if plan.requires_replace:
        raise ProviderError(
            "CodePipeline Pipeline cannot be updated in place",
            {"name": d.id, "replace": ", ".join(plan.replace_reasons)},
        )
    if plan.update_required:
        conn.update_pipeline(pipeline=plan.update_request)
        logger.info(f"Updated CodePipeline Pipeline {d.id}")
    if plan.tags_changed:
        arn = output["metadata"]["pipelineArn"]
        update_tags(conn, arn, plan.tags_to_set, plan.tag_keys_to_remove)

    resource_pipeline_read(d, meta)


def resource_pipeline_delete(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    logger.info(f"Deleting CodePipeline Pipeline {d.id}")
    try:
        conn.delete_pipeline(name=d.id)
    except ClientError as e:
        if error_code(e) == NOT_FOUND_CODE:
            return
        raise


def plan_pipeline_changes(
    old: Dict[str, Any], new: Dict[str, Any], meta: AWSClient
) -> Tuple[List[str], List[str]]:
    """Plan-time diff: reconcile prior state with the desired configuration."""
    if contains_unknown(new):
        return plan_tagged_changes(PIPELINE_SCHEMA)(old, new, meta)
    desired = PipelineDeclaration.from_state(new)
    observed = PipelineDeclaration.from_state(old)
    plan = reconcile(
        desired,
        observed,
        meta.region,
        old_tags=old.get("tags_all"),
        new_tags=merge_default_tags(meta.default_tags, new.get("tags")),
    )
    changed = list(plan.changed_paths)
    if plan.tags_changed:
        to_set, to_remove = diff_tags(old.get("tags"), new.get("tags"))
        changed.append("tags" if to_set or to_remove else "tags_all")
    return changed, list(plan.replace_reasons)


def validate_pipeline_config(cfg: Dict[str, Any]) -> List[str]:
    if contains_unknown(cfg.get("artifact_store")) or contains_unknown(cfg.get("stage")):
        return []
    return PipelineDeclaration.from_state(cfg).validate()


def resource_pipeline() -> Resource:
    return Resource(
        type_name="aws_codepipeline",
        schema=PIPELINE_SCHEMA,
        create=resource_pipeline_create,
        read=resource_pipeline_read,
        update=resource_pipeline_update,
        delete=resource_pipeline_delete,
        importable=True,
        plan_changes=plan_pipeline_changes,
        config_validator=validate_pipeline_config,
    )
