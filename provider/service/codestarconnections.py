"""aws_codestarconnections_connection resource."""

import logging
from typing import Any, Dict, List

from botocore.exceptions import ClientError

import provider.config as config
from provider.conns import AWSClient
from provider.exceptions import NotFoundError, error_code, not_found_from
from provider.schema import (
    TYPE_MAP,
    TYPE_STRING,
    Resource,
    ResourceData,
    Schema,
    string_in_slice,
    string_len_between,
    valid_arn,
)
from provider.tags import (
    diff_tags,
    from_key_value_list,
    ignore_default_tags,
    merge_default_tags,
    plan_tagged_changes,
    to_key_value_list,
)

logger = logging.getLogger(__name__)

SERVICE = "codestar-connections"

CONNECTION_SCHEMA = {
    "arn": Schema(TYPE_STRING, computed=True),
    "connection_status": Schema(TYPE_STRING, computed=True),
    "host_arn": Schema(
        TYPE_STRING,
        optional=True,
        force_new=True,
        validate=valid_arn,
        conflicts_with=["provider_type"],
    ),
    "name": Schema(TYPE_STRING, required=True, force_new=True, validate=string_len_between(1, 32)),
    "provider_type": Schema(
        TYPE_STRING,
        optional=True,
        computed=True,
        force_new=True,
        validate=string_in_slice(config.CODESTAR_CONNECTION_PROVIDER_TYPES),
        conflicts_with=["host_arn"],
    ),
    "tags": Schema(TYPE_MAP, optional=True, elem=Schema(TYPE_STRING)),
    "tags_all": Schema(TYPE_MAP, computed=True, elem=Schema(TYPE_STRING)),
}


def find_connection_by_arn(conn: Any, arn: str) -> Dict[str, Any]:
    try:
        output = conn.get_connection(ConnectionArn=arn)
    except ClientError as e:
        if error_code(e) == "ResourceNotFoundException":
            raise not_found_from(e, "CodeStar Connections Connection not found", arn=arn)
        raise
    connection = output.get("Connection")
    if not connection:
        raise NotFoundError(
            "CodeStar Connections Connection returned an empty result", {"arn": arn}
        )
    return connection


def resource_connection_create(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    params: Dict[str, Any] = {"ConnectionName": d.get("name")}
    host_arn, ok = d.get_ok("host_arn")
    if ok:
        params["HostArn"] = host_arn
    else:
        params["ProviderType"] = d.get("provider_type")
    tags = merge_default_tags(meta.default_tags, d.get("tags"))
    if tags:
        params["Tags"] = to_key_value_list(tags)

    output = conn.create_connection(**params)
    d.set_id(output["ConnectionArn"])
    logger.info(f"Created CodeStar Connections Connection {d.id}")

    resource_connection_read(d, meta)


def resource_connection_read(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    try:
        connection = find_connection_by_arn(conn, d.id)
    except NotFoundError:
        logger.warning(f"CodeStar Connections Connection ({d.id}) not found, removing from state")
        d.set_id("")
        return

    d.set("arn", connection["ConnectionArn"])
    d.set("connection_status", connection.get("ConnectionStatus", ""))
    d.set("host_arn", connection.get("HostArn", ""))
    d.set("name", connection.get("ConnectionName", ""))
    d.set("provider_type", connection.get("ProviderType", ""))

    output = conn.list_tags_for_resource(ResourceArn=d.id)
    tags = from_key_value_list(output.get("Tags"))
    d.set("tags_all", tags)
    d.set("tags", ignore_default_tags(tags, meta.default_tags))


def resource_connection_update(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    old_tags, _ = d.get_change("tags_all")
    to_set, to_remove = diff_tags(old_tags, merge_default_tags(meta.default_tags, d.get("tags")))
    if to_remove:
        conn.untag_resource(ResourceArn=d.id, TagKeys=to_remove)
    if to_set:
        conn.tag_resource(ResourceArn=d.id, Tags=to_key_value_list(to_set))

    resource_connection_read(d, meta)


def resource_connection_delete(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    logger.info(f"Deleting CodeStar Connections Connection {d.id}")
    try:
        conn.delete_connection(ConnectionArn=d.id)
    except ClientError as e:
        if error_code(e) == "ResourceNotFoundException":
            return
        raise


def validate_connection_config(cfg: Dict[str, Any]) -> List[str]:
    if cfg.get("host_arn") is None and cfg.get("provider_type") is None:
        return ["provider_type: one of provider_type or host_arn must be set"]
    return []


def resource_connection() -> Resource:
    return Resource(
        type_name="aws_codestarconnections_connection",
        schema=CONNECTION_SCHEMA,
        create=resource_connection_create,
        read=resource_connection_read,
        update=resource_connection_update,
        delete=resource_connection_delete,
        importable=True,
        plan_changes=plan_tagged_changes(CONNECTION_SCHEMA),
        config_validator=validate_connection_config,
    )
