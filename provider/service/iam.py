"""IAM resources: aws_iam_role and aws_iam_role_policy.

Pipelines need a service role that CodePipeline can assume, plus an inline
policy granting access to the artifact bucket. Policy documents are compared
semantically so that IAM's reformatting does not show up as drift.
"""

import logging
from typing import Any, Dict, List, Tuple

from botocore.exceptions import ClientError

import provider.config as config
from provider.conns import AWSClient
from provider.exceptions import NotFoundError, ValidationError, error_code, not_found_from
from provider.helpers import (
    decode_policy_document,
    format_timestamp,
    policies_equivalent,
    policy_to_set,
)
from provider.schema import (
    TYPE_INT,
    TYPE_MAP,
    TYPE_STRING,
    Resource,
    ResourceData,
    Schema,
    int_between,
    string_len_between,
    valid_json,
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

SERVICE = "iam"
NOT_FOUND_CODE = "NoSuchEntity"


def suppress_equivalent_policy(key: str, old: Any, new: Any) -> bool:
    return policies_equivalent(old, new)


ROLE_SCHEMA = {
    "arn": Schema(TYPE_STRING, computed=True),
    "assume_role_policy": Schema(
        TYPE_STRING,
        required=True,
        validate=valid_json,
        diff_suppress=suppress_equivalent_policy,
    ),
    "create_date": Schema(TYPE_STRING, computed=True),
    "description": Schema(TYPE_STRING, optional=True, validate=string_len_between(0, 1000)),
    "max_session_duration": Schema(
        TYPE_INT,
        optional=True,
        default=config.IAM_DEFAULT_MAX_SESSION_DURATION,
        validate=int_between(3600, 43200),
    ),
    "name": Schema(TYPE_STRING, required=True, force_new=True, validate=string_len_between(1, 64)),
    "path": Schema(
        TYPE_STRING,
        optional=True,
        force_new=True,
        default=config.IAM_DEFAULT_ROLE_PATH,
        validate=string_len_between(1, 512),
    ),
    "tags": Schema(TYPE_MAP, optional=True, elem=Schema(TYPE_STRING)),
    "tags_all": Schema(TYPE_MAP, computed=True, elem=Schema(TYPE_STRING)),
    "unique_id": Schema(TYPE_STRING, computed=True),
}

ROLE_POLICY_SCHEMA = {
    "name": Schema(TYPE_STRING, required=True, force_new=True, validate=string_len_between(1, 128)),
    "policy": Schema(
        TYPE_STRING,
        required=True,
        validate=valid_json,
        diff_suppress=suppress_equivalent_policy,
    ),
    "role": Schema(TYPE_STRING, required=True, force_new=True),
}


def find_role_by_name(conn: Any, name: str) -> Dict[str, Any]:
    try:
        return conn.get_role(RoleName=name)["Role"]
    except ClientError as e:
        if error_code(e) == NOT_FOUND_CODE:
            raise not_found_from(e, "IAM Role not found", name=name)
        raise


def find_role_policy(conn: Any, role: str, name: str) -> Dict[str, Any]:
    try:
        return conn.get_role_policy(RoleName=role, PolicyName=name)
    except ClientError as e:
        if error_code(e) == NOT_FOUND_CODE:
            raise not_found_from(e, "IAM Role Policy not found", role=role, name=name)
        raise


# aws_iam_role


def resource_role_create(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    params: Dict[str, Any] = {
        "RoleName": d.get("name"),
        "AssumeRolePolicyDocument": d.get("assume_role_policy"),
        "Path": d.get("path"),
        "MaxSessionDuration": d.get("max_session_duration"),
    }
    description, ok = d.get_ok("description")
    if ok:
        params["Description"] = description
    tags = merge_default_tags(meta.default_tags, d.get("tags"))
    if tags:
        params["Tags"] = to_key_value_list(tags)

    output = conn.create_role(**params)
    d.set_id(output["Role"]["RoleName"])
    logger.info(f"Created IAM Role {d.id}")

    resource_role_read(d, meta)


def resource_role_read(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    try:
        role = find_role_by_name(conn, d.id)
    except NotFoundError:
        logger.warning(f"IAM Role ({d.id}) not found, removing from state")
        d.set_id("")
        return

    d.set("arn", role["Arn"])
    d.set("create_date", format_timestamp(role.get("CreateDate")))
    d.set("description", role.get("Description", ""))
    d.set(
        "max_session_duration",
        role.get("MaxSessionDuration", config.IAM_DEFAULT_MAX_SESSION_DURATION),
    )
    d.set("name", role["RoleName"])
    d.set("path", role.get("Path", config.IAM_DEFAULT_ROLE_PATH))
    d.set("unique_id", role.get("RoleId", ""))

    remote = decode_policy_document(role.get("AssumeRolePolicyDocument"))
    d.set("assume_role_policy", policy_to_set(d.get("assume_role_policy"), remote))

    tags = from_key_value_list(role.get("Tags"))
    d.set("tags_all", tags)
    d.set("tags", ignore_default_tags(tags, meta.default_tags))


def resource_role_update(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)

    if d.has_change("assume_role_policy"):
        conn.update_assume_role_policy(
            RoleName=d.id, PolicyDocument=d.get("assume_role_policy")
        )
    if d.has_changes("description", "max_session_duration"):
        conn.update_role(
            RoleName=d.id,
            Description=d.get("description"),
            MaxSessionDuration=d.get("max_session_duration"),
        )

    old_tags, _ = d.get_change("tags_all")
    to_set, to_remove = diff_tags(old_tags, merge_default_tags(meta.default_tags, d.get("tags")))
    if to_remove:
        conn.untag_role(RoleName=d.id, TagKeys=to_remove)
    if to_set:
        conn.tag_role(RoleName=d.id, Tags=to_key_value_list(to_set))

    resource_role_read(d, meta)


def _role_policy_names(conn: Any, role: str) -> List[str]:
    names: List[str] = []
    for page in conn.get_paginator("list_role_policies").paginate(RoleName=role):
        names.extend(page.get("PolicyNames") or [])
    return names


def _attached_policy_arns(conn: Any, role: str) -> List[str]:
    arns: List[str] = []
    for page in conn.get_paginator("list_attached_role_policies").paginate(RoleName=role):
        arns.extend(p["PolicyArn"] for p in page.get("AttachedPolicies") or [])
    return arns


def _instance_profile_names(conn: Any, role: str) -> List[str]:
    names: List[str] = []
    for page in conn.get_paginator("list_instance_profiles_for_role").paginate(RoleName=role):
        names.extend(p["InstanceProfileName"] for p in page.get("InstanceProfiles") or [])
    return names


def resource_role_delete(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    role = d.id
    logger.info(f"Deleting IAM Role {role}")
    try:
        for profile in _instance_profile_names(conn, role):
            conn.remove_role_from_instance_profile(InstanceProfileName=profile, RoleName=role)
        # DeleteRole fails while anything is still attached
        for arn in _attached_policy_arns(conn, role):
            conn.detach_role_policy(RoleName=role, PolicyArn=arn)
        for name in _role_policy_names(conn, role):
            conn.delete_role_policy(RoleName=role, PolicyName=name)
        conn.delete_role(RoleName=role)
    except ClientError as e:
        if error_code(e) == NOT_FOUND_CODE:
            return
        raise


def resource_role() -> Resource:
    return Resource(
        type_name="aws_iam_role",
        schema=ROLE_SCHEMA,
        create=resource_role_create,
        read=resource_role_read,
        update=resource_role_update,
        delete=resource_role_delete,
        importable=True,
        plan_changes=plan_tagged_changes(ROLE_SCHEMA),
    )


# aws_iam_role_policy


def role_policy_id(role: str, name: str) -> str:
    return f"{role}:{name}"


def parse_role_policy_id(id: str) -> Tuple[str, str]:
    """Split a ``role:name`` ID.

    Raises:
        ValidationError: If the ID is not of the form ROLE:NAME
    """
    role, sep, name = id.partition(":")
    if not sep or not role or not name:
        raise ValidationError(
            "Invalid IAM Role Policy ID", [f"{id!r}: expected ROLE-NAME:POLICY-NAME"]
        )
    return role, name


def resource_role_policy_put(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    role, name = d.get("role"), d.get("name")
    conn.put_role_policy(RoleName=role, PolicyName=name, PolicyDocument=d.get("policy"))
    if not d.id:
        d.set_id(role_policy_id(role, name))
        logger.info(f"Created IAM Role Policy {d.id}")

    resource_role_policy_read(d, meta)


def resource_role_policy_read(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    role, name = parse_role_policy_id(d.id)
    try:
        output = find_role_policy(conn, role, name)
    except NotFoundError:
        logger.warning(f"IAM Role Policy ({d.id}) not found, removing from state")
        d.set_id("")
        return

    remote = decode_policy_document(output.get("PolicyDocument"))
    d.set("name", output.get("PolicyName", name))
    d.set("role", output.get("RoleName", role))
    d.set("policy", policy_to_set(d.get("policy"), remote))


def resource_role_policy_delete(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    role, name = parse_role_policy_id(d.id)
    logger.info(f"Deleting IAM Role Policy {d.id}")
    try:
        conn.delete_role_policy(RoleName=role, PolicyName=name)
    except ClientError as e:
        if error_code(e) == NOT_FOUND_CODE:
            return
        raise


def resource_role_policy() -> Resource:
    return Resource(
        type_name="aws_iam_role_policy",
        schema=ROLE_POLICY_SCHEMA,
        create=resource_role_policy_put,
        read=resource_role_policy_read,
        update=resource_role_policy_put,
        delete=resource_role_policy_delete,
        importable=True,
    )
