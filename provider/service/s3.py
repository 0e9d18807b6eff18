"""aws_s3_bucket resource.

Pipelines keep their artifacts in S3. Buckets are global by name but live in
one region; creation outside us-east-1 needs an explicit LocationConstraint.
"""

import logging
from typing import Any, Dict, List

from botocore.exceptions import ClientError

import provider.config as config
from provider.conns import AWSClient
from provider.exceptions import NotFoundError, error_code, not_found_from
from provider.schema import (
    TYPE_BOOL,
    TYPE_MAP,
    TYPE_STRING,
    Resource,
    ResourceData,
    Schema,
    string_len_between,
    string_matches,
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

SERVICE = "s3"
BUCKET_NOT_FOUND_CODES = ("NoSuchBucket", "404", "NotFound")

BUCKET_SCHEMA = {
    "arn": Schema(TYPE_STRING, computed=True),
    "bucket": Schema(
        TYPE_STRING,
        required=True,
        force_new=True,
        validate=string_matches(
            r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$",
            "must be 3-63 lowercase letters, numbers, dots and hyphens",
        ),
    ),
    "bucket_domain_name": Schema(TYPE_STRING, computed=True),
    "bucket_regional_domain_name": Schema(TYPE_STRING, computed=True),
    "force_destroy": Schema(TYPE_BOOL, optional=True, default=False),
    "region": Schema(TYPE_STRING, computed=True),
    "tags": Schema(TYPE_MAP, optional=True, elem=Schema(TYPE_STRING)),
    "tags_all": Schema(TYPE_MAP, computed=True, elem=Schema(TYPE_STRING)),
}


def normalize_bucket_location(location: str) -> str:
    """Map a GetBucketLocation LocationConstraint to a region name."""
    if not location:
        return config.S3_DEFAULT_REGION
    return config.S3_LEGACY_LOCATION_CONSTRAINTS.get(location, location)


def find_bucket(conn: Any, bucket: str) -> None:
    """Check that a bucket exists with HeadBucket.

    Raises:
        NotFoundError: If the bucket does not exist
    """
    try:
        conn.head_bucket(Bucket=bucket)
    except ClientError as e:
        if error_code(e) in BUCKET_NOT_FOUND_CODES:
            raise not_found_from(e, "S3 Bucket not found", bucket=bucket)
        raise


def bucket_region(conn: Any, bucket: str) -> str:
    output = conn.get_bucket_location(Bucket=bucket)
    return normalize_bucket_location(output.get("LocationConstraint"))


def bucket_tags(conn: Any, bucket: str) -> Dict[str, str]:
    try:
        output = conn.get_bucket_tagging(Bucket=bucket)
    except ClientError as e:
        if error_code(e) == "NoSuchTagSet":
            return {}
        raise
    return from_key_value_list(output.get("TagSet"))


def put_bucket_tags(conn: Any, bucket: str, tags: Dict[str, str]) -> None:
    # S3 only supports replacing the whole tag set
    if tags:
        conn.put_bucket_tagging(Bucket=bucket, Tagging={"TagSet": to_key_value_list(tags)})
    else:
        conn.delete_bucket_tagging(Bucket=bucket)


def empty_bucket(conn: Any, bucket: str) -> int:
    """Delete every object version and delete marker in a bucket.

    Returns:
        Number of deleted entries
    """
    deleted = 0
    batch: List[Dict[str, str]] = []

    def flush() -> None:
        nonlocal deleted
        if not batch:
            return
        output = conn.delete_objects(Bucket=bucket, Delete={"Objects": list(batch), "Quiet": True})
        errors = output.get("Errors") or []
        if errors:
            first = errors[0]
            raise ClientError(
                {"Error": {"Code": first.get("Code", ""), "Message": first.get("Message", "")}},
                "DeleteObjects",
            )
        deleted += len(batch)
        batch.clear()

    paginator = conn.get_paginator("list_object_versions")
    for page in paginator.paginate(Bucket=bucket):
        for entry in (page.get("Versions") or []) + (page.get("DeleteMarkers") or []):
            batch.append({"Key": entry["Key"], "VersionId": entry["VersionId"]})
            if len(batch) >= config.S3_DELETE_BATCH_SIZE:
                flush()
    flush()
    logger.debug(f"Emptied S3 Bucket {bucket}: {deleted} object version(s) deleted")
    return deleted


def resource_bucket_create(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    bucket = d.get("bucket")
    params: Dict[str, Any] = {"Bucket": bucket}
    if meta.region != config.S3_DEFAULT_REGION:
        params["CreateBucketConfiguration"] = {"LocationConstraint": meta.region}

    conn.create_bucket(**params)
    d.set_id(bucket)
    logger.info(f"Created S3 Bucket {bucket}")

    tags = merge_default_tags(meta.default_tags, d.get("tags"))
    if tags:
        put_bucket_tags(conn, bucket, tags)

    resource_bucket_read(d, meta)


def resource_bucket_read(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    try:
        find_bucket(conn, d.id)
    except NotFoundError:
        logger.warning(f"S3 Bucket ({d.id}) not found, removing from state")
        d.set_id("")
        return

    region = bucket_region(conn, d.id)
    regional = meta.with_region(region)
    d.set("arn", f"arn:{meta.partition}:s3:::{d.id}")
    d.set("bucket", d.id)
    d.set("bucket_domain_name", meta.partition_hostname(f"{d.id}.s3"))
    d.set("bucket_regional_domain_name", regional.regional_hostname(f"{d.id}.s3"))
    d.set("region", region)

    tags = bucket_tags(regional.client(SERVICE), d.id)
    d.set("tags_all", tags)
    d.set("tags", ignore_default_tags(tags, meta.default_tags))


def resource_bucket_update(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    old_tags, _ = d.get_change("tags_all")
    new_tags = merge_default_tags(meta.default_tags, d.get("tags"))
    to_set, to_remove = diff_tags(old_tags, new_tags)
    if to_set or to_remove:
        put_bucket_tags(conn, d.id, new_tags)

    resource_bucket_read(d, meta)


def resource_bucket_delete(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)
    logger.info(f"Deleting S3 Bucket {d.id}")
    try:
        conn.delete_bucket(Bucket=d.id)
    except ClientError as e:
        code = error_code(e)
        if code in BUCKET_NOT_FOUND_CODES:
            return
        if code != "BucketNotEmpty" or not d.get("force_destroy"):
            raise
        empty_bucket(conn, d.id)
        conn.delete_bucket(Bucket=d.id)


def resource_bucket() -> Resource:
    return Resource(
        type_name="aws_s3_bucket",
        schema=BUCKET_SCHEMA,
        create=resource_bucket_create,
        read=resource_bucket_read,
        update=resource_bucket_update,
        delete=resource_bucket_delete,
        importable=True,
        plan_changes=plan_tagged_changes(BUCKET_SCHEMA),
    )
