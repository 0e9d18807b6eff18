"""aws_efs_mount_target data source."""

import logging
from typing import Any, Dict, List

from botocore.exceptions import ClientError

from provider.arn import ARN
from provider.conns import AWSClient
from provider.exceptions import (
    NotFoundError,
    TooManyResultsError,
    ValidationError,
    error_code,
    not_found_from,
)
from provider.schema import TYPE_SET, TYPE_STRING, Resource, ResourceData, Schema

logger = logging.getLogger(__name__)

SERVICE = "efs"
NOT_FOUND_CODES = ("MountTargetNotFound", "FileSystemNotFound", "AccessPointNotFound")
FILTER_KEYS = ("access_point_id", "file_system_id", "mount_target_id")

MOUNT_TARGET_SCHEMA = {
    "access_point_id": Schema(TYPE_STRING, optional=True),
    "availability_zone_id": Schema(TYPE_STRING, computed=True),
    "availability_zone_name": Schema(TYPE_STRING, computed=True),
    "dns_name": Schema(TYPE_STRING, computed=True),
    "file_system_arn": Schema(TYPE_STRING, computed=True),
    "file_system_id": Schema(TYPE_STRING, optional=True, computed=True),
    "ip_address": Schema(TYPE_STRING, computed=True),
    "mount_target_id": Schema(TYPE_STRING, optional=True, computed=True),
    "mount_target_dns_name": Schema(TYPE_STRING, computed=True),
    "network_interface_id": Schema(TYPE_STRING, computed=True),
    "owner_id": Schema(TYPE_STRING, computed=True),
    "security_groups": Schema(TYPE_SET, computed=True, elem=Schema(TYPE_STRING)),
    "subnet_id": Schema(TYPE_STRING, computed=True),
}

_REQUEST_KEYS = {
    "access_point_id": "AccessPointId",
    "file_system_id": "FileSystemId",
    "mount_target_id": "MountTargetId",
}


def find_mount_targets(conn: Any, params: Dict[str, str]) -> List[Dict[str, Any]]:
    """Run DescribeMountTargets following NextMarker until exhausted.

    Raises:
        NotFoundError: If the file system, access point or mount target
                       named in the request does not exist
    """
    mount_targets: List[Dict[str, Any]] = []
    params = dict(params)
    while True:
        try:
            output = conn.describe_mount_targets(**params)
        except ClientError as e:
            if error_code(e) in NOT_FOUND_CODES:
                raise not_found_from(e, "EFS Mount Target not found", **params)
            raise
        mount_targets.extend(output.get("MountTargets") or [])
        if not output.get("NextMarker"):
            return mount_targets
        params["Marker"] = output["NextMarker"]


def find_mount_target(conn: Any, params: Dict[str, str]) -> Dict[str, Any]:
    """Return the single mount target matching a DescribeMountTargets request.

    Raises:
        NotFoundError: If nothing matches
        TooManyResultsError: If more than one mount target matches
    """
    mount_targets = find_mount_targets(conn, params)
    if not mount_targets:
        raise NotFoundError("EFS Mount Target not found", dict(params))
    if len(mount_targets) > 1:
        raise TooManyResultsError(
            f"EFS Mount Target lookup matched {len(mount_targets)} results",
            dict(params),
        )
    return mount_targets[0]


def data_source_mount_target_read(d: ResourceData, meta: AWSClient) -> None:
    conn = meta.client(SERVICE)

    params = {}
    for key in FILTER_KEYS:
        value, ok = d.get_ok(key)
        if ok:
            params[_REQUEST_KEYS[key]] = value
    if not params:
        raise ValidationError(
            "Invalid EFS Mount Target lookup",
            [f"one of {', '.join(FILTER_KEYS)} must be set"],
        )

    logger.debug(f"Reading EFS Mount Target: {params}")
    mt = find_mount_target(conn, params)

    d.set_id(mt["MountTargetId"])
    fs_id = mt["FileSystemId"]
    fs_arn = ARN(
        partition=meta.partition,
        service="elasticfilesystem",
        region=meta.region,
        account_id=meta.account_id,
        resource=f"file-system/{fs_id}",
    )
    d.set("availability_zone_id", mt.get("AvailabilityZoneId", ""))
    d.set("availability_zone_name", mt.get("AvailabilityZoneName", ""))
    d.set("dns_name", meta.regional_hostname(f"{fs_id}.efs"))
    d.set("file_system_arn", str(fs_arn))
    d.set("file_system_id", fs_id)
    d.set("ip_address", mt.get("IpAddress", ""))
    d.set(
        "mount_target_dns_name",
        meta.regional_hostname(f"{mt.get('AvailabilityZoneName', '')}.{fs_id}.efs"),
    )
    d.set("mount_target_id", mt["MountTargetId"])
    d.set("network_interface_id", mt.get("NetworkInterfaceId", ""))
    d.set("owner_id", mt.get("OwnerId", ""))
    d.set("subnet_id", mt.get("SubnetId", ""))

    output = conn.describe_mount_target_security_groups(MountTargetId=d.id)
    d.set("security_groups", list(output.get("SecurityGroups") or []))


def data_source_mount_target() -> Resource:
    return Resource(
        type_name="aws_efs_mount_target",
        schema=MOUNT_TARGET_SCHEMA,
        read=data_source_mount_target_read,
        data_source=True,
    )
