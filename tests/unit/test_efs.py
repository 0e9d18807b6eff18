"""Unit tests for the aws_efs_mount_target data source."""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from botocore.exceptions import ClientError

from provider.conns import AWSClient
from provider.exceptions import NotFoundError, TooManyResultsError, ValidationError
from provider.schema import ResourceData
from provider.service.efs import (
    MOUNT_TARGET_SCHEMA,
    data_source_mount_target,
    find_mount_target,
    find_mount_targets,
)


def mount_target(mt_id="fsmt-12345678", fs_id="fs-12345678"):
    return {
        "MountTargetId": mt_id,
        "FileSystemId": fs_id,
        "SubnetId": "subnet-1234",
        "IpAddress": "10.0.1.15",
        "NetworkInterfaceId": "eni-1234",
        "OwnerId": "123456789012",
        "AvailabilityZoneId": "usw2-az1",
        "AvailabilityZoneName": "us-west-2a",
        "LifeCycleState": "available",
    }


@pytest.fixture
def efs():
    conn = MagicMock()
    conn.describe_mount_targets.return_value = {"MountTargets": [mount_target()]}
    conn.describe_mount_target_security_groups.return_value = {
        "SecurityGroups": ["sg-2", "sg-1"]
    }
    return conn


@pytest.fixture
def meta(efs):
    session = MagicMock()
    session.client.return_value = efs
    return AWSClient("us-west-2", session=session, account_id="123456789012")


class TestFindMountTargets:
    def test_follows_next_marker(self):
        conn = MagicMock()
        conn.describe_mount_targets.side_effect = [
            {"MountTargets": [mount_target("fsmt-1")], "NextMarker": "m1"},
            {"MountTargets": [mount_target("fsmt-2")]},
        ]
        found = find_mount_targets(conn, {"FileSystemId": "fs-12345678"})
        assert [m["MountTargetId"] for m in found] == ["fsmt-1", "fsmt-2"]
        conn.describe_mount_targets.assert_called_with(
            FileSystemId="fs-12345678", Marker="m1"
        )

    @pytest.mark.parametrize(
        "code", ["MountTargetNotFound", "FileSystemNotFound", "AccessPointNotFound"]
    )
    def test_not_found_codes(self, code):
        conn = MagicMock()
        conn.describe_mount_targets.side_effect = ClientError(
            {"Error": {"Code": code, "Message": "missing"}}, "DescribeMountTargets"
        )
        with pytest.raises(NotFoundError):
            find_mount_targets(conn, {"FileSystemId": "fs-1"})

    def test_other_errors_propagate(self):
        conn = MagicMock()
        conn.describe_mount_targets.side_effect = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "x"}}, "DescribeMountTargets"
        )
        with pytest.raises(ClientError):
            find_mount_targets(conn, {"FileSystemId": "fs-1"})

    def test_zero_results(self):
        conn = MagicMock()
        conn.describe_mount_targets.return_value = {"MountTargets": []}
        with pytest.raises(NotFoundError):
            find_mount_target(conn, {"FileSystemId": "fs-1"})

    def test_many_results(self):
        conn = MagicMock()
        conn.describe_mount_targets.return_value = {
            "MountTargets": [mount_target("fsmt-1"), mount_target("fsmt-2")]
        }
        with pytest.raises(TooManyResultsError):
            find_mount_target(conn, {"FileSystemId": "fs-1"})


class TestMountTargetRead:
    def test_by_mount_target_id(self, efs, meta):
        d = ResourceData(MOUNT_TARGET_SCHEMA, config={"mount_target_id": "fsmt-12345678"})
        data_source_mount_target().read(d, meta)

        efs.describe_mount_targets.assert_called_once_with(MountTargetId="fsmt-12345678")
        assert d.id == "fsmt-12345678"
        assert d.get("file_system_id") == "fs-12345678"
        assert d.get("ip_address") == "10.0.1.15"
        assert d.get("subnet_id") == "subnet-1234"
        assert d.get("availability_zone_name") == "us-west-2a"
        assert d.get("owner_id") == "123456789012"
        assert sorted(d.get("security_groups")) == ["sg-1", "sg-2"]

    def test_computed_names(self, meta):
        d = ResourceData(MOUNT_TARGET_SCHEMA, config={"file_system_id": "fs-12345678"})
        data_source_mount_target().read(d, meta)
        assert d.get("dns_name") == "fs-12345678.efs.us-west-2.amazonaws.com"
        assert (
            d.get("mount_target_dns_name")
            == "us-west-2a.fs-12345678.efs.us-west-2.amazonaws.com"
        )
        assert (
            d.get("file_system_arn")
            == "arn:aws:elasticfilesystem:us-west-2:123456789012:file-system/fs-12345678"
        )

    def test_filters_combined(self, efs, meta):
        d = ResourceData(
            MOUNT_TARGET_SCHEMA,
            config={"file_system_id": "fs-12345678", "access_point_id": "fsap-1"},
        )
        data_source_mount_target().read(d, meta)
        efs.describe_mount_targets.assert_called_once_with(
            AccessPointId="fsap-1", FileSystemId="fs-12345678"
        )

    def test_requires_a_filter(self, meta):
        d = ResourceData(MOUNT_TARGET_SCHEMA, config={})
        with pytest.raises(ValidationError):
            data_source_mount_target().read(d, meta)

    def test_china_partition(self, efs):
        session = MagicMock()
        session.client.return_value = efs
        meta = AWSClient("cn-north-1", session=session, account_id="123456789012")
        d = ResourceData(MOUNT_TARGET_SCHEMA, config={"file_system_id": "fs-12345678"})
        data_source_mount_target().read(d, meta)
        assert d.get("dns_name") == "fs-12345678.efs.cn-north-1.amazonaws.com.cn"
        assert d.get("file_system_arn").startswith("arn:aws-cn:elasticfilesystem:")
