"""Unit tests for the aws_s3_bucket resource."""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))
sys.path.insert(0, str(Path(__file__).parent.parent / "fixtures"))

from botocore.exceptions import ClientError
from fake_aws import FakeSession, client_error

from provider.conns import AWSClient
from provider.exceptions import NotFoundError
from provider.schema import ResourceData
from provider.service.s3 import (
    BUCKET_SCHEMA,
    empty_bucket,
    find_bucket,
    normalize_bucket_location,
    resource_bucket,
)


def make_meta(region, **kwargs):
    return AWSClient(region, session=FakeSession(), account_id="123456789012", **kwargs)


def create_bucket(meta, **cfg):
    d = ResourceData(BUCKET_SCHEMA, config=dict({"bucket": "artifact-bucket"}, **cfg))
    resource_bucket().create(d, meta)
    return d


class TestBucketLocation:
    @pytest.mark.parametrize(
        "location,region",
        [(None, "us-east-1"), ("", "us-east-1"), ("EU", "eu-west-1"), ("us-west-2", "us-west-2")],
    )
    def test_normalize(self, location, region):
        assert normalize_bucket_location(location) == region


class TestBucketCreate:
    def test_us_east_1_has_no_location_constraint(self):
        meta = make_meta("us-east-1")
        d = create_bucket(meta)
        (call,) = meta.client("s3").called("create_bucket")
        assert call["CreateBucketConfiguration"] is None
        assert d.get("region") == "us-east-1"

    def test_other_region_sets_location_constraint(self):
        meta = make_meta("eu-central-1")
        d = create_bucket(meta)
        (call,) = meta.client("s3").called("create_bucket")
        assert call["CreateBucketConfiguration"] == {"LocationConstraint": "eu-central-1"}
        assert d.get("region") == "eu-central-1"

    def test_computed_attributes(self):
        meta = make_meta("us-west-2")
        d = create_bucket(meta)
        assert d.id == "artifact-bucket"
        assert d.get("arn") == "arn:aws:s3:::artifact-bucket"
        assert d.get("bucket_domain_name") == "artifact-bucket.s3.amazonaws.com"
        assert (
            d.get("bucket_regional_domain_name")
            == "artifact-bucket.s3.us-west-2.amazonaws.com"
        )

    def test_tags(self):
        meta = make_meta("us-west-2", default_tags={"Team": "ci"})
        d = create_bucket(meta, tags={"Name": "artifacts"})
        assert d.get("tags") == {"Name": "artifacts"}
        assert d.get("tags_all") == {"Name": "artifacts", "Team": "ci"}


class TestBucketUpdate:
    def test_replaces_whole_tag_set(self):
        meta = make_meta("us-west-2")
        d = create_bucket(meta, tags={"Name": "artifacts"})
        updated = ResourceData(
            BUCKET_SCHEMA,
            config={"bucket": "artifact-bucket", "tags": {"Env": "dev"}},
            state=d.state(),
            id=d.id,
        )
        resource_bucket().update(updated, meta)
        assert updated.get("tags") == {"Env": "dev"}

    def test_removing_all_tags_deletes_tagging(self):
        meta = make_meta("us-west-2")
        d = create_bucket(meta, tags={"Name": "artifacts"})
        updated = ResourceData(
            BUCKET_SCHEMA, config={"bucket": "artifact-bucket"}, state=d.state(), id=d.id
        )
        resource_bucket().update(updated, meta)
        assert meta.client("s3").called("delete_bucket_tagging")
        assert updated.get("tags") == {}

    def test_default_tags_change_is_planned(self):
        session = FakeSession()
        meta = AWSClient("us-west-2", session=session, account_id="123456789012")
        d = create_bucket(meta, tags={"Name": "artifacts"})
        plan_changes = resource_bucket().plan_changes
        assert plan_changes(d.state(), d.state(), meta) == ([], [])

        tagged = AWSClient(
            "us-west-2", session=session, account_id="123456789012", default_tags={"Team": "ci"}
        )
        assert plan_changes(d.state(), d.state(), tagged) == (["tags_all"], [])

        updated = ResourceData(
            BUCKET_SCHEMA,
            config={"bucket": "artifact-bucket", "tags": {"Name": "artifacts"}},
            state=d.state(),
            id=d.id,
        )
        resource_bucket().update(updated, tagged)
        assert updated.get("tags_all") == {"Name": "artifacts", "Team": "ci"}
        assert plan_changes(updated.state(), updated.state(), tagged) == ([], [])


class TestBucketReadDelete:
    def test_read_gone(self):
        meta = make_meta("us-west-2")
        d = ResourceData(BUCKET_SCHEMA, id="missing-bucket")
        resource_bucket().read(d, meta)
        assert d.id == ""

    def test_find_bucket_other_error(self):
        conn = MagicMock()
        conn.head_bucket.side_effect = client_error("403", "HeadBucket")
        with pytest.raises(ClientError):
            find_bucket(conn, "b")

    def test_find_bucket_not_found(self):
        conn = MagicMock()
        conn.head_bucket.side_effect = client_error("404", "HeadBucket")
        with pytest.raises(NotFoundError):
            find_bucket(conn, "b")

    def test_delete_non_empty_without_force_destroy(self):
        meta = make_meta("us-west-2")
        d = create_bucket(meta)
        meta.client("s3").put_object(Bucket="artifact-bucket", Key="a")
        with pytest.raises(ClientError):
            resource_bucket().delete(d, meta)

    def test_delete_non_empty_with_force_destroy(self):
        meta = make_meta("us-west-2")
        d = create_bucket(meta, force_destroy=True)
        conn = meta.client("s3")
        conn.put_object(Bucket="artifact-bucket", Key="a", VersionId="v1")
        conn.put_object(Bucket="artifact-bucket", Key="a", VersionId="v2")
        resource_bucket().delete(d, meta)
        assert "artifact-bucket" not in conn.buckets

    def test_delete_missing_is_ignored(self):
        meta = make_meta("us-west-2")
        resource_bucket().delete(ResourceData(BUCKET_SCHEMA, id="missing-bucket"), meta)


class TestEmptyBucket:
    def test_batches_and_delete_markers(self):
        conn = MagicMock()
        versions = [{"Key": f"k{i}", "VersionId": "v"} for i in range(1500)]
        conn.get_paginator.return_value.paginate.return_value = [
            {"Versions": versions, "DeleteMarkers": [{"Key": "m", "VersionId": "d"}]}
        ]
        conn.delete_objects.return_value = {}
        assert empty_bucket(conn, "b") == 1501
        sizes = [len(c.kwargs["Delete"]["Objects"]) for c in conn.delete_objects.call_args_list]
        assert sizes == [1000, 501]

    def test_errors_raise(self):
        conn = MagicMock()
        conn.get_paginator.return_value.paginate.return_value = [
            {"Versions": [{"Key": "k", "VersionId": "v"}]}
        ]
        conn.delete_objects.return_value = {
            "Errors": [{"Key": "k", "Code": "AccessDenied", "Message": "denied"}]
        }
        with pytest.raises(ClientError):
            empty_bucket(conn, "b")
