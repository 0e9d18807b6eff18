"""Unit tests for provider/conns.py and provider/registry.py"""

import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from provider.config_loader import ProviderConfig
from provider.conns import AWSClient, dns_suffix_for_partition, partition_for_region
from provider.exceptions import ConfigurationError
from provider.registry import DATA_SOURCES, RESOURCES, Provider


class TestPartitions(unittest.TestCase):
    def test_partition_for_region(self):
        self.assertEqual(partition_for_region("us-west-2"), "aws")
        self.assertEqual(partition_for_region("cn-northwest-1"), "aws-cn")
        self.assertEqual(partition_for_region("us-gov-west-1"), "aws-us-gov")
        self.assertEqual(partition_for_region("us-isob-east-1"), "aws-iso-b")
        self.assertEqual(partition_for_region("us-iso-east-1"), "aws-iso")

    def test_dns_suffix(self):
        self.assertEqual(dns_suffix_for_partition("aws-cn"), "amazonaws.com.cn")
        self.assertEqual(dns_suffix_for_partition("unknown"), "amazonaws.com")


class TestAWSClient(unittest.TestCase):
    def test_clients_are_cached_per_region(self):
        session = MagicMock()
        meta = AWSClient("us-west-2", session=session)
        self.assertIs(meta.client("codepipeline"), meta.client("codepipeline"))
        meta.client("codepipeline", region="us-east-1")
        session.client.assert_any_call("codepipeline", region_name="us-west-2")
        session.client.assert_any_call("codepipeline", region_name="us-east-1")
        self.assertEqual(session.client.call_count, 2)

    def test_session_from_profile(self):
        factory = MagicMock()
        AWSClient("us-west-2", profile="ci", session_factory=factory)
        factory.assert_called_once_with(profile_name="ci")

    def test_account_id_lookup(self):
        session = MagicMock()
        session.client.return_value.get_caller_identity.return_value = {"Account": "111122223333"}
        meta = AWSClient("us-west-2", session=session)
        self.assertEqual(meta.account_id, "111122223333")
        self.assertEqual(meta.account_id, "111122223333")
        session.client.return_value.get_caller_identity.assert_called_once()

    def test_with_region_shares_clients(self):
        session = MagicMock()
        meta = AWSClient("us-west-2", session=session, account_id="1", default_tags={"a": "b"})
        self.assertIs(meta.with_region("us-west-2"), meta)
        east = meta.with_region("us-east-1")
        self.assertEqual(east.region, "us-east-1")
        self.assertEqual(east.default_tags, {"a": "b"})
        self.assertIs(east.client("s3", "us-west-2"), meta.client("s3"))

    def test_hostnames(self):
        meta = AWSClient("cn-north-1", session=MagicMock())
        self.assertEqual(meta.regional_hostname("fs-1.efs"), "fs-1.efs.cn-north-1.amazonaws.com.cn")
        self.assertEqual(meta.partition_hostname("b.s3"), "b.s3.amazonaws.com.cn")


class TestProvider(unittest.TestCase):
    def setUp(self):
        config = ProviderConfig(region="us-west-2", aliases={"east": "us-east-1"})
        self.provider = Provider(config, session=MagicMock())

    def test_every_registered_type_loads(self):
        for type_name in RESOURCES:
            resource = self.provider.resource(type_name)
            self.assertEqual(resource.type_name, type_name)
            self.assertFalse(resource.data_source)
            self.assertIsNotNone(resource.create)
        for type_name in DATA_SOURCES:
            resource = self.provider.data_source(type_name)
            self.assertTrue(resource.data_source)

    def test_cached(self):
        self.assertIs(
            self.provider.resource("aws_codepipeline"), self.provider.resource("aws_codepipeline")
        )

    def test_unsupported(self):
        with self.assertRaises(ConfigurationError):
            self.provider.resource("aws_instance")
        with self.assertRaises(ConfigurationError):
            self.provider.data_source("aws_codepipeline")

    def test_meta_alias(self):
        self.assertEqual(self.provider.meta().region, "us-west-2")
        self.assertEqual(self.provider.meta("east").region, "us-east-1")
        with self.assertRaises(ConfigurationError):
            self.provider.meta("west")

    def test_type_lists(self):
        self.assertIn("aws_codepipeline", Provider.resource_types())
        self.assertEqual(Provider.data_source_types(), ["aws_efs_mount_target"])


if __name__ == "__main__":
    unittest.main()
