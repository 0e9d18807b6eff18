"""AWS connection handling for awsprov.

AWSClient is the "meta" object handed to every resource handler. It wraps a
boto3 Session, hands out cached per-service clients and knows the region,
partition and account the provider is operating in.
"""

import logging
from typing import Any, Callable, Dict, Optional, Tuple

import boto3

import provider.config as config

logger = logging.getLogger(__name__)


def partition_for_region(region: str) -> str:
    """Return the AWS partition a region belongs to."""
    for prefix, partition in config.PARTITION_REGION_PREFIXES:
        if region.startswith(prefix):
            return partition
    return config.DEFAULT_PARTITION


def dns_suffix_for_partition(partition: str) -> str:
    """Return the service DNS suffix of a partition."""
    return config.PARTITION_DNS_SUFFIXES.get(
        partition, config.PARTITION_DNS_SUFFIXES[config.DEFAULT_PARTITION]
    )


class AWSClient:
    """
    Connection context passed to resource handlers.

    Args:
        region: Region handlers operate in
        session: boto3 Session (created from profile when omitted)
        profile: Shared-credentials profile used to create the session
        account_id: Account ID override; looked up with STS when empty
        default_tags: Provider-level default tags
        session_factory: Callable creating sessions, replaceable in tests
    """

    def __init__(
        self,
        region: str,
        session: Optional[Any] = None,
        profile: str = "",
        account_id: str = "",
        default_tags: Optional[Dict[str, str]] = None,
        session_factory: Callable[..., Any] = boto3.Session,
    ):
        self.region = region
        self.profile = profile
        self.default_tags = dict(default_tags or {})
        self._account_id = account_id
        if session is None:
            kwargs = {"profile_name": profile} if profile else {}
            session = session_factory(**kwargs)
        self.session = session
        # cache: (service, region) -> client
        self._clients: Dict[Tuple[str, str], Any] = {}

    @property
    def partition(self) -> str:
        return partition_for_region(self.region)

    @property
    def dns_suffix(self) -> str:
        return dns_suffix_for_partition(self.partition)

    @property
    def account_id(self) -> str:
        """Account ID of the caller, resolved lazily through STS."""
        if not self._account_id:
            identity = self.client("sts").get_caller_identity()
            self._account_id = identity["Account"]
            logger.debug(f"Resolved caller account {self._account_id}")
        return self._account_id

    def client(self, service: str, region: str = "") -> Any:
        """
        Return a cached boto3 client for a service.

        Args:
            service: boto3 service name (e.g. "codepipeline", "efs")
            region: Override region; defaults to the provider region

        Returns:
            boto3 client
        """
        region = region or self.region
        key = (service, region)
        if key not in self._clients:
            logger.debug(f"Creating {service} client for {region}")
            self._clients[key] = self.session.client(service, region_name=region)
        return self._clients[key]

    def with_region(self, region: str) -> "AWSClient":
        """Return a sibling AWSClient bound to another region sharing this session."""
        if region == self.region:
            return self
        sibling = AWSClient(
            region,
            session=self.session,
            profile=self.profile,
            account_id=self._account_id,
            default_tags=self.default_tags,
        )
        sibling._clients = self._clients
        return sibling

    def regional_hostname(self, prefix: str) -> str:
        """Build a regional service hostname, e.g. ``fs-1.efs.us-west-2.amazonaws.com``."""
        return f"{prefix}.{self.region}.{self.dns_suffix}"

    def partition_hostname(self, prefix: str) -> str:
        """Build a partition-global hostname, e.g. ``bucket.s3.amazonaws.com``."""
        return f"{prefix}.{self.dns_suffix}"
