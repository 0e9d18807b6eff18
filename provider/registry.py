"""
Resource registry and provider runtime for awsprov.

Maps Terraform type names to the factory that builds their Resource
definition. Service modules are imported lazily with importlib, so a run only
loads the services its configuration actually uses.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import importlib
import logging

import boto3

from provider.config_loader import ProviderConfig
from provider.conns import AWSClient
from provider.exceptions import ConfigurationError
from provider.schema import Resource

logger = logging.getLogger(__name__)


@dataclass
class ResourceDescriptor:
    """
    Descriptor pointing at the factory of one resource or data source.

    Args:
        type_name: Terraform type name (e.g., "aws_codepipeline")
        module: Python module path holding the factory
        factory: Name of the zero-argument function returning a Resource
    """

    type_name: str
    module: str
    factory: str


RESOURCES: Dict[str, ResourceDescriptor] = {
    d.type_name: d
    for d in (
        ResourceDescriptor(
            "aws_codepipeline", "provider.service.codepipeline.pipeline", "resource_pipeline"
        ),
        ResourceDescriptor(
            "aws_codestarconnections_connection",
            "provider.service.codestarconnections",
            "resource_connection",
        ),
        ResourceDescriptor("aws_iam_role", "provider.service.iam", "resource_role"),
        ResourceDescriptor("aws_iam_role_policy", "provider.service.iam", "resource_role_policy"),
        ResourceDescriptor("aws_s3_bucket", "provider.service.s3", "resource_bucket"),
    )
}

DATA_SOURCES: Dict[str, ResourceDescriptor] = {
    d.type_name: d
    for d in (
        ResourceDescriptor(
            "aws_efs_mount_target", "provider.service.efs", "data_source_mount_target"
        ),
    )
}


def _load(descriptor: ResourceDescriptor) -> Resource:
    module = importlib.import_module(descriptor.module)
    return getattr(module, descriptor.factory)()


class Provider:
    """
    Runtime context handing out Resource definitions and AWS connections.

    Args:
        config: Resolved provider configuration
        session: boto3 Session shared by every connection (optional)
        session_factory: Callable creating the session when none is given
    """

    def __init__(
        self,
        config: ProviderConfig,
        session: Optional[Any] = None,
        session_factory: Callable[..., Any] = boto3.Session,
    ):
        self.config = config
        self._meta = AWSClient(
            config.region,
            session=session,
            profile=config.profile,
            account_id=config.account_id,
            default_tags=config.default_tags,
            session_factory=session_factory,
        )
        self._resources: Dict[str, Resource] = {}  # cache: type_name -> Resource

    def meta(self, alias: str = "") -> AWSClient:
        """Return the AWSClient of the default provider or of an alias."""
        return self._meta.with_region(self.config.region_for(alias))

    def _lookup(self, table: Dict[str, ResourceDescriptor], kind: str, type_name: str) -> Resource:
        key = f"{kind}.{type_name}"
        if key not in self._resources:
            if type_name not in table:
                raise ConfigurationError(
                    f"Unsupported {kind} type '{type_name}'",
                    {"supported": ", ".join(sorted(table))},
                )
            logger.debug(f"Loading {kind} {type_name} from {table[type_name].module}")
            self._resources[key] = _load(table[type_name])
        return self._resources[key]

    def resource(self, type_name: str) -> Resource:
        """
        Return the Resource definition of a managed resource type.

        Raises:
            ConfigurationError: If the type is not supported
        """
        return self._lookup(RESOURCES, "resource", type_name)

    def data_source(self, type_name: str) -> Resource:
        """
        Return the Resource definition of a data source type.

        Raises:
            ConfigurationError: If the type is not supported
        """
        return self._lookup(DATA_SOURCES, "data source", type_name)

    @staticmethod
    def resource_types() -> List[str]:
        return sorted(RESOURCES)

    @staticmethod
    def data_source_types() -> List[str]:
        return sorted(DATA_SOURCES)
