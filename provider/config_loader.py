"""
Provider configuration loader for awsprov.

Builds a ProviderConfig from the three places settings can come from, highest
precedence first:

    1. ``provider "aws"`` blocks in the HCL sources
    2. an optional YAML settings file (awsprov.yml)
    3. the process environment (AWS_REGION / AWS_DEFAULT_REGION, AWS_PROFILE)

Aliased provider blocks (``alias = "alternate"``) become entries in
``ProviderConfig.aliases`` so that resources can target another region with
``provider = aws.alternate``.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
import logging
import os

import yaml

import provider.config as config
from provider.exceptions import ConfigurationError

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class ProviderConfig:
    """
    Settings for one provider configuration.

    Args:
        region: Default AWS region for API calls
        profile: Optional shared-credentials profile name
        aliases: Alias name -> region for aliased provider blocks
        default_tags: Tags merged into every taggable resource
        account_id: Optional account ID override (skips the STS lookup)
    """

    region: str
    profile: str = ""
    aliases: Dict[str, str] = field(default_factory=dict)
    default_tags: Dict[str, str] = field(default_factory=dict)
    account_id: str = ""

    def region_for(self, alias: str = "") -> str:
        """Return the region of the default provider or of an alias."""
        if not alias:
            return self.region
        if alias not in self.aliases:
            raise ConfigurationError(
                f"Provider alias '{alias}' is not configured",
                {"known_aliases": ", ".join(sorted(self.aliases)) or "none"},
            )
        return self.aliases[alias]


def load_settings_file(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the optional YAML settings file.

    Args:
        path: Explicit settings file. When omitted, the working directory is
              searched for the names in config.SETTINGS_FILENAMES.

    Returns:
        Parsed settings dictionary (empty if no file was found)

    Raises:
        ConfigurationError: If the file cannot be parsed or is not a mapping
    """
    candidates: List[Path] = []
    if path:
        candidates.append(Path(path))
    else:
        candidates.extend(Path.cwd() / name for name in config.SETTINGS_FILENAMES)

    for candidate in candidates:
        if not candidate.is_file():
            if path:
                raise ConfigurationError(
                    "Settings file not found", {"path": str(candidate)}
                )
            continue
        try:
            with open(candidate, "r") as f:
                settings = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Could not parse settings file: {e}", {"path": str(candidate)}
            ) from e
        if not isinstance(settings, dict):
            raise ConfigurationError(
                "Settings file must contain a mapping", {"path": str(candidate)}
            )
        logger.info(f"Loaded provider settings from {candidate}")
        return settings
    return {}


def _default_tags_from_block(block: Dict[str, Any]) -> Dict[str, str]:
    # hcl2 renders nested blocks as lists of dicts
    default_tags = block.get("default_tags") or []
    if isinstance(default_tags, dict):
        default_tags = [default_tags]
    tags: Dict[str, str] = {}
    for entry in default_tags:
        tags.update({k: str(v) for k, v in (entry.get("tags") or {}).items()})
    return tags


def load_provider_config(
    provider_blocks: Optional[List[Dict[str, Any]]] = None,
    settings: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ProviderConfig:
    """
    Merge HCL provider blocks, YAML settings and environment into a ProviderConfig.

    Args:
        provider_blocks: Bodies of ``provider "aws"`` blocks from the sources
        settings: Parsed YAML settings (see load_settings_file)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Fully populated ProviderConfig

    Raises:
        ConfigurationError: If no region can be determined or an alias is
                            declared twice
    """
    environ = os.environ if environ is None else environ
    settings = settings or {}
    provider_blocks = provider_blocks or []

    region = ""
    for var in config.REGION_ENV_VARS:
        if environ.get(var):
            region = environ[var]
            break
    profile = environ.get(config.PROFILE_ENV_VAR, "")
    default_tags: Dict[str, str] = {}
    aliases: Dict[str, str] = {}
    account_id = ""

    # YAML settings override the environment
    region = settings.get("region", region) or region
    profile = settings.get("profile", profile) or profile
    account_id = str(settings.get("account_id", "") or "")
    default_tags.update({k: str(v) for k, v in (settings.get("default_tags") or {}).items()})
    aliases.update({k: str(v) for k, v in (settings.get("aliases") or {}).items()})

    # HCL provider blocks override everything else
    for block in provider_blocks:
        alias = block.get("alias", "")
        if alias:
            if not block.get("region"):
                raise ConfigurationError(
                    f"Aliased provider '{alias}' must set a region"
                )
            aliases[alias] = block["region"]
            continue
        region = block.get("region", region) or region
        profile = block.get("profile", profile) or profile
        default_tags.update(_default_tags_from_block(block))

    if not region:
        raise ConfigurationError(
            "No AWS region configured. Set region in the provider block, "
            "the settings file or the AWS_REGION environment variable."
        )

    return ProviderConfig(
        region=region,
        profile=profile,
        aliases=aliases,
        default_tags=default_tags,
        account_id=account_id,
    )
