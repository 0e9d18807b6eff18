"""File parser module for awsprov.

This module discovers Terraform files (.tf) in a local directory or a git
repository, parses them with python-hcl2 and collects the blocks the engine
works with: provider, variable, resource and data.
"""

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

import click
import hcl2
from lark.exceptions import LarkError

import provider.config as config
import provider.gitlibs as gitlibs
from provider.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

MODE_MANAGED = "managed"
MODE_DATA = "data"

# Terraform sections to extract during parsing
EXTRACT: List[str] = ["provider", "variable", "resource", "data"]

# Keys python-hcl2 adds to blocks that are not attributes
HCL_META_KEYS = ("__start_line__", "__end_line__", "__is_block__")


@dataclass
class BlockConfig:
    """
    One ``resource`` or ``data`` block.

    Args:
        mode: MODE_MANAGED or MODE_DATA
        type: Resource type (e.g., "aws_codepipeline")
        name: Block label (e.g., "main")
        body: Attribute dictionary with HCL metadata stripped
        filename: File the block came from
    """

    mode: str
    type: str
    name: str
    body: Dict[str, Any] = field(default_factory=dict)
    filename: str = ""

    @property
    def address(self) -> str:
        prefix = "data." if self.mode == MODE_DATA else ""
        return f"{prefix}{self.type}.{self.name}"


@dataclass
class Configuration:
    """Everything the engine needs from a set of .tf files."""

    providers: List[Dict[str, Any]] = field(default_factory=list)
    variables: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    blocks: Dict[str, BlockConfig] = field(default_factory=dict)
    files: List[str] = field(default_factory=list)

    @property
    def resources(self) -> List[BlockConfig]:
        return [b for b in self.blocks.values() if b.mode == MODE_MANAGED]

    @property
    def data_sources(self) -> List[BlockConfig]:
        return [b for b in self.blocks.values() if b.mode == MODE_DATA]


def strip_meta(value: Any) -> Any:
    """Remove python-hcl2 bookkeeping keys from a parsed structure."""
    if isinstance(value, dict):
        return {k: strip_meta(v) for k, v in value.items() if k not in HCL_META_KEYS}
    if isinstance(value, list):
        return [strip_meta(v) for v in value]
    return value


def find_tf_files(source: str) -> List[str]:
    """List the .tf files of a folder, sorted by name.

    Raises:
        ConfigurationError: If the folder holds no .tf files
    """
    paths = sorted(
        os.path.join(source, f) for f in os.listdir(source) if f.lower().endswith(".tf")
    )
    if not paths:
        raise ConfigurationError(
            "No Terraform .tf files found in source location. Use --source "
            "to specify a directory or git URL of the configuration.",
            {"source": source},
        )
    return paths


def _add_block(cfg: Configuration, block: BlockConfig) -> None:
    if block.address in cfg.blocks:
        raise ConfigurationError(
            f"Duplicate {block.mode} block {block.address}",
            {"first": cfg.blocks[block.address].filename, "second": block.filename},
        )
    cfg.blocks[block.address] = block


def merge_parsed(cfg: Configuration, parsed: Dict[str, Any], filename: str = "") -> Configuration:
    """Fold one parsed HCL document into a Configuration.

    Args:
        cfg: Configuration being built
        parsed: Output of hcl2.load / hcl2.loads
        filename: Origin, for error messages

    Returns:
        The updated Configuration
    """
    parsed = strip_meta(parsed)
    for stanza in parsed.get("provider", []):
        for name, body in stanza.items():
            if name != config.PROVIDER_NAME:
                raise ConfigurationError(
                    f"Unsupported provider '{name}'", {"file": filename}
                )
            cfg.providers.append(body)
    for stanza in parsed.get("variable", []):
        for name, body in stanza.items():
            cfg.variables[name] = body or {}
    for section, mode in (("resource", MODE_MANAGED), ("data", MODE_DATA)):
        for stanza in parsed.get(section, []):
            for type_name, named in stanza.items():
                for name, body in named.items():
                    _add_block(cfg, BlockConfig(mode, type_name, name, body or {}, filename))
    return cfg


def parse_file(f: TextIO, filename: str) -> Dict[str, Any]:
    try:
        return hcl2.load(f)
    except (LarkError, ValueError) as e:
        raise ConfigurationError(
            f"A Terraform HCL parsing error occurred: {e}", {"file": filename}
        ) from e


def parse_text(text: str, cfg: Optional[Configuration] = None) -> Configuration:
    """Parse HCL text held in memory into a Configuration."""
    cfg = cfg or Configuration()
    try:
        parsed = hcl2.loads(text)
    except (LarkError, ValueError) as e:
        raise ConfigurationError(f"A Terraform HCL parsing error occurred: {e}") from e
    return merge_parsed(cfg, parsed, "<string>")


def read_sources(source: str, workdir: Optional[str] = None) -> Configuration:
    """Parse all Terraform files of a source location.

    Args:
        source: Local directory path or git URL
        workdir: Directory to clone git sources into (a temporary directory
                 when omitted)

    Returns:
        Configuration holding every provider, variable, resource and data block

    Raises:
        ConfigurationError: If the source is missing, unparseable or holds
                            conflicting blocks
    """
    click.echo(click.style("\nParsing Terraform Source Files..", fg="white", bold=True))
    if gitlibs.is_git_source(source):
        workdir = workdir or tempfile.mkdtemp(prefix="awsprov-")
        folder = gitlibs.clone_source(source, os.path.join(workdir, "source"))
    elif os.path.isdir(source):
        folder = source.strip()
    else:
        raise ConfigurationError("Source location is not a directory", {"source": source})

    cfg = Configuration()
    for filename in find_tf_files(folder):
        with click.open_file(filename, "r", encoding="utf8") as f:
            parsed = parse_file(f, filename)
        logger.debug(f"Parsed {filename}")
        merge_parsed(cfg, parsed, filename)
        cfg.files.append(filename)
        found = sum(len(parsed.get(section, [])) for section in EXTRACT)
        click.echo(f"  Parsed {Path(filename).name}: {found} stanza(s)")

    click.echo(
        click.style(
            f"  Found {len(cfg.resources)} resource(s) and {len(cfg.data_sources)} data source(s)",
            fg="green",
        )
    )
    return cfg
