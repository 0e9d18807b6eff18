"""Git library module for awsprov.

Configuration sources can be a git repository instead of a local folder.
Supported forms:

    git::https://github.com/org/repo.git//pipelines?ref=v1.2
    git::ssh://git@github.com/org/repo.git
    git@github.com:org/repo.git
    https://github.com/org/repo.git

A ``//subfolder`` suffix selects a folder inside the repository and
``?ref=`` selects a branch or tag.
"""

import os
import shutil
import stat
from typing import List, Optional, Tuple
import logging

import click
import git
from git import RemoteProgress
from tqdm import tqdm

from provider.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

GIT_PREFIXES: Tuple[str, ...] = ("git::", "git@", "ssh://", "http://", "https://")


class CloneProgress(RemoteProgress):
    """Progress bar for git clone operations.

    Displays a progress bar using tqdm during git repository cloning.
    """

    def __init__(self) -> None:
        super().__init__()
        self.pbar = tqdm(leave=False)

    def update(
        self,
        op_code: int,
        cur_count: int,
        max_count: Optional[int] = None,
        message: str = "",
    ) -> None:
        self.pbar.total = max_count
        self.pbar.n = cur_count
        self.pbar.refresh()


def is_git_source(source: str) -> bool:
    """Check whether a --source value points at a git repository."""
    return source.startswith(GIT_PREFIXES) and not os.path.isdir(source)


def split_source(source: str) -> Tuple[str, str, str]:
    """Split a git source into clone URL, subfolder and ref.

    Args:
        source: Git source in one of the module-level formats

    Returns:
        Tuple of (clone_url, subfolder, ref)
    """
    url = source
    if url.startswith("git::"):
        url = url[len("git::"):]
    if url.startswith("ssh://git@github.com/"):
        url = url.replace("ssh://git@github.com/", "git@github.com:", 1)

    ref = ""
    if "?ref=" in url:
        url, ref = url.split("?ref=", 1)

    # "//" after the scheme separates the repository from a subfolder
    scheme_end = url.find("://")
    search_from = scheme_end + 3 if scheme_end >= 0 else 0
    subfolder = ""
    sep = url.find("//", search_from)
    if sep >= 0:
        url, subfolder = url[:sep], url[sep + 2:].strip("/")
    return url, subfolder, ref


def clone_source(source: str, destination: str) -> str:
    """Clone a git source and return the folder holding its configuration.

    Args:
        source: Git source (see split_source)
        destination: Empty or missing local directory to clone into

    Returns:
        Path of the configuration folder inside the clone

    Raises:
        ConfigurationError: If git cannot clone the repository or the
                            requested subfolder does not exist
    """
    url, subfolder, ref = split_source(source)

    def remove_readonly(func, path, exc_info):
        os.chmod(path, stat.S_IWRITE)
        func(path)

    if os.path.exists(destination):
        shutil.rmtree(destination, onerror=remove_readonly)
    os.makedirs(destination, exist_ok=True)

    options: List[str] = []
    if ref:
        options.append("--branch " + ref)

    click.echo(click.style(f"\nCloning {url}..", fg="white", bold=True))
    logger.debug(f"git clone {url} -> {destination} (ref={ref or 'default'})")
    try:
        git.Repo.clone_from(
            url,
            str(destination),
            multi_options=options,
            progress=CloneProgress(),
        )
    except git.GitCommandError as e:
        shutil.rmtree(destination, ignore_errors=True)
        raise ConfigurationError(
            f"Unable to clone repository: {e.stderr.strip() if e.stderr else e}",
            {"url": url},
        ) from e

    folder = os.path.join(destination, subfolder) if subfolder else destination
    if not os.path.isdir(folder):
        raise ConfigurationError(
            "Subfolder not found in cloned repository", {"url": url, "subfolder": subfolder}
        )
    return folder
