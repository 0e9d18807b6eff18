#!/usr/bin/env python
import functools
import json
import logging
import sys
from typing import Any, Dict, List, Tuple

import click
from botocore.exceptions import BotoCoreError, ClientError

import provider.checks as checks
import provider.config as config
import provider.engine as engine
import provider.fileparser as fileparser
import provider.flatmap as flatmap
import provider.interpreter as interpreter
from provider.config_loader import load_settings_file
from provider.exceptions import ProviderError
from provider.schema import UNKNOWN
from provider.state import StateFile

__version__ = "0.1"

SECRET_KEYS = (config.GITHUB_OAUTH_TOKEN_KEY,)


def my_excepthook(exc_type, exc_value, exc_traceback):
    print(f"Unhandled error: {exc_type}, {exc_value}, {exc_traceback}")


def _error(message: str) -> None:
    click.echo(click.style(f"\nERROR: {message}", fg="red", bold=True), err=True)
    sys.exit(1)


def _parse_vars(values: Tuple[str, ...]) -> Dict[str, str]:
    variables = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--var")
        variables[key.strip()] = value
    return variables


def common_options(func):
    """Options shared by every command."""

    @click.option(
        "--debug", is_flag=True, default=False, help="Debug logging and full tracebacks"
    )
    @click.option(
        "--source",
        default=".",
        help="Configuration location (folder or git URL)",
    )
    @click.option(
        "--state",
        "state_path",
        default=config.DEFAULT_STATE_FILE,
        help="Path of the local state file",
    )
    @click.option("--var", "var", multiple=True, default=[], help="Input variable KEY=VALUE")
    @click.option("--config", "config_path", default=None, help="Provider settings file (YAML)")
    @functools.wraps(func)
    def wrapper(debug, source, state_path, var, config_path, **kwargs):
        if debug:
            logging.basicConfig(
                level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s"
            )
        else:
            logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")
            sys.excepthook = my_excepthook
        try:
            return func(
                _build_engine(source, state_path, _parse_vars(var), config_path), **kwargs
            )
        except ProviderError as e:
            _error(str(e))
        except (ClientError, BotoCoreError) as e:
            _error(f"AWS API call failed: {e}")

    return wrapper


def _build_engine(
    source: str, state_path: str, variables: Dict[str, str], config_path: str
) -> engine.Engine:
    if source.endswith(".tf"):
        _error(
            "You have passed a .tf file as source. "
            "Pass a folder containing .tf files or a git URL."
        )
    configuration = fileparser.read_sources(source)
    settings = load_settings_file(config_path)
    resolved = interpreter.variable_values(configuration.variables, variables)
    prov = engine.load_provider(configuration, resolved, settings)
    return engine.Engine(configuration, prov, StateFile(state_path), variables)


def _display(key: str, value: str) -> str:
    if key.split(".")[-1] in SECRET_KEYS:
        return config.SENSITIVE_DISPLAY
    return json.dumps(value)


def _flat_display(attributes: Dict[str, Any]) -> Dict[str, str]:
    known = {k: v for k, v in attributes.items() if v is not UNKNOWN}
    flat = flatmap.flatten(known)
    rendered = {k: _display(k, v) for k, v in flat.items() if not k.endswith((".#", ".%"))}
    for key, value in attributes.items():
        if value is UNKNOWN:
            rendered[key] = config.UNKNOWN_DISPLAY
    return rendered


def render_change(change: engine.Change) -> List[str]:
    symbol, color = engine.ACTION_SYMBOLS[change.action]
    header = f"{symbol} {change.address}"
    if change.action == engine.REPLACE:
        header += f" (forces replacement: {', '.join(change.replace_reasons)})"
    lines = [click.style(header, fg=color, bold=True)]

    after = _flat_display(change.after)
    before = _flat_display(change.before)
    if change.action in (engine.CREATE, engine.REPLACE, engine.READ):
        for key in sorted(after):
            lines.append(f"      {key} = {after[key]}")
    elif change.action == engine.DELETE:
        for key in sorted(before):
            lines.append(click.style(f"      {key} = {before[key]}", fg="red"))
    elif change.action == engine.UPDATE:
        for key in sorted(set(before) | set(after)):
            if before.get(key) != after.get(key):
                lines.append(
                    f"      {key}: {before.get(key, 'null')} -> {after.get(key, 'null')}"
                )
    return lines


def _show_plan(plan: engine.Plan) -> None:
    click.echo(click.style("\nPlanned changes:\n", fg="white", bold=True))
    for change in plan.changes:
        if change.action == engine.NOOP:
            continue
        for line in render_change(change):
            click.echo(line)
    counts = plan.summary()
    click.echo(
        click.style(
            f"\nPlan: {counts[engine.CREATE]} to add, {counts[engine.UPDATE]} to change, "
            f"{counts[engine.DELETE]} to destroy.",
            bold=True,
        )
    )


@click.version_option(version=__version__, prog_name="awsprov")
@click.group()
def cli():
    """
    awsprov plans and applies Terraform configurations for AWS CodePipeline,
    EFS, IAM, S3 and CodeStar connections resources.

    For help with a specific command type:

    awsprov [COMMAND] --help

    """
    pass


@cli.command()
@common_options
def plan(eng: engine.Engine):
    """Show the changes required by the configuration"""
    result = eng.plan()
    if not result.has_changes:
        click.echo(click.style("\nNo changes. Infrastructure is up-to-date.", fg="green"))
        return
    _show_plan(result)


@cli.command()
@common_options
@click.option("--auto-approve", is_flag=True, default=False, help="Skip interactive approval")
def apply(eng: engine.Engine, auto_approve: bool):
    """Create or update infrastructure"""
    result = eng.plan()
    if not result.has_changes:
        click.echo(click.style("\nNo changes. Infrastructure is up-to-date.", fg="green"))
        eng.apply(result)
        return
    _show_plan(result)
    if not auto_approve and not click.confirm("\nDo you want to perform these actions?"):
        click.echo("Apply cancelled.")
        return
    click.echo()
    counts = eng.apply(result)
    click.echo(
        click.style(
            f"\nApply complete! Resources: {counts[engine.CREATE]} added, "
            f"{counts[engine.UPDATE]} changed, {counts[engine.DELETE]} destroyed.",
            fg="green",
            bold=True,
        )
    )


@cli.command()
@common_options
@click.option("--auto-approve", is_flag=True, default=False, help="Skip interactive approval")
def destroy(eng: engine.Engine, auto_approve: bool):
    """Destroy all managed infrastructure"""
    result = eng.plan(destroy=True)
    if not result.has_changes:
        click.echo("\nNothing to destroy.")
        return
    _show_plan(result)
    if not auto_approve and not click.confirm("\nReally destroy all resources?"):
        click.echo("Destroy cancelled.")
        return
    counts = eng.destroy(result)
    click.echo(
        click.style(
            f"\nDestroy complete! Resources: {counts[engine.DELETE]} destroyed.",
            fg="green",
            bold=True,
        )
    )


@cli.command()
@common_options
def refresh(eng: engine.Engine):
    """Update state to match remote objects"""
    state = eng.refresh()
    click.echo(click.style(f"\nRefreshed {len(state.resources)} resource(s).", fg="green"))


@cli.command(name="import")
@common_options
@click.argument("address")
@click.argument("resource_id")
def import_(eng: engine.Engine, address: str, resource_id: str):
    """Import an existing object into state"""
    entry = eng.import_resource(address, resource_id)
    click.echo(click.style(f"\n{address}: Import successful [id={entry.id}]", fg="green"))


@cli.command()
@common_options
def show(eng: engine.Engine):
    """Print the resources held in state"""
    state = eng.state_file.load()
    if not state.resources:
        click.echo("\nThe state file is empty. No resources are represented.")
        return
    for address in state.addresses():
        entry = state.resources[address]
        click.echo(click.style(f"\n# {address}", fg="white", bold=True))
        attrs = dict(entry.attributes)
        attrs["id"] = entry.id
        for key, value in sorted(_flat_display(attrs).items()):
            click.echo(f"    {key} = {value}")


@cli.command()
@common_options
def check(eng: engine.Engine):
    """Check that every managed resource still exists"""
    state = eng.state_file.load()
    drifted = []
    for address in state.addresses():
        if state.resources[address].mode != fileparser.MODE_MANAGED:
            continue
        try:
            checks.check_exists(eng.provider, state, address)
        except ProviderError as e:
            drifted.append(address)
            click.echo(click.style(f"  {address}: {e}", fg="red"))
        else:
            click.echo(click.style(f"  {address}: OK", fg="green"))
    if drifted:
        _error(f"{len(drifted)} resource(s) drifted: {', '.join(drifted)}")
    click.echo(click.style("\nNo drift detected.", fg="green", bold=True))


if __name__ == "__main__":
    cli()
