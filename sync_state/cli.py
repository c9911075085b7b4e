#!/usr/bin/env python3

"""Snapshot, restore and check the live system against its configuration"""

import json
import sys
from pathlib import Path
from typing import Optional

import click

from sync_state.config import CompiledConfig, load_compiled_config, load_settings
from sync_state.exceptions import SyncStateError
from sync_state.manager import StateSyncManager
from sync_state.models import OutOfSync
from system_image.diff import render_report
from system_image.exceptions import ImageError
from system_image.log import setup_logging

CONFIG_PATH = click.Path(exists=True, dir_okay=False, path_type=Path)


def read_config(path: Path) -> CompiledConfig:
    """Load a compiled configuration, turning failures into CLI errors"""
    try:
        return load_compiled_config(path)
    except SyncStateError as ex:
        raise click.ClickException(str(ex)) from ex


@click.group()
@click.option(
    "--settings",
    "settings_path",
    help="YAML settings file",
    type=CONFIG_PATH,
    envvar="HORIZONOS_SETTINGS",
)
@click.option(
    "--state-dir",
    help="Directory holding the current state and snapshots",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="HORIZONOS_STATE_DIR",
)
@click.option(
    "--timeout",
    help="Timeout in seconds of every system command",
    type=click.FloatRange(min=0, min_open=True),
    envvar="HORIZONOS_COMMAND_TIMEOUT",
)
@click.option(
    "--log-level",
    help="Logging level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    envvar="LOG_LEVEL",
    default="INFO",
)
@click.pass_context
def main(
    ctx: click.Context,
    settings_path: Optional[Path],
    state_dir: Optional[Path],
    timeout: Optional[float],
    log_level: str,
) -> None:
    """Snapshot, restore and check the live system against its configuration"""
    setup_logging(log_level)
    ctx.ensure_object(dict)
    try:
        settings = load_settings(
            settings_path, state_dir=state_dir, command_timeout=timeout
        )
    except SyncStateError as ex:
        raise click.ClickException(str(ex)) from ex
    ctx.obj["manager"] = StateSyncManager(settings, ctx.obj.get("executor"))


@main.command()
@click.argument("config_path", type=CONFIG_PATH)
@click.pass_obj
def sync(obj: dict, config_path: Path) -> None:
    """Record a compiled configuration as the synced state"""
    manager: StateSyncManager = obj["manager"]
    config = read_config(config_path)
    try:
        image_diff = manager.image_changes(config)
        state = manager.sync_state(config)
    except ImageError as ex:
        raise click.ClickException(str(ex)) from ex
    if image_diff is not None:
        for line in render_report(image_diff):
            click.echo(line)
    click.echo(json.dumps(dict(state), indent=2, sort_keys=True))


@main.command()
@click.argument("config_path", type=CONFIG_PATH)
@click.pass_obj
def check(obj: dict, config_path: Path) -> None:
    """Check the live system against a compiled configuration"""
    manager: StateSyncManager = obj["manager"]
    status = manager.check_sync(read_config(config_path))
    if isinstance(status, OutOfSync):
        issues = "\n".join(f"  {issue}" for issue in status.issues)
        sys.exit(f"Out of sync ({len(status.issues)} issue(s)):\n{issues}")
    click.echo("In sync")


@main.command(name="show-state")
@click.pass_obj
def show_state(obj: dict) -> None:
    """Print the last synced state"""
    manager: StateSyncManager = obj["manager"]
    click.echo(json.dumps(dict(manager.get_current_state()), indent=2, sort_keys=True))


@main.group()
def snapshot() -> None:
    """Manage live system snapshots"""


@snapshot.command()
@click.option(
    "--config",
    "config_path",
    help="Configuration to store, defaults to the last synced one",
    type=CONFIG_PATH,
)
@click.pass_obj
def create(obj: dict, config_path: Optional[Path]) -> None:
    """Capture the live system"""
    manager: StateSyncManager = obj["manager"]
    config = read_config(config_path) if config_path is not None else None
    state_snapshot = manager.create_snapshot(config)
    for warning in state_snapshot.warnings:
        click.echo(f"Warning: {warning}", err=True)
    click.echo(state_snapshot.id)


@snapshot.command(name="list")
@click.pass_obj
def list_cmd(obj: dict) -> None:
    """List snapshots, newest first"""
    manager: StateSyncManager = obj["manager"]
    for info in manager.list_snapshots():
        config_flag = "config" if info.has_config else "no-config"
        click.echo(
            f"{info.id}\t{info.timestamp.isoformat()}\t{info.size}\t{config_flag}"
        )


@snapshot.command()
@click.option("--keep", help="Number of snapshots to keep", type=click.IntRange(min=0))
@click.pass_obj
def cleanup(obj: dict, keep: Optional[int]) -> None:
    """Delete old snapshots"""
    manager: StateSyncManager = obj["manager"]
    for snapshot_id in manager.cleanup_snapshots(keep):
        click.echo(f"Deleted {snapshot_id}")


@main.command()
@click.argument("snapshot_id")
@click.pass_obj
def restore(obj: dict, snapshot_id: str) -> None:
    """Restore the live system from a snapshot"""
    manager: StateSyncManager = obj["manager"]
    try:
        result = manager.restore_snapshot(manager.snapshots.get_snapshot(snapshot_id))
    except SyncStateError as ex:
        raise click.ClickException(str(ex)) from ex
    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)
    click.echo(f"Restored {snapshot_id} for host {result.config.system.hostname}")


if __name__ == "__main__":
    main()  # pylint: disable=no-value-for-parameter
