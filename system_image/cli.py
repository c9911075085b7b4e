#!/usr/bin/env python3

"""Inspect, validate and compare system images"""

import json
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from system_image.diff import compare_system_images, render_report
from system_image.digest import checksum
from system_image.exceptions import ImageError
from system_image.layers import deployment_order
from system_image.lockfile import load_image, read_lockfile, write_lockfile
from system_image.log import setup_logging
from system_image.models import DEFAULT_LOCKFILE, SystemImage, ValidationMode
from system_image.validator import check_image

IMAGE_PATH = click.Path(exists=True, dir_okay=False, path_type=Path)


def read_image(path: Path) -> SystemImage:
    """Load an image file, turning parse failures into CLI errors"""
    try:
        return load_image(path)
    except ValidationError as ex:
        raise click.ClickException(f"Invalid system image {path}:\n{ex}") from ex


@click.group()
@click.option(
    "--log-level",
    help="Logging level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    envvar="LOG_LEVEL",
    default="INFO",
)
def main(log_level: str) -> None:
    """Inspect, validate and compare system images"""
    setup_logging(log_level)


@main.command()
@click.argument("image_path", type=IMAGE_PATH)
@click.option(
    "--mode",
    help="How to handle violations",
    type=click.Choice([mode.value for mode in ValidationMode], case_sensitive=False),
    default=ValidationMode.STRICT.value,
)
def validate(image_path: Path, mode: str) -> None:
    """Validate a system image"""
    image = read_image(image_path)
    try:
        errors = check_image(image, ValidationMode(mode.upper()))
    except ImageError as ex:
        sys.exit(str(ex))
    if errors:
        click.echo(f"{len(errors)} violation(s) found")
    else:
        click.echo(f"{image_path} is valid")


@main.command(name="checksum")
@click.argument("image_path", type=IMAGE_PATH)
def checksum_cmd(image_path: Path) -> None:
    """Print the content digest of a system image"""
    click.echo(checksum(read_image(image_path)))


@main.command()
@click.argument("old_path", type=IMAGE_PATH)
@click.argument("new_path", type=IMAGE_PATH)
@click.option("--json", "as_json", help="Print the diff as JSON", is_flag=True)
def diff(old_path: Path, new_path: Path, as_json: bool) -> None:
    """Compare two system images"""
    old = read_image(old_path)
    new = read_image(new_path)
    image_diff = compare_system_images(old, new)
    if as_json:
        click.echo(image_diff.to_json())
        return
    for line in render_report(image_diff, old, new):
        click.echo(line)


@main.command()
@click.argument("image_path", type=IMAGE_PATH)
def order(image_path: Path) -> None:
    """Print layers in deployment order"""
    try:
        layers = deployment_order(read_image(image_path).layers)
    except ImageError as ex:
        raise click.ClickException(str(ex)) from ex
    for layer in layers:
        click.echo(f"{layer.priority:>4} {layer.name}")


@main.command()
@click.argument("image_path", type=IMAGE_PATH)
@click.option(
    "--lockfile",
    help="Lockfile to write",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_LOCKFILE,
    show_default=True,
)
def lock(image_path: Path, lockfile: Path) -> None:
    """Validate a system image and pin it in a lockfile"""
    image = read_image(image_path)
    try:
        check_image(image, ValidationMode.STRICT)
    except ImageError as ex:
        raise click.ClickException(str(ex)) from ex
    digest = write_lockfile(image, lockfile)
    click.echo(json.dumps({"lockfile": str(lockfile), "checksum": digest}))


@main.command(name="verify-lock")
@click.argument("lockfile", type=IMAGE_PATH)
def verify_lock(lockfile: Path) -> None:
    """Verify a lockfile checksum"""
    try:
        image = read_lockfile(lockfile)
    except ImageError as ex:
        raise click.ClickException(str(ex)) from ex
    click.echo(f"{lockfile} pins base {image.base.ref}@{image.base.commit}")


if __name__ == "__main__":
    main()  # pylint: disable=no-value-for-parameter
