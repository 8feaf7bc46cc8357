"""Maintenance commands for compiled packages.

Usage:

    packbundler [--config PATH] compress [--name NAME]
    packbundler [--config PATH] reset [--name NAME] [--quiet]
    packbundler [--config PATH] info [--name NAME]
"""
import logging

import click

from bundler.config import load_config
from bundler.errors import BundlerError
from bundler.manager import Bundler

SEPARATOR = "-" * 55


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to the YAML config. Defaults to $BUNDLER_CONFIG or ./bundler.yaml.",
)
@click.option("--verbose", is_flag=True, help="Log compilation details.")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """Compress, reset and inspect JS/CSS packages."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format='%(levelname)s:\t%(name)s - %(message)s'
    )
    try:
        ctx.obj = Bundler(load_config(config_path))
    except BundlerError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.option("--name", default=None, help="Package to compress. All packages if omitted.")
@click.pass_obj
def compress(bundler: Bundler, name: str | None) -> None:
    """Compress one or all packages."""
    packages = bundler.registry.names() if name is None else [name]

    click.echo("Compressing...")
    for package in packages:
        try:
            compiled = bundler.compile(package)
        except BundlerError as e:
            raise click.ClickException(f"Compressing package '{package}' failed: {e}")
        if not compiled:
            click.echo(f"Can't compress package '{package}'")
    click.echo("Done.")


@cli.command()
@click.option("--name", default=None, help="Package to reset. All packages if omitted.")
@click.option("--quiet", is_flag=True, help="Suppress any output.")
@click.pass_obj
def reset(bundler: Bundler, name: str | None, quiet: bool) -> None:
    """Reset the compression status of one or all packages.

    The packages are compressed again by the "compress" command or
    automatically on the next request.
    """
    result = bundler.reset(name)
    if quiet:
        return
    if not result:
        click.echo("Nothing to do.")
    elif name is None:
        click.echo("All packages reset.")
    else:
        click.echo(f"Package '{name}' reset.")


def echo_asset_info(name: str, asset_type: str, info: dict) -> None:
    label = "Javascript" if asset_type == "js" else "CSS"
    kind = "script" if asset_type == "js" else "CSS"

    click.echo(f"Package '{name}' contains {label}.\n")
    if "file" in info:
        click.echo(f"  The compressed file is:\n\n    {info['file']}")
    if "urls" in info:
        click.echo(f"\n  It provides the following {kind} URLs:\n")
        for url in info["urls"]:
            click.echo(f"    {url}")
    if "files" in info:
        click.echo("\n  The files used to create the compressed file were:\n")
        for file in info["files"]:
            click.echo(f"    {file}")
    click.echo("")


@cli.command()
@click.option("--name", default=None, help="Package to show. All packages if omitted.")
@click.pass_obj
def info(bundler: Bundler, name: str | None) -> None:
    """Output debug information about one or all compiled packages."""
    if name is None:
        names = bundler.list_compiled_names()
        click.echo(SEPARATOR)
        if not names:
            click.echo("Compressed packages not found")
            raise SystemExit(1)
        click.echo("Compressed packages found:")
        click.echo(SEPARATOR)
        click.echo("\n".join(names))
        click.echo(SEPARATOR)
        click.echo(f"Total packages compressed: {len(names)}")
        click.echo(f"Total declared packages: {len(bundler.registry.names())}\n")
    else:
        names = [name]

    click.echo(SEPARATOR)
    for package in names:
        record = bundler.get_compiled_info(package)
        if record is None:
            click.echo(f"No compressed data for package '{package}' found")
            raise SystemExit(1)

        for asset_type in ("js", "css"):
            if asset_type in record:
                echo_asset_info(package, asset_type, record[asset_type])
        click.echo(SEPARATOR)


if __name__ == "__main__":
    cli()
