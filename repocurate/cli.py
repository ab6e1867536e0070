#!/usr/bin/env python3

import click

from repocurate.commands.curate import curate_handler
from repocurate.commands.config import config_cmd


@click.group()
@click.version_option(package_name="repocurate")
def cli():
    """repocurate - Curate conda repodata down to a consistent subset.

    Applies an allow-list, supersession, pre-release and feature filters,
    prunes packages that cannot co-install with anchor packages, and
    removes everything left with an unsatisfiable dependency.
    """
    pass


cli.add_command(curate_handler, name='curate')
cli.add_command(config_cmd)


def main():
    cli()

if __name__ == "__main__":
    main()
