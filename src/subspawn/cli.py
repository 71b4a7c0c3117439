"""Root CLI group and version flag."""

import click

from subspawn import __version__
from subspawn.commands.init import init
from subspawn.commands.run import run


@click.group()
@click.version_option(version=__version__, prog_name="subspawn")
def cli() -> None:
    """subspawn — run autonomous agents as supervised subprocesses."""


cli.add_command(init)
cli.add_command(run)
