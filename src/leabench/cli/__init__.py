"""CLI module for LeaBench commands.

Commands live in separate modules and are registered on the ``main`` group.
"""

import click

from .. import __version__
from .compare_cmd import compare
from .deps_cmd import deps
from .run_cmd import run


@click.group()
@click.version_option(version=__version__, prog_name="leabench")
def main() -> None:
    """🧪 LeaBench: compare versions of the Lea image compressor."""
    pass


main.add_command(run)
main.add_command(deps)
main.add_command(compare)

__all__ = [
    "compare",
    "deps",
    "main",
    "run",
]
