"""opsagent CLI entrypoint."""

from __future__ import annotations

import click

from opsagent import __version__


@click.group()
@click.version_option(version=__version__, prog_name="opsagent")
def main() -> None:
    """opsagent: autonomous decision agent core."""


# Register subcommands
from opsagent.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
