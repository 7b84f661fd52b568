"""
sigsync CLI -- verified source sync for build orchestrators.

The main Click group is defined here; commands live in their own
modules and are attached via register functions.

Entry point: sigsync.cli:main
"""

from __future__ import annotations

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="sigsync")
def main():
    """sigsync -- fetch, verify, then merge.

    Nothing reaches your branch until its signature checks out.
    """


from .sync_cmd import register_sync_commands

register_sync_commands(main)
