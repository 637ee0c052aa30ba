"""Grupo principal de comandos CLI do VoxRelay."""

from __future__ import annotations

import click

import voxrelay


@click.group()
@click.version_option(version=voxrelay.__version__, prog_name="voxrelay")
def cli() -> None:
    """VoxRelay — relay de audio para texto em tempo real."""
