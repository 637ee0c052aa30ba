"""CLI do VoxRelay.

Registra todos os comandos no grupo principal.
"""

from voxrelay.cli.main import cli
from voxrelay.cli.serve import serve

__all__ = [
    "cli",
    "serve",
]
