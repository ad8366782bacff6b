"""
Member import pipeline and content-store maintenance commands.

``init_importer`` mounts the ``flask importer`` command group on the app.
"""

from __future__ import annotations

from flask import Flask

from .cli import importer_cli

__all__ = ["importer_cli", "init_importer"]


def init_importer(app: Flask) -> None:
    """Register the importer CLI, replacing any earlier registration."""

    command_name = importer_cli.name
    if command_name in app.cli.commands:
        app.cli.commands.pop(command_name)
    app.cli.add_command(importer_cli)

    app.logger.info(
        "Importer commands registered (dry-run default=%s)",
        bool(app.config.get("IMPORTER_DRY_RUN_DEFAULT", False)),
    )
