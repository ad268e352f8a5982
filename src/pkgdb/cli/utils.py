"""CLI utilities."""

import click

from pkgdb.config.models import PkgDbConfig


def parse_attr_path(value: str) -> tuple[str, ...]:
    """Split a dotted attribute path such as ``legacyPackages.x86_64-linux``.

    Raises:
        click.BadParameter: If the path has an empty component
    """
    parts = tuple(value.split("."))
    if not all(parts):
        raise click.BadParameter(f"invalid attribute path: '{value}'")
    return parts


def get_config(ctx: click.Context) -> PkgDbConfig:
    """Config loaded by the root group (defaults when a command is invoked directly)."""
    obj = ctx.find_object(dict)
    if obj is None or "config" not in obj:
        return PkgDbConfig()
    config: PkgDbConfig = obj["config"]
    return config
