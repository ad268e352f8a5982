"""pkgdb done command - mark prefixes as crawled (or not)."""

from pathlib import Path

import click
from rich.console import Console

from pkgdb.cli.utils import get_config, parse_attr_path
from pkgdb.core.errors import PkgDbError
from pkgdb.index import PkgDb


@click.command()
@click.argument(
    "db_path", metavar="DB", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.argument("prefixes", metavar="PREFIX...", nargs=-1, required=True)
@click.option("--undo", is_flag=True, help="Clear the done flag so the prefix is crawled again")
@click.pass_context
def done_command(ctx: click.Context, db_path: Path, prefixes: tuple[str, ...], undo: bool) -> None:
    """Mark every attribute set under PREFIX done in DB.

    The next scrape skips prefixes marked done; --undo forces them to be
    crawled again.
    """
    console = Console(stderr=True)
    config = get_config(ctx)
    paths = [parse_attr_path(p) for p in prefixes]
    try:
        with PkgDb(db_path, config=config.database) as db:
            for path in paths:
                if not db.has_attr_set(path):
                    raise click.ClickException(f"no such prefix in {db_path}: {'.'.join(path)}")
                db.set_prefix_done(path, not undo, include_top_level=True)
                state = "[yellow]not done[/yellow]" if undo else "[green]done[/green]"
                console.print(f"{'.'.join(path)}: {state}")
    except PkgDbError as e:
        raise click.ClickException(str(e)) from e
