"""pkgdb status command - show what a database holds."""

import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from pkgdb.cli.utils import get_config
from pkgdb.core.errors import PkgDbError
from pkgdb.index import PkgDb


@click.command()
@click.argument(
    "db_path", metavar="DB", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status_command(ctx: click.Context, db_path: Path, as_json: bool) -> None:
    """Show the source, versions and crawl progress of DB."""
    config = get_config(ctx)
    try:
        with PkgDb(db_path, config=config.database) as db:
            versions = db.get_db_versions()
            locked_input = db.locked_input
            prefixes = [
                (f"{category.attr_name}.{system.attr_name}", system.done)
                for category in db.get_children()
                for system in db.get_children(category.id)  # type: ignore[arg-type]
            ]
            packages = db.count_packages()
            attr_sets = db.count_attr_sets()
            attr_sets_done = db.count_attr_sets(done=True)
    except PkgDbError as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(
            json.dumps(
                {
                    "source": locked_input.model_dump() if locked_input else None,
                    "versions": versions.model_dump(),
                    "packages": packages,
                    "attr_sets": attr_sets,
                    "attr_sets_done": attr_sets_done,
                    "prefixes": {name: done for name, done in prefixes},
                }
            )
        )
        return

    console = Console()
    if locked_input is not None:
        console.print(f"Source: {locked_input.string} ({locked_input.fingerprint})")
    else:
        console.print("Source: [dim]none recorded[/dim]")
    console.print(
        f"Versions: pkgdb {versions.pkgdb}, tables v{versions.tables}, views v{versions.views}"
    )
    console.print(f"Packages: {packages}")
    console.print(f"Attribute sets: {attr_sets_done}/{attr_sets} done")

    if prefixes:
        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Prefix")
        table.add_column("Done")
        for name, done in prefixes:
            table.add_row(name, "[green]yes[/green]" if done else "[yellow]no[/yellow]")
        console.print(table)
