"""pkgdb scrape command - index a namespace dump into a database."""

from collections.abc import Mapping
from functools import partial
from pathlib import Path

import click
from rich.console import Console

from pkgdb.cli.utils import get_config, parse_attr_path
from pkgdb.config.constants import RESTART_EXIT_CODE
from pkgdb.config.models import PkgDbConfig
from pkgdb.core.errors import PkgDbError, ResourceExhaustedError
from pkgdb.core.logging import get_log_file_path
from pkgdb.index import (
    JsonTreeEvaluator,
    PkgDb,
    Scraper,
    ScrapeStats,
    Supervisor,
    load_json_evaluator,
    locked_input_for,
)


def default_prefixes(evaluator: JsonTreeEvaluator, config: PkgDbConfig) -> list[tuple[str, ...]]:
    """Every ``<category>.<system>`` in the dump for the known categories."""
    root = evaluator.lookup(())
    prefixes: list[tuple[str, ...]] = []
    for category in (config.scrape.plain_category, config.scrape.legacy_category):
        if category not in root:
            continue
        systems = root[category]
        for system in evaluator.attr_names(systems):
            if system == config.scrape.recurse_marker or not isinstance(systems[system], Mapping):
                continue
            prefixes.append((category, system))
    return prefixes


def scrape_source(
    source: Path,
    db_path: Path,
    prefixes: list[tuple[str, ...]],
    config: PkgDbConfig,
    *,
    isolate: bool,
) -> ScrapeStats:
    """Scrape ``prefixes`` of ``source`` into ``db_path`` and return the totals."""
    locked_input = locked_input_for(source)
    total = ScrapeStats()

    if isolate:
        supervisor = Supervisor(
            db_path,
            locked_input,
            partial(load_json_evaluator, source.resolve(), config.scrape.recurse_marker),
            config.scrape,
            db_config=config.database,
            log_config=config.logging,
        )
        for prefix in prefixes:
            total.merge(supervisor.run(prefix))
        return total

    evaluator = JsonTreeEvaluator.from_file(source, recurse_marker=config.scrape.recurse_marker)
    with PkgDb(db_path, locked_input, config=config.database) as db:
        scraper = Scraper(db, evaluator, config.scrape)
        try:
            for prefix in prefixes:
                total.merge(scraper.scrape(prefix))
        finally:
            db.db.checkpoint("TRUNCATE")
    return total


@click.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("db_path", metavar="DB", type=click.Path(dir_okay=False, path_type=Path))
@click.argument("prefixes", metavar="[PREFIX]...", nargs=-1)
@click.option(
    "--isolate/--no-isolate",
    default=None,
    help="Scrape every target in a fresh worker process (default: scrape.isolate_targets)",
)
@click.pass_context
def scrape_command(
    ctx: click.Context,
    source: Path,
    db_path: Path,
    prefixes: tuple[str, ...],
    isolate: bool | None,
) -> None:
    """Index the packages in namespace dump SOURCE into DB.

    PREFIX is a dotted attribute path such as legacyPackages.x86_64-linux.
    Without one, every system under packages and legacyPackages is scraped.

    Exits with status 75 when evaluation runs out of memory; rerun the same
    command to resume where it stopped.
    """
    console = Console(stderr=True)
    config = get_config(ctx)
    if isolate is None:
        isolate = config.scrape.isolate_targets

    try:
        if prefixes:
            paths = [parse_attr_path(p) for p in prefixes]
        else:
            evaluator = JsonTreeEvaluator.from_file(
                source, recurse_marker=config.scrape.recurse_marker
            )
            paths = default_prefixes(evaluator, config)
        if not paths:
            console.print("[yellow]Nothing to scrape[/yellow] - no package categories found")
            return
        stats = scrape_source(source, db_path, paths, config, isolate=isolate)
    except ResourceExhaustedError as e:
        console.print(f"[yellow]{e.message}[/yellow]")
        console.print("[dim]Progress was saved; rerun to resume.[/dim]")
        log_file = get_log_file_path()
        if log_file is not None:
            console.print(f"[dim]Details in {log_file}[/dim]", soft_wrap=True)
        ctx.exit(RESTART_EXIT_CODE)
    except PkgDbError as e:
        raise click.ClickException(str(e)) from e

    console.print(
        f"[green]Scraped[/green] {', '.join('.'.join(p) for p in paths)}: "
        f"{stats.packages} packages, {stats.targets_done} attribute sets"
        + (f", {stats.targets_skipped} already done" if stats.targets_skipped else "")
        + (f", {stats.skipped_errors} evaluation errors skipped" if stats.skipped_errors else "")
    )
