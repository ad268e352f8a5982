"""Allow ``python -m pkgdb``."""

from pkgdb.cli.main import cli

if __name__ == "__main__":
    cli()
