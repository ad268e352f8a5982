"""pkgdb - indexes the packages of an evaluated package set into SQLite."""

__version__ = "0.1.0"
