"""SQLModel definitions for the package set index.

Single source of truth for all table schemas.

The index mirrors the internal nodes of an evaluated attribute tree
(``attr_sets``) and the package definitions found at its leaves
(``packages``). Descriptions are shared between packages. ``db_versions``
and ``locked_inputs`` describe the database itself.
"""

import re
from enum import Enum
from typing import Any, Final, NewType

from pydantic import field_validator
from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from pkgdb.config.constants import FINGERPRINT_HEX_LENGTH

AttrSetId = NewType("AttrSetId", int)

ROOT_ID: Final = AttrSetId(0)
"""Virtual root of the attribute tree. Never allocated to a real row."""


def is_root(attr_set_id: int) -> bool:
    return attr_set_id == ROOT_ID


# ============================================================================
# ENUMS
# ============================================================================


class ConflictPolicy(str, Enum):
    """What to do when a package already exists at ``(parent_id, attr_name)``."""

    KEEP_EXISTING = "keep_existing"
    OVERWRITE = "overwrite"

    @property
    def sql_prefix(self) -> str:
        return "OR REPLACE" if self is ConflictPolicy.OVERWRITE else "OR IGNORE"


# ============================================================================
# TABLES
# ============================================================================


class DbVersion(SQLModel, table=True):
    """Schema/engine version record, one row per name."""

    __tablename__ = "db_versions"

    name: str = Field(primary_key=True)
    version: int


class LockedInputRecord(SQLModel, table=True):
    """The source snapshot this database indexes (at most one row)."""

    __tablename__ = "locked_inputs"

    fingerprint: str = Field(primary_key=True)
    string: str
    attrs: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))


class AttrSet(SQLModel, table=True):
    """Internal node of the attribute tree. ``parent == 0`` is a top-level node."""

    __tablename__ = "attr_sets"
    __table_args__ = (UniqueConstraint("attr_name", "parent"),)

    id: int | None = Field(default=None, primary_key=True)
    attr_name: str
    parent: int = Field(default=ROOT_ID, index=True)
    done: bool = Field(default=False)


class Description(SQLModel, table=True):
    """Free-text package description, deduplicated by exact text."""

    __tablename__ = "descriptions"

    id: int | None = Field(default=None, primary_key=True)
    description: str = Field(unique=True)


class Package(SQLModel, table=True):
    """Package definition found at a leaf of the attribute tree."""

    __tablename__ = "packages"
    __table_args__ = (UniqueConstraint("parent_id", "attr_name"),)

    id: int | None = Field(default=None, primary_key=True)
    parent_id: int = Field(foreign_key="attr_sets.id", index=True)
    attr_name: str
    name: str
    pname: str | None = None
    version: str | None = None
    semver: str | None = None
    license: str | None = None
    outputs: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    outputs_to_install: list[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    broken: bool | None = None
    unfree: bool | None = None
    description_id: int | None = Field(default=None, foreign_key="descriptions.id")


TABLES: tuple[type[SQLModel], ...] = (DbVersion, LockedInputRecord, AttrSet, Description, Package)
"""Tables in creation order."""


# ============================================================================
# NON-TABLE MODELS (Pydantic only, for data transfer)
# ============================================================================

_HEX_RE = re.compile(r"^[0-9a-f]+$")


class LockedInput(SQLModel):
    """Locked source reference plus its content fingerprint."""

    fingerprint: str
    string: str
    attrs: dict[str, Any] = Field(default_factory=dict)

    @field_validator("fingerprint")
    @classmethod
    def validate_fingerprint(cls, v: str) -> str:
        v = v.lower()
        if len(v) != FINGERPRINT_HEX_LENGTH or not _HEX_RE.match(v):
            raise ValueError(f"fingerprint must be {FINGERPRINT_HEX_LENGTH} hex characters: {v!r}")
        return v


class PackageInfo(SQLModel):
    """Metadata extracted by the evaluator from a package leaf.

    ``has_meta`` gates the optional fields: when it is false the store writes
    NULL for license, broken, unfree and description without reading them.
    """

    name: str
    pname: str | None = None
    version: str | None = None
    semver: str | None = None
    outputs: list[str] = Field(default_factory=lambda: ["out"])
    outputs_to_install: list[str] = Field(default_factory=lambda: ["out"])
    has_meta: bool = False
    license: str | None = None
    broken: bool | None = None
    unfree: bool | None = None
    description: str | None = None
    is_derivation: bool = True


class DbVersionInfo(SQLModel):
    """Versions recorded in ``db_versions``."""

    pkgdb: int
    tables: int
    views: int
