"""The entity-mapping contract: ``Record`` and its declared field table.

A concrete entity subclasses :class:`Record`, declares its fields as pydantic
model fields, and names the physical table and columns explicitly::

    class User(Record):
        __tablename__ = "users"
        __columns__ = {"name": "name", "email": "email", "email_domain": "email_domain"}
        __computed__ = {"email_domain": "split_part(email, '@', 2)"}

        name: str = ""
        email: str = ""
        email_domain: str | None = None

When the class is created a :class:`TableSpec` is built once from those
declarations.  The query builders iterate this table to produce column
lists, ON-clauses and row-demultiplexing keys; nothing inspects instance
attributes at query time.
"""

from __future__ import annotations

import re
import types
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar, Mapping, Optional, Union, get_args, get_origin

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from recordql.errors import EntityDefinitionError
from recordql.utils.logging import get_logger

logger = get_logger(__name__)

#: Plain SQL identifiers: the only column/table names a Record may declare.
IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

#: Reserved for statement placeholders; may not appear in computed SQL.
PLACEHOLDER_TOKEN = "$"

BASE_COLUMNS: dict[str, str] = {
    "id": "id",
    "is_deleted": "is_deleted",
    "create_date": "create_date",
    "update_date": "update_date",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Field descriptor table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldSpec:
    """One declared field of a Record type.

    Attributes:
        name: Python attribute name.
        column: Physical column name (or output alias for computed fields).
        nullable: Whether ``None`` is an accepted value.
        computed: SQL expression for computed fields, else ``None``.
        temporal: Whether the field holds a timestamp.
        adapter: Type adapter used to check row values.
        type_name: Declared annotation, for diagnostics.
    """

    name: str
    column: str
    nullable: bool
    computed: str | None
    temporal: bool
    adapter: TypeAdapter
    type_name: str

    @property
    def is_computed(self) -> bool:
        return self.computed is not None

    def accepts(self, value: Any) -> bool:
        """True when ``value`` matches the declared type.

        Timestamps accept anything pydantic can parse as one; every other
        type is checked strictly, so ``"1"`` is not an ``int`` and ``1`` is
        not a ``bool``.
        """
        try:
            self.adapter.validate_python(value, strict=not self.temporal)
        except ValidationError:
            return False
        return True

    def coerce(self, value: Any) -> Any:
        return self.adapter.validate_python(value, strict=not self.temporal)


@dataclass(frozen=True)
class TableSpec:
    """The declared field table for one Record type."""

    table: str | None
    fields: tuple[FieldSpec, ...]

    def get(self, name: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    @property
    def stored(self) -> tuple[FieldSpec, ...]:
        """Fields backed by a physical column (computed fields excluded)."""
        return tuple(f for f in self.fields if not f.is_computed)

    @property
    def computed(self) -> tuple[FieldSpec, ...]:
        return tuple(f for f in self.fields if f.is_computed)


def _is_nullable(annotation: Any) -> bool:
    if annotation is Any or annotation is None or annotation is type(None):
        return True
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        return type(None) in get_args(annotation)
    return False


def _is_temporal(annotation: Any) -> bool:
    if annotation is datetime:
        return True
    return datetime in get_args(annotation)


# ---------------------------------------------------------------------------
# Record base
# ---------------------------------------------------------------------------


class Record(BaseModel):
    """Base class for every mapped entity.

    Class attributes declared by subclasses:

    ``__tablename__``
        The physical relation the entity maps to.
    ``__columns__``
        Field name to column name for every type-specific field, exactly once.
    ``__computed__``
        Field name to SQL expression for fields that are only ever read.
    """

    __tablename__: ClassVar[Optional[str]] = None
    __columns__: ClassVar[dict[str, str]] = {}
    __computed__: ClassVar[dict[str, str]] = {}
    __table_spec__: ClassVar[TableSpec]

    id: str = ""
    is_deleted: bool = False
    create_date: datetime = Field(default_factory=_utcnow)
    update_date: Optional[datetime] = None

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        cls.__table_spec__ = _build_table_spec(cls)

    # ------------------------------------------------------------------
    # Declared mapping
    # ------------------------------------------------------------------

    @classmethod
    def table_spec(cls) -> TableSpec:
        return cls.__table_spec__

    @classmethod
    def table_name(cls) -> str:
        """Return the physical table name.

        Raises:
            EntityDefinitionError: If the class declares no ``__tablename__``.
        """
        table = cls.__table_spec__.table
        if table is None:
            raise EntityDefinitionError(cls.__name__, "no __tablename__ declared")
        return table

    @classmethod
    def field_to_column(cls) -> dict[str, str]:
        """Return the merged field -> column mapping (base fields first)."""
        return {f.name: f.column for f in cls.__table_spec__.fields}

    @classmethod
    def computed_fields(cls) -> dict[str, str]:
        """Return computed field -> SQL expression."""
        return {f.name: f.computed for f in cls.__table_spec__.computed}

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Record":
        return cls().populate_from_row(row)

    # ------------------------------------------------------------------
    # Population
    # ------------------------------------------------------------------

    def populate_from_row(self, row: Mapping[str, Any] | None) -> "Record":
        """Assign fields from a database row keyed by column name."""
        return self._populate(row or {}, by_column=True)

    def populate_from_object(self, obj: Mapping[str, Any] | None) -> "Record":
        """Assign fields from a payload keyed by field name."""
        return self._populate(obj or {}, by_column=False)

    def _populate(self, source: Mapping[str, Any], by_column: bool) -> "Record":
        for spec in self.__table_spec__.fields:
            key = spec.column if by_column else spec.name
            if key not in source:
                continue
            value = source[key]
            if value is None:
                if spec.nullable:
                    setattr(self, spec.name, None)
                continue
            if isinstance(value, uuid.UUID) and not spec.accepts(value):
                value = str(value)
            if not spec.accepts(value):
                logger.warning(
                    "record.type_mismatch",
                    record=type(self).__name__,
                    field=spec.name,
                    expected=spec.type_name,
                    received=type(value).__name__,
                )
                continue
            setattr(self, spec.name, spec.coerce(value) if spec.temporal else value)
        return self

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def to_record(self) -> dict[str, Any]:
        """Return every field keyed by field name."""
        return {f.name: getattr(self, f.name) for f in self.__table_spec__.fields}

    def to_row(self) -> dict[str, Any]:
        """Return every field keyed by column name."""
        record = self.to_record()
        return {f.column: record[f.name] for f in self.__table_spec__.fields}


def _build_table_spec(cls: type[Record]) -> TableSpec:
    """Validate a Record subclass's declarations and build its field table.

    Raises:
        EntityDefinitionError: On any declaration inconsistency.
    """
    name = cls.__name__
    columns = dict(cls.__columns__)
    computed = dict(cls.__computed__)
    table = cls.__tablename__

    if table is not None and not IDENTIFIER_RE.match(table):
        raise EntityDefinitionError(name, f"invalid table name '{table}'")

    own_fields = [f for f in cls.model_fields if f not in BASE_COLUMNS]
    missing = [f for f in own_fields if f not in columns]
    if missing:
        raise EntityDefinitionError(name, f"no column declared for field(s) {missing}")
    unknown = [f for f in columns if f not in own_fields]
    if unknown:
        raise EntityDefinitionError(name, f"__columns__ names unknown field(s) {unknown}")
    stray = [f for f in computed if f not in columns]
    if stray:
        raise EntityDefinitionError(name, f"__computed__ names unknown field(s) {stray}")
    for field_name, expression in computed.items():
        if PLACEHOLDER_TOKEN in expression:
            raise EntityDefinitionError(
                name, f"computed expression for '{field_name}' must not contain '$'"
            )

    mapping = {**BASE_COLUMNS, **columns}
    seen: set[str] = set()
    for field_name, column in mapping.items():
        if not IDENTIFIER_RE.match(column):
            raise EntityDefinitionError(name, f"invalid column name '{column}' for '{field_name}'")
        if column in seen:
            raise EntityDefinitionError(name, f"column '{column}' is mapped more than once")
        seen.add(column)

    specs: list[FieldSpec] = []
    for field_name in cls.model_fields:
        info = cls.model_fields[field_name]
        if info.is_required():
            raise EntityDefinitionError(name, f"field '{field_name}' must declare a default")
        specs.append(
            FieldSpec(
                name=field_name,
                column=mapping[field_name],
                nullable=_is_nullable(info.annotation),
                computed=computed.get(field_name),
                temporal=_is_temporal(info.annotation),
                adapter=TypeAdapter(info.annotation),
                type_name=getattr(info.annotation, "__name__", str(info.annotation)),
            )
        )
    return TableSpec(table=table, fields=tuple(specs))


Record.__table_spec__ = _build_table_spec(Record)
