"""recordQL entity mapping: Record, its field table, and join column references."""
from recordql.schema.column_reference import ColumnReference
from recordql.schema.record import FieldSpec, Record, TableSpec

__all__ = [
    "ColumnReference",
    "FieldSpec",
    "Record",
    "TableSpec",
]
