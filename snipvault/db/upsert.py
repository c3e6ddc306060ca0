"""Single-statement INSERT ... ON CONFLICT helpers."""

from typing import Any, Dict, Iterable, Optional

from sqlalchemy import Table
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.orm import Session


def upsert(
    db: Session,
    table: Table,
    values: Dict[str, Any],
    index_elements: Iterable[str],
    update: Optional[Dict[str, Any]] = None,
) -> None:
    """Insert a row, or update it in place when the key already exists.

    ``update`` maps column names to SQL expressions evaluated on conflict. When
    omitted the statement becomes insert-if-absent. The caller commits.
    """
    dialect = db.get_bind().dialect.name

    if dialect == "mysql":
        stmt = mysql.insert(table).values(**values)
        if update:
            stmt = stmt.on_duplicate_key_update(**update)
        else:
            stmt = stmt.prefix_with("IGNORE")
        db.execute(stmt)
        return

    dialect_module = postgresql if dialect == "postgresql" else sqlite
    stmt = dialect_module.insert(table).values(**values)
    if update:
        stmt = stmt.on_conflict_do_update(index_elements=list(index_elements), set_=update)
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(index_elements))
    db.execute(stmt)
