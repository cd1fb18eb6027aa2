"""
marketplace.services.schema_probe

Column capability probe for the orders table.

The schema is fixed by migrations; nothing branches on the probe at insert
time. It exists to catch an un-migrated database early:
- Django system check `marketplace.E001` (manage.py check / runserver)
- /health/?deep=1
"""

from __future__ import annotations

import logging
from typing import FrozenSet, List, Optional

from django.core import checks
from django.db import DatabaseError, connection

from marketplace.models import Order

log = logging.getLogger(__name__)


def _model_column_names(model_cls: type) -> FrozenSet[str]:
    return frozenset(f.column for f in model_cls._meta.concrete_fields)


class ColumnCapabilityProbe:
    def __init__(self, model_cls: type = Order, using=None) -> None:
        self.model_cls = model_cls
        self.connection = using or connection
        self._columns: Optional[FrozenSet[str]] = None

    @property
    def table(self) -> str:
        return self.model_cls._meta.db_table

    def columns(self, refresh: bool = False) -> FrozenSet[str]:
        if self._columns is None or refresh:
            with self.connection.cursor() as cursor:
                description = self.connection.introspection.get_table_description(cursor, self.table)
            self._columns = frozenset(col.name for col in description)
        return self._columns

    def table_exists(self) -> bool:
        return self.table in self.connection.introspection.table_names()

    def has_column(self, name: str) -> bool:
        return name in self.columns()

    def missing_required(self) -> List[str]:
        if not self.table_exists():
            return sorted(_model_column_names(self.model_cls))
        return sorted(_model_column_names(self.model_cls) - self.columns())

    def report(self) -> dict:
        missing = self.missing_required()
        return {"table": self.table, "ok": not missing, "missing_columns": missing}


@checks.register(checks.Tags.database)
def check_order_columns(app_configs=None, databases=None, **kwargs):
    if not databases or "default" not in databases:
        return []
    try:
        missing = ColumnCapabilityProbe().missing_required()
    except DatabaseError as e:
        log.warning("Schema probe could not inspect orders table: %s", e)
        return []
    if not missing:
        return []
    return [
        checks.Error(
            f"Orders table is missing columns: {', '.join(missing)}.",
            hint="Run `python manage.py migrate marketplace`.",
            obj=Order,
            id="marketplace.E001",
        )
    ]
