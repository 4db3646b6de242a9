# apps/api/ghostops/services/rights_service.py

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Mapping

from sqlalchemy.engine import Engine

from ghostops.repos import rights_repo


def _jsonable(row: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in row.items():
        if isinstance(value, datetime):
            out[key] = value.isoformat()
        elif value is None or isinstance(value, (str, int, float, bool)):
            out[key] = value
        else:
            out[key] = str(value)
    return out


class SqlRightsStore:
    """
    Entitlement rows in the Supabase Postgres rights table.
    """

    def __init__(self, engine: Engine, table: str = "droits"):
        self.engine = engine
        self.table = rights_repo.check_table_name(table)

    def has_active_right(self, user_id: str, product: str) -> bool:
        with self.engine.connect() as conn:
            return rights_repo.find_active_right(conn, self.table, user_id, product) is not None

    def activate(self, user_id: str, product: str) -> Dict[str, Any]:
        with self.engine.begin() as conn:
            row = rights_repo.upsert_active_right(conn, self.table, user_id, product)
        if not row:
            raise RuntimeError("upsert returned no row")
        return _jsonable(row)
