# apps/api/ghostops/repos/rights_repo.py

import re

from sqlalchemy import text

_IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


def check_table_name(table: str) -> str:
    # The table name is interpolated, so only plain identifiers are allowed.
    if not _IDENT.match(table or ""):
        raise ValueError(f"invalid rights table name: {table!r}")
    return table


def find_active_right(conn, table: str, user_id: str, product: str):
    """
    Returns the id of an active, non-revoked right for (user_id, product), or None.
    """
    table = check_table_name(table)
    return conn.execute(
        text(f"""
            select id
            from {table}
            where user_id = cast(:user_id as uuid)
              and niveau_produit = :product
              and statut = 'actif'
              and revoked_at is null
            limit 1
        """),
        {"user_id": user_id, "product": product},
    ).scalar()


def upsert_active_right(conn, table: str, user_id: str, product: str):
    """
    Creates the right or re-activates it (statut -> actif, revoked_at -> null).
    Needs a unique constraint on (user_id, niveau_produit).
    """
    table = check_table_name(table)
    return conn.execute(
        text(f"""
            insert into {table} (user_id, niveau_produit, statut, revoked_at)
            values (cast(:user_id as uuid), :product, 'actif', null)
            on conflict (user_id, niveau_produit)
            do update set statut = 'actif', revoked_at = null
            returning id, user_id, niveau_produit, statut, created_at, revoked_at
        """),
        {"user_id": user_id, "product": product},
    ).mappings().first()
