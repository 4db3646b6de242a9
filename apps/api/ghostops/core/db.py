from typing import Optional
from urllib.parse import urlparse, parse_qsl, urlencode, urlunparse

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine


def normalize_db_url(db_url: str) -> str:
    """
    Ensure sslmode=require is present for the Supabase pooler and that the
    psycopg (v3) driver is selected.
    """
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql+psycopg://", 1)
    elif db_url.startswith("postgresql://"):
        db_url = db_url.replace("postgresql://", "postgresql+psycopg://", 1)

    u = urlparse(db_url)
    q = dict(parse_qsl(u.query, keep_blank_values=True))
    if "sslmode" not in q:
        q["sslmode"] = "require"
        db_url = urlunparse(u._replace(query=urlencode(q)))
    return db_url


def make_engine(db_url: str) -> Optional[Engine]:
    if not db_url:
        return None
    db_url = normalize_db_url(db_url)
    return create_engine(db_url, pool_pre_ping=True)
