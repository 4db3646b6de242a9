# apps/api/ghostops/core/config.py

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict

from dotenv import load_dotenv


def load_env() -> str:
    """
    Load the .env that lives in apps/api/.env deterministically.
    Returns the absolute env path used (useful for debug).
    """
    # ghostops/core/config.py -> ghostops/core -> ghostops -> apps/api
    api_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
    env_path = os.path.join(api_root, ".env")
    load_dotenv(dotenv_path=env_path, override=True)
    return env_path


def getenv_required(key: str) -> str:
    val = os.getenv(key)
    if not val:
        raise RuntimeError(f"{key} missing. Put it in apps/api/.env")
    return val


def getenv_default(key: str, default: str) -> str:
    return (os.getenv(key) or default).strip()


def getenv_int(key: str, default: int) -> int:
    # Non-numeric or non-positive values fall back to the default.
    raw = (os.getenv(key) or "").strip()
    try:
        val = int(raw)
    except ValueError:
        return default
    return val if val > 0 else default


def getenv_float(key: str, default: float) -> float:
    raw = (os.getenv(key) or "").strip()
    try:
        val = float(raw)
    except ValueError:
        return default
    return val if val > 0 else default


DEFAULT_MODEL = "gpt-4.1-mini"

# product key -> (env prefix, label, max iters, session ttl seconds)
PRODUCT_DEFAULTS = {
    "diagnostic": ("DIAGNOSTIC", "GhostOps Diagnostic IA", 5, 7200),
    "studio": ("STUDIO", "GhostOps Studio Scénarios", 10, 10800),
    "pre-brief": ("PREBRIEF", "GhostOps Pré-brief Board", 15, 14400),
}


@dataclass(frozen=True)
class ProductSettings:
    key: str
    label: str
    token_secret: str
    max_iters: int
    ttl_seconds: int
    stripe_price_id: str
    model_initial: str
    model_followup: str
    max_output_tokens: int
    max_output_tokens_continue: int


@dataclass(frozen=True)
class Settings:
    openai_api_key: str
    stripe_secret_key: str
    supabase_url: str
    supabase_service_role_key: str
    database_url: str
    rights_table: str
    openai_timeout_s: float
    http_timeout_s: float
    log_level: str
    products: Dict[str, ProductSettings]

    def product(self, key: str) -> ProductSettings:
        try:
            return self.products[key]
        except KeyError:
            raise ValueError(f"unknown product: {key}") from None


def _load_product(key: str, shared_secret: str) -> ProductSettings:
    prefix, label, max_iters, ttl = PRODUCT_DEFAULTS[key]
    env = f"GHOSTOPS_{prefix}"
    model = getenv_default(f"{env}_MODEL", DEFAULT_MODEL)
    return ProductSettings(
        key=key,
        label=label,
        token_secret=getenv_default(f"{env}_TOKEN_SECRET", shared_secret),
        max_iters=getenv_int(f"{env}_MAX_ITERS", max_iters),
        ttl_seconds=getenv_int(f"{env}_SESSION_TTL_SECONDS", ttl),
        stripe_price_id=getenv_default(f"{env}_STRIPE_PRICE_ID", ""),
        model_initial=getenv_default(f"{env}_MODEL_INITIAL", model),
        model_followup=getenv_default(f"{env}_MODEL_FOLLOWUP", model),
        max_output_tokens=getenv_int(f"{env}_MAX_OUTPUT_TOKENS", 1100),
        max_output_tokens_continue=getenv_int(f"{env}_MAX_OUTPUT_TOKENS_CONTINUE", 900),
    )


def load_settings() -> Settings:
    """
    Read the process environment once. Missing credentials stay empty here;
    each request path reports them as configuration errors when it needs them.
    """
    shared_secret = getenv_default("GHOSTOPS_TOKEN_SECRET", "")
    return Settings(
        openai_api_key=getenv_default("OPENAI_API_KEY", ""),
        stripe_secret_key=getenv_default("STRIPE_SECRET_KEY", ""),
        supabase_url=getenv_default("SUPABASE_URL", "").rstrip("/"),
        supabase_service_role_key=getenv_default("SUPABASE_SERVICE_ROLE_KEY", ""),
        database_url=getenv_default("DATABASE_URL", ""),
        rights_table=getenv_default("GHOSTOPS_RIGHTS_TABLE", "droits"),
        openai_timeout_s=getenv_float("GHOSTOPS_OPENAI_TIMEOUT_S", 55.0),
        http_timeout_s=getenv_float("GHOSTOPS_HTTP_TIMEOUT_S", 10.0),
        log_level=getenv_default("LOG_LEVEL", "INFO"),
        products={key: _load_product(key, shared_secret) for key in PRODUCT_DEFAULTS},
    )
