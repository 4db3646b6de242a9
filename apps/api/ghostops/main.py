import logging
from typing import Optional
from urllib.parse import urlparse

from fastapi import FastAPI

from ghostops.core.config import Settings, load_env, load_settings
from ghostops.core.db import make_engine
from ghostops.core.errors import install_error_handlers
from ghostops.core.log import configure_logging
from ghostops.routes.checkout import router as checkout_router
from ghostops.routes.generation import router as generation_router
from ghostops.routes.health import router as health_router
from ghostops.routes.rights import router as rights_router
from ghostops.services.entitlement_service import EntitlementResolver
from ghostops.services.generation_service import GenerationOrchestrator
from ghostops.services.metering_service import UsageMeter
from ghostops.services.rights_service import SqlRightsStore
from ghostops.wiring.openai_responses import OpenAIResponses
from ghostops.wiring.stripe_checkout import StripeCheckout
from ghostops.wiring.supabase_auth import SupabaseIdentity

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    payments=None,
    identity=None,
    rights=None,
    generator=None,
) -> FastAPI:
    """
    Collaborators default to the real Stripe / Supabase / OpenAI adapters
    built from settings; tests pass fakes instead.
    """
    if settings is None:
        env_path = load_env()
        settings = load_settings()
    else:
        env_path = None

    configure_logging(settings.log_level)

    engine = make_engine(settings.database_url)

    # Safe debug (no password)
    if engine is not None:
        u = urlparse(settings.database_url)
        logger.info("ENV FILE: %s DB host: %s DB user: %s", env_path, u.hostname, u.username)

    if payments is None and settings.stripe_secret_key:
        payments = StripeCheckout(settings.stripe_secret_key)
    if identity is None and settings.supabase_url and settings.supabase_service_role_key:
        identity = SupabaseIdentity(
            settings.supabase_url,
            settings.supabase_service_role_key,
            timeout_s=settings.http_timeout_s,
        )
    if rights is None and engine is not None:
        rights = SqlRightsStore(engine, settings.rights_table)
    if generator is None:
        generator = OpenAIResponses(settings.openai_api_key)

    resolver = EntitlementResolver(payments=payments, identity=identity, rights=rights)

    app = FastAPI(title="GhostOps API", version="0.1.0")

    app.state.settings = settings
    app.state.engine = engine
    app.state.resolver = resolver
    app.state.meter = UsageMeter(resolver)
    app.state.orchestrator = GenerationOrchestrator(generator, timeout_s=settings.openai_timeout_s)

    install_error_handlers(app)

    app.include_router(health_router)
    app.include_router(generation_router)
    app.include_router(rights_router)
    app.include_router(checkout_router)

    return app


app = create_app()
