import logging

from fastapi import APIRouter, Request, Response
from sqlalchemy.exc import SQLAlchemyError

from ghostops.core.errors import NO_STORE_HEADERS, ConfigError, GateError
from ghostops.routes.generation import bearer_from
from ghostops.schemas.rights import ActivateRightRequest, ActivateRightResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["rights"])


@router.post("/ghostops-activate-right", response_model=ActivateRightResponse)
def activate_right_route(body: ActivateRightRequest, request: Request, response: Response):
    """
    Turns a paid Checkout Session into a durable right for the signed-in user.
    """
    state = request.app.state
    bearer = bearer_from(request)
    if not bearer:
        raise GateError("missing_bearer", "A Supabase access token is required (Authorization: Bearer ...).")

    resolver = state.resolver
    who = resolver.identify(bearer)
    if not who.ok:
        raise GateError(who.reason, debug=who.debug)

    product = state.settings.product(body.niveau_produit)
    if not product.stripe_price_id:
        raise ConfigError(f"Stripe price id missing for {product.key}")

    paid = resolver.verify_payment(body.cs_id, product.stripe_price_id)
    if not paid.ok:
        raise GateError(paid.reason, debug=paid.debug)

    rights = resolver.rights
    if rights is None:
        raise ConfigError("DATABASE_URL is not configured (rights lookup)")

    try:
        droit = rights.activate(who.user_id, product.key)
    except (SQLAlchemyError, RuntimeError) as e:
        logger.error("right activation failed for product=%s: %s", product.key, type(e).__name__)
        raise GateError(
            "rights_write_failed",
            debug={"message": type(e).__name__, "hint": "unique constraint on (user_id, niveau_produit) required"},
        )

    logger.info("right activated product=%s", product.key)
    response.headers.update(NO_STORE_HEADERS)
    return ActivateRightResponse(
        droit=droit,
        stripe={"cs_id": paid.checkout.id, "paid": True},
        user={"id": who.user_id, "email": who.email},
    )
