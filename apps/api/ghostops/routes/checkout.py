import logging

from fastapi import APIRouter, Request, Response

from ghostops.core.errors import NO_STORE_HEADERS, ConfigError, GateError
from ghostops.schemas.checkout import VerifyCheckoutRequest, VerifyCheckoutResponse
from ghostops.wiring.stripe_checkout import PaymentLookupError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["checkout"])


@router.post("/ghostops-checkout-verify", response_model=VerifyCheckoutResponse)
def verify_checkout_route(body: VerifyCheckoutRequest, request: Request, response: Response):
    payments = request.app.state.resolver.payments
    if payments is None:
        raise ConfigError("STRIPE_SECRET_KEY is not configured")

    try:
        summary = payments.retrieve(body.cs_id.strip())
    except PaymentLookupError as e:
        logger.warning("checkout verify failed: %s", e)
        raise GateError("payment_lookup_failed", debug={"message": str(e)})

    response.headers.update(NO_STORE_HEADERS)
    return VerifyCheckoutResponse(
        verified=summary.complete,
        status=summary.status,
        payment_status=summary.payment_status,
        mode=summary.mode,
        livemode=summary.livemode,
        amount_total=summary.amount_total,
        currency=summary.currency,
        id=summary.id or None,
    )
