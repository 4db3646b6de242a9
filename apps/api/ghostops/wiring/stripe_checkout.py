# apps/api/ghostops/wiring/stripe_checkout.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import stripe


class PaymentLookupError(Exception):
    """Stripe could not return the Checkout Session (unknown id, network, auth)."""


@dataclass(frozen=True)
class CheckoutSummary:
    id: str
    status: Optional[str]
    payment_status: Optional[str]
    price_ids: List[str] = field(default_factory=list)
    mode: Optional[str] = None
    livemode: Optional[bool] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    customer_email: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def paid(self) -> bool:
        return self.payment_status == "paid"

    @property
    def complete(self) -> bool:
        return self.status == "complete" and self.paid


def _get(obj: Any, key: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def summarize_session(session: Any) -> CheckoutSummary:
    items = _get(_get(session, "line_items"), "data") or []
    price_ids = []
    for item in items:
        pid = _get(_get(item, "price"), "id")
        if isinstance(pid, str) and pid.strip():
            price_ids.append(pid.strip())

    metadata = _get(session, "metadata") or {}
    try:
        metadata = dict(metadata)
    except (TypeError, ValueError, AttributeError):
        metadata = {}

    return CheckoutSummary(
        id=str(_get(session, "id") or ""),
        status=_get(session, "status"),
        payment_status=_get(session, "payment_status"),
        price_ids=price_ids,
        mode=_get(session, "mode"),
        livemode=_get(session, "livemode"),
        amount_total=_get(session, "amount_total"),
        currency=_get(session, "currency"),
        customer_email=_get(_get(session, "customer_details"), "email"),
        metadata=metadata,
    )


class StripeCheckout:
    """
    Payment verification against Stripe Checkout Sessions. Read-only.
    """

    def __init__(self, api_key: str):
        self.api_key = api_key

    def retrieve(self, cs_id: str) -> CheckoutSummary:
        try:
            session = stripe.checkout.Session.retrieve(
                cs_id,
                api_key=self.api_key,
                expand=["line_items.data.price"],
            )
        except stripe.StripeError as e:
            # Keep error stable; Stripe messages can be long
            raise PaymentLookupError(f"{type(e).__name__}: {str(e)[:300]}") from e
        return summarize_session(session)
