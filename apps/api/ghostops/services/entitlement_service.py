# apps/api/ghostops/services/entitlement_service.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from ghostops.core.config import ProductSettings
from ghostops.core.errors import ConfigError
from ghostops.services.token_service import SessionRecord
from ghostops.wiring.stripe_checkout import CheckoutSummary, PaymentLookupError
from ghostops.wiring.supabase_auth import IdentityError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Verdict:
    ok: bool
    reason: Optional[str] = None
    record: Optional[SessionRecord] = None
    user_id: Optional[str] = None
    email: Optional[str] = None
    checkout: Optional[CheckoutSummary] = None
    debug: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def fail(cls, reason: str, **debug: Any) -> "Verdict":
        return cls(ok=False, reason=reason, debug={"reason": reason, **debug})


class EntitlementResolver:
    """
    Mints a brand-new session record from exactly one external proof:
    a paid Stripe Checkout Session, or a Supabase user holding a right.
    Read-only toward both systems.
    """

    def __init__(self, *, payments=None, identity=None, rights=None):
        self.payments = payments
        self.identity = identity
        self.rights = rights

    def verify_payment(self, cs_id: str, expected_price_id: str = "") -> Verdict:
        cs_id = (cs_id or "").strip()
        if not cs_id:
            return Verdict.fail("missing_cs_id")
        if self.payments is None:
            raise ConfigError("STRIPE_SECRET_KEY is not configured")

        try:
            summary = self.payments.retrieve(cs_id)
        except PaymentLookupError as e:
            return Verdict.fail("stripe_retrieve_failed", message=str(e))

        if not summary.paid:
            return Verdict.fail("not_paid", status=summary.status, payment_status=summary.payment_status)

        expected = (expected_price_id or "").strip()
        if expected and expected not in summary.price_ids:
            return Verdict.fail("wrong_product")

        return Verdict(ok=True, checkout=summary)

    def identify(self, bearer: str) -> Verdict:
        bearer = (bearer or "").strip()
        if not bearer:
            return Verdict.fail("missing_bearer")
        if self.identity is None:
            raise ConfigError("SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY are not configured")

        try:
            user = self.identity.get_user(bearer)
        except IdentityError as e:
            logger.warning("identity lookup failed: %s", e)
            return Verdict.fail("identity_unavailable", message=str(e))

        if not user:
            return Verdict.fail("invalid_bearer")
        return Verdict(ok=True, user_id=user["id"], email=user.get("email"))

    def check_right(self, user_id: str, product_key: str) -> Verdict:
        if self.rights is None:
            raise ConfigError("DATABASE_URL is not configured (rights lookup)")
        try:
            found = self.rights.has_active_right(user_id, product_key)
        except SQLAlchemyError as e:
            logger.warning("rights lookup failed for product=%s: %s", product_key, type(e).__name__)
            return Verdict.fail("rights_query_failed", user_id=user_id)
        if not found:
            return Verdict.fail("no_right", user_id=user_id)
        return Verdict(ok=True, user_id=user_id)

    def resolve(
        self,
        product: ProductSettings,
        *,
        cs_id: str = "",
        bearer: str = "",
        now: int,
    ) -> Verdict:
        cs_id = (cs_id or "").strip()
        bearer = (bearer or "").strip()

        if cs_id:
            paid = self.verify_payment(cs_id, product.stripe_price_id)
            if not paid.ok:
                return paid
            record = SessionRecord(
                subject_ref=paid.checkout.id or cs_id,
                uses_remaining=product.max_iters,
                expires_at=now + product.ttl_seconds,
                product=product.key,
            )
            return Verdict(ok=True, record=record, checkout=paid.checkout)

        if bearer:
            who = self.identify(bearer)
            if not who.ok:
                return who
            right = self.check_right(who.user_id, product.key)
            if not right.ok:
                return right
            record = SessionRecord(
                subject_ref=f"sb_{who.user_id}",
                uses_remaining=product.max_iters,
                expires_at=now + product.ttl_seconds,
                product=product.key,
                user_ref=who.user_id,
            )
            return Verdict(ok=True, record=record, user_id=who.user_id, email=who.email)

        return Verdict.fail("missing_bearer")
