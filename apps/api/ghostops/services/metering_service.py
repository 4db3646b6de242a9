# apps/api/ghostops/services/metering_service.py

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple

from ghostops.core.config import ProductSettings
from ghostops.core.errors import ConfigError
from ghostops.services import token_service
from ghostops.services.entitlement_service import EntitlementResolver, Verdict
from ghostops.services.token_service import SessionRecord

# Token states
NO_TOKEN = "no_token"
VALID_ACTIVE = "valid_active"
VALID_EXPIRED = "valid_expired"
VALID_EXHAUSTED = "valid_exhausted"
INVALID = "invalid"


@dataclass(frozen=True)
class GateDecision:
    state: str
    record: Optional[SessionRecord] = None
    reason: Optional[str] = None
    created: bool = False
    debug: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.reason is None and self.record is not None


def _reject(state: str, reason: str, **debug: Any) -> GateDecision:
    return GateDecision(state=state, reason=reason, debug={"reason": reason, **debug})


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and (not math.isfinite(value) or not value.is_integer()):
        return None
    return int(value)


class UsageMeter:
    """
    Decides whether a request may reach generation, and computes the
    rotated token afterwards. All state travels in the token itself.
    """

    def __init__(self, resolver: EntitlementResolver):
        self.resolver = resolver

    @staticmethod
    def _secret(product: ProductSettings) -> str:
        if not product.token_secret:
            raise ConfigError(
                f"token secret for {product.key} is not configured "
                "(GHOSTOPS_TOKEN_SECRET or the per-product override)"
            )
        return product.token_secret

    def _bootstrap(self, product: ProductSettings, *, cs_id: str, bearer: str, now: int) -> GateDecision:
        verdict: Verdict = self.resolver.resolve(product, cs_id=cs_id, bearer=bearer, now=now)
        if not verdict.ok:
            return GateDecision(state=NO_TOKEN, reason=verdict.reason, debug=verdict.debug)
        return GateDecision(state=VALID_ACTIVE, record=verdict.record, created=True)

    def authorize(
        self,
        product: ProductSettings,
        *,
        token: str = "",
        cs_id: str = "",
        bearer: str = "",
        is_continue: bool = False,
        now: int,
    ) -> GateDecision:
        secret = self._secret(product)
        token = (token or "").strip()
        cs_id = (cs_id or "").strip()
        bearer = (bearer or "").strip()

        if not token:
            # continuation has no bootstrap path
            if is_continue:
                return _reject(NO_TOKEN, "missing_token")
            return self._bootstrap(product, cs_id=cs_id, bearer=bearer, now=now)

        decoded = token_service.decode(token, secret)
        if not decoded.ok:
            return _reject(INVALID, decoded.reason)
        p = decoded.payload

        if p.get("prd") != product.key:
            return _reject(INVALID, "wrong_product")

        exp = _as_int(p.get("exp"))
        if not exp or now > exp:
            # replacement sessions are for plain retries, never for a continuation
            if (cs_id or bearer) and not is_continue:
                return self._bootstrap(product, cs_id=cs_id, bearer=bearer, now=now)
            return _reject(VALID_EXPIRED, "expired", exp=exp)

        iters = _as_int(p.get("itersLeft"))
        if iters is None or iters < 0:
            return _reject(INVALID, "bad_iters")
        if iters == 0:
            return _reject(VALID_EXHAUSTED, "exhausted", itersLeft=0, expiresAt=exp)

        uid = str(p.get("uid") or "").strip() or None
        if uid and bearer:
            who = self.resolver.identify(bearer)
            if who.ok and who.user_id != uid:
                return _reject(INVALID, "uid_mismatch")

        record = SessionRecord(
            subject_ref=str(p.get("cs_id") or ""),
            uses_remaining=iters,
            expires_at=exp,
            product=product.key,
            user_ref=uid,
            version=_as_int(p.get("v")) or token_service.TOKEN_VERSION,
        )
        return GateDecision(state=VALID_ACTIVE, record=record)

    def rotate(
        self,
        product: ProductSettings,
        record: SessionRecord,
        *,
        is_continue: bool,
    ) -> Tuple[SessionRecord, str]:
        """
        Called only after a successful generation. Continuation keeps the
        counter; expiry and subject never change.
        """
        remaining = max(0, record.uses_remaining)
        if not is_continue:
            remaining = max(0, remaining - 1)
        rotated = replace(record, uses_remaining=remaining, version=token_service.TOKEN_VERSION)
        return rotated, token_service.encode(rotated.to_payload(), self._secret(product))
