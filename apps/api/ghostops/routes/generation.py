# apps/api/ghostops/routes/generation.py

from __future__ import annotations

import logging
import re
import time

from fastapi import APIRouter, Request, Response

from ghostops.core.errors import NO_STORE_HEADERS, ConfigError, GateError
from ghostops.schemas.generation import (
    GenerationMeta,
    GenerationRequest,
    GenerationResponse,
    SessionMeta,
)
from ghostops.services.generation_service import (
    MAX_LAST_ASSISTANT_CHARS,
    TRUNC_MARKER,
    GenerationContext,
    clamp_text,
    has_assistant_turn,
    normalize_history,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["generation"])

_BEARER = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


def bearer_from(request: Request) -> str:
    m = _BEARER.match(request.headers.get("authorization") or "")
    return m.group(1).strip() if m else ""


def _upstream_status(status_code) -> int:
    # OpenAI auth/validation failures are ours, not the caller's
    if status_code == 429 or (status_code or 0) >= 500:
        return int(status_code)
    return 502


def run_gated_generation(product_key: str, body: GenerationRequest, request: Request, response: Response):
    started = time.monotonic()
    state = request.app.state
    product = state.settings.product(product_key)

    is_continue = bool(body.continue_)
    message = body.effective_message()
    history = normalize_history(body.history)
    last_assistant = clamp_text(body.last_assistant, MAX_LAST_ASSISTANT_CHARS)
    token = (body.session_token or "").strip()
    cs_id = (body.cs_id or "").strip()
    bearer = bearer_from(request)

    if not message and not is_continue:
        raise GateError("missing_message")

    now = int(time.time())
    decision = state.meter.authorize(
        product,
        token=token,
        cs_id=cs_id,
        bearer=bearer,
        is_continue=is_continue,
        now=now,
    )
    if not decision.ok:
        logger.info("%s rejected: reason=%s state=%s", product_key, decision.reason, decision.state)
        extra = {}
        if decision.reason == "exhausted":
            extra = {"itersLeft": 0, "expiresAt": decision.debug.get("expiresAt")}
        raise GateError(decision.reason, debug=decision.debug, extra=extra)

    if is_continue and not last_assistant and len(history) < 2:
        raise GateError("missing_context")

    record = decision.record
    ctx = GenerationContext(
        message=message,
        history=history,
        last_assistant=last_assistant,
        is_continue=is_continue,
        is_followup=(bool(token) and not decision.created) or has_assistant_turn(history),
    )
    result = state.orchestrator.run(product, ctx)

    if not result.ok:
        # Same token stays valid: nothing consumed, nothing rotated.
        logger.warning(
            "%s generation failed: reason=%s upstream=%s retried=%s",
            product_key, result.reason, result.status_code, result.retried,
        )
        status_code = 504 if result.reason == "generation_timeout" else _upstream_status(result.status_code)
        raise GateError(
            result.reason,
            status_code=status_code,
            debug=result.debug(),
            extra={"itersLeft": record.uses_remaining, "expiresAt": record.expires_at},
        )

    rotated, new_token = state.meter.rotate(product, record, is_continue=is_continue)
    latency_ms = int((time.monotonic() - started) * 1000)

    logger.info(
        "%s ok: auth=%s created=%s continue=%s itersLeft=%s latencyMs=%s",
        product_key, rotated.auth_mode, decision.created, is_continue, rotated.uses_remaining, latency_ms,
    )

    response.headers.update(NO_STORE_HEADERS)
    out = GenerationResponse(
        reply=result.reply,
        sessionToken=new_token,
        itersLeft=rotated.uses_remaining,
        expiresAt=rotated.expires_at,
        meta=GenerationMeta(
            truncMarker=TRUNC_MARKER,
            model=result.model,
            followup=is_continue or ctx.is_followup,
            continue_=is_continue,
            historyUsed=len(history),
            max_output_tokens=result.max_output_tokens,
            timeoutS=state.orchestrator.timeout_s,
            incomplete=result.incomplete,
            productLock=bool(product.stripe_price_id),
            retried=result.retried,
            fallbackMaxOut=result.fallback_max_out,
            session=SessionMeta(
                createdNewSession=decision.created,
                authMode=rotated.auth_mode,
                maxIters=product.max_iters,
                ttlSeconds=product.ttl_seconds,
            ),
            serverNow=now,
            latencyMs=latency_ms,
        ),
    )
    return out.to_body()


def _guarded(product_key: str, body: GenerationRequest, request: Request, response: Response):
    try:
        return run_gated_generation(product_key, body, request, response)
    except (GateError, ConfigError):
        raise
    except Exception as e:
        logger.exception("%s fatal", product_key)
        raise GateError("internal_error", debug={"message": type(e).__name__})


@router.post("/ghostops-diagnostic-ia")
def diagnostic_route(body: GenerationRequest, request: Request, response: Response):
    return _guarded("diagnostic", body, request, response)


@router.post("/ghostops-studio-scenarios")
def studio_scenarios_route(body: GenerationRequest, request: Request, response: Response):
    return _guarded("studio", body, request, response)


@router.post("/ghostops-pre-brief-board")
def pre_brief_board_route(body: GenerationRequest, request: Request, response: Response):
    return _guarded("pre-brief", body, request, response)
