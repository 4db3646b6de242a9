# apps/api/ghostops/core/errors.py

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

# reason -> (http status, user-facing message)
REASONS: Dict[str, tuple[int, str]] = {
    "missing_message": (400, 'The "message" (or "description") field is required.'),
    "missing_context": (
        400,
        "Cannot continue: the last assistant message or the conversation history is missing.",
    ),
    "invalid_request": (400, "Invalid request."),
    "missing_token": (401, "Access denied. Continuing an answer requires a session token."),
    "bad_format": (401, "Invalid session. Please start again from your payment confirmation link."),
    "bad_signature": (401, "Invalid session. Please start again from your payment confirmation link."),
    "bad_payload": (401, "Invalid session. Please start again from your payment confirmation link."),
    "bad_iters": (401, "Invalid session. Please start again from your payment confirmation link."),
    "expired": (401, "Session expired. Please start again from your payment confirmation link."),
    "wrong_product": (401, "This payment or session does not cover this product."),
    "uid_mismatch": (401, "Invalid session (different user). Please start again from your account."),
    "missing_cs_id": (401, "Payment not verified. Please use the link from the end of checkout."),
    "not_paid": (401, "Payment not verified. Please use the link from the end of checkout."),
    "stripe_retrieve_failed": (401, "Payment not verified. Please use the link from the end of checkout."),
    "missing_bearer": (
        401,
        "Access denied. A payment id (cs_id) or a signed-in account with access rights is required.",
    ),
    "invalid_bearer": (401, "Your login session is invalid or has expired. Please sign in again."),
    "no_right": (401, "Your account does not hold access rights for this product."),
    "exhausted": (403, "Limit reached: all iterations of this session have been used. Contact GhostOps to continue."),
    "identity_unavailable": (502, "The identity service could not be reached. Please retry."),
    "rights_query_failed": (502, "Access rights could not be checked. Please retry."),
    "generation_failed": (502, "The generation engine returned an error."),
    "empty_reply": (502, "The generation engine answered without any text."),
    "generation_timeout": (504, "The generation engine took too long to answer. Your session was not charged; please retry."),
    "payment_lookup_failed": (500, "Payment verification failed."),
    "rights_write_failed": (500, "The access right could not be recorded."),
    "config_missing": (500, "The server is not fully configured."),
    "internal_error": (500, "An internal error occurred."),
}


class ConfigError(RuntimeError):
    """A required setting (secret, API key, service URL) is missing."""


class GateError(Exception):
    """
    A request outcome that maps to a non-2xx JSON response.
    Carries a stable machine reason next to the display message.
    """

    def __init__(
        self,
        reason: str,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        debug: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        default_status, default_message = REASONS.get(reason, (500, "Request failed."))
        self.reason = reason
        self.status_code = status_code or default_status
        self.message = message or default_message
        self.debug = debug
        self.extra = extra or {}
        super().__init__(f"{reason}: {self.message}")

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"ok": False, "error": self.message, "reason": self.reason}
        if self.debug:
            body["debug"] = self.debug
        body.update(self.extra)
        return body


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request."
    first = errors[0]
    loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    msg = first.get("msg", "invalid value")
    return f"{loc}: {msg}" if loc else msg


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(GateError)
    async def gate_error_handler(request: Request, exc: GateError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=NO_STORE_HEADERS)

    @app.exception_handler(ConfigError)
    async def config_error_handler(request: Request, exc: ConfigError):
        logger.error("configuration error on %s: %s", request.url.path, exc)
        body = {"ok": False, "error": str(exc), "reason": "config_missing"}
        return JSONResponse(status_code=500, content=body, headers=NO_STORE_HEADERS)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        body = {"ok": False, "error": _validation_message(exc), "reason": "invalid_request"}
        return JSONResponse(status_code=400, content=body)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        body = {"ok": False, "error": str(exc.detail), "reason": f"http_{exc.status_code}"}
        return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))
