# apps/api/ghostops/services/token_service.py

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from itsdangerous import BadData, BadSignature, Signer
from itsdangerous.encoding import base64_decode, base64_encode

TOKEN_VERSION = 3


def _signer(secret: str) -> Signer:
    """
    <segment>.<unpadded base64url HMAC-SHA256 of the segment>, keyed with the
    raw secret (no key derivation, no salt).
    """
    if not secret:
        raise ValueError("token secret is empty")
    return Signer(secret, sep=".", key_derivation="none", digest_method=hashlib.sha256)


@dataclass(frozen=True)
class TokenResult:
    payload: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.reason is None


def encode(payload: Dict[str, Any], secret: str) -> str:
    """
    <base64url(json)>.<base64url(hmac-sha256 of the first segment)>, both unpadded.
    """
    signer = _signer(secret)
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
    segment = base64_encode(raw.encode("utf-8"))
    return signer.sign(segment).decode("ascii")


def decode(token: Optional[str], secret: str) -> TokenResult:
    signer = _signer(secret)
    if not token or not isinstance(token, str):
        return TokenResult(reason="missing_token")

    if len(token.split(".")) != 2:
        return TokenResult(reason="bad_format")

    # Nothing in the payload is read until the signature matches.
    try:
        segment = signer.unsign(token)
    except BadSignature:
        return TokenResult(reason="bad_signature")

    try:
        payload = json.loads(base64_decode(segment).decode("utf-8"))
    except (BadData, ValueError):
        return TokenResult(reason="bad_payload")
    if not isinstance(payload, dict):
        return TokenResult(reason="bad_payload")

    return TokenResult(payload=payload)


@dataclass(frozen=True)
class SessionRecord:
    """What a session token carries. The server keeps no copy of it."""

    subject_ref: str
    uses_remaining: int
    expires_at: int
    product: str
    user_ref: Optional[str] = None
    version: int = TOKEN_VERSION

    @property
    def auth_mode(self) -> str:
        return "supabase" if self.user_ref else "stripe"

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "cs_id": self.subject_ref,
            "itersLeft": self.uses_remaining,
            "exp": self.expires_at,
            "prd": self.product,
            "v": self.version,
        }
        if self.user_ref:
            payload["uid"] = self.user_ref
        return payload
