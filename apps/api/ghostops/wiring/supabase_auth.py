# apps/api/ghostops/wiring/supabase_auth.py

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import requests


class IdentityError(Exception):
    """Supabase Auth could not be reached or answered unexpectedly."""


def _parse_timeout(timeout_s: float) -> Tuple[float, float]:
    """
    requests timeout as (connect, read):
      connect: 10% of total, between 1s and 5s
      read: remainder
    """
    total = max(1.0, float(timeout_s))
    connect = min(5.0, max(1.0, total * 0.1))
    read = max(1.0, total - connect)
    return connect, read


class SupabaseIdentity:
    """
    Resolves a Supabase access token to its user via GET /auth/v1/user.
    Uses the service role key as the apikey header; never writes anything.
    """

    def __init__(self, url: str, service_role_key: str, timeout_s: float = 10.0):
        self.url = url.rstrip("/")
        self.service_role_key = service_role_key
        self.timeout = _parse_timeout(timeout_s)

    def get_user(self, access_token: str) -> Optional[Dict[str, Any]]:
        """
        Returns {"id": str, "email": str|None}, or None when the token is rejected.
        """
        headers = {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {access_token}",
        }
        try:
            r = requests.get(f"{self.url}/auth/v1/user", headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise IdentityError(f"supabase auth request failed: {type(e).__name__}") from e

        if r.status_code in (401, 403, 404):
            return None
        if r.status_code != 200:
            raise IdentityError(f"supabase auth failed: {r.status_code} :: {r.text[:300]}")

        try:
            data = r.json() if r.content else {}
        except ValueError as e:
            raise IdentityError("supabase auth returned non-JSON body") from e

        user_id = str((data or {}).get("id") or "").strip()
        if not user_id:
            return None
        return {"id": user_id, "email": data.get("email")}
