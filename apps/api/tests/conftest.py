from dataclasses import replace
from typing import Any, Dict, List

import httpx
import openai
import pytest
from fastapi.testclient import TestClient

from ghostops.core.config import PRODUCT_DEFAULTS, ProductSettings, Settings
from ghostops.wiring.openai_responses import GeneratedText
from ghostops.wiring.stripe_checkout import CheckoutSummary, PaymentLookupError

SECRET = "test-secret-please-change"
PRICE_PREBRIEF = "price_prebrief_123"

_OPENAI_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/responses")

COMPLETE_REPLY = "Synthèse de la situation : les tensions sont identifiées et les options sont posées."


def make_settings(**overrides) -> Settings:
    products = {
        key: ProductSettings(
            key=key,
            label=label,
            token_secret=SECRET,
            max_iters=iters,
            ttl_seconds=ttl,
            stripe_price_id="",
            model_initial="gpt-initial",
            model_followup="gpt-followup",
            max_output_tokens=1100,
            max_output_tokens_continue=900,
        )
        for key, (_prefix, label, iters, ttl) in PRODUCT_DEFAULTS.items()
    }
    settings = Settings(
        openai_api_key="sk-test",
        stripe_secret_key="",
        supabase_url="",
        supabase_service_role_key="",
        database_url="",
        rights_table="droits",
        openai_timeout_s=2.0,
        http_timeout_s=2.0,
        log_level="WARNING",
        products=products,
    )
    return replace(settings, **overrides)


def with_product(settings: Settings, key: str, **changes) -> Settings:
    products = dict(settings.products)
    products[key] = replace(products[key], **changes)
    return replace(settings, products=products)


def checkout(cs_id: str, *, paid: bool = True, price_ids=(), status: str = "complete") -> CheckoutSummary:
    return CheckoutSummary(
        id=cs_id,
        status=status if paid else "open",
        payment_status="paid" if paid else "unpaid",
        price_ids=list(price_ids),
        mode="payment",
        livemode=False,
        amount_total=299000,
        currency="eur",
    )


def openai_timeout() -> openai.APITimeoutError:
    return openai.APITimeoutError(request=_OPENAI_REQUEST)


def openai_status(code: int) -> openai.APIStatusError:
    response = httpx.Response(code, request=_OPENAI_REQUEST)
    return openai.APIStatusError(f"HTTP {code}", response=response, body=None)


class FakePayments:
    def __init__(self, sessions: Dict[str, CheckoutSummary] = None):
        self.sessions = dict(sessions or {})
        self.calls: List[str] = []

    def retrieve(self, cs_id: str) -> CheckoutSummary:
        self.calls.append(cs_id)
        if cs_id not in self.sessions:
            raise PaymentLookupError("InvalidRequestError: No such checkout.session")
        return self.sessions[cs_id]


class FakeIdentity:
    def __init__(self, users: Dict[str, Dict[str, Any]] = None):
        self.users = dict(users or {})

    def get_user(self, access_token: str):
        return self.users.get(access_token)


class FakeRights:
    def __init__(self, granted=()):
        self.granted = set(granted)
        self.activated = []

    def has_active_right(self, user_id: str, product: str) -> bool:
        return (user_id, product) in self.granted

    def activate(self, user_id: str, product: str) -> Dict[str, Any]:
        self.granted.add((user_id, product))
        self.activated.append((user_id, product))
        return {
            "id": len(self.activated),
            "user_id": user_id,
            "niveau_produit": product,
            "statut": "actif",
            "created_at": "2026-01-01T00:00:00+00:00",
            "revoked_at": None,
        }


class FakeGenerator:
    """
    Plays back the given results in order; the last one repeats.
    A result is a GeneratedText, an exception to raise, or a callable.
    """

    def __init__(self, *results):
        self.results = list(results) or [GeneratedText(COMPLETE_REPLY)]
        self.calls: List[Dict[str, Any]] = []

    def create(self, *, model, input, max_output_tokens, timeout_s):
        self.calls.append({"model": model, "input": input, "max_output_tokens": max_output_tokens})
        item = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item()
        return item


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def payments():
    return FakePayments({"cs_test_123": checkout("cs_test_123")})


@pytest.fixture
def identity():
    return FakeIdentity({"sb-token-alice": {"id": "user-alice", "email": "alice@example.com"}})


@pytest.fixture
def rights():
    return FakeRights({("user-alice", "pre-brief")})


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def make_client(payments, identity, rights, generator):
    from ghostops.main import create_app

    def _make(settings=None, **collaborators) -> TestClient:
        app = create_app(
            settings or make_settings(),
            payments=collaborators.get("payments", payments),
            identity=collaborators.get("identity", identity),
            rights=collaborators.get("rights", rights),
            generator=collaborators.get("generator", generator),
        )
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client):
    return make_client()
