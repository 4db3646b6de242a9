import pytest

from conftest import (
    PRICE_PREBRIEF,
    SECRET,
    FakeIdentity,
    FakePayments,
    FakeRights,
    checkout,
    make_settings,
    with_product,
)
from ghostops.core.errors import ConfigError
from ghostops.services import token_service
from ghostops.services.entitlement_service import EntitlementResolver
from ghostops.services.metering_service import (
    INVALID,
    NO_TOKEN,
    VALID_ACTIVE,
    VALID_EXHAUSTED,
    VALID_EXPIRED,
    UsageMeter,
)

NOW = 1_800_000_000


@pytest.fixture
def resolver():
    return EntitlementResolver(
        payments=FakePayments(
            {
                "cs_paid": checkout("cs_paid", price_ids=[PRICE_PREBRIEF]),
                "cs_unpaid": checkout("cs_unpaid", paid=False),
                "cs_other": checkout("cs_other", price_ids=["price_other"]),
            }
        ),
        identity=FakeIdentity(
            {
                "tok-alice": {"id": "user-alice", "email": "alice@example.com"},
                "tok-bob": {"id": "user-bob", "email": None},
            }
        ),
        rights=FakeRights({("user-alice", "pre-brief")}),
    )


@pytest.fixture
def meter(resolver):
    return UsageMeter(resolver)


@pytest.fixture
def product():
    return make_settings().product("pre-brief")


def _token(payload, secret=SECRET):
    base = {"cs_id": "cs_paid", "itersLeft": 3, "exp": NOW + 600, "prd": "pre-brief", "v": 3}
    base.update(payload)
    return token_service.encode(base, secret)


def test_cs_id_bootstraps_fresh_session(meter, product):
    decision = meter.authorize(product, cs_id="cs_paid", now=NOW)
    assert decision.ok
    assert decision.created
    assert decision.state == VALID_ACTIVE
    assert decision.record.subject_ref == "cs_paid"
    assert decision.record.uses_remaining == product.max_iters
    assert decision.record.expires_at == NOW + product.ttl_seconds
    assert decision.record.user_ref is None


def test_bearer_with_right_bootstraps_user_session(meter, product):
    decision = meter.authorize(product, bearer="tok-alice", now=NOW)
    assert decision.ok
    assert decision.record.subject_ref == "sb_user-alice"
    assert decision.record.user_ref == "user-alice"
    assert decision.record.auth_mode == "supabase"


@pytest.mark.parametrize(
    "kwargs, reason",
    [
        ({}, "missing_bearer"),
        ({"cs_id": "cs_unpaid"}, "not_paid"),
        ({"cs_id": "cs_unknown"}, "stripe_retrieve_failed"),
        ({"bearer": "tok-bob"}, "no_right"),
        ({"bearer": "tok-nobody"}, "invalid_bearer"),
    ],
)
def test_bootstrap_fails_closed(meter, product, kwargs, reason):
    decision = meter.authorize(product, now=NOW, **kwargs)
    assert not decision.ok
    assert decision.state == NO_TOKEN
    assert decision.reason == reason
    assert decision.record is None


def test_price_lock_rejects_other_product(resolver):
    product = with_product(make_settings(), "pre-brief", stripe_price_id=PRICE_PREBRIEF).product("pre-brief")
    meter = UsageMeter(resolver)
    assert meter.authorize(product, cs_id="cs_other", now=NOW).reason == "wrong_product"
    assert meter.authorize(product, cs_id="cs_paid", now=NOW).ok


def test_cs_id_takes_precedence_over_bearer(meter, product, resolver):
    decision = meter.authorize(product, cs_id="cs_paid", bearer="tok-alice", now=NOW)
    assert decision.record.subject_ref == "cs_paid"
    assert decision.record.user_ref is None


def test_continue_without_token_has_no_bootstrap(meter, product, resolver):
    decision = meter.authorize(product, cs_id="cs_paid", is_continue=True, now=NOW)
    assert decision.reason == "missing_token"
    assert resolver.payments.calls == []


def test_valid_token_is_active(meter, product):
    decision = meter.authorize(product, token=_token({}), now=NOW)
    assert decision.ok
    assert not decision.created
    assert decision.record.uses_remaining == 3
    assert decision.record.expires_at == NOW + 600


def test_invalid_token_is_terminal_even_with_cs_id(meter, product, resolver):
    decision = meter.authorize(product, token="garbage", cs_id="cs_paid", now=NOW)
    assert decision.state == INVALID
    assert decision.reason == "bad_format"
    assert resolver.payments.calls == []

    other_secret = _token({}, secret="another-secret")
    assert meter.authorize(product, token=other_secret, now=NOW).reason == "bad_signature"


def test_expired_token_rejected(meter, product):
    decision = meter.authorize(product, token=_token({"exp": NOW - 1}), now=NOW)
    assert decision.state == VALID_EXPIRED
    assert decision.reason == "expired"


def test_expiry_is_inclusive_of_the_instant(meter, product):
    assert meter.authorize(product, token=_token({"exp": NOW}), now=NOW).ok


def test_expired_token_with_cs_id_mints_replacement(meter, product):
    decision = meter.authorize(product, token=_token({"exp": NOW - 1, "itersLeft": 1}), cs_id="cs_paid", now=NOW)
    assert decision.ok
    assert decision.created
    assert decision.record.uses_remaining == product.max_iters


def test_expired_token_with_bearer_mints_replacement(meter, product):
    decision = meter.authorize(product, token=_token({"exp": NOW - 1}), bearer="tok-alice", now=NOW)
    assert decision.ok
    assert decision.record.user_ref == "user-alice"


@pytest.mark.parametrize("iters", [-1, "5", 2.5, None, True])
def test_bad_iters(meter, product, iters):
    assert meter.authorize(product, token=_token({"itersLeft": iters}), now=NOW).reason == "bad_iters"


@pytest.mark.parametrize("is_continue", [False, True])
def test_exhausted(meter, product, is_continue):
    decision = meter.authorize(product, token=_token({"itersLeft": 0}), is_continue=is_continue, now=NOW)
    assert decision.state == VALID_EXHAUSTED
    assert decision.reason == "exhausted"


def test_token_for_other_product(meter, product):
    assert meter.authorize(product, token=_token({"prd": "diagnostic"}), now=NOW).reason == "wrong_product"
    assert meter.authorize(product, token=_token({"prd": None}), now=NOW).reason == "wrong_product"


def test_uid_mismatch(meter, product):
    token = _token({"cs_id": "sb_user-alice", "uid": "user-alice"})
    assert meter.authorize(product, token=token, bearer="tok-bob", now=NOW).reason == "uid_mismatch"
    assert meter.authorize(product, token=token, bearer="tok-alice", now=NOW).ok
    # an unresolvable bearer does not invalidate a good token
    assert meter.authorize(product, token=token, bearer="tok-nobody", now=NOW).ok


def test_rotation_decrements_and_keeps_expiry(meter, product):
    record = meter.authorize(product, token=_token({"itersLeft": 2}), now=NOW).record
    rotated, token = meter.rotate(product, record, is_continue=False)
    assert rotated.uses_remaining == 1
    assert rotated.expires_at == record.expires_at
    assert rotated.subject_ref == record.subject_ref
    payload = token_service.decode(token, SECRET).payload
    assert payload["itersLeft"] == 1
    assert payload["exp"] == NOW + 600


def test_repeated_continuation_never_changes_uses(meter, product):
    token = _token({"itersLeft": 2})
    for _ in range(4):
        record = meter.authorize(product, token=token, is_continue=True, now=NOW).record
        rotated, token = meter.rotate(product, record, is_continue=True)
        assert rotated.uses_remaining == 2


def test_n_uses_then_exhausted(meter, product):
    decision = meter.authorize(product, cs_id="cs_paid", now=NOW)
    record, token = meter.rotate(product, decision.record, is_continue=False)
    used = 1
    while True:
        decision = meter.authorize(product, token=token, now=NOW)
        if not decision.ok:
            break
        record, token = meter.rotate(product, decision.record, is_continue=False)
        used += 1
    assert used == product.max_iters
    assert decision.reason == "exhausted"


def test_missing_secret_is_configuration_error(resolver):
    product = with_product(make_settings(), "studio", token_secret="").product("studio")
    with pytest.raises(ConfigError):
        UsageMeter(resolver).authorize(product, cs_id="cs_paid", now=NOW)


@pytest.mark.parametrize("credentials", [{"cs_id": "cs_paid"}, {"bearer": "tok-alice"}])
def test_expired_token_never_bootstraps_a_continuation(meter, product, resolver, credentials):
    token = _token({"exp": NOW - 10})
    decision = meter.authorize(product, token=token, is_continue=True, now=NOW, **credentials)
    assert decision.state == VALID_EXPIRED
    assert decision.reason == "expired"
    assert decision.record is None
    assert resolver.payments.calls == []


def test_same_token_replayed_concurrently_is_charged_once_each(meter, product):
    # no server-side state: both replays see the same counter
    token = _token({"itersLeft": 3})
    first = meter.authorize(product, token=token, now=NOW)
    second = meter.authorize(product, token=token, now=NOW)
    rotated_a, _ = meter.rotate(product, first.record, is_continue=False)
    rotated_b, _ = meter.rotate(product, second.record, is_continue=False)
    assert rotated_a.uses_remaining == rotated_b.uses_remaining == 2
