"""Summary: Tests for the OAuth callback pipeline.

Importance: Covers every failure reason and the end-to-end connect flow without
touching the network.
Alternatives: Exercise the pipeline only through HTTP requests.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
import urllib.parse

import pytest

from shoplink.callback import (
    CREDENTIALS_RESOLVED,
    FAILED,
    PERSISTED,
    RECEIVED,
    STATE_VERIFIED,
    SUBJECT_RESOLVED,
    SUCCEEDED,
    TOKEN_ENCRYPTED,
    TOKEN_EXCHANGED,
    CallbackOrchestrator,
    LivenessCheck,
    with_query,
)
from shoplink import errors
from shoplink.errors import MissingAccessToken, PersistenceError, UpstreamError
from shoplink.models import FAILURE_REASONS
from shoplink.oauth import AuthorizationRequestBuilder, OAuthTokenResult
from shoplink.state import StateSigner
from shoplink.storage.sqlite_store import SqliteStore
from shoplink.token_cipher import TokenCipher


MASTER_KEY = "encryption-master-key"
SHOP = "acme.myshopify.com"


@pytest.fixture(scope="module")
def cipher() -> TokenCipher:
    return TokenCipher(MASTER_KEY)


@pytest.fixture
def store(tmp_path: Path) -> SqliteStore:
    store = SqliteStore(str(tmp_path / "test.db"))
    store.initialize()
    store.upsert_shop("shop-42", SHOP, "client-1", "secret-1")
    return store


@pytest.fixture
def exchanges(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    def _fake_exchange(shop: str, client_id: str, client_secret: str, code: str, timeout: float) -> OAuthTokenResult:
        calls.append({"shop": shop, "client_id": client_id, "client_secret": client_secret, "code": code})
        return OAuthTokenResult(access_token=f"tok_{code}")

    monkeypatch.setattr("shoplink.callback.exchange_oauth_code", _fake_exchange)
    return calls


def _orchestrator(store: SqliteStore, cipher: TokenCipher, signer: StateSigner | None = None) -> CallbackOrchestrator:
    return CallbackOrchestrator(
        store=store,
        signer=signer or StateSigner("state-secret"),
        cipher=cipher,
        success_redirect_url="https://app.example.com/shops/{subject_id}",
        failure_redirect_url="https://app.example.com/shops",
        api_version="2025-01",
    )


def _query(url: str) -> dict[str, str]:
    return dict(urllib.parse.parse_qsl(urllib.parse.urlsplit(url).query))


def test_end_to_end_connect_flow(
    store: SqliteStore, cipher: TokenCipher, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Summary: Build an authorization URL, feed its state back, and read the token.

    Importance: Proves the signer, exchange, cipher and store line up end to end.
    Alternatives: Test each component in isolation only.
    """

    monkeypatch.setattr(
        "shoplink.callback.exchange_oauth_code",
        lambda *args, **kwargs: OAuthTokenResult.from_response({"access_token": "tok_abc"}),
    )
    signer = StateSigner("state-secret")
    builder = AuthorizationRequestBuilder(signer=signer, redirect_uri="https://app.example.com/oauth/callback")
    url = builder.build_authorization_url("shop-42", "acme", "client-1")
    state = _query(url)["state"]

    outcome = _orchestrator(store, cipher, signer).handle("code-1", state, SHOP)

    assert outcome.succeeded
    assert outcome.redirect_url == "https://app.example.com/shops/shop-42?oauth=success"
    record = store.get_shop("shop-42")
    assert record is not None
    assert record.encrypted_access_token != "tok_abc"
    assert cipher.decrypt(record.encrypted_access_token) == "tok_abc"
    assert record.auth_type == "oauth"
    assert record.connection_status == "ok"


def test_success_walks_every_state(
    store: SqliteStore, cipher: TokenCipher, exchanges: list[dict[str, Any]]
) -> None:
    orchestrator = _orchestrator(store, cipher)
    outcome = orchestrator.handle("code-1", orchestrator.signer.issue("shop-42"), "https://acme.myshopify.com/")
    assert outcome.transitions == (
        RECEIVED,
        STATE_VERIFIED,
        SUBJECT_RESOLVED,
        CREDENTIALS_RESOLVED,
        TOKEN_EXCHANGED,
        TOKEN_ENCRYPTED,
        PERSISTED,
        SUCCEEDED,
    )
    assert exchanges == [
        {"shop": SHOP, "client_id": "client-1", "client_secret": "secret-1", "code": "code-1"}
    ]


def test_missing_state_redirects_with_missing_params(
    store: SqliteStore, cipher: TokenCipher, exchanges: list[dict[str, Any]]
) -> None:
    outcome = _orchestrator(store, cipher).handle("code-1", None, SHOP)
    assert not outcome.succeeded
    assert outcome.reason == "missing_params"
    assert outcome.redirect_url == "https://app.example.com/shops?oauth=error&reason=missing_params"
    assert outcome.transitions == (RECEIVED, FAILED)
    assert exchanges == []


@pytest.mark.parametrize("code, shop", [("", SHOP), ("code-1", "")])
def test_other_missing_parameters(store: SqliteStore, cipher: TokenCipher, code: str, shop: str) -> None:
    orchestrator = _orchestrator(store, cipher)
    outcome = orchestrator.handle(code, orchestrator.signer.issue("shop-42"), shop)
    assert outcome.reason == "missing_params"


def test_forged_state_is_invalid(store: SqliteStore, cipher: TokenCipher, exchanges: list[dict[str, Any]]) -> None:
    forged = StateSigner("attacker-secret").issue("shop-42")
    outcome = _orchestrator(store, cipher).handle("code-1", forged, SHOP)
    assert outcome.reason == "invalid_state"
    assert exchanges == []


def test_malformed_state_is_invalid(store: SqliteStore, cipher: TokenCipher) -> None:
    outcome = _orchestrator(store, cipher).handle("code-1", "garbage", SHOP)
    assert outcome.reason == "invalid_state"


def test_expired_state(store: SqliteStore, cipher: TokenCipher, exchanges: list[dict[str, Any]]) -> None:
    old = StateSigner("state-secret", clock=lambda: 1_000.0).issue("shop-42")
    signer = StateSigner("state-secret", clock=lambda: 1_000.0 + 601)
    outcome = _orchestrator(store, cipher, signer).handle("code-1", old, SHOP)
    assert outcome.reason == "expired_state"
    assert exchanges == []


def test_unknown_subject(store: SqliteStore, cipher: TokenCipher) -> None:
    orchestrator = _orchestrator(store, cipher)
    outcome = orchestrator.handle("code-1", orchestrator.signer.issue("shop-404"), SHOP)
    assert outcome.reason == "shop_not_found"
    assert outcome.subject_id == "shop-404"


def test_callback_for_another_shop_is_refused(
    store: SqliteStore, cipher: TokenCipher, exchanges: list[dict[str, Any]]
) -> None:
    orchestrator = _orchestrator(store, cipher)
    outcome = orchestrator.handle("code-1", orchestrator.signer.issue("shop-42"), "evil.myshopify.com")
    assert outcome.reason == "shop_not_found"
    assert exchanges == []


def test_missing_client_secret(store: SqliteStore, cipher: TokenCipher) -> None:
    store.upsert_shop("shop-42", SHOP, "client-1", None)
    orchestrator = _orchestrator(store, cipher)
    outcome = orchestrator.handle("code-1", orchestrator.signer.issue("shop-42"), SHOP)
    assert outcome.reason == "missing_credentials"


def test_token_exchange_failure_leaves_record_untouched(
    store: SqliteStore, cipher: TokenCipher, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _fail(*_args: object, **_kwargs: object) -> OAuthTokenResult:
        raise UpstreamError("Provider request failed with status 400", status=400)

    monkeypatch.setattr("shoplink.callback.exchange_oauth_code", _fail)
    orchestrator = _orchestrator(store, cipher)
    outcome = orchestrator.handle("code-1", orchestrator.signer.issue("shop-42"), SHOP)
    assert outcome.reason == "token_exchange_failed"
    record = store.get_shop("shop-42")
    assert record is not None
    assert record.encrypted_access_token is None
    assert record.connection_status == "pending"


def test_response_without_token(store: SqliteStore, cipher: TokenCipher, monkeypatch: pytest.MonkeyPatch) -> None:
    def _no_token(*_args: object, **_kwargs: object) -> OAuthTokenResult:
        raise MissingAccessToken("Token response has no access_token")

    monkeypatch.setattr("shoplink.callback.exchange_oauth_code", _no_token)
    orchestrator = _orchestrator(store, cipher)
    outcome = orchestrator.handle("code-1", orchestrator.signer.issue("shop-42"), SHOP)
    assert outcome.reason == "no_token"


def test_store_failure_is_db_error(
    store: SqliteStore,
    cipher: TokenCipher,
    exchanges: list[dict[str, Any]],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _fail(*_args: object, **_kwargs: object) -> None:
        raise PersistenceError("disk full")

    monkeypatch.setattr(store, "save_access_token", _fail)
    orchestrator = _orchestrator(store, cipher)
    outcome = orchestrator.handle("code-1", orchestrator.signer.issue("shop-42"), SHOP)
    assert outcome.reason == "db_error"
    assert outcome.liveness_check is None


def test_unexpected_error_is_contained(store: SqliteStore, cipher: TokenCipher, monkeypatch: pytest.MonkeyPatch) -> None:
    def _boom(*_args: object, **_kwargs: object) -> OAuthTokenResult:
        raise RuntimeError("boom")

    monkeypatch.setattr("shoplink.callback.exchange_oauth_code", _boom)
    orchestrator = _orchestrator(store, cipher)
    outcome = orchestrator.handle("code-1", orchestrator.signer.issue("shop-42"), SHOP)
    assert outcome.reason == "unexpected"
    assert outcome.redirect_url.endswith("reason=unexpected")


def test_second_callback_overwrites_token(
    store: SqliteStore, cipher: TokenCipher, exchanges: list[dict[str, Any]]
) -> None:
    orchestrator = _orchestrator(store, cipher)
    state = orchestrator.signer.issue("shop-42")
    assert orchestrator.handle("first", state, SHOP).succeeded
    assert orchestrator.handle("second", orchestrator.signer.issue("shop-42"), SHOP).succeeded
    record = store.get_shop("shop-42")
    assert record is not None
    assert cipher.decrypt(record.encrypted_access_token) == "tok_second"
    assert record.connection_status == "ok"


def test_liveness_failure_keeps_credential(
    store: SqliteStore,
    cipher: TokenCipher,
    exchanges: list[dict[str, Any]],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _reject(*_args: object, **_kwargs: object) -> dict[str, Any]:
        raise UpstreamError("Provider request failed with status 401", status=401)

    monkeypatch.setattr("shoplink.callback.verify_access_token", _reject)
    orchestrator = _orchestrator(store, cipher)
    outcome = orchestrator.handle("code-1", orchestrator.signer.issue("shop-42"), SHOP)
    assert outcome.succeeded
    assert outcome.liveness_check is not None
    assert "tok_code-1" not in repr(outcome)
    assert outcome.liveness_check.run() is False
    record = store.get_shop("shop-42")
    assert record is not None
    assert record.connection_status == "ok"
    assert cipher.decrypt(record.encrypted_access_token) == "tok_code-1"


def test_liveness_check_uses_fresh_token(
    store: SqliteStore,
    cipher: TokenCipher,
    exchanges: list[dict[str, Any]],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    probes: list[tuple[str, str, str]] = []

    def _verify(shop: str, token: str, api_version: str, timeout: float) -> dict[str, Any]:
        probes.append((shop, token, api_version))
        return {"shop": {}}

    monkeypatch.setattr("shoplink.callback.verify_access_token", _verify)
    orchestrator = _orchestrator(store, cipher)
    outcome = orchestrator.handle("code-1", orchestrator.signer.issue("shop-42"), SHOP)
    assert outcome.liveness_check is not None
    assert outcome.liveness_check.run() is True
    assert probes == [(SHOP, "tok_code-1", "2025-01")]


def test_success_url_without_placeholder(store: SqliteStore, cipher: TokenCipher) -> None:
    orchestrator = CallbackOrchestrator(
        store=store,
        signer=StateSigner("state-secret"),
        cipher=cipher,
        success_redirect_url="https://app.example.com/done",
        failure_redirect_url="https://app.example.com/shops",
        api_version="2025-01",
    )
    assert orchestrator.success_url("shop 42") == "https://app.example.com/done?oauth=success&subject_id=shop+42"


def test_with_query_keeps_existing_parameters() -> None:
    url = with_query("https://app.example.com/shops?tab=integrations", {"oauth": "error", "reason": "no_token"})
    assert url == "https://app.example.com/shops?tab=integrations&oauth=error&reason=no_token"


def test_every_error_maps_to_a_redirect_reason() -> None:
    pending = [errors.ShopLinkError]
    while pending:
        error_class = pending.pop()
        assert error_class.reason in FAILURE_REASONS, error_class.__name__
        pending.extend(error_class.__subclasses__())


@pytest.mark.parametrize("shop", ["evil.example#", "evil.example/x?", "acme.myshopify.com@evil.example"])
def test_callback_shop_must_be_a_store_host(
    tmp_path: Path, cipher: TokenCipher, monkeypatch: pytest.MonkeyPatch, shop: str
) -> None:
    requests: list[Any] = []

    def _capture(request: Any, timeout: float) -> None:
        requests.append(request)
        raise AssertionError("no provider request expected")

    monkeypatch.setattr("shoplink.oauth.urllib.request.urlopen", _capture)
    store = SqliteStore(str(tmp_path / "nodomain.db"))
    store.initialize()
    store.upsert_shop("shop-42", None, "client-1", "secret-1")
    orchestrator = _orchestrator(store, cipher)
    outcome = orchestrator.handle("code-1", orchestrator.signer.issue("shop-42"), shop)
    assert outcome.reason == "shop_not_found"
    assert requests == []
    record = store.get_shop("shop-42")
    assert record is not None
    assert record.encrypted_access_token is None


def test_liveness_check_with_unreadable_body_returns_false(monkeypatch: pytest.MonkeyPatch) -> None:
    class _Response:
        def read(self) -> bytes:
            return b"\xff\xfe"

        def __enter__(self) -> "_Response":
            return self

        def __exit__(self, *_exc: object) -> bool:
            return False

    monkeypatch.setattr("shoplink.oauth.urllib.request.urlopen", lambda request, timeout: _Response())
    check = LivenessCheck(subject_id="shop-42", shop=SHOP, access_token="tok_abc", api_version="2025-01")
    assert check.run() is False
