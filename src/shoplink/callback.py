"""Summary: OAuth callback pipeline.

Importance: Turns a provider redirect into an encrypted, persisted access token and
always answers with a redirect, never with an error page.
Alternatives: Handle each step inline in the HTTP route and raise HTTP errors.

Pipeline: received -> state_verified -> subject_resolved -> credentials_resolved
-> token_exchanged -> token_encrypted -> persisted -> succeeded, with failed
reachable from every step. The liveness check runs after the outcome is decided.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
import urllib.parse

from shoplink.domains import DEFAULT_DOMAIN_SUFFIX, is_provider_host, normalize_domain
from shoplink.errors import (
    MissingCredentials,
    MissingParameters,
    ShopLinkError,
    ShopNotFound,
    UpstreamError,
)
from shoplink.models import AUTH_TYPE_OAUTH, REASON_UNEXPECTED, STATUS_OK
from shoplink.oauth import DEFAULT_TIMEOUT_SECONDS, exchange_oauth_code, verify_access_token
from shoplink.state import StateSigner
from shoplink.storage.sqlite_store import SqliteStore
from shoplink.token_cipher import TokenCipher


logger = logging.getLogger(__name__)

RECEIVED = "received"
STATE_VERIFIED = "state_verified"
SUBJECT_RESOLVED = "subject_resolved"
CREDENTIALS_RESOLVED = "credentials_resolved"
TOKEN_EXCHANGED = "token_exchanged"
TOKEN_ENCRYPTED = "token_encrypted"
PERSISTED = "persisted"
SUCCEEDED = "succeeded"
FAILED = "failed"

SUBJECT_PLACEHOLDER = "{subject_id}"


@dataclass(frozen=True)
class LivenessCheck:
    """Summary: Best-effort probe of a freshly stored token.

    Importance: Separates "credential obtained" from "credential currently works".
    Alternatives: Make the probe a gate before persisting the token.
    """

    subject_id: str
    shop: str
    access_token: str = field(repr=False)
    api_version: str
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    def run(self) -> bool:
        """Summary: Probe the token and log the result.

        Importance: A failure is only logged; the stored credential stays in place.
        Alternatives: Roll back the stored token on failure.
        """

        try:
            verify_access_token(self.shop, self.access_token, self.api_version, self.timeout)
        except UpstreamError as exc:
            logger.warning(
                "Token verification failed for %s but the token was kept (status=%s).",
                self.subject_id,
                exc.status,
            )
            return False
        logger.info("Token verified for %s.", self.subject_id)
        return True


@dataclass(frozen=True)
class CallbackOutcome:
    """Summary: Result of one callback invocation.

    Importance: Carries everything the transport layer needs to answer with a redirect.
    Alternatives: Return a bare redirect URL string.
    """

    succeeded: bool
    redirect_url: str
    reason: str | None = None
    subject_id: str | None = None
    transitions: tuple[str, ...] = ()
    liveness_check: LivenessCheck | None = None


@dataclass(frozen=True)
class CallbackOrchestrator:
    """Summary: Runs the callback pipeline for one provider redirect.

    Importance: Every failure becomes a reason-coded redirect at this boundary.
    Alternatives: Let exceptions reach the web framework's error handlers.
    """

    store: SqliteStore
    signer: StateSigner
    cipher: TokenCipher
    success_redirect_url: str
    failure_redirect_url: str
    api_version: str
    domain_suffix: str = DEFAULT_DOMAIN_SUFFIX
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    verify_token: bool = True

    def handle(self, code: str | None, state: str | None, shop: str | None) -> CallbackOutcome:
        """Summary: Validate the callback, exchange the code, and store the token.

        Importance: The single entry point used by the HTTP route and tests.
        Alternatives: Split the pipeline across several route dependencies.
        """

        transitions = [RECEIVED]
        subject_id: str | None = None
        try:
            if not code or not state or not shop:
                raise MissingParameters("Callback requires code, state and shop")

            payload = self.signer.verify(state)
            subject_id = payload.subject_id
            self._advance(transitions, STATE_VERIFIED, subject_id)

            record = self.store.get_shop(subject_id)
            if record is None:
                raise ShopNotFound(f"No shop record for {subject_id}")
            shop_domain = normalize_domain(shop, self.domain_suffix)
            if not is_provider_host(shop_domain, self.domain_suffix):
                raise ShopNotFound(f"Callback shop is not a store host for {subject_id}")
            if record.provider_domain and (
                normalize_domain(record.provider_domain, self.domain_suffix) != shop_domain
            ):
                raise ShopNotFound(f"Callback shop does not match the record for {subject_id}")
            self._advance(transitions, SUBJECT_RESOLVED, subject_id)

            if not record.client_id or not record.client_secret:
                raise MissingCredentials(f"Shop {subject_id} has no client credentials")
            self._advance(transitions, CREDENTIALS_RESOLVED, subject_id)

            token = exchange_oauth_code(
                shop_domain,
                record.client_id,
                record.client_secret,
                code,
                timeout=self.timeout,
            )
            self._advance(transitions, TOKEN_EXCHANGED, subject_id)

            encrypted = self.cipher.encrypt(token.access_token)
            self._advance(transitions, TOKEN_ENCRYPTED, subject_id)

            self.store.save_access_token(
                subject_id,
                encrypted,
                auth_type=AUTH_TYPE_OAUTH,
                connection_status=STATUS_OK,
            )
            self._advance(transitions, PERSISTED, subject_id)
        except ShopLinkError as exc:
            return self._fail(transitions, exc.reason, subject_id, type(exc).__name__)
        except Exception:
            logger.exception("Unexpected error in OAuth callback for %s.", subject_id or "-")
            return self._fail(transitions, REASON_UNEXPECTED, subject_id, "unexpected")

        self._advance(transitions, SUCCEEDED, subject_id)
        logger.info("Connected shop %s via OAuth.", subject_id)
        liveness_check = None
        if self.verify_token:
            liveness_check = LivenessCheck(
                subject_id=subject_id,
                shop=shop_domain,
                access_token=token.access_token,
                api_version=self.api_version,
                timeout=self.timeout,
            )
        return CallbackOutcome(
            succeeded=True,
            redirect_url=self.success_url(subject_id),
            subject_id=subject_id,
            transitions=tuple(transitions),
            liveness_check=liveness_check,
        )

    def success_url(self, subject_id: str) -> str:
        """Build the success destination for a subject."""

        quoted = urllib.parse.quote(subject_id, safe="")
        if SUBJECT_PLACEHOLDER in self.success_redirect_url:
            return with_query(
                self.success_redirect_url.replace(SUBJECT_PLACEHOLDER, quoted),
                {"oauth": "success"},
            )
        return with_query(self.success_redirect_url, {"oauth": "success", "subject_id": subject_id})

    def failure_url(self, reason: str) -> str:
        return with_query(self.failure_redirect_url, {"oauth": "error", "reason": reason})

    def _fail(
        self,
        transitions: list[str],
        reason: str,
        subject_id: str | None,
        error_name: str,
    ) -> CallbackOutcome:
        transitions.append(FAILED)
        logger.warning(
            "OAuth callback failed after %s for %s: %s (%s).",
            transitions[-2],
            subject_id or "-",
            reason,
            error_name,
        )
        return CallbackOutcome(
            succeeded=False,
            redirect_url=self.failure_url(reason),
            reason=reason,
            subject_id=subject_id,
            transitions=tuple(transitions),
        )

    @staticmethod
    def _advance(transitions: list[str], state: str, subject_id: str | None) -> None:
        transitions.append(state)
        logger.debug("OAuth callback for %s -> %s.", subject_id or "-", state)


def with_query(url: str, params: dict[str, str]) -> str:
    """Summary: Append query parameters to a URL that may already have some.

    Importance: Redirect destinations are configurable and can carry their own query.
    Alternatives: Require destinations without a query string.
    """

    parts = urllib.parse.urlsplit(url)
    query = urllib.parse.parse_qsl(parts.query, keep_blank_values=True) + list(params.items())
    return urllib.parse.urlunsplit(parts._replace(query=urllib.parse.urlencode(query)))
