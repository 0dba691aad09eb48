"""Summary: OAuth helper utilities for the store provider.

Importance: Builds authorization URLs, exchanges codes for tokens, and probes tokens
without extra dependencies.
Alternatives: Use the provider's SDK for OAuth flows.
"""

from __future__ import annotations

import http.client
import json
import logging
from dataclasses import dataclass, field
from typing import Any
import urllib.error
import urllib.parse
import urllib.request

from shoplink.domains import DEFAULT_DOMAIN_SUFFIX, is_provider_host, normalize_domain
from shoplink.errors import InvalidRequest, MissingAccessToken, UpstreamError
from shoplink.state import StateSigner


logger = logging.getLogger(__name__)

DEFAULT_SCOPES = (
    "read_orders",
    "read_products",
    "read_customers",
    "read_inventory",
    "read_fulfillments",
)
DEFAULT_TIMEOUT_SECONDS = 10.0
ACCESS_TOKEN_HEADER = "X-Shopify-Access-Token"


@dataclass(frozen=True)
class OAuthTokenResult:
    """Summary: Typed token endpoint response.

    Importance: Makes the presence of the access token an explicit check.
    Alternatives: Pass the raw JSON dictionary to callers.
    """

    access_token: str = field(repr=False)
    scope: str | None = None

    @staticmethod
    def from_response(payload: Any) -> "OAuthTokenResult":
        """Summary: Build an OAuthTokenResult from a provider payload.

        Importance: Rejects successful responses that carry no usable token.
        Alternatives: Index the payload and let KeyError surface.
        """

        if not isinstance(payload, dict):
            raise MissingAccessToken("Token response is not a JSON object")
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise MissingAccessToken("Token response has no access_token")
        scope = payload.get("scope")
        return OAuthTokenResult(
            access_token=access_token,
            scope=scope if isinstance(scope, str) else None,
        )


@dataclass(frozen=True)
class AuthorizationRequestBuilder:
    """Summary: Composes provider authorization URLs carrying a signed state.

    Importance: Keeps redirect URI and scopes fixed so callers only supply the subject.
    Alternatives: Build the URL inline in the HTTP handler.
    """

    signer: StateSigner
    redirect_uri: str
    scopes: tuple[str, ...] = DEFAULT_SCOPES
    domain_suffix: str = DEFAULT_DOMAIN_SUFFIX

    def build_authorization_url(self, subject_id: str, provider_domain: str, client_id: str) -> str:
        """Summary: Build the provider authorize URL for a subject.

        Importance: Starts the OAuth flow without any network call or stored state.
        Alternatives: Redirect through a server-side session endpoint.
        """

        missing = [
            name
            for name, value in (
                ("subjectId", subject_id),
                ("providerDomain", provider_domain),
                ("clientId", client_id),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise InvalidRequest(f"Missing required fields: {', '.join(missing)}")
        domain = normalize_domain(provider_domain, self.domain_suffix)
        if not is_provider_host(domain, self.domain_suffix):
            raise InvalidRequest(f"Not a store domain: {provider_domain}")
        params = {
            "client_id": client_id,
            "scope": ",".join(self.scopes),
            "redirect_uri": self.redirect_uri,
            "state": self.signer.issue(subject_id),
        }
        query = urllib.parse.urlencode(params, safe="", quote_via=urllib.parse.quote)
        logger.info("Built authorization URL for %s on %s.", subject_id, domain)
        return f"https://{domain}/admin/oauth/authorize?{query}"


def exchange_oauth_code(
    shop: str,
    client_id: str,
    client_secret: str,
    code: str,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> OAuthTokenResult:
    """Summary: Exchange an authorization code for a long-lived access token.

    Importance: Completes the OAuth flow with a single server-to-server call.
    Alternatives: Use the provider SDK's session helpers.
    """

    url = f"https://{shop}/admin/oauth/access_token"
    payload = {"client_id": client_id, "client_secret": client_secret, "code": code}
    response = _post_json(url, payload, timeout)
    return OAuthTokenResult.from_response(response)


def verify_access_token(
    shop: str,
    access_token: str,
    api_version: str,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> dict[str, Any]:
    """Summary: Call a read-only endpoint with a freshly obtained token.

    Importance: Confirms the token is operational, separately from obtaining it.
    Alternatives: Trust the token until the first real API call fails.
    """

    url = f"https://{shop}/admin/api/{api_version}/shop.json"
    return _get_json(url, {ACCESS_TOKEN_HEADER: access_token}, timeout)


def _post_json(url: str, payload: dict[str, str], timeout: float) -> Any:
    """Summary: Send a JSON POST request and parse the JSON response.

    Importance: Avoids new dependencies while supporting token exchanges.
    Alternatives: Use requests or httpx.
    """

    request = urllib.request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", "Accept": "application/json"},
        method="POST",
    )
    return _send(request, timeout)


def _get_json(url: str, headers: dict[str, str], timeout: float) -> Any:
    request = urllib.request.Request(
        url,
        headers={"Accept": "application/json", **headers},
        method="GET",
    )
    return _send(request, timeout)


def _send(request: urllib.request.Request, timeout: float) -> Any:
    """Summary: Execute a request and translate transport failures.

    Importance: Callers only need to handle UpstreamError.
    Alternatives: Let urllib exceptions propagate to the handler.
    """

    host = urllib.parse.urlsplit(request.full_url).hostname
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            raw = response.read()
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8", errors="replace")
        logger.warning(
            "Provider request to %s failed with %s: %s", host, exc.code, error_body[:300]
        )
        raise UpstreamError(f"Provider request failed with status {exc.code}", status=exc.code) from exc
    except (OSError, http.client.HTTPException) as exc:
        logger.warning("Provider request to %s failed: %s", host, exc)
        raise UpstreamError("Provider request failed") from exc
    try:
        return json.loads(raw.decode("utf-8"))
    except ValueError as exc:
        logger.warning("Provider request to %s returned an unreadable body.", host)
        raise UpstreamError("Provider returned a non-JSON response") from exc
