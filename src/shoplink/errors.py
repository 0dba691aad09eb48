"""Summary: Error taxonomy for the OAuth connection pipeline.

Importance: Each error carries the reason code reported to the client, so the
callback boundary can translate failures without inspecting messages.
Alternatives: Raise ValueError/RuntimeError and map them by message text.
"""

from __future__ import annotations

from shoplink.models import (
    REASON_DB_ERROR,
    REASON_EXPIRED_STATE,
    REASON_INVALID_STATE,
    REASON_MISSING_CREDENTIALS,
    REASON_MISSING_PARAMS,
    REASON_NO_TOKEN,
    REASON_SHOP_NOT_FOUND,
    REASON_TOKEN_EXCHANGE_FAILED,
    REASON_UNEXPECTED,
)


class ShopLinkError(Exception):
    """Base class for expected pipeline failures."""

    reason = REASON_UNEXPECTED


class ConfigurationError(ShopLinkError):
    """Raised when the process starts without usable secrets or settings."""


class ValidationError(ShopLinkError):
    """Missing or malformed caller input."""

    reason = REASON_MISSING_PARAMS


class InvalidRequest(ValidationError):
    """An authorization request lacks a required field."""


class MissingParameters(ValidationError):
    """A callback arrived without code, state or shop."""


class SecurityError(ShopLinkError):
    """A signed state failed verification."""

    reason = REASON_INVALID_STATE


class MalformedState(SecurityError):
    """The state token could not be split, decoded or parsed."""


class InvalidSignature(SecurityError):
    """The state signature does not match its payload."""


class ExpiredState(SecurityError):
    """The state is older than its validity window."""

    reason = REASON_EXPIRED_STATE


class ShopNotFound(ShopLinkError):
    """No connection record exists for the state's subject."""

    reason = REASON_SHOP_NOT_FOUND


class MissingCredentials(ShopLinkError):
    """The connection record has no client id or client secret."""

    reason = REASON_MISSING_CREDENTIALS


class UpstreamError(ShopLinkError):
    """The provider's HTTP API failed or answered with an error status."""

    reason = REASON_TOKEN_EXCHANGE_FAILED

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MissingAccessToken(UpstreamError):
    """The token endpoint succeeded without returning an access token."""

    reason = REASON_NO_TOKEN


class PersistenceError(ShopLinkError):
    """The store rejected a write."""

    reason = REASON_DB_ERROR


class CryptoError(ShopLinkError):
    """Encryption or decryption failed."""


class DecryptionFailed(CryptoError):
    """An encrypted blob did not authenticate.

    The message is always the same so callers cannot tell a wrong key from a
    corrupted or tampered blob.
    """

    def __init__(self) -> None:
        super().__init__("Unable to decrypt token")
