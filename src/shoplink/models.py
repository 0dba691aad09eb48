"""Summary: Domain model dataclasses for ShopLink.

Importance: Defines the records shared by signing, storage, and the callback pipeline.
Alternatives: Use Pydantic models or ORM classes directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field


AUTH_TYPE_OAUTH = "oauth"
STATUS_OK = "ok"
STATUS_ERROR = "error"
STATUS_PENDING = "pending"

REASON_MISSING_PARAMS = "missing_params"
REASON_INVALID_STATE = "invalid_state"
REASON_EXPIRED_STATE = "expired_state"
REASON_SHOP_NOT_FOUND = "shop_not_found"
REASON_MISSING_CREDENTIALS = "missing_credentials"
REASON_TOKEN_EXCHANGE_FAILED = "token_exchange_failed"
REASON_NO_TOKEN = "no_token"
REASON_DB_ERROR = "db_error"
REASON_UNEXPECTED = "unexpected"

FAILURE_REASONS = frozenset(
    {
        REASON_MISSING_PARAMS,
        REASON_INVALID_STATE,
        REASON_EXPIRED_STATE,
        REASON_SHOP_NOT_FOUND,
        REASON_MISSING_CREDENTIALS,
        REASON_TOKEN_EXCHANGE_FAILED,
        REASON_NO_TOKEN,
        REASON_DB_ERROR,
        REASON_UNEXPECTED,
    }
)


@dataclass(frozen=True)
class StatePayload:
    """Summary: Content of a signed OAuth state.

    Importance: Binds the callback to the subject that started the flow.
    Alternatives: Keep pending states in a server-side table.
    """

    subject_id: str
    nonce: str
    issued_at_ms: int

    def to_wire(self) -> dict[str, str | int]:
        return {"subjectId": self.subject_id, "nonce": self.nonce, "issuedAtMs": self.issued_at_ms}


@dataclass(frozen=True)
class ConnectionRecord:
    """Summary: Shop row holding provider credentials and the encrypted token.

    Importance: The only persistent state touched by the callback pipeline.
    Alternatives: Split credentials and tokens into separate tables.
    """

    id: str
    provider_domain: str | None
    client_id: str | None
    client_secret: str | None = field(repr=False)
    encrypted_access_token: str | None = field(repr=False)
    auth_type: str | None
    connection_status: str | None
