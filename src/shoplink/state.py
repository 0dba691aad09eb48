"""Summary: Signed, expiring OAuth state tokens.

Importance: Protects the OAuth callback from CSRF without server-side session storage.
Alternatives: Store random state values in a database table and delete them on use.

Wire format: ``base64url(JSON{subjectId, nonce, issuedAtMs}) + "." + base64url(HMAC-SHA256)``,
both parts without padding. The HMAC covers the encoded payload bytes, not the JSON.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
import time
from typing import Callable

from shoplink.errors import ExpiredState, InvalidSignature, MalformedState
from shoplink.models import StatePayload


logger = logging.getLogger(__name__)

STATE_MAX_AGE_MS = 10 * 60 * 1000
NONCE_BYTES = 16


class StateSigner:
    """Summary: Issues and verifies signed state tokens for one secret.

    Importance: Keeps the state secret inside a single immutable object.
    Alternatives: Pass the secret to module-level sign/verify functions.
    """

    def __init__(
        self,
        secret: str,
        max_age_ms: int = STATE_MAX_AGE_MS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("State secret must not be empty")
        self._secret = secret.encode("utf-8")
        self._max_age_ms = max_age_ms
        self._clock = clock

    def __repr__(self) -> str:
        return f"StateSigner(max_age_ms={self._max_age_ms})"

    def issue(self, subject_id: str) -> str:
        """Summary: Create a signed state for a subject.

        Importance: The token is self-describing, so nothing is stored server-side.
        Alternatives: Return a random handle into a pending-state table.
        """

        payload = StatePayload(
            subject_id=subject_id,
            nonce=secrets.token_hex(NONCE_BYTES),
            issued_at_ms=self._now_ms(),
        )
        raw = json.dumps(payload.to_wire(), separators=(",", ":")).encode("utf-8")
        encoded = _b64url_encode(raw)
        return f"{encoded}.{self._sign(encoded)}"

    def verify(self, signed_state: str) -> StatePayload:
        """Summary: Verify a signed state and return its payload.

        Importance: Rejects forged, malformed and expired states before any other work.
        Alternatives: Decode first and check the signature afterwards.

        Nonces are not recorded, so a state can be replayed until it expires.
        """

        encoded, separator, signature = signed_state.rpartition(".")
        if not separator or not encoded or not signature:
            raise MalformedState("State token is not in payload.signature form")
        expected = self._sign(encoded)
        if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
            raise InvalidSignature("State signature mismatch")
        payload = _parse_payload(encoded)
        age_ms = self._now_ms() - payload.issued_at_ms
        if age_ms > self._max_age_ms:
            logger.debug("State for %s expired %d ms ago.", payload.subject_id, age_ms - self._max_age_ms)
            raise ExpiredState("State token expired")
        return payload

    def _sign(self, encoded: str) -> str:
        digest = hmac.new(self._secret, encoded.encode("utf-8"), hashlib.sha256).digest()
        return _b64url_encode(digest)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)


def _parse_payload(encoded: str) -> StatePayload:
    """Summary: Decode and validate the JSON payload of a state token.

    Importance: A correctly signed but structurally wrong payload is still rejected.
    Alternatives: Trust any payload that carries a valid signature.
    """

    try:
        data = json.loads(_b64url_decode(encoded).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise MalformedState("State payload could not be decoded") from exc
    if not isinstance(data, dict):
        raise MalformedState("State payload is not an object")
    subject_id = data.get("subjectId")
    nonce = data.get("nonce")
    issued_at_ms = data.get("issuedAtMs")
    if not isinstance(subject_id, str) or not subject_id:
        raise MalformedState("State payload has no subject")
    if not isinstance(nonce, str):
        raise MalformedState("State payload has no nonce")
    if isinstance(issued_at_ms, bool) or not isinstance(issued_at_ms, int):
        raise MalformedState("State payload has no issue time")
    return StatePayload(subject_id=subject_id, nonce=nonce, issued_at_ms=issued_at_ms)


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))
