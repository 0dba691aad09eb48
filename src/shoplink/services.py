"""Summary: Connection management services for ShopLink.

Importance: Groups operator-facing shop workflows that sit beside the OAuth callback.
Alternatives: Call the store and cipher directly from the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from shoplink.domains import DEFAULT_DOMAIN_SUFFIX, is_provider_host, normalize_domain
from shoplink.errors import InvalidRequest, ShopNotFound, UpstreamError
from shoplink.models import ConnectionRecord, STATUS_ERROR, STATUS_OK
from shoplink.oauth import DEFAULT_TIMEOUT_SECONDS, verify_access_token
from shoplink.storage.sqlite_store import SqliteStore
from shoplink.token_cipher import TokenCipher


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionService:
    """Summary: Provisions shops and tests their stored connections.

    Importance: Client credentials are provisioned out-of-band through this service.
    Alternatives: Manage shop rows through an admin UI only.
    """

    store: SqliteStore
    cipher: TokenCipher
    api_version: str
    domain_suffix: str = DEFAULT_DOMAIN_SUFFIX
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    def provision_shop(
        self,
        shop_id: str,
        provider_domain: str,
        client_id: str,
        client_secret: str,
    ) -> ConnectionRecord:
        """Summary: Create or update a shop with its client credentials.

        Importance: The callback pipeline reads these credentials by shop id.
        Alternatives: Send credentials with every authorization request.
        """

        domain = normalize_domain(provider_domain, self.domain_suffix)
        if not is_provider_host(domain, self.domain_suffix):
            raise InvalidRequest(f"Not a store domain: {provider_domain}")
        self.store.upsert_shop(shop_id, domain, client_id, client_secret)
        logger.info("Provisioned shop %s on %s.", shop_id, domain)
        record = self.store.get_shop(shop_id)
        if record is None:
            raise ShopNotFound(f"Shop {shop_id} was not stored")
        return record

    def list_shops(self) -> list[ConnectionRecord]:
        return self.store.list_shops()

    def test_connection(self, shop_id: str) -> bool:
        """Summary: Decrypt the stored token and probe the provider with it.

        Importance: Detects revoked or rotated credentials after the OAuth flow.
        Alternatives: Wait for background jobs to fail with authorization errors.

        Raises DecryptionFailed when the stored blob does not authenticate.
        """

        record = self.store.get_shop(shop_id)
        if record is None or not record.encrypted_access_token or not record.provider_domain:
            raise ShopNotFound(f"Shop {shop_id} has no stored connection")
        access_token = self.cipher.decrypt(record.encrypted_access_token)
        try:
            verify_access_token(record.provider_domain, access_token, self.api_version, self.timeout)
        except UpstreamError as exc:
            logger.warning("Connection test failed for %s (status=%s).", shop_id, exc.status)
            self.store.mark_status(shop_id, STATUS_ERROR)
            return False
        self.store.mark_status(shop_id, STATUS_OK)
        logger.info("Connection test passed for %s.", shop_id)
        return True
