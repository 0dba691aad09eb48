"""Summary: Application factory wiring core services.

Importance: Centralizes dependency creation for the CLI and API layers.
Alternatives: Instantiate services manually in each entrypoint.
"""

from __future__ import annotations

from dataclasses import dataclass

from shoplink.callback import CallbackOrchestrator
from shoplink.config import AppConfig
from shoplink.oauth import AuthorizationRequestBuilder
from shoplink.services import ConnectionService
from shoplink.state import StateSigner
from shoplink.storage.sqlite_store import SqliteStore
from shoplink.token_cipher import TokenCipher


@dataclass(frozen=True)
class AppServices:
    """Summary: Bundle of core services for ShopLink.

    Importance: Simplifies passing dependencies to UI or API layers.
    Alternatives: Use a dependency injection container.
    """

    store: SqliteStore
    signer: StateSigner
    cipher: TokenCipher
    authorization: AuthorizationRequestBuilder
    callbacks: CallbackOrchestrator
    connections: ConnectionService


def build_services(config: AppConfig) -> AppServices:
    """Summary: Build core services from configuration.

    Importance: Master secrets flow from one immutable config into the signer and cipher.
    Alternatives: Let each component read secrets from the environment.
    """

    config.require_secrets()
    store = SqliteStore(config.db_path)
    store.initialize()
    signer = StateSigner(config.state_secret)
    cipher = TokenCipher(config.encryption_master_key)
    authorization = AuthorizationRequestBuilder(
        signer=signer,
        redirect_uri=config.oauth_redirect_uri,
        scopes=tuple(config.oauth_scopes),
        domain_suffix=config.provider_domain_suffix,
    )
    callbacks = CallbackOrchestrator(
        store=store,
        signer=signer,
        cipher=cipher,
        success_redirect_url=config.success_redirect_url,
        failure_redirect_url=config.failure_redirect_url,
        api_version=config.provider_api_version,
        domain_suffix=config.provider_domain_suffix,
        timeout=config.http_timeout_seconds,
        verify_token=config.verify_token_after_connect,
    )
    connections = ConnectionService(
        store=store,
        cipher=cipher,
        api_version=config.provider_api_version,
        domain_suffix=config.provider_domain_suffix,
        timeout=config.http_timeout_seconds,
    )
    return AppServices(
        store=store,
        signer=signer,
        cipher=cipher,
        authorization=authorization,
        callbacks=callbacks,
        connections=connections,
    )
