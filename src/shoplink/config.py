"""Summary: Application configuration for ShopLink.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from shoplink.errors import ConfigurationError


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for the OAuth connection pipeline.

    Importance: Master secrets are loaded once and injected as immutable values.
    Alternatives: Read secrets from the environment at every call site.
    """

    db_path: str
    api_host: str
    api_port: int
    api_key: str
    state_secret: str = field(repr=False)
    encryption_master_key: str = field(repr=False)
    oauth_redirect_uri: str
    oauth_scopes: list[str]
    provider_domain_suffix: str
    provider_api_version: str
    success_redirect_url: str
    failure_redirect_url: str
    http_timeout_seconds: float
    verify_token_after_connect: bool
    cors_origins: list[str] = field(default_factory=list)

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        return AppConfig(
            db_path=os.getenv("SHOPLINK_DB_PATH", defaults["db_path"]),
            api_host=os.getenv("SHOPLINK_API_HOST", defaults["api_host"]),
            api_port=int(os.getenv("SHOPLINK_API_PORT", defaults["api_port"])),
            api_key=os.getenv("SHOPLINK_API_KEY", defaults["api_key"]),
            state_secret=os.getenv("SHOPLINK_STATE_SECRET", defaults["state_secret"]),
            encryption_master_key=os.getenv(
                "SHOPLINK_ENCRYPTION_KEY", defaults["encryption_master_key"]
            ),
            oauth_redirect_uri=os.getenv(
                "SHOPLINK_OAUTH_REDIRECT_URI", defaults["oauth_redirect_uri"]
            ),
            oauth_scopes=_split_list(os.getenv("SHOPLINK_OAUTH_SCOPES", defaults["oauth_scopes"])),
            provider_domain_suffix=os.getenv(
                "SHOPLINK_PROVIDER_DOMAIN_SUFFIX", defaults["provider_domain_suffix"]
            ),
            provider_api_version=os.getenv(
                "SHOPLINK_PROVIDER_API_VERSION", defaults["provider_api_version"]
            ),
            success_redirect_url=os.getenv(
                "SHOPLINK_SUCCESS_REDIRECT_URL", defaults["success_redirect_url"]
            ),
            failure_redirect_url=os.getenv(
                "SHOPLINK_FAILURE_REDIRECT_URL", defaults["failure_redirect_url"]
            ),
            http_timeout_seconds=float(
                os.getenv("SHOPLINK_HTTP_TIMEOUT_SECONDS", defaults["http_timeout_seconds"])
            ),
            verify_token_after_connect=_parse_bool(
                os.getenv(
                    "SHOPLINK_VERIFY_TOKEN_AFTER_CONNECT",
                    defaults["verify_token_after_connect"],
                )
            ),
            cors_origins=_split_list(
                os.getenv("SHOPLINK_CORS_ORIGINS", defaults["cors_origins"])
            ),
        )

    def require_secrets(self) -> None:
        """Summary: Fail fast when the master secrets are unusable.

        Importance: A missing or shared secret would silently weaken signing or encryption.
        Alternatives: Let the first request fail at runtime.
        """

        if not self.state_secret:
            raise ConfigurationError("SHOPLINK_STATE_SECRET is not configured")
        if not self.encryption_master_key:
            raise ConfigurationError("SHOPLINK_ENCRYPTION_KEY is not configured")
        if self.state_secret == self.encryption_master_key:
            raise ConfigurationError(
                "SHOPLINK_STATE_SECRET and SHOPLINK_ENCRYPTION_KEY must be different values"
            )


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps secrets out of code while supporting local workflows.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}
