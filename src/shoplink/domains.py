"""Summary: Store domain normalization.

Importance: Users paste store addresses in many shapes; the provider only accepts its canonical host.
Alternatives: Require users to enter the canonical host exactly.
"""

from __future__ import annotations

import re


DEFAULT_DOMAIN_SUFFIX = ".myshopify.com"

_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


def normalize_domain(raw_domain: str, suffix: str = DEFAULT_DOMAIN_SUFFIX) -> str:
    """Summary: Canonicalize a user-supplied store address.

    Importance: Makes "https://foo.myshopify.com/", "foo" and "foo.myshopify.com" equal.
    Alternatives: Parse the address with urllib and reject anything unusual.

    Never raises: malformed input still gets the suffix appended.
    """

    domain = _SCHEME.sub("", raw_domain.strip()).lower()
    if domain.endswith("/"):
        domain = domain[:-1]
    if not domain.endswith(suffix):
        domain = f"{domain}{suffix}"
    return domain


def is_provider_host(domain: str, suffix: str = DEFAULT_DOMAIN_SUFFIX) -> bool:
    """Summary: Check that a normalized domain is a bare store host under the suffix.

    Importance: Credentials are only sent to hosts this check accepts.
    Alternatives: Keep an allow-list of provisioned hosts.
    """

    return re.fullmatch(r"[a-z0-9][a-z0-9-]*" + re.escape(suffix), domain) is not None
