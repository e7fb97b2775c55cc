"""Address resolution for the XMPP server.

Decision order (first match wins):
1) Explicit server and port from config, trusted
2) Proxies configured without an explicit server: refuse, since an SRV
   lookup would go out over the unproxied resolver
3) Directory (SRV) lookup for the account domain, untrusted
"""

from __future__ import annotations

import logging

from core.errors import ProxyWithoutExplicitServer, ResolutionFailed
from core.models import AccountConfig, ResolvedEndpoint
from core.ports import DirectoryLookupPort

LOGGER = logging.getLogger(__name__)


def resolve_endpoint(
    domain: str,
    config: AccountConfig,
    lookup: DirectoryLookupPort,
) -> ResolvedEndpoint:
    """Return the single endpoint to dial for ``domain``."""

    if config.server and config.port and config.port > 0:
        return ResolvedEndpoint(host=config.server, port=config.port, trusted=True)

    if config.proxies:
        raise ProxyWithoutExplicitServer(domain)

    try:
        host, port = lookup(domain)
    except LookupError as exc:
        raise ResolutionFailed(domain, str(exc)) from exc

    LOGGER.info("Resolved %s to %s:%s", domain, host, port)
    return ResolvedEndpoint(host=host, port=int(port), trusted=False)
