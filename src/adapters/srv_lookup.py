"""DNS SRV lookup adapter.

Implements the core DirectoryLookupPort with dnspython. Note that this goes
out over the system resolver and is never proxied.
"""

from __future__ import annotations

import logging

import dns.exception
import dns.name
import dns.resolver

LOGGER = logging.getLogger(__name__)

SERVICE = "_xmpp-client._tcp"


def resolve_srv(domain: str) -> tuple[str, int]:
    """Return ``(host, port)`` of the preferred XMPP client SRV record."""

    name = f"{SERVICE}.{domain}"
    LOGGER.debug("Looking up SRV %s", name)
    try:
        answer = dns.resolver.resolve(name, "SRV")
    except dns.exception.DNSException as exc:
        raise LookupError(f"xmpp: SRV lookup for {name} failed: {exc}") from exc

    # Lowest priority wins, heavier weight breaks ties.
    records = sorted(answer, key=lambda record: (record.priority, -record.weight))
    if not records:
        raise LookupError(f"xmpp: no SRV records found for {name}")

    record = records[0]
    if record.target == dns.name.root:
        raise LookupError(f"xmpp: service not available at {domain}")
    return record.target.to_text(omit_final_dot=True), int(record.port)
