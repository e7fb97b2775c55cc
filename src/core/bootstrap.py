"""Connection bootstrap.

The bootstrap enforces a strict order:
1) Split the account into local part and domain
2) Resolve the endpoint (explicit config, or SRV lookup when no proxy)
3) Build the proxy chain
4) Decode the certificate pin and build the TLS policy
5) Open the transport through the proxy chain, if any
6) Hand over to the protocol layer

Any failure aborts with a step-specific error and nothing is returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence

from python_socks import ProxyError

from core.errors import SessionEstablishFailed, TransportDialFailed
from core.models import AccountConfig, AccountIdentity, ResolvedEndpoint, split_identity
from core.ports import DialPolicy, DirectoryLookupPort, ProtocolDialerPort
from core.proxy_chain import DIRECT, Dialer, build_proxy_chain
from core.resolver import resolve_endpoint
from core.tls_policy import TLSTrustPolicy, build_tls_policy

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionPlan:
    """Everything decided before any socket is opened."""

    identity: AccountIdentity
    endpoint: ResolvedEndpoint
    dialer: Dialer
    tls: TLSTrustPolicy


class ConnectionBootstrap:
    """Turns an account config and a password into a live protocol session."""

    def __init__(
        self,
        lookup: DirectoryLookupPort,
        protocol: ProtocolDialerPort,
        root_overrides: Optional[Mapping[str, bytes]] = None,
        direct: Dialer = DIRECT,
        chain_builder: Callable[[Sequence[str], Dialer], Dialer] = build_proxy_chain,
        log: Optional[logging.Logger] = None,
        create_callback: Optional[Callable[..., Any]] = None,
    ) -> None:
        self._lookup = lookup
        self._protocol = protocol
        self._root_overrides = dict(root_overrides or {})
        self._direct = direct
        self._chain_builder = chain_builder
        self._log = log
        self._create_callback = create_callback

    def plan(self, config: AccountConfig) -> ConnectionPlan:
        """Run every decision step without touching the network (except SRV)."""

        identity = split_identity(config.account)
        endpoint = resolve_endpoint(identity.domain, config, self._lookup)
        dialer = self._chain_builder(config.proxies, self._direct)
        tls = build_tls_policy(
            config.server_certificate_sha256,
            identity.domain,
            self._root_overrides,
        )
        return ConnectionPlan(identity=identity, endpoint=endpoint, dialer=dialer, tls=tls)

    def establish(self, config: AccountConfig, password: str) -> Any:
        """Return a protocol session or raise a ``BootstrapError``."""

        plan = self.plan(config)
        address = plan.endpoint.address

        transport = None
        if plan.dialer is not self._direct:
            LOGGER.info("Making connection to %s via proxy", address)
            try:
                transport = plan.dialer.dial(plan.endpoint.host, plan.endpoint.port)
            except (OSError, ProxyError) as exc:
                raise TransportDialFailed(address, str(exc)) from exc

        policy = DialPolicy(
            log=self._log,
            create_callback=self._create_callback,
            trusted_address=plan.endpoint.trusted,
            tls=plan.tls,
            transport=transport,
        )

        LOGGER.info("Connecting to %s as %s", address, plan.identity)
        try:
            session = self._protocol.dial(
                address,
                plan.identity.local_part,
                plan.identity.domain,
                password,
                policy,
            )
        except Exception as exc:
            if transport is not None:
                transport.close()
            raise SessionEstablishFailed(address, str(exc)) from exc
        return session
