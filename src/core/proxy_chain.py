"""Proxy chain construction.

A chain is built from the configured list in reverse: the last entry wraps
the direct dialer and is therefore dialed first, the first entry is the
outermost hop and the only one that sees the destination address.
"""

from __future__ import annotations

import logging
import socket
from typing import Optional, Protocol, Sequence
from urllib.parse import unquote, urlsplit

from python_socks import ProxyType
from python_socks.sync import Proxy

from core.errors import InvalidProxyURL, UnsupportedProxy

LOGGER = logging.getLogger(__name__)

DEFAULT_DIAL_TIMEOUT = 30.0

# scheme -> (proxy type, resolve destination names on the proxy)
_SCHEMES: dict[str, tuple[ProxyType, Optional[bool]]] = {
    "socks5": (ProxyType.SOCKS5, True),
    "socks5h": (ProxyType.SOCKS5, True),
    "socks4": (ProxyType.SOCKS4, False),
    "socks4a": (ProxyType.SOCKS4, True),
    "http": (ProxyType.HTTP, None),
}


class Dialer(Protocol):
    def dial(self, host: str, port: int) -> socket.socket:
        ...


class DirectDialer:
    """Plain TCP connect with no proxy involved."""

    def __init__(self, timeout: float = DEFAULT_DIAL_TIMEOUT) -> None:
        self.timeout = timeout

    def dial(self, host: str, port: int) -> socket.socket:
        return socket.create_connection((host, port), timeout=self.timeout)

    def __repr__(self) -> str:
        return "DirectDialer()"


DIRECT = DirectDialer()


class ProxyDialer:
    """Dial the proxy through ``forward`` and tunnel to the destination."""

    def __init__(self, url: str, proxy: Proxy, host: str, port: int, forward: Dialer) -> None:
        self.url = url
        self.host = host
        self.port = port
        self.forward = forward
        self._proxy = proxy

    def dial(self, host: str, port: int) -> socket.socket:
        LOGGER.debug("Dialing %s:%s via %s", host, port, self.url)
        sock = self.forward.dial(self.host, self.port)
        try:
            return self._proxy.connect(host, port, timeout=DEFAULT_DIAL_TIMEOUT, _socket=sock)
        except BaseException:
            sock.close()
            raise

    def __repr__(self) -> str:
        return f"ProxyDialer({self.url!r}, forward={self.forward!r})"


def dialer_from_url(url: str, forward: Dialer) -> ProxyDialer:
    """Parse one proxy URL and wrap ``forward`` with it."""

    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as exc:
        raise InvalidProxyURL(url, str(exc)) from exc
    if not parts.scheme:
        raise InvalidProxyURL(url, "missing scheme")

    scheme = parts.scheme.lower()
    if scheme not in _SCHEMES:
        raise UnsupportedProxy(url, f"unknown scheme {scheme!r}")
    if not parts.hostname:
        raise UnsupportedProxy(url, "missing proxy host")
    if port is None:
        raise UnsupportedProxy(url, "missing proxy port")

    proxy_type, rdns = _SCHEMES[scheme]
    username = unquote(parts.username) if parts.username else None
    password = unquote(parts.password) if parts.password else None
    try:
        proxy = Proxy(
            proxy_type=proxy_type,
            host=parts.hostname,
            port=port,
            username=username,
            password=password,
            rdns=rdns,
        )
    except (TypeError, ValueError) as exc:
        raise UnsupportedProxy(url, str(exc)) from exc
    return ProxyDialer(url, proxy, parts.hostname, port, forward)


def build_proxy_chain(proxies: Sequence[str], direct: Dialer = DIRECT) -> Dialer:
    """Compose the configured proxies into one dialer; no proxies means ``direct``."""

    dialer = direct
    for url in reversed(proxies):
        dialer = dialer_from_url(url, dialer)
    return dialer
