"""Error taxonomy for connection bootstrap and enrollment.

Every failure carries the offending value so the CLI can render a single
human-readable line without extra context.
"""

from __future__ import annotations


class BootstrapError(Exception):
    """Base class for all bootstrap and enrollment failures."""


class InvalidAccount(BootstrapError):
    def __init__(self, account: str) -> None:
        super().__init__(f"invalid username (want user@domain): {account}")
        self.account = account


class InvalidProxyURL(BootstrapError):
    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to parse {url} as a URL: {reason}")
        self.url = url


class UnsupportedProxy(BootstrapError):
    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to parse {url} as a proxy: {reason}")
        self.url = url


class ProxyWithoutExplicitServer(BootstrapError):
    def __init__(self, domain: str) -> None:
        super().__init__(
            "Cannot connect via a proxy without server and port being set in the "
            f"config file as an SRV lookup for {domain} would leak information"
        )
        self.domain = domain


class ResolutionFailed(BootstrapError):
    def __init__(self, domain: str, reason: str) -> None:
        super().__init__(f"Failed to resolve XMPP server for {domain}: {reason}")
        self.domain = domain


class InvalidPinEncoding(BootstrapError):
    def __init__(self, pin: str, reason: str) -> None:
        super().__init__(
            f"Failed to parse server_certificate_sha256 (should be hex string): {reason}"
        )
        self.pin = pin


class InvalidPinLength(BootstrapError):
    def __init__(self, pin: str, length: int) -> None:
        super().__init__(f"server_certificate_sha256 is {length} bytes long, want 32")
        self.pin = pin
        self.length = length


class TransportDialFailed(BootstrapError):
    def __init__(self, address: str, reason: str) -> None:
        super().__init__(f"Failed to connect to {address} via proxy: {reason}")
        self.address = address


class SessionEstablishFailed(BootstrapError):
    def __init__(self, address: str, reason: str) -> None:
        super().__init__(f"Failed to connect to XMPP server at {address}: {reason}")
        self.address = address


class EnrollmentCancelled(BootstrapError):
    def __init__(self, state: str, reason: str = "input closed") -> None:
        super().__init__(f"Enrollment cancelled at {state}: {reason}")
        self.state = state


class ConfigError(Exception):
    """Raised when the persisted account config cannot be found, read or written."""
