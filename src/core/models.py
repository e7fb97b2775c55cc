"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to DNS, socket or config-file specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from core.errors import InvalidAccount


@dataclass(frozen=True)
class AccountIdentity:
    """An account split into its local part and domain."""

    local_part: str
    domain: str

    def __str__(self) -> str:
        return f"{self.local_part}@{self.domain}"


def split_identity(account: str) -> AccountIdentity:
    """Split ``user@domain``; anything but exactly one ``@`` with two non-empty sides fails."""

    local_part, sep, domain = account.partition("@")
    if not sep or not local_part or not domain or "@" in domain:
        raise InvalidAccount(account)
    return AccountIdentity(local_part=local_part, domain=domain)


@dataclass
class AccountConfig:
    """Persisted account configuration.

    The enrollment wizard fills this field by field; afterwards it is treated
    as read-only input by the connection bootstrap.
    """

    account: str = ""
    raw_log_file: Optional[str] = None
    use_tor: bool = False
    private_key: bytes = b""
    proxies: list[str] = field(default_factory=list)
    server: Optional[str] = None
    port: Optional[int] = None
    server_certificate_sha256: Optional[str] = None
    otr_auto_append_tag: bool = False
    otr_auto_start_session: bool = False
    otr_auto_tear_down: bool = False
    password: Optional[str] = None
    # Where the record was loaded from / will be saved to.
    filename: Optional[str] = None


@dataclass(frozen=True)
class ResolvedEndpoint:
    """The literal host and port to dial.

    ``trusted`` is only set when the pair came from explicit configuration,
    never from a directory lookup.
    """

    host: str
    port: int
    trusted: bool

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"
