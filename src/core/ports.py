"""Ports (interfaces) used by bootstrap and enrollment.

Ports define the minimal contracts for the messaging protocol, key material,
directory lookup and terminal collaborators so the core can be driven by
fakes in tests and by real adapters in the CLI.
"""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from core.tls_policy import TLSTrustPolicy


class LineReaderPort(Protocol):
    """Interactive line input.

    ``read_line`` raises ``EOFError`` (or ``OSError``) when input is closed.
    """

    def set_prompt(self, prompt: str) -> None:
        ...

    def read_line(self) -> str:
        ...


class MessengerPort(Protocol):
    """User-facing message printing."""

    def info(self, message: str) -> None:
        ...

    def warn(self, message: str) -> None:
        ...

    def alert(self, message: str) -> None:
        ...


class KeyMaterialPort(Protocol):
    """Private key collaborator; serialized bytes are opaque to the core."""

    def generate(self) -> None:
        ...

    def import_key(self, raw: bytes) -> bool:
        ...

    def serialize(self) -> bytes:
        ...


class DirectoryLookupPort(Protocol):
    """Resolve a domain to ``(host, port)``; raises ``LookupError`` on failure."""

    def __call__(self, domain: str) -> tuple[str, int]:
        ...


@dataclass(frozen=True)
class DialPolicy:
    """Everything the protocol layer needs besides address and credentials."""

    log: Optional[logging.Logger]
    create_callback: Optional[Callable[..., Any]]
    trusted_address: bool
    tls: TLSTrustPolicy
    # Pre-opened stream, only set when a proxy chain was used.
    transport: Optional[socket.socket] = None


class ProtocolDialerPort(Protocol):
    """Messaging protocol session establishment (TLS and protocol handshakes)."""

    def dial(
        self,
        address: str,
        local_part: str,
        domain: str,
        password: str,
        policy: DialPolicy,
    ) -> Any:
        ...
