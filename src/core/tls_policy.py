"""TLS trust policy derived fresh for every connection attempt.

The policy is a plain value (comparable, hashable) so it can be inspected
and tested; ``ssl_context()`` turns it into an ``ssl.SSLContext`` only when
the protocol layer is about to handshake.
"""

from __future__ import annotations

import binascii
import hashlib
import logging
import ssl
from dataclasses import dataclass
from typing import Mapping, Optional

from cryptography import x509

from core.errors import InvalidPinEncoding, InvalidPinLength

LOGGER = logging.getLogger(__name__)

PIN_LENGTH = 32

# Kept at TLS 1.0 so legacy XMPP deployments still connect.
MIN_TLS_VERSION = ssl.TLSVersion.TLSv1

CIPHER_SUITES: tuple[str, ...] = (
    "ECDHE-ECDSA-AES128-GCM-SHA256",
    "ECDHE-RSA-AES128-GCM-SHA256",
    "ECDHE-ECDSA-AES128-SHA",
    "ECDHE-ECDSA-AES256-SHA",
    "ECDHE-RSA-AES128-SHA",
    "ECDHE-RSA-AES256-SHA",
)


@dataclass(frozen=True)
class TLSTrustPolicy:
    """Minimum version, cipher allow-list, optional pin and optional root pool."""

    min_version: ssl.TLSVersion = MIN_TLS_VERSION
    cipher_suites: tuple[str, ...] = CIPHER_SUITES
    pinned_sha256: Optional[bytes] = None
    # DER roots replacing the system pool; None keeps the system pool.
    root_certificates: Optional[tuple[bytes, ...]] = None

    def ssl_context(self) -> ssl.SSLContext:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.minimum_version = self.min_version
        # OpenSSL 3 refuses anything below TLS 1.2 at the default security level.
        context.set_ciphers(":".join(self.cipher_suites) + ":@SECLEVEL=0")
        if self.root_certificates is None:
            context.load_default_certs(ssl.Purpose.SERVER_AUTH)
        else:
            for der in self.root_certificates:
                context.load_verify_locations(cadata=der)
        return context

    def matches_pin(self, certificate_der: bytes) -> bool:
        """True when no pin is set or the certificate's SHA-256 equals it."""

        if self.pinned_sha256 is None:
            return True
        return hashlib.sha256(certificate_der).digest() == self.pinned_sha256


def decode_pin(pin: Optional[str]) -> Optional[bytes]:
    """Decode a hex SHA-256 fingerprint; empty or missing means no pin."""

    if not pin:
        return None
    try:
        decoded = binascii.unhexlify(pin.encode("ascii"))
    except (UnicodeEncodeError, binascii.Error) as exc:
        raise InvalidPinEncoding(pin, str(exc)) from exc
    if len(decoded) != PIN_LENGTH:
        raise InvalidPinLength(pin, len(decoded))
    return decoded


def _load_root_override(domain: str, der: bytes) -> Optional[bytes]:
    try:
        x509.load_der_x509_certificate(der)
    except ValueError as exc:
        # Falls back to the system pool instead of failing the connection.
        LOGGER.warning("Tried to add root certificate for %s but failed: %s", domain, exc)
        return None
    LOGGER.info("Temporarily trusting only the bundled root certificate for %s", domain)
    return der


def build_tls_policy(
    pin: Optional[str],
    domain: str,
    root_overrides: Mapping[str, bytes],
) -> TLSTrustPolicy:
    """Build the TLS policy for a connection to ``domain``."""

    pinned = decode_pin(pin)

    roots = None
    der = root_overrides.get(domain)
    if der is not None:
        loaded = _load_root_override(domain, der)
        if loaded is not None:
            roots = (loaded,)

    return TLSTrustPolicy(pinned_sha256=pinned, root_certificates=roots)
