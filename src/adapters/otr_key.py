"""OTR private key adapter.

Implements the core KeyMaterialPort on top of cryptography's DSA keys, reading
libotr ``otr.private_key`` files and serializing in the OTR wire format.
"""

from __future__ import annotations

import hashlib
import re
from typing import Optional

from cryptography.hazmat.primitives.asymmetric import dsa

# OTR v3 only knows 1024-bit DSA keys.
KEY_SIZE = 1024
DSA_KEY_TYPE = b"\x00\x00"

_DSA_BLOCK = re.compile(r"\(\s*dsa\b(.*)", re.DOTALL)
_DSA_PARAM = re.compile(r"\(\s*([pqgyx])\s+#([0-9A-Fa-f]+)#\s*\)")


def _mpi(value: int) -> bytes:
    raw = value.to_bytes((value.bit_length() + 7) // 8, "big")
    return len(raw).to_bytes(4, "big") + raw


class OTRPrivateKey:
    """A DSA key usable for OTR sessions."""

    def __init__(self, key: Optional[dsa.DSAPrivateKey] = None) -> None:
        self._key = key

    def generate(self) -> None:
        self._key = dsa.generate_private_key(key_size=KEY_SIZE)

    def import_key(self, raw: bytes) -> bool:
        """Load the first DSA key of a libotr private key file.

        Returns False instead of raising so callers can re-prompt.
        """

        try:
            text = raw.decode("ascii")
        except UnicodeDecodeError:
            return False

        block = _DSA_BLOCK.search(text)
        if block is None:
            return False
        params: dict[str, int] = {}
        for name, value in _DSA_PARAM.findall(block.group(1)):
            params.setdefault(name, int(value, 16))
        if set(params) != {"p", "q", "g", "y", "x"}:
            return False

        numbers = dsa.DSAPrivateNumbers(
            x=params["x"],
            public_numbers=dsa.DSAPublicNumbers(
                y=params["y"],
                parameter_numbers=dsa.DSAParameterNumbers(p=params["p"], q=params["q"], g=params["g"]),
            ),
        )
        try:
            self._key = numbers.private_key()
        except ValueError:
            return False
        return True

    def _public_bytes(self) -> bytes:
        if self._key is None:
            raise ValueError("no private key loaded")
        public = self._key.private_numbers().public_numbers
        parameters = public.parameter_numbers
        return (
            DSA_KEY_TYPE
            + _mpi(parameters.p)
            + _mpi(parameters.q)
            + _mpi(parameters.g)
            + _mpi(public.y)
        )

    def serialize(self) -> bytes:
        """Public key followed by the private exponent, as OTR stores it."""

        return self._public_bytes() + _mpi(self._key.private_numbers().x)

    def fingerprint(self) -> str:
        """Human-readable OTR fingerprint (SHA-1 over the public key MPIs)."""

        digest = hashlib.sha1(self._public_bytes()[len(DSA_KEY_TYPE):]).hexdigest().upper()
        return " ".join(digest[i : i + 8] for i in range(0, len(digest), 8))
