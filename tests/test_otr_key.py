from __future__ import annotations

from cryptography.hazmat.primitives.asymmetric import dsa

from adapters.otr_key import OTRPrivateKey


def _libotr_file(key: dsa.DSAPrivateKey) -> bytes:
    numbers = key.private_numbers()
    public = numbers.public_numbers
    params = public.parameter_numbers
    values = [("p", params.p), ("q", params.q), ("g", params.g), ("y", public.y), ("x", numbers.x)]
    lines = "\n".join(f"  ({name} #{value:X}#)" for name, value in values)
    text = (
        "(privkeys\n (account\n(name \"alice@riseup.net\")\n(protocol prpl-jabber)\n"
        f"(private-key \n (dsa \n{lines}\n  )\n )\n )\n)\n"
    )
    return text.encode("ascii")


def test_generated_key_serializes_in_otr_format() -> None:
    key = OTRPrivateKey()
    key.generate()

    serialized = key.serialize()

    assert serialized[:2] == b"\x00\x00"
    # p is a 1024-bit prime: 4-byte length then 128 bytes.
    assert serialized[2:6] == (128).to_bytes(4, "big")
    groups = key.fingerprint().split(" ")
    assert len(groups) == 5
    assert all(len(group) == 8 for group in groups)


def test_import_libotr_file() -> None:
    source = dsa.generate_private_key(key_size=1024)
    expected = OTRPrivateKey(source)

    key = OTRPrivateKey()

    assert key.import_key(_libotr_file(source))
    assert key.serialize() == expected.serialize()
    assert key.fingerprint() == expected.fingerprint()


def test_import_rejects_garbage() -> None:
    key = OTRPrivateKey()
    assert not key.import_key(b"not a key file")
    assert not key.import_key(b"\xff\xfe binary")
    assert not key.import_key(b"(privkeys (account (private-key (dsa (p #0F#) (q #03#)))))")
