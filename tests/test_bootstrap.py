from __future__ import annotations

import pytest

import settings
from adapters.json_config_store import parse_config, save_config
from core.bootstrap import ConnectionBootstrap
from core.errors import (
    InvalidAccount,
    InvalidPinLength,
    ProxyWithoutExplicitServer,
    SessionEstablishFailed,
    TransportDialFailed,
)
from core.models import AccountConfig
from core.proxy_chain import DIRECT


class RecordingLookup:
    def __init__(self, result=("xmpp.example.com", 5222)) -> None:
        self.calls: list[str] = []
        self._result = result

    def __call__(self, domain: str) -> tuple[str, int]:
        self.calls.append(domain)
        return self._result


class FakeProtocol:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[tuple] = []
        self._error = error

    def dial(self, address, local_part, domain, password, policy):
        self.calls.append((address, local_part, domain, password, policy))
        if self._error is not None:
            raise self._error
        return "session"


class FakeSocket:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeChain:
    def __init__(self, error: Exception | None = None) -> None:
        self.dialed: list[tuple[str, int]] = []
        self.socket = FakeSocket()
        self._error = error

    def dial(self, host: str, port: int) -> FakeSocket:
        self.dialed.append((host, port))
        if self._error is not None:
            raise self._error
        return self.socket


def _bootstrap(lookup, protocol, chain=None, create_callback=None) -> ConnectionBootstrap:
    def builder(proxies, direct):
        return chain if proxies else direct

    return ConnectionBootstrap(
        lookup=lookup,
        protocol=protocol,
        root_overrides=settings.ROOT_CERTIFICATE_OVERRIDES,
        chain_builder=builder,
        create_callback=create_callback,
    )


def test_explicit_server_without_proxy_dials_directly() -> None:
    lookup = RecordingLookup()
    protocol = FakeProtocol()
    config = AccountConfig(account="bob@example.com", server="xmpp.example.com", port=5223)

    session = _bootstrap(lookup, protocol).establish(config, "secret")

    assert session == "session"
    assert lookup.calls == []
    address, local_part, domain, password, policy = protocol.calls[0]
    assert (address, local_part, domain, password) == ("xmpp.example.com:5223", "bob", "example.com", "secret")
    assert policy.trusted_address
    assert policy.transport is None


def test_ccc_without_server_uses_lookup_and_cacert_root() -> None:
    lookup = RecordingLookup(result=("jabberd.jabber.ccc.de", 5222))
    protocol = FakeProtocol()
    config = AccountConfig(account="carol@jabber.ccc.de")

    _bootstrap(lookup, protocol).establish(config, "pw")

    assert lookup.calls == ["jabber.ccc.de"]
    address, _, _, _, policy = protocol.calls[0]
    assert address == "jabberd.jabber.ccc.de:5222"
    assert not policy.trusted_address
    assert policy.tls.root_certificates == (settings.ROOT_CERTIFICATE_OVERRIDES["jabber.ccc.de"],)


def test_proxy_chain_opens_transport_first() -> None:
    chain = FakeChain()
    protocol = FakeProtocol()
    config = AccountConfig(
        account="alice@riseup.net",
        server="4cjw6cwpeaeppfqz.onion",
        port=5222,
        proxies=["socks5://127.0.0.1:9050"],
    )

    _bootstrap(RecordingLookup(), protocol, chain).establish(config, "pw")

    assert chain.dialed == [("4cjw6cwpeaeppfqz.onion", 5222)]
    assert protocol.calls[0][4].transport is chain.socket
    assert not chain.socket.closed


def test_invalid_account_aborts_before_anything() -> None:
    lookup = RecordingLookup()
    protocol = FakeProtocol()

    with pytest.raises(InvalidAccount):
        _bootstrap(lookup, protocol).establish(AccountConfig(account="nobody"), "pw")

    assert lookup.calls == []
    assert protocol.calls == []


def test_proxy_without_server_never_looks_up() -> None:
    lookup = RecordingLookup()
    config = AccountConfig(account="bob@example.com", proxies=["socks5://127.0.0.1:9050"])

    with pytest.raises(ProxyWithoutExplicitServer):
        _bootstrap(lookup, FakeProtocol(), FakeChain()).establish(config, "pw")

    assert lookup.calls == []


def test_bad_pin_aborts_before_dialing() -> None:
    chain = FakeChain()
    protocol = FakeProtocol()
    config = AccountConfig(
        account="bob@example.com",
        server="xmpp.example.com",
        port=5222,
        proxies=["socks5://127.0.0.1:9050"],
        server_certificate_sha256="ab" * 16,
    )

    with pytest.raises(InvalidPinLength):
        _bootstrap(RecordingLookup(), protocol, chain).establish(config, "pw")

    assert chain.dialed == []
    assert protocol.calls == []


def test_proxy_dial_failure_is_transport_error() -> None:
    chain = FakeChain(error=ConnectionRefusedError("connection refused"))
    protocol = FakeProtocol()
    config = AccountConfig(
        account="bob@example.com",
        server="xmpp.example.com",
        port=5222,
        proxies=["socks5://127.0.0.1:9050"],
    )

    with pytest.raises(TransportDialFailed) as excinfo:
        _bootstrap(RecordingLookup(), protocol, chain).establish(config, "pw")

    assert "xmpp.example.com:5222" in str(excinfo.value)
    assert protocol.calls == []


def test_protocol_failure_closes_transport() -> None:
    chain = FakeChain()
    protocol = FakeProtocol(error=ConnectionError("stream closed"))
    config = AccountConfig(
        account="bob@example.com",
        server="xmpp.example.com",
        port=5222,
        proxies=["socks5://127.0.0.1:9050"],
    )

    with pytest.raises(SessionEstablishFailed):
        _bootstrap(RecordingLookup(), protocol, chain).establish(config, "pw")

    assert chain.socket.closed


def test_plan_is_stable_across_reparsed_config(tmp_path) -> None:
    config = AccountConfig(
        account="carol@jabber.ccc.de",
        server_certificate_sha256="cd" * 32,
        filename=str(tmp_path / "config.json"),
    )
    save_config(config)
    bootstrap = ConnectionBootstrap(
        lookup=RecordingLookup(result=("jabberd.jabber.ccc.de", 5222)),
        protocol=FakeProtocol(),
        root_overrides=settings.ROOT_CERTIFICATE_OVERRIDES,
    )

    first = bootstrap.plan(parse_config(config.filename))
    second = bootstrap.plan(parse_config(config.filename))

    assert first.endpoint == second.endpoint
    assert first.tls == second.tls
    assert first.dialer is DIRECT


def test_registration_callback_reaches_the_dialer() -> None:
    protocol = FakeProtocol()
    config = AccountConfig(account="bob@example.com", server="xmpp.example.com", port=5222)

    def fill_form(title, instructions, fields) -> None:
        return None

    _bootstrap(RecordingLookup(), protocol, create_callback=fill_form).establish(config, "pw")
    _bootstrap(RecordingLookup(), protocol).establish(config, "pw")

    assert protocol.calls[0][4].create_callback is fill_form
    assert protocol.calls[1][4].create_callback is None
