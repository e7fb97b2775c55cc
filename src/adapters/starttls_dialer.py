"""STARTTLS connection dialer.

Implements the core ProtocolDialerPort far enough to prove a connection
works: stream header, STARTTLS, TLS handshake under the trust policy, pin
check, the post-TLS feature list and, when asked to, in-band account
registration (XEP-0077). Authentication and stanzas are left to a full XMPP
client.
"""

from __future__ import annotations

import logging
import re
import socket
import ssl
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional
from xml.sax.saxutils import escape

from core.ports import DialPolicy

LOGGER = logging.getLogger(__name__)

STREAM_HEADER = (
    "<?xml version='1.0'?><stream:stream to='{domain}' xmlns='jabber:client' "
    "xmlns:stream='http://etherx.jabber.org/streams' version='1.0'>"
)
STARTTLS = "<starttls xmlns='urn:ietf:params:xml:ns:xmpp-tls'/>"
MAX_READ = 64 * 1024
DEFAULT_TIMEOUT = 30.0

_MECHANISM = re.compile(r"<mechanism>([^<]+)</mechanism>")
_IQ = re.compile(r"<iq\b[^>]*?(?:/>|>.*?</iq>)", re.DOTALL)

REGISTER_NS = "jabber:iq:register"
_REGISTER_GET = f"<iq type='get' id='reg1'><query xmlns='{REGISTER_NS}'/></iq>"


@dataclass
class RegistrationField:
    """One field of the server's registration form."""

    name: str
    value: str = ""


@dataclass
class StreamSession:
    """An established TLS stream that has not authenticated yet."""

    sock: ssl.SSLSocket
    local_part: str
    domain: str
    mechanisms: list[str] = field(default_factory=list)
    registered: bool = False

    def close(self) -> None:
        try:
            self.sock.sendall(b"</stream:stream>")
        except OSError:
            LOGGER.debug("Stream already closed by peer")
        finally:
            self.sock.close()


class StartTLSDialer:
    """ProtocolDialerPort adapter used by the CLI connect command."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._timeout = timeout

    def dial(
        self,
        address: str,
        local_part: str,
        domain: str,
        password: str,
        policy: DialPolicy,
    ) -> StreamSession:
        host, _, port = address.rpartition(":")
        sock = policy.transport or socket.create_connection((host, int(port)), timeout=self._timeout)
        try:
            return self._negotiate(sock, local_part, domain, password, policy)
        except BaseException:
            sock.close()
            raise

    def _negotiate(
        self,
        sock: socket.socket,
        local_part: str,
        domain: str,
        password: str,
        policy: DialPolicy,
    ) -> StreamSession:
        wire = policy.log
        _send(sock, STREAM_HEADER.format(domain=domain), wire)
        features = _read_until(sock, ["</stream:features>"], wire)
        if "urn:ietf:params:xml:ns:xmpp-tls" not in features:
            raise ConnectionError("xmpp: server doesn't support TLS")

        _send(sock, STARTTLS, wire)
        reply = _read_until(sock, ["<proceed", "<failure"], wire)
        if "<proceed" not in reply:
            raise ConnectionError("xmpp: server refused STARTTLS")

        context = policy.tls.ssl_context()
        if policy.tls.pinned_sha256 is not None and policy.trusted_address:
            # The pin replaces chain validation for explicitly configured servers.
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        tls_sock = context.wrap_socket(sock, server_hostname=domain)

        certificate = tls_sock.getpeercert(binary_form=True)
        if certificate is None or not policy.tls.matches_pin(certificate):
            raise ssl.SSLError("xmpp: server certificate does not match pinned SHA-256")
        LOGGER.info("TLS established with %s using %s", domain, tls_sock.version())

        _send(tls_sock, STREAM_HEADER.format(domain=domain), wire)
        features = _read_until(tls_sock, ["</stream:features>"], wire)
        registered = False
        if policy.create_callback is not None:
            registered = register_account(
                tls_sock, local_part, domain, password, policy.create_callback, wire
            )
        return StreamSession(
            sock=tls_sock,
            local_part=local_part,
            domain=domain,
            mechanisms=_MECHANISM.findall(features),
            registered=registered,
        )


def _send(sock: socket.socket, text: str, wire: Optional[logging.Logger]) -> None:
    if wire is not None:
        wire.debug("-> %s", text)
    sock.sendall(text.encode("utf-8"))


def _read_until(sock: socket.socket, markers: Iterable[str], wire: Optional[logging.Logger]) -> str:
    markers = list(markers)
    buffer = ""
    while not any(marker in buffer for marker in markers):
        chunk = sock.recv(4096)
        if not chunk:
            raise ConnectionError("xmpp: stream closed by server")
        text = chunk.decode("utf-8", errors="replace")
        if wire is not None:
            wire.debug("<- %s", text)
        buffer += text
        if len(buffer) > MAX_READ:
            raise ConnectionError("xmpp: stream features too large")
    return buffer


def register_account(
    sock: socket.socket,
    local_part: str,
    domain: str,
    password: str,
    fill_form: Callable[[str, str, list[RegistrationField]], Any],
    wire: Optional[logging.Logger],
) -> bool:
    """Create the account in-band before authentication.

    Returns False when the server reports the account as already registered.
    The username and password fields are prefilled; ``fill_form`` receives the
    form title, the server instructions and every field, and fills in the
    ones still empty.
    """
    _send(sock, _REGISTER_GET, wire)
    form = _parse_iq(_read_iq(sock, wire))
    if form.get("type") != "result":
        raise ConnectionError(f"xmpp: in-band registration unavailable ({_error_condition(form)})")
    query = form.find(f"{{{REGISTER_NS}}}query")
    if query is None:
        raise ConnectionError("xmpp: registration reply has no form")

    instructions = ""
    fields: list[RegistrationField] = []
    for child in query:
        name = child.tag.rpartition("}")[2]
        if name == "registered":
            LOGGER.info("Account %s@%s is already registered", local_part, domain)
            return False
        if name == "instructions":
            instructions = (child.text or "").strip()
        elif name != "x":
            fields.append(RegistrationField(name=name, value=(child.text or "").strip()))

    for item in fields:
        if item.name == "username":
            item.value = local_part
        elif item.name == "password":
            item.value = password
    fill_form(f"Register {local_part}@{domain}", instructions, fields)

    body = "".join(f"<{item.name}>{escape(item.value)}</{item.name}>" for item in fields)
    _send(sock, f"<iq type='set' id='reg2'><query xmlns='{REGISTER_NS}'>{body}</query></iq>", wire)
    reply = _parse_iq(_read_iq(sock, wire))
    if reply.get("type") != "result":
        raise ConnectionError(f"xmpp: registration rejected ({_error_condition(reply)})")
    LOGGER.info("Registered %s@%s", local_part, domain)
    return True


def _read_iq(sock: socket.socket, wire: Optional[logging.Logger]) -> str:
    buffer = ""
    while True:
        match = _IQ.search(buffer)
        if match is not None:
            return match.group(0)
        buffer += _read_until(sock, [">"], wire)
        if len(buffer) > MAX_READ:
            raise ConnectionError("xmpp: iq stanza too large")


def _parse_iq(text: str) -> ET.Element:
    # Stanzas inherit the jabber:client default namespace from the stream.
    if "xmlns=" not in text.partition(">")[0]:
        text = text.replace("<iq", "<iq xmlns='jabber:client'", 1)
    try:
        return ET.fromstring(text)
    except ET.ParseError as exc:
        raise ConnectionError(f"xmpp: malformed iq from server: {exc}") from exc


def _error_condition(iq: ET.Element) -> str:
    error = iq.find("{jabber:client}error")
    if error is None or len(error) == 0:
        return "no error condition"
    return error[0].tag.rpartition("}")[2]
