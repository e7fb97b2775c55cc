"""First-run enrollment wizard.

The wizard is a linear state machine. Each state prompts, validates and
re-asks on bad input, then names the next state. A failed read cancels the
whole enrollment; only input validation is ever retried.
"""

from __future__ import annotations

import enum
import logging
import os
from typing import Callable, Mapping, Optional

from core.config import DEFAULT_PORT, OTR_POLICY_DEFAULTS
from core.errors import (
    EnrollmentCancelled,
    InvalidAccount,
    InvalidProxyURL,
    UnsupportedProxy,
)
from core.models import AccountConfig, split_identity
from core.ports import DirectoryLookupPort, KeyMaterialPort, LineReaderPort, MessengerPort
from core.proxy_chain import DIRECT, dialer_from_url

LOGGER = logging.getLogger(__name__)


class WizardState(enum.Enum):
    ACCOUNT = "account"
    DEBUG_LOGGING = "debug_logging"
    TOR = "tor"
    PRIVATE_KEY = "private_key"
    FIXED_POLICY = "fixed_policy"
    TOR_SHORTCUT = "tor_shortcut"
    PROXY = "proxy"
    SERVER = "server"
    PORT = "port"
    DONE = "done"


def parse_yes(answer: str) -> bool:
    return answer.strip().lower() in {"y", "yes"}


class EnrollmentWizard:
    """Fill an ``AccountConfig`` from interactive answers."""

    def __init__(
        self,
        reader: LineReaderPort,
        messenger: MessengerPort,
        key: KeyMaterialPort,
        lookup: DirectoryLookupPort,
        known_onion_services: Mapping[str, str],
        tor_proxy_url: str,
        debug_log_path: str,
        default_port: int = DEFAULT_PORT,
    ) -> None:
        self._reader = reader
        self._messenger = messenger
        self._key = key
        self._lookup = lookup
        self._known_onion_services = dict(known_onion_services)
        self._tor_proxy_url = tor_proxy_url
        self._debug_log_path = debug_log_path
        self._default_port = default_port

        self._config = AccountConfig()
        self._domain = ""
        self._handlers: dict[WizardState, Callable[[], WizardState]] = {
            WizardState.ACCOUNT: self._account,
            WizardState.DEBUG_LOGGING: self._debug_logging,
            WizardState.TOR: self._tor,
            WizardState.PRIVATE_KEY: self._private_key,
            WizardState.FIXED_POLICY: self._fixed_policy,
            WizardState.TOR_SHORTCUT: self._tor_shortcut,
            WizardState.PROXY: self._proxy,
            WizardState.SERVER: self._server,
            WizardState.PORT: self._port,
        }
        self.state = WizardState.ACCOUNT

    def run(self, config: AccountConfig) -> bool:
        """Populate ``config``; False means cancelled and the record must not be saved."""

        self._config = config
        self._messenger.warn("Enrolling new config file")
        self.state = WizardState.ACCOUNT
        try:
            while self.state is not WizardState.DONE:
                self.state = self._handlers[self.state]()
        except EnrollmentCancelled as exc:
            LOGGER.info("%s", exc)
            return False
        self._reader.set_prompt("> ")
        return True

    def _read(self) -> str:
        try:
            return self._reader.read_line()
        except (EOFError, OSError) as exc:
            raise EnrollmentCancelled(self.state.value, str(exc) or type(exc).__name__) from exc

    def _ask_yes(self) -> bool:
        try:
            return parse_yes(self._reader.read_line())
        except (EOFError, OSError):
            return False

    def _account(self) -> WizardState:
        while True:
            self._reader.set_prompt("Account (i.e. user@example.com, enter to quit): ")
            account = self._read()
            if not account:
                raise EnrollmentCancelled(self.state.value, "no account given")
            try:
                identity = split_identity(account)
            except InvalidAccount as exc:
                self._messenger.alert(str(exc))
                continue
            self._config.account = account
            self._domain = identity.domain
            return WizardState.DEBUG_LOGGING

    def _debug_logging(self) -> WizardState:
        self._reader.set_prompt(f"Enable debug logging to {self._debug_log_path}? ")
        if self._ask_yes():
            self._messenger.info("Debug logging enabled...")
            self._config.raw_log_file = self._debug_log_path
        else:
            self._messenger.info("Not enabling debug logging...")
        return WizardState.TOR

    def _tor(self) -> WizardState:
        self._reader.set_prompt("Use Tor?: ")
        self._config.use_tor = self._ask_yes()
        self._messenger.info("Using Tor..." if self._config.use_tor else "Not using Tor...")
        return WizardState.PRIVATE_KEY

    def _private_key(self) -> WizardState:
        self._reader.set_prompt("File to import libotr private key from (enter to generate): ")
        while True:
            import_file = self._read()
            if not import_file:
                self._messenger.info("Generating private key...")
                self._key.generate()
                break
            try:
                with open(os.path.expanduser(import_file), "rb") as handle:
                    raw = handle.read()
            except OSError as exc:
                self._messenger.alert(f"Failed to open private key file: {exc}")
                continue
            if not self._key.import_key(raw):
                self._messenger.alert(
                    "Failed to parse libotr private key file (the parser is pretty simple I'm afraid)"
                )
                continue
            break
        self._config.private_key = self._key.serialize()
        return WizardState.FIXED_POLICY

    def _fixed_policy(self) -> WizardState:
        self._config.otr_auto_append_tag = OTR_POLICY_DEFAULTS.auto_append_tag
        self._config.otr_auto_start_session = OTR_POLICY_DEFAULTS.auto_start_session
        self._config.otr_auto_tear_down = OTR_POLICY_DEFAULTS.auto_tear_down
        return WizardState.TOR_SHORTCUT

    def _tor_shortcut(self) -> WizardState:
        hidden_service = self._known_onion_services.get(self._domain)
        if not (self._config.use_tor and hidden_service):
            return WizardState.PROXY
        self._messenger.info(
            "It appears that you are using a well known server and we will use "
            "its Tor hidden service to connect."
        )
        self._config.server = hidden_service
        self._config.port = self._default_port
        self._config.proxies = [self._tor_proxy_url]
        return WizardState.DONE

    def _proxy(self) -> WizardState:
        suffix = ", which is the default" if self._config.use_tor else ", enter for none"
        self._reader.set_prompt(f"Proxy (i.e {self._tor_proxy_url}{suffix}): ")
        proxy: Optional[str] = None
        while True:
            answer = self._read()
            if not answer:
                if not self._config.use_tor:
                    break
                answer = self._tor_proxy_url
            try:
                dialer_from_url(answer, DIRECT)
            except (InvalidProxyURL, UnsupportedProxy) as exc:
                self._messenger.alert(str(exc))
                continue
            proxy = answer
            break

        if proxy is None:
            return WizardState.DONE
        self._config.proxies = [proxy]
        return WizardState.SERVER

    def _server(self) -> WizardState:
        self._messenger.info(
            "Since you selected a proxy, we need to know the server and port to "
            "connect to as a SRV lookup would leak information every time."
        )
        self._reader.set_prompt("Server (i.e. xmpp.example.com, enter to lookup using unproxied DNS): ")
        server = self._read()
        if server:
            self._config.server = server
            return WizardState.PORT

        self._messenger.info("Performing SRV lookup")
        try:
            host, port = self._lookup(self._domain)
        except LookupError as exc:
            self._messenger.alert(f"SRV lookup failed: {exc}")
            raise EnrollmentCancelled(self.state.value, f"SRV lookup failed: {exc}") from exc
        self._config.server = host
        self._config.port = int(port)
        self._messenger.info(f"Resolved {host}:{port}")
        return WizardState.DONE

    def _port(self) -> WizardState:
        while True:
            self._reader.set_prompt(f"Port (enter for {self._default_port}): ")
            answer = self._read() or str(self._default_port)
            port = int(answer) if answer.isascii() and answer.isdigit() else 0
            if not 0 < port <= 65535:
                self._messenger.info("Port numbers must be 0 < port <= 65535")
                continue
            self._config.port = port
            return WizardState.DONE
