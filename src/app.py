"""Application entry point for jabberlink."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Callable, Optional

from art import tprint
from dotenv import load_dotenv

import settings
from adapters.json_config_store import find_config_file, parse_config, save_config
from adapters.otr_key import OTRPrivateKey
from adapters.srv_lookup import resolve_srv
from adapters.starttls_dialer import RegistrationField, StartTLSDialer
from adapters.terminal import Terminal
from core.bootstrap import ConnectionBootstrap
from core.enrollment import EnrollmentWizard
from core.errors import BootstrapError, ConfigError, EnrollmentCancelled
from core.models import AccountConfig

NAME = "JABBERLINK"
FONT = "tarty-1"
WIRE_LOGGER = "jabberlink.wire"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%H:%M:%S"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def add_secret(self, secret: str) -> None:
        if secret and secret not in self._secrets:
            self._secrets.append(secret)
            self._secrets.sort(key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging(verbose: bool = False) -> None:
    """Console logging only; secrets from the redact list never reach the terminal."""

    config = settings.LOGGING or {}
    if not (config.get("enabled", False) and config.get("console", True)):
        return

    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)
    console = logging.StreamHandler()
    console.setFormatter(_RedactingFormatter(_collect_redaction_values(config), LOG_FORMAT, LOG_DATEFMT))
    logging.basicConfig(level=level, handlers=[console])


def _register_secret(secret: str) -> None:
    """Redact a secret that only became known after logging was configured."""

    for handler in logging.getLogger().handlers:
        if isinstance(handler.formatter, _RedactingFormatter):
            handler.formatter.add_secret(secret)


def _wire_logger(config: AccountConfig) -> Optional[logging.Logger]:
    """Raw stream log enabled during enrollment; None when not requested."""

    if not config.raw_log_file:
        return None
    wire = logging.getLogger(WIRE_LOGGER)
    handler = logging.FileHandler(config.raw_log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
    wire.addHandler(handler)
    wire.setLevel(logging.DEBUG)
    # Raw traffic stays out of the console log.
    wire.propagate = False
    return wire


def _config_path(args: argparse.Namespace) -> str:
    return args.config_file or os.getenv(settings.CONFIG_FILE_ENV) or find_config_file(os.getenv("HOME"))


def _enroll(terminal: Terminal, path: str) -> AccountConfig:
    key = OTRPrivateKey()
    wizard = EnrollmentWizard(
        reader=terminal,
        messenger=terminal,
        key=key,
        lookup=resolve_srv,
        known_onion_services=settings.KNOWN_ONION_SERVICES,
        tor_proxy_url=settings.TOR_PROXY_URL,
        debug_log_path=settings.DEBUG_LOG_PATH,
        default_port=settings.DEFAULT_PORT,
    )
    config = AccountConfig()
    if not wizard.run(config):
        raise EnrollmentCancelled(wizard.state.value, "Failed to create config")

    config.filename = path
    save_config(config)
    terminal.info(f"Saved config to {path}")
    terminal.info(f"Your OTR fingerprint is {key.fingerprint()}")
    return config


def _load_config(terminal: Terminal, path: str) -> tuple[AccountConfig, str]:
    try:
        config = parse_config(path)
    except ConfigError as exc:
        terminal.alert(f"Failed to parse config file: {exc}")
        config = _enroll(terminal, path)

    password = config.password or os.getenv(settings.PASSWORD_ENV)
    if not password:
        try:
            password = terminal.ask_for_password(config.account)
        except EOFError as exc:
            raise ConfigError("Failed to read password") from exc
    _register_secret(password)
    return config, password


def _registration_form(terminal: Terminal) -> Callable[[str, str, list[RegistrationField]], None]:
    """Ask on the terminal for each registration field the dialer left empty."""

    def fill(title: str, instructions: str, fields: list[RegistrationField]) -> None:
        terminal.info(title)
        if instructions:
            terminal.info(instructions)
        for item in fields:
            if item.value:
                continue
            terminal.set_prompt(f"{item.name}: ")
            item.value = terminal.read_line()

    return fill


def _run_enroll(args: argparse.Namespace) -> None:
    terminal = Terminal()
    path = _config_path(args)
    if os.path.exists(path):
        terminal.warn(f"{path} already exists and will be replaced")
    _enroll(terminal, path)


def _run_connect(args: argparse.Namespace) -> None:
    logger = logging.getLogger(__name__)
    terminal = Terminal()
    config, password = _load_config(terminal, _config_path(args))

    bootstrap = ConnectionBootstrap(
        lookup=resolve_srv,
        protocol=StartTLSDialer(),
        root_overrides=settings.ROOT_CERTIFICATE_OVERRIDES,
        log=_wire_logger(config),
        create_callback=_registration_form(terminal) if args.create else None,
    )
    session = bootstrap.establish(config, password)
    try:
        mechanisms = ", ".join(session.mechanisms) or "none"
        if session.registered:
            terminal.info(f"Created account {config.account}")
        terminal.info(f"Connected to {session.domain}; server offers SASL mechanisms: {mechanisms}")
        logger.info("Connection check for %s complete", config.account)
    finally:
        session.close()


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="jabberlink")
    parser.add_argument("--config-file", default="", help="Location of the config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at debug level")
    parser.add_argument(
        "--create", action="store_true", help="Register the account in-band when connecting"
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("enroll", help="Create a new config file interactively")
    subparsers.add_parser("connect", help="Connect using the config file (default)")

    args = parser.parse_args(argv)

    load_dotenv()
    _print_banner()
    _configure_logging(args.verbose)

    try:
        if args.command == "enroll":
            _run_enroll(args)
            return
        _run_connect(args)
    except (BootstrapError, ConfigError) as exc:
        print(f"jabberlink: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
