"""JSON account config adapter.

Reads and writes the persisted AccountConfig. Keys are snake_case and the
private key is stored base64 encoded.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
from typing import Any, Optional

from core.errors import ConfigError
from core.models import AccountConfig

LEGACY_FILENAME = ".xmpp-client"
APP_DIRNAME = "jabberlink"
CONFIG_FILENAME = "config.json"


def find_config_file(home_dir: Optional[str]) -> str:
    """Pick the config path: an existing legacy file, else the XDG location."""

    if not home_dir:
        raise ConfigError("$HOME not set. Please either export $HOME or use the --config-file option.")

    legacy = os.path.join(home_dir, LEGACY_FILENAME)
    if os.path.isfile(legacy):
        return legacy

    config_home = os.getenv("XDG_CONFIG_HOME") or os.path.join(home_dir, ".config")
    return os.path.join(config_home, APP_DIRNAME, CONFIG_FILENAME)


def _expect(data: dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = data.get(key, default)
    if value is None or isinstance(value, kind):
        return value
    raise ConfigError(f"{key} must be {kind.__name__}, got {type(value).__name__}")


def parse_config(path: str) -> AccountConfig:
    """Load an AccountConfig from ``path``."""

    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")

    try:
        private_key = base64.b64decode(_expect(data, "private_key", str, ""), validate=True)
    except binascii.Error as exc:
        raise ConfigError(f"private_key is not valid base64: {exc}") from exc

    proxies = _expect(data, "proxies", list, [])
    if not all(isinstance(proxy, str) for proxy in proxies):
        raise ConfigError("proxies must be a list of strings")

    port = _expect(data, "port", int, None)
    if isinstance(port, bool):
        raise ConfigError("port must be int, got bool")

    return AccountConfig(
        account=_expect(data, "account", str, ""),
        raw_log_file=_expect(data, "raw_log_file", str, None),
        use_tor=_expect(data, "use_tor", bool, False),
        private_key=private_key,
        proxies=list(proxies),
        server=_expect(data, "server", str, None),
        port=port,
        server_certificate_sha256=_expect(data, "server_certificate_sha256", str, None),
        otr_auto_append_tag=_expect(data, "otr_auto_append_tag", bool, False),
        otr_auto_start_session=_expect(data, "otr_auto_start_session", bool, False),
        otr_auto_tear_down=_expect(data, "otr_auto_tear_down", bool, False),
        password=_expect(data, "password", str, None),
        filename=path,
    )


def config_to_dict(config: AccountConfig) -> dict[str, Any]:
    data: dict[str, Any] = {
        "account": config.account,
        "raw_log_file": config.raw_log_file,
        "use_tor": config.use_tor,
        "private_key": base64.b64encode(config.private_key).decode("ascii"),
        "proxies": list(config.proxies),
        "server": config.server,
        "port": config.port,
        "server_certificate_sha256": config.server_certificate_sha256,
        "otr_auto_append_tag": config.otr_auto_append_tag,
        "otr_auto_start_session": config.otr_auto_start_session,
        "otr_auto_tear_down": config.otr_auto_tear_down,
    }
    if config.password:
        data["password"] = config.password
    return {key: value for key, value in data.items() if value is not None}


def save_config(config: AccountConfig) -> None:
    """Write ``config`` to ``config.filename`` readable by the owner only."""

    if not config.filename:
        raise ConfigError("Config has no filename to save to")

    directory = os.path.dirname(config.filename)
    if directory:
        os.makedirs(directory, mode=0o700, exist_ok=True)

    payload = json.dumps(config_to_dict(config), indent=2, sort_keys=True)
    try:
        fd = os.open(config.filename, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.write("\n")
    except OSError as exc:
        raise ConfigError(f"Failed to save {config.filename}: {exc}") from exc
