"""Static configuration for jabberlink.

Fixed tables (well known onion services, bundled root certificates) and
logging defaults live in resources/defaults.json so they can be edited or
swapped without touching Python.
"""

import json
import os

RESOURCES_DIR = os.path.join(os.path.dirname(__file__), "resources")

DEFAULTS_PATH = os.path.join(RESOURCES_DIR, "defaults.json")


def _load_json_config() -> dict:
    """Load defaults.json with a flat, user-friendly schema."""

    if not os.path.exists(DEFAULTS_PATH):
        raise FileNotFoundError(f"Defaults file not found: {DEFAULTS_PATH}")

    with open(DEFAULTS_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _load_root_certificates(raw_roots: dict[str, str]) -> dict[str, bytes]:
    """Read the DER files named per domain from the resources directory."""

    roots: dict[str, bytes] = {}
    for domain, filename in raw_roots.items():
        with open(os.path.join(RESOURCES_DIR, filename), "rb") as handle:
            roots[domain] = handle.read()
    return roots


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Domain -> onion host, used by the wizard's Tor shortcut.
KNOWN_ONION_SERVICES: dict[str, str] = dict(_CONFIG.get("known_onion_services", {}))

TOR_PROXY_URL = _CONFIG.get("tor_proxy_url", "socks5://127.0.0.1:9050")
DEFAULT_PORT = int(_CONFIG.get("default_port", 5222))
DEBUG_LOG_PATH = _CONFIG.get("debug_log_path", "/tmp/xmpp-client-debug.log")

# Domain -> DER root that replaces the system pool for that domain only.
# jabber.ccc.de chains to CACert, which distros are removing.
ROOT_CERTIFICATE_OVERRIDES = _load_root_certificates(_CONFIG.get("root_certificates", {}))

# Environment variable names read through python-dotenv.
CONFIG_FILE_ENV = "JABBERLINK_CONFIG"
PASSWORD_ENV = "JABBERLINK_PASSWORD"

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
