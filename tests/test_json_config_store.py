from __future__ import annotations

import json
import os
import stat

import pytest

from adapters.json_config_store import find_config_file, parse_config, save_config
from core.errors import ConfigError
from core.models import AccountConfig


def test_saved_config_parses_back(tmp_path) -> None:
    path = tmp_path / "nested" / "config.json"
    config = AccountConfig(
        account="alice@riseup.net",
        use_tor=True,
        private_key=b"\x00\x00\x01\x02",
        proxies=["socks5://127.0.0.1:9050"],
        server="4cjw6cwpeaeppfqz.onion",
        port=5222,
        otr_auto_append_tag=True,
        otr_auto_start_session=True,
        filename=str(path),
    )

    save_config(config)

    assert parse_config(str(path)) == config
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600


def test_saved_file_omits_missing_optionals(tmp_path) -> None:
    path = tmp_path / "config.json"
    save_config(AccountConfig(account="bob@example.com", filename=str(path)))

    data = json.loads(path.read_text(encoding="utf-8"))

    assert "server" not in data
    assert "password" not in data
    assert data["proxies"] == []


def test_parse_missing_file(tmp_path) -> None:
    with pytest.raises(ConfigError):
        parse_config(str(tmp_path / "absent.json"))


def test_parse_rejects_bad_json_and_types(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        parse_config(str(path))

    path.write_text(json.dumps({"account": "bob@example.com", "port": "5222"}), encoding="utf-8")
    with pytest.raises(ConfigError, match="port"):
        parse_config(str(path))

    path.write_text(json.dumps({"account": "bob@example.com", "proxies": [1]}), encoding="utf-8")
    with pytest.raises(ConfigError, match="proxies"):
        parse_config(str(path))


def test_save_requires_filename() -> None:
    with pytest.raises(ConfigError):
        save_config(AccountConfig(account="bob@example.com"))


def test_find_config_file_prefers_legacy(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    assert find_config_file(str(tmp_path)) == str(tmp_path / ".config" / "jabberlink" / "config.json")

    legacy = tmp_path / ".xmpp-client"
    legacy.write_text("{}", encoding="utf-8")
    assert find_config_file(str(tmp_path)) == str(legacy)


def test_find_config_file_honors_xdg(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    assert find_config_file(str(tmp_path)) == str(tmp_path / "xdg" / "jabberlink" / "config.json")


def test_find_config_file_needs_home() -> None:
    with pytest.raises(ConfigError):
        find_config_file(None)
