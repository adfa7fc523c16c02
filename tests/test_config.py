# =============================================================================
# Configuration Tests
# =============================================================================

import tomllib
from pathlib import Path

import pytest

from remedy.config import Config, ConfigError, get_xdg_config_home
from remedy.core import (
    KeyringCredential,
    PlaintextCredential,
    SecurityMode,
    ShellCredential,
)

FULL_CONFIG = """
[general]
log_level = "debug"

[accounts.personal]
host = "imap.example.com"
port = 993
security = "tls"
username = "me@example.com"
password_command = "pass show mail/personal"
maildir = "~/Mail/personal"
connections = 4

[accounts.work]
host = "mail.work.example"
security = "starttls"
username = "me@work.example"
keyring = true
maildir = "/srv/mail/work"

[accounts.legacy]
host = "imap.legacy.example"
security = "SSL"
username = "old"
password = "hunter2"
maildir = "/srv/mail/legacy"
timeout = 90
"""


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(text)
    return path


def account_toml(**fields) -> str:
    base = {
        "host": '"imap.example.com"',
        "username": '"me"',
        "password": '"pw"',
        "maildir": '"/tmp/mail"',
    }
    base.update(fields)
    lines = [f"{key} = {value}" for key, value in base.items() if value is not None]
    return "[accounts.a]\n" + "\n".join(lines) + "\n"


def test_load_full_config(tmp_path):
    config = Config.load(write_config(tmp_path, FULL_CONFIG))

    assert config.general.log_level == "debug"
    assert list(config.accounts) == ["personal", "work", "legacy"]

    personal = config.accounts["personal"]
    assert personal.security is SecurityMode.TLS
    assert personal.credential == ShellCredential("pass show mail/personal")
    assert personal.maildir == Path("~/Mail/personal").expanduser()
    assert personal.connections == 4

    work = config.accounts["work"]
    assert work.security is SecurityMode.STARTTLS
    assert work.port == 143
    assert work.connections == 1
    assert work.credential == KeyringCredential("remedy:work", "me@work.example")

    legacy = config.accounts["legacy"]
    assert legacy.security is SecurityMode.TLS
    assert legacy.port == 993
    assert legacy.credential == PlaintextCredential("hunter2")
    assert legacy.timeout == 90.0


def test_account_repr_hides_credentials(tmp_path):
    config = Config.load(write_config(tmp_path, FULL_CONFIG))
    text = repr(config.accounts["legacy"])
    assert "hunter2" not in text
    assert "old" not in text


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        Config.load(tmp_path / "nope.toml")


def test_invalid_toml(tmp_path):
    with pytest.raises(ConfigError, match="Invalid config"):
        Config.load(write_config(tmp_path, "[accounts\n"))


@pytest.mark.parametrize(
    "fields, message",
    [
        ({"host": None}, "host is required"),
        ({"maildir": '""'}, "maildir is required"),
        ({"connections": "0"}, "connections must be at least 1"),
        ({"connections": '"four"'}, "connections must be at least 1"),
        ({"port": "70000"}, "port must be between"),
        ({"security": '"plain"'}, "security must be"),
        ({"timeout": "0"}, "timeout must be a positive number"),
        ({"password_command": '"pass x"'}, "exactly one of"),
        ({"password": None}, "exactly one of"),
        ({"password": None, "keyring": "false"}, "keyring must be true"),
    ],
)
def test_validation(tmp_path, fields, message):
    with pytest.raises(ConfigError, match=message):
        Config.load(write_config(tmp_path, account_toml(**fields)))


def test_bad_log_level(tmp_path):
    with pytest.raises(ConfigError, match="log_level"):
        Config.load(write_config(tmp_path, '[general]\nlog_level = "loud"\n'))


def test_save_and_reload(tmp_path):
    original = Config.load(write_config(tmp_path, FULL_CONFIG))
    target = tmp_path / "nested" / "saved.toml"

    original.save(target)
    reloaded = Config.load(target)

    assert reloaded.accounts == original.accounts
    assert reloaded.general == original.general


def test_example_config_is_loadable(tmp_path):
    path = Config.example().save(tmp_path / "example.toml")

    with open(path, "rb") as f:
        data = tomllib.load(f)
    assert data["accounts"]["personal"]["password_command"] == "pass show mail/personal"

    config = Config.load(path)
    assert config.accounts["personal"].connections == 4


def test_xdg_config_home(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    assert get_xdg_config_home() == tmp_path / "remedy"
    assert Config.config_file_path() == tmp_path / "remedy" / "config.toml"
