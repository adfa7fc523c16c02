# =============================================================================
# Configuration Management
# =============================================================================
# Handles loading, saving, and validating Remedy configuration.
#
# XDG Base Directory Compliance (https://specifications.freedesktop.org/basedir-spec/):
#   - Config:  $XDG_CONFIG_HOME/remedy/  (default: ~/.config/remedy/)
#
# Files:
#   - config.toml: accounts and general settings
#
# Example config.toml:
#
#   [general]
#   log_level = "info"
#
#   [accounts.personal]
#   host = "imap.example.com"
#   port = 993
#   security = "tls"                      # or "starttls"
#   username = "me@example.com"
#   password_command = "pass show mail/personal"
#   maildir = "~/Mail/personal"
#   connections = 4
# =============================================================================

import os
import tomllib  # Built into Python 3.11+
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomli_w  # For writing TOML (tomllib is read-only)

from remedy.core import (
    Account,
    Credential,
    KeyringCredential,
    PlaintextCredential,
    SecurityMode,
    ShellCredential,
)


# Application identifier used in all XDG paths
APP_NAME = "remedy"

LOG_LEVELS = ("debug", "info", "warning", "error")

# Default port per security mode
DEFAULT_PORTS = {
    SecurityMode.TLS: 993,
    SecurityMode.STARTTLS: 143,
}


def get_xdg_config_home() -> Path:
    """
    Returns the XDG config directory for Remedy.

    Respects $XDG_CONFIG_HOME if set, otherwise uses ~/.config/remedy/
    """
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        base = Path(xdg_config)
    else:
        base = Path.home() / ".config"
    return base / APP_NAME


def keyring_service(account_name: str) -> str:
    """
    Keyring service name for an account.

    Passwords can be managed with the keyring CLI:
        keyring set remedy:personal me@example.com
    """
    return f"{APP_NAME}:{account_name}"


# =============================================================================
# Configuration Data Structures
# =============================================================================

@dataclass
class GeneralConfig:
    """
    General settings.

    Attributes:
        log_level: Logging verbosity ("debug", "info", "warning", "error").
                   The --debug flag overrides it.
    """
    log_level: str = "info"


@dataclass
class Config:
    """
    Main configuration container for Remedy.

    Attributes:
        general: General settings.
        accounts: Configured accounts, keyed by name, in file order.

    Usage:
        >>> config = Config.load()
        >>> config.accounts["personal"].host
        'imap.example.com'
    """
    general: GeneralConfig = field(default_factory=GeneralConfig)
    accounts: dict[str, Account] = field(default_factory=dict)

    # -------------------------------------------------------------------------
    # File Paths
    # -------------------------------------------------------------------------

    @staticmethod
    def config_file_path() -> Path:
        """Returns the path to the default config file."""
        return get_xdg_config_home() / "config.toml"

    # -------------------------------------------------------------------------
    # Loading and Saving
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """
        Load configuration from a config file.

        Args:
            path: Config file to read. Defaults to the XDG location.

        Returns:
            Loaded Config object.

        Raises:
            ConfigError: If the file is missing or invalid.
        """
        config_path = path or cls.config_file_path()

        if not config_path.exists():
            raise ConfigError(
                f"Config file not found: {config_path} (create one with --init)"
            )

        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid config file {config_path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

        return cls._from_dict(data)

    def save(self, path: Path | None = None) -> Path:
        """
        Save configuration to a config file.

        Creates the parent directory if it doesn't exist.

        Returns:
            The path written.
        """
        config_path = path or self.config_file_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "wb") as f:
            tomli_w.dump(self._to_dict(), f)
        return config_path

    @classmethod
    def example(cls) -> "Config":
        """A starter configuration with one placeholder account."""
        account = Account(
            name="personal",
            host="imap.example.com",
            port=993,
            security=SecurityMode.TLS,
            username="me@example.com",
            credential=ShellCredential("pass show mail/personal"),
            maildir=Path("~/Mail/personal"),
            connections=4,
        )
        return cls(accounts={account.name: account})

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """
        Create a Config object from a dictionary (parsed TOML).

        Each key under [accounts] is an account name.
        """
        config = cls()

        general = data.get("general", {})
        log_level = str(general.get("log_level", "info")).lower()
        if log_level not in LOG_LEVELS:
            raise ConfigError(
                f"general.log_level must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}"
            )
        config.general = GeneralConfig(log_level=log_level)

        accounts_data = data.get("accounts", {})
        if not isinstance(accounts_data, dict):
            raise ConfigError("[accounts] must be a table of named accounts")

        for name, acct_data in accounts_data.items():
            config.accounts[name] = _account_from_dict(name, acct_data)

        return config

    def _to_dict(self) -> dict[str, Any]:
        """
        Convert Config to a dictionary for TOML serialization.

        Plaintext passwords are written back as-is; prefer password_command
        or keyring in files you share.
        """
        data: dict[str, Any] = {
            "general": {"log_level": self.general.log_level},
            "accounts": {},
        }

        for name, account in self.accounts.items():
            entry: dict[str, Any] = {
                "host": account.host,
                "port": account.port,
                "security": account.security.value,
                "username": account.username,
            }
            entry.update(_credential_to_dict(account.credential))
            entry["maildir"] = str(account.maildir)
            entry["connections"] = account.connections
            entry["timeout"] = account.timeout
            data["accounts"][name] = entry

        return data


def _account_from_dict(name: str, data: Any) -> Account:
    """Validate one [accounts.<name>] table and build the Account."""
    if not isinstance(data, dict):
        raise ConfigError(f"accounts.{name} must be a table")

    def require(key: str) -> Any:
        value = data.get(key)
        if value in (None, ""):
            raise ConfigError(f"accounts.{name}.{key} is required")
        return value

    host = require("host")
    username = require("username")
    maildir = Path(require("maildir")).expanduser()

    try:
        security = SecurityMode.parse(str(data.get("security", "tls")))
    except ValueError as e:
        raise ConfigError(
            f"accounts.{name}.security must be \"tls\" or \"starttls\", got {data.get('security')!r}"
        ) from e

    port = data.get("port", DEFAULT_PORTS[security])
    if not isinstance(port, int) or isinstance(port, bool) or not 0 < port < 65536:
        raise ConfigError(f"accounts.{name}.port must be between 1 and 65535, got {port!r}")

    connections = data.get("connections", 1)
    if not isinstance(connections, int) or isinstance(connections, bool) or connections < 1:
        raise ConfigError(f"accounts.{name}.connections must be at least 1, got {connections!r}")

    timeout = data.get("timeout", 30.0)
    if not isinstance(timeout, (int, float)) or isinstance(timeout, bool) or timeout <= 0:
        raise ConfigError(f"accounts.{name}.timeout must be a positive number, got {timeout!r}")

    return Account(
        name=name,
        host=str(host),
        port=port,
        security=security,
        username=str(username),
        credential=_credential_from_dict(name, str(username), data),
        maildir=maildir,
        connections=connections,
        timeout=float(timeout),
    )


def _credential_from_dict(name: str, username: str, data: dict[str, Any]) -> Credential:
    """Pick the single configured password source of an account."""
    sources = [key for key in ("password", "password_command", "keyring") if key in data]
    if len(sources) != 1:
        raise ConfigError(
            f"accounts.{name} needs exactly one of password, password_command "
            f"or keyring (found: {', '.join(sources) or 'none'})"
        )

    source = sources[0]
    if source == "password":
        return PlaintextCredential(str(data["password"]))
    if source == "password_command":
        return ShellCredential(str(data["password_command"]))
    if data["keyring"] is not True:
        raise ConfigError(f"accounts.{name}.keyring must be true when set")
    return KeyringCredential(service=keyring_service(name), username=username)


def _credential_to_dict(credential: Credential) -> dict[str, Any]:
    if isinstance(credential, PlaintextCredential):
        return {"password": credential.secret}
    if isinstance(credential, ShellCredential):
        return {"password_command": credential.command}
    return {"keyring": True}


# =============================================================================
# Exceptions
# =============================================================================

class ConfigError(Exception):
    """Raised when there's an error loading or parsing configuration."""
    pass


# =============================================================================
# Utility Functions
# =============================================================================

def print_paths() -> None:
    """
    Print config paths for debugging.
    Useful for users wondering where their config is read from.
    """
    print(f"Config:       {get_xdg_config_home()}")
    print(f"Config file:  {Config.config_file_path()}")
