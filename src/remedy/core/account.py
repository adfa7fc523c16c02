# =============================================================================
# Account Model
# =============================================================================
# Represents one remote IMAP source and the local Maildir it is mirrored to.
#
# Accounts are loaded once at startup and then shared read-only by every
# task that works on them (the account task, each mailbox orchestration and
# every fetch worker). They are frozen dataclasses so no task can mutate a
# value another task is reading.
#
# IMPORTANT: Credentials are described here, not resolved. The plaintext
# secret is produced later by remedy.credentials and never stored on the
# Account itself.
# =============================================================================

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class SecurityMode(Enum):
    """
    How the IMAP transport is secured.

    TLS:      TLS is negotiated before any protocol exchange (usually port 993).
    STARTTLS: Plain connection upgraded with the STARTTLS command (usually 143).
    """
    TLS = "tls"
    STARTTLS = "starttls"

    @classmethod
    def parse(cls, value: str) -> "SecurityMode":
        """Parse a config value. "ssl" is accepted as an alias for "tls"."""
        normalized = value.strip().lower()
        if normalized == "ssl":
            normalized = "tls"
        return cls(normalized)


# =============================================================================
# Credential Descriptors
# =============================================================================

@dataclass(frozen=True)
class PlaintextCredential:
    """A password written directly in the config file."""
    secret: str

    def __repr__(self) -> str:
        return "PlaintextCredential([hidden])"


@dataclass(frozen=True)
class ShellCredential:
    """
    A command whose standard output is the password.

    The command line is split with shell word-splitting rules but is not run
    through a shell, e.g. "pass show mail/personal".
    """
    command: str

    def __repr__(self) -> str:
        return "ShellCredential([shell command])"


@dataclass(frozen=True)
class KeyringCredential:
    """A password stored in the system keyring under (service, username)."""
    service: str
    username: str


Credential = PlaintextCredential | ShellCredential | KeyringCredential


@dataclass(frozen=True)
class Account:
    """
    Represents a remote mailbox source.

    Attributes:
        name: Unique identifier for this account (the key in config.toml).
        host: Hostname of the IMAP server.
        port: Port for the IMAP connection (993 for TLS, 143 for STARTTLS).
        security: How the connection is secured.
        username: Login name sent with the LOGIN command.
        credential: Where the password comes from.
        maildir: Local root directory. Each remote mailbox is mirrored to
                 maildir / <mailbox name>.
        connections: Number of parallel fetch workers per mailbox. Also the
                     capacity of the channel between workers and writer.
        timeout: IMAP command timeout in seconds. Also bounds the connect
                 phase, so an unreachable server fails instead of hanging.

    Example:
        >>> account = Account(
        ...     name="personal",
        ...     host="imap.example.com",
        ...     port=993,
        ...     security=SecurityMode.TLS,
        ...     username="user@example.com",
        ...     credential=ShellCredential("pass show mail/personal"),
        ...     maildir=Path("~/Mail/personal").expanduser(),
        ...     connections=4,
        ... )
    """

    name: str
    host: str
    port: int
    security: SecurityMode
    username: str
    credential: Credential
    maildir: Path
    connections: int = 1
    timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.connections < 1:
            raise ValueError(f"connections must be >= 1, got {self.connections}")
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be between 1 and 65535, got {self.port}")

    def __str__(self) -> str:
        return f"{self.name} ({self.host})"

    def __repr__(self) -> str:
        # Keep user details and credentials out of logs
        return (
            f"Account(name={self.name!r}, security={self.security.value}, "
            f"port={self.port}, connections={self.connections})"
        )
