# =============================================================================
# Pytest Configuration and Fixtures
# =============================================================================
# Shared fixtures for the Remedy test suite.
#
# FakeServer stands in for an IMAP server: it hands out FakeSession objects
# through the same (account, password) -> session factory signature the
# sync engine uses, and records what happened so tests can assert on it.
# =============================================================================

import asyncio
import mailbox
from collections import namedtuple
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from remedy.core import Account, FetchedMessage, PlaintextCredential, SecurityMode
from remedy.imap.client import (
    FetchFailed,
    IMAPAuthenticationError,
    SearchFailed,
    SelectFailed,
)

PASSWORD = "secret"

# Shape of an aioimaplib command response
Response = namedtuple("Response", "result lines")


def mock_connection(capabilities=("IMAP4rev1", "STARTTLS"), login=None) -> MagicMock:
    """
    A stand-in for an aioimaplib IMAP4/IMAP4_SSL connection.

    Greeting, STARTTLS, LOGIN and LOGOUT succeed unless overridden. Tests
    set the other commands (list, examine, uid_search, uid) themselves.
    """
    connection = MagicMock()
    connection.wait_hello_from_server = AsyncMock()
    connection.has_capability = MagicMock(side_effect=lambda cap: cap in capabilities)
    connection.starttls = AsyncMock()
    connection.login = AsyncMock(return_value=login or Response("OK", [b"LOGIN completed"]))
    connection.logout = AsyncMock(return_value=Response("OK", [b"LOGOUT completed"]))
    return connection


def make_body(subject: str) -> bytes:
    """A small RFC 5322 message."""
    return (
        f"From: sender@example.com\r\n"
        f"To: me@example.com\r\n"
        f"Subject: {subject}\r\n"
        f"\r\n"
        f"Body of {subject}\r\n"
    ).encode()


def read_maildir(path: Path) -> list[mailbox.MaildirMessage]:
    """All messages stored in a Maildir, sorted by subject."""
    maildir = mailbox.Maildir(path, create=False)
    return sorted(maildir, key=lambda m: m["Subject"])


class FakeSession:
    """In-memory IMAP session backed by a FakeServer."""

    def __init__(self, server: "FakeServer") -> None:
        self.server = server
        self.selected: str | None = None
        self.fetched: list[int] = []

    async def list_mailboxes(self) -> list[str]:
        await asyncio.sleep(0)
        return list(self.server.mailboxes)

    async def examine(self, name: str) -> None:
        await asyncio.sleep(0)
        if name in self.server.fail_examine:
            raise SelectFailed(name, "NO [NONEXISTENT] Unknown mailbox")
        self.selected = name

    async def search_all(self) -> list[int]:
        await asyncio.sleep(0)
        if self.selected in self.server.fail_search:
            raise SearchFailed(self.selected, "BAD search")
        return sorted(self.server.mailboxes[self.selected])

    async def fetch(self, identifier: int) -> FetchedMessage:
        await asyncio.sleep(self.server.fetch_delay)
        if identifier in self.server.fail_fetch:
            raise FetchFailed(identifier, "NO fetch failed")
        flags, body = self.server.mailboxes[self.selected][identifier]
        self.fetched.append(identifier)
        return FetchedMessage(identifier=identifier, flags=flags, body=body)

    async def disconnect(self) -> None:
        self.server.disconnects += 1


class FakeServer:
    """
    A scripted IMAP server.

    Attributes:
        mailboxes: name -> {uid: (flags, body)}
        sessions: Every session opened, in order.
        fail_fetch / fail_examine / fail_search: Inject failures.
        reject_login: Make every login fail.
    """

    def __init__(self, mailboxes: dict[str, dict[int, tuple[tuple[str, ...], bytes]]]) -> None:
        self.mailboxes = mailboxes
        self.sessions: list[FakeSession] = []
        self.disconnects = 0
        self.fail_fetch: set[int] = set()
        self.fail_examine: set[str] = set()
        self.fail_search: set[str] = set()
        self.reject_login = False
        self.fetch_delay = 0.0

    async def open_session(self, account: Account, password: str) -> FakeSession:
        await asyncio.sleep(0)
        if self.reject_login or password != PASSWORD:
            raise IMAPAuthenticationError(f"Authentication failed for {account.username}")
        session = FakeSession(self)
        self.sessions.append(session)
        return session


@pytest.fixture
def temp_dir(tmp_path):
    """Directory for Maildir output."""
    return tmp_path


@pytest.fixture
def make_account(temp_dir):
    """Build Accounts rooted in the temp directory."""
    def _make(name: str = "test", connections: int = 1, **overrides) -> Account:
        values = dict(
            name=name,
            host=f"imap.{name}.example.com",
            port=993,
            security=SecurityMode.TLS,
            username=f"{name}@example.com",
            credential=PlaintextCredential(PASSWORD),
            maildir=temp_dir / name,
            connections=connections,
        )
        values.update(overrides)
        return Account(**values)

    return _make


@pytest.fixture
def sample_account(make_account):
    """Create a sample Account for testing."""
    return make_account()


@pytest.fixture
def five_message_server():
    """A server with one mailbox holding five flagged messages."""
    return FakeServer({
        "INBOX": {
            1: (("\\Seen",), make_body("m1")),
            2: (("\\Flagged", "\\Seen", "$Custom"), make_body("m2")),
            3: ((), make_body("m3")),
            4: (("\\Answered", "\\Recent"), make_body("m4")),
            5: (("\\Deleted", "\\Draft"), make_body("m5")),
        },
    })
