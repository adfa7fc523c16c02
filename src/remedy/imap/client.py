# =============================================================================
# IMAP Client
# =============================================================================
# Provides an async IMAP session wrapper around aioimaplib.
#
# Key responsibilities:
#   - Connection management (TLS or STARTTLS, LOGIN, LOGOUT)
#   - Mailbox listing
#   - Read-only mailbox selection (EXAMINE)
#   - Full UID enumeration (UID SEARCH ALL)
#   - Fetching one message's flags and body (UID FETCH)
#
# Design notes:
#   - One IMAPClient is one session. Sessions are never shared between
#     tasks: the account task owns one, and every fetch worker opens its own.
#   - Failures are raised as typed exceptions and never retried here.
#   - The password is passed to connect() and not kept on the client.
# =============================================================================

import asyncio
import logging
import re

from aioimaplib import aioimaplib

from remedy.core import Account, FetchedMessage, SecurityMode

# Set up logging for this module
logger = logging.getLogger(__name__)

# "<seq> FETCH (" at the start of an untagged FETCH response
_FETCH_START = re.compile(rb"^\d+\s+FETCH\s*\(", re.IGNORECASE)
_FETCH_FLAGS = re.compile(rb"FLAGS\s*\(([^)]*)\)", re.IGNORECASE)
_LITERAL_MARKER = re.compile(rb"\{(\d+)\}\s*$")
_LIST_LINE = re.compile(
    r'^\((?P<flags>[^)]*)\)\s+(?P<delimiter>"(?:[^"\\]|\\.)*"|NIL)\s+(?P<name>.*)$',
    re.IGNORECASE,
)

# Raised by a command besides a NO/BAD response. aioimaplib raises
# CommandTimeout once the account timeout expires, and Abort when the
# connection dropped underneath the command.
_COMMAND_ERRORS = (asyncio.TimeoutError, OSError, aioimaplib.AioImapException)


def _quote_mailbox_name(name: str) -> str:
    """
    Quote an IMAP mailbox name for use as a command argument.

    Names are always sent as quoted strings, escaping internal quotes and
    backslashes, so names with spaces or brackets ("[Gmail]/All Mail")
    survive unchanged.
    """
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _unquote(value: str) -> str:
    """Reverse IMAP quoted-string escaping."""
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return re.sub(r"\\(.)", r"\1", value[1:-1])
    return value


def _as_bytes(item: bytes | bytearray | str) -> bytes:
    if isinstance(item, str):
        return item.encode("utf-8")
    return bytes(item)


class IMAPClient:
    """
    Async IMAP session for one account.

    Usage:
        >>> client = IMAPClient(account)
        >>> await client.connect(password)
        >>> mailboxes = await client.list_mailboxes()
        >>> await client.examine("INBOX")
        >>> uids = await client.search_all()
        >>> message = await client.fetch(uids[0])
        >>> await client.disconnect()

    Attributes:
        account: The Account this session belongs to.
        selected: Mailbox currently examined, if any.
    """

    # Fetch items for one message. PEEK keeps \Seen untouched on the server.
    FETCH_ITEMS = "(FLAGS BODY.PEEK[])"

    def __init__(self, account: Account) -> None:
        self.account = account
        self.selected: str | None = None
        self._client: aioimaplib.IMAP4_SSL | aioimaplib.IMAP4 | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def connect(self, password: str) -> None:
        """
        Connect, secure the transport and log in.

        Args:
            password: Resolved plaintext password. Not stored.

        Raises:
            IMAPConnectionError: Network, TLS or timeout failure.
            IMAPAuthenticationError: The server rejected the credentials.
        """
        host, port = self.account.host, self.account.port
        logger.debug(f"Connecting to {host}:{port} ({self.account.security.value})")

        try:
            if self.account.security is SecurityMode.TLS:
                self._client = aioimaplib.IMAP4_SSL(
                    host=host,
                    port=port,
                    timeout=self.account.timeout,
                )
            else:
                self._client = aioimaplib.IMAP4(
                    host=host,
                    port=port,
                    timeout=self.account.timeout,
                )

            await self._client.wait_hello_from_server()
            logger.debug("Connected, server greeting received")

            if self.account.security is SecurityMode.STARTTLS:
                if not self._client.has_capability("STARTTLS"):
                    raise IMAPConnectionError(f"{host} does not support STARTTLS")
                logger.debug("Upgrading to TLS via STARTTLS")
                await self._client.starttls()

            await self._authenticate(password)

        except asyncio.TimeoutError as e:
            self._client = None
            raise IMAPConnectionError(f"Connection timed out to {host}:{port}") from e
        except OSError as e:
            self._client = None
            raise IMAPConnectionError(f"Failed to connect to {host}:{port}: {e}") from e
        except aioimaplib.AioImapException as e:
            # The transport is up, so the session still needs a LOGOUT
            await self.disconnect()
            raise IMAPConnectionError(
                f"Session setup with {host}:{port} failed: {_error_text(e)}"
            ) from e
        except IMAPError:
            # Connected but unusable (no STARTTLS or bad credentials)
            await self.disconnect()
            raise

        logger.debug(f"Logged in to {host} as {self.account.username}")

    async def _authenticate(self, password: str) -> None:
        response = await self._client.login(self.account.username, password)
        if response.result != "OK":
            raise IMAPAuthenticationError(
                f"Authentication failed for {self.account.username}@{self.account.host}"
            )

    async def disconnect(self) -> None:
        """
        Send LOGOUT and drop the connection.

        Errors during logout are logged and ignored; the session is
        discarded either way.
        """
        if self._client is None:
            return
        try:
            logger.debug("Sending LOGOUT")
            await self._client.logout()
        except Exception as e:
            logger.warning(f"Error during logout from {self.account.host}: {e}")
        finally:
            self._client = None
            self.selected = None

    def _require_client(self) -> aioimaplib.IMAP4:
        if self._client is None:
            raise IMAPConnectionError(f"Not connected to {self.account.host}")
        return self._client

    # =========================================================================
    # Mailbox Operations
    # =========================================================================

    async def list_mailboxes(self) -> list[str]:
        """
        List every mailbox visible to this session (LIST "" "*").

        Returns:
            Mailbox names in the order the server reported them.
        """
        client = self._require_client()
        try:
            response = await client.list('""', "*")
        except _COMMAND_ERRORS as e:
            raise IMAPError(f"Failed to list mailboxes: {_error_text(e)}") from e
        if response.result != "OK":
            raise IMAPError(f"Failed to list mailboxes: {response.lines}")

        names = parse_list_response(response.lines)
        logger.debug(f"Found {len(names)} mailboxes")
        return names

    async def examine(self, mailbox: str) -> None:
        """
        Select a mailbox read-only.

        Raises:
            SelectFailed: The server refused the EXAMINE.
        """
        client = self._require_client()
        logger.debug(f"Examining mailbox: {mailbox}")
        try:
            response = await client.examine(_quote_mailbox_name(mailbox))
        except _COMMAND_ERRORS as e:
            raise SelectFailed(mailbox, _error_text(e)) from e
        if response.result != "OK":
            raise SelectFailed(mailbox, _describe(response.lines))
        self.selected = mailbox

    async def search_all(self) -> list[int]:
        """
        Return the UIDs of every message in the selected mailbox.

        Raises:
            SearchFailed: The server refused the search.
        """
        client = self._require_client()
        try:
            response = await client.uid_search("ALL")
        except _COMMAND_ERRORS as e:
            raise SearchFailed(self.selected, _error_text(e)) from e
        if response.result != "OK":
            raise SearchFailed(self.selected, _describe(response.lines))
        return parse_search_response(response.lines)

    # =========================================================================
    # Message Fetching
    # =========================================================================

    async def fetch(self, identifier: int) -> FetchedMessage:
        """
        Fetch the flags and full body of one message.

        Args:
            identifier: UID from search_all().

        Raises:
            FetchFailed: The command failed, or the server did not return
                         exactly one message for the UID.
        """
        client = self._require_client()
        try:
            response = await client.uid("fetch", str(identifier), self.FETCH_ITEMS)
        except _COMMAND_ERRORS as e:
            raise FetchFailed(identifier, _error_text(e)) from e
        if response.result != "OK":
            raise FetchFailed(identifier, _describe(response.lines))

        messages = parse_fetch_response(response.lines)
        if len(messages) != 1:
            raise FetchFailed(identifier, f"expected 1 message, server returned {len(messages)}")

        flags, body = messages[0]
        return FetchedMessage(identifier=identifier, flags=flags, body=body)


async def open_session(account: Account, password: str) -> IMAPClient:
    """
    Open an authenticated session for an account.

    This is the session factory used by the sync engine: once per account
    for listing, and once per fetch worker.
    """
    client = IMAPClient(account)
    await client.connect(password)
    return client


# =============================================================================
# Response Parsing
# =============================================================================

def parse_list_response(lines: list) -> list[str]:
    """
    Parse LIST response lines into mailbox names.

    LIST response format:
        (\\HasNoChildren) "/" "INBOX"
        (\\HasChildren \\Noselect) "/" "[Gmail]"
        (\\HasNoChildren) "." Archive
    Names sent as literals ({N} followed by a separate item) are supported.
    """
    names: list[str] = []
    pending_literal = False

    for item in lines:
        text = _as_bytes(item).decode("utf-8", errors="replace")

        if pending_literal:
            names.append(text)
            pending_literal = False
            continue

        match = _LIST_LINE.match(text.strip())
        if not match:
            # Completion line ("LIST completed") or something we don't know
            continue

        name = match.group("name").strip()
        if _LITERAL_MARKER.search(name.encode()):
            pending_literal = True
            continue
        names.append(_unquote(name))

    return names


def parse_search_response(lines: list) -> list[int]:
    """
    Parse UID SEARCH response lines into an ordered list of UIDs.

    aioimaplib returns the untagged result first (b"3 7 9" or b"SEARCH 3 7 9")
    and the tagged completion text last.
    """
    uids: list[int] = []
    for item in lines[:-1]:
        for token in _as_bytes(item).split():
            if token.isdigit():
                uids.append(int(token))
    return uids


def parse_fetch_response(lines: list) -> list[tuple[tuple[str, ...], bytes]]:
    """
    Parse FETCH response lines into (flags, body) pairs.

    aioimaplib returns each message as a text line ending with a literal
    marker, the literal itself as a separate bytearray, then the rest of the
    response (which may carry FLAGS when the server sends them after the
    body):
        b'1 FETCH (UID 42 FLAGS (\\Seen) BODY[] {1234}'
        bytearray(b'From: ...')
        b')'
        b'UID FETCH completed'
    """
    messages: list[dict] = []
    expect_literal = False

    for item in lines:
        data = _as_bytes(item)

        if expect_literal:
            messages[-1]["body"] = data
            expect_literal = False
            continue

        if _FETCH_START.match(data):
            messages.append({"text": data, "body": b""})
        elif messages:
            messages[-1]["text"] += b" " + data
        else:
            continue

        if _LITERAL_MARKER.search(data):
            expect_literal = True

    result = []
    for message in messages:
        flags: tuple[str, ...] = ()
        flags_match = _FETCH_FLAGS.search(message["text"])
        if flags_match:
            flags = tuple(flags_match.group(1).decode("ascii", errors="replace").split())
        result.append((flags, message["body"]))
    return result


def _describe(lines: list) -> str:
    """Short readable form of a failed response."""
    return " ".join(_as_bytes(line).decode("utf-8", errors="replace") for line in lines).strip()


def _error_text(error: BaseException) -> str:
    """Exception type plus message. aioimaplib's CommandTimeout has no message."""
    text = str(error)
    return f"{type(error).__name__}: {text}" if text else type(error).__name__


# =============================================================================
# Exceptions
# =============================================================================

class IMAPError(Exception):
    """Base exception for IMAP operations."""
    pass


class IMAPConnectionError(IMAPError):
    """Raised when unable to connect to the IMAP server."""
    pass


class IMAPAuthenticationError(IMAPError):
    """Raised when IMAP authentication fails."""
    pass


class SelectFailed(IMAPError):
    """Raised when a mailbox can't be examined."""

    def __init__(self, mailbox: str, reason: str) -> None:
        super().__init__(f"Failed to examine mailbox {mailbox!r}: {reason}")
        self.mailbox = mailbox


class SearchFailed(IMAPError):
    """Raised when UID SEARCH fails."""

    def __init__(self, mailbox: str | None, reason: str) -> None:
        super().__init__(f"Failed to search mailbox {mailbox!r}: {reason}")
        self.mailbox = mailbox


class FetchFailed(IMAPError):
    """Raised when a single message can't be fetched."""

    def __init__(self, identifier: int, reason: str) -> None:
        super().__init__(f"Failed to fetch message {identifier}: {reason}")
        self.identifier = identifier
