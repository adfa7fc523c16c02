# =============================================================================
# Maildir Store
# =============================================================================
# Local on-disk storage for synchronized mail, one Maildir per remote
# mailbox:
#
#   <root>/INBOX/{cur,new,tmp}
#   <root>/Archive/2024/{cur,new,tmp}       (hierarchical names nest)
#
# Delivery goes through the standard library mailbox.Maildir, which writes
# into tmp/ and renames into place, so a crash never leaves a half-written
# message visible to mail readers. The body is handed over as raw bytes, so
# it is stored exactly as the server sent it (CRLF line endings included).
# The message is then renamed from new/ into cur/ with its flags in the info
# suffix (":2,FS"), in the order given.
#
# All methods are blocking file I/O. The sync engine calls them from a
# worker thread.
# =============================================================================

import logging
import mailbox
import os
from pathlib import Path

logger = logging.getLogger(__name__)

MAILDIR_SUBDIRS = ("cur", "new", "tmp")


class MaildirStore:
    """
    Maildir tree rooted at an account's local directory.

    Usage:
        >>> store = MaildirStore(Path("~/Mail/personal").expanduser())
        >>> store.ensure_mailbox_directories("INBOX")
        >>> store.store_with_flags("INBOX", raw_bytes, "FS")

    Attributes:
        root: The account's local root directory.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self._maildirs: dict[str, mailbox.Maildir] = {}

    def mailbox_path(self, name: str) -> Path:
        """Local directory for a remote mailbox name."""
        path = self.root
        for part in name.split("/"):
            if part in ("", ".", ".."):
                raise ValueError(f"Unsafe mailbox name for local storage: {name!r}")
            path = path / part
        return path

    def ensure_mailbox_directories(self, name: str) -> mailbox.Maildir:
        """
        Create the Maildir for a mailbox (and any parents) if missing.

        mailbox.Maildir(create=True) only creates the leaf directory, and
        skips cur/new/tmp when the directory already exists (which happens
        when a child mailbox was created first), so the layout is made here.

        Raises:
            OSError: The directories couldn't be created.
        """
        if name in self._maildirs:
            return self._maildirs[name]

        path = self.mailbox_path(name)
        logger.debug(f"Ensuring maildir exists at {path}")
        for subdir in MAILDIR_SUBDIRS:
            (path / subdir).mkdir(parents=True, exist_ok=True)

        maildir = mailbox.Maildir(path, factory=None, create=False)
        self._maildirs[name] = maildir
        return maildir

    def store_with_flags(self, name: str, body: bytes, flags: str) -> str:
        """
        Deliver a message into cur/ with the given Maildir flag codes.

        The body is written byte for byte (line endings included). The flag
        string is used as given, so server order is kept ("SF" stays
        ":2,SF" rather than being sorted to ":2,FS").

        Args:
            name: Remote mailbox name.
            body: The raw RFC 5322 message.
            flags: Maildir flag codes, e.g. "FS".

        Returns:
            The Maildir key of the stored message.

        Raises:
            OSError: The message couldn't be written.
        """
        maildir = self.ensure_mailbox_directories(name)

        # Raw bytes skip the email generator and land in new/ under the key
        key = maildir.add(bytes(body))
        path = self.mailbox_path(name)
        os.replace(path / "new" / key, path / "cur" / f"{key}{maildir.colon}2,{flags}")

        logger.debug(f"Stored {len(body)} bytes in {name} as {key} (flags={flags!r})")
        return key


class StorageFailed(Exception):
    """Raised when a fetched message can't be written to the local store."""

    def __init__(self, identifier: int, mailbox_name: str, reason: str) -> None:
        super().__init__(f"Failed to store message {identifier} in {mailbox_name!r}: {reason}")
        self.identifier = identifier
        self.mailbox = mailbox_name
