# =============================================================================
# Message Model
# =============================================================================
# A message as it travels from a fetch worker to the Maildir writer, and the
# translation of IMAP system flags into Maildir info codes.
#
# Maildir flag codes (https://cr.yp.to/proto/maildir.html):
#   S = Seen, R = Replied (\Answered), F = Flagged, T = Trashed (\Deleted),
#   D = Draft
#
# IMAP keywords ($Forwarded, $Junk, ...) and \Recent have no Maildir code
# and are dropped.
# =============================================================================

from dataclasses import dataclass, field


# IMAP system flag (upper-cased) -> Maildir info character
MAILDIR_FLAG_CODES: dict[str, str] = {
    "\\SEEN": "S",
    "\\ANSWERED": "R",
    "\\FLAGGED": "F",
    "\\DELETED": "T",
    "\\DRAFT": "D",
}


def maildir_code(flag: str) -> str:
    """Return the Maildir code for one IMAP flag, or "" if it has none."""
    return MAILDIR_FLAG_CODES.get(flag.upper(), "")


def flags_for_maildir(flags: list[str] | tuple[str, ...]) -> str:
    """
    Translate IMAP flags into a Maildir flag string.

    Flags are kept in the order the server reported them; unknown flags
    contribute nothing.

    Example:
        >>> flags_for_maildir(["\\Flagged", "\\Seen", "$Custom"])
        'FS'
    """
    return "".join(maildir_code(flag) for flag in flags)


@dataclass(frozen=True)
class FetchedMessage:
    """
    One message fetched from the server.

    Attributes:
        identifier: IMAP UID the message was fetched by.
        flags: IMAP flags in server order (e.g. ("\\Seen", "$Forwarded")).
        body: The full RFC 5322 message as received.
    """
    identifier: int
    flags: tuple[str, ...] = ()
    body: bytes = field(default=b"", repr=False)

    @property
    def size(self) -> int:
        return len(self.body)

    @property
    def maildir_flags(self) -> str:
        return flags_for_maildir(self.flags)
