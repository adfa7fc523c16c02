# =============================================================================
# Remedy Core Module
# =============================================================================
# Core domain models for Remedy. These are plain Python dataclasses with no
# external dependencies, so they can be imported anywhere without causing
# circular imports.
#
#   - Account: A remote IMAP source and its local Maildir root
#   - Credential descriptors: plaintext, shell command, keyring
#   - FetchedMessage: A message on its way from a worker to the writer
# =============================================================================

from remedy.core.account import (
    Account,
    Credential,
    KeyringCredential,
    PlaintextCredential,
    SecurityMode,
    ShellCredential,
)
from remedy.core.message import FetchedMessage, flags_for_maildir, maildir_code

__all__ = [
    "Account",
    "Credential",
    "KeyringCredential",
    "PlaintextCredential",
    "SecurityMode",
    "ShellCredential",
    "FetchedMessage",
    "flags_for_maildir",
    "maildir_code",
]
