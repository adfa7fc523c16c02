# =============================================================================
# IMAP Module
# =============================================================================
# Handles all IMAP (Internet Message Access Protocol) operations:
#   - Connecting to IMAP servers with TLS/STARTTLS
#   - Listing mailboxes
#   - Enumerating and fetching messages
#   - Concurrent per-mailbox synchronization into Maildir
#
# This module uses aioimaplib for async IMAP operations, so many sessions
# (one per fetch worker) can run on a single event loop.
# =============================================================================

from remedy.imap.channel import ChannelClosed, MessageChannel
from remedy.imap.client import (
    FetchFailed,
    IMAPAuthenticationError,
    IMAPClient,
    IMAPConnectionError,
    IMAPError,
    SearchFailed,
    SelectFailed,
    open_session,
)
from remedy.imap.sync import (
    AccountResult,
    AccountSyncError,
    MailboxResult,
    MailboxSyncError,
    SyncEngine,
    SyncError,
    SyncReport,
    partition_identifiers,
)

__all__ = [
    # Client
    "IMAPClient",
    "IMAPError",
    "IMAPConnectionError",
    "IMAPAuthenticationError",
    "SelectFailed",
    "SearchFailed",
    "FetchFailed",
    "open_session",
    # Channel
    "MessageChannel",
    "ChannelClosed",
    # Sync
    "SyncEngine",
    "SyncReport",
    "AccountResult",
    "MailboxResult",
    "SyncError",
    "MailboxSyncError",
    "AccountSyncError",
    "partition_identifiers",
]
