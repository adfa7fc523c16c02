# =============================================================================
# Remedy: Concurrent IMAP to Maildir Synchronization
# =============================================================================
#
# Remedy mirrors the mailboxes of one or more IMAP accounts into local
# Maildir directories, fetching each mailbox over several parallel
# connections.
#
# Features:
#   - IMAP over TLS or STARTTLS
#   - Maildir output with IMAP flags preserved
#   - Multiple accounts, synced concurrently
#   - Passwords from config, a shell command, or the system keyring
#   - Failures isolated per mailbox and per account
#
# =============================================================================

__version__ = "0.1.0"
__app_name__ = "remedy"

__all__ = ["__version__", "__app_name__"]
