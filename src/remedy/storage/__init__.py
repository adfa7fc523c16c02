# =============================================================================
# Storage Module
# =============================================================================
# Local Maildir storage for synchronized mail.
#
# Provides:
#   - One Maildir per remote mailbox under the account's local root
#   - Atomic delivery (tmp/ then rename) via the stdlib mailbox module
#   - IMAP flags preserved as Maildir info codes
# =============================================================================

from remedy.storage.maildir import MaildirStore, StorageFailed

__all__ = ["MaildirStore", "StorageFailed"]
