# =============================================================================
# IMAP Sync Engine
# =============================================================================
# Mirrors every mailbox of every configured account into local Maildirs.
#
# Per mailbox:
#   1. EXAMINE the mailbox on the account's session and UID SEARCH ALL
#   2. Split the UIDs into contiguous chunks, one per fetch worker
#   3. Each worker opens its own session and fetches its chunk in order,
#      pushing messages into a bounded channel (capacity = connections)
#   4. A single writer drains the channel and stores messages in arrival
#      order, so no two stores for one mailbox ever race
#
# Failure isolation:
#   - A failing worker, writer, mailbox or account never cancels siblings;
#     each runs to its own completion or failure.
#   - The first failure (in time) of a mailbox is what the mailbox reports.
#   - Mailbox failures are collected per account, account failures per run,
#     and the run reports all of them at the end.
#
# Every run is a full resync: nothing about earlier runs is remembered.
# =============================================================================

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable

from remedy.core import Account, Credential, FetchedMessage
from remedy.credentials import CredentialError, resolve_credential
from remedy.imap.channel import MessageChannel
from remedy.imap.client import IMAPClient, IMAPError, open_session
from remedy.storage import MaildirStore, StorageFailed


logger = logging.getLogger(__name__)


# Type aliases for the pluggable collaborators
SessionFactory = Callable[[Account, str], Awaitable[IMAPClient]]
StoreFactory = Callable[[Path], MaildirStore]
CredentialResolver = Callable[[Credential], Awaitable[str]]


def partition_identifiers(identifiers: list[int], workers: int) -> list[list[int]]:
    """
    Split identifiers into contiguous chunks, one per fetch worker.

    The chunk size is len(identifiers) // workers (at least 1) and the last
    chunk holds whatever is left. When the count doesn't divide evenly this
    yields one chunk more than `workers`:

        >>> partition_identifiers([1, 2, 3, 4, 5], 2)
        [[1, 2], [3, 4], [5]]

    Args:
        identifiers: Ordered UIDs from the search.
        workers: Configured number of connections (>= 1).

    Returns:
        Chunks in order; their concatenation equals `identifiers`.
    """
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")
    if not identifiers:
        return []
    size = max(1, len(identifiers) // workers)
    return [identifiers[i:i + size] for i in range(0, len(identifiers), size)]


# =============================================================================
# Results
# =============================================================================

@dataclass
class MailboxResult:
    """
    Outcome of one mailbox pass.

    Attributes:
        name: Remote mailbox name.
        identifiers: Messages found on the server.
        workers: Fetch workers spawned.
        stored: Messages written to the local Maildir. On failure this is
                how far the writer got.
    """
    name: str
    identifiers: int = 0
    workers: int = 0
    stored: int = 0


@dataclass
class AccountResult:
    """
    Outcome of one account.

    Attributes:
        account: Account name.
        mailboxes: One entry per mailbox attempted.
        errors: Every failure in this account (mailbox-level, or the single
                account-level failure that stopped it).
    """
    account: str
    mailboxes: list[MailboxResult] = field(default_factory=list)
    errors: list["SyncError"] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def stored(self) -> int:
        return sum(m.stored for m in self.mailboxes)


@dataclass
class SyncReport:
    """Outcome of a whole run, across all accounts."""
    accounts: list[AccountResult] = field(default_factory=list)

    @property
    def failures(self) -> list["SyncError"]:
        return [error for account in self.accounts for error in account.errors]

    @property
    def success(self) -> bool:
        return not self.failures

    @property
    def stored(self) -> int:
        return sum(a.stored for a in self.accounts)


# =============================================================================
# Engine
# =============================================================================

class SyncEngine:
    """
    Concurrent IMAP to Maildir synchronization.

    Usage:
        >>> engine = SyncEngine()
        >>> report = await engine.sync_accounts(config.accounts.values())
        >>> for failure in report.failures:
        ...     print(failure)

    The session factory, store factory and credential resolver can be
    swapped out (tests use in-memory fakes).
    """

    def __init__(
        self,
        session_factory: SessionFactory = open_session,
        store_factory: StoreFactory = MaildirStore,
        credential_resolver: CredentialResolver = resolve_credential,
    ) -> None:
        self.session_factory = session_factory
        self.store_factory = store_factory
        self.credential_resolver = credential_resolver

    # -------------------------------------------------------------------------
    # Process level
    # -------------------------------------------------------------------------

    async def sync_accounts(self, accounts: list[Account]) -> SyncReport:
        """
        Sync all accounts concurrently.

        An account that fails does not affect the others. Every failure ends
        up in the returned report.
        """
        accounts = list(accounts)
        tasks = [
            asyncio.create_task(self.sync_account(account), name=f"account-{account.name}")
            for account in accounts
        ]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        report = SyncReport()
        for account, outcome in zip(accounts, outcomes):
            if isinstance(outcome, AccountResult):
                report.accounts.append(outcome)
                continue

            if isinstance(outcome, SyncError):
                error = outcome
            else:
                logger.error(
                    f"Unexpected error syncing {account.name}",
                    exc_info=(type(outcome), outcome, outcome.__traceback__),
                )
                error = AccountSyncError(account, f"unexpected error: {outcome!r}")
                error.__cause__ = outcome
            logger.error(f"Account {account.name} failed: {error}")
            report.accounts.append(AccountResult(account=account.name, errors=[error]))

        logger.info(
            f"Sync finished: {report.stored} messages stored, "
            f"{len(report.failures)} failures"
        )
        return report

    # -------------------------------------------------------------------------
    # Account level
    # -------------------------------------------------------------------------

    async def sync_account(self, account: Account) -> AccountResult:
        """
        Sync every mailbox of one account, one mailbox after another.

        Mailbox failures are recorded and the next mailbox proceeds.

        Raises:
            AccountSyncError: The password couldn't be resolved, or the
                              account session couldn't be opened or listed.
        """
        logger.info(f"Starting sync for account: {account}")
        result = AccountResult(account=account.name)

        try:
            password = await self.credential_resolver(account.credential)
        except CredentialError as e:
            raise AccountSyncError(account, f"could not resolve password: {e}") from e

        try:
            session = await self.session_factory(account, password)
        except IMAPError as e:
            raise AccountSyncError(account, str(e)) from e

        store = self.store_factory(account.maildir)
        try:
            try:
                names = await session.list_mailboxes()
            except IMAPError as e:
                raise AccountSyncError(account, f"could not list mailboxes: {e}") from e
            logger.info(f"[{account.name}] Found {len(names)} mailboxes on server")

            for name in names:
                try:
                    mailbox_result = await self.sync_mailbox(
                        account, password, session, store, name
                    )
                except MailboxSyncError as e:
                    logger.error(str(e))
                    result.errors.append(e)
                    result.mailboxes.append(e.result)
                    continue
                result.mailboxes.append(mailbox_result)
        finally:
            await session.disconnect()

        logger.info(
            f"[{account.name}] Done: {result.stored} messages stored in "
            f"{len(result.mailboxes)} mailboxes, {len(result.errors)} failed"
        )
        return result

    # -------------------------------------------------------------------------
    # Mailbox level
    # -------------------------------------------------------------------------

    async def sync_mailbox(
        self,
        account: Account,
        password: str,
        session: IMAPClient,
        store: MaildirStore,
        name: str,
    ) -> MailboxResult:
        """
        Mirror one mailbox into its local Maildir.

        Args:
            account: The account being synced.
            password: Resolved password, for the workers' own sessions.
            session: The account's session, used for EXAMINE and SEARCH.
            store: The account's Maildir store.
            name: Remote mailbox name.

        Returns:
            MailboxResult with counts.

        Raises:
            MailboxSyncError: Wraps the first failure of this mailbox. Raised
                              only after every worker and the writer stopped.
        """
        logger.info(f"[{account.name}] Syncing mailbox {name}")
        result = MailboxResult(name=name)

        try:
            await asyncio.to_thread(store.ensure_mailbox_directories, name)
        except (OSError, ValueError) as e:
            raise MailboxSyncError(account, name, e, result) from e

        try:
            await session.examine(name)
            identifiers = await session.search_all()
        except IMAPError as e:
            raise MailboxSyncError(account, name, e, result) from e

        result.identifiers = len(identifiers)
        logger.info(f"[{account.name}] {name}: {len(identifiers)} messages found")
        if not identifiers:
            logger.info(f"[{account.name}] Mailbox {name} is empty, nothing to fetch")
            return result

        chunks = partition_identifiers(identifiers, account.connections)
        result.workers = len(chunks)
        logger.debug(
            f"[{account.name}] {name}: chunk sizes {[len(c) for c in chunks]} "
            f"for {account.connections} connections"
        )

        channel: MessageChannel[FetchedMessage] = MessageChannel(
            capacity=account.connections,
            senders=len(chunks),
        )

        # Completion order, so the first failure in time can be reported
        finished: list[asyncio.Task] = []
        tasks = [
            asyncio.create_task(
                self._fetch_worker(account, password, name, chunk, channel),
                name=f"fetch-{account.name}-{name}-{index}",
            )
            for index, chunk in enumerate(chunks)
        ]
        tasks.append(
            asyncio.create_task(
                self._writer(store, name, channel, result),
                name=f"write-{account.name}-{name}",
            )
        )
        for task in tasks:
            task.add_done_callback(finished.append)

        # No sibling is cancelled when one fails
        await asyncio.gather(*tasks, return_exceptions=True)

        failed = [task for task in finished if task.cancelled() or task.exception()]
        for task in failed:
            error = asyncio.CancelledError() if task.cancelled() else task.exception()
            logger.error(f"[{account.name}] {task.get_name()} failed: {error!r}")

        if failed:
            first = failed[0]
            cause = asyncio.CancelledError() if first.cancelled() else first.exception()
            raise MailboxSyncError(account, name, cause, result) from cause

        logger.info(f"[{account.name}] {name}: {result.stored} messages stored")
        return result

    async def _fetch_worker(
        self,
        account: Account,
        password: str,
        name: str,
        chunk: list[int],
        channel: MessageChannel[FetchedMessage],
    ) -> int:
        """
        Fetch one chunk of a mailbox on a dedicated session.

        Messages are sent in chunk order. The first error stops the worker.
        The worker always releases its channel slot and its session.

        Returns:
            Number of messages handed to the writer.
        """
        session: IMAPClient | None = None
        sent = 0
        try:
            session = await self.session_factory(account, password)
            await session.examine(name)

            for identifier in chunk:
                message = await session.fetch(identifier)
                logger.debug(
                    f"Fetched {identifier} from {name} ({message.size} bytes), awaiting save"
                )
                await channel.send(message)
                sent += 1

            logger.debug(f"Worker for {name} is done ({sent} messages)")
            return sent
        finally:
            channel.close_sender()
            if session is not None:
                await session.disconnect()

    async def _writer(
        self,
        store: MaildirStore,
        name: str,
        channel: MessageChannel[FetchedMessage],
        result: MailboxResult,
    ) -> int:
        """
        Store messages from the channel until every worker has stopped.

        Stores run in a thread so disk I/O doesn't stall the event loop; they
        are awaited one at a time, which keeps them serialized.

        Raises:
            StorageFailed: A message couldn't be written. Remaining messages
                           are not stored and waiting workers are released.
        """
        try:
            while (message := await channel.recv()) is not None:
                try:
                    await asyncio.to_thread(
                        store.store_with_flags, name, message.body, message.maildir_flags
                    )
                except OSError as e:
                    raise StorageFailed(message.identifier, name, str(e)) from e
                result.stored += 1
        finally:
            channel.close_receiver()
        return result.stored


# =============================================================================
# Exceptions
# =============================================================================

class SyncError(Exception):
    """Base exception for synchronization failures."""
    pass


class MailboxSyncError(SyncError):
    """
    Raised when a mailbox pass fails.

    Attributes:
        host: IMAP host of the account.
        account: Account name.
        mailbox: Mailbox name.
        result: Counts reached before the failure.
    """

    def __init__(
        self,
        account: Account,
        mailbox: str,
        cause: BaseException,
        result: MailboxResult,
    ) -> None:
        super().__init__(f"{account.host}: mailbox {mailbox!r}: {cause}")
        self.host = account.host
        self.account = account.name
        self.mailbox = mailbox
        self.result = result


class AccountSyncError(SyncError):
    """Raised when an account can't be synced at all."""

    def __init__(self, account: Account, reason: str) -> None:
        super().__init__(f"{account.host}: {reason}")
        self.host = account.host
        self.account = account.name
