# =============================================================================
# Credential Resolution
# =============================================================================
# Turns a credential descriptor from the config into the plaintext password
# used for LOGIN.
#
# Sources:
#   - Plaintext:  the password is in the config file
#   - Shell:      a command prints the password on stdout
#                 (e.g. "pass show mail/personal", "gpg -dq ~/.mailpass.gpg")
#   - Keyring:    the password lives in the system keyring
#
# Resolution happens once per account per run, before any session is opened.
# The result is never cached, logged or included in error messages.
# =============================================================================

import asyncio
import logging
import shlex

import keyring
from keyring.errors import KeyringError

from remedy.core import (
    Credential,
    KeyringCredential,
    PlaintextCredential,
    ShellCredential,
)

logger = logging.getLogger(__name__)


async def resolve_credential(credential: Credential) -> str:
    """
    Produce the plaintext password described by a credential.

    Args:
        credential: The account's credential descriptor.

    Returns:
        The password. Output of shell commands is stripped of surrounding
        whitespace.

    Raises:
        CredentialCommandMalformed: The command line is empty or badly quoted.
        CredentialCommandFailed: The command could not be started.
        CredentialNotUtf8: The command printed something that isn't UTF-8.
        CredentialNotFound: No keyring entry exists.
    """
    if isinstance(credential, PlaintextCredential):
        return credential.secret
    if isinstance(credential, ShellCredential):
        return await _run_password_command(credential.command)
    if isinstance(credential, KeyringCredential):
        return _lookup_keyring(credential)
    raise TypeError(f"Unsupported credential type: {type(credential).__name__}")


async def _run_password_command(command: str) -> str:
    """Run a password command and return its trimmed standard output."""
    try:
        argv = shlex.split(command)
    except ValueError as e:
        raise CredentialCommandMalformed(f"Cannot parse password command: {e}") from e

    if not argv:
        raise CredentialCommandMalformed("The password command is empty")

    program, *args = argv
    logger.debug(f"Running password command: {program}")

    try:
        process = await asyncio.create_subprocess_exec(
            program,
            *args,
            stdout=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise CredentialCommandFailed(
            f"Failed to start password command {program!r}: {e.strerror or e}"
        ) from e

    stdout, _ = await process.communicate()

    if process.returncode != 0:
        logger.warning(
            f"Password command {program!r} exited with status {process.returncode}"
        )

    try:
        output = stdout.decode("utf-8")
    except UnicodeDecodeError as e:
        raise CredentialNotUtf8(
            f"Password command {program!r} printed non UTF-8 output"
        ) from e

    return output.strip()


def _lookup_keyring(credential: KeyringCredential) -> str:
    """Fetch a password from the system keyring."""
    logger.debug(f"Looking up keyring entry {credential.service!r}")
    try:
        password = keyring.get_password(credential.service, credential.username)
    except KeyringError as e:
        raise CredentialNotFound(f"Keyring lookup for {credential.username} failed: {e}") from e
    if not password:
        raise CredentialNotFound(
            f"No password found in keyring for {credential.username}. "
            f"Set it with: keyring set {credential.service} {credential.username}"
        )
    return password


# =============================================================================
# Exceptions
# =============================================================================

class CredentialError(Exception):
    """Base exception for credential resolution."""
    pass


class CredentialCommandMalformed(CredentialError):
    """Raised when a password command can't be split into a program and args."""
    pass


class CredentialCommandFailed(CredentialError):
    """Raised when a password command can't be started."""
    pass


class CredentialNotUtf8(CredentialError):
    """Raised when a password command prints invalid UTF-8."""
    pass


class CredentialNotFound(CredentialError):
    """Raised when the keyring has no password for the account."""
    pass
