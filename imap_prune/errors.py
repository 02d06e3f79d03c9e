"""
Error taxonomy for IMAP Mail Prune.

Every failure of a mail-store call is surfaced as one of these exceptions.
The first failure aborts the pipeline for the folder it happened in; nothing
is retried internally.
"""

from typing import Optional


class MailStoreError(Exception):
    """Base class for all mail-store failures."""

    def __init__(self, message: str, folder: Optional[str] = None, state=None):
        """Initialize mail-store error.

        Args:
            message: Human-readable description of the failure
            folder: Folder the operation was working on, if any
            state: PruneState the operation was in when it failed
        """
        super().__init__(message)
        self.folder = folder
        self.state = state


class MailConnectionError(MailStoreError):
    """Transport unavailable (connect failed, connection dropped or never opened)."""


class AuthError(MailStoreError):
    """Login rejected, or a command was issued before logging in."""


class FolderSelectError(MailStoreError):
    """Folder missing or inaccessible."""


class FetchError(MailStoreError):
    """Protocol fault while fetching envelopes."""


class DeleteFlagError(MailStoreError):
    """Setting the \\Deleted flag failed. Remote state is unchanged."""


class ExpungeError(MailStoreError):
    """Expunge failed.

    When ``partial`` is True the \\Deleted flags were already stored: the
    messages are still present but flagged. Re-issuing the expunge alone
    recovers from this state.
    """

    def __init__(self, message: str, folder: Optional[str] = None, state=None, partial: bool = False):
        super().__init__(message, folder, state)
        self.partial = partial


class LogoutError(MailStoreError):
    """Logout failed."""


class OperationCancelled(Exception):
    """Raised when a caller cancels a scan before any mutating call."""
