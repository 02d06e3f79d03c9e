"""
IMAP Mail Prune Package

A threaded tool that deletes messages from IMAP folders, either all of them
or those sent from given addresses.
"""

__version__ = "1.0.0"

from .config import ConfigManager, ProviderSettings
from .deletion_set import DeletionSet, MatchReport
from .email_analyzer import AddressMatcher, evaluate
from .email_processor import MailPruner, ProcessingCallback
from .errors import (
    AuthError,
    DeleteFlagError,
    ExpungeError,
    FetchError,
    FolderSelectError,
    LogoutError,
    MailConnectionError,
    MailStoreError,
    OperationCancelled,
)
from .expunger import Expunger
from .imap_manager import Fetcher, FolderSession, MailStoreClient
from .models import MailboxHandle, MessageEnvelope, PruneResult, PruneState

__all__ = [
    "AddressMatcher",
    "AuthError",
    "ConfigManager",
    "DeleteFlagError",
    "DeletionSet",
    "ExpungeError",
    "Expunger",
    "FetchError",
    "Fetcher",
    "FolderSelectError",
    "FolderSession",
    "LogoutError",
    "MailConnectionError",
    "MailPruner",
    "MailStoreClient",
    "MailStoreError",
    "MailboxHandle",
    "MatchReport",
    "MessageEnvelope",
    "OperationCancelled",
    "ProcessingCallback",
    "ProviderSettings",
    "PruneResult",
    "PruneState",
    "evaluate",
]
