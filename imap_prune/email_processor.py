"""
Main prune orchestrator.

Wires folder selection, envelope streaming, parallel address matching and
expunging into the two caller-facing operations, and runs them over the
configured targets.
"""

import os
import threading
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

from .config import ConfigManager
from .deletion_set import DeletionSet, MatchReport
from .email_analyzer import AddressMatcher
from .errors import LogoutError, MailStoreError, OperationCancelled
from .expunger import Expunger
from .imap_manager import Fetcher, FolderSession, MailStoreClient
from .models import MailboxHandle, PruneResult, PruneState


class ProcessingCallback:
    """Callback interface for progress updates."""

    def on_start(self, stats: Dict[str, Any]) -> None:
        """Called when processing starts."""
        pass

    def on_folder_start(self, folder: str, total_folders: int, current_folder: int) -> None:
        """Called when starting to process a folder."""
        pass

    def on_folder_complete(self, folder: str, result: PruneResult) -> None:
        """Called when folder processing is complete."""
        pass

    def on_error(self, folder: str, error: Exception) -> None:
        """Called when processing a folder fails."""
        pass

    def on_complete(self, results: List[PruneResult], failures: Dict[str, Exception]) -> None:
        """Called when all processing is complete."""
        pass


class MailPruner:
    """Deletes messages from IMAP folders, unconditionally or by sender."""

    def __init__(self, config_manager: ConfigManager, client: Optional[MailStoreClient] = None):
        """Initialize mail pruner.

        Args:
            config_manager: Configuration manager instance
            client: Mail-store client to use instead of one built from config
        """
        self.config = config_manager.config
        self.config_manager = config_manager
        self.settings = config_manager.get_prune_settings()
        self.verbose = self.settings["verbose"]

        # Initialize components
        self._setup_credentials()
        self._setup_workers()
        self._setup_components(client)

    def _setup_credentials(self) -> None:
        """Setup IMAP credentials from environment."""
        load_dotenv()
        self.username = os.getenv("IMAP_USER", "YOUR_EMAIL@example.com")
        self.password = os.getenv("IMAP_PASS", "APP_SPECIFIC_PASSWORD")

    def _setup_workers(self) -> None:
        """Setup worker thread count and fetch buffering."""
        self.max_workers = self.config_manager.get_optimal_workers(self.settings["max_workers"])
        self.batch_size = self.settings["fetch_batch_size"]
        self.buffer_size = self.settings["fetch_buffer_size"]

    def _setup_components(self, client: Optional[MailStoreClient]) -> None:
        """Initialize pipeline components on a single connection."""
        self.provider = self.config_manager.get_provider()
        self.client = client or MailStoreClient(
            self.provider.imap_host,
            self.provider.imap_port,
            self.settings["timeout"],
        )
        self.session = FolderSession(self.client, self.verbose)
        self.fetcher = Fetcher(self.client, self.batch_size, self.buffer_size, self.verbose)
        self.matcher = AddressMatcher(self.max_workers, max_pending=self.buffer_size, verbose=self.verbose)
        self.expunger = Expunger(self.client, self.verbose)

    def _open(self, folder: str) -> MailboxHandle:
        try:
            return self.session.open(folder)
        except MailStoreError as e:
            e.state = PruneState.IDLE
            e.folder = e.folder or folder
            raise

    def delete_all_messages_in_folder(self, permanent: bool, folder: str,
                                      cancel_event: Optional[threading.Event] = None) -> PruneResult:
        """Delete every message in a folder.

        With permanent=False this is a dry run: nothing on the server changes.

        Args:
            permanent: True to flag and expunge, False for a dry run
            folder: Folder to clean
            cancel_event: Optional event that aborts before any mutating call

        Returns:
            PruneResult describing what was (or would be) deleted
        """
        handle = self._open(folder)

        deletion_set = DeletionSet()
        deletion_set.add_full_range(1, handle.message_count)

        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled(f"Cleanup of {folder} cancelled")

        return self.expunger.apply(handle, deletion_set, permanent)

    def delete_messages_from_addresses(self, permanent: bool, folder: str, *addresses: str,
                                       cancel_event: Optional[threading.Event] = None) -> PruneResult:
        """Delete the messages in a folder sent from any of the given addresses.

        All envelopes are fetched and matched before anything is flagged, so
        sequence numbers stay valid for the whole scan. The match report is
        printed when verbose and attached to the result in any mode.

        Args:
            permanent: True to flag and expunge, False for a dry run
            folder: Folder to clean
            *addresses: Sender addresses to delete messages from
            cancel_event: Optional event that aborts before any mutating call

        Returns:
            PruneResult carrying the DeletionSet and MatchReport
        """
        if not addresses:
            raise ValueError("At least one sender address is required")

        handle = self._open(folder)

        deletion_set = DeletionSet()
        report = MatchReport(addresses)

        envelopes = self.fetcher.fetch_envelopes(handle, cancel_event)
        try:
            self.matcher.match_all(envelopes, addresses, deletion_set, report, cancel_event)
        except MailStoreError as e:
            e.state = PruneState.FETCHING
            raise
        finally:
            close = getattr(envelopes, "close", None)
            if close is not None:
                close()

        if self.verbose:
            report.print_report()

        return self.expunger.apply(handle, deletion_set, permanent, report)

    def process_target(self, folder: str, addresses: List[str], permanent: bool,
                       cancel_event: Optional[threading.Event] = None) -> PruneResult:
        """Run the operation matching a target: by sender if addresses are given, else everything."""
        if addresses:
            return self.delete_messages_from_addresses(permanent, folder, *addresses, cancel_event=cancel_event)
        return self.delete_all_messages_in_folder(permanent, folder, cancel_event=cancel_event)

    def run(self, targets: Optional[List[Dict[str, Any]]] = None, permanent: Optional[bool] = None,
            callback: Optional[ProcessingCallback] = None,
            cancel_event: Optional[threading.Event] = None) -> Tuple[List[PruneResult], Dict[str, Exception]]:
        """Run the prune over all targets on one connection.

        A failing folder is reported and skipped unless stop_on_error is set,
        in which case the error propagates after logging out.

        Args:
            targets: Targets to process, defaults to the configured ones
            permanent: Overrides prune_settings.permanent when given
            callback: Optional callback object for progress updates
            cancel_event: Optional event that aborts the current scan

        Returns:
            Tuple of (results of successful folders, errors by folder)
        """
        targets = self.config_manager.get_targets() if targets is None else targets
        permanent = self.settings["permanent"] if permanent is None else permanent
        stop_on_error = self.settings["stop_on_error"]

        if self.verbose:
            cores = os.cpu_count() or 4
            print(f"[i] System cores: {cores}, Using {self.max_workers} matching workers")
            if not permanent:
                print("[i] Safe mode: no message will be flagged or deleted")

        if callback:
            callback.on_start(self.get_stats())

        self.client.connect()
        try:
            self.client.login(self.username, self.password)
        except MailStoreError:
            self._logout()
            raise
        if self.verbose:
            print(f"[i] Logged in to {self.provider.imap_host}")

        results: List[PruneResult] = []
        failures: Dict[str, Exception] = {}

        try:
            for index, target in enumerate(targets, 1):
                folder = target["folder"]
                if callback:
                    callback.on_folder_start(folder, len(targets), index)

                try:
                    result = self.process_target(folder, target.get("addresses", []), permanent, cancel_event)
                except (MailStoreError, OperationCancelled) as e:
                    print(f"[!] {folder}: {e}")
                    failures[folder] = e
                    if callback:
                        callback.on_error(folder, e)
                    if stop_on_error or isinstance(e, OperationCancelled):
                        raise
                    continue

                results.append(result)
                if callback:
                    callback.on_folder_complete(folder, result)

            if callback:
                callback.on_complete(results, failures)

            return results, failures

        finally:
            self._logout()

    def _logout(self) -> None:
        try:
            self.client.logout()
        except LogoutError as e:
            print(f"[!] {e}")

    def get_stats(self) -> dict:
        """Get processing statistics and configuration.

        Returns:
            Dictionary containing current configuration and capabilities
        """
        return {
            "provider": self.provider.name,
            "imap_host": self.provider.imap_host,
            "max_workers": self.max_workers,
            "fetch_batch_size": self.batch_size,
            "fetch_buffer_size": self.buffer_size,
            "cpu_cores": os.cpu_count(),
            "permanent": self.settings["permanent"],
            "targets": self.config_manager.get_targets(),
        }
