"""
Applying a finished DeletionSet to the selected folder.
"""

from .deletion_set import DeletionSet, MatchReport
from .errors import ExpungeError, MailStoreError
from .imap_manager import MailStoreClient
from .models import MailboxHandle, PruneResult, PruneState


class Expunger:
    """Flags and purges a deletion set, or reports what it would do."""

    def __init__(self, client: MailStoreClient, verbose: bool = True):
        self.client = client
        self.verbose = verbose

    def apply(self, handle: MailboxHandle, deletion_set: DeletionSet, permanent: bool,
              match_report: MatchReport = None) -> PruneResult:
        """Delete the messages in deletion_set from the handle's folder.

        An empty set returns at once without touching the server. With
        permanent=False nothing on the server changes at all: no flag is set
        and nothing is purged. With permanent=True the whole set is flagged
        \\Deleted in one STORE and then purged with EXPUNGE.

        If the STORE fails, DeleteFlagError is raised and EXPUNGE is not
        issued. If the EXPUNGE fails, ExpungeError is raised with
        partial=True: the messages are still present but flagged, and
        retry_expunge() finishes the job.

        Args:
            handle: Handle of the currently selected folder
            deletion_set: Finished set of sequence numbers to delete
            permanent: False for a dry run, True to really delete
            match_report: Report to attach to the result

        Returns:
            PruneResult in state DONE or DRY_RUN_DONE
        """
        result = PruneResult(
            folder=handle.folder,
            state=PruneState.DELETION_READY,
            permanent=permanent,
            deletion_set=deletion_set,
            match_report=match_report,
        )

        sequence_set = deletion_set.to_range_encoding()
        if not sequence_set:
            if self.verbose:
                print(f"[i] {handle.folder}: nothing to delete")
            result.state = PruneState.DONE
            return result

        if not permanent:
            if self.verbose:
                print(f"  - DRY-RUN would delete {len(deletion_set)} messages from {handle.folder} "
                      f"({sequence_set})")
            result.state = PruneState.DRY_RUN_DONE
            return result

        result.state = PruneState.FLAGGING
        try:
            self.client.store_deleted(handle, sequence_set)
        except MailStoreError as e:
            e.state = result.state
            raise
        result.state = PruneState.FLAGGED
        result.flagged = len(deletion_set)

        result.state = PruneState.EXPUNGING
        try:
            self.client.expunge(handle)
        except MailStoreError as e:
            e.state = result.state
            if isinstance(e, ExpungeError):
                e.partial = True
            raise

        result.state = PruneState.DONE
        if self.verbose:
            print(f"[i] Deleted {result.flagged} messages from {handle.folder}")
        return result

    def retry_expunge(self, handle: MailboxHandle) -> None:
        """Re-issue EXPUNGE after an ExpungeError left flagged messages behind."""
        try:
            self.client.expunge(handle)
        except MailStoreError as e:
            e.state = PruneState.EXPUNGING
            if isinstance(e, ExpungeError):
                e.partial = True
            raise
        if self.verbose:
            print(f"[i] Expunge of {handle.folder} completed on retry")
