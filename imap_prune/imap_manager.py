"""
IMAP connection and folder operations.

Wraps a single imapclient connection whose commands are strictly sequential,
and provides folder selection and bounded, streaming envelope fetches on top
of it.
"""

import queue
import threading
from typing import Iterator, List, Optional

from imapclient import DELETED, IMAPClient
from imapclient.exceptions import IMAPClientAbortError, IMAPClientError, LoginError

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
from .models import MailboxHandle, MessageEnvelope, envelope_from_response


class MailStoreClient:
    """One IMAP connection, one command at a time.

    Every command takes the connection lock, so callers on different threads
    can never interleave commands on the wire.
    """

    def __init__(self, host: str, port: int = 993, timeout: float = 30, client_factory=IMAPClient):
        """Initialize mail-store client.

        Args:
            host: IMAP server hostname
            port: IMAP server port
            timeout: Socket timeout in seconds
            client_factory: Callable creating the underlying IMAPClient
        """
        self.host = host
        self.port = port
        self.timeout = timeout
        self.client_factory = client_factory
        self._conn: Optional[IMAPClient] = None
        self._logged_in = False
        self._selected: Optional[MailboxHandle] = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def logged_in(self) -> bool:
        return self._logged_in

    def connect(self) -> None:
        """Open the TLS connection to the server."""
        with self._lock:
            try:
                self._conn = self.client_factory(
                    self.host, port=self.port, use_uid=False, ssl=True, timeout=self.timeout
                )
            except (IMAPClientError, OSError) as e:
                raise MailConnectionError(f"Could not connect to {self.host}:{self.port}: {e}") from e

    def login(self, username: str, password: str) -> None:
        with self._lock:
            conn = self._require_connection()
            try:
                conn.login(username, password)
            except (IMAPClientAbortError, OSError) as e:
                raise MailConnectionError(f"Connection lost during login: {e}") from e
            except (LoginError, IMAPClientError) as e:
                raise AuthError(f"Login failed for {username}: {e}") from e
            self._logged_in = True

    def select(self, folder: str) -> MailboxHandle:
        """Select a folder read-write and return a handle for it.

        Any handle returned by an earlier select becomes stale.

        Args:
            folder: Folder name to select

        Returns:
            MailboxHandle with the folder's message count
        """
        with self._lock:
            conn = self._require_connection()
            if not self._logged_in:
                raise AuthError("Not logged in", folder=folder)

            self._selected = None
            try:
                info = conn.select_folder(folder, readonly=False)
            except (IMAPClientAbortError, OSError) as e:
                raise MailConnectionError(f"Connection lost selecting {folder}: {e}", folder=folder) from e
            except IMAPClientError as e:
                raise FolderSelectError(f"Could not select folder {folder}: {e}", folder=folder) from e

            self._generation += 1
            self._selected = MailboxHandle(folder, int(info.get(b"EXISTS", 0)), self._generation)
            return self._selected

    def fetch_envelopes(self, handle: MailboxHandle, start: int, end: int) -> List[MessageEnvelope]:
        """Fetch envelopes for sequence numbers start..end of the selected folder.

        Args:
            handle: Handle of the currently selected folder
            start: First sequence number
            end: Last sequence number

        Returns:
            Envelopes ordered by sequence number
        """
        with self._lock:
            conn = self._require_current(handle, FetchError)
            try:
                response = conn.fetch(f"{start}:{end}", ["ENVELOPE"])
            except (IMAPClientError, OSError) as e:
                raise FetchError(f"Fetch {start}:{end} failed in {handle.folder}: {e}", folder=handle.folder) from e

        envelopes = []
        for seq, data in sorted(response.items()):
            envelope = data.get(b"ENVELOPE")
            if envelope is None:
                continue
            envelopes.append(envelope_from_response(seq, envelope))
        return envelopes

    def store_deleted(self, handle: MailboxHandle, sequence_set: str) -> None:
        """Add the \\Deleted flag to every message in sequence_set."""
        with self._lock:
            conn = self._require_current(handle, DeleteFlagError)
            try:
                conn.add_flags(sequence_set, [DELETED])
            except (IMAPClientError, OSError) as e:
                raise DeleteFlagError(
                    f"Could not flag {sequence_set} as deleted in {handle.folder}: {e}", folder=handle.folder
                ) from e

    def expunge(self, handle: MailboxHandle) -> None:
        """Purge the messages flagged \\Deleted in the selected folder."""
        with self._lock:
            conn = self._require_current(handle, ExpungeError)
            try:
                conn.expunge()
            except (IMAPClientError, OSError) as e:
                raise ExpungeError(f"Expunge failed in {handle.folder}: {e}", folder=handle.folder) from e
            # Numbering changed on the server
            self._selected = None

    def logout(self) -> None:
        with self._lock:
            conn = self._require_connection()
            try:
                conn.logout()
            except (IMAPClientError, OSError) as e:
                raise LogoutError(f"Logout failed: {e}") from e
            finally:
                self._conn = None
                self._logged_in = False
                self._selected = None

    def is_current(self, handle: MailboxHandle) -> bool:
        return self._selected is not None and self._selected == handle

    def _require_connection(self) -> IMAPClient:
        if self._conn is None:
            raise MailConnectionError(f"Not connected to {self.host}")
        return self._conn

    def _require_current(self, handle: MailboxHandle, error_cls) -> IMAPClient:
        conn = self._require_connection()
        if not self._logged_in:
            raise AuthError("Not logged in", folder=handle.folder)
        if not self.is_current(handle):
            raise error_cls(f"Handle for {handle.folder} is no longer selected", folder=handle.folder)
        return conn


class FolderSession:
    """Selects folders on a MailStoreClient."""

    def __init__(self, client: MailStoreClient, verbose: bool = True):
        self.client = client
        self.verbose = verbose

    def open(self, folder: str) -> MailboxHandle:
        """Make folder the connection's active folder.

        Args:
            folder: Folder name to select

        Returns:
            MailboxHandle valid until the next select, expunge or logout
        """
        handle = self.client.select(folder)
        if self.verbose:
            print(f"[i] Selected folder: {handle.folder} ({handle.message_count} messages)")
        return handle


_DONE = object()


class Fetcher:
    """Streams envelopes of a selected folder through a bounded buffer.

    A single producer thread issues the FETCH commands batch by batch and
    blocks when the buffer is full, so memory stays bounded no matter how
    large the folder is.
    """

    def __init__(self, client: MailStoreClient, batch_size: int = 50, buffer_size: int = 500,
                 verbose: bool = True):
        """Initialize fetcher.

        Args:
            client: Connected, logged-in mail-store client
            batch_size: Messages requested per FETCH command
            buffer_size: Maximum envelopes buffered ahead of the consumer
            verbose: Whether to print verbose output
        """
        if batch_size < 1 or buffer_size < 1:
            raise ValueError("batch_size and buffer_size must be positive")
        self.client = client
        self.batch_size = batch_size
        self.buffer_size = buffer_size
        self.verbose = verbose

    def fetch_envelopes(self, handle: MailboxHandle,
                        cancel_event: Optional[threading.Event] = None) -> Iterator[MessageEnvelope]:
        """Stream the envelopes of messages 1..handle.message_count.

        The iterator is single-pass. A protocol fault is raised from it as
        FetchError; a set cancel_event raises OperationCancelled.

        Args:
            handle: Handle returned by FolderSession.open
            cancel_event: Optional event that aborts the scan when set

        Returns:
            Iterator of MessageEnvelope in sequence order
        """
        if handle.message_count == 0:
            return iter(())
        return self._stream(handle, cancel_event)

    def _stream(self, handle: MailboxHandle, cancel_event: Optional[threading.Event]) -> Iterator[MessageEnvelope]:
        buffer: "queue.Queue" = queue.Queue(maxsize=self.buffer_size)
        stop = threading.Event()
        producer = threading.Thread(
            target=self._produce,
            args=(handle, buffer, stop, cancel_event),
            name=f"fetch-{handle.folder}",
            daemon=True,
        )
        producer.start()

        try:
            while True:
                item = buffer.get()
                if item is _DONE:
                    return
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            stop.set()
            producer.join()

    def _produce(self, handle: MailboxHandle, buffer: "queue.Queue", stop: threading.Event,
                 cancel_event: Optional[threading.Event]) -> None:
        try:
            total = handle.message_count
            for start in range(1, total + 1, self.batch_size):
                if cancel_event is not None and cancel_event.is_set():
                    raise OperationCancelled(f"Scan of {handle.folder} cancelled")
                end = min(start + self.batch_size - 1, total)
                if self.verbose and total > self.batch_size:
                    print(f"[i] Fetching envelopes {start}-{end} of {total}")
                for envelope in self.client.fetch_envelopes(handle, start, end):
                    if not self._put(buffer, envelope, stop):
                        return
            self._put(buffer, _DONE, stop)
        except (MailStoreError, OperationCancelled) as e:
            self._put(buffer, e, stop)
        except Exception as e:
            # Anything else would leave the consumer waiting forever
            error = FetchError(f"Fetch aborted in {handle.folder}: {e}", folder=handle.folder)
            error.__cause__ = e
            self._put(buffer, error, stop)

    @staticmethod
    def _put(buffer: "queue.Queue", item, stop: threading.Event) -> bool:
        while not stop.is_set():
            try:
                buffer.put(item, timeout=0.1)
                return True
            except queue.Full:
                continue
        return False
