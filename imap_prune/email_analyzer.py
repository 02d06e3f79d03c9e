"""
Sender address matching.

evaluate() is a pure function deciding whether one envelope matches the
address filter. AddressMatcher fans evaluations out over a thread pool and
merges the matches into the shared DeletionSet and MatchReport.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import FrozenSet, Iterable, List, Optional, Tuple

from .deletion_set import DeletionSet, MatchReport
from .errors import OperationCancelled
from .models import MessageEnvelope


def evaluate(envelope: MessageEnvelope, address_filter: FrozenSet[str]) -> Optional[Tuple[str, str]]:
    """Match an envelope's sender addresses against the filter.

    Comparison is exact and case-sensitive.

    Args:
        envelope: Envelope to evaluate
        address_filter: Target sender addresses

    Returns:
        (matched_address, subject) for the first matching sender, or None
    """
    for sender in envelope.senders:
        if sender in address_filter:
            return sender, envelope.subject
    return None


class AddressMatcher:
    """Evaluates envelopes in parallel and records the matches."""

    def __init__(self, max_workers: int = 4, max_pending: Optional[int] = None, verbose: bool = True):
        """Initialize address matcher.

        Args:
            max_workers: Number of worker threads evaluating envelopes
            max_pending: Maximum evaluations queued or running at once
            verbose: Whether to print verbose output
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self.max_pending = max_pending or max_workers * 4
        self.verbose = verbose

    def match_all(self, envelopes: Iterable[MessageEnvelope], address_filter: Iterable[str],
                  deletion_set: DeletionSet, report: MatchReport,
                  cancel_event: Optional[threading.Event] = None) -> int:
        """Evaluate every envelope and record matches.

        Returns only after every scheduled evaluation has finished. The first
        failed evaluation stops reading from the source. That error, or one
        raised by the source itself (e.g. FetchError), is re-raised after the
        pool has drained.

        Args:
            envelopes: Envelope stream, typically from Fetcher.fetch_envelopes
            address_filter: Target sender addresses
            deletion_set: Shared set receiving matched sequence numbers
            report: Shared report receiving (address, subject) pairs
            cancel_event: Optional event that aborts the scan when set

        Returns:
            Number of envelopes evaluated
        """
        targets = frozenset(address_filter)
        slots = threading.BoundedSemaphore(self.max_pending)
        errors: List[BaseException] = []
        errors_lock = threading.Lock()
        scheduled = 0

        def on_done(future: Future) -> None:
            if not future.cancelled() and future.exception() is not None:
                with errors_lock:
                    errors.append(future.exception())
            slots.release()

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="match") as executor:
            for envelope in envelopes:
                with errors_lock:
                    failed = bool(errors)
                if failed:
                    break
                if cancel_event is not None and cancel_event.is_set():
                    raise OperationCancelled("Matching cancelled")
                slots.acquire()
                future = executor.submit(self._evaluate_into, envelope, targets, deletion_set, report, cancel_event)
                future.add_done_callback(on_done)
                scheduled += 1

        if errors:
            raise errors[0]
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled("Matching cancelled")

        if self.verbose:
            print(f"[i] Evaluated {scheduled} messages, {len(deletion_set)} matched")
        return scheduled

    @staticmethod
    def _evaluate_into(envelope: MessageEnvelope, targets: FrozenSet[str], deletion_set: DeletionSet,
                       report: MatchReport, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            return
        match = evaluate(envelope, targets)
        if match is None:
            return
        address, subject = match
        deletion_set.accumulate(envelope.seq)
        report.add(address, subject, envelope.seq)
