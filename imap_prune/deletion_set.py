"""
Thread-safe accumulators for the prune pipeline.

DeletionSet collects the sequence numbers slated for deletion, MatchReport
collects which subjects each filtered address matched. Both are written by
many matcher threads at once and guard every mutation with a lock.
"""

import threading
from typing import Dict, FrozenSet, Iterable, List, Tuple


class DeletionSet:
    """Insert-only set of message sequence numbers."""

    def __init__(self, seqs: Iterable[int] = ()):
        self._seqs = set()
        self._lock = threading.Lock()
        for seq in seqs:
            self.accumulate(seq)

    def accumulate(self, seq: int) -> None:
        """Add a sequence number. Adding one that is already present is a no-op.

        Args:
            seq: 1-based message sequence number
        """
        if seq < 1:
            raise ValueError(f"Sequence numbers start at 1, got {seq}")
        with self._lock:
            self._seqs.add(seq)

    def add_full_range(self, start: int, end: int) -> None:
        """Add every sequence number in [start, end].

        An empty range (end < start) leaves the set untouched, so a folder
        with zero messages produces an empty set.
        """
        if end < start:
            return
        if start < 1:
            raise ValueError(f"Sequence numbers start at 1, got {start}")
        with self._lock:
            self._seqs.update(range(start, end + 1))

    def snapshot(self) -> Tuple[int, ...]:
        with self._lock:
            return tuple(sorted(self._seqs))

    def ranges(self) -> List[Tuple[int, int]]:
        """Collapse the set into sorted, non-overlapping inclusive ranges."""
        result: List[Tuple[int, int]] = []
        for seq in self.snapshot():
            if result and seq == result[-1][1] + 1:
                result[-1] = (result[-1][0], seq)
            else:
                result.append((seq, seq))
        return result

    def to_range_encoding(self) -> str:
        """Encode the set as IMAP sequence-set text, e.g. ``"1:3,5,7:9"``.

        Returns:
            The encoded set, or ``""`` for an empty set
        """
        parts = []
        for start, end in self.ranges():
            parts.append(str(start) if start == end else f"{start}:{end}")
        return ",".join(parts)

    def is_empty(self) -> bool:
        with self._lock:
            return not self._seqs

    def __len__(self) -> int:
        with self._lock:
            return len(self._seqs)

    def __contains__(self, seq: int) -> bool:
        with self._lock:
            return seq in self._seqs

    def __repr__(self) -> str:
        return f"DeletionSet({self.to_range_encoding()!r})"


class MatchReport:
    """Matched address -> subjects it matched.

    Subjects are kept with their sequence numbers and listed in sequence
    order, so the report reads the same whatever order matches arrive in.
    """

    def __init__(self, address_filter: Iterable[str]):
        """Initialize match report.

        Args:
            address_filter: Addresses that may appear as report keys
        """
        self.address_filter: FrozenSet[str] = frozenset(address_filter)
        self._entries: Dict[str, List[Tuple[int, str]]] = {}
        self._lock = threading.Lock()

    def add(self, address: str, subject: str, seq: int) -> None:
        """Record that message ``seq`` with ``subject`` matched ``address``."""
        if address not in self.address_filter:
            raise ValueError(f"{address!r} is not part of the address filter")
        with self._lock:
            self._entries.setdefault(address, []).append((seq, subject))

    def as_dict(self) -> Dict[str, List[str]]:
        with self._lock:
            return {
                address: [subject for _, subject in sorted(entries)]
                for address, entries in self._entries.items()
            }

    def total(self) -> int:
        with self._lock:
            return sum(len(entries) for entries in self._entries.values())

    def print_report(self) -> None:
        """Print the messages that will be deleted, grouped by sender address."""
        for address, subjects in sorted(self.as_dict().items()):
            print(f"[i] Messages to delete from {address}:")
            for subject in subjects:
                print(f"  - {subject}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
