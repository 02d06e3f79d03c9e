"""
Data model shared by the prune pipeline.
"""

from dataclasses import dataclass
from email.errors import HeaderParseError
from email.header import decode_header, make_header
from enum import Enum
from typing import Dict, List, Optional, Tuple


class PruneState(Enum):
    """States a single prune operation moves through."""

    IDLE = "idle"
    SELECTED = "selected"
    FETCHING = "fetching"
    MATCHING = "matching"
    DELETION_READY = "deletion_ready"
    DRY_RUN_DONE = "dry_run_done"
    FLAGGING = "flagging"
    FLAGGED = "flagged"
    EXPUNGING = "expunging"
    DONE = "done"


@dataclass(frozen=True)
class MailboxHandle:
    """A selected folder and its message count at selection time.

    Sequence numbers are only meaningful relative to the handle that produced
    them. The handle goes stale on the next select or logout.
    """

    folder: str
    message_count: int
    generation: int = 0


@dataclass(frozen=True)
class MessageEnvelope:
    seq: int
    senders: Tuple[str, ...]
    subject: str


def _decode_text(value: Optional[bytes]) -> str:
    if not value:
        return ""
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    try:
        return str(make_header(decode_header(value))).strip()
    except (HeaderParseError, ValueError, LookupError):
        return value.strip()


def envelope_from_response(seq: int, envelope) -> MessageEnvelope:
    """Build a MessageEnvelope from an imapclient Envelope.

    Args:
        seq: Message sequence number the envelope was fetched for
        envelope: imapclient.response_types.Envelope

    Returns:
        MessageEnvelope with mailbox@host sender strings and decoded subject
    """
    senders = []
    for addr in envelope.from_ or ():
        # Group syntax markers carry no host
        if not addr.mailbox or not addr.host:
            continue
        mailbox = addr.mailbox.decode("utf-8", errors="replace")
        host = addr.host.decode("utf-8", errors="replace")
        senders.append(f"{mailbox}@{host}")

    return MessageEnvelope(seq=seq, senders=tuple(senders), subject=_decode_text(envelope.subject))


@dataclass
class PruneResult:
    """Outcome of one prune operation on one folder."""

    folder: str
    state: PruneState
    permanent: bool
    deletion_set: "DeletionSet"
    match_report: Optional["MatchReport"] = None
    flagged: int = 0

    @property
    def dry_run(self) -> bool:
        return self.state == PruneState.DRY_RUN_DONE

    def summary(self) -> Dict[str, object]:
        report: Dict[str, List[str]] = self.match_report.as_dict() if self.match_report else {}
        return {
            "folder": self.folder,
            "state": self.state.value,
            "permanent": self.permanent,
            "selected_for_deletion": len(self.deletion_set),
            "flagged": self.flagged,
            "matched_addresses": sorted(report),
        }
