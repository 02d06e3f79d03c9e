from __future__ import annotations

from dataclasses import dataclass, field

from imapclient.exceptions import IMAPClientError, LoginError
from imapclient.response_types import Address, Envelope

from imap_prune.config import ConfigManager
from imap_prune.email_processor import MailPruner
from imap_prune.imap_manager import MailStoreClient

DELETED = b"\\Deleted"


@dataclass
class FakeMessage:
    senders: list[str]
    subject: str
    flags: set[bytes] = field(default_factory=set)

    def envelope(self) -> Envelope:
        addresses = []
        for sender in self.senders:
            mailbox, _, host = sender.partition("@")
            addresses.append(Address(None, None, mailbox.encode(), host.encode()))
        return Envelope(
            date=None,
            subject=self.subject.encode(),
            from_=tuple(addresses),
            sender=None,
            reply_to=None,
            to=None,
            cc=None,
            bcc=None,
            in_reply_to=None,
            message_id=None,
        )


def parse_sequence_set(text: str) -> list[int]:
    seqs = []
    for part in text.split(","):
        start, _, end = part.partition(":")
        seqs.extend(range(int(start), int(end or start) + 1))
    return seqs


class FakeIMAPClient:
    """In-memory stand-in for imapclient.IMAPClient that records every command."""

    def __init__(
        self,
        folders: dict[str, list[FakeMessage]] | None = None,
        *,
        connect_error: Exception | None = None,
        login_error: Exception | None = None,
        fetch_error: Exception | None = None,
        store_error: Exception | None = None,
        expunge_error: Exception | None = None,
    ) -> None:
        self.folders = folders if folders is not None else {}
        self.connect_error = connect_error
        self.login_error = login_error
        self.fetch_error = fetch_error
        self.store_error = store_error
        self.expunge_error = expunge_error
        self.selected: str | None = None
        self.calls: list[tuple] = []

    # Used as MailStoreClient(client_factory=...)
    def __call__(self, host, port=None, use_uid=True, ssl=True, timeout=None):
        self.calls.append(("connect", host, port, use_uid))
        if self.connect_error is not None:
            raise self.connect_error
        return self

    def login(self, username, password):
        self.calls.append(("login", username))
        if self.login_error is not None:
            raise self.login_error
        return b"LOGIN completed"

    def select_folder(self, folder, readonly=False):
        self.calls.append(("select_folder", folder, readonly))
        if folder not in self.folders:
            raise IMAPClientError(f"select failed: [NONEXISTENT] {folder}")
        self.selected = folder
        return {b"EXISTS": len(self.folders[folder]), b"FLAGS": (DELETED,)}

    def fetch(self, messages, data):
        self.calls.append(("fetch", messages, tuple(data)))
        if self.fetch_error is not None:
            raise self.fetch_error
        folder = self.folders[self.selected]
        response = {}
        for seq in parse_sequence_set(messages):
            if seq <= len(folder):
                response[seq] = {b"ENVELOPE": folder[seq - 1].envelope(), b"SEQ": seq}
        return response

    def add_flags(self, messages, flags):
        self.calls.append(("add_flags", messages, tuple(flags)))
        if self.store_error is not None:
            raise self.store_error
        folder = self.folders[self.selected]
        for seq in parse_sequence_set(messages):
            folder[seq - 1].flags.update(flags)
        return {}

    def expunge(self, messages=None):
        self.calls.append(("expunge",))
        if self.expunge_error is not None:
            raise self.expunge_error
        folder = self.folders[self.selected]
        self.folders[self.selected] = [msg for msg in folder if DELETED not in msg.flags]
        return b"EXPUNGE completed", []

    def logout(self):
        self.calls.append(("logout",))
        return b"LOGOUT completed"

    def commands(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    def mutating_calls(self) -> list[tuple]:
        return [call for call in self.calls if call[0] in ("add_flags", "expunge")]

    def listing(self, folder: str) -> list[FakeMessage]:
        return list(self.folders[folder])


def make_folder(*senders_and_subjects: tuple[list[str], str]) -> list[FakeMessage]:
    return [FakeMessage(list(senders), subject) for senders, subject in senders_and_subjects]


def connected_client(fake: FakeIMAPClient) -> MailStoreClient:
    client = MailStoreClient("imap.example.test", 993, client_factory=fake)
    client.connect()
    client.login("user@example.test", "secret")
    return client


def make_pruner(fake: FakeIMAPClient, tmp_path, *, max_workers=4, batch_size=2, buffer_size=3,
                stop_on_error=False) -> MailPruner:
    config_manager = ConfigManager(str(tmp_path / "missing.json"), str(tmp_path / "missing.local.json"))
    config_manager.config["prune_settings"].update({
        "verbose": False,
        "max_workers": max_workers,
        "fetch_batch_size": batch_size,
        "fetch_buffer_size": buffer_size,
        "stop_on_error": stop_on_error,
    })
    client = MailStoreClient("imap.example.test", 993, client_factory=fake)
    return MailPruner(config_manager, client=client)
