from __future__ import annotations

import threading

import pytest

from helpers import DELETED, FakeIMAPClient, IMAPClientError, make_folder, make_pruner
from imap_prune.email_processor import ProcessingCallback
from imap_prune.errors import ExpungeError, FetchError, FolderSelectError, OperationCancelled
from imap_prune.models import PruneState


def three_message_inbox() -> FakeIMAPClient:
    return FakeIMAPClient({
        "INBOX": make_folder(
            (["someone@else.com"], "Subject1"),
            (["a@x.com"], "Subject2"),
            (["other@x.com"], "Subject3"),
        ),
        "Spamverdacht": make_folder(*[([f"spam{i}@bad.test"], f"Spam{i}") for i in range(1, 6)]),
        "Trash": [],
    })


def connect(pruner) -> None:
    pruner.client.connect()
    pruner.client.login("user@example.test", "secret")


def test_delete_from_address_scenario(tmp_path) -> None:
    fake = three_message_inbox()
    pruner = make_pruner(fake, tmp_path)
    connect(pruner)

    result = pruner.delete_messages_from_addresses(True, "INBOX", "a@x.com")

    assert result.deletion_set.snapshot() == (2,)
    assert result.match_report.as_dict() == {"a@x.com": ["Subject2"]}
    assert fake.mutating_calls() == [("add_flags", "2", (DELETED,)), ("expunge",)]
    assert result.state == PruneState.DONE
    assert [msg.subject for msg in fake.listing("INBOX")] == ["Subject1", "Subject3"]


def test_unconditional_delete_covers_whole_folder(tmp_path) -> None:
    fake = three_message_inbox()
    pruner = make_pruner(fake, tmp_path)
    connect(pruner)

    result = pruner.delete_all_messages_in_folder(True, "Spamverdacht")

    assert result.deletion_set.snapshot() == (1, 2, 3, 4, 5)
    assert fake.commands("add_flags") == [("add_flags", "1:5", (DELETED,))]
    assert len(fake.commands("expunge")) == 1
    assert fake.commands("fetch") == []
    assert fake.listing("Spamverdacht") == []


@pytest.mark.parametrize("by_address", [False, True])
def test_empty_folder_is_a_no_op(tmp_path, by_address: bool) -> None:
    fake = three_message_inbox()
    pruner = make_pruner(fake, tmp_path)
    connect(pruner)

    if by_address:
        result = pruner.delete_messages_from_addresses(True, "Trash", "a@x.com")
    else:
        result = pruner.delete_all_messages_in_folder(True, "Trash")

    assert result.deletion_set.is_empty()
    assert fake.mutating_calls() == []
    assert fake.commands("fetch") == []


def test_safe_mode_reports_matches_without_mutating(tmp_path) -> None:
    fake = three_message_inbox()
    pruner = make_pruner(fake, tmp_path)
    connect(pruner)

    result = pruner.delete_messages_from_addresses(False, "INBOX", "a@x.com", "other@x.com")

    assert result.state == PruneState.DRY_RUN_DONE
    assert result.match_report.as_dict() == {"a@x.com": ["Subject2"], "other@x.com": ["Subject3"]}
    assert result.deletion_set.snapshot() == (2, 3)
    assert fake.mutating_calls() == []

    result = pruner.delete_all_messages_in_folder(False, "Spamverdacht")
    assert result.state == PruneState.DRY_RUN_DONE
    assert fake.mutating_calls() == []


def test_fetch_failure_aborts_before_any_mutation(tmp_path) -> None:
    fake = three_message_inbox()
    pruner = make_pruner(fake, tmp_path)
    connect(pruner)
    fake.fetch_error = IMAPClientError("FETCH failed")

    with pytest.raises(FetchError) as excinfo:
        pruner.delete_messages_from_addresses(True, "INBOX", "a@x.com")

    assert excinfo.value.state == PruneState.FETCHING
    assert fake.mutating_calls() == []


def test_missing_folder_fails_with_folder_select_error(tmp_path) -> None:
    pruner = make_pruner(three_message_inbox(), tmp_path)
    connect(pruner)

    with pytest.raises(FolderSelectError) as excinfo:
        pruner.delete_all_messages_in_folder(True, "Nope")
    assert excinfo.value.state == PruneState.IDLE


def test_cancelled_cleanup_never_mutates(tmp_path) -> None:
    fake = three_message_inbox()
    pruner = make_pruner(fake, tmp_path)
    connect(pruner)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCancelled):
        pruner.delete_all_messages_in_folder(True, "Spamverdacht", cancel_event=cancel)
    with pytest.raises(OperationCancelled):
        pruner.delete_messages_from_addresses(True, "INBOX", "a@x.com", cancel_event=cancel)
    assert fake.mutating_calls() == []


def test_cancel_mid_scan_stops_fetch_thread_without_mutating(tmp_path, monkeypatch) -> None:
    fake = FakeIMAPClient({"INBOX": make_folder(*[(["a@x.com"], f"S{i}") for i in range(1, 201)])})
    pruner = make_pruner(fake, tmp_path, batch_size=5, buffer_size=4)
    connect(pruner)
    cancel = threading.Event()
    fetch = fake.fetch

    def fetch_then_cancel(messages, data):
        response = fetch(messages, data)
        cancel.set()
        return response

    monkeypatch.setattr(fake, "fetch", fetch_then_cancel)

    with pytest.raises(OperationCancelled):
        pruner.delete_messages_from_addresses(True, "INBOX", "a@x.com", cancel_event=cancel)

    assert len(fake.commands("fetch")) == 1
    assert not any(thread.name == "fetch-INBOX" for thread in threading.enumerate())
    assert fake.mutating_calls() == []


def test_addresses_are_required(tmp_path) -> None:
    pruner = make_pruner(three_message_inbox(), tmp_path)

    with pytest.raises(ValueError):
        pruner.delete_messages_from_addresses(True, "INBOX")


def test_large_folder_matches_with_bounded_buffers(tmp_path) -> None:
    senders = ["a@x.com", "b@y.org", "c@z.net"]
    fake = FakeIMAPClient({"INBOX": make_folder(*[([senders[i % 3]], f"S{i + 1}") for i in range(300)])})
    pruner = make_pruner(fake, tmp_path, max_workers=8, batch_size=7, buffer_size=4)
    connect(pruner)

    result = pruner.delete_messages_from_addresses(False, "INBOX", "b@y.org")

    assert result.deletion_set.snapshot() == tuple(range(2, 301, 3))
    assert result.match_report.as_dict()["b@y.org"] == [f"S{seq}" for seq in range(2, 301, 3)]


class RecordingCallback(ProcessingCallback):
    def __init__(self):
        self.events = []

    def on_folder_start(self, folder, total_folders, current_folder):
        self.events.append(("start", folder))

    def on_folder_complete(self, folder, result):
        self.events.append(("complete", folder, result.state))

    def on_error(self, folder, error):
        self.events.append(("error", folder, type(error).__name__))


def test_run_continues_after_folder_failure(tmp_path) -> None:
    fake = three_message_inbox()
    pruner = make_pruner(fake, tmp_path)
    callback = RecordingCallback()
    targets = [
        {"folder": "Nope", "addresses": []},
        {"folder": "INBOX", "addresses": ["a@x.com"]},
    ]

    results, failures = pruner.run(targets=targets, permanent=False, callback=callback)

    assert [r.folder for r in results] == ["INBOX"]
    assert isinstance(failures["Nope"], FolderSelectError)
    assert callback.events == [
        ("start", "Nope"),
        ("error", "Nope", "FolderSelectError"),
        ("start", "INBOX"),
        ("complete", "INBOX", PruneState.DRY_RUN_DONE),
    ]
    assert fake.calls[-1] == ("logout",)


def test_run_stops_on_error_when_configured(tmp_path) -> None:
    fake = three_message_inbox()
    fake.expunge_error = IMAPClientError("EXPUNGE failed")
    pruner = make_pruner(fake, tmp_path, stop_on_error=True)
    targets = [
        {"folder": "Spamverdacht", "addresses": []},
        {"folder": "INBOX", "addresses": ["a@x.com"]},
    ]

    with pytest.raises(ExpungeError):
        pruner.run(targets=targets, permanent=True)

    assert [call[1] for call in fake.commands("select_folder")] == ["Spamverdacht"]
    assert fake.calls[-1] == ("logout",)


def test_run_uses_configured_targets(tmp_path) -> None:
    fake = three_message_inbox()
    pruner = make_pruner(fake, tmp_path)
    pruner.config["targets"] = [{"folder": "spam", "addresses": []}]

    results, failures = pruner.run()

    assert failures == {}
    assert results[0].folder == "Spamverdacht"
    assert results[0].dry_run
    assert fake.mutating_calls() == []
