import pytest

from pulsefolio.errors import StaleSessionError
from pulsefolio.services.progress import ProgressTracker
from pulsefolio.services.sessions import SessionRegistry
from pulsefolio.types.progress import ProgressStatus


def test_status_moves_forward_only():
    tracker = ProgressTracker()
    seen = []
    tracker.subscribe(lambda p: seen.append(p.status))

    assert tracker.update(ProgressStatus.LOADING, "Fetching", current_batch=1, total_batches=3)
    assert tracker.update(ProgressStatus.COMPLETE, "Done")
    assert tracker.update(ProgressStatus.LOADING, "again") is False
    assert tracker.update(ProgressStatus.ERROR, "late failure") is False

    assert tracker.progress.status == ProgressStatus.COMPLETE
    assert seen == [ProgressStatus.LOADING, ProgressStatus.COMPLETE]


def test_loading_cannot_return_to_idle():
    tracker = ProgressTracker()
    tracker.update(ProgressStatus.LOADING)

    assert tracker.update(ProgressStatus.IDLE) is False


def test_reset_is_the_only_way_back():
    tracker = ProgressTracker()
    tracker.update(ProgressStatus.LOADING)
    tracker.update(ProgressStatus.ERROR, "scanner down")

    progress = tracker.reset("0x" + "1" * 40)

    assert progress.status == ProgressStatus.IDLE
    assert progress.address == "0x" + "1" * 40
    assert tracker.update(ProgressStatus.LOADING)


def test_batch_counters_carry_over_when_omitted():
    tracker = ProgressTracker()
    tracker.update(ProgressStatus.LOADING, current_batch=2, total_batches=5)
    tracker.update(ProgressStatus.LOADING, "still going")

    assert tracker.progress.current_batch == 2
    assert tracker.progress.total_batches == 5


def test_failing_listener_does_not_break_updates():
    tracker = ProgressTracker()

    def broken(_):
        raise RuntimeError("listener bug")

    tracker.subscribe(broken)
    assert tracker.update(ProgressStatus.LOADING)


def test_new_session_supersedes_previous():
    sessions = SessionRegistry()
    first = sessions.begin("0xABC")
    second = sessions.begin("0xabc")

    assert sessions.is_current("0xabc", second)
    assert not sessions.is_current("0xabc", first)
    with pytest.raises(StaleSessionError):
        sessions.ensure_current("0xabc", first)
