import pytest

from feedsync.schemas import RelationType
from feedsync.services.notifier import Notifier
from feedsync.services.overlay import PendingOverlay
from feedsync.services.text import extract_hashtags


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_overlay_consumes_matching_entry_once() -> None:
    overlay = PendingOverlay(ttl_seconds=30, clock=FakeClock())
    overlay.add(RelationType.LIKE, "p1", True)

    assert overlay.consume(RelationType.LIKE, "p1", False) is False
    assert overlay.consume(RelationType.LIKE, "p1", True) is True
    assert overlay.consume(RelationType.LIKE, "p1", True) is False


def test_overlay_entries_expire() -> None:
    clock = FakeClock()
    overlay = PendingOverlay(ttl_seconds=30, clock=clock)
    overlay.add(RelationType.BOOKMARK, "p1", True)

    clock.now += 31

    assert overlay.consume(RelationType.BOOKMARK, "p1", True) is False
    assert len(overlay) == 0


def test_overlay_queues_repeated_toggles() -> None:
    overlay = PendingOverlay(ttl_seconds=30, clock=FakeClock())
    overlay.add(RelationType.LIKE, "p1", True)
    overlay.add(RelationType.LIKE, "p1", False)
    assert len(overlay) == 2

    assert overlay.consume(RelationType.LIKE, "p1", True) is True
    assert overlay.pending(RelationType.LIKE, "p1") is True
    assert overlay.consume(RelationType.LIKE, "p1", False) is True
    assert overlay.pending(RelationType.LIKE, "p1") is False


def test_overlay_discard_drops_newest_entry() -> None:
    overlay = PendingOverlay(ttl_seconds=30, clock=FakeClock())
    overlay.add(RelationType.LIKE, "p1", True)
    overlay.add(RelationType.LIKE, "p1", False)

    overlay.discard(RelationType.LIKE, "p1")

    assert overlay.consume(RelationType.LIKE, "p1", False) is False
    assert overlay.consume(RelationType.LIKE, "p1", True) is True


def test_add_prunes_entries_whose_echo_never_came() -> None:
    clock = FakeClock()
    overlay = PendingOverlay(ttl_seconds=30, clock=clock)
    overlay.add(RelationType.LIKE, "stale", True)
    overlay.add(RelationType.BOOKMARK, "stale", True)

    clock.now += 31
    overlay.add(RelationType.LIKE, "fresh", True)

    assert len(overlay) == 1
    assert overlay.pending(RelationType.LIKE, "stale") is False


def test_notifier_forwards_and_dismisses() -> None:
    notifier = Notifier()
    seen = []
    unsubscribe = notifier.subscribe(seen.append)

    first = notifier.error("Could not load", detail="timeout")
    unsubscribe()
    notifier.info("Later")

    assert [n.message for n in seen] == ["Could not load"]
    assert notifier.dismiss(first.id) is True
    assert [n.message for n in notifier.active] == ["Later"]


def test_notifier_survives_failing_listener() -> None:
    notifier = Notifier()

    def broken(notice):
        raise RuntimeError("listener bug")

    notifier.subscribe(broken)
    notice = notifier.info("Still recorded")

    assert notifier.active == [notice]


@pytest.mark.parametrize(
    ("content", "expected"),
    [
        ("no tags here", []),
        ("#Python and #python and #rust", ["python", "rust"]),
        ("mid#word counts", ["word"]),
    ],
)
def test_extract_hashtags(content, expected) -> None:
    assert extract_hashtags(content) == expected
