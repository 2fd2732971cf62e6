"""Tests for notifications and throttled warnings."""

from marketsim.notifications import Notifier, SampledWarner


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestNotifier:
    def test_listeners_receive_notifications(self) -> None:
        notifier = Notifier()
        received = []
        notifier.add_listener(received.append)

        note = notifier.notify("Bought 10 ZZZ")
        warning = notifier.warning("Insufficient funds")

        assert received == [note, warning]
        assert note.level == "info"
        assert warning.level == "warning"

    def test_recent_is_bounded(self) -> None:
        notifier = Notifier(recent_limit=3)
        for i in range(5):
            notifier.notify(f"n{i}")
        assert [n.message for n in notifier.recent] == ["n2", "n3", "n4"]
        notifier.dismiss_all()
        assert len(notifier.recent) == 0

    def test_failing_listener_does_not_block_others(self) -> None:
        notifier = Notifier()
        received = []

        def broken(_note):
            raise RuntimeError("boom")

        notifier.add_listener(broken)
        notifier.add_listener(received.append)
        notifier.notify("still delivered")
        assert [n.message for n in received] == ["still delivered"]


class TestSampledWarner:
    def test_first_occurrence_surfaced(self) -> None:
        notifier = Notifier()
        warner = SampledWarner(notifier, sample_every=10, min_interval_sec=60, clock=FakeClock())
        assert warner.record("write:stocks", "Tick write failed") is True
        assert [n.message for n in notifier.recent] == ["Tick write failed"]

    def test_throttled_until_count_and_interval(self) -> None:
        clock = FakeClock()
        notifier = Notifier()
        warner = SampledWarner(notifier, sample_every=3, min_interval_sec=60, clock=clock)

        assert warner.record("k", "msg") is True
        # Count reached but interval not elapsed
        assert warner.record("k", "msg") is False
        assert warner.record("k", "msg") is False
        assert warner.record("k", "msg") is False

        clock.now = 61.0
        assert warner.record("k", "msg") is True
        assert notifier.recent[-1].message == "msg (occurrence 5)"
        assert warner.counts["k"] == 5

    def test_interval_alone_not_enough(self) -> None:
        clock = FakeClock()
        warner = SampledWarner(sample_every=10, min_interval_sec=1, clock=clock)
        warner.record("k", "msg")
        clock.now = 100.0
        assert warner.record("k", "msg") is False

    def test_keys_independent(self) -> None:
        warner = SampledWarner(clock=FakeClock())
        assert warner.record("numeric:A", "a") is True
        assert warner.record("numeric:B", "b") is True
