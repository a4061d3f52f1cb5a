"""
Change feed tests — subscriptions, notification fan-out and cancellation.
"""

import pytest

from sitetrack.services.realtime import PROJECTS, REPORTS, ChangeFeed


@pytest.fixture()
def local_feed():
    return ChangeFeed()


class TestChangeFeed:
    def test_initial_snapshot_delivered(self, local_feed):
        received = []
        local_feed.subscribe(PROJECTS, lambda: ["a"], received.append)
        assert received == [["a"]]

    def test_notify_reruns_loader(self, local_feed):
        state = {"n": 0}
        received = []

        def loader():
            state["n"] += 1
            return state["n"]

        local_feed.subscribe(PROJECTS, loader, received.append)
        local_feed.notify(PROJECTS)
        local_feed.notify(REPORTS)  # different collection
        assert received == [1, 2]

    def test_cancel_is_idempotent_and_final(self, local_feed):
        received = []
        sub = local_feed.subscribe(PROJECTS, lambda: 1, received.append)
        sub.cancel()
        sub.cancel()
        local_feed.notify(PROJECTS)
        assert received == [1]
        assert not sub.active
        assert local_feed.active_count() == 0

    def test_loader_error_goes_to_on_error(self, local_feed):
        errors = []

        def boom():
            raise RuntimeError("permission denied")

        local_feed.subscribe(PROJECTS, boom, lambda s: None, on_error=errors.append)
        assert len(errors) == 1
        assert "permission denied" in str(errors[0])

    def test_failing_subscriber_does_not_block_others(self, local_feed):
        received = []

        def bad_callback(snapshot):
            if snapshot == 2:
                raise ValueError("render failed")

        counter = iter(range(1, 10))
        local_feed.subscribe(PROJECTS, lambda: next(counter), bad_callback)
        local_feed.subscribe(PROJECTS, lambda: "ok", received.append)
        local_feed.notify(PROJECTS)
        assert received == ["ok", "ok"]

    def test_unknown_collection_rejected(self, local_feed):
        with pytest.raises(ValueError):
            local_feed.subscribe("widgets", lambda: None, lambda s: None)

    def test_reset_drops_everything(self, local_feed):
        local_feed.subscribe(PROJECTS, lambda: 1, lambda s: None)
        local_feed.subscribe(REPORTS, lambda: 1, lambda s: None)
        assert local_feed.active_count() == 2
        local_feed.reset()
        assert local_feed.active_count() == 0
