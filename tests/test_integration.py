"""
End-to-end flow over real sqlite stores with stubbed YouTube and generator.
"""

import pytest

from tube_tracker.core.database import LocalStore
from tube_tracker.credits.ledger import CreditLedger
from tube_tracker.sync.coordinator import SyncCoordinator
from tube_tracker.sync.segmentation import select_segment

from conftest import PLAYLIST_ID


URL = f"https://www.youtube.com/playlist?list={PLAYLIST_ID}"


class TestStudyFlow:
    """Test a learner working through a playlist"""

    @pytest.mark.asyncio
    async def test_anonymous_then_signed_in(self, coordinator, study, local_store, remote_store, fetcher, make_bundle, user):
        fetcher.bundles[PLAYLIST_ID] = make_bundle(count=45, title="Data Structures")

        await coordinator.add_playlist(URL)
        snapshot = await coordinator.open_playlist(PLAYLIST_ID)

        segments = snapshot.segments()
        assert [len(s) for s in segments] == [23, 22]
        index, first_part = select_segment(segments, 0)
        assert index == 0

        third = first_part[2]
        assert third.id == "vid002"
        snapshot = await coordinator.toggle_progress(snapshot, third.id)
        assert snapshot.completed_count == 1
        assert len(local_store.get_progress(PLAYLIST_ID)) == 1

        # signing in moves the shadow row into the account
        signed_in = await coordinator.open_playlist(PLAYLIST_ID, user)
        assert signed_in.remote_synced is True
        assert signed_in.completed_count == 1
        assert local_store.get_progress(PLAYLIST_ID) == []

        ledger = CreditLedger(remote_store, user.id)
        await study.generate_notes(third, PLAYLIST_ID, user, ledger)
        await study.generate_test(third, PLAYLIST_ID, user, ledger)
        await study.submit_test(user, third.id, PLAYLIST_ID, [1] * 10)
        assert ledger.balance == 85

        reopened = await coordinator.open_playlist(PLAYLIST_ID, user)
        await coordinator.drain()

        assert reopened.notes[third.id].topic == "Recursion"
        assert reopened.test_results[third.id].score == 10
        assert reopened.is_completed("vid002")

    @pytest.mark.asyncio
    async def test_index_restored_on_new_device(self, coordinator, remote_store, cache, fetcher, user, tmp_path):
        await coordinator.add_playlist(URL, user)
        await coordinator.drain()

        other_device = LocalStore(tmp_path / "other.db")
        try:
            fresh = SyncCoordinator(other_device, remote_store, cache, fetcher)
            playlists = await fresh.load_playlist_index(user)
        finally:
            other_device.close()

        assert [p.id for p in playlists] == [PLAYLIST_ID]
