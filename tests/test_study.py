"""Tests for notes and quiz generation, charging and grading"""

import logging
from unittest.mock import Mock

import pytest

from tube_tracker.core.exceptions import (
    GenerationError,
    LocalStoreError,
    NotFoundError,
    UnauthorizedError,
)
from tube_tracker.credits.ledger import CreditLedger
from tube_tracker.generation.cache import CacheKind
from tube_tracker.generation.models import PerformanceLevel
from tube_tracker.sync.study import StudyService

from conftest import PLAYLIST_ID, build_bundle


VIDEO = build_bundle().videos[0]


@pytest.fixture
def ledger(remote_store, user):
    return CreditLedger(remote_store, user.id)


class TestGenerateNotes:
    """Test notes generation"""

    @pytest.mark.asyncio
    async def test_notes_are_charged_and_cached(self, study, generator, cache, ledger, user):
        notes = await study.generate_notes(VIDEO, PLAYLIST_ID, user, ledger)

        assert notes.topic == "Recursion"
        assert ledger.balance == 90
        assert generator.notes_calls == 1
        assert await cache.lookup(CacheKind.NOTES, (VIDEO.id, PLAYLIST_ID)) is not None

    @pytest.mark.asyncio
    async def test_cache_hit_is_charged_by_default(self, study, generator, ledger, user):
        await study.generate_notes(VIDEO, PLAYLIST_ID, user, ledger)
        await study.generate_notes(VIDEO, PLAYLIST_ID, user, ledger)

        assert generator.notes_calls == 1
        assert ledger.balance == 80

    @pytest.mark.asyncio
    async def test_cache_hit_free_when_configured(self, local_store, remote_store, cache, generator, ledger, user):
        service = StudyService(local_store, remote_store, cache, generator, charge_on_cache_hit=False)

        await service.generate_notes(VIDEO, PLAYLIST_ID, user, ledger)
        await service.generate_notes(VIDEO, PLAYLIST_ID, user, ledger)

        assert generator.notes_calls == 1
        assert ledger.balance == 90

    @pytest.mark.asyncio
    async def test_forced_regeneration_is_charged(self, local_store, remote_store, cache, generator, ledger, user):
        service = StudyService(local_store, remote_store, cache, generator, charge_on_cache_hit=False)

        await service.generate_notes(VIDEO, PLAYLIST_ID, user, ledger)
        generator.topic = "Iteration"
        notes = await service.generate_notes(VIDEO, PLAYLIST_ID, user, ledger, force_regenerate=True)

        assert notes.topic == "Iteration"
        assert generator.notes_calls == 2
        assert ledger.balance == 80

    @pytest.mark.asyncio
    async def test_failure_refunds_and_caches_nothing(self, study, generator, cache, remote_store, ledger, user):
        generator.fail = True

        with pytest.raises(GenerationError):
            await study.generate_notes(VIDEO, PLAYLIST_ID, user, ledger)

        assert (await remote_store.get_credits(user.id)).credits == 100
        assert await cache.lookup(CacheKind.NOTES, (VIDEO.id, PLAYLIST_ID)) is None

    @pytest.mark.asyncio
    async def test_notes_saved_locally_and_remotely(self, study, local_store, remote_store, ledger, user):
        notes = await study.generate_notes(VIDEO, PLAYLIST_ID, user, ledger)

        assert notes.user_id == user.id
        assert [row["video_id"] for row in local_store.get_notes(PLAYLIST_ID)] == [VIDEO.id]
        assert [row["video_id"] for row in await remote_store.get_user_notes(user.id, PLAYLIST_ID)] == [VIDEO.id]

    @pytest.mark.asyncio
    async def test_local_save_failure_keeps_paid_notes(self, study, local_store, remote_store, ledger, user, monkeypatch, caplog):
        monkeypatch.setattr(local_store, "put_notes", Mock(side_effect=LocalStoreError("disk full")))

        with caplog.at_level(logging.WARNING):
            notes = await study.generate_notes(VIDEO, PLAYLIST_ID, user, ledger)

        assert notes.topic == "Recursion"
        assert ledger.balance == 90
        assert [row["video_id"] for row in await remote_store.get_user_notes(user.id, PLAYLIST_ID)] == [VIDEO.id]
        assert [
            r for r in caplog.records
            if getattr(r, "sync_failure_operation", None) == "save_notes_local"
        ]

    @pytest.mark.asyncio
    async def test_anonymous_notes_are_free(self, study, local_store, remote_store, user):
        notes = await study.generate_notes(VIDEO, PLAYLIST_ID, None, None)

        assert notes.user_id is None
        assert len(local_store.get_notes(PLAYLIST_ID)) == 1
        assert (await remote_store.get_credits(user.id)).credits == 100


class TestGenerateTest:
    """Test quiz generation and grading"""

    @pytest.mark.asyncio
    async def test_requires_user(self, study):
        with pytest.raises(UnauthorizedError):
            await study.generate_test(VIDEO, PLAYLIST_ID, None, None)

    @pytest.mark.asyncio
    async def test_new_test_is_ungraded_and_charged(self, study, ledger, user):
        record = await study.generate_test(VIDEO, PLAYLIST_ID, user, ledger)

        assert len(record.questions) == 10
        assert record.is_graded is False
        assert ledger.balance == 95

    @pytest.mark.asyncio
    async def test_submit_grades_and_persists(self, study, remote_store, ledger, user):
        await study.generate_test(VIDEO, PLAYLIST_ID, user, ledger)

        result = await study.submit_test(user, VIDEO.id, PLAYLIST_ID, [1] * 10)

        assert result.score == 10
        assert result.total_questions == 10
        assert result.performance_level is PerformanceLevel.EXCELLENT
        rows = await remote_store.get_test_results(user.id, PLAYLIST_ID)
        assert [(row["video_id"], row["score"]) for row in rows] == [(VIDEO.id, 10)]

    @pytest.mark.asyncio
    async def test_partial_score(self, study, ledger, user):
        await study.generate_test(VIDEO, PLAYLIST_ID, user, ledger)

        result = await study.submit_test(user, VIDEO.id, PLAYLIST_ID, [1] * 6 + [0] * 4)

        assert result.score == 6
        assert result.performance_level is PerformanceLevel.GOOD

    @pytest.mark.asyncio
    async def test_cached_test_keeps_its_score(self, study, generator, ledger, user):
        await study.generate_test(VIDEO, PLAYLIST_ID, user, ledger)
        await study.submit_test(user, VIDEO.id, PLAYLIST_ID, [1] * 10)

        record = await study.generate_test(VIDEO, PLAYLIST_ID, user, ledger)

        assert generator.test_calls == 1
        assert record.score == 10

    @pytest.mark.asyncio
    async def test_regenerating_discards_score(self, study, remote_store, ledger, user):
        await study.generate_test(VIDEO, PLAYLIST_ID, user, ledger)
        await study.submit_test(user, VIDEO.id, PLAYLIST_ID, [1] * 10)

        record = await study.generate_test(VIDEO, PLAYLIST_ID, user, ledger, force_regenerate=True)

        assert record.is_graded is False
        assert await remote_store.get_test_results(user.id, PLAYLIST_ID) == []

    @pytest.mark.asyncio
    async def test_submit_without_test(self, study, user):
        with pytest.raises(NotFoundError):
            await study.submit_test(user, VIDEO.id, PLAYLIST_ID, [1] * 10)

    @pytest.mark.asyncio
    async def test_submit_wrong_answer_count(self, study, ledger, user):
        await study.generate_test(VIDEO, PLAYLIST_ID, user, ledger)

        with pytest.raises(ValueError):
            await study.submit_test(user, VIDEO.id, PLAYLIST_ID, [1, 2, 3])
