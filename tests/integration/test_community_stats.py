"""Community aggregates: percentile, exact match, top picks and position distribution."""

from __future__ import annotations

import pytest
from sqlalchemy import select

from moneyrank.attempts.best_attempt import get_best_attempt
from moneyrank.challenges.service import require_challenge
from moneyrank.db.models import ChallengeAggregate, ChallengeScoreCount
from moneyrank.stats.aggregate_service import begin_snapshot, get_stats, percentile_for_score


async def _stats_for(session_factory, user_id: str, challenge_id: str):
    async with session_factory() as db:
        await begin_snapshot(db)
        challenge = await require_challenge(db, challenge_id)
        attempt = await get_best_attempt(db, user_id, challenge_id)
        return await get_stats(db, challenge, attempt)


@pytest.fixture
def four_players(pipeline, make_challenge):
    """u1 ideal (100), u2 and u3 swap the top two (75), u4 fully reversed (0)."""

    async def _play():
        challenge = await make_challenge()
        a, b, c, d = challenge.ideal_order
        await pipeline.submit("u1", challenge.id, [a, b, c, d])
        await pipeline.submit("u2", challenge.id, [b, a, c, d])
        await pipeline.submit("u3", challenge.id, [b, a, c, d])
        await pipeline.submit("u4", challenge.id, [d, c, b, a])
        return challenge

    return _play


class TestGetStats:
    @pytest.mark.asyncio
    async def test_comparison_numbers(self, four_players, session_factory):
        challenge = await four_players()

        stats = await _stats_for(session_factory, "u2", challenge.id)

        assert stats.total_attempts == 4
        assert stats.percentile == 75
        assert stats.top_percent == 25
        assert stats.exact_match_percent == 50
        assert stats.top_pick_percent == 50
        assert stats.top_two_percent == 75
        assert stats.average_score == 62.5

    @pytest.mark.asyncio
    async def test_best_player_percentile(self, four_players, session_factory):
        challenge = await four_players()
        stats = await _stats_for(session_factory, "u1", challenge.id)
        assert stats.percentile == 100
        assert stats.top_percent == 0
        assert stats.exact_match_percent == 25

    @pytest.mark.asyncio
    async def test_per_option_pick_shares(self, four_players, session_factory):
        challenge = await four_players()
        a, b, c, d = challenge.ideal_order

        stats = await _stats_for(session_factory, "u1", challenge.id)

        shares = {
            s.option_id: (s.top_pick_count, s.top_pick_percent, s.top_two_count, s.top_two_percent)
            for s in stats.option_pick_stats
        }
        assert [s.option_id for s in stats.option_pick_stats] == [a, b, c, d]
        assert shares[a] == (1, 25, 3, 75)
        assert shares[b] == (2, 50, 3, 75)
        assert shares[c] == (0, 0, 1, 25)
        assert shares[d] == (1, 25, 1, 25)
        assert stats.top_two_percent == shares[a][3]

    @pytest.mark.asyncio
    async def test_position_distribution_covers_every_cell(self, four_players, session_factory):
        challenge = await four_players()
        a, b, c, d = challenge.ideal_order

        stats = await _stats_for(session_factory, "u4", challenge.id)

        assert [row.option_id for row in stats.position_distribution] == [a, b, c, d]
        cells = {(row.option_id, p.position): p for row in stats.position_distribution for p in row.positions}
        assert len(cells) == 16
        assert cells[(a, 1)].count == 1
        assert cells[(b, 1)].count == 2
        assert cells[(b, 1)].percent == 50.0
        assert cells[(d, 1)].count == 1
        assert cells[(c, 1)].count == 0
        for position in range(1, 5):
            total = sum(p.percent for row in stats.position_distribution for p in row.positions if p.position == position)
            assert total == pytest.approx(100.0, abs=0.2)


class TestCountedMoves:
    @pytest.mark.asyncio
    async def test_improvement_moves_contribution(self, four_players, pipeline, session_factory):
        challenge = await four_players()
        a, b, c, d = challenge.ideal_order

        await pipeline.submit("u2", challenge.id, [a, b, c, d])

        async with session_factory() as db:
            aggregate = (await db.execute(
                select(ChallengeAggregate).where(ChallengeAggregate.challenge_id == challenge.id)
            )).scalar_one()
            counts = {
                row.score: row.count
                for row in (await db.execute(
                    select(ChallengeScoreCount).where(ChallengeScoreCount.challenge_id == challenge.id)
                )).scalars()
            }
        assert aggregate.total_attempts == 4
        assert aggregate.score_sum == 275
        assert counts[100] == 2
        assert counts[75] == 1
        assert counts[0] == 1

        stats = await _stats_for(session_factory, "u3", challenge.id)
        assert stats.exact_match_percent == 25
        assert stats.top_pick_percent == 25

    @pytest.mark.asyncio
    async def test_worse_resubmission_changes_nothing(self, four_players, pipeline, session_factory):
        challenge = await four_players()
        a, b, c, d = challenge.ideal_order
        before = await _stats_for(session_factory, "u1", challenge.id)

        await pipeline.submit("u1", challenge.id, [d, c, b, a])

        after = await _stats_for(session_factory, "u1", challenge.id)
        assert after == before


class TestPercentileMonotonicity:
    @pytest.mark.asyncio
    async def test_better_resubmission_never_lowers_percentile(self, pipeline, make_challenge, session_factory):
        challenge = await make_challenge()
        a, b, c, d = challenge.ideal_order
        await pipeline.submit("u1", challenge.id, [a, b, c, d])  # 100
        await pipeline.submit("u2", challenge.id, [b, a, c, d])  # 75
        await pipeline.submit("u3", challenge.id, [b, a, d, c])  # 50
        await pipeline.submit("u4", challenge.id, [d, c, b, a])  # 0

        seen = []
        for ranking in ([d, a, b, c], [b, a, c, d], [a, b, c, d]):  # 25, 75, 100
            result = await pipeline.submit("me", challenge.id, ranking)
            seen.append(result.percentile)

        assert seen == [40, 80, 100]
        assert seen == sorted(seen)

        async with session_factory() as db:
            percentile, total = await percentile_for_score(db, challenge.id, 100)
        assert (percentile, total) == (100, 5)

    @pytest.mark.asyncio
    async def test_top_five_percent_badge_needs_community(self, pipeline, make_challenge):
        challenge = await make_challenge()
        a, b, c, d = challenge.ideal_order
        for i in range(9):
            await pipeline.submit(f"player-{i}", challenge.id, [d, c, b, a])

        result = await pipeline.submit("ace", challenge.id, [a, b, c, d])

        assert result.community_size == 10
        assert result.percentile == 100
        assert "top_five_percent" in result.badges_awarded

    @pytest.mark.asyncio
    async def test_best_percentile_tracks_maximum(self, pipeline, make_challenge, session_factory):
        from moneyrank.stats.user_stats import get_user_stats

        challenge = await make_challenge()
        a, b, c, d = challenge.ideal_order
        await pipeline.submit("early", challenge.id, [b, a, c, d])  # alone: 100th percentile
        await pipeline.submit("later", challenge.id, [a, b, c, d])
        await pipeline.submit("early", challenge.id, [d, c, b, a])  # not counted, percentile now 50

        async with session_factory() as db:
            stats = await get_user_stats(db, "early")
        assert stats.best_percentile == 100
