"""HTTP API: submit, results, daily challenge, archive, user stats and badges."""

from __future__ import annotations

import asyncio
from itertools import islice, permutations

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from moneyrank.attempts.router import get_pipeline
from moneyrank.db.models import Attempt, ChallengeAggregate, UserStats
from moneyrank.errors import TransientStorageError
from moneyrank.main import create_app

# The fixture days are all playable from here.
_USER_TODAY = {"user_today": "2026-10-20"}


class TestSubmitAttempt:
    @pytest.mark.asyncio
    async def test_submit_returns_201(self, client: AsyncClient, make_challenge, auth_headers):
        challenge = await make_challenge()
        response = await client.post(
            "/api/v1/attempts",
            params=_USER_TODAY,
            json={"challenge_id": challenge.id, "ranking": challenge.ideal_order},
            headers=auth_headers("user-1"),
        )
        assert response.status_code == 201
        data = response.json()
        assert data["challenge_id"] == challenge.id
        assert data["date_key"] == "2026-10-19"
        assert data["ranking"] == challenge.ideal_order
        assert data["score"] == 100
        assert data["grade"] == "Great"
        assert data["is_best_attempt"] is True
        assert "submitted_at" in data
        assert set(data["badges_awarded"]) == {"first_ranking", "perfect_match"}

    @pytest.mark.asyncio
    async def test_invalid_ranking_is_400(self, client: AsyncClient, make_challenge, auth_headers):
        challenge = await make_challenge()
        a, b, c, _ = challenge.ideal_order
        response = await client.post(
            "/api/v1/attempts",
            params=_USER_TODAY,
            json={"challenge_id": challenge.id, "ranking": [a, b, c]},
            headers=auth_headers(),
        )
        assert response.status_code == 400
        assert response.json()["detail"].startswith("Your ranking is invalid")

    @pytest.mark.asyncio
    async def test_unknown_challenge_is_404(self, client: AsyncClient, auth_headers):
        response = await client.post(
            "/api/v1/attempts",
            params=_USER_TODAY,
            json={"challenge_id": "nope", "ranking": ["a", "b"]},
            headers=auth_headers(),
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "Challenge not found"

    @pytest.mark.asyncio
    async def test_extra_fields_rejected(self, client: AsyncClient, make_challenge, auth_headers):
        challenge = await make_challenge()
        response = await client.post(
            "/api/v1/attempts",
            params=_USER_TODAY,
            json={"challenge_id": challenge.id, "ranking": challenge.ideal_order, "score": 100},
            headers=auth_headers(),
        )
        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"

    @pytest.mark.asyncio
    async def test_requires_auth(self, client: AsyncClient, make_challenge):
        challenge = await make_challenge()
        response = await client.post(
            "/api/v1/attempts",
            params=_USER_TODAY,
            json={"challenge_id": challenge.id, "ranking": challenge.ideal_order},
        )
        assert response.status_code in (401, 403)

    @pytest.mark.asyncio
    async def test_bad_token_is_401(self, client: AsyncClient, make_challenge):
        challenge = await make_challenge()
        response = await client.post(
            "/api/v1/attempts",
            params=_USER_TODAY,
            json={"challenge_id": challenge.id, "ranking": challenge.ideal_order},
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_transient_failure_is_503_with_retry_after(self, session_factory, make_challenge, auth_headers):
        challenge = await make_challenge()

        class _Exhausted:
            async def submit(self, *args, **kwargs):
                raise TransientStorageError

        app = create_app()
        app.dependency_overrides[get_pipeline] = lambda: _Exhausted()
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.post(
                "/api/v1/attempts",
                params=_USER_TODAY,
                json={"challenge_id": challenge.id, "ranking": challenge.ideal_order},
                headers=auth_headers(),
            )
        assert response.status_code == 503
        assert response.json() == {"detail": "Please try again."}
        assert "retry-after" in response.headers


    @pytest.mark.asyncio
    async def test_day_after_user_today_is_locked(self, client: AsyncClient, make_challenge, auth_headers, session_factory):
        challenge = await make_challenge("2026-10-21")
        response = await client.post(
            "/api/v1/attempts",
            params={"user_today": "2026-10-20"},
            json={"challenge_id": challenge.id, "ranking": challenge.ideal_order},
            headers=auth_headers(),
        )
        assert response.status_code == 403
        assert response.json() == {"detail": "This challenge is locked"}

        async with session_factory() as db:
            assert (await db.execute(select(func.count()).select_from(Attempt))).scalar_one() == 0
            assert (await db.execute(select(UserStats))).scalar_one_or_none() is None

        response = await client.post(
            "/api/v1/attempts",
            params={"user_today": "2026-10-21"},
            json={"challenge_id": challenge.id, "ranking": challenge.ideal_order},
            headers=auth_headers(),
        )
        assert response.status_code == 201

    @pytest.mark.asyncio
    async def test_malformed_user_today_is_400(self, client: AsyncClient, make_challenge, auth_headers):
        challenge = await make_challenge()
        response = await client.post(
            "/api/v1/attempts",
            params={"user_today": "tomorrow"},
            json={"challenge_id": challenge.id, "ranking": challenge.ideal_order},
            headers=auth_headers(),
        )
        assert response.status_code == 400


class TestConcurrentSubmissions:
    @pytest.mark.asyncio
    async def test_requests_share_one_lock(self, session_factory):
        assert get_pipeline().lock is get_pipeline().lock

    @pytest.mark.asyncio
    async def test_parallel_posts_keep_one_best(self, client: AsyncClient, make_challenge, auth_headers, session_factory):
        challenge = await make_challenge()
        rankings = [list(p) for p in islice(permutations(challenge.ideal_order), 5)]
        await client.get("/api/v1/users/me/stats", headers=auth_headers())

        responses = await asyncio.gather(*(
            client.post(
                "/api/v1/attempts",
                params=_USER_TODAY,
                json={"challenge_id": challenge.id, "ranking": ranking},
                headers=auth_headers(),
            )
            for ranking in rankings
        ))
        assert [r.status_code for r in responses] == [201] * 5

        async with session_factory() as db:
            best = (await db.execute(
                select(Attempt.score).where(Attempt.user_id == "user-1", Attempt.is_best_attempt.is_(True))
            )).all()
            assert [row[0] for row in best] == [100]
            aggregate = (await db.execute(
                select(ChallengeAggregate).where(ChallengeAggregate.challenge_id == challenge.id)
            )).scalar_one()
            assert aggregate.total_attempts == 1
            assert aggregate.score_sum == 100
            stats = (await db.execute(select(UserStats).where(UserStats.user_id == "user-1"))).scalar_one()
            assert stats.submission_count == 5
            assert stats.total_attempts == 1

class TestResults:
    @pytest.mark.asyncio
    async def test_404_before_attempt(self, client: AsyncClient, make_challenge, auth_headers):
        challenge = await make_challenge()
        response = await client.get(f"/api/v1/results/{challenge.id}", headers=auth_headers())
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_results_after_attempts(self, client: AsyncClient, make_challenge, auth_headers):
        challenge = await make_challenge()
        a, b, c, d = challenge.ideal_order
        for user_id, ranking in (("u1", [a, b, c, d]), ("u2", [b, a, c, d]), ("u3", [d, c, b, a])):
            response = await client.post(
                "/api/v1/attempts",
                params=_USER_TODAY,
                json={"challenge_id": challenge.id, "ranking": ranking},
                headers=auth_headers(user_id),
            )
            assert response.status_code == 201

        response = await client.get(f"/api/v1/results/{challenge.id}", headers=auth_headers("u2"))
        assert response.status_code == 200
        data = response.json()
        assert data["attempt"]["score"] == 75
        assert data["challenge"]["options"][0]["ideal_rank"] == 1
        stats = data["stats"]
        assert stats["total_attempts"] == 3
        assert stats["percentile"] == 67
        assert stats["top_percent"] == 33
        assert stats["exact_match_percent"] == 33
        assert len(stats["position_distribution"]) == 4

    @pytest.mark.asyncio
    async def test_unknown_challenge(self, client: AsyncClient, auth_headers):
        response = await client.get("/api/v1/results/nope", headers=auth_headers())
        assert response.status_code == 404


class TestDailyChallenge:
    @pytest.mark.asyncio
    async def test_today_hides_answer_until_attempted(self, client: AsyncClient, make_challenge, auth_headers):
        challenge = await make_challenge("2026-10-19")

        response = await client.get("/api/v1/challenges/today?user_today=2026-10-19", headers=auth_headers())
        assert response.status_code == 200
        data = response.json()
        assert data["has_attempted"] is False
        assert data["attempt"] is None
        assert data["challenge"]["id"] == challenge.id
        assert all(o["ideal_rank"] is None for o in data["challenge"]["options"])

        await client.post(
            "/api/v1/attempts",
            params=_USER_TODAY,
            json={"challenge_id": challenge.id, "ranking": challenge.ideal_order},
            headers=auth_headers(),
        )

        response = await client.get("/api/v1/challenges/today?user_today=2026-10-19", headers=auth_headers())
        data = response.json()
        assert data["has_attempted"] is True
        assert data["attempt"]["score"] == 100
        assert [o["ideal_rank"] for o in data["challenge"]["options"]] == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_by_date_key(self, client: AsyncClient, make_challenge, auth_headers):
        await make_challenge("2026-10-01")
        response = await client.get("/api/v1/challenges/2026-10-01", headers=auth_headers())
        assert response.status_code == 200
        assert response.json()["challenge"]["date_key"] == "2026-10-01"

    @pytest.mark.asyncio
    async def test_missing_day_is_404(self, client: AsyncClient, session_factory, auth_headers):
        response = await client.get("/api/v1/challenges/2020-01-01", headers=auth_headers())
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_bad_date_key_is_400(self, client: AsyncClient, session_factory, auth_headers):
        response = await client.get("/api/v1/challenges/today?user_today=19-10-2026", headers=auth_headers())
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unpublished_is_hidden(self, client: AsyncClient, make_challenge, auth_headers):
        await make_challenge("2026-10-22", published=False)
        response = await client.get("/api/v1/challenges/2026-10-22", headers=auth_headers())
        assert response.status_code == 404


    @pytest.mark.asyncio
    async def test_future_day_locked_until_played(self, client: AsyncClient, make_challenge, auth_headers):
        challenge = await make_challenge("2026-10-23")
        response = await client.get("/api/v1/challenges/2026-10-23?user_today=2026-10-20", headers=auth_headers())
        assert response.status_code == 403
        assert response.json()["detail"] == "This challenge is locked"

        response = await client.get("/api/v1/challenges/2026-10-23?user_today=2026-10-23", headers=auth_headers())
        assert response.status_code == 200
        assert response.json()["challenge"]["id"] == challenge.id


class TestArchive:
    @pytest.mark.asyncio
    async def test_archive_lists_past_and_coming_week(self, client: AsyncClient, make_challenge, auth_headers):
        played = await make_challenge("2026-10-18")
        await make_challenge("2026-10-19", published=False)
        await make_challenge("2026-10-20")
        await make_challenge("2026-10-23")
        await make_challenge("2026-11-05")
        await client.post(
            "/api/v1/attempts",
            params=_USER_TODAY,
            json={"challenge_id": played.id, "ranking": played.ideal_order},
            headers=auth_headers(),
        )

        response = await client.get("/api/v1/challenges/archive", params=_USER_TODAY, headers=auth_headers())
        assert response.status_code == 200
        data = response.json()
        assert data["user_today"] == "2026-10-20"
        entries = data["challenges"]
        assert [e["date_key"] for e in entries] == ["2026-10-23", "2026-10-20", "2026-10-18"]
        assert [e["is_locked"] for e in entries] == [True, False, False]
        assert [e["has_attempted"] for e in entries] == [False, False, True]
        assert entries[2]["attempt"]["score"] == 100
        assert entries[2]["completed_at"] is not None
        assert entries[0]["attempt"] is None

    @pytest.mark.asyncio
    async def test_archive_with_no_challenges(self, client: AsyncClient, session_factory, auth_headers):
        response = await client.get("/api/v1/challenges/archive", params=_USER_TODAY, headers=auth_headers())
        assert response.status_code == 200
        assert response.json() == {"user_today": "2026-10-20", "challenges": []}

class TestUserEndpoints:
    @pytest.mark.asyncio
    async def test_stats_before_playing(self, client: AsyncClient, session_factory, auth_headers):
        response = await client.get("/api/v1/users/me/stats", headers=auth_headers("fresh"))
        assert response.status_code == 200
        data = response.json()
        assert data["current_streak"] == 0
        assert data["total_attempts"] == 0
        assert data["best_percentile"] is None

    @pytest.mark.asyncio
    async def test_stats_after_playing(self, client: AsyncClient, make_challenge, auth_headers):
        for date_key in ("2026-10-19", "2026-10-20"):
            challenge = await make_challenge(date_key)
            await client.post(
                "/api/v1/attempts",
                params=_USER_TODAY,
                json={"challenge_id": challenge.id, "ranking": challenge.ideal_order},
                headers=auth_headers(),
            )

        data = (await client.get("/api/v1/users/me/stats", headers=auth_headers())).json()
        assert data["current_streak"] == 2
        assert data["longest_streak"] == 2
        assert data["total_attempts"] == 2
        assert data["submission_count"] == 2
        assert data["average_score"] == 100.0
        assert data["last_completed_date_key"] == "2026-10-20"

    @pytest.mark.asyncio
    async def test_badges_listing(self, client: AsyncClient, make_challenge, auth_headers):
        challenge = await make_challenge()
        await client.post(
            "/api/v1/attempts",
            params=_USER_TODAY,
            json={"challenge_id": challenge.id, "ranking": challenge.ideal_order},
            headers=auth_headers(),
        )

        all_badges = (await client.get("/api/v1/badges")).json()["badges"]
        by_slug = {b["slug"]: b for b in all_badges}
        assert by_slug["first_ranking"]["total_earned"] == 1
        assert by_slug["streak_7"]["total_earned"] == 0

        mine = (await client.get("/api/v1/users/me/badges", headers=auth_headers())).json()
        assert mine["total_earned"] == 2
        assert mine["total_available"] == len(all_badges)
        assert {b["slug"] for b in mine["earned"]} == {"first_ranking", "perfect_match"}

    @pytest.mark.asyncio
    async def test_score_history(self, client: AsyncClient, make_challenge, auth_headers):
        first = await make_challenge("2026-10-19")
        second = await make_challenge("2026-10-20")
        a, b, c, d = second.ideal_order
        for challenge, ranking in ((first, first.ideal_order), (second, [b, a, c, d])):
            response = await client.post(
                "/api/v1/attempts",
                params=_USER_TODAY,
                json={"challenge_id": challenge.id, "ranking": ranking},
                headers=auth_headers(),
            )
            assert response.status_code == 201

        response = await client.get("/api/v1/users/me/score-history", headers=auth_headers())
        assert response.status_code == 200
        data = response.json()
        assert data["averages"] == {"last_7_days": 88, "last_30_days": 88, "all_time": 88}
        assert data["score_distribution"] == {"perfect": 1, "great": 0, "good": 1, "risky": 0}
        assert data["trend"] == "stable"
        assert data["trend_percent"] == 0
        assert data["total_attempts"] == 2
        assert data["best_score"] == 100
        assert data["worst_score"] == 75
        assert [(h["date_key"], h["score"]) for h in data["history"]] == [("2026-10-19", 100), ("2026-10-20", 75)]

    @pytest.mark.asyncio
    async def test_score_history_before_playing(self, client: AsyncClient, session_factory, auth_headers):
        data = (await client.get("/api/v1/users/me/score-history", headers=auth_headers("fresh"))).json()
        assert data["total_attempts"] == 0
        assert data["averages"]["all_time"] == 0
        assert data["trend"] == "stable"
        assert data["history"] == []
