import pytest
import redis

from debate_dueler.errors import StorageError
from debate_dueler.models import LeaderboardEntry
from debate_dueler.redis_session import leaderboard_entry_key

POST_ID = "t3_post"


def entry(user_id, score, mode="trivia"):
    return LeaderboardEntry(user_id=user_id, username=f"name_{user_id}", score=score, scoring_mode=mode)


def fill(leaderboard, count):
    for i in range(count):
        leaderboard.record_finish(POST_ID, entry(f"u{i}", i * 10))


def test_first_finish_wins(leaderboard):
    assert leaderboard.record_finish(POST_ID, entry("alice", 120)) is True
    assert leaderboard.record_finish(POST_ID, entry("alice", 999)) is False

    top = leaderboard.get_top(POST_ID, 15)
    assert len(top) == 1
    assert top[0].score == 120
    assert leaderboard.get_rank(POST_ID, "alice") == 1


def test_boards_are_per_post(leaderboard):
    leaderboard.record_finish(POST_ID, entry("alice", 50))
    assert leaderboard.record_finish("t3_other", entry("alice", 70)) is True
    assert leaderboard.get_top("t3_other")[0].score == 70


def test_top_is_capped_and_sorted(leaderboard):
    fill(leaderboard, 100)

    top = leaderboard.get_top(POST_ID, 15)
    assert len(top) == 15
    scores = [e.score for e in top]
    assert scores == sorted(scores, reverse=True)
    assert scores[0] == 990


def test_top_with_no_entries(leaderboard):
    assert leaderboard.get_top(POST_ID) == []
    assert leaderboard.get_top(POST_ID, 0) == []


def test_rank_is_one_based(leaderboard):
    fill(leaderboard, 5)
    assert leaderboard.get_rank(POST_ID, "u4") == 1
    assert leaderboard.get_rank(POST_ID, "u0") == 5
    assert leaderboard.get_rank(POST_ID, "nobody") is None


def test_near_returns_window_around_user(leaderboard):
    fill(leaderboard, 30)

    # u15 has rank 15 (index 14): seven above, seven below
    near = leaderboard.get_near(POST_ID, "u15", window=7)
    assert len(near) == 15
    assert near[7].user_id == "u15"
    assert [e.score for e in near] == sorted((e.score for e in near), reverse=True)


def test_near_clips_at_the_top(leaderboard):
    fill(leaderboard, 30)
    near = leaderboard.get_near(POST_ID, "u29", window=7)
    assert near[0].user_id == "u29"
    assert len(near) == 8


def test_near_falls_back_to_top_for_unranked_user(leaderboard):
    fill(leaderboard, 30)
    assert leaderboard.get_near(POST_ID, "stranger", limit=15) == leaderboard.get_top(POST_ID, 15)
    assert len(leaderboard.get_near(POST_ID, None)) == 15


def test_missing_entry_data_is_skipped(leaderboard, redis_client):
    fill(leaderboard, 3)
    redis_client.delete(leaderboard_entry_key(POST_ID, "u1"))
    redis_client.set(leaderboard_entry_key(POST_ID, "u2"), "not json")

    top = leaderboard.get_top(POST_ID)
    assert [e.user_id for e in top] == ["u0"]


def test_failed_write_leaves_nothing_behind(leaderboard, monkeypatch):
    def broken_execute(*args, **kwargs):
        raise redis.ConnectionError("connection refused")

    monkeypatch.setattr(redis.client.Pipeline, "execute", broken_execute)
    with pytest.raises(StorageError):
        leaderboard.record_finish(POST_ID, entry("alice", 120))

    monkeypatch.undo()
    assert leaderboard.get_rank(POST_ID, "alice") is None
    assert leaderboard.record_finish(POST_ID, entry("alice", 120)) is True
    assert [e.user_id for e in leaderboard.get_top(POST_ID)] == ["alice"]
