import pytest

from debate_dueler.errors import ValidationError
from debate_dueler.models import PlayerAnswer

POST_ID = "t3_post"


def test_start_creates_playing_session(sessions, deck):
    session = sessions.start(POST_ID, "u1", "alice", "conformist", deck.questions)

    assert session.game_state == "playing"
    assert session.question_ids == ["q_color", "q_order"]
    assert session.current_question_index == 0
    assert sessions.get(POST_ID, "u1") == session


def test_start_twice_resumes_existing_session(sessions, deck):
    first = sessions.start(POST_ID, "u1", "alice", "conformist", deck.questions)
    second = sessions.start(POST_ID, "u1", "alice", "trivia", deck.questions[:1])

    assert second.scoring_mode == "conformist"
    assert second.question_ids == first.question_ids


def test_get_unknown_session(sessions):
    assert sessions.get(POST_ID, "nobody") is None


def test_advance_returns_new_session(sessions, deck):
    session = sessions.start(POST_ID, "u1", "alice", "trivia", deck.questions)
    answer = PlayerAnswer(question_id="q_color", answer="A", time_remaining=5)

    updated = sessions.advance(session, answer, 105)

    assert session.answers == []
    assert session.total_score == 0
    assert updated.answers == [answer]
    assert updated.total_score == 105
    assert updated.current_question_index == 1
    assert updated.game_state == "playing"
    assert sessions.current_question_id(updated) == "q_order"


def test_advance_past_last_question_finishes(sessions, deck):
    session = sessions.start(POST_ID, "u1", "alice", "trivia", deck.questions[:1])
    answer = PlayerAnswer(question_id="q_color", answer="B")

    updated = sessions.advance(session, answer, 0)

    assert updated.game_state == "finished"
    assert updated.finished_at is not None
    assert sessions.current_question_id(updated) is None


def test_finish_with_batch_answers(sessions, deck):
    session = sessions.start(POST_ID, "u1", "alice", "trivia", deck.questions)
    answers = [
        PlayerAnswer(question_id="q_color", answer="A"),
        PlayerAnswer(question_id="q_order", answer=["one", "two", "three", "four"]),
    ]

    finished = sessions.finish(session, answers=answers, total_score=200)

    assert finished.game_state == "finished"
    assert finished.total_score == 200
    assert finished.current_question_index == 2
    assert finished.answers == answers


def test_session_round_trips_through_redis(sessions, deck, redis_client):
    session = sessions.start(POST_ID, "u1", "alice", "contrarian", deck.questions)
    raw = redis_client.get("game:t3_post:player:u1")

    assert '"scoringMode":"contrarian"' in raw
    assert '"questionIds":["q_color","q_order"]' in raw
    assert sessions.get(POST_ID, "u1") == session


def test_start_with_empty_deck_is_rejected(sessions):
    with pytest.raises(ValidationError):
        sessions.start(POST_ID, "u1", "alice", "trivia", [])
    assert sessions.get(POST_ID, "u1") is None
