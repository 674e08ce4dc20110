import os

os.environ.setdefault("DUELER_LOG_TO_FILE", "0")

import fakeredis
import pytest
from fastapi.testclient import TestClient

from debate_dueler.answers import AnswerProcessor
from debate_dueler.decks import DeckRepository
from debate_dueler.leaderboard import LeaderboardManager
from debate_dueler.models import Card, Deck, Question
from debate_dueler.sessions import SessionLifecycle
from debate_dueler.stats import RedisStatsStore


@pytest.fixture()
def redis_client():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture()
def stats_store(redis_client):
    return RedisStatsStore(redis_client)


@pytest.fixture()
def sessions(redis_client):
    return SessionLifecycle(redis_client)


@pytest.fixture()
def leaderboard(redis_client):
    return LeaderboardManager(redis_client)


@pytest.fixture()
def processor(stats_store, sessions, leaderboard):
    return AnswerProcessor(stats_store, sessions, leaderboard)


@pytest.fixture()
def deck_repository(redis_client, stats_store):
    return DeckRepository(redis_client, stats_store)


@pytest.fixture()
def choice_question():
    return Question(
        id="q_color",
        prompt="Best color?",
        cards=[
            Card(id="A", text="Red", is_correct=True),
            Card(id="B", text="Green"),
            Card(id="C", text="Blue"),
        ],
    )


@pytest.fixture()
def sequence_question():
    return Question(
        id="q_order",
        prompt="Order these numbers",
        question_type="sequence",
        time_limit=30,
        cards=[
            Card(id="one", text="1", sequence_order=1),
            Card(id="two", text="2", sequence_order=2),
            Card(id="three", text="3", sequence_order=3),
            Card(id="four", text="4", sequence_order=4),
        ],
    )


@pytest.fixture()
def deck(choice_question, sequence_question):
    return Deck(
        id="test_deck",
        title="Test Deck",
        questions=[choice_question, sequence_question],
    )


@pytest.fixture()
def client(redis_client, monkeypatch):
    from debate_dueler import main
    from debate_dueler.dealing import OrderedDealer
    from debate_dueler.redis_session import get_redis

    monkeypatch.setattr(main, "dealer", OrderedDealer())
    main.app.dependency_overrides[get_redis] = lambda: redis_client
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()

