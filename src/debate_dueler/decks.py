import logging
import time
from typing import List, Optional

from redis.exceptions import RedisError

from .errors import NotFoundError, StorageError, ValidationError
from .library import DeckLibrary
from .models import Deck, Question
from .redis_session import deck_key, track_keys
from .stats import StatsStore

logger = logging.getLogger(__name__)


def validate_question(question: Question) -> None:
    """Check the invariants a question must hold before it enters a deck.

    Multiple-choice questions need exactly one correct card. Sequence
    questions need every card ranked, with ranks forming 1..N.
    """
    if not question.prompt.strip():
        raise ValidationError("Question prompt must not be empty")
    if len(question.cards) < 2:
        raise ValidationError("Valid question with at least 2 cards is required")
    if len(set(question.card_ids)) != len(question.cards):
        raise ValidationError("Card ids must be unique within a question")
    if question.time_limit <= 0:
        raise ValidationError("Time limit must be positive")

    if question.question_type == "sequence":
        orders = [card.sequence_order for card in question.cards]
        if any(order is None for order in orders):
            raise ValidationError("Every card in a sequence question needs a sequence order")
        if sorted(orders) != list(range(1, len(orders) + 1)):
            raise ValidationError(
                f"Sequence orders must be 1..{len(orders)} with no gaps or repeats"
            )
    else:
        correct = [card for card in question.cards if card.is_correct]
        if len(correct) != 1:
            raise ValidationError(
                f"Multiple-choice questions need exactly one correct card, found {len(correct)}"
            )


def find_question(deck: Deck, question_id: str) -> Question:
    question = next((q for q in deck.questions if q.id == question_id), None)
    if question is None:
        raise NotFoundError(f"Question {question_id} not found")
    return question


def attach_stats(deck: Deck, stats_store: StatsStore, post_id: str) -> Deck:
    """Fill in community stats for every question that has been answered."""
    question_stats = []
    for question in deck.questions:
        stats = stats_store.get_stats(post_id, question.id)
        if stats.total_responses > 0:
            question_stats.append(stats)
    return deck.model_copy(update={"question_stats": question_stats})


class DeckRepository:
    """Per-post decks stored as JSON. Stats are kept separately and never saved here."""

    def __init__(self, client, stats_store: StatsStore):
        self.redis = client
        self.stats_store = stats_store

    def get(self, post_id: str) -> Optional[Deck]:
        try:
            data = self.redis.get(deck_key(post_id))
        except RedisError as e:
            raise StorageError("Storage unavailable") from e
        return Deck.model_validate_json(data) if data else None

    def require(self, post_id: str) -> Deck:
        deck = self.get(post_id)
        if deck is None:
            raise NotFoundError("Game deck not found")
        return deck

    def save(self, post_id: str, deck: Deck) -> None:
        key = deck_key(post_id)
        try:
            self.redis.set(key, deck.model_copy(update={"question_stats": None}).to_json())
            track_keys(self.redis, key)
        except RedisError as e:
            logger.error(f"Failed to save deck for {post_id}: {e}")
            raise StorageError("Storage unavailable, deck not saved") from e
        logger.info(f"Saved deck {deck.id} for post {post_id}")

    def create(self, post_id: str, deck: Deck) -> Deck:
        for question in deck.questions:
            validate_question(question)
        self.save(post_id, deck)
        return deck

    def get_or_create(self, post_id: str, library: DeckLibrary) -> Deck:
        deck = self.get(post_id)
        if deck is None:
            deck = library.default_deck()
            self.save(post_id, deck)
            logger.info(f"Seeded post {post_id} with starter deck {deck.id}")
        return deck

    def add_question(
        self, post_id: str, question: Question, user_id: str, username: str
    ) -> Question:
        validate_question(question)
        deck = self.require(post_id)
        new_question = question.model_copy(
            update={
                "id": f"user_{int(time.time() * 1000)}_{user_id}",
                "author_username": username,
            }
        )
        deck.questions.append(new_question)
        self.save(post_id, deck)
        logger.info(f"Added question {new_question.id} to deck for post {post_id}")
        return new_question

    def edit_question(self, post_id: str, question: Question) -> None:
        validate_question(question)
        deck = self.require(post_id)
        find_question(deck, question.id)
        deck.questions = [question if q.id == question.id else q for q in deck.questions]
        self.save(post_id, deck)
        logger.info(f"Edited question {question.id} in deck for post {post_id}")

    def delete_question(self, post_id: str, question_id: str) -> None:
        deck = self.require(post_id)
        find_question(deck, question_id)
        deck.questions = [q for q in deck.questions if q.id != question_id]
        self.save(post_id, deck)
        self.stats_store.delete_stats(post_id, question_id)
        logger.info(f"Deleted question {question_id} from deck for post {post_id}")

    @staticmethod
    def questions_in_order(deck: Deck, question_ids: List[str]) -> List[Question]:
        """The deck's questions for ``question_ids``, in that order. Unknown ids are dropped."""
        by_id = {q.id: q for q in deck.questions}
        return [by_id[qid] for qid in question_ids if qid in by_id]
