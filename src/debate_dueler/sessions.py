import logging
from datetime import datetime
from typing import List, Optional

from redis.exceptions import RedisError

from .errors import StorageError, ValidationError
from .models import PlayerAnswer, PlayerSession, Question, ScoringMode
from .redis_session import session_key, track_keys

logger = logging.getLogger(__name__)


class SessionLifecycle:
    """One player's run through a dealt set of questions on a post.

    Sessions are never rewritten in place by callers: ``advance`` and
    ``finish`` return updated copies, which are stored with ``save``.
    """

    def __init__(self, client):
        self.redis = client

    def get(self, post_id: str, user_id: str) -> Optional[PlayerSession]:
        try:
            data = self.redis.get(session_key(post_id, user_id))
        except RedisError as e:
            raise StorageError("Storage unavailable") from e
        return PlayerSession.model_validate_json(data) if data else None

    def save(self, post_id: str, session: PlayerSession) -> None:
        key = session_key(post_id, session.user_id)
        try:
            self.redis.set(key, session.to_json())
            track_keys(self.redis, key)
        except RedisError as e:
            logger.error(f"Failed to save session {key}: {e}")
            raise StorageError("Storage unavailable, session not saved") from e

    def start(
        self,
        post_id: str,
        user_id: str,
        username: str,
        scoring_mode: ScoringMode,
        questions: List[Question],
    ) -> PlayerSession:
        existing = self.get(post_id, user_id)
        if existing:
            logger.info(f"Resuming {existing.game_state} session for {user_id} on {post_id}")
            return existing
        if not questions:
            raise ValidationError("Deck has no questions")

        session = PlayerSession(
            user_id=user_id,
            username=username,
            scoring_mode=scoring_mode,
            question_ids=[q.id for q in questions],
            game_state="playing",
        )
        self.save(post_id, session)
        logger.info(
            f"New session: {user_id} on {post_id} [Mode: {scoring_mode}, Questions: {len(questions)}]"
        )
        return session

    @staticmethod
    def current_question_id(session: PlayerSession) -> Optional[str]:
        if 0 <= session.current_question_index < len(session.question_ids):
            return session.question_ids[session.current_question_index]
        return None

    @staticmethod
    def advance(session: PlayerSession, answer: PlayerAnswer, score: int) -> PlayerSession:
        updated = session.model_copy(
            update={
                "answers": [*session.answers, answer],
                "total_score": session.total_score + score,
                "current_question_index": session.current_question_index + 1,
            }
        )
        if updated.current_question_index >= len(updated.question_ids):
            return SessionLifecycle.finish(updated)
        return updated

    @staticmethod
    def finish(
        session: PlayerSession,
        answers: Optional[List[PlayerAnswer]] = None,
        total_score: Optional[int] = None,
    ) -> PlayerSession:
        update = {"game_state": "finished", "finished_at": datetime.now()}
        if answers is not None:
            update["answers"] = list(answers)
            update["current_question_index"] = len(answers)
        if total_score is not None:
            update["total_score"] = total_score
        return session.model_copy(update=update)
