import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from redis.exceptions import RedisError, WatchError

from .errors import StorageError
from .models import Answer, QuestionStats
from .redis_session import (
    receipt_key,
    stats_key,
    stats_positions_key,
    stats_total_key,
    track_keys,
)

logger = logging.getLogger(__name__)


class StatsStore(ABC):
    """Community response counters, one record per (post, question)."""

    @abstractmethod
    def record_answer(
        self,
        post_id: str,
        question_id: str,
        answer: Answer,
        receipt: Optional[str] = None,
    ) -> bool:
        """Count one submission. Returns False if ``receipt`` was already counted."""

    @abstractmethod
    def get_stats(self, post_id: str, question_id: str) -> QuestionStats:
        pass

    @abstractmethod
    def delete_stats(self, post_id: str, question_id: str) -> None:
        pass


class RedisStatsStore(StatsStore):
    """Counters kept in Redis.

    Per question: a card-count hash, a total-responses counter and, for
    sequence answers, a ``cardId:position`` hash with 1-based positions.
    All increments for one submission run in a single MULTI/EXEC.
    """

    def __init__(self, client):
        self.redis = client

    def record_answer(self, post_id, question_id, answer, receipt=None):
        cards_key = stats_key(post_id, question_id)
        total_key = stats_total_key(post_id, question_id)
        positions_key = stats_positions_key(post_id, question_id)

        try:
            with self.redis.pipeline() as pipe:
                while True:
                    try:
                        if receipt:
                            pipe.watch(receipt)
                            if pipe.exists(receipt):
                                logger.info(f"Answer already counted: {receipt}")
                                return False
                        pipe.multi()
                        pipe.incrby(total_key, 1)
                        if isinstance(answer, str):
                            pipe.hincrby(cards_key, answer, 1)
                            tracked = [cards_key, total_key]
                        else:
                            for position, card_id in enumerate(answer, start=1):
                                pipe.hincrby(cards_key, card_id, 1)
                                pipe.hincrby(positions_key, f"{card_id}:{position}", 1)
                            tracked = [cards_key, total_key, positions_key]
                        if receipt:
                            pipe.set(receipt, "1")
                            tracked.append(receipt)
                        track_keys(pipe, *tracked)
                        pipe.execute()
                        return True
                    except WatchError:
                        logger.info(f"Receipt {receipt} changed during write, retrying")
                        continue
        except RedisError as e:
            logger.error(f"Failed to record answer for {post_id}/{question_id}: {e}")
            raise StorageError("Storage unavailable, answer not recorded") from e

    def get_stats(self, post_id, question_id):
        try:
            with self.redis.pipeline() as pipe:
                pipe.hgetall(stats_key(post_id, question_id))
                pipe.get(stats_total_key(post_id, question_id))
                pipe.hgetall(stats_positions_key(post_id, question_id))
                cards_raw, total_raw, positions_raw = pipe.execute()
        except RedisError as e:
            logger.error(f"Failed to read stats for {post_id}/{question_id}: {e}")
            raise StorageError("Storage unavailable") from e

        return QuestionStats(
            question_id=question_id,
            card_stats={card_id: int(count) for card_id, count in cards_raw.items()},
            position_stats=self._parse_positions(positions_raw),
            total_responses=int(total_raw) if total_raw else 0,
        )

    def delete_stats(self, post_id, question_id):
        try:
            self.redis.delete(
                stats_key(post_id, question_id),
                stats_total_key(post_id, question_id),
                stats_positions_key(post_id, question_id),
            )
        except RedisError as e:
            raise StorageError("Storage unavailable") from e

    @staticmethod
    def _parse_positions(raw: Dict[str, str]) -> Optional[Dict[str, Dict[int, int]]]:
        if not raw:
            return None
        positions: Dict[str, Dict[int, int]] = {}
        for field, count in raw.items():
            card_id, _, position = field.rpartition(":")
            positions.setdefault(card_id, {})[int(position)] = int(count)
        return positions
