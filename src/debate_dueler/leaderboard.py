import logging
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from .config import settings
from .errors import StorageError
from .models import LeaderboardEntry
from .redis_session import leaderboard_entry_key, leaderboard_key, track_keys

logger = logging.getLogger(__name__)


class LeaderboardManager:
    """Ranked finishers per post, one counted entry per user.

    Scores live in a sorted set keyed by user id; the full entry is stored
    as JSON next to it. Players with equal scores come back in Redis member
    order, which callers should treat as unspecified.
    """

    def __init__(self, client):
        self.redis = client

    def record_finish(self, post_id: str, entry: LeaderboardEntry) -> bool:
        board_key = leaderboard_key(post_id)
        entry_key = leaderboard_entry_key(post_id, entry.user_id)
        try:
            # Rank and entry land together or not at all; NX keeps the first finish.
            with self.redis.pipeline(transaction=True) as pipe:
                pipe.zadd(board_key, {entry.user_id: entry.score}, nx=True)
                pipe.set(entry_key, entry.to_json(), nx=True)
                track_keys(pipe, board_key, entry_key)
                added = pipe.execute()[0]
        except RedisError as e:
            logger.error(f"Failed to update leaderboard for {post_id}: {e}")
            raise StorageError("Storage unavailable, leaderboard not updated") from e

        if not added:
            logger.info(
                f"User {entry.user_id} already has a leaderboard entry on {post_id}. Skipping."
            )
            return False
        logger.info(f"Leaderboard {post_id}: {entry.username} scored {entry.score}")
        return True

    def get_top(self, post_id: str, limit: int = settings.LEADERBOARD_LIMIT) -> List[LeaderboardEntry]:
        if limit <= 0:
            return []
        return self._entries_between(post_id, 0, limit - 1)

    def get_near(
        self,
        post_id: str,
        user_id: Optional[str],
        window: int = settings.LEADERBOARD_WINDOW,
        limit: int = settings.LEADERBOARD_LIMIT,
    ) -> List[LeaderboardEntry]:
        """Up to ``window`` entries above and below the user, the user included."""
        rank_index = self._rank_index(post_id, user_id) if user_id else None
        if rank_index is None:
            return self.get_top(post_id, limit)
        return self._entries_between(post_id, max(0, rank_index - window), rank_index + window)

    def get_rank(self, post_id: str, user_id: str) -> Optional[int]:
        rank_index = self._rank_index(post_id, user_id)
        return None if rank_index is None else rank_index + 1

    def _rank_index(self, post_id: str, user_id: str) -> Optional[int]:
        try:
            return self.redis.zrevrank(leaderboard_key(post_id), user_id)
        except RedisError as e:
            raise StorageError("Storage unavailable") from e

    def _entries_between(self, post_id: str, start: int, end: int) -> List[LeaderboardEntry]:
        try:
            user_ids = self.redis.zrevrange(leaderboard_key(post_id), start, end)
            if not user_ids:
                return []
            raw_entries = self.redis.mget(
                [leaderboard_entry_key(post_id, user_id) for user_id in user_ids]
            )
        except RedisError as e:
            logger.error(f"Failed to read leaderboard for {post_id}: {e}")
            raise StorageError("Storage unavailable") from e

        entries = []
        for user_id, raw in zip(user_ids, raw_entries):
            if raw is None:
                logger.warning(f"No entry data found for {user_id} on {post_id}")
                continue
            try:
                entries.append(LeaderboardEntry.model_validate_json(raw))
            except PydanticValidationError as e:
                logger.warning(f"Skipping unreadable leaderboard entry for {user_id}: {e}")
        return entries
