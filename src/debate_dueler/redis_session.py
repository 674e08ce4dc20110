import logging

import redis
from redis.exceptions import RedisError

from .config import settings
from .errors import StorageError

logger = logging.getLogger(__name__)

redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)

TRACKED_KEYS = "app:keys"


def get_redis():
    return redis_client


# --- Key naming ---
def deck_key(post_id: str) -> str:
    return f"deck:{post_id}"


def session_key(post_id: str, user_id: str) -> str:
    return f"game:{post_id}:player:{user_id}"


def stats_key(post_id: str, question_id: str) -> str:
    return f"stats:{post_id}:{question_id}"


def stats_total_key(post_id: str, question_id: str) -> str:
    return f"{stats_key(post_id, question_id)}:total"


def stats_positions_key(post_id: str, question_id: str) -> str:
    return f"{stats_key(post_id, question_id)}:positions"


def receipt_key(post_id: str, question_id: str, user_id: str) -> str:
    return f"answered:{post_id}:{question_id}:{user_id}"


def leaderboard_key(post_id: str) -> str:
    return f"leaderboard:{post_id}"


def leaderboard_entry_key(post_id: str, user_id: str) -> str:
    return f"{leaderboard_key(post_id)}:{user_id}"


# --- Tracked keys ---
def track_keys(client, *keys: str) -> None:
    """Register keys so the bulk clear can find them.

    ``client`` may be a pipeline in MULTI mode; the write then joins its transaction.
    """
    if keys:
        client.hset(TRACKED_KEYS, mapping={key: "1" for key in keys})


def clear_tracked_keys(client) -> int:
    """Delete every tracked key and the registry itself. Returns the number of keys removed."""
    try:
        keys = list(client.hkeys(TRACKED_KEYS))
        if keys:
            client.delete(*keys)
        client.delete(TRACKED_KEYS)
    except RedisError as e:
        logger.error(f"Failed to clear tracked keys: {e}")
        raise StorageError("Storage unavailable") from e
    logger.info(f"Cleared {len(keys)} tracked keys")
    return len(keys)
