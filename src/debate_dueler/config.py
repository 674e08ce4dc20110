import os


class Settings:
    PROJECT_NAME: str = "debate-dueler"
    DEBUG: bool = os.environ.get("DUELER_DEBUG", "0") == "1"
    LOG_DIR: str = "log"
    LOG_FILE: str = "debate_dueler.log"
    LOG_TO_FILE: bool = os.environ.get("DUELER_LOG_TO_FILE", "1") == "1"
    REDIS_URL: str = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
    DECK_DIR: str = os.environ.get("DUELER_DECK_DIR", "decks")
    DEFAULT_DECK: str = "starter"
    DEAL_MODE: str = "shuffled"
    SESSION_SIZE: int = 10
    DEFAULT_TIME_LIMIT: int = 20
    LEADERBOARD_LIMIT: int = 15
    LEADERBOARD_WINDOW: int = 7


settings = Settings()
